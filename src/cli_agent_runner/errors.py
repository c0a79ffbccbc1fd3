"""Exception hierarchy for agent CLI execution failures."""

from __future__ import annotations


class ExecutionError(Exception):
    """Base error for a failed agent CLI execution.

    The message always names the command and the proximate cause. Raw
    transcripts are never embedded, since they may contain secrets.
    """

    def __init__(self, command: str, cause: str) -> None:
        self.command = command
        self.cause = cause
        super().__init__(f"{command} CLI execution failed: {cause}")


class ToolUnavailableError(ExecutionError):
    """The availability probe failed (likely a missing installation)."""


class ConfigurationError(ExecutionError):
    """The variant cannot run with the current environment (e.g. no credentials)."""


class SpawnError(ExecutionError):
    """The child process could not be started."""


class StreamFailureError(ExecutionError):
    """A pipe or process I/O error interrupted the execution."""


class NonZeroExitError(ExecutionError):
    """The child ran to completion but reported failure."""

    def __init__(self, command: str, exit_code: int) -> None:
        self.exit_code = exit_code
        super().__init__(command, f"{command} CLI exited with code {exit_code}")
