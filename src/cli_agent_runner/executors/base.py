"""Capability contract for agent CLI variants.

The orchestrator only talks to :class:`ExecutorVariant`. Each concrete
variant supplies its command, arguments, environment overlay, a
pre-execution setup hook and an output parser.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol, runtime_checkable

from cli_agent_runner.storage.models import ToolCallRecord
from cli_agent_runner.utils.cleaner import DEFAULT_RESULT_MARKER, CleanerProfile, QuotePolicy, clean
from cli_agent_runner.utils.timing import extract_tool_timings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VariantContext:
    """What a variant may look at while preparing an execution.

    ``env`` is the inherited environment with the caller's overlay applied.
    It is never mutated.
    """

    env: Mapping[str, str]
    work_dir: Path
    temp_dir: Path
    home: Path = field(default_factory=Path.home)

    @classmethod
    def from_env(cls, env: Mapping[str, str], work_dir: Path, temp_dir: Path) -> VariantContext:
        home = Path(env["HOME"]) if env.get("HOME") else Path.home()
        return cls(env=dict(env), work_dir=work_dir, temp_dir=temp_dir, home=home)


@runtime_checkable
class ExecutorVariant(Protocol):
    name: str
    command: str
    prompt_via_stdin: bool
    cleaner_profile: CleanerProfile

    def command_args(self, ctx: VariantContext) -> list[str]: ...

    def prompt_args(self, prompt: str) -> list[str]: ...

    def environment(self, ctx: VariantContext) -> dict[str, str]: ...

    async def setup_configuration(self, ctx: VariantContext) -> Path | None: ...

    def parse_output(self, output: str) -> str: ...

    def extract_tool_timings(self, output: str) -> list[ToolCallRecord]: ...

    def format_live_output(self, text: str) -> str: ...


class BaseVariant:
    """Defaults shared by the concrete variants."""

    name = ""
    command = ""
    label = ""
    prompt_via_stdin = True
    quote_policy = QuotePolicy.DROP
    fallback_tiers = True

    def __init__(self, result_marker: str = DEFAULT_RESULT_MARKER) -> None:
        self.cleaner_profile = CleanerProfile(
            result_marker=result_marker,
            quote_policy=self.quote_policy,
            fallback_tiers=self.fallback_tiers,
        )

    def command_args(self, ctx: VariantContext) -> list[str]:
        return []

    def prompt_args(self, prompt: str) -> list[str]:
        return []

    def environment(self, ctx: VariantContext) -> dict[str, str]:
        return {}

    async def setup_configuration(self, ctx: VariantContext) -> Path | None:
        return None

    def parse_output(self, output: str) -> str:
        return clean(output, self.cleaner_profile)

    def extract_tool_timings(self, output: str) -> list[ToolCallRecord]:
        return extract_tool_timings(output)

    def format_live_output(self, text: str) -> str:
        return text

    def __repr__(self) -> str:
        return f"{type(self).__name__}(command={self.command!r})"


def write_json_config(path: Path, data: dict[str, Any]) -> Path:
    """Write a JSON config file readable only by the current user."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))
    os.chmod(path, 0o600)
    return path


def env_overlay(**values: str | None) -> dict[str, str]:
    """Build an overlay, leaving out unset values."""
    return {key: value for key, value in values.items() if value is not None}
