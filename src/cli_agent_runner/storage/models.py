"""Data models for cli-agent-runner."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping


@dataclass(frozen=True)
class ExecutionRequest:
    """A prompt to run through an agent CLI."""

    prompt: str
    work_dir: str = ""
    env: Mapping[str, str] = field(default_factory=dict)
    run_id: str | None = None


@dataclass(frozen=True)
class ProcessResult:
    """Captured output of one child process run."""

    output: str = ""
    exit_code: int = 0
    source: Literal["stdout", "stderr"] = "stdout"
    stdout: str = ""
    stderr: str = ""


@dataclass(frozen=True)
class ToolCallRecord:
    """Duration of a single tool invocation reported by an agent."""

    tool_name: str
    duration_ms: float
    timestamp: str = ""


@dataclass
class RunRecord:
    """A stored run history entry."""

    id: int = 0
    variant: str = ""
    command: str = ""
    exit_code: int | None = None
    duration_ms: int = 0
    output_chars: int = 0
    tool_calls: int = 0
    status: str = "success"
    error: str = ""
    created_at: str = ""
