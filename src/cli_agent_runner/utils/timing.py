"""Tool call timing extraction and run timing telemetry."""

from __future__ import annotations

import json
import logging
import re
import time
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from cli_agent_runner.storage.models import ToolCallRecord
from cli_agent_runner.utils.cleaner import strip_ansi
from cli_agent_runner.utils.formatting import format_duration

logger = logging.getLogger(__name__)

_RUNNING = re.compile(r"^●\s+Running\s+(\S+)")
_COMPLETED = re.compile(r"^●\s+Completed in\s+(\d+(?:\.\d+)?)(ms|s)\b")

SUMMARY_CATEGORIES = ("Setup", "Investigation", "Tool Calls", "Finalization")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def extract_tool_timings(transcript: str) -> list[ToolCallRecord]:
    """Pair ``● Running <tool>`` lines with the next ``● Completed in`` line.

    A completion line without a pending tool is ignored.
    """
    cleaned = strip_ansi(transcript)
    if not cleaned or not isinstance(cleaned, str):
        return []

    records: list[ToolCallRecord] = []
    current_tool: str | None = None

    for line in cleaned.split("\n"):
        trimmed = line.strip()

        running = _RUNNING.match(trimmed)
        if running:
            current_tool = running.group(1)
            continue

        completed = _COMPLETED.match(trimmed)
        if completed and current_tool:
            value = float(completed.group(1))
            duration_ms = value * 1000 if completed.group(2) == "s" else value
            records.append(ToolCallRecord(current_tool, duration_ms, _now_iso()))
            current_tool = None

    return records


def _stream_json_tool_names(line: str) -> list[str]:
    try:
        event = json.loads(line)
    except ValueError:
        return []
    if not isinstance(event, dict):
        return []

    names: list[str] = []
    tool = event.get("tool")
    if event.get("type") == "tool_use" and isinstance(tool, dict) and tool.get("name"):
        names.append(tool["name"])

    message = event.get("message")
    if event.get("type") == "assistant" and isinstance(message, dict):
        for block in message.get("content") or []:
            if isinstance(block, dict) and block.get("type") == "tool_use" and block.get("name"):
                names.append(block["name"])
    return names


def extract_stream_json_tool_calls(transcript: str) -> list[ToolCallRecord]:
    """Count tool_use events in a stream-json transcript.

    The stream carries no per-tool durations, so every record has a duration
    of 0 (rendered as N/A).
    """
    if not transcript or not isinstance(transcript, str):
        return []

    ordered: list[str] = []
    for line in transcript.split("\n"):
        if line.strip():
            ordered.extend(_stream_json_tool_names(line.strip()))

    totals = Counter(ordered)
    seen: Counter[str] = Counter()
    records: list[ToolCallRecord] = []
    for name in ordered:
        seen[name] += 1
        display = f"{name} ({seen[name]}/{totals[name]})" if totals[name] > 1 else name
        records.append(ToolCallRecord(display, 0.0, _now_iso()))
    return records


class TimingTracker:
    """Collect phase and tool call durations for one run."""

    def __init__(self) -> None:
        self.timings: list[dict[str, Any]] = []
        self._start_times: dict[str, float] = {}

    def start(self, phase: str) -> None:
        self._start_times[phase] = time.monotonic()
        logger.info("[TIMING] Starting: %s", phase)

    def end(self, phase: str, **metadata: Any) -> None:
        started = self._start_times.pop(phase, None)
        if started is None:
            logger.warning("[TIMING] No start time found for: %s", phase)
            return
        self.record(phase, (time.monotonic() - started) * 1000, **metadata)

    def record(self, phase: str, duration_ms: float, **metadata: Any) -> None:
        """Record an already-known duration."""
        entry = {
            "phase": phase,
            "duration": duration_ms,
            "durationFormatted": format_duration(duration_ms),
            "timestamp": metadata.pop("timestamp", None) or _now_iso(),
            **metadata,
        }
        self.timings.append(entry)
        logger.info("[TIMING] Recorded: %s (%s)", phase, entry["durationFormatted"])

    def add_tool_calls(self, records: Iterable[ToolCallRecord]) -> None:
        for rec in records:
            self.record(f"Tool: {rec.tool_name}", rec.duration_ms, toolName=rec.tool_name, timestamp=rec.timestamp)

    def tool_calls(self) -> list[dict[str, Any]]:
        return [t for t in self.timings if t.get("toolName")]

    def total_duration(self) -> float:
        """Sum of phase durations, excluding tool calls already inside a phase."""
        return sum(t["duration"] for t in self.timings if not t.get("toolName") and not t.get("placeholder"))

    def save(self, path: Path) -> None:
        data = {
            "timings": self.timings,
            "totalDuration": self.total_duration(),
            "savedAt": _now_iso(),
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2))
        logger.info("[TIMING] Saved timings to: %s", path)

    @staticmethod
    def _category(timing: dict[str, Any]) -> str:
        phase = timing["phase"]
        if phase.startswith("Tool:") or timing.get("toolName"):
            return "Tool Calls"
        if any(key in phase for key in ("Checkout", "Install", "MCP Setup", "Probe")):
            return "Setup"
        if "Investigation" in phase or "Execution" in phase:
            return "Investigation"
        return "Finalization"

    def summary_markdown(self) -> str:
        """Render the timings as a grouped markdown table."""
        if not self.timings:
            return "## ⏱️ Timing Summary\n\nNo timing data available."

        groups: dict[str, list[dict[str, Any]]] = {name: [] for name in SUMMARY_CATEGORIES}
        for timing in self.timings:
            groups[self._category(timing)].append(timing)

        lines = [
            "## ⏱️ Timing Summary",
            "",
            f"**Total Duration:** {format_duration(self.total_duration())}",
            "",
            "_Tool call timings are informational and already included in the execution time._",
            "",
            "| Phase | Duration |",
            "|-------|----------|",
        ]
        for category, timings in groups.items():
            if not timings:
                continue
            indent = "&nbsp;&nbsp;" if category == "Tool Calls" else ""
            lines.append(f"| {indent}**{category}** | |")
            for timing in timings:
                if timing.get("toolName"):
                    name = f"&nbsp;&nbsp;&nbsp;&nbsp;↳ Tool: {timing['toolName']}"
                else:
                    name = timing["phase"]
                lines.append(f"| {name} | {timing['durationFormatted']} |")
        return "\n".join(lines)
