"""Formatting helpers for durations and user-facing run messages."""

from __future__ import annotations


def format_duration(ms: float) -> str:
    """Format milliseconds to human-readable duration.

    Zero means the duration is unknown and renders as ``N/A``.
    """
    if ms == 0:
        return "N/A"
    if ms < 1000:
        return f"{round(ms)}ms"

    seconds = ms / 1000
    if seconds >= 60:
        minutes = int(seconds // 60)
        remainder = seconds % 60
        if remainder > 0:
            return f"{minutes}m {remainder:.1f}s"
        return f"{minutes}m"
    return f"{seconds:.1f}s"


def format_failure(label: str, error: BaseException | str) -> str:
    """Render a short failure message suitable for direct display."""
    return (
        f"❌ **{label} Failed**\n\n"
        f"**Error:** {error}\n\n"
        "Check the run logs for details and make sure authentication is configured."
    )


def format_run_header(variant: str, duration_ms: int, tool_calls: int) -> str:
    """One-line summary shown above a run result."""
    calls = f"{tool_calls} tool call" + ("" if tool_calls == 1 else "s")
    return f"{variant} | {format_duration(duration_ms)} | {calls}"
