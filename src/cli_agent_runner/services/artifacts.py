"""Debug artifacts written after a run."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Iterable

from cli_agent_runner.storage.models import ToolCallRecord

logger = logging.getLogger(__name__)


def write_artifacts(
    output_dir: Path,
    command: str,
    transcript: str,
    tool_calls: Iterable[ToolCallRecord] = (),
    summary: str = "",
) -> list[Path]:
    """Write the raw transcript, tool call timings and timing summary.

    Best effort: a file that cannot be written is logged and skipped.
    Returns the paths that were written.
    """
    files = {
        f"{command}-transcript.txt": transcript or "",
        f"{command}-tool-calls.json": json.dumps([asdict(t) for t in tool_calls], indent=2),
    }
    if summary:
        files[f"{command}-summary.md"] = summary

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("Could not create artifact directory %s: %s", output_dir, e)
        return []

    written: list[Path] = []
    for name, content in files.items():
        path = output_dir / name
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.warning("Could not write artifact %s: %s", path, e)
            continue
        written.append(path)

    logger.info("Wrote %d debug artifacts to %s", len(written), output_dir)
    return written
