"""Output cleaning for agent CLI transcripts.

A raw transcript goes through four stages:

A. terminal control codes are stripped (including sequences whose ESC byte
   was decoded into U+FFFD),
B. the start of the real answer is located (result marker, then the last
   cursor reset or tool completion line),
C. reasoning lines prefixed with ``>`` are dropped or reduced to the last one,
D. markdown spacing is normalized for rendering.

Every function here is pure. ``clean`` never raises.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_RESULT_MARKER = "🎯 **Application observability for AWS Assistant Result**"

_REPLACEMENT = "\ufffd"

_ANSI_PATTERNS: list[re.Pattern[str]] = [
    # CSI: colours, cursor movement, clear screen/line, ?25l/?25h visibility
    re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]"),
    # OSC: window title and hyperlinks, terminated by BEL or ST
    re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"),
    # Charset selection and single-character escapes
    re.compile(r"\x1b[()][0-9A-Za-z]"),
    re.compile(r"\x1b[78=>]"),
    # ESC transcoded into U+FFFD
    re.compile(_REPLACEMENT + r"\[[0-9;?]*[A-Za-z]"),
    re.compile(_REPLACEMENT),
    # Fragments left behind once the ESC byte is gone
    re.compile(r"\[?\?25[lh]"),
    re.compile(r"\[[0-9;]+[mGKHF]"),
    # Unterminated escapes
    re.compile(r"\x1b"),
]

_CURSOR_HIDE = ("\x1b[?25l", _REPLACEMENT + "[?25l")
_TOOL_COMPLETED = re.compile(r"^●\s*Completed in")
_QUOTE_PREFIX = re.compile(r"^\s*(?:>\s*)+")
_HEADING = re.compile(r"^#{1,6}\s")
_RULE = re.compile(r"^-{3,}\s*$")
_FENCE = re.compile(r"^\s*(```|~~~)")
_EXCESS_BLANKS = re.compile(r"\n{3,}")


class QuotePolicy(enum.Enum):
    """How lines starting with ``>`` are treated after truncation."""

    KEEP = "keep"
    DROP = "drop"
    KEEP_LAST = "keep_last"


@dataclass(frozen=True)
class CleanerProfile:
    """Per-variant cleaning settings."""

    result_marker: str = DEFAULT_RESULT_MARKER
    quote_policy: QuotePolicy = QuotePolicy.DROP
    fallback_tiers: bool = True


def strip_ansi(text):
    """Remove ANSI escape codes from text.

    Non-string and empty input is returned unchanged. Patterns are applied
    until nothing changes, so the result never contains a sequence that was
    assembled by removing an inner one.
    """
    if not text or not isinstance(text, str):
        return text

    previous = None
    while previous != text:
        previous = text
        for pattern in _ANSI_PATTERNS:
            text = pattern.sub("", text)
    return text.strip()


def _is_marker_line(line: str, marker: str) -> bool:
    if not marker:
        return False
    visible = strip_ansi(line) or ""
    return _QUOTE_PREFIX.sub("", visible) == marker


def find_result_start(lines: list[str], profile: CleanerProfile) -> tuple[int, str]:
    """Locate the first line of the real answer in raw transcript lines.

    Returns the line index and the name of the method that matched.
    """
    for i, line in enumerate(lines):
        if _is_marker_line(line, profile.result_marker):
            return i, "result_marker"

    if not profile.fallback_tiers:
        return 0, "none"

    cursor_start = None
    for i in range(len(lines) - 1, -1, -1):
        if any(seq in lines[i] for seq in _CURSOR_HIDE):
            cursor_start = i + 1
            break

    completion_start = None
    for i in range(len(lines) - 1, -1, -1):
        if _TOOL_COMPLETED.match(_QUOTE_PREFIX.sub("", strip_ansi(lines[i]) or "").strip()):
            completion_start = i + 1
            break

    # Cursor reset does not take precedence: the later boundary wins so a
    # second pass over cleaned output finds nothing left to cut.
    if cursor_start is not None and (completion_start is None or cursor_start >= completion_start):
        return cursor_start, "cursor_control"
    if completion_start is not None:
        return completion_start, "tool_completion"
    return 0, "none"


def filter_quote_lines(lines: list[str], policy: QuotePolicy) -> list[str]:
    """Apply the quote policy to transcript lines.

    Some CLIs use ``>`` both for intermediate reasoning and for the final
    summary line, in which case only the last one is worth keeping.
    """
    if policy is QuotePolicy.KEEP:
        return list(lines)

    quoted = [i for i, line in enumerate(lines) if line.strip().startswith(">")]
    last = quoted[-1] if quoted and policy is QuotePolicy.KEEP_LAST else -1

    result: list[str] = []
    for i, line in enumerate(lines):
        if not line.strip().startswith(">"):
            result.append(line)
        elif i == last:
            result.append(_QUOTE_PREFIX.sub("", line))
    return result


def normalize_markdown(text):
    """Fix spacing that breaks markdown rendering.

    Headings and horizontal rules get a blank line on each side (outside
    fenced code blocks), runs of blank lines collapse to one, and the
    document is trimmed.
    """
    if not text or not isinstance(text, str):
        return text

    lines = [line.rstrip() for line in text.split("\n")]
    out: list[str] = []
    in_fence = False
    pad_next = False

    for line in lines:
        if _FENCE.match(line):
            in_fence = not in_fence
        block = not in_fence and bool(_HEADING.match(line) or _RULE.match(line))

        if (block or pad_next) and line and out and out[-1]:
            out.append("")
        out.append(line)
        pad_next = block

    cleaned = _EXCESS_BLANKS.sub("\n\n", "\n".join(out))
    return cleaned.strip()


def clean(text, profile: CleanerProfile | None = None) -> str:
    """Reduce a raw transcript to the presentable result."""
    if not text or not isinstance(text, str):
        return ""
    profile = profile or CleanerProfile()

    lines = text.split("\n")
    start, method = find_result_start(lines, profile)
    logger.debug("Output filtering method: %s, starting from line %d of %d", method, start, len(lines))

    head: list[str] = []
    if method == "result_marker":
        # The marker line always leads, even when it was quoted.
        head = [profile.result_marker]
        start += 1

    body = strip_ansi("\n".join(lines[start:])) or ""
    kept = head + filter_quote_lines(body.split("\n"), profile.quote_policy)
    return normalize_markdown("\n".join(kept)) or ""
