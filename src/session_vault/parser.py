"""Claude Code transcript parsing and rendering.

Session files are JSONL. Two line shapes carry messages:

- bare:    {"role": "user", "content": ...}
- wrapped: {"type": "user", "message": {"role": "user", "content": ...}, ...}

``content`` is a string or a list of blocks. Only "text" blocks (and bare
strings) contribute text. A user line whose blocks are all "tool_result" is
echoed tool output and is dropped. Everything else (system lines,
file-history-snapshot, progress, summary, ...) is ignored.
"""

import json
import logging
import re
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

from .core import Message, ParsedTranscript, RedactionRule
from .errors import InvalidRequest, TranscriptTooLarge

logger = logging.getLogger(__name__)

MB = 1024 * 1024

# Files larger than this are parsed line by line instead of read whole.
STREAM_THRESHOLD_MB = 5

SUMMARY_MAX_CHARS = 120
SUMMARY_MIN_CUT = 80
EMPTY_SUMMARY = "Empty conversation"

ROLES = ("user", "assistant")

# Called with (line_number, raw_line, error) for each line that is skipped.
ErrorCallback = Callable[[int, str, Exception], None]


# ── Record decoding ──────────────────────────────────────────────


def iter_records(
    lines: Iterable[str | bytes],
    on_error: ErrorCallback | None = None,
) -> Iterator[dict]:
    """Yield each decodable JSON object in a line stream.

    Blank lines are ignored. Lines that are not valid JSON objects are
    skipped and reported to ``on_error``; they never stop the iteration.
    """
    for line_num, raw in enumerate(lines, 1):
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        line = raw.lstrip("\ufeff").strip()
        if not line:
            continue
        try:
            entry = json.loads(line)
        except (ValueError, RecursionError) as e:
            logger.debug("Bad JSON at line %d: %s", line_num, e)
            if on_error is not None:
                on_error(line_num, line, e)
            continue
        if not isinstance(entry, dict):
            continue
        yield entry


def _unwrap(entry: dict) -> dict:
    """Return the message object of a wrapped line, or the line itself."""
    message = entry.get("message")
    if isinstance(message, dict) and "role" in message:
        return message
    return entry


def _is_tool_result_only(content: list) -> bool:
    return all(isinstance(b, dict) and b.get("type") == "tool_result" for b in content)


def extract_text(content) -> str | None:
    """Extract text from a string or a list of content blocks.

    Text-bearing blocks are joined with newlines; returns None if there are
    none.
    """
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return None

    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            text = block.get("text")
            if isinstance(text, str):
                parts.append(text)
    return "\n".join(parts) if parts else None


def record_to_message(entry: dict) -> Message | None:
    """Normalize one decoded line to a Message, or None if it carries none."""
    record = _unwrap(entry)
    role = record.get("role")
    if role not in ROLES:
        return None

    content = record.get("content")
    if role == "user" and isinstance(content, list) and _is_tool_result_only(content):
        return None

    text = extract_text(content)
    if not text or not text.strip():
        return None
    return Message(role=role, content=text.strip())


def parse_lines(
    lines: Iterable[str | bytes],
    on_error: ErrorCallback | None = None,
) -> ParsedTranscript:
    """Parse a stream of JSONL lines into a transcript."""
    messages = []
    for entry in iter_records(lines, on_error):
        message = record_to_message(entry)
        if message is not None:
            messages.append(message)
    return ParsedTranscript(messages=tuple(messages))


def parse_jsonl_content(data: str | bytes, on_error: ErrorCallback | None = None) -> ParsedTranscript:
    """Parse a whole JSONL document held in memory."""
    sep = b"\n" if isinstance(data, bytes) else "\n"
    return parse_lines(data.split(sep), on_error)


def parse_session_file_streaming(path: Path, on_error: ErrorCallback | None = None) -> ParsedTranscript:
    """Parse a JSONL file one line at a time."""
    with path.open("rb") as f:
        return parse_lines(f, on_error)


def parse_session_file(
    path: Path,
    max_size_mb: float | None = None,
    stream_threshold_mb: float = STREAM_THRESHOLD_MB,
    on_error: ErrorCallback | None = None,
) -> ParsedTranscript:
    """Read and parse a session file, enforcing the size ceiling.

    Raises TranscriptTooLarge before reading anything if the file is over
    ``max_size_mb``. Files over ``stream_threshold_mb`` are streamed; both
    paths split on b"\\n" and decode per line, so they give equal results.
    """
    path = Path(path)
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        raise InvalidRequest(f"Transcript file not found: {path}") from None

    if max_size_mb is not None and size > max_size_mb * MB:
        raise TranscriptTooLarge(size_mb=size / MB, limit_mb=max_size_mb)

    if size > stream_threshold_mb * MB:
        logger.debug("Streaming %s (%.1f MB)", path, size / MB)
        return parse_session_file_streaming(path, on_error)
    return parse_jsonl_content(path.read_bytes(), on_error)


# ── Rendering ────────────────────────────────────────────────────


def apply_redactions(text: str, rules: Iterable[RedactionRule]) -> str:
    """Apply each rule's regex substitution in order."""
    for rule in rules:
        text = re.sub(rule.pattern, rule.replacement, text)
    return text


def role_label(role: str) -> str:
    return role.capitalize()


def to_markdown(
    transcript: ParsedTranscript,
    title: str | None = None,
    date: str | None = None,
    project: str | None = None,
    branch: str | None = None,
    tags: Iterable[str] | None = None,
    redaction_rules: Iterable[RedactionRule] = (),
) -> str:
    """Render a transcript as a Markdown document."""
    rules = list(redaction_rules)
    lines = [f"# Session: {title or 'Untitled Session'}", ""]

    if date:
        lines.append(f"**Date:** {date}")
    if project:
        lines.append(f"**Project:** {project}")
    if branch:
        lines.append(f"**Branch:** {branch}")
    tags = list(tags or [])
    if tags:
        lines.append(f"**Tags:** {', '.join(tags)}")
    lines.extend(["", "---", ""])

    for msg in transcript.messages:
        content = apply_redactions(msg.content, rules) if rules else msg.content
        lines.append(f"## {role_label(msg.role)}")
        lines.append(content)
        lines.append("")

    return "\n".join(lines)


def generate_summary(transcript: ParsedTranscript) -> str:
    """Summarize a transcript by its first user message, truncated at ~120 chars."""
    first = next((m for m in transcript.messages if m.role == "user"), None)
    if first is None:
        return EMPTY_SUMMARY

    text = first.content
    if len(text) <= SUMMARY_MAX_CHARS:
        return text.replace("\n", " ")

    truncated = text[:SUMMARY_MAX_CHARS]
    last_space = truncated.rfind(" ")
    if last_space > SUMMARY_MIN_CUT:
        truncated = truncated[:last_space]
    return truncated.replace("\n", " ") + "..."
