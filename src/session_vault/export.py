"""Export saved conversations to Markdown and JSON formats."""

import json

from .core import ConversationRecord, IndexEntry
from .errors import InvalidRequest

FORMATS = ("md", "json")

MEDIA_TYPES = {
    "md": "text/markdown",
    "json": "application/json",
}


def conversation_to_markdown(record: ConversationRecord, transcript: str) -> str:
    """Export a conversation as its stored Markdown body."""
    return transcript


def conversation_to_json(record: ConversationRecord, transcript: str) -> str:
    """Export a conversation's metadata and body as structured JSON."""
    data = {
        "metadata": record.to_dict(),
        "transcript": transcript,
    }
    return json.dumps(data, indent=2, ensure_ascii=False)


_RENDERERS = {
    "md": conversation_to_markdown,
    "json": conversation_to_json,
}


def check_format(fmt: str) -> str:
    if fmt not in FORMATS:
        raise InvalidRequest(f"Unknown export format {fmt!r}; expected one of {', '.join(FORMATS)}")
    return fmt


def render_export(record: ConversationRecord, transcript: str, fmt: str) -> str:
    return _RENDERERS[check_format(fmt)](record, transcript)


def export_filename(entry: IndexEntry | ConversationRecord, fmt: str) -> str:
    """``<saved date>_<first 8 chars of id>.<fmt>``"""
    return f"{entry.saved_at[:10]}_{entry.id[:8]}.{fmt}"
