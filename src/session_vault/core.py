"""Core data models for session-vault."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

INDEX_VERSION = 1

# Fields copied from a ConversationRecord into its IndexEntry.
INDEX_FIELDS = (
    "id",
    "project",
    "project_path",
    "summary",
    "tags",
    "note",
    "saved_at",
    "message_count",
    "source",
    "transcript_file",
    "metadata_file",
)


@dataclass(frozen=True)
class Message:
    """A single user or assistant message extracted from a transcript."""

    role: str  # "user" | "assistant"
    content: str


@dataclass(frozen=True)
class ParsedTranscript:
    """Ordered messages decoded from a JSONL session file."""

    messages: tuple[Message, ...] = ()

    @property
    def message_count(self) -> int:
        return len(self.messages)


@dataclass(frozen=True)
class RedactionRule:
    """A regex substitution applied to message content before rendering."""

    pattern: str
    replacement: str = "[REDACTED]"


@dataclass
class ConversationRecord:
    """Canonical metadata for one saved conversation.

    Persisted as ``<prefix>.meta.json`` next to the ``<prefix>.md`` body.
    """

    id: str
    project: str  # display name, last path segment
    project_path: str
    session_id: str
    created_at: str  # ISO 8601
    saved_at: str  # ISO 8601
    git_branch: Optional[str] = None
    git_commit: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    note: str = ""
    summary: str = ""
    message_count: int = 0
    source: str = "manual"  # "manual" | "auto"
    transcript_file: str = ""
    metadata_file: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationRecord":
        """Build a record from decoded metadata JSON.

        Raises ValueError when a required field is missing or mistyped.
        """
        if not isinstance(data, dict):
            raise ValueError("metadata must be a JSON object")
        for key in ("id", "project_path", "saved_at", "transcript_file", "metadata_file"):
            if not isinstance(data.get(key), str) or not data[key]:
                raise ValueError(f"metadata field {key!r} is missing or not a string")
        tags = data.get("tags") or []
        if not isinstance(tags, list):
            raise ValueError("metadata field 'tags' is not a list")
        return cls(
            id=data["id"],
            project=str(data.get("project", "")),
            project_path=data["project_path"],
            session_id=str(data.get("session_id", "unknown")),
            created_at=str(data.get("created_at", data["saved_at"])),
            saved_at=data["saved_at"],
            git_branch=data.get("git_branch"),
            git_commit=data.get("git_commit"),
            tags=[str(t) for t in tags],
            note=str(data.get("note", "")),
            summary=str(data.get("summary", "")),
            message_count=int(data.get("message_count", 0)),
            source=str(data.get("source", "manual")),
            transcript_file=data["transcript_file"],
            metadata_file=data["metadata_file"],
        )


@dataclass
class IndexEntry:
    """Display/filter projection of a ConversationRecord."""

    id: str
    project: str
    project_path: str
    summary: str
    tags: list[str]
    note: str
    saved_at: str
    message_count: int
    source: str
    transcript_file: str
    metadata_file: str

    @classmethod
    def from_record(cls, record: ConversationRecord) -> "IndexEntry":
        return cls(**{name: getattr(record, name) for name in INDEX_FIELDS})

    @classmethod
    def from_dict(cls, data: dict) -> "IndexEntry":
        # Metadata files and cache entries share the same field names.
        return cls.from_record(ConversationRecord.from_dict(data))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class VaultIndex:
    """The aggregated cache document stored at ``<vault>/index.json``."""

    entries: list[IndexEntry] = field(default_factory=list)
    version: int = INDEX_VERSION

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "entries": [e.to_dict() for e in self.entries],
        }


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string; naive values are taken as UTC."""
    if not value:
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        parsed = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def saved_at_key(entry) -> datetime:
    """Sort key for entries by saved_at; unparseable values sort oldest."""
    return parse_iso(entry.saved_at) or _EPOCH
