"""User-level vault operations shared by the CLI and the HTTP API.

Every function takes the vault root explicitly; callers resolve it (and the
config) once with ``config.get_vault_dir()`` / ``config.load_config()``.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .config import VaultConfig
from .core import ConversationRecord, IndexEntry, ParsedTranscript, VaultIndex, parse_iso
from .errors import InvalidRequest, VaultError
from .export import check_format, export_filename, render_export
from .git import get_git_info
from .index import IndexCache, sort_entries
from .parser import apply_redactions, generate_summary, parse_session_file, to_markdown
from .resolver import require_entry, resolve_entry
from .sections import extract_section
from .slug import project_name
from .vault import Vault, utc_now_iso

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 100
TITLE_MAX_CHARS = 60
AUTO_SAVE_TAG = "auto"
AUTO_SAVE_NOTE = "Auto-saved on session end"

_OLDER_THAN_RE = re.compile(r"^(\d+)([dhm])$")
_OLDER_THAN_UNITS = {
    "d": timedelta(days=1),
    "h": timedelta(hours=1),
    "m": timedelta(days=30),
}


@dataclass
class SearchResult:
    id: str
    summary: str
    match_context: str
    score: int


@dataclass
class DeleteResult:
    """Entries selected for deletion; ``deleted`` is False for a preview."""

    entries: list[IndexEntry]
    deleted: bool
    missing: list[str] = field(default_factory=list)


def open_vault(vault_dir: Path) -> tuple[Vault, IndexCache]:
    vault = Vault(vault_dir)
    return vault, IndexCache(vault)


# ── Saving ───────────────────────────────────────────────────────


def save_conversation(
    vault_dir: Path,
    transcript_path: str | Path,
    project_path: str,
    config: VaultConfig | None = None,
    session_id: str | None = None,
    tags: Iterable[str] = (),
    note: str = "",
    source: str = "manual",
) -> ConversationRecord:
    """Parse a session file, store it in the vault and index it.

    Raises TranscriptTooLarge if the file is over the configured ceiling and
    VaultError(kind="empty") if it holds no user/assistant messages.
    """
    config = config or VaultConfig()
    transcript = parse_session_file(Path(transcript_path), config.max_transcript_size_mb)
    return store_transcript(
        vault_dir,
        transcript,
        project_path,
        config=config,
        session_id=session_id,
        tags=tags,
        note=note,
        source=source,
    )


def store_transcript(
    vault_dir: Path,
    transcript: ParsedTranscript,
    project_path: str,
    config: VaultConfig | None = None,
    session_id: str | None = None,
    tags: Iterable[str] = (),
    note: str = "",
    source: str = "manual",
) -> ConversationRecord:
    """Render an already parsed transcript, save it and index it."""
    config = config or VaultConfig()
    tags = list(tags)
    if not transcript.messages:
        raise VaultError("No messages found in the session file. Nothing to save.", kind="empty")

    # Both lookups settle (value or None) before anything is written.
    branch, commit = get_git_info(project_path)

    summary = apply_redactions(generate_summary(transcript), config.redaction_rules)
    markdown = to_markdown(
        transcript,
        title=summary[:TITLE_MAX_CHARS],
        date=utc_now_iso(),
        project=project_name(project_path),
        branch=branch,
        tags=tags,
        redaction_rules=config.redaction_rules,
    )

    vault, cache = open_vault(vault_dir)
    record = vault.save_transcript(
        markdown,
        project_path=project_path,
        summary=summary,
        message_count=transcript.message_count,
        session_id=session_id or "unknown",
        git_branch=branch,
        git_commit=commit,
        tags=tags,
        note=note,
        source=source,
    )
    cache.add(record)
    return record


def auto_save(vault_dir: Path, payload: dict, config: VaultConfig) -> ConversationRecord | None:
    """Save a session from an end-of-session hook payload.

    payload carries ``session_id``, ``transcript_path`` and ``cwd``. Returns
    None (and logs why) when the session is skipped.
    """
    if not config.auto_save:
        logger.info("auto-save: disabled in config")
        return None

    transcript_path = payload.get("transcript_path")
    if not transcript_path:
        logger.warning("auto-save: no transcript_path in input")
        return None
    path = Path(transcript_path)
    if not path.is_file():
        logger.warning("auto-save: transcript not found: %s", path)
        return None

    transcript = parse_session_file(path, config.max_transcript_size_mb)
    if transcript.message_count < max(config.auto_save_min_messages, 1):
        logger.info(
            "auto-save: %d messages is below the threshold of %d",
            transcript.message_count,
            config.auto_save_min_messages,
        )
        return None

    return store_transcript(
        vault_dir,
        transcript,
        project_path=payload.get("cwd") or str(Path.cwd()),
        config=config,
        session_id=payload.get("session_id"),
        tags=[AUTO_SAVE_TAG],
        note=AUTO_SAVE_NOTE,
        source="auto",
    )


# ── Listing and searching ────────────────────────────────────────


def _parse_date(value: str | None, name: str) -> datetime | None:
    if not value:
        return None
    parsed = parse_iso(value)
    if parsed is None:
        raise InvalidRequest(f"Invalid {name} date: {value!r}")
    return parsed


def filter_entries(
    entries: Iterable[IndexEntry],
    project: str | None = None,
    tag: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    query: str | None = None,
) -> list[IndexEntry]:
    """Apply the shared list/search filters. Matching is case-insensitive."""
    result = list(entries)

    if project:
        proj = project.lower()
        result = [e for e in result if e.project.lower() == proj]

    if tag:
        tag_lower = tag.lower()
        result = [e for e in result if any(t.lower() == tag_lower for t in e.tags)]

    start = _parse_date(date_from, "from")
    end = _parse_date(date_to, "to")
    if start or end:
        dated = [(e, parse_iso(e.saved_at)) for e in result]
        result = [
            e for e, saved in dated
            if saved is not None
            and (start is None or saved >= start)
            and (end is None or saved <= end)
        ]

    if query:
        q = query.lower()
        result = [
            e for e in result
            if q in e.summary.lower()
            or q in e.note.lower()
            or q in e.project.lower()
            or any(q in t.lower() for t in e.tags)
        ]

    return result


def list_conversations(
    vault_dir: Path,
    project: str | None = None,
    tag: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[IndexEntry], int]:
    """Return one page of entries (newest first) and the filtered total."""
    _, cache = open_vault(vault_dir)
    entries = filter_entries(sort_entries(cache.load().entries), project=project, tag=tag)
    limit = min(max(limit, 1), MAX_LIST_LIMIT)
    offset = max(offset, 0)
    return entries[offset: offset + limit], len(entries)


def extract_context(content: str, query: str, context_lines: int = 2) -> str | None:
    """Return the first line matching query with surrounding lines."""
    lines = content.split("\n")
    q = query.lower()
    for i, line in enumerate(lines):
        if q in line.lower():
            start = max(0, i - context_lines)
            return "\n".join(lines[start: i + context_lines + 1])
    return None


def search_conversations(
    vault_dir: Path,
    query: str,
    project: str | None = None,
    tag: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
) -> list[SearchResult]:
    """Score entries against query; metadata hits outrank body hits."""
    if not query.strip():
        raise InvalidRequest("Search query must not be empty")

    vault, cache = open_vault(vault_dir)
    entries = filter_entries(
        cache.load().entries, project=project, tag=tag, date_from=date_from, date_to=date_to
    )
    q = query.lower()
    results = []

    for entry in entries:
        score = 0
        context = ""

        if q in entry.summary.lower():
            score += 3
            context = entry.summary
        if q in entry.note.lower():
            score += 2
            context = context or entry.note
        if any(q in t.lower() for t in entry.tags):
            score += 2
            context = context or f"Tags: {', '.join(entry.tags)}"

        if score == 0:
            try:
                body = vault.read_transcript(entry.project_path, entry.transcript_file)
            except VaultError as e:
                logger.debug("Skipping body search for %s: %s", entry.id, e)
                body = None
            if body is not None:
                found = extract_context(body, query)
                if found is not None:
                    score += 1
                    context = found

        if score > 0:
            results.append(SearchResult(
                id=entry.id,
                summary=entry.summary,
                match_context=context,
                score=score,
            ))

    results.sort(key=lambda r: r.score, reverse=True)
    return results


# ── Reading, deleting, exporting ─────────────────────────────────


def get_conversation(vault_dir: Path, conversation_id: str, section: str = "full") -> tuple[IndexEntry, str]:
    """Resolve an id (or unique prefix) and return its entry and section text."""
    vault, cache = open_vault(vault_dir)
    entry = require_entry(cache, conversation_id)
    body = vault.read_transcript(entry.project_path, entry.transcript_file)
    return entry, extract_section(body, section)


def parse_older_than(value: str, now: datetime | None = None) -> datetime:
    """Turn "30d", "12h" or "6m" (months of 30 days) into a cutoff time."""
    match = _OLDER_THAN_RE.match(value.strip())
    if not match:
        raise InvalidRequest(f'Invalid older_than format: "{value}". Use "30d", "12h", "6m", etc.')
    amount, unit = int(match.group(1)), match.group(2)
    now = now or datetime.now(timezone.utc)
    return now - amount * _OLDER_THAN_UNITS[unit]


def delete_conversations(
    vault_dir: Path,
    ids: Iterable[str] | None = None,
    older_than: str | None = None,
    tag: str | None = None,
    confirm: bool = False,
) -> DeleteResult:
    """Select conversations by ids, or by age and tag, and delete them.

    Nothing is removed unless confirm is True; otherwise the selection is
    returned as a preview.
    """
    vault, cache = open_vault(vault_dir)
    entries = cache.load().entries
    ids = list(ids or [])
    missing: list[str] = []

    if ids:
        selected: list[IndexEntry] = []
        for candidate in ids:
            entry = resolve_entry(entries, candidate)
            if entry is None:
                missing.append(candidate)
            elif entry not in selected:
                selected.append(entry)
    else:
        selected = list(entries)
        if older_than:
            cutoff = parse_older_than(older_than)
            selected = [
                e for e in selected
                if (parse_iso(e.saved_at) or cutoff) < cutoff
            ]
        if tag:
            selected = filter_entries(selected, tag=tag)

    if not confirm:
        return DeleteResult(entries=selected, deleted=False, missing=missing)

    for entry in selected:
        vault.delete_entry(entry.project_path, entry.transcript_file, entry.metadata_file)
        cache.remove(entry.id)
    return DeleteResult(entries=selected, deleted=True, missing=missing)


def delete_conversation(vault_dir: Path, conversation_id: str) -> IndexEntry:
    """Delete exactly one conversation by id or unique prefix."""
    vault, cache = open_vault(vault_dir)
    entry = require_entry(cache, conversation_id)
    vault.delete_entry(entry.project_path, entry.transcript_file, entry.metadata_file)
    cache.remove(entry.id)
    return entry


def read_conversation(vault_dir: Path, conversation_id: str) -> tuple[ConversationRecord, str]:
    """Return the full metadata record and Markdown body of a conversation."""
    vault, cache = open_vault(vault_dir)
    entry = require_entry(cache, conversation_id)
    record = vault.read_metadata(entry.project_path, entry.metadata_file)
    body = vault.read_transcript(entry.project_path, entry.transcript_file)
    return record, body


def export_conversations(
    vault_dir: Path,
    conversation_id: str,
    fmt: str = "md",
    output_dir: str | Path | None = None,
) -> list[Path]:
    """Write one conversation (or "all") to output_dir; return the paths."""
    check_format(fmt)
    out = Path(output_dir) if output_dir else Path.cwd()
    vault, cache = open_vault(vault_dir)

    if conversation_id == "all":
        entries = cache.load().entries
    else:
        entries = [require_entry(cache, conversation_id)]

    written = []
    if entries:
        out.mkdir(parents=True, exist_ok=True)
    for entry in entries:
        try:
            record = vault.read_metadata(entry.project_path, entry.metadata_file)
            body = vault.read_transcript(entry.project_path, entry.transcript_file)
        except VaultError as e:
            if conversation_id != "all":
                raise
            logger.warning("Skipping export of %s: %s", entry.id, e)
            continue
        path = out / export_filename(entry, fmt)
        path.write_text(render_export(record, body, fmt), encoding="utf-8")
        written.append(path)
    return written


def rebuild_index(vault_dir: Path) -> VaultIndex:
    _, cache = open_vault(vault_dir)
    return cache.rebuild()
