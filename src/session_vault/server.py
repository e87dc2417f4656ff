"""FastAPI read/delete API for session-vault."""

import logging
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response

from . import __version__, operations
from .config import get_vault_dir
from .core import parse_iso
from .errors import VaultError
from .export import MEDIA_TYPES, check_format, export_filename, render_export
from .index import IndexCache, sort_entries
from .vault import Vault

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

app = FastAPI(title="session-vault", version=__version__)

# Vault root (resolved on first request)
_vault_dir: Path | None = None

_STATUS_BY_KIND = {
    "not_found": 404,
    "ambiguous": 404,
    "invalid_input": 400,
    "too_large": 413,
    "empty": 422,
    "corrupt": 500,
}


def _get_vault_dir() -> Path:
    """Lazily resolve and cache the vault root."""
    global _vault_dir
    if _vault_dir is None:
        _vault_dir = get_vault_dir()
        logger.info("Serving vault at %s", _vault_dir)
    return _vault_dir


def _load_entries():
    return IndexCache(Vault(_get_vault_dir())).load().entries


def _http_error(e: VaultError) -> HTTPException:
    return HTTPException(status_code=_STATUS_BY_KIND.get(e.kind, 500), detail=str(e))


def _entry_to_dict(entry) -> dict:
    """Convert an IndexEntry to a JSON-serializable dict."""
    return entry.to_dict()


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/conversations")
async def get_conversations(
    q: str | None = Query(None, description="Search summary, note, tags and project"),
    tag: str | None = Query(None, description="Filter by tag"),
    project: str | None = Query(None, description="Filter by project name"),
    date_from: str | None = Query(None, alias="from", description="Saved on or after (ISO 8601)"),
    date_to: str | None = Query(None, alias="to", description="Saved on or before (ISO 8601)"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """Return saved conversations, newest first."""
    try:
        entries = operations.filter_entries(
            sort_entries(_load_entries()),
            project=project,
            tag=tag,
            date_from=date_from,
            date_to=date_to,
            query=q,
        )
    except VaultError as e:
        raise _http_error(e)

    return {
        "total": len(entries),
        "conversations": [_entry_to_dict(e) for e in entries[offset: offset + limit]],
    }


@app.get("/api/conversations/{conversation_id}")
async def get_conversation(conversation_id: str):
    """Return the transcript body and full metadata of one conversation."""
    try:
        record, transcript = operations.read_conversation(_get_vault_dir(), conversation_id)
    except VaultError as e:
        raise _http_error(e)

    return {"transcript": transcript, "metadata": record.to_dict()}


@app.delete("/api/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str):
    """Delete one conversation's files and index entry."""
    try:
        entry = operations.delete_conversation(_get_vault_dir(), conversation_id)
    except VaultError as e:
        raise _http_error(e)

    return {"deleted": True, "id": entry.id}


@app.get("/api/export/{conversation_id}")
async def export_conversation(
    conversation_id: str,
    format: str = Query("md", description="Export format: md or json"),
):
    """Download a conversation as Markdown or JSON."""
    try:
        check_format(format)
        record, transcript = operations.read_conversation(_get_vault_dir(), conversation_id)
    except VaultError as e:
        raise _http_error(e)

    return Response(
        content=render_export(record, transcript, format),
        media_type=MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="{export_filename(record, format)}"'},
    )


@app.get("/api/tags")
async def get_tags():
    """Return every tag with its usage count, most used first."""
    counts = Counter(tag for e in _load_entries() for tag in e.tags)
    return {"tags": [{"name": name, "count": count} for name, count in counts.most_common()]}


@app.get("/api/projects")
async def get_projects():
    """Return per-project conversation counts and saved_at range."""
    projects: dict[str, dict] = {}
    for entry in _load_entries():
        stats = projects.setdefault(
            entry.project, {"count": 0, "earliest": entry.saved_at, "latest": entry.saved_at}
        )
        stats["count"] += 1
        stats["earliest"] = min(stats["earliest"], entry.saved_at, key=_sort_time)
        stats["latest"] = max(stats["latest"], entry.saved_at, key=_sort_time)

    result = [{"name": name, **stats} for name, stats in projects.items()]
    result.sort(key=lambda p: p["count"], reverse=True)
    return {"projects": result}


@app.get("/api/stats")
async def get_stats():
    """Return vault-wide totals."""
    entries = _load_entries()
    if not entries:
        return {
            "total_conversations": 0,
            "total_messages": 0,
            "date_range": None,
            "projects_count": 0,
            "tags_count": 0,
        }

    dates = sorted((e.saved_at for e in entries), key=_sort_time)
    return {
        "total_conversations": len(entries),
        "total_messages": sum(e.message_count for e in entries),
        "date_range": {"earliest": dates[0], "latest": dates[-1]},
        "projects_count": len({e.project for e in entries}),
        "tags_count": len({t for e in entries for t in e.tags}),
    }


def _sort_time(value: str):
    """Sort key for ISO timestamps; unparseable values sort first."""
    return parse_iso(value) or _EPOCH
