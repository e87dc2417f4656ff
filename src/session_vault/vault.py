"""Append-only conversation storage.

Layout::

    <vault>/projects/<slug of project path>/<YYYY-MM-DD>_<8 hex>.md
    <vault>/projects/<slug of project path>/<YYYY-MM-DD>_<8 hex>.meta.json

Files are only ever created or deleted, never rewritten.
"""

import json
import logging
import uuid
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime, timezone
from pathlib import Path

from .core import ConversationRecord
from .errors import ConversationNotFound, CorruptRecord, InvalidRequest
from .slug import path_to_slug, project_name
from .store import FileStore, KeyedStore, join_key

logger = logging.getLogger(__name__)

PROJECTS_DIR = "projects"
TRANSCRIPT_SUFFIX = ".md"
METADATA_SUFFIX = ".meta.json"
SOURCES = ("manual", "auto")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def project_key(project_path: str) -> str:
    """Return the store prefix holding a project's files."""
    return join_key(PROJECTS_DIR, path_to_slug(project_path) or "unknown")


class Vault:
    """Saves, reads and deletes conversation file pairs."""

    def __init__(self, vault_dir: Path, store: KeyedStore | None = None):
        self.vault_dir = Path(vault_dir)
        self.store = store if store is not None else FileStore(self.vault_dir)

    def _new_prefix(self, project_prefix: str) -> str:
        date = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        existing = set(self.store.list(project_prefix))
        while True:
            prefix = f"{date}_{uuid.uuid4().hex[:8]}"
            if join_key(project_prefix, prefix + METADATA_SUFFIX) not in existing:
                return prefix

    def save_transcript(
        self,
        markdown: str,
        project_path: str,
        summary: str,
        message_count: int,
        session_id: str = "unknown",
        created_at: str | None = None,
        git_branch: str | None = None,
        git_commit: str | None = None,
        tags: Iterable[str] = (),
        note: str = "",
        source: str = "manual",
    ) -> ConversationRecord:
        """Write a new transcript and its metadata; return the record."""
        if source not in SOURCES:
            raise InvalidRequest(f"Unknown source {source!r}; expected one of {', '.join(SOURCES)}")

        prefix_key = project_key(project_path)
        prefix = self._new_prefix(prefix_key)
        now = utc_now_iso()

        record = ConversationRecord(
            id=str(uuid.uuid4()),
            project=project_name(project_path),
            project_path=project_path,
            session_id=session_id or "unknown",
            created_at=created_at or now,
            saved_at=now,
            git_branch=git_branch,
            git_commit=git_commit,
            tags=list(dict.fromkeys(tags)),
            note=note,
            summary=summary,
            message_count=message_count,
            source=source,
            transcript_file=prefix + TRANSCRIPT_SUFFIX,
            metadata_file=prefix + METADATA_SUFFIX,
        )

        self.store.put(join_key(prefix_key, record.transcript_file), markdown)
        self.store.put(
            join_key(prefix_key, record.metadata_file),
            json.dumps(record.to_dict(), indent=2, ensure_ascii=False),
        )
        logger.info("Saved conversation %s to %s", record.id, prefix_key)
        return record

    def read_transcript(self, project_path: str, transcript_file: str) -> str:
        key = join_key(project_key(project_path), transcript_file)
        try:
            return self.store.get(key)
        except KeyError:
            raise ConversationNotFound(f"Transcript file not found: {key}") from None
        except UnicodeDecodeError as e:
            raise CorruptRecord(f"Transcript file is not valid UTF-8: {key} ({e})") from e

    def read_metadata(self, project_path: str, metadata_file: str) -> ConversationRecord:
        key = join_key(project_key(project_path), metadata_file)
        try:
            raw = self.store.get(key)
        except KeyError:
            raise ConversationNotFound(f"Metadata file not found: {key}") from None
        except UnicodeDecodeError as e:
            raise CorruptRecord(f"Metadata file is not valid UTF-8: {key} ({e})") from e
        try:
            return ConversationRecord.from_dict(json.loads(raw))
        except (TypeError, ValueError, RecursionError) as e:
            raise CorruptRecord(f"Metadata file is corrupt: {key} ({e})") from e

    def delete_entry(self, project_path: str, transcript_file: str, metadata_file: str) -> None:
        """Remove both files of a conversation. Missing files are ignored."""
        prefix_key = project_key(project_path)
        self.store.delete(join_key(prefix_key, transcript_file))
        self.store.delete(join_key(prefix_key, metadata_file))
        logger.info("Deleted %s and %s from %s", transcript_file, metadata_file, prefix_key)

    def iter_records(
        self,
        on_error: Callable[[str, Exception], None] | None = None,
    ) -> Iterator[ConversationRecord]:
        """Yield every readable metadata record in the vault.

        Only files directly inside a project directory count. Unreadable or
        malformed files are skipped and reported to on_error.
        """
        for key in self.store.list(PROJECTS_DIR, suffix=METADATA_SUFFIX):
            if len(key.split("/")) != 3:
                logger.debug("Ignoring metadata outside a project directory: %s", key)
                continue
            try:
                record = ConversationRecord.from_dict(json.loads(self.store.get(key)))
            except (KeyError, OSError, TypeError, ValueError, RecursionError) as e:
                logger.warning("Skipping unreadable metadata %s: %s", key, e)
                if on_error is not None:
                    on_error(key, e)
                continue
            yield record
