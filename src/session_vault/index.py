"""Rebuildable listing cache over all saved conversations.

The per-conversation ``.meta.json`` files are authoritative; ``index.json``
is a cache of their display fields. Any missing, unreadable or structurally
invalid cache is replaced by a rebuild from the metadata files.

There is no locking around the read-modify-write in add()/remove(); two
processes writing at once can lose an update until the next rebuild.
"""

import json
import logging

from .core import INDEX_VERSION, ConversationRecord, IndexEntry, VaultIndex, saved_at_key
from .vault import Vault

logger = logging.getLogger(__name__)

INDEX_KEY = "index.json"


def decode_index(raw: str) -> VaultIndex:
    """Decode a cache document. Raises ValueError if it is not a valid index."""
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("index is not a JSON object")
    version = data.get("version")
    if type(version) is not int or version != INDEX_VERSION:
        raise ValueError(f"unsupported index version {version!r}")
    entries = data.get("entries")
    if not isinstance(entries, list):
        raise ValueError("index entries is not a list")
    try:
        return VaultIndex(entries=[IndexEntry.from_dict(e) for e in entries])
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid index entry: {e}") from e


def sort_entries(entries: list[IndexEntry]) -> list[IndexEntry]:
    """Return entries ordered by saved_at, newest first."""
    return sorted(entries, key=saved_at_key, reverse=True)


class IndexCache:
    """Loads, rebuilds and updates ``<vault>/index.json``."""

    def __init__(self, vault: Vault):
        self.vault = vault
        self.store = vault.store

    def load(self) -> VaultIndex:
        """Return the cached index, rebuilding it first if it is unusable."""
        try:
            raw = self.store.get(INDEX_KEY)
        except KeyError:
            logger.info("No index found; rebuilding")
            return self.rebuild()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read index: %s; rebuilding", e)
            return self.rebuild()

        try:
            return decode_index(raw)
        except (ValueError, RecursionError) as e:
            logger.warning("Invalid index: %s; rebuilding", e)
            return self.rebuild()

    def save(self, index: VaultIndex) -> None:
        self.store.put(INDEX_KEY, json.dumps(index.to_dict(), indent=2, ensure_ascii=False))

    def rebuild(self) -> VaultIndex:
        """Regenerate the index from every readable metadata file."""
        entries = [IndexEntry.from_record(r) for r in self.vault.iter_records()]
        index = VaultIndex(entries=sort_entries(entries))
        self.save(index)
        logger.info("Rebuilt index with %d entries", len(index.entries))
        return index

    def add(self, record: ConversationRecord | IndexEntry) -> None:
        """Append an entry for a newly saved conversation."""
        entry = record if isinstance(record, IndexEntry) else IndexEntry.from_record(record)
        index = self.load()
        # load() may have rebuilt from disk, which already picked up this record.
        if any(e.id == entry.id for e in index.entries):
            return
        index.entries.append(entry)
        self.save(index)

    def remove(self, conversation_id: str) -> bool:
        """Drop the entry with this id. Returns True if one was removed."""
        index = self.load()
        remaining = [e for e in index.entries if e.id != conversation_id]
        if len(remaining) == len(index.entries):
            return False
        index.entries = remaining
        self.save(index)
        return True

    def find(self, conversation_id: str) -> IndexEntry | None:
        """Exact-id lookup. See resolver.resolve_entry for prefix matching."""
        return next((e for e in self.load().entries if e.id == conversation_id), None)
