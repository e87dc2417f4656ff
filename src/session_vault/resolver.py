"""Resolve a full or abbreviated conversation id to one index entry."""

from collections.abc import Iterable

from .core import IndexEntry
from .errors import ConversationNotFound
from .index import IndexCache

# Shortest prefix accepted for abbreviated ids.
MIN_PREFIX_LENGTH = 4


def prefix_matches(entries: Iterable[IndexEntry], candidate: str) -> list[IndexEntry]:
    return [e for e in entries if e.id.startswith(candidate)]


def resolve_entry(
    entries: Iterable[IndexEntry],
    candidate: str,
    min_length: int = MIN_PREFIX_LENGTH,
) -> IndexEntry | None:
    """Return the entry identified by candidate, or None.

    An exact id match wins over any prefix match. Otherwise candidate must be
    at least min_length characters and a prefix of exactly one id.
    """
    entries = list(entries)
    for entry in entries:
        if entry.id == candidate:
            return entry

    if len(candidate) < min_length:
        return None

    matches = prefix_matches(entries, candidate)
    return matches[0] if len(matches) == 1 else None


def require_entry(cache: IndexCache, candidate: str, min_length: int = MIN_PREFIX_LENGTH) -> IndexEntry:
    """Resolve candidate against the index, raising ConversationNotFound.

    The error message says why resolution failed (unknown, too short or
    ambiguous).
    """
    candidate = candidate.strip()
    entries = cache.load().entries
    entry = resolve_entry(entries, candidate, min_length)
    if entry is not None:
        return entry

    if len(candidate) < min_length:
        raise ConversationNotFound(
            f"Conversation not found: {candidate!r} (ids must be at least {min_length} characters)"
        )
    matches = prefix_matches(entries, candidate)
    if len(matches) > 1:
        ids = ", ".join(e.id for e in matches[:5])
        raise ConversationNotFound(
            f"Ambiguous id {candidate!r} matches {len(matches)} conversations: {ids}",
            kind="ambiguous",
        )
    raise ConversationNotFound(f"Conversation not found: {candidate}")
