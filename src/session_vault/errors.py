"""Exceptions raised by session-vault operations."""


class VaultError(Exception):
    """Base class for failures an operation reports to its caller.

    ``kind`` is a short machine-readable failure category; ``str(err)`` is the
    human-readable message.
    """

    kind = "error"

    def __init__(self, message: str, kind: str | None = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class TranscriptTooLarge(VaultError):
    """The transcript file is over the configured size ceiling."""

    kind = "too_large"

    def __init__(self, size_mb: float, limit_mb: float):
        self.size_mb = size_mb
        self.limit_mb = limit_mb
        super().__init__(
            f"Transcript is {size_mb:.1f} MB, which exceeds the {limit_mb:g} MB limit"
        )


class ConversationNotFound(VaultError):
    """No single stored conversation matches the request."""

    kind = "not_found"


class InvalidRequest(VaultError):
    """The caller supplied an argument the operation cannot act on."""

    kind = "invalid_input"


class CorruptRecord(VaultError):
    """A stored conversation file exists but cannot be decoded."""

    kind = "corrupt"
