"""Exception types shared across the package."""

from __future__ import annotations


class GmailDomainCleanerError(Exception):
    """Base class for all errors raised by this package."""


class RemoteCallError(GmailDomainCleanerError):
    """A call to the mail provider failed (network, auth, not found, throttling)."""

    def __init__(self, message: str, message_id: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.message_id = message_id
        self.status = status


class FieldNotFoundError(RemoteCallError):
    """The provider rejected a requested field (e.g. the size property) for this schema."""


class CacheError(GmailDomainCleanerError):
    """Base class for persisted index problems."""


class CacheCorruptionError(CacheError):
    """The persisted index failed structural validation."""


class CacheIOError(CacheError):
    """The persisted index could not be read or written."""
