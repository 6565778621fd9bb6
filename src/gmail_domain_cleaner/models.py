"""Data models for Gmail Domain Cleaner."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union

from .constants import LIVE_RECENT_KEY, LIVE_SEARCH_KEY, SCHEMA_VERSION, SENTINEL_DOMAIN


def domain_from_address(address: str | None) -> str:
    """Lowercased part after the last "@" of a bare address, or the sentinel."""
    if not address or "@" not in address:
        return SENTINEL_DOMAIN
    domain = address.rsplit("@", 1)[1].strip().strip(">").lower()
    return domain or SENTINEL_DOMAIN


@dataclass(frozen=True)
class MessageRecord:
    """Metadata for one indexed message, normalized once at ingestion."""

    id: str
    subject: str = ""
    received_at: datetime | None = None
    sender_name: str = ""
    sender_address: str = ""
    size_bytes: int | None = None
    has_attachments: bool = False
    recipients: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    snippet: str = ""

    @property
    def domain_key(self) -> str:
        return domain_from_address(self.sender_address)

    @property
    def sort_key(self) -> datetime:
        # Messages without a date sort last in newest-first order
        return self.received_at or datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class DomainBucket:
    """Messages grouped under one sender domain, with a denormalized count."""

    domain_key: str
    messages: list[MessageRecord] = field(default_factory=list)
    count: int = 0

    def recount(self) -> None:
        self.count = len(self.messages)

    def newest_first(self) -> list[MessageRecord]:
        return sorted(self.messages, key=lambda m: m.sort_key, reverse=True)

    @property
    def total_size(self) -> int | None:
        sizes = [m.size_bytes for m in self.messages if m.size_bytes is not None]
        return sum(sizes) if sizes else None


@dataclass
class IndexMetadata:
    """Metadata block persisted alongside the index data."""

    version: str = SCHEMA_VERSION
    created: datetime | None = None
    last_updated: datetime | None = None
    is_valid: bool = True


# --- Views -------------------------------------------------------------------


@dataclass(frozen=True)
class CachedDomain:
    """A message list backed by one bucket of the index."""

    key: str

    @property
    def title(self) -> str:
        return self.key


@dataclass(frozen=True)
class LiveSearchView:
    """Search results fetched straight from the mailbox; not index-backed."""

    query: str
    key = LIVE_SEARCH_KEY

    @property
    def title(self) -> str:
        return f"Search: {self.query}"


@dataclass(frozen=True)
class LiveRecentView:
    """Most recent messages fetched straight from the mailbox; not index-backed."""

    key = LIVE_RECENT_KEY

    @property
    def title(self) -> str:
        return "Recent messages"


View = Union[CachedDomain, LiveSearchView, LiveRecentView]


# --- Remote shapes -----------------------------------------------------------


@dataclass(frozen=True)
class Folder:
    id: str
    display_name: str
    parent_id: str | None = None
    path: str = ""


@dataclass(frozen=True)
class AttachmentInfo:
    id: str
    name: str
    size: int
    content_type: str


# --- Results -----------------------------------------------------------------


@dataclass
class ItemError:
    message_id: str
    error: str


@dataclass
class BatchResult:
    """Outcome of a bulk remote action: both counts are always reported."""

    succeeded: int = 0
    failed: int = 0
    errors: list[ItemError] = field(default_factory=list)
    index_changed: bool = False
    saved: bool = False

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    def merge(self, other: BatchResult) -> None:
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.errors.extend(other.errors)
        self.index_changed |= other.index_changed
        self.saved |= other.saved

    def summary(self, verb: str) -> str:
        if self.has_failures:
            return f"{verb} {self.succeeded} of {self.total} messages; {self.failed} failed."
        return f"{verb} {self.succeeded} messages."
