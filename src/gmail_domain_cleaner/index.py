"""In-memory index of messages grouped by sender domain."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from types import MappingProxyType
from typing import Mapping

from .constants import RESERVED_DOMAIN_KEYS, SENTINEL_DOMAIN
from .models import DomainBucket, IndexMetadata, MessageRecord

logger = logging.getLogger(__name__)


def normalize_domain_key(domain_key: str | None) -> str:
    """Lowercase a domain key; blank or missing keys map to the sentinel."""
    if domain_key is None:
        return SENTINEL_DOMAIN
    key = domain_key.strip().lower()
    return key or SENTINEL_DOMAIN


class SenderIndex:
    """Mapping of domain key to DomainBucket.

    Invariants kept by every mutating method:
      - each bucket's ``count`` equals ``len(bucket.messages)``
      - no bucket is ever left empty
      - reserved live-view keys never get a bucket
    """

    def __init__(self, metadata: IndexMetadata | None = None) -> None:
        self._buckets: dict[str, DomainBucket] = {}
        self.metadata = metadata or IndexMetadata()

    # --- mutation ---

    def upsert(self, domain_key: str | None, message: MessageRecord) -> bool:
        """Append a message to its domain bucket, creating the bucket if needed."""
        key = normalize_domain_key(domain_key)
        if key in RESERVED_DOMAIN_KEYS:
            logger.warning("Refusing to index message %s under reserved key %r", message.id, key)
            return False

        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = DomainBucket(domain_key=key)
            self._buckets[key] = bucket
        bucket.messages.append(message)
        bucket.recount()
        return True

    def add_messages(self, messages: Iterable[MessageRecord]) -> int:
        """Upsert every message under its own sender domain. Returns how many were added."""
        return sum(1 for m in messages if self.upsert(m.domain_key, m))

    def remove_message(self, domain_key: str | None, message_id: str) -> bool:
        """Remove one message by id. Missing domain or id is logged and ignored."""
        key = normalize_domain_key(domain_key)
        if key in RESERVED_DOMAIN_KEYS:
            logger.warning("Ignoring removal of %s from reserved key %r", message_id, key)
            return False

        bucket = self._buckets.get(key)
        if bucket is None:
            logger.warning("Domain %r not in index; cannot remove message %s", key, message_id)
            return False

        remaining = [m for m in bucket.messages if m.id != message_id]
        if len(remaining) == len(bucket.messages):
            logger.warning("Message %s not found under domain %r", message_id, key)
            return False

        bucket.messages = remaining
        bucket.recount()
        if bucket.count == 0:
            del self._buckets[key]
            logger.debug("Domain %r is now empty and was removed", key)
        return True

    def remove_domain(self, domain_key: str | None) -> bool:
        key = normalize_domain_key(domain_key)
        if key in RESERVED_DOMAIN_KEYS:
            logger.warning("Ignoring removal of reserved key %r", key)
            return False
        if self._buckets.pop(key, None) is None:
            logger.warning("Domain %r not in index; nothing to remove", key)
            return False
        return True

    def put_bucket(self, bucket: DomainBucket) -> None:
        """Install a whole bucket (used when hydrating from disk). Empty buckets are dropped."""
        key = normalize_domain_key(bucket.domain_key)
        if key in RESERVED_DOMAIN_KEYS:
            logger.warning("Dropping persisted bucket under reserved key %r", key)
            return
        bucket.domain_key = key
        bucket.recount()
        if bucket.count == 0:
            logger.debug("Dropping empty persisted bucket %r", key)
            return
        existing = self._buckets.get(key)
        if existing is not None:
            existing.messages.extend(bucket.messages)
            existing.recount()
        else:
            self._buckets[key] = bucket

    # --- queries ---

    def get(self, domain_key: str | None) -> DomainBucket | None:
        return self._buckets.get(normalize_domain_key(domain_key))

    def snapshot(self) -> list[tuple[str, DomainBucket]]:
        """Copies of the buckets, ordered by count descending, then domain key ascending.

        Mutating the returned buckets does not touch the index.
        """
        ordered = sorted(self._buckets.items(), key=lambda kv: (-kv[1].count, kv[0]))
        return [(key, DomainBucket(key, list(bucket.messages), bucket.count)) for key, bucket in ordered]

    def messages_for(self, domain_key: str | None) -> list[MessageRecord]:
        """Messages of one domain, newest first. Empty when the domain is absent."""
        bucket = self.get(domain_key)
        return bucket.newest_first() if bucket else []

    @property
    def buckets(self) -> Mapping[str, DomainBucket]:
        return MappingProxyType(self._buckets)

    @property
    def domain_count(self) -> int:
        return len(self._buckets)

    @property
    def message_count(self) -> int:
        return sum(b.count for b in self._buckets.values())

    def __contains__(self, domain_key: object) -> bool:
        return isinstance(domain_key, str) and normalize_domain_key(domain_key) in self._buckets

    def __len__(self) -> int:
        return len(self._buckets)
