"""Keep the index in step with the mailbox after bulk deletes and moves."""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from typing import Callable

from .cache import IndexCache
from .errors import CacheIOError, RemoteCallError
from .index import SenderIndex
from .models import BatchResult, CachedDomain, ItemError, MessageRecord, View

logger = logging.getLogger(__name__)

RemoteAction = Callable[[str], None]


class BatchPhase(enum.Enum):
    CONFIRMING = "confirming"
    EXECUTING = "executing"
    RECONCILING = "reconciling"
    REPORTED = "reported"


class ReconciliationEngine:
    """Run a per-message remote action over a batch and mirror the outcome in the index.

    Every message is attempted; a failure never stops the batch. Each success
    is removed from the index as soon as it happens, and the cache is saved
    once at the end of the batch.
    """

    def __init__(self, index: SenderIndex, cache: IndexCache | None = None) -> None:
        self.index = index
        self.cache = cache
        self.phase = BatchPhase.REPORTED

    def begin(self) -> None:
        """Start a new bulk action; the user is being asked to confirm."""
        self._enter(BatchPhase.CONFIRMING)

    def cancel(self) -> None:
        """The user backed out before anything was sent."""
        logger.info("Bulk action cancelled")
        self._enter(BatchPhase.REPORTED)

    def run(
        self,
        view: View,
        records: Sequence[MessageRecord],
        action: RemoteAction,
        whole_domain: bool = False,
        progress: Callable[[int, int], None] | None = None,
        persist: bool = True,
    ) -> BatchResult:
        """Apply `action` to every record and reconcile the index.

        `whole_domain` marks a bulk action over every message of a cached
        domain; when it fully succeeds the domain is dropped explicitly.
        With `persist=False` the caller saves once after several batches.
        """
        result = BatchResult()

        self._enter(BatchPhase.EXECUTING)
        for done, record in enumerate(records, start=1):
            try:
                action(record.id)
            except RemoteCallError as exc:
                result.failed += 1
                result.errors.append(ItemError(message_id=record.id, error=str(exc)))
                logger.warning("Remote action failed for message %s: %s", record.id, exc)
            else:
                result.succeeded += 1
                result.index_changed |= self._forget(view, record)
            if progress:
                progress(done, len(records))

        self._enter(BatchPhase.RECONCILING)
        if whole_domain and isinstance(view, CachedDomain) and records and not result.has_failures:
            # Normally the last per-message removal already dropped the bucket
            if view.key in self.index:
                result.index_changed |= self.index.remove_domain(view.key)

        if persist and result.index_changed:
            result.saved = self.save()

        self._enter(BatchPhase.REPORTED)
        if result.has_failures:
            logger.warning("Batch finished: %d succeeded, %d failed", result.succeeded, result.failed)
        else:
            logger.info("Batch finished: %d succeeded", result.succeeded)
        return result

    def save(self) -> bool:
        """Persist the index. Failures are logged; the in-memory index stays authoritative."""
        if self.cache is None:
            return False
        try:
            self.cache.save(self.index)
        except CacheIOError as exc:
            logger.warning("Index cache not saved; continuing with in-memory index: %s", exc)
            return False
        return True

    def _forget(self, view: View, record: MessageRecord) -> bool:
        if isinstance(view, CachedDomain):
            return self.index.remove_message(view.key, record.id)
        # Live views are not index-backed; drop the message from its own domain if indexed
        bucket = self.index.get(record.domain_key)
        if bucket is None or all(m.id != record.id for m in bucket.messages):
            logger.debug("Message %s from %s is not indexed", record.id, view.key)
            return False
        return self.index.remove_message(record.domain_key, record.id)

    def _enter(self, phase: BatchPhase) -> None:
        logger.debug("Batch phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase
