"""Index building - fetches message metadata and groups it by sender domain."""

from __future__ import annotations

import logging
import math

from .constants import DEFAULT_TEST_SAMPLE_SIZE, PROGRESS_STEP_PERCENT
from .errors import FieldNotFoundError
from .gmail_client import MailRemote, ProgressCallback, SizeSource
from .index import SenderIndex
from .models import MessageRecord

logger = logging.getLogger(__name__)

# Order in which size representations are tried
SIZE_FALLBACK_ORDER = (SizeSource.PRIMARY, SizeSource.EXTENDED, SizeSource.NONE)


class ProgressThrottle:
    """Forward (processed, total) to a callback roughly every `step_percent` of total."""

    def __init__(self, total: int, callback: ProgressCallback | None, step_percent: int = PROGRESS_STEP_PERCENT) -> None:
        self.total = total
        self.callback = callback
        self.step = max(1, math.ceil(total * step_percent / 100))
        self._last_reported = 0

    def update(self, processed: int) -> None:
        if self.callback is None:
            return
        if processed - self._last_reported >= self.step or (processed == self.total and processed != self._last_reported):
            self._last_reported = processed
            self.callback(processed, self.total)


def throttled(callback: ProgressCallback | None, step_percent: int = PROGRESS_STEP_PERCENT) -> ProgressCallback | None:
    """Wrap a (processed, total) callback so it fires about every `step_percent` of total."""
    if callback is None:
        return None
    throttle: ProgressThrottle | None = None

    def report(processed: int, total: int) -> None:
        nonlocal throttle
        if throttle is None or throttle.total != total:
            throttle = ProgressThrottle(total, callback, step_percent)
        throttle.update(processed)

    return report


def fetch_with_size_fallback(
    remote: MailRemote,
    top: int | None,
    newest_first: bool,
    fetch_progress: ProgressCallback | None = None,
) -> tuple[list[MessageRecord], SizeSource]:
    """Fetch message metadata, stepping down the size representations on field-not-found.

    Only FieldNotFoundError triggers the next representation; every other
    error propagates to the caller, as does a field error on the last one.
    """

    def fetch(size_source: SizeSource) -> list[MessageRecord]:
        return remote.list_messages(
            top=top,
            newest_first=newest_first,
            size_source=size_source,
            progress=throttled(fetch_progress),
        )

    *fallbacks, last = SIZE_FALLBACK_ORDER
    for size_source in fallbacks:
        try:
            return fetch(size_source), size_source
        except FieldNotFoundError as exc:
            logger.warning("Size field unavailable with %s representation (%s); retrying", size_source.value, exc)

    records = fetch(last)
    logger.warning("Message sizes are unavailable for this run")
    return records, last


def resolve_fetch_plan(limit: int, test_mode: bool, sort_newest_first: bool, test_sample_size: int) -> tuple[int | None, bool]:
    """Return (top, newest_first) for a full build."""
    if limit > 0:
        return limit, True
    if test_mode:
        return test_sample_size, True
    return None, sort_newest_first


def build_full_index(
    remote: MailRemote,
    limit: int = 0,
    sort_newest_first: bool = False,
    test_mode: bool = False,
    test_sample_size: int = DEFAULT_TEST_SAMPLE_SIZE,
    progress: ProgressCallback | None = None,
    fetch_progress: ProgressCallback | None = None,
) -> SenderIndex:
    """Build a fresh SenderIndex from the mailbox.

    `limit > 0` indexes only the newest `limit` messages; `test_mode` without a
    limit indexes the newest `test_sample_size`; otherwise the whole mailbox.
    `progress` receives (processed, total) about every 5% while grouping and
    `fetch_progress` gets the same cadence while the remote fetches. The caller
    persists the result.
    """
    top, newest_first = resolve_fetch_plan(limit, test_mode, sort_newest_first, test_sample_size)
    logger.info("Building index (top=%s, newest_first=%s)", top or "all", newest_first)

    records, size_source = fetch_with_size_fallback(remote, top, newest_first, fetch_progress)

    index = SenderIndex()
    throttle = ProgressThrottle(len(records), progress)
    for processed, record in enumerate(records, start=1):
        index.upsert(record.domain_key, record)
        throttle.update(processed)

    logger.info(
        "Indexed %d messages across %d domains (size source: %s)",
        index.message_count,
        index.domain_count,
        size_source.value,
    )
    return index
