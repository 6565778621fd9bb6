"""Tests for index building."""

import pytest
from helpers import FakeRemote, make_message

from gmail_domain_cleaner.constants import SENTINEL_DOMAIN
from gmail_domain_cleaner.errors import FieldNotFoundError, RemoteCallError
from gmail_domain_cleaner.gmail_client import SizeSource
from gmail_domain_cleaner.scanner import ProgressThrottle, build_full_index, resolve_fetch_plan


def _mailbox(n: int) -> list:
    return [make_message(f"m{i}", f"user@d{i % 3}.com", days_ago=i) for i in range(n)]


def test_build_groups_by_domain(fake_remote):
    index = build_full_index(fake_remote)
    assert [(key, bucket.count) for key, bucket in index.snapshot()] == [("foo.com", 3), ("bar.com", 1)]
    assert fake_remote.list_calls[0]["top"] is None
    assert fake_remote.list_calls[0]["newest_first"] is False


def test_limit_requests_newest_first():
    remote = FakeRemote(_mailbox(10))
    index = build_full_index(remote, limit=4)
    assert remote.list_calls[0]["top"] == 4
    assert remote.list_calls[0]["newest_first"] is True
    assert sorted(m.id for _, b in index.snapshot() for m in b.messages) == ["m0", "m1", "m2", "m3"]


def test_test_mode_defaults_to_sample():
    remote = FakeRemote(_mailbox(150))
    index = build_full_index(remote, test_mode=True)
    assert remote.list_calls[0]["top"] == 100
    assert index.message_count == 100


def test_limit_wins_over_test_mode():
    assert resolve_fetch_plan(7, True, False, 100) == (7, True)
    assert resolve_fetch_plan(0, True, False, 25) == (25, True)
    assert resolve_fetch_plan(0, False, True, 100) == (None, True)
    assert resolve_fetch_plan(0, False, False, 100) == (None, False)


def test_missing_domain_goes_to_sentinel():
    remote = FakeRemote([make_message("m1", "postmaster"), make_message("m2", "")])
    index = build_full_index(remote)
    assert [key for key, _ in index.snapshot()] == [SENTINEL_DOMAIN]


def test_size_field_falls_back_to_extended():
    remote = FakeRemote(_mailbox(3), field_errors={SizeSource.PRIMARY})
    index = build_full_index(remote)
    assert [c["size_source"] for c in remote.list_calls] == [SizeSource.PRIMARY, SizeSource.EXTENDED]
    assert all(m.size_bytes == 1024 for _, b in index.snapshot() for m in b.messages)


def test_size_left_unset_when_no_representation_works():
    remote = FakeRemote(_mailbox(3), field_errors={SizeSource.PRIMARY, SizeSource.EXTENDED})
    index = build_full_index(remote)
    assert [c["size_source"] for c in remote.list_calls] == [
        SizeSource.PRIMARY,
        SizeSource.EXTENDED,
        SizeSource.NONE,
    ]
    assert index.message_count == 3
    assert all(m.size_bytes is None for _, b in index.snapshot() for m in b.messages)


def test_field_not_found_on_last_tier_propagates():
    remote = FakeRemote(_mailbox(1), field_errors=set(SizeSource))
    with pytest.raises(FieldNotFoundError):
        build_full_index(remote)


def test_other_errors_are_not_retried():
    remote = FakeRemote(_mailbox(3), list_error=RemoteCallError("HTTP 401: unauthorized", status=401))
    with pytest.raises(RemoteCallError):
        build_full_index(remote)
    assert len(remote.list_calls) == 1


def test_progress_reported_about_every_five_percent():
    calls = []
    remote = FakeRemote(_mailbox(200))
    build_full_index(remote, progress=lambda done, total: calls.append((done, total)))
    assert len(calls) == 20
    assert calls[0] == (10, 200)
    assert calls[-1] == (200, 200)


def test_progress_throttle_small_totals():
    calls = []
    throttle = ProgressThrottle(3, lambda done, total: calls.append(done))
    for i in range(1, 4):
        throttle.update(i)
    assert calls == [1, 2, 3]

    calls.clear()
    throttle = ProgressThrottle(30, lambda done, total: calls.append(done))
    for i in range(1, 31):
        throttle.update(i)
    assert calls == [2, 4, 6, 8, 10, 12, 14, 16, 18, 20, 22, 24, 26, 28, 30]


def test_empty_mailbox():
    index = build_full_index(FakeRemote([]))
    assert len(index) == 0
    assert index.snapshot() == []


def test_fetch_progress_reported_about_every_five_percent():
    class PerMessageRemote(FakeRemote):
        def list_messages(self, progress=None, **kwargs):
            records = super().list_messages(**kwargs)
            for done in range(1, len(records) + 1):
                progress(done, len(records))
            return records

    calls = []
    build_full_index(PerMessageRemote(_mailbox(200)), fetch_progress=lambda done, total: calls.append(done))
    assert len(calls) == 20
    assert calls[-1] == 200


def test_fetch_progress_restarts_after_size_fallback():
    calls = []
    remote = FakeRemote(_mailbox(3), field_errors={SizeSource.PRIMARY})
    build_full_index(remote, fetch_progress=lambda done, total: calls.append((done, total)))
    assert calls == [(3, 3)]
