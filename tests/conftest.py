"""Shared fixtures for tests."""

from __future__ import annotations

import pytest
from helpers import FakeRemote, make_message

from gmail_domain_cleaner.index import SenderIndex
from gmail_domain_cleaner.models import MessageRecord


@pytest.fixture
def foo_bar_messages() -> list[MessageRecord]:
    return [
        make_message("f1", "news@foo.com", days_ago=3),
        make_message("f2", "Deals@FOO.com", days_ago=1),
        make_message("f3", "news@foo.com", days_ago=2),
        make_message("b1", "alice@bar.com", days_ago=5),
    ]


@pytest.fixture
def foo_bar_index(foo_bar_messages: list[MessageRecord]) -> SenderIndex:
    index = SenderIndex()
    index.add_messages(foo_bar_messages)
    return index


@pytest.fixture
def fake_remote(foo_bar_messages: list[MessageRecord]) -> FakeRemote:
    return FakeRemote(foo_bar_messages)


@pytest.fixture
def gdc_home(tmp_path, monkeypatch):
    """Point every configurable path at a temporary directory."""
    monkeypatch.setenv("GDC_HOME", str(tmp_path))
    for name in ("GDC_CACHE_DIR", "GDC_LOG_DIR", "GDC_DOWNLOAD_DIR", "GDC_CREDENTIALS_PATH", "GDC_TOKEN_DIR"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path
