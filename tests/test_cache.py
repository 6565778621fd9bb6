"""Tests for the JSON index cache."""

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest
from helpers import make_message

from gmail_domain_cleaner.cache import IndexCache
from gmail_domain_cleaner.config import Settings
from gmail_domain_cleaner.constants import SCHEMA_VERSION
from gmail_domain_cleaner.errors import CacheIOError
from gmail_domain_cleaner.index import SenderIndex


def _shape(index: SenderIndex) -> list[tuple[str, int, list[str]]]:
    return [(key, bucket.count, sorted(m.id for m in bucket.messages)) for key, bucket in index.snapshot()]


def _legacy_document() -> dict:
    return {
        "foo.com": {
            "Name": "foo.com",
            "Count": 2,
            "Messages": [
                {"MessageId": "f1", "Subject": "Hi", "ReceivedDateTime": "2024-05-01T10:00:00Z",
                 "SenderName": "Foo", "SenderEmailAddress": "news@foo.com", "Size": 100,
                 "HasAttachments": False, "ToRecipients": ["me@example.com"], "Categories": []},
                {"MessageId": "f2", "Subject": "Again", "ReceivedDateTime": None,
                 "SenderName": "Foo", "SenderEmailAddress": "news@foo.com", "Size": None,
                 "HasAttachments": True, "ToRecipients": [], "Categories": ["Blue"]},
            ],
        }
    }


def test_save_and_load_round_trip(tmp_path, foo_bar_index):
    cache = IndexCache(tmp_path / "me.json")
    cache.save(foo_bar_index)
    loaded = cache.load()

    assert loaded is not None
    assert _shape(loaded) == _shape(foo_bar_index)
    original = {m.id: m for m in foo_bar_index.get("foo.com").messages}
    for message in loaded.get("foo.com").messages:
        assert message == original[message.id]


def test_saved_document_layout(tmp_path, foo_bar_index):
    path = tmp_path / "me.json"
    IndexCache(path).save(foo_bar_index)
    document = json.loads(path.read_text())

    meta = document["Metadata"]
    assert meta["Version"] == SCHEMA_VERSION
    assert meta["MessageCount"] == 4
    assert meta["DomainCount"] == 2
    assert meta["IsValid"] is True
    assert list(document["Data"]) == ["foo.com", "bar.com"]
    bucket = document["Data"]["bar.com"]
    assert bucket["Name"] == "bar.com"
    assert bucket["Count"] == 1
    assert bucket["Messages"][0]["MessageId"] == "b1"
    assert bucket["Messages"][0]["SenderEmailAddress"] == "alice@bar.com"


def test_created_is_preserved_and_last_updated_advances(tmp_path, foo_bar_index):
    cache = IndexCache(tmp_path / "me.json")
    cache.save(foo_bar_index)
    first = cache.load()
    created = first.metadata.created

    first.metadata.last_updated = datetime(2020, 1, 1, tzinfo=timezone.utc)
    cache.save(first)
    second = cache.load()

    assert second.metadata.created == created
    assert second.metadata.last_updated > datetime(2020, 1, 1, tzinfo=timezone.utc)


def test_legacy_layout_loads(tmp_path):
    path = tmp_path / "legacy.json"
    path.write_text(json.dumps(_legacy_document()))
    cache = IndexCache(path)

    legacy = cache.load()
    assert legacy is not None
    assert legacy.metadata.created is None
    assert _shape(legacy) == [("foo.com", 2, ["f1", "f2"])]
    undated = [m for m in legacy.get("foo.com").messages if m.id == "f2"][0]
    assert undated.received_at is None
    assert undated.size_bytes is None
    assert undated.categories == ("Blue",)

    # Same data wrapped in a metadata block reads identically
    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(json.dumps({"Metadata": {"Version": "1.0"}, "Data": _legacy_document()}))
    assert _shape(IndexCache(wrapped).load()) == _shape(legacy)

    # The next save writes a metadata block
    cache.save(legacy)
    assert "Metadata" in json.loads(path.read_text())
    assert cache.load().metadata.created is not None


def test_count_mismatch_is_fixed(tmp_path, caplog):
    document = _legacy_document()
    document["foo.com"]["Count"] = 9
    path = tmp_path / "bad_count.json"
    path.write_text(json.dumps(document))

    with caplog.at_level(logging.WARNING):
        loaded = IndexCache(path).load()
    assert loaded.get("foo.com").count == 2
    assert "recounting" in caplog.text


@pytest.mark.parametrize(
    "mutate",
    [
        lambda d: d["foo.com"].pop("Messages"),
        lambda d: d["foo.com"].pop("Name"),
        lambda d: d["foo.com"]["Messages"][0].update(MessageId=""),
        lambda d: d["foo.com"]["Messages"][0].update(MessageId=42),
        lambda d: d["foo.com"].update(Messages="nope"),
    ],
)
def test_structurally_invalid_cache_is_discarded(tmp_path, mutate, caplog):
    document = _legacy_document()
    mutate(document)
    path = tmp_path / "broken.json"
    path.write_text(json.dumps(document))

    with caplog.at_level(logging.WARNING):
        assert IndexCache(path).load() is None
    assert "Discarding index cache" in caplog.text


def test_unparseable_cache_is_discarded(tmp_path):
    path = tmp_path / "garbage.json"
    path.write_text("{not json")
    assert IndexCache(path).load() is None

    path.write_text(json.dumps(["a", "list"]))
    assert IndexCache(path).load() is None

    path.write_text(json.dumps({"Metadata": {}, "Data": []}))
    assert IndexCache(path).load() is None


def test_missing_cache_returns_none(tmp_path):
    assert IndexCache(tmp_path / "nothing.json").load() is None


def test_unwritable_path_raises_cache_io_error(tmp_path, foo_bar_index):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("file in the way")
    with pytest.raises(CacheIOError):
        IndexCache(blocker / "me.json").save(foo_bar_index)


def test_compute_age(tmp_path, foo_bar_index):
    cache = IndexCache(tmp_path / "me.json")
    assert cache.compute_age(foo_bar_index) is None

    foo_bar_index.metadata.last_updated = datetime.now(timezone.utc) - timedelta(hours=3)
    age = cache.compute_age(foo_bar_index)
    assert timedelta(hours=2, minutes=59) < age < timedelta(hours=3, minutes=1)


def test_clear_and_get_info(tmp_path, foo_bar_index):
    cache = IndexCache(tmp_path / "me.json")
    assert cache.get_info()["domain_count"] == 0
    assert cache.clear() is False

    cache.save(foo_bar_index)
    info = cache.get_info()
    assert info["domain_count"] == 2
    assert info["message_count"] == 4
    assert info["file_size"] > 0
    assert info["last_updated"] is not None

    assert cache.clear() is True
    assert cache.load() is None


def test_cache_path_is_sanitized(tmp_path, monkeypatch):
    monkeypatch.setenv("GDC_HOME", str(tmp_path))
    monkeypatch.delenv("GDC_CACHE_DIR", raising=False)
    settings = Settings.load()
    path = settings.cache_path("John.Doe+news@example.com")
    assert path.parent == tmp_path / "cache"
    assert path.name == "John.Doe_news_example.com.json"


def test_undated_and_unsized_messages_survive(tmp_path):
    index = SenderIndex()
    index.upsert("foo.com", make_message("m1", received_at=None, size_bytes=None))
    cache = IndexCache(tmp_path / "me.json")
    cache.save(index)
    message = cache.load().get("foo.com").messages[0]
    assert message.received_at is None
    assert message.size_bytes is None
