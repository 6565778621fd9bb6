"""JSON file cache for the sender-domain index."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from .constants import SCHEMA_VERSION
from .errors import CacheCorruptionError, CacheIOError
from .index import SenderIndex
from .models import DomainBucket, IndexMetadata, MessageRecord

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _string_list(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v) for v in value if v is not None)


def message_to_dict(message: MessageRecord) -> dict[str, Any]:
    return {
        "MessageId": message.id,
        "Subject": message.subject,
        "ReceivedDateTime": _format_ts(message.received_at),
        "SenderName": message.sender_name,
        "SenderEmailAddress": message.sender_address,
        "Size": message.size_bytes,
        "HasAttachments": message.has_attachments,
        "ToRecipients": list(message.recipients),
        "Categories": list(message.categories),
    }


def message_from_dict(raw: Any, domain_key: str) -> MessageRecord:
    if not isinstance(raw, dict):
        raise CacheCorruptionError(f"Domain {domain_key!r}: message entry is not an object")
    message_id = raw.get("MessageId")
    if not isinstance(message_id, str) or not message_id.strip():
        raise CacheCorruptionError(f"Domain {domain_key!r}: message without a valid MessageId")

    size = raw.get("Size")
    if isinstance(size, bool) or not isinstance(size, int):
        size = None

    return MessageRecord(
        id=message_id,
        subject=str(raw.get("Subject") or ""),
        received_at=_parse_ts(raw.get("ReceivedDateTime")),
        sender_name=str(raw.get("SenderName") or ""),
        sender_address=str(raw.get("SenderEmailAddress") or ""),
        size_bytes=size,
        has_attachments=bool(raw.get("HasAttachments", False)),
        recipients=_string_list(raw.get("ToRecipients")),
        categories=_string_list(raw.get("Categories")),
    )


class IndexCache:
    """Persist a SenderIndex for one mailbox as a JSON document."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    # --- public API ---

    def save(self, index: SenderIndex) -> None:
        """Write the whole index. Raises CacheIOError when the file cannot be written."""
        now = _now()
        meta = index.metadata
        if meta.created is None:
            meta.created = now
        meta.last_updated = now
        meta.version = SCHEMA_VERSION
        meta.is_valid = True

        document = {
            "Metadata": {
                "Version": meta.version,
                "Created": _format_ts(meta.created),
                "LastUpdated": _format_ts(meta.last_updated),
                "MessageCount": index.message_count,
                "DomainCount": index.domain_count,
                "IsValid": meta.is_valid,
            },
            "Data": {
                key: {
                    "Name": key,
                    "Count": bucket.count,
                    "Messages": [message_to_dict(m) for m in bucket.messages],
                }
                for key, bucket in index.snapshot()
            },
        }

        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise CacheIOError(f"Cannot write index cache {self.path}: {exc}") from exc

        logger.info(
            "Saved index cache %s (%d domains, %d messages)",
            self.path,
            index.domain_count,
            index.message_count,
        )

    def load(self) -> SenderIndex | None:
        """Load the cached index, or None when there is no usable cache.

        Corrupt or unreadable files are logged and treated as "no cache" so the
        caller rebuilds from the mailbox.
        """
        if not self.path.exists():
            return None
        try:
            return self._load()
        except (CacheCorruptionError, CacheIOError) as exc:
            logger.warning("Discarding index cache: %s", exc)
            return None

    def compute_age(self, index: SenderIndex) -> timedelta | None:
        """Time elapsed since the index was last saved; None when unknown."""
        last = index.metadata.last_updated
        if last is None:
            return None
        return _now() - last

    def clear(self) -> bool:
        """Delete the cache file. Returns True when a file was removed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise CacheIOError(f"Cannot delete index cache {self.path}: {exc}") from exc
        return True

    def get_info(self) -> dict:
        """Return cache statistics."""
        index = self.load()
        return {
            "path": str(self.path),
            "file_size": self.path.stat().st_size if self.path.exists() else 0,
            "last_updated": index.metadata.last_updated if index else None,
            "age": self.compute_age(index) if index else None,
            "domain_count": index.domain_count if index else 0,
            "message_count": index.message_count if index else 0,
        }

    # --- internals ---

    def _load(self) -> SenderIndex:
        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as exc:
            raise CacheCorruptionError(f"{self.path} is not valid JSON: {exc}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise CacheIOError(f"Cannot read index cache {self.path}: {exc}") from exc

        if not isinstance(document, dict):
            raise CacheCorruptionError(f"{self.path}: top level is not an object")

        if "Metadata" in document:
            metadata = self._parse_metadata(document["Metadata"])
            data = document.get("Data")
        else:
            # Legacy layout: the whole document is the data map
            logger.info("Index cache %s has no metadata block; reading legacy layout", self.path)
            metadata = IndexMetadata(created=None, last_updated=None)
            data = document

        if not isinstance(data, dict):
            raise CacheCorruptionError(f"{self.path}: data section is not an object")

        index = SenderIndex(metadata=metadata)
        for key, raw_bucket in data.items():
            index.put_bucket(self._parse_bucket(key, raw_bucket))

        logger.info(
            "Loaded index cache %s (%d domains, %d messages)",
            self.path,
            index.domain_count,
            index.message_count,
        )
        return index

    @staticmethod
    def _parse_metadata(raw: Any) -> IndexMetadata:
        if not isinstance(raw, dict):
            raise CacheCorruptionError("Metadata block is not an object")
        return IndexMetadata(
            version=str(raw.get("Version") or SCHEMA_VERSION),
            created=_parse_ts(raw.get("Created")),
            last_updated=_parse_ts(raw.get("LastUpdated")),
            is_valid=bool(raw.get("IsValid", True)),
        )

    @staticmethod
    def _parse_bucket(key: str, raw: Any) -> DomainBucket:
        if not isinstance(raw, dict) or not all(k in raw for k in ("Name", "Count", "Messages")):
            raise CacheCorruptionError(f"Domain {key!r} lacks Name/Count/Messages")
        raw_messages = raw["Messages"]
        if not isinstance(raw_messages, list):
            raise CacheCorruptionError(f"Domain {key!r}: Messages is not a list")

        messages = [message_from_dict(m, key) for m in raw_messages]
        declared = raw["Count"]
        if declared != len(messages):
            logger.warning(
                "Domain %r declares Count=%r but holds %d messages; recounting",
                key,
                declared,
                len(messages),
            )
        bucket = DomainBucket(domain_key=key, messages=messages)
        bucket.recount()
        return bucket
