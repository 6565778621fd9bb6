"""Gmail API binding of the remote mailbox interface."""

from __future__ import annotations

import base64
import enum
import json
import logging
import re
from datetime import datetime, timezone
from email.utils import getaddresses
from typing import Callable, Protocol

from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError
from googleapiclient.http import BatchHttpRequest
from httplib2 import HttpLib2Error
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from .constants import BATCH_SIZE, METADATA_HEADERS, PAGE_SIZE
from .errors import FieldNotFoundError, RemoteCallError
from .models import AttachmentInfo, Folder, MessageRecord

logger = logging.getLogger(__name__)

_FROM_RE = re.compile(r"^(.*?)\s*<([^>]+)>$")
_FIELD_NOT_FOUND_MARKERS = ("invalid field selection", "invalid fieldmask", "could not find a property")

ProgressCallback = Callable[[int, int], None]

# Everything the API client can raise for a failed call; all become RemoteCallError
_REMOTE_FAILURES = (HttpError, HttpLib2Error, GoogleAuthError, OSError)


class SizeSource(enum.Enum):
    """Which representation of the message size to request."""

    PRIMARY = "primary"  # sizeEstimate through a partial-response field mask
    EXTENDED = "extended"  # full resource, size read from whichever property is present
    NONE = "none"  # size not requested


class MailRemote(Protocol):
    """What the index builder and the screens need from a mail provider."""

    def list_messages(
        self,
        top: int | None = None,
        newest_first: bool = True,
        query: str | None = None,
        size_source: SizeSource = SizeSource.PRIMARY,
        progress: ProgressCallback | None = None,
    ) -> list[MessageRecord]: ...

    def delete_message(self, message_id: str) -> None: ...

    def move_message(self, message_id: str, destination_folder_id: str) -> None: ...

    def list_folders(self) -> list[Folder]: ...

    def get_snippet(self, message_id: str) -> str: ...

    def get_attachments(self, message_id: str) -> list[AttachmentInfo]: ...

    def download_attachment(self, message_id: str, attachment_id: str) -> bytes: ...


# --- error helpers ---


def _status(exc: HttpError) -> int:
    try:
        return int(exc.resp.status)
    except (AttributeError, TypeError, ValueError):
        return 0


def _error_text(exc: HttpError) -> str:
    content = exc.content
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    return f"{content or ''} {exc.reason if hasattr(exc, 'reason') else ''}".lower()


def is_field_not_found(exc: BaseException) -> bool:
    """True for the provider's "requested field does not exist" failure signature."""
    if not isinstance(exc, HttpError) or _status(exc) != 400:
        return False
    text = _error_text(exc)
    return any(marker in text for marker in _FIELD_NOT_FOUND_MARKERS)


def _is_retryable_http_error(exc: BaseException) -> bool:
    return isinstance(exc, HttpError) and _status(exc) in (429, 500, 503)


def _to_remote_error(exc: Exception, message_id: str | None = None) -> RemoteCallError:
    if isinstance(exc, HttpError):
        status = _status(exc)
        if is_field_not_found(exc):
            return FieldNotFoundError(f"Field not available: {_short_reason(exc)}", message_id, status)
        return RemoteCallError(f"HTTP {status}: {_short_reason(exc)}", message_id, status)
    return RemoteCallError(str(exc) or type(exc).__name__, message_id)


def _short_reason(exc: HttpError) -> str:
    content = exc.content
    if isinstance(content, bytes):
        try:
            return json.loads(content)["error"]["message"]
        except (ValueError, KeyError, TypeError):
            pass
    return str(getattr(exc, "reason", "") or exc)


class _TransientBatchError(RemoteCallError):
    """Some items in a batch were throttled; the batch is retried for those items."""


# --- parsing ---


def _parse_from_header(from_value: str) -> tuple[str, str]:
    """Parse a From header into (display name, email address).

    Handles formats like:
      "John Doe <john@example.com>" -> ("John Doe", "john@example.com")
      "<john@example.com>"          -> ("", "john@example.com")
      "john@example.com"            -> ("", "john@example.com")
    """
    if not from_value:
        return ("", "")
    m = _FROM_RE.match(from_value.strip())
    if m:
        name = m.group(1).strip().strip('"').strip("'")
        return (name, m.group(2).strip())
    email = from_value.strip().strip("<>")
    return ("", email)


def _has_attachment_parts(payload: dict) -> bool:
    for part in payload.get("parts", []) or []:
        if part.get("filename"):
            return True
        if _has_attachment_parts(part):
            return True
    return False


def record_from_resource(resource: dict, size_source: SizeSource = SizeSource.PRIMARY) -> MessageRecord:
    """Build a MessageRecord from a users.messages resource."""
    payload = resource.get("payload", {}) or {}
    headers = {h["name"].lower(): h["value"] for h in payload.get("headers", []) or []}

    name, address = _parse_from_header(headers.get("from", ""))

    received_at = None
    internal_date = resource.get("internalDate")
    if internal_date:
        try:
            received_at = datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            received_at = None

    size: int | None = None
    if size_source is SizeSource.PRIMARY:
        size = resource.get("sizeEstimate")
    elif size_source is SizeSource.EXTENDED:
        size = resource.get("sizeEstimate", (payload.get("body") or {}).get("size"))
    if size is not None:
        try:
            size = int(size)
        except (TypeError, ValueError):
            size = None

    content_type = headers.get("content-type", "").lower()
    has_attachments = content_type.startswith("multipart/mixed") or _has_attachment_parts(payload)

    recipients = tuple(addr for _, addr in getaddresses([headers.get("to", "")]) if addr)

    return MessageRecord(
        id=resource["id"],
        subject=headers.get("subject", ""),
        received_at=received_at,
        sender_name=name,
        sender_address=address.lower(),
        size_bytes=size,
        has_attachments=has_attachments,
        recipients=recipients,
        categories=tuple(resource.get("labelIds", []) or []),
        snippet=resource.get("snippet", ""),
    )


def _walk_attachments(payload: dict) -> list[AttachmentInfo]:
    found: list[AttachmentInfo] = []
    for part in payload.get("parts", []) or []:
        body = part.get("body", {}) or {}
        if part.get("filename") and body.get("attachmentId"):
            found.append(
                AttachmentInfo(
                    id=body["attachmentId"],
                    name=part["filename"],
                    size=int(body.get("size", 0)),
                    content_type=part.get("mimeType", "application/octet-stream"),
                )
            )
        found.extend(_walk_attachments(part))
    return found


# --- transport ---


@retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)
def _execute(request):
    return request.execute()


@retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)
def _execute_batch(batch: BatchHttpRequest) -> None:
    batch.execute()


class GmailRemote:
    """MailRemote backed by an authenticated Gmail API service."""

    def __init__(self, service) -> None:
        self._service = service

    def _messages(self):
        return self._service.users().messages()

    def _call(self, request, message_id: str | None = None):
        try:
            return _execute(request)
        except _REMOTE_FAILURES as exc:
            raise _to_remote_error(exc, message_id) from exc

    # --- identity ---

    def profile_address(self) -> str:
        profile = self._call(self._service.users().getProfile(userId="me"))
        return profile["emailAddress"]

    # --- listing ---

    def list_message_ids(self, top: int | None = None, query: str | None = None) -> list[str]:
        """List message IDs newest first, handling pagination."""
        ids: list[str] = []
        page_token: str | None = None

        while True:
            page_size = PAGE_SIZE if not top else min(PAGE_SIZE, top - len(ids))
            kwargs: dict = {"userId": "me", "maxResults": page_size, "fields": "messages/id,nextPageToken"}
            if query:
                kwargs["q"] = query
            if page_token:
                kwargs["pageToken"] = page_token

            resp = self._call(self._messages().list(**kwargs))
            for msg in resp.get("messages", []):
                ids.append(msg["id"])
                if top and len(ids) >= top:
                    return ids[:top]

            page_token = resp.get("nextPageToken")
            if not page_token:
                break

        return ids

    def list_messages(
        self,
        top: int | None = None,
        newest_first: bool = True,
        query: str | None = None,
        size_source: SizeSource = SizeSource.PRIMARY,
        progress: ProgressCallback | None = None,
    ) -> list[MessageRecord]:
        ids = self.list_message_ids(top=top, query=query)
        resources: dict[str, dict] = {}
        total_batches = (len(ids) + BATCH_SIZE - 1) // BATCH_SIZE

        for batch_num in range(total_batches):
            chunk = ids[batch_num * BATCH_SIZE:(batch_num + 1) * BATCH_SIZE]
            try:
                self._fetch_chunk(chunk, size_source, resources)
            except _REMOTE_FAILURES as exc:
                raise _to_remote_error(exc) from exc
            if progress:
                progress(min((batch_num + 1) * BATCH_SIZE, len(ids)), len(ids))

        records = [record_from_resource(resources[i], size_source) for i in ids if i in resources]
        if not newest_first:
            records.reverse()
        return records

    def _get_request(self, message_id: str, size_source: SizeSource):
        kwargs: dict = {
            "userId": "me",
            "id": message_id,
            "format": "metadata",
            "metadataHeaders": METADATA_HEADERS,
        }
        if size_source is SizeSource.PRIMARY:
            kwargs["fields"] = "id,labelIds,snippet,internalDate,sizeEstimate,payload/headers"
        elif size_source is SizeSource.NONE:
            kwargs["fields"] = "id,labelIds,snippet,internalDate,payload/headers"
        return self._messages().get(**kwargs)

    @retry(
        retry=retry_if_exception(lambda exc: isinstance(exc, _TransientBatchError)),
        wait=wait_exponential(multiplier=1, min=1, max=60),
        stop=stop_after_attempt(5),
        reraise=True,
    )
    def _fetch_chunk(self, chunk: list[str], size_source: SizeSource, out: dict[str, dict]) -> None:
        pending = [i for i in chunk if i not in out]
        if not pending:
            return
        failures: dict[str, Exception] = {}
        batch = self._service.new_batch_http_request()

        def _make_callback(msg_id: str):
            def _cb(request_id, response, exception):
                if exception is not None:
                    failures[msg_id] = exception
                else:
                    out[msg_id] = response

            return _cb

        for msg_id in pending:
            batch.add(self._get_request(msg_id, size_source), callback=_make_callback(msg_id))

        _execute_batch(batch)

        throttled = 0
        for msg_id, exc in failures.items():
            if is_field_not_found(exc):
                raise _to_remote_error(exc, msg_id)
            if isinstance(exc, HttpError) and _status(exc) == 404:
                logger.warning("Message %s disappeared while indexing; skipping", msg_id)
                continue
            if _is_retryable_http_error(exc):
                throttled += 1
                continue
            raise _to_remote_error(exc, msg_id)
        if throttled:
            raise _TransientBatchError(f"{throttled} messages throttled in batch")

    # --- mutation ---

    def delete_message(self, message_id: str) -> None:
        """Move one message to Trash."""
        self._call(self._messages().trash(userId="me", id=message_id), message_id)

    def move_message(self, message_id: str, destination_folder_id: str) -> None:
        body: dict = {"addLabelIds": [destination_folder_id]}
        if destination_folder_id != "INBOX":
            body["removeLabelIds"] = ["INBOX"]
        self._call(self._messages().modify(userId="me", id=message_id, body=body), message_id)

    # --- folders & attachments ---

    def list_folders(self) -> list[Folder]:
        resp = self._call(self._service.users().labels().list(userId="me"))
        labels = [
            lbl for lbl in resp.get("labels", [])
            if lbl.get("type") == "user" or lbl.get("id") == "INBOX"
        ]
        id_by_name = {lbl["name"]: lbl["id"] for lbl in labels}

        folders: list[Folder] = []
        for lbl in labels:
            path = lbl["name"]
            parent_name, _, leaf = path.rpartition("/")
            folders.append(
                Folder(
                    id=lbl["id"],
                    display_name=leaf or path,
                    parent_id=id_by_name.get(parent_name) if parent_name else None,
                    path=path,
                )
            )
        folders.sort(key=lambda f: (f.id != "INBOX", f.path.lower()))
        return folders

    def get_snippet(self, message_id: str) -> str:
        resource = self._call(
            self._messages().get(userId="me", id=message_id, format="minimal", fields="snippet"),
            message_id,
        )
        return resource.get("snippet", "")

    def get_attachments(self, message_id: str) -> list[AttachmentInfo]:
        resource = self._call(self._messages().get(userId="me", id=message_id, format="full"), message_id)
        return _walk_attachments(resource.get("payload", {}) or {})

    def download_attachment(self, message_id: str, attachment_id: str) -> bytes:
        resp = self._call(
            self._messages().attachments().get(userId="me", messageId=message_id, id=attachment_id),
            message_id,
        )
        data = resp.get("data", "")
        return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
