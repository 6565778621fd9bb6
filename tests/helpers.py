"""Test doubles and builders shared by the test modules."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from gmail_domain_cleaner.errors import FieldNotFoundError, RemoteCallError
from gmail_domain_cleaner.gmail_client import SizeSource
from gmail_domain_cleaner.models import AttachmentInfo, Folder, MessageRecord

BASE_DATE = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_message(message_id: str, sender: str = "news@foo.com", days_ago: int = 0, **kwargs) -> MessageRecord:
    return MessageRecord(
        id=message_id,
        subject=kwargs.pop("subject", f"Subject {message_id}"),
        received_at=kwargs.pop("received_at", BASE_DATE - timedelta(days=days_ago)),
        sender_name=kwargs.pop("sender_name", sender.split("@")[0].title()),
        sender_address=sender,
        size_bytes=kwargs.pop("size_bytes", 1024),
        **kwargs,
    )


class FakeRemote:
    """In-memory MailRemote double.

    `fail_ids` make delete/move raise RemoteCallError for those messages;
    `field_errors` lists the size sources that answer with FieldNotFoundError.
    """

    def __init__(
        self,
        messages: list[MessageRecord] | None = None,
        fail_ids: set[str] | None = None,
        field_errors: set[SizeSource] | None = None,
        list_error: Exception | None = None,
    ) -> None:
        self.messages = list(messages or [])
        self.fail_ids = set(fail_ids or ())
        self.field_errors = set(field_errors or ())
        self.list_error = list_error
        self.list_calls: list[dict] = []
        self.deleted: list[str] = []
        self.moved: list[tuple[str, str]] = []

    def list_messages(self, top=None, newest_first=True, query=None, size_source=SizeSource.PRIMARY, progress=None):
        self.list_calls.append({"top": top, "newest_first": newest_first, "query": query, "size_source": size_source})
        if self.list_error is not None:
            raise self.list_error
        if size_source in self.field_errors:
            raise FieldNotFoundError("Invalid field selection sizeEstimate", status=400)

        ordered = sorted(self.messages, key=lambda m: m.sort_key, reverse=True)
        if query:
            ordered = [m for m in ordered if query in m.subject]
        if top:
            ordered = ordered[:top]
        if not newest_first:
            ordered.reverse()
        if size_source is SizeSource.NONE:
            ordered = [replace(m, size_bytes=None) for m in ordered]
        if progress:
            progress(len(ordered), len(ordered))
        return ordered

    def _check(self, message_id: str) -> None:
        if message_id in self.fail_ids:
            raise RemoteCallError(f"HTTP 500: backend error for {message_id}", message_id, 500)

    def delete_message(self, message_id: str) -> None:
        self._check(message_id)
        self.deleted.append(message_id)
        self.messages = [m for m in self.messages if m.id != message_id]

    def move_message(self, message_id: str, destination_folder_id: str) -> None:
        self._check(message_id)
        self.moved.append((message_id, destination_folder_id))

    def list_folders(self) -> list[Folder]:
        return [
            Folder(id="INBOX", display_name="INBOX", path="INBOX"),
            Folder(id="Label_1", display_name="Archive", path="Archive"),
            Folder(id="Label_2", display_name="2024", parent_id="Label_1", path="Archive/2024"),
        ]

    def get_snippet(self, message_id: str) -> str:
        return f"snippet of {message_id}"

    def get_attachments(self, message_id: str) -> list[AttachmentInfo]:
        return [AttachmentInfo(id="att1", name="report.pdf", size=2048, content_type="application/pdf")]

    def download_attachment(self, message_id: str, attachment_id: str) -> bytes:
        return b"%PDF-1.4"


