"""Shared fixtures, in-memory provider sessions and message builders."""

from __future__ import annotations

import base64
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import pytest

from umbrella_mailbox.attachments import AttachmentPolicy
from umbrella_mailbox.config import TransportRetryConfig
from umbrella_mailbox.errors import ProviderError
from umbrella_mailbox.folders import ProviderFolderHandle
from umbrella_mailbox.providers.gmail import GmailAdapter
from umbrella_mailbox.providers.outlook import OutlookAdapter
from umbrella_mailbox.providers.owa import EwsAttachment, EwsDeleteResult, EwsItem, OwaAdapter
from umbrella_mailbox.rate_limit import RateLimiter

CEILING = 1_048_576


def b64url(data: str | bytes) -> str:
    """Provider-style base64: URL-safe alphabet, no padding."""
    raw = data.encode("utf-8") if isinstance(data, str) else data
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


# ----------------------------------------------------------------------
# Gmail
# ----------------------------------------------------------------------


def text_part(mime_type: str, text: str, part_id: str = "") -> dict[str, Any]:
    return {
        "partId": part_id,
        "mimeType": mime_type,
        "filename": "",
        "body": {"size": len(text), "data": b64url(text)},
    }


def attachment_part(
    filename: str,
    *,
    mime_type: str = "application/pdf",
    size: int = 3,
    attachment_id: str | None = None,
    data: str | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {"size": size}
    if attachment_id is not None:
        body["attachmentId"] = attachment_id
    if data is not None:
        body["data"] = data
    return {"mimeType": mime_type, "filename": filename, "body": body}


def multipart(mime_type: str, *parts: dict[str, Any]) -> dict[str, Any]:
    return {"mimeType": mime_type, "filename": "", "body": {"size": 0}, "parts": list(parts)}


def gmail_message(
    message_id: str,
    *,
    date: str | None = "Mon, 01 Jan 2024 10:00:00 +0000",
    internal_date: str | None = None,
    subject: str = "Hello",
    sender: str = "Alice <alice@example.com>",
    to: str = "bob@example.com",
    cc: str | None = None,
    payload: dict[str, Any] | None = None,
) -> dict[str, Any]:
    headers = [
        {"name": "From", "value": sender},
        {"name": "To", "value": to},
        {"name": "Subject", "value": subject},
    ]
    if cc is not None:
        headers.append({"name": "Cc", "value": cc})
    if date is not None:
        headers.append({"name": "Date", "value": date})
    root = payload or text_part("text/plain", f"body of {message_id}")
    root = {**root, "headers": headers}
    message: dict[str, Any] = {"id": message_id, "threadId": f"t-{message_id}", "payload": root}
    if internal_date is not None:
        message["internalDate"] = internal_date
    return message


class FakeGmailSession:
    """In-memory Gmail session.  *messages* are in native (newest first) order."""

    def __init__(
        self,
        messages: Sequence[dict[str, Any]] = (),
        *,
        attachments: dict[tuple[str, str], str] | None = None,
        page_size: int | None = None,
        list_error: Exception | None = None,
        delete_error: Exception | None = None,
        broken_ids: Sequence[str] = (),
    ) -> None:
        self.messages = list(messages)
        self.attachments = attachments or {}
        self.page_size = page_size
        self.list_error = list_error
        self.delete_error = delete_error
        self.broken_ids = set(broken_ids)
        self.calls: list[tuple[Any, ...]] = []
        self.closed = False

    async def list_messages(
        self,
        label_id: str,
        *,
        max_results: int,
        page_token: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("list", label_id, max_results, page_token))
        if self.list_error is not None:
            raise self.list_error
        start = int(page_token or 0)
        size = min(max_results, self.page_size or max_results)
        window = self.messages[start:start + size]
        page: dict[str, Any] = {"messages": [{"id": m["id"], "threadId": m["threadId"]} for m in window]}
        if start + size < len(self.messages):
            page["nextPageToken"] = str(start + size)
        return page

    async def get_message(self, message_id: str) -> dict[str, Any]:
        self.calls.append(("get", message_id))
        if message_id in self.broken_ids:
            return {"id": message_id, "payload": {"parts": "not-a-list"}}
        for message in self.messages:
            if message["id"] == message_id:
                return message
        raise ProviderError("Gmail", "Not Found", status_code=404)

    async def get_attachment(self, message_id: str, attachment_id: str) -> dict[str, Any]:
        self.calls.append(("attachment", message_id, attachment_id))
        data = self.attachments.get((message_id, attachment_id))
        if data is None:
            raise ProviderError("Gmail", "attachment not found", status_code=404)
        return {"size": len(data), "data": data}

    async def delete_message(self, message_id: str) -> None:
        self.calls.append(("delete", message_id))
        if self.delete_error is not None:
            raise self.delete_error

    async def aclose(self) -> None:
        self.closed = True


# ----------------------------------------------------------------------
# Graph
# ----------------------------------------------------------------------


def graph_message(
    message_id: str | None,
    sent: str | None = "2024-01-01T10:00:00Z",
    *,
    subject: str = "Hello",
    body: str = "<p>Hi</p>",
    content_type: str = "html",
    sender: str = "alice@example.com",
    to: Sequence[str] = ("bob@example.com",),
    attachments: Sequence[dict[str, Any]] = (),
    received: str | None = None,
) -> dict[str, Any]:
    message: dict[str, Any] = {
        "subject": subject,
        "body": {"contentType": content_type, "content": body},
        "from": {"emailAddress": {"name": "Alice", "address": sender}},
        "toRecipients": [{"emailAddress": {"address": a}} for a in to],
        "ccRecipients": [],
        "bccRecipients": [],
        "sentDateTime": sent,
        "attachments": list(attachments),
    }
    if message_id is not None:
        message["id"] = message_id
    if received is not None:
        message["receivedDateTime"] = received
    return message


def graph_attachment(
    attachment_id: str,
    name: str = "report.pdf",
    *,
    size: int = 3,
    content_type: str = "application/pdf",
    odata_type: str = "#microsoft.graph.fileAttachment",
) -> dict[str, Any]:
    return {
        "@odata.type": odata_type,
        "id": attachment_id,
        "name": name,
        "contentType": content_type,
        "size": size,
        "isInline": False,
    }


class FakeGraphSession:
    """In-memory Graph session; orders by ``sentDateTime`` like the server."""

    def __init__(
        self,
        messages: Sequence[dict[str, Any]] = (),
        *,
        attachments: dict[tuple[str, str], str] | None = None,
        list_error: Exception | None = None,
        delete_error: Exception | None = None,
    ) -> None:
        self.messages = sorted(messages, key=lambda m: m.get("sentDateTime") or "")
        self.attachments = attachments or {}
        self.list_error = list_error
        self.delete_error = delete_error
        self.calls: list[tuple[Any, ...]] = []

    async def list_messages(
        self,
        folder: str,
        *,
        skip: int,
        top: int,
        next_link: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("list", folder, skip, top, next_link))
        if self.list_error is not None:
            raise self.list_error
        return {"value": self.messages[skip:skip + top]}

    async def get_attachment(self, message_id: str, attachment_id: str) -> dict[str, Any]:
        self.calls.append(("attachment", message_id, attachment_id))
        data = self.attachments.get((message_id, attachment_id))
        if data is None:
            raise ProviderError("Outlook", "attachment not found", status_code=404)
        return {"id": attachment_id, "contentBytes": data}

    async def delete_message(self, message_id: str) -> None:
        self.calls.append(("delete", message_id))
        if self.delete_error is not None:
            raise self.delete_error


# ----------------------------------------------------------------------
# EWS
# ----------------------------------------------------------------------


def ews_item(
    item_id: str,
    sent: datetime | None,
    *,
    received: datetime | None = None,
    attachments: Sequence[EwsAttachment] = (),
    body: str = "<p>Hi</p>",
) -> EwsItem:
    return EwsItem(
        item_id=item_id,
        subject=f"Subject {item_id}",
        sender="alice@example.com",
        to_recipients=["bob@example.com"],
        body=body,
        date_time_sent=sent,
        date_time_received=received,
        attachments=list(attachments),
    )


class FakeEwsSession:
    """In-memory EWS session; ``find_items`` returns items unsorted."""

    def __init__(
        self,
        items: Sequence[EwsItem] = (),
        *,
        attachments: dict[str, bytes] | None = None,
        delete_results: dict[str, EwsDeleteResult] | None = None,
        find_error: Exception | None = None,
        delete_error: Exception | None = None,
        item_errors: dict[str, Exception] | None = None,
        attachment_errors: dict[str, Exception] | None = None,
    ) -> None:
        self.items = list(items)
        self.attachments = attachments or {}
        self.item_errors = item_errors or {}
        self.attachment_errors = attachment_errors or {}
        self.delete_results = delete_results or {}
        self.find_error = find_error
        self.delete_error = delete_error
        self.calls: list[tuple[Any, ...]] = []

    async def find_items(
        self,
        folder: ProviderFolderHandle,
        *,
        offset: int,
        max_entries: int,
    ) -> list[str]:
        self.calls.append(("find", folder.value, offset, max_entries))
        if self.find_error is not None:
            raise self.find_error
        return [item.item_id for item in self.items[offset:offset + max_entries]]

    async def get_item(self, item_id: str) -> EwsItem:
        self.calls.append(("get", item_id))
        if item_id in self.item_errors:
            raise self.item_errors[item_id]
        for item in self.items:
            if item.item_id == item_id:
                return item
        raise ProviderError("OWA", "ErrorItemNotFound", status_code=404)

    async def get_attachment(self, attachment_id: str) -> bytes:
        self.calls.append(("attachment", attachment_id))
        if attachment_id in self.attachment_errors:
            raise self.attachment_errors[attachment_id]
        return self.attachments[attachment_id]

    async def delete_item(self, item_id: str) -> EwsDeleteResult:
        self.calls.append(("delete", item_id))
        if self.delete_error is not None:
            raise self.delete_error
        return self.delete_results.get(item_id, EwsDeleteResult(success=True))


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------


@pytest.fixture
def policy() -> AttachmentPolicy:
    return AttachmentPolicy(CEILING)


@pytest.fixture
def retry_config() -> TransportRetryConfig:
    return TransportRetryConfig(
        max_attempts=3,
        initial_wait_seconds=0,
        max_wait_seconds=0,
        multiplier=1.0,
        request_timeout_seconds=5.0,
    )


@pytest.fixture
def make_gmail_adapter(policy: AttachmentPolicy):
    def _make(session: Any, **overrides: Any) -> GmailAdapter:
        kwargs: dict[str, Any] = {"limiter": RateLimiter(0), "policy": policy}
        kwargs.update(overrides)
        return GmailAdapter(session, **kwargs)

    return _make


@pytest.fixture
def make_outlook_adapter(policy: AttachmentPolicy):
    def _make(session: Any, **overrides: Any) -> OutlookAdapter:
        kwargs: dict[str, Any] = {"limiter": RateLimiter(0), "policy": policy}
        kwargs.update(overrides)
        return OutlookAdapter(session, **kwargs)

    return _make


@pytest.fixture
def make_owa_adapter(policy: AttachmentPolicy):
    def _make(session: Any, **overrides: Any) -> OwaAdapter:
        kwargs: dict[str, Any] = {"limiter": RateLimiter(0), "policy": policy}
        kwargs.update(overrides)
        return OwaAdapter(session, **kwargs)

    return _make
