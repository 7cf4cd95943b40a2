"""Gmail adapter over the ``users.messages`` REST resource."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx
import structlog
from pydantic import BaseModel, Field

from ..attachments import AttachmentPolicy
from ..config import GmailConfig, RetrievalConfig, TransportRetryConfig
from ..errors import ConfigurationError, MessageConversionError
from ..folders import ProviderFolderHandle
from ..models import DeleteOutcome, Email, EmailService
from ..parser import MessagePart
from ..rate_limit import RateLimiter
from ..transport import RestTransport
from .base import (
    ProviderAdapter,
    parse_address,
    parse_address_list,
    parse_rfc2822_date,
)

logger = structlog.get_logger()

# Gmail caps messages.list at 500 ids per page.
MAX_PAGE_SIZE = 500


class GmailSession(Protocol):
    """Pre-authenticated Gmail session (provider port)."""

    async def list_messages(
        self,
        label_id: str,
        *,
        max_results: int,
        page_token: str | None = None,
    ) -> dict[str, Any]: ...

    async def get_message(self, message_id: str) -> dict[str, Any]: ...

    async def get_attachment(self, message_id: str, attachment_id: str) -> dict[str, Any]: ...

    async def delete_message(self, message_id: str) -> None: ...


class GmailHttpSession:
    """:class:`GmailSession` over the Gmail REST API."""

    def __init__(
        self,
        config: GmailConfig,
        retry: TransportRetryConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if config.access_token is None or not config.access_token.get_secret_value():
            raise ConfigurationError("Gmail access token is not configured")
        self._transport = RestTransport(
            EmailService.GMAIL.value,
            config.base_url,
            config.access_token,
            retry,
            client=client,
        )

    async def list_messages(
        self,
        label_id: str,
        *,
        max_results: int,
        page_token: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"labelIds": label_id, "maxResults": max_results}
        if page_token:
            params["pageToken"] = page_token
        return await self._transport.get_json("users/me/messages", params=params)

    async def get_message(self, message_id: str) -> dict[str, Any]:
        return await self._transport.get_json(
            f"users/me/messages/{message_id}", params={"format": "full"}
        )

    async def get_attachment(self, message_id: str, attachment_id: str) -> dict[str, Any]:
        return await self._transport.get_json(
            f"users/me/messages/{message_id}/attachments/{attachment_id}"
        )

    async def delete_message(self, message_id: str) -> None:
        await self._transport.delete(f"users/me/messages/{message_id}")

    async def aclose(self) -> None:
        await self._transport.aclose()


# ----------------------------------------------------------------------
# Wire models
# ----------------------------------------------------------------------


class GmailMessageRef(BaseModel):
    id: str = ""
    thread_id: str | None = Field(default=None, alias="threadId")


class GmailListPage(BaseModel):
    messages: list[GmailMessageRef] = Field(default_factory=list)
    next_page_token: str | None = Field(default=None, alias="nextPageToken")


class GmailMessage(BaseModel):
    model_config = {"populate_by_name": True}

    id: str = ""
    thread_id: str | None = Field(default=None, alias="threadId")
    label_ids: list[str] = Field(default_factory=list, alias="labelIds")
    internal_date: str | None = Field(default=None, alias="internalDate")
    payload: MessagePart = Field(default_factory=MessagePart)


def _internal_date(value: str | None) -> datetime | None:
    """``internalDate`` is epoch milliseconds as a decimal string."""
    if not value:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
    except (ValueError, OverflowError, OSError):
        return None


class GmailAdapter(ProviderAdapter):
    """Gmail retrieval.

    ``messages.list`` returns ids newest first and cannot sort by sent
    time, so the window is taken over the native order and the batch is
    then sorted by the real timestamp (id only breaks ties).
    """

    service = EmailService.GMAIL

    def __init__(
        self,
        session: GmailSession,
        *,
        limiter: RateLimiter | None = None,
        policy: AttachmentPolicy | None = None,
        timeout_seconds: float = 120.0,
    ) -> None:
        super().__init__(
            session,
            limiter=limiter or RateLimiter(0.1),
            policy=policy,
            timeout_seconds=timeout_seconds,
        )

    @classmethod
    def from_config(
        cls,
        config: GmailConfig,
        retrieval: RetrievalConfig,
        retry: TransportRetryConfig,
        *,
        session: GmailSession | None = None,
    ) -> GmailAdapter:
        return cls(
            session or GmailHttpSession(config, retry),
            limiter=RateLimiter(config.min_interval_seconds),
            policy=AttachmentPolicy(retrieval.max_attachment_size),
            timeout_seconds=retrieval.timeout_seconds,
        )

    async def _list_window(
        self,
        folder: ProviderFolderHandle,
        start_index: int,
        count: int,
    ) -> Sequence[str]:
        wanted = start_index + count
        ids: list[str] = []
        page_token: str | None = None

        while len(ids) < wanted:
            raw = await self._paced(
                self._session.list_messages,
                folder.value,
                max_results=min(MAX_PAGE_SIZE, wanted - len(ids)),
                page_token=page_token,
            )
            page = GmailListPage.model_validate(raw)
            ids.extend(ref.id for ref in page.messages if ref.id)
            page_token = page.next_page_token
            if not page_token:
                break

        logger.debug(
            "gmail_ids_listed",
            label=folder.value,
            listed=len(ids),
            start_index=start_index,
        )
        return ids[start_index:wanted]

    async def _convert(self, summary: str) -> Email:
        raw = await self._paced(self._session.get_message, summary)
        message = GmailMessage.model_validate(raw)
        message_id = message.id or summary
        if not message_id:
            raise MessageConversionError(summary, "message has no id")

        async def fetch_attachment(attachment_id: str) -> str | None:
            payload = await self._paced(self._session.get_attachment, message_id, attachment_id)
            return payload.get("data")

        parsed = await self._parser.parse(message.payload, fetch_attachment)

        sent_at = parse_rfc2822_date(parsed.header("date")) or _internal_date(message.internal_date)
        return Email(
            id=message_id,
            service=self.service,
            from_address=parse_address(parsed.header("from")),
            to=parse_address_list(parsed.header("to")),
            cc=parse_address_list(parsed.header("cc")),
            bcc=parse_address_list(parsed.header("bcc")),
            sent_at=self._sent_at_or_now(sent_at, message_id),
            subject=parsed.header("subject"),
            body=parsed.body,
            attachments=tuple(parsed.attachments),
        )

    async def _delete(self, message_id: str) -> DeleteOutcome:
        await self._session.delete_message(message_id)
        return DeleteOutcome.deleted()
