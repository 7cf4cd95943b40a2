"""Outlook adapter over the Microsoft Graph mail API."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import Any, Protocol

import httpx
import structlog
from pydantic import BaseModel, Field

from ..attachments import AttachmentPolicy, to_standard_base64
from ..config import OutlookConfig, RetrievalConfig, TransportRetryConfig
from ..errors import ConfigurationError
from ..folders import ProviderFolderHandle
from ..models import DeleteOutcome, Email, EmailAttachment, EmailService
from ..rate_limit import RateLimiter
from ..transport import RestTransport
from .base import ProviderAdapter, parse_iso_datetime

logger = structlog.get_logger()

FILE_ATTACHMENT_TYPE = "#microsoft.graph.fileAttachment"
ATTACHMENT_SELECT = "attachments($select=id,name,contentType,size,isInline)"


class GraphSession(Protocol):
    """Pre-authenticated Graph mail session (provider port)."""

    async def list_messages(
        self,
        folder: str,
        *,
        skip: int,
        top: int,
        next_link: str | None = None,
    ) -> dict[str, Any]: ...

    async def get_attachment(self, message_id: str, attachment_id: str) -> dict[str, Any]: ...

    async def delete_message(self, message_id: str) -> None: ...


class GraphHttpSession:
    """:class:`GraphSession` over ``/me`` or ``/users/{mailbox}``."""

    def __init__(
        self,
        config: OutlookConfig,
        retry: TransportRetryConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if config.access_token is None or not config.access_token.get_secret_value():
            raise ConfigurationError("Outlook access token is not configured")
        self._root = f"users/{config.mailbox}" if config.mailbox else "me"
        self._transport = RestTransport(
            EmailService.OUTLOOK.value,
            config.base_url,
            config.access_token,
            retry,
            client=client,
        )

    async def list_messages(
        self,
        folder: str,
        *,
        skip: int,
        top: int,
        next_link: str | None = None,
    ) -> dict[str, Any]:
        if next_link:
            return await self._transport.get_json(next_link)
        params = {
            "$orderby": "sentDateTime asc",
            "$skip": skip,
            "$top": top,
            "$expand": ATTACHMENT_SELECT,
        }
        return await self._transport.get_json(
            f"{self._root}/mailFolders/{folder}/messages", params=params
        )

    async def get_attachment(self, message_id: str, attachment_id: str) -> dict[str, Any]:
        return await self._transport.get_json(
            f"{self._root}/messages/{message_id}/attachments/{attachment_id}"
        )

    async def delete_message(self, message_id: str) -> None:
        await self._transport.delete(f"{self._root}/messages/{message_id}")

    async def aclose(self) -> None:
        await self._transport.aclose()


# ----------------------------------------------------------------------
# Wire models
# ----------------------------------------------------------------------


class GraphEmailAddress(BaseModel):
    name: str | None = None
    address: str | None = None


class GraphRecipient(BaseModel):
    model_config = {"populate_by_name": True}

    email_address: GraphEmailAddress = Field(
        default_factory=GraphEmailAddress, alias="emailAddress"
    )


class GraphBody(BaseModel):
    model_config = {"populate_by_name": True}

    content_type: str = Field(default="text", alias="contentType")
    content: str | None = None


class GraphAttachment(BaseModel):
    model_config = {"populate_by_name": True}

    odata_type: str | None = Field(default=None, alias="@odata.type")
    id: str | None = None
    name: str | None = None
    content_type: str | None = Field(default=None, alias="contentType")
    size: int = 0
    is_inline: bool = Field(default=False, alias="isInline")
    content_bytes: str | None = Field(default=None, alias="contentBytes")

    @property
    def is_file(self) -> bool:
        return self.odata_type in (None, FILE_ATTACHMENT_TYPE)


class GraphMessage(BaseModel):
    model_config = {"populate_by_name": True}

    id: str | None = None
    subject: str | None = None
    body: GraphBody | None = None
    from_: GraphRecipient | None = Field(default=None, alias="from")
    to_recipients: list[GraphRecipient] = Field(default_factory=list, alias="toRecipients")
    cc_recipients: list[GraphRecipient] = Field(default_factory=list, alias="ccRecipients")
    bcc_recipients: list[GraphRecipient] = Field(default_factory=list, alias="bccRecipients")
    sent_date_time: str | None = Field(default=None, alias="sentDateTime")
    received_date_time: str | None = Field(default=None, alias="receivedDateTime")
    attachments: list[GraphAttachment] = Field(default_factory=list)


def _addresses(recipients: list[GraphRecipient]) -> tuple[str, ...]:
    return tuple(r.email_address.address for r in recipients if r.email_address.address)


class OutlookAdapter(ProviderAdapter):
    """Graph retrieval.

    The list query orders by ``sentDateTime asc`` and pages with
    ``$skip``/``$top``, so windows arrive already ordered; the base sort
    only settles ties.
    """

    service = EmailService.OUTLOOK

    def __init__(
        self,
        session: GraphSession,
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
        config: OutlookConfig,
        retrieval: RetrievalConfig,
        retry: TransportRetryConfig,
        *,
        session: GraphSession | None = None,
    ) -> OutlookAdapter:
        return cls(
            session or GraphHttpSession(config, retry),
            limiter=RateLimiter(config.min_interval_seconds),
            policy=AttachmentPolicy(retrieval.max_attachment_size),
            timeout_seconds=retrieval.timeout_seconds,
        )

    def _summary_id(self, summary: dict[str, Any]) -> str:
        return str(summary.get("id") or "<no id>")

    async def _list_window(
        self,
        folder: ProviderFolderHandle,
        start_index: int,
        count: int,
    ) -> Sequence[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        next_link: str | None = None

        while len(messages) < count:
            page = await self._paced(
                self._session.list_messages,
                folder.value,
                skip=start_index,
                top=count,
                next_link=next_link,
            )
            messages.extend(item for item in page.get("value", []) if isinstance(item, dict))
            next_link = page.get("@odata.nextLink")
            if not next_link:
                break

        return messages[:count]

    async def _convert(self, summary: dict[str, Any]) -> Email:
        message = GraphMessage.model_validate(summary)
        message_id = message.id or str(uuid.uuid4())

        attachments: list[EmailAttachment] = []
        for attachment in message.attachments:
            if not attachment.is_file:
                continue
            attachments.append(await self._convert_attachment(message.id, attachment))

        sent_at = parse_iso_datetime(message.sent_date_time) or parse_iso_datetime(
            message.received_date_time
        )
        return Email(
            id=message_id,
            service=self.service,
            from_address=(message.from_.email_address.address or "") if message.from_ else "",
            to=_addresses(message.to_recipients),
            cc=_addresses(message.cc_recipients),
            bcc=_addresses(message.bcc_recipients),
            sent_at=self._sent_at_or_now(sent_at, message_id),
            subject=message.subject or "",
            body=(message.body.content or "") if message.body else "",
            attachments=tuple(attachments),
        )

    async def _convert_attachment(
        self,
        message_id: str | None,
        attachment: GraphAttachment,
    ) -> EmailAttachment:
        name = attachment.name or "unknown"
        mime_type = attachment.content_type or "application/octet-stream"
        size = max(attachment.size, 0)

        if not self._policy.should_inline_content(size):
            logger.info(
                "attachment_content_skipped",
                name=name,
                size=size,
                ceiling=self._policy.ceiling_bytes,
            )
            return EmailAttachment(name=name, type=mime_type, size=size)

        content: str | None = None
        try:
            data = attachment.content_bytes
            if data is None and message_id and attachment.id:
                payload = await self._paced(
                    self._session.get_attachment, message_id, attachment.id
                )
                data = payload.get("contentBytes")
            if data:
                content = to_standard_base64(data)
        except Exception as exc:
            logger.warning(
                "attachment_content_failed",
                name=name,
                message_id=message_id,
                error=str(exc),
            )

        return EmailAttachment(name=name, type=mime_type, size=size, content=content)

    async def _delete(self, message_id: str) -> DeleteOutcome:
        await self._session.delete_message(message_id)
        return DeleteOutcome.deleted()
