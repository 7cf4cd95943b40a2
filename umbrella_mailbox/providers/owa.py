"""OWA adapter over an injected Exchange Web Services session.

SOAP serialization is external: callers provide an :class:`EwsSession`
(for example a thin wrapper around an EWS client library) that speaks
the models below.
"""

from __future__ import annotations

import base64
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

import structlog
from pydantic import BaseModel, Field

from ..attachments import AttachmentPolicy, derive_extension
from ..config import OwaConfig, RetrievalConfig
from ..errors import ConfigurationError, MessageConversionError
from ..folders import ProviderFolderHandle
from ..models import DeleteOutcome, Email, EmailAttachment, EmailService
from ..rate_limit import RateLimiter
from .base import ProviderAdapter

logger = structlog.get_logger()


class EwsAttachment(BaseModel):
    attachment_id: str
    name: str | None = None
    content_type: str | None = None
    size: int = 0
    is_file: bool = True


class EwsItem(BaseModel):
    """An EWS message with its first-class properties loaded."""

    item_id: str
    subject: str | None = None
    sender: str | None = None
    to_recipients: list[str] = Field(default_factory=list)
    cc_recipients: list[str] = Field(default_factory=list)
    bcc_recipients: list[str] = Field(default_factory=list)
    body: str | None = None
    date_time_sent: datetime | None = None
    date_time_received: datetime | None = None
    attachments: list[EwsAttachment] = Field(default_factory=list)


class EwsDeleteResult(BaseModel):
    """Per-item ``DeleteItem`` response."""

    success: bool
    error_code: str | None = None
    message: str = ""


class EwsSession(Protocol):
    """Pre-authenticated EWS session (provider port)."""

    async def find_items(
        self,
        folder: ProviderFolderHandle,
        *,
        offset: int,
        max_entries: int,
    ) -> Sequence[str]: ...

    async def get_item(self, item_id: str) -> EwsItem: ...

    async def get_attachment(self, attachment_id: str) -> bytes: ...

    async def delete_item(self, item_id: str) -> EwsDeleteResult: ...


class OwaAdapter(ProviderAdapter):
    """EWS retrieval.

    ``FindItem`` pages by offset and is not asked to sort, so each batch
    is ordered after conversion.  Attachment ``type`` is the filename
    extension, and only file attachments are listed.
    """

    service = EmailService.OWA

    def __init__(
        self,
        session: EwsSession,
        *,
        limiter: RateLimiter | None = None,
        policy: AttachmentPolicy | None = None,
        timeout_seconds: float = 120.0,
    ) -> None:
        super().__init__(
            session,
            limiter=limiter or RateLimiter(1.0),
            policy=policy,
            timeout_seconds=timeout_seconds,
        )

    @classmethod
    def from_config(
        cls,
        config: OwaConfig,
        retrieval: RetrievalConfig,
        *,
        session: EwsSession | None = None,
    ) -> OwaAdapter:
        if session is None:
            raise ConfigurationError(
                f"OWA requires an injected EWS session for {config.service_uri}"
            )
        return cls(
            session,
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
        item_ids = await self._paced(
            self._session.find_items,
            folder,
            offset=start_index,
            max_entries=count,
        )
        return [item_id for item_id in item_ids if item_id][:count]

    async def _convert(self, summary: str) -> Email:
        item = await self._paced(self._session.get_item, summary)
        if not isinstance(item, EwsItem):
            item = EwsItem.model_validate(item)
        if not item.item_id:
            raise MessageConversionError(summary, "item has no id")

        attachments = [
            await self._convert_attachment(attachment)
            for attachment in item.attachments
            if attachment.is_file
        ]

        return Email(
            id=item.item_id,
            service=self.service,
            from_address=item.sender or "",
            to=tuple(item.to_recipients),
            cc=tuple(item.cc_recipients),
            bcc=tuple(item.bcc_recipients),
            sent_at=self._sent_at_or_now(
                item.date_time_sent or item.date_time_received, item.item_id
            ),
            subject=item.subject or "",
            body=item.body or "",
            attachments=tuple(attachments),
        )

    async def _convert_attachment(self, attachment: EwsAttachment) -> EmailAttachment:
        name = attachment.name or "unknown"
        size = max(attachment.size, 0)
        extension = derive_extension(attachment.name)

        if not self._policy.should_inline_content(size):
            logger.info(
                "attachment_content_skipped",
                name=name,
                size=size,
                ceiling=self._policy.ceiling_bytes,
            )
            return EmailAttachment(name=name, type=extension, size=size)

        content: str | None = None
        try:
            data = await self._paced(self._session.get_attachment, attachment.attachment_id)
            if data:
                content = base64.b64encode(data).decode("ascii")
        except Exception as exc:
            # Metadata is kept; only the payload is lost.
            logger.warning(
                "attachment_content_failed",
                name=name,
                attachment_id=attachment.attachment_id,
                error=str(exc),
            )

        return EmailAttachment(name=name, type=extension, size=size, content=content)

    async def _delete(self, message_id: str) -> DeleteOutcome:
        result = await self._session.delete_item(message_id)
        if result.success:
            return DeleteOutcome.deleted()
        return DeleteOutcome.rejected(result.message or result.error_code or "Delete failed")
