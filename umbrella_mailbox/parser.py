"""Part-tree parser: walks a provider MIME part tree to extract headers,
HTML / plain bodies and attachments.

The tree shape follows the REST ``MessagePart`` resource (``mimeType``,
``filename``, ``headers``, ``body{size,data,attachmentId}``, ``parts``).
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import structlog
from pydantic import BaseModel, Field

from .attachments import AttachmentPolicy, decode_text, to_standard_base64
from .models import EmailAttachment

logger = structlog.get_logger()

# attachment id -> base64url payload, paced by the caller.
AttachmentFetcher = Callable[[str], Awaitable[str | None]]


class PartHeader(BaseModel):
    name: str = ""
    value: str = ""


class PartBody(BaseModel):
    model_config = {"populate_by_name": True}

    size: int = 0
    data: str | None = None
    attachment_id: str | None = Field(default=None, alias="attachmentId")


class MessagePart(BaseModel):
    """One node of a message part tree.  Leaves have no ``parts``."""

    model_config = {"populate_by_name": True}

    part_id: str = Field(default="", alias="partId")
    mime_type: str = Field(default="", alias="mimeType")
    filename: str = ""
    headers: list[PartHeader] = Field(default_factory=list)
    body: PartBody = Field(default_factory=PartBody)
    parts: list[MessagePart] = Field(default_factory=list)


MessagePart.model_rebuild()


@dataclass
class ParsedMessage:
    """Everything the parser pulled out of one part tree."""

    headers: dict[str, str] = field(default_factory=dict)
    html_body: str = ""
    plain_body: str = ""
    attachments: list[EmailAttachment] = field(default_factory=list)

    @property
    def body(self) -> str:
        """HTML if non-blank, else plain text, else empty."""
        if self.html_body.strip():
            return self.html_body
        if self.plain_body.strip():
            return self.plain_body
        return ""

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)


class MessageParser:
    """Depth-first walk over a part tree.

    * A leaf with a filename is an attachment, whatever its MIME type.
    * ``text/plain`` and ``text/html`` leaves are body candidates; the last
      non-blank candidate in traversal order wins.
    * Decode and fetch failures are isolated to the leaf that caused them.
    """

    def __init__(self, policy: AttachmentPolicy) -> None:
        self._policy = policy

    @property
    def policy(self) -> AttachmentPolicy:
        return self._policy

    async def parse(
        self,
        root: MessagePart,
        fetch_attachment: AttachmentFetcher | None = None,
    ) -> ParsedMessage:
        parsed = ParsedMessage(headers=self._collect_headers(root))

        # Explicit stack; children pushed reversed so they pop in order.
        stack: list[MessagePart] = [root]
        while stack:
            part = stack.pop()
            if part.parts:
                stack.extend(reversed(part.parts))
                continue
            await self._visit_leaf(part, parsed, fetch_attachment)

        return parsed

    # ------------------------------------------------------------------
    # Leaves
    # ------------------------------------------------------------------

    async def _visit_leaf(
        self,
        part: MessagePart,
        parsed: ParsedMessage,
        fetch_attachment: AttachmentFetcher | None,
    ) -> None:
        if part.filename:
            parsed.attachments.append(await self._build_attachment(part, fetch_attachment))
            return

        mime_type = part.mime_type.lower()
        if mime_type not in ("text/plain", "text/html"):
            return

        text = self._decode_body(part)
        if not text.strip():
            return
        if mime_type == "text/html":
            parsed.html_body = text
        else:
            parsed.plain_body = text

    def _decode_body(self, part: MessagePart) -> str:
        if not part.body.data:
            return ""
        try:
            return decode_text(part.body.data)
        except ValueError:
            logger.warning(
                "body_part_decode_failed",
                part_id=part.part_id,
                mime_type=part.mime_type,
            )
            return ""

    async def _build_attachment(
        self,
        part: MessagePart,
        fetch_attachment: AttachmentFetcher | None,
    ) -> EmailAttachment:
        name = part.filename or "unknown"
        mime_type = part.mime_type or "application/octet-stream"
        size = max(part.body.size, 0)

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
            if part.body.attachment_id and fetch_attachment is not None:
                data = await fetch_attachment(part.body.attachment_id)
            else:
                data = part.body.data
            if data:
                content = to_standard_base64(data)
        except Exception as exc:
            logger.warning(
                "attachment_content_failed",
                name=name,
                part_id=part.part_id,
                error=str(exc),
            )
            content = None

        return EmailAttachment(name=name, type=mime_type, size=size, content=content)

    # ------------------------------------------------------------------
    # Headers
    # ------------------------------------------------------------------

    @staticmethod
    def _collect_headers(root: MessagePart) -> dict[str, str]:
        """Root headers keyed by lowercase name; the first occurrence wins."""
        headers: dict[str, str] = {}
        for header in root.headers:
            key = header.name.lower()
            if key and key not in headers:
                headers[key] = header.value
        return headers
