"""Provider-agnostic mail model: the serialization contract exposed to callers.

Field names follow Python conventions; the wire names (``from``,
``sentDateTime``, ``startIndex`` ...) are pydantic aliases, so
``model_dump(by_alias=True)`` produces the public JSON shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import ConfigurationError, ProviderError


class EmailService(str, Enum):
    """Tag identifying the provider a message (or folder) belongs to."""

    GMAIL = "Gmail"
    OUTLOOK = "Outlook"
    OWA = "OWA"


class FolderType(str, Enum):
    """Logical folder taxonomy shared by all providers."""

    INBOX = "Inbox"
    SENT = "Sent"
    DRAFTS = "Drafts"
    SPAM = "Spam"
    TRASH = "Trash"
    CUSTOM = "Custom"


class EmailAttachment(BaseModel):
    """Attachment metadata plus optional base64 content."""

    model_config = {"frozen": True, "populate_by_name": True}

    name: str = Field(default="unknown", description="Original filename")
    type: str = Field(
        default="unknown",
        description="MIME type, or bare lowercase extension for OWA",
    )
    size: int = Field(default=0, ge=0, description="Declared size in bytes")
    content: str | None = Field(
        default=None,
        description="Standard base64 payload; null when above the size ceiling",
    )


class Email(BaseModel):
    """A normalized message.  Immutable once built."""

    model_config = {"frozen": True, "populate_by_name": True}

    id: str = Field(description="Provider-native message id, opaque outside its provider")
    service: EmailService = Field(description="Provider that produced this message")
    from_address: str = Field(default="", alias="from", description="Sender address")
    to: tuple[str, ...] = Field(default=(), description="To recipients, header order")
    cc: tuple[str, ...] = Field(default=(), description="Cc recipients, header order")
    bcc: tuple[str, ...] = Field(default=(), description="Bcc recipients, header order")
    sent_at: datetime = Field(alias="sentDateTime", description="Sent time (UTC)")
    subject: str = Field(default="")
    body: str = Field(default="", description="HTML if present and non-blank, else plain text")
    attachments: tuple[EmailAttachment, ...] = Field(default=())

    @field_validator("sent_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# Provider-native markers for the well-known folders, with display names.
_WELL_KNOWN_FOLDERS: dict[FolderType, dict[EmailService, tuple[str, str]]] = {
    FolderType.INBOX: {
        EmailService.GMAIL: ("Inbox", "INBOX"),
        EmailService.OUTLOOK: ("Inbox", "Inbox"),
        EmailService.OWA: ("Inbox", "WellKnownFolderName.Inbox"),
    },
    FolderType.SENT: {
        EmailService.GMAIL: ("Sent", "SENT"),
        EmailService.OUTLOOK: ("Sent Items", "SentItems"),
        EmailService.OWA: ("Sent Items", "WellKnownFolderName.SentItems"),
    },
    FolderType.DRAFTS: {
        EmailService.GMAIL: ("Drafts", "DRAFT"),
        EmailService.OUTLOOK: ("Drafts", "Drafts"),
        EmailService.OWA: ("Drafts", "WellKnownFolderName.Drafts"),
    },
    FolderType.SPAM: {
        EmailService.GMAIL: ("Spam", "SPAM"),
        EmailService.OUTLOOK: ("Junk Email", "JunkEmail"),
        EmailService.OWA: ("Junk Email", "WellKnownFolderName.JunkEmail"),
    },
    FolderType.TRASH: {
        EmailService.GMAIL: ("Trash", "TRASH"),
        EmailService.OUTLOOK: ("Deleted Items", "DeletedItems"),
        EmailService.OWA: ("Deleted Items", "WellKnownFolderName.DeletedItems"),
    },
}


class EmailFolder(BaseModel):
    """Logical folder descriptor with an optional provider-specific handle."""

    model_config = {"frozen": True, "populate_by_name": True}

    name: str = Field(default="Inbox", alias="folderName", description="Display name")
    folder_type: FolderType = Field(default=FolderType.INBOX, alias="folderType")
    service: EmailService = Field(description="Provider this folder belongs to")
    provider_handle: str | None = Field(
        default=None,
        alias="serviceSpecificId",
        description="Provider folder id or well-known marker; required for Custom",
    )

    @model_validator(mode="after")
    def _custom_needs_handle(self) -> EmailFolder:
        if self.folder_type is FolderType.CUSTOM and not (self.provider_handle or "").strip():
            raise ConfigurationError(
                f"Custom folder {self.name!r} requires a provider handle"
            )
        return self

    @classmethod
    def well_known(cls, folder_type: FolderType, service: EmailService) -> EmailFolder:
        """Build one of the standard folders for *service*."""
        if folder_type not in _WELL_KNOWN_FOLDERS:
            raise ConfigurationError(f"{folder_type.value} is not a well-known folder type")
        name, handle = _WELL_KNOWN_FOLDERS[folder_type][service]
        return cls(name=name, folder_type=folder_type, service=service, provider_handle=handle)

    @classmethod
    def inbox(cls, service: EmailService) -> EmailFolder:
        return cls.well_known(FolderType.INBOX, service)

    @classmethod
    def sent(cls, service: EmailService) -> EmailFolder:
        return cls.well_known(FolderType.SENT, service)

    @classmethod
    def drafts(cls, service: EmailService) -> EmailFolder:
        return cls.well_known(FolderType.DRAFTS, service)

    @classmethod
    def spam(cls, service: EmailService) -> EmailFolder:
        return cls.well_known(FolderType.SPAM, service)

    @classmethod
    def trash(cls, service: EmailService) -> EmailFolder:
        return cls.well_known(FolderType.TRASH, service)

    def __str__(self) -> str:
        return f"{self.name} ({self.folder_type.value}) - {self.service.value}"


class RetrievalRequest(BaseModel):
    """One bounded batch: at most ``count`` messages starting at ``start_index``."""

    model_config = {"frozen": True, "populate_by_name": True}

    start_index: int = Field(default=0, ge=0, alias="startIndex")
    count: int = Field(gt=0, alias="numberOfEmails")
    folder: EmailFolder | None = Field(
        default=None,
        description="Target folder; None means the service's Inbox",
    )

    def effective_folder(self, service: EmailService) -> EmailFolder:
        return self.folder if self.folder is not None else EmailFolder.inbox(service)


LAST_BATCH_DIAGNOSTIC = "Last batch retrieved"


class RetrievalResult(BaseModel):
    """Result envelope of a batch retrieval."""

    model_config = {"frozen": True, "populate_by_name": True}

    success: bool
    diagnostic: str = Field(default="", alias="message")
    count: int = Field(default=0, ge=0)
    emails: tuple[Email, ...] = Field(default=())
    service: EmailService

    @model_validator(mode="after")
    def _consistent(self) -> RetrievalResult:
        if self.count != len(self.emails):
            raise ValueError(f"count={self.count} but {len(self.emails)} emails")
        if not self.success and self.emails:
            raise ValueError("a failed result cannot carry emails")
        if not self.success and not self.diagnostic:
            raise ValueError("a failed result needs a diagnostic")
        return self

    @classmethod
    def ok(
        cls,
        service: EmailService,
        emails: list[Email] | tuple[Email, ...],
        diagnostic: str = "",
    ) -> RetrievalResult:
        return cls(
            success=True,
            diagnostic=diagnostic,
            count=len(emails),
            emails=tuple(emails),
            service=service,
        )

    @classmethod
    def failure(cls, service: EmailService, diagnostic: str) -> RetrievalResult:
        return cls(
            success=False,
            diagnostic=diagnostic or "Unknown error",
            service=service,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class DeleteStatus(str, Enum):
    DELETED = "deleted"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class DeleteOutcome:
    """Result of ``delete_by_id``.

    ``failed`` carries the provider error so the caller can decide between
    retrying and giving up; ``raise_for_error()`` re-raises it.
    """

    status: DeleteStatus
    reason: str = ""
    error: ProviderError | None = None

    @classmethod
    def deleted(cls) -> DeleteOutcome:
        return cls(DeleteStatus.DELETED)

    @classmethod
    def rejected(cls, reason: str) -> DeleteOutcome:
        return cls(DeleteStatus.REJECTED, reason=reason)

    @classmethod
    def failed(cls, error: ProviderError) -> DeleteOutcome:
        return cls(DeleteStatus.FAILED, reason=str(error), error=error)

    def __bool__(self) -> bool:
        return self.status is DeleteStatus.DELETED

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error
