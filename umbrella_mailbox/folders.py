"""Map logical folders onto provider-native folder handles."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import FolderResolutionError
from .models import EmailFolder, EmailService, FolderType

OWA_MARKER_PREFIX = "WellKnownFolderName."


@dataclass(frozen=True)
class ProviderFolderHandle:
    """A folder as the provider addresses it.

    ``value`` is a Gmail label id, a Graph folder id / well-known name, or an
    EWS folder id / distinguished folder name depending on ``service``.
    """

    service: EmailService
    value: str
    well_known: bool


# FolderType -> provider well-known folder.
_TYPE_TABLE: dict[EmailService, dict[FolderType, str]] = {
    EmailService.GMAIL: {
        FolderType.INBOX: "INBOX",
        FolderType.SENT: "SENT",
        FolderType.DRAFTS: "DRAFT",
        FolderType.SPAM: "SPAM",
        FolderType.TRASH: "TRASH",
    },
    EmailService.OUTLOOK: {
        FolderType.INBOX: "inbox",
        FolderType.SENT: "sentitems",
        FolderType.DRAFTS: "drafts",
        FolderType.SPAM: "junkemail",
        FolderType.TRASH: "deleteditems",
    },
    EmailService.OWA: {
        FolderType.INBOX: "inbox",
        FolderType.SENT: "sentitems",
        FolderType.DRAFTS: "drafts",
        FolderType.SPAM: "junkemail",
        FolderType.TRASH: "deleteditems",
    },
}

# Gmail system labels (case-sensitive ids).
_GMAIL_SYSTEM_LABELS = frozenset({
    "INBOX", "SENT", "DRAFT", "SPAM", "TRASH", "STARRED", "IMPORTANT", "UNREAD",
    "CHAT", "CATEGORY_PERSONAL", "CATEGORY_SOCIAL", "CATEGORY_PROMOTIONS",
    "CATEGORY_UPDATES", "CATEGORY_FORUMS",
})

# Graph well-known folder names (case-insensitive).
_GRAPH_WELL_KNOWN = frozenset({
    "inbox", "sentitems", "drafts", "junkemail", "deleteditems", "archive",
    "outbox", "clutter", "conflicts", "conversationhistory", "localfailures",
    "msgfolderroot", "recoverableitemsdeletions", "scheduled", "searchfolders",
    "serverfailures", "syncissues",
})

# EWS distinguished folder names (case-insensitive, after the marker prefix).
_EWS_DISTINGUISHED = frozenset({
    "inbox", "sentitems", "drafts", "junkemail", "deleteditems", "outbox",
    "archiveinbox", "calendar", "contacts", "notes", "tasks", "journal",
    "msgfolderroot", "root", "searchfolders", "voicemail",
})


class FolderResolver:
    """Pure folder mapping for one provider."""

    def __init__(self, service: EmailService) -> None:
        self._service = service
        self._table = _TYPE_TABLE[service]

    @classmethod
    def for_service(cls, service: EmailService) -> FolderResolver:
        return cls(service)

    @property
    def service(self) -> EmailService:
        return self._service

    def well_known_marker(self, handle: str) -> str | None:
        """Return the provider well-known folder named by *handle*, if any."""
        handle = handle.strip()
        if self._service is EmailService.GMAIL:
            return handle if handle in _GMAIL_SYSTEM_LABELS else None
        if self._service is EmailService.OUTLOOK:
            lowered = handle.lower()
            return lowered if lowered in _GRAPH_WELL_KNOWN else None
        if handle.startswith(OWA_MARKER_PREFIX):
            name = handle[len(OWA_MARKER_PREFIX):].lower()
            return name if name in _EWS_DISTINGUISHED else None
        return None

    def resolve(self, folder: EmailFolder) -> ProviderFolderHandle:
        """Resolve *folder* or raise :class:`FolderResolutionError`."""
        if folder.service is not self._service:
            raise FolderResolutionError(
                f"Folder {folder.name!r} belongs to {folder.service.value}, "
                f"not {self._service.value}"
            )

        handle = (folder.provider_handle or "").strip()
        if handle:
            marker = self.well_known_marker(handle)
            if marker is not None:
                return ProviderFolderHandle(self._service, marker, well_known=True)

        if folder.folder_type is FolderType.CUSTOM:
            if not handle:
                raise FolderResolutionError(
                    f"Custom folder {folder.name!r} requires a provider handle"
                )
            return ProviderFolderHandle(self._service, handle, well_known=False)

        native = self._table.get(folder.folder_type)
        if native is None:
            raise FolderResolutionError(f"Unsupported folder type: {folder.folder_type!r}")
        return ProviderFolderHandle(self._service, native, well_known=True)
