"""Exception hierarchy shared by adapters, transports and the orchestrator."""

from __future__ import annotations


class MailboxError(Exception):
    """Base class for all umbrella-mailbox errors."""


class ConfigurationError(MailboxError):
    """Missing or invalid settings, secrets or folder descriptors.

    Raised at construction time (adapters, config loading) or at
    folder-resolution time.  Never silently defaulted.
    """


class FolderResolutionError(ConfigurationError):
    """A logical folder cannot be mapped onto a provider folder."""


class ProviderError(MailboxError):
    """A provider call failed (network, throttling, malformed response, API error)."""

    def __init__(
        self,
        service: str,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.service} API error {self.status_code}: {self.message}"
        return f"{self.service} API error: {self.message}"


class AuthenticationError(ProviderError):
    """The provider rejected the session credentials (401/403-like)."""


class ThrottledError(ProviderError):
    """The provider kept throttling after the transport exhausted its retries."""


class MessageConversionError(MailboxError):
    """A single provider message could not be normalized into an Email."""

    def __init__(self, message_id: str, reason: str) -> None:
        super().__init__(f"Cannot convert message {message_id!r}: {reason}")
        self.message_id = message_id
        self.reason = reason
