"""Provider adapters and the registry that builds them from configuration."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..config import MailboxConfig
from ..errors import ConfigurationError
from ..models import EmailService
from .base import ProviderAdapter
from .gmail import GmailAdapter, GmailHttpSession, GmailSession
from .outlook import GraphHttpSession, GraphSession, OutlookAdapter
from .owa import EwsAttachment, EwsDeleteResult, EwsItem, EwsSession, OwaAdapter

__all__ = [
    "EwsAttachment",
    "EwsDeleteResult",
    "EwsItem",
    "EwsSession",
    "GmailAdapter",
    "GmailHttpSession",
    "GmailSession",
    "GraphHttpSession",
    "GraphSession",
    "OutlookAdapter",
    "OwaAdapter",
    "ProviderAdapter",
    "build_adapter",
    "build_adapters",
]


def build_adapter(
    service: EmailService,
    config: MailboxConfig,
    *,
    session: Any = None,
) -> ProviderAdapter:
    """Build the adapter for *service*; its config section must be present."""
    if service is EmailService.GMAIL:
        if config.gmail is None:
            raise ConfigurationError("Gmail is enabled but not configured")
        return GmailAdapter.from_config(config.gmail, config.retrieval, config.retry, session=session)
    if service is EmailService.OUTLOOK:
        if config.outlook is None:
            raise ConfigurationError("Outlook is enabled but not configured")
        return OutlookAdapter.from_config(
            config.outlook, config.retrieval, config.retry, session=session
        )
    if service is EmailService.OWA:
        if config.owa is None:
            raise ConfigurationError("OWA is enabled but not configured")
        return OwaAdapter.from_config(config.owa, config.retrieval, session=session)
    raise ConfigurationError(f"Unsupported service: {service!r}")


def build_adapters(
    config: MailboxConfig,
    sessions: Mapping[EmailService, Any] | None = None,
) -> dict[EmailService, ProviderAdapter]:
    """Build one adapter per enabled service."""
    sessions = sessions or {}
    return {
        service: build_adapter(service, config, session=sessions.get(service))
        for service in config.enabled_services
    }
