"""Umbrella mailbox retrieval.

Normalizes Gmail, Outlook (Graph) and OWA (EWS) mail into one model.
Public API re-exported here for convenience::

    from umbrella_mailbox import RetrievalOrchestrator, RetrievalRequest, EmailService
"""

from .attachments import AttachmentPolicy, should_inline_content
from .config import (
    EnvSecretSource,
    GmailConfig,
    MailboxConfig,
    OutlookConfig,
    OwaConfig,
    ProviderSecrets,
    RetrievalConfig,
    SecretSource,
    TransportRetryConfig,
    load_config,
)
from .errors import (
    AuthenticationError,
    ConfigurationError,
    FolderResolutionError,
    MailboxError,
    MessageConversionError,
    ProviderError,
    ThrottledError,
)
from .folders import FolderResolver, ProviderFolderHandle
from .logging import setup_logging
from .models import (
    DeleteOutcome,
    DeleteStatus,
    Email,
    EmailAttachment,
    EmailFolder,
    EmailService,
    FolderType,
    RetrievalRequest,
    RetrievalResult,
)
from .orchestrator import RetrievalOrchestrator
from .parser import MessageParser, MessagePart, ParsedMessage
from .providers import GmailAdapter, OutlookAdapter, OwaAdapter, ProviderAdapter
from .rate_limit import RateLimiter

__all__ = [
    "AttachmentPolicy",
    "AuthenticationError",
    "ConfigurationError",
    "DeleteOutcome",
    "DeleteStatus",
    "Email",
    "EmailAttachment",
    "EmailFolder",
    "EmailService",
    "EnvSecretSource",
    "FolderResolutionError",
    "FolderResolver",
    "FolderType",
    "GmailAdapter",
    "GmailConfig",
    "MailboxConfig",
    "MailboxError",
    "MessageConversionError",
    "MessageParser",
    "MessagePart",
    "OutlookAdapter",
    "OutlookConfig",
    "OwaAdapter",
    "OwaConfig",
    "ParsedMessage",
    "ProviderAdapter",
    "ProviderError",
    "ProviderFolderHandle",
    "ProviderSecrets",
    "RateLimiter",
    "RetrievalConfig",
    "RetrievalOrchestrator",
    "RetrievalRequest",
    "RetrievalResult",
    "SecretSource",
    "ThrottledError",
    "TransportRetryConfig",
    "load_config",
    "setup_logging",
    "should_inline_content",
]
