"""Mailbox configuration loaded from environment variables and the secret port.

Uses pydantic-settings so every field can be overridden via env vars.
Provider credentials can alternatively come from a :class:`SecretSource`
(the vault is an external collaborator; only the port lives here).
"""

from __future__ import annotations

import os
import re
from typing import Protocol

from pydantic import BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigurationError
from .models import EmailService

DEFAULT_RETRIEVAL_COUNT = 500
DEFAULT_MAX_ATTACHMENT_SIZE = 1_048_576


class RetrievalConfig(BaseSettings):
    """Per-session retrieval tunables."""

    model_config = {"env_prefix": "MAILBOX_"}

    retrieval_count: int = Field(
        default=DEFAULT_RETRIEVAL_COUNT,
        gt=0,
        description="Default batch size when the caller does not pass one",
    )
    max_attachment_size: int = Field(
        default=DEFAULT_MAX_ATTACHMENT_SIZE,
        gt=0,
        description="Attachments above this many bytes are returned metadata-only",
    )
    timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Deadline for one fetch_batch call",
    )


class TransportRetryConfig(BaseSettings):
    """Retry / backoff settings for the REST transports, driven by Tenacity."""

    model_config = {"env_prefix": "RETRY_"}

    max_attempts: int = Field(default=3, ge=1, description="Attempts per HTTP request")
    initial_wait_seconds: float = Field(default=1.0, description="Initial backoff wait")
    max_wait_seconds: float = Field(default=30.0, description="Maximum backoff wait")
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")
    request_timeout_seconds: float = Field(default=30.0, description="HTTP request timeout")


class GmailConfig(BaseSettings):
    """Gmail REST API settings."""

    model_config = {"env_prefix": "GMAIL_"}

    mailbox: str = Field(description="Mailbox address the session acts for")
    client_id: str = Field(description="OAuth client id")
    client_secret: SecretStr = Field(description="OAuth client secret")
    access_token: SecretStr | None = Field(
        default=None,
        description="Bearer token issued by the external token manager",
    )
    base_url: str = Field(default="https://gmail.googleapis.com/gmail/v1")
    min_interval_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Minimum spacing between Gmail API calls",
    )


class OutlookConfig(BaseSettings):
    """Microsoft Graph mail settings."""

    model_config = {"env_prefix": "OUTLOOK_"}

    client_id: str = Field(description="Azure AD application id")
    client_secret: SecretStr = Field(description="Azure AD application secret")
    access_token: SecretStr | None = Field(
        default=None,
        description="Bearer token issued by the external token manager",
    )
    mailbox: str | None = Field(
        default=None,
        description="Target mailbox (users/{mailbox}); None means /me",
    )
    base_url: str = Field(default="https://graph.microsoft.com/v1.0")
    min_interval_seconds: float = Field(default=0.1, ge=0)


class OwaConfig(BaseSettings):
    """Exchange Web Services settings."""

    model_config = {"env_prefix": "OWA_"}

    service_uri: str = Field(description="EWS endpoint, e.g. https://host/EWS/Exchange.asmx")
    email_address: str = Field(description="Mailbox address used to log in")
    password: SecretStr = Field(description="Mailbox password")
    min_interval_seconds: float = Field(default=1.0, ge=0)


class MailboxConfig(BaseSettings):
    """Root configuration.

    Provider sections are ``None`` when the provider is not enabled.
    """

    model_config = {"env_prefix": "MAILBOX_"}

    enabled_services: list[EmailService] = Field(
        default_factory=list,
        description='JSON list of services to enable, e.g. ["Gmail","Outlook"]',
    )
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)
    api_port: int = Field(default=8080, description="Port for the HTTP API")

    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    retry: TransportRetryConfig = Field(default_factory=TransportRetryConfig)
    gmail: GmailConfig | None = None
    outlook: OutlookConfig | None = None
    owa: OwaConfig | None = None

    @classmethod
    def from_secrets(
        cls,
        source: SecretSource,
        enabled_services: list[EmailService],
    ) -> MailboxConfig:
        """Build a config whose provider credentials come from *source*.

        Only the secrets needed by *enabled_services* are requested.
        """
        secrets = ProviderSecrets.load(source, enabled_services)
        try:
            return cls(
                enabled_services=enabled_services,
                gmail=secrets.gmail_config() if EmailService.GMAIL in enabled_services else None,
                outlook=(
                    secrets.outlook_config() if EmailService.OUTLOOK in enabled_services else None
                ),
                owa=secrets.owa_config() if EmailService.OWA in enabled_services else None,
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid mailbox configuration: {exc}") from exc


def load_config() -> MailboxConfig:
    """Load the root config from the environment.

    Each enabled provider section is read from its own env prefix.  Any
    missing required value is a :class:`ConfigurationError`.
    """
    try:
        config = MailboxConfig()
        sections: dict[str, BaseSettings] = {}
        if EmailService.GMAIL in config.enabled_services and config.gmail is None:
            sections["gmail"] = GmailConfig()
        if EmailService.OUTLOOK in config.enabled_services and config.outlook is None:
            sections["outlook"] = OutlookConfig()
        if EmailService.OWA in config.enabled_services and config.owa is None:
            sections["owa"] = OwaConfig()
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid mailbox configuration: {exc}") from exc
    return config.model_copy(update=sections)


# ------------------------------------------------------------------
# Secret port
# ------------------------------------------------------------------


class SecretSource(Protocol):
    """Returns named secret strings (vault, env, test double)."""

    def get_secret(self, name: str) -> str: ...


class EnvSecretSource:
    """Secret source backed by environment variables.

    ``googleClientId`` is read from ``<prefix>GOOGLE_CLIENT_ID`` and
    ``owaServiceURI`` from ``<prefix>OWA_SERVICE_URI``.
    """

    def __init__(self, prefix: str = "MAILBOX_SECRET_") -> None:
        self._prefix = prefix

    def env_name(self, name: str) -> str:
        return self._prefix + re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", name).upper()

    def get_secret(self, name: str) -> str:
        value = os.environ.get(self.env_name(name))
        if value is None:
            raise KeyError(name)
        return value


_SECRETS_BY_SERVICE: dict[EmailService, tuple[str, ...]] = {
    EmailService.GMAIL: ("googleCalendarId", "googleClientId", "googleClientSecret"),
    EmailService.OUTLOOK: ("outlookClientId", "outlookSecret"),
    EmailService.OWA: ("owaServiceURI", "owaEmailAddress", "owaPassword"),
}


class ProviderSecrets(BaseModel):
    """Provider credentials resolved from a :class:`SecretSource`."""

    values: dict[str, SecretStr] = Field(default_factory=dict)

    @classmethod
    def load(
        cls,
        source: SecretSource,
        services: list[EmailService],
    ) -> ProviderSecrets:
        values: dict[str, SecretStr] = {}
        for service in services:
            for name in _SECRETS_BY_SERVICE[service]:
                try:
                    value = source.get_secret(name)
                except Exception as exc:
                    raise ConfigurationError(f"Failed to retrieve secret {name!r}") from exc
                if not value or not value.strip():
                    raise ConfigurationError(f"Secret {name!r} is empty")
                values[name] = SecretStr(value)
        return cls(values=values)

    def _get(self, name: str) -> str:
        return self.values[name].get_secret_value()

    def gmail_config(self) -> GmailConfig:
        return GmailConfig(
            mailbox=self._get("googleCalendarId"),
            client_id=self._get("googleClientId"),
            client_secret=self._get("googleClientSecret"),
        )

    def outlook_config(self) -> OutlookConfig:
        return OutlookConfig(
            client_id=self._get("outlookClientId"),
            client_secret=self._get("outlookSecret"),
        )

    def owa_config(self) -> OwaConfig:
        return OwaConfig(
            service_uri=self._get("owaServiceURI"),
            email_address=self._get("owaEmailAddress"),
            password=self._get("owaPassword"),
        )
