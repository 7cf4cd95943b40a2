"""ProviderAdapter: the ABC every mail backend adapter implements.

The base class owns the batch contract (folder resolution, deadline,
per-message isolation, ordering, diagnostics) and the delete contract.
Subclasses only list a window and convert one message.
"""

from __future__ import annotations

import abc
import asyncio
import email.utils
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from typing import Any, ClassVar, TypeVar

import structlog

from ..attachments import AttachmentPolicy
from ..errors import (
    AuthenticationError,
    ConfigurationError,
    FolderResolutionError,
    MessageConversionError,
    ProviderError,
)
from ..folders import FolderResolver, ProviderFolderHandle
from ..models import (
    LAST_BATCH_DIAGNOSTIC,
    DeleteOutcome,
    Email,
    EmailService,
    RetrievalRequest,
    RetrievalResult,
)
from ..parser import MessageParser
from ..rate_limit import RateLimiter

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 120.0

_AUTH_MARKERS = ("unauthorized", "401", "authentication", "token")


def is_authentication_failure(exc: BaseException) -> bool:
    """True when *exc* looks like a rejected credential rather than a fault."""
    if isinstance(exc, AuthenticationError):
        return True
    if isinstance(exc, ProviderError) and exc.status_code in (401, 403):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _AUTH_MARKERS)


def authentication_diagnostic(service: EmailService) -> str:
    return f"Authentication failed. Please check {service.value} credentials."


def parse_address_list(header_value: str | None) -> tuple[str, ...]:
    if not header_value:
        return ()
    return tuple(addr for _, addr in email.utils.getaddresses([header_value]) if addr)


def parse_address(header_value: str | None) -> str:
    addresses = parse_address_list(header_value)
    return addresses[0] if addresses else (header_value or "").strip()


def parse_rfc2822_date(value: str | None) -> datetime | None:
    """Parse a ``Date`` header, or return None when it is absent or garbage."""
    if not value or not value.strip():
        return None
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def parse_iso_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


class ProviderAdapter(abc.ABC):
    """Uniform retrieval / delete contract over one pre-authenticated session.

    One adapter owns one session and one :class:`RateLimiter`.  Do not
    share an instance across concurrently running batch calls; construct
    one adapter per concurrent caller instead.
    """

    service: ClassVar[EmailService]

    def __init__(
        self,
        session: Any,
        *,
        limiter: RateLimiter,
        policy: AttachmentPolicy | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if session is None:
            raise ConfigurationError(f"{self.service.value} adapter requires a session")
        if timeout_seconds <= 0:
            raise ConfigurationError("timeout_seconds must be positive")
        self._session = session
        self._limiter = limiter
        self._policy = policy or AttachmentPolicy()
        self._parser = MessageParser(self._policy)
        self._resolver = FolderResolver.for_service(self.service)
        self._timeout_seconds = timeout_seconds

    @property
    def session(self) -> Any:
        return self._session

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    @property
    def policy(self) -> AttachmentPolicy:
        return self._policy

    async def aclose(self) -> None:
        close = getattr(self._session, "aclose", None)
        if close is not None:
            await close()

    # ------------------------------------------------------------------
    # Hooks for subclasses
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def _list_window(
        self,
        folder: ProviderFolderHandle,
        start_index: int,
        count: int,
    ) -> Sequence[Any]:
        """Return at most *count* message summaries starting at *start_index*."""
        ...

    @abc.abstractmethod
    async def _convert(self, summary: Any) -> Email:
        """Fetch whatever else is needed and build one :class:`Email`.

        Raise :class:`MessageConversionError` (or ``ValueError``) to have
        the message skipped.
        """
        ...

    @abc.abstractmethod
    async def _delete(self, message_id: str) -> DeleteOutcome:
        """Issue the provider delete call (already paced)."""
        ...

    def _summary_id(self, summary: Any) -> str:
        return str(summary)

    # ------------------------------------------------------------------
    # Pacing
    # ------------------------------------------------------------------

    async def _paced(self, call: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Wait for the session's turn, then issue one remote call."""
        await self._limiter.wait()
        return await call(*args, **kwargs)

    def _sent_at_or_now(self, sent_at: datetime | None, message_id: str) -> datetime:
        if sent_at is not None:
            return sent_at
        logger.warning(
            "message_date_fallback",
            service=self.service.value,
            message_id=message_id,
        )
        return datetime.now(UTC)

    # ------------------------------------------------------------------
    # Batch retrieval
    # ------------------------------------------------------------------

    async def fetch_batch(self, request: RetrievalRequest) -> RetrievalResult:
        folder = request.effective_folder(self.service)
        try:
            handle = self._resolver.resolve(folder)
        except FolderResolutionError as exc:
            logger.warning(
                "folder_resolution_failed",
                service=self.service.value,
                folder=str(folder),
                error=str(exc),
            )
            return RetrievalResult.failure(self.service, f"Invalid folder: {exc}")

        deadline = asyncio.timeout(self._timeout_seconds)
        try:
            async with deadline:
                emails = await self._collect(handle, request)
        except TimeoutError as exc:
            if not deadline.expired():
                # Raised by the session itself, not by the batch deadline.
                return self._batch_failure(exc)
            logger.error(
                "fetch_batch_timeout",
                service=self.service.value,
                timeout_seconds=self._timeout_seconds,
            )
            return RetrievalResult.failure(
                self.service,
                f"Timed out after {self._timeout_seconds:g}s retrieving emails",
            )
        except Exception as exc:
            return self._batch_failure(exc)

        emails.sort(key=lambda e: (e.sent_at, e.id))
        diagnostic = LAST_BATCH_DIAGNOSTIC if len(emails) < request.count else ""

        logger.info(
            "emails_retrieved",
            service=self.service.value,
            folder=handle.value,
            start_index=request.start_index,
            requested=request.count,
            retrieved=len(emails),
        )
        return RetrievalResult.ok(self.service, emails, diagnostic)

    def _batch_failure(self, exc: Exception) -> RetrievalResult:
        if is_authentication_failure(exc):
            logger.error("fetch_batch_auth_failed", service=self.service.value, error=str(exc))
            return RetrievalResult.failure(self.service, authentication_diagnostic(self.service))
        logger.exception("fetch_batch_failed", service=self.service.value)
        return RetrievalResult.failure(self.service, f"Failed to retrieve emails: {exc}")

    async def _collect(self, handle: ProviderFolderHandle, request: RetrievalRequest) -> list[Email]:
        summaries = await self._list_window(handle, request.start_index, request.count)

        emails: list[Email] = []
        for summary in summaries[: request.count]:
            message_id = self._summary_id(summary)
            try:
                emails.append(await self._convert(summary))
            except (MessageConversionError, ValueError) as exc:
                logger.warning(
                    "message_conversion_failed",
                    service=self.service.value,
                    message_id=message_id,
                    error=str(exc),
                )
            except ProviderError as exc:
                # Removed between list and detail fetch.
                if exc.status_code != 404:
                    raise
                logger.warning(
                    "message_vanished",
                    service=self.service.value,
                    message_id=message_id,
                )
            except Exception as exc:
                # Injected sessions raise their client library's own errors.
                # Credential problems still fail the whole batch.
                if is_authentication_failure(exc):
                    raise
                logger.warning(
                    "message_fetch_failed",
                    service=self.service.value,
                    message_id=message_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
        return emails

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_by_id(self, message: Email) -> DeleteOutcome:
        if message.service is not self.service:
            logger.warning(
                "delete_rejected",
                service=self.service.value,
                message_service=message.service.value,
                reason="service_mismatch",
            )
            return DeleteOutcome.rejected(
                f"Email belongs to {message.service.value}, not {self.service.value}"
            )
        if not message.id.strip():
            logger.warning("delete_rejected", service=self.service.value, reason="empty_id")
            return DeleteOutcome.rejected("Email id is empty")

        try:
            await self._limiter.wait()
            outcome = await self._delete(message.id)
        except ProviderError as exc:
            logger.error(
                "delete_failed",
                service=self.service.value,
                message_id=message.id,
                error=str(exc),
            )
            return DeleteOutcome.failed(exc)
        except Exception as exc:
            logger.warning(
                "delete_unexpected_error",
                service=self.service.value,
                message_id=message.id,
                error=str(exc),
            )
            return DeleteOutcome.rejected(str(exc) or type(exc).__name__)

        logger.info(
            "delete_completed",
            service=self.service.value,
            message_id=message.id,
            status=outcome.status.value,
        )
        return outcome
