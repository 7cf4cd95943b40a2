"""RetrievalOrchestrator: routes calls to the adapter for a service.

Retrieval never raises to the caller: invalid requests, unknown services
and escaped adapter faults all become ``success=False`` results.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from .config import MailboxConfig
from .errors import ConfigurationError
from .models import DeleteOutcome, Email, EmailService, RetrievalRequest, RetrievalResult
from .providers import ProviderAdapter, build_adapters

logger = structlog.get_logger()


class RetrievalOrchestrator:
    """Thin composition over one adapter per enabled service."""

    def __init__(self, adapters: Mapping[EmailService, ProviderAdapter]) -> None:
        self._adapters: dict[EmailService, ProviderAdapter] = dict(adapters)

    @classmethod
    def from_config(
        cls,
        config: MailboxConfig,
        sessions: Mapping[EmailService, Any] | None = None,
    ) -> RetrievalOrchestrator:
        """Build adapters for every enabled service.

        REST sessions are created from *config* unless injected through
        *sessions*; the OWA session must always be injected.
        """
        adapters = build_adapters(config, sessions)
        logger.info(
            "orchestrator_configured",
            services=[service.value for service in adapters],
        )
        return cls(adapters)

    @property
    def supported_services(self) -> list[EmailService]:
        return list(self._adapters)

    def adapter_for(self, service: EmailService) -> ProviderAdapter | None:
        return self._adapters.get(service)

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def fetch_batch(
        self,
        service: EmailService | str,
        request: RetrievalRequest | Mapping[str, Any],
    ) -> RetrievalResult:
        try:
            service = EmailService(service)
        except ValueError:
            logger.warning("fetch_batch_unknown_service", service=str(service))
            # The envelope needs a concrete service tag.
            return RetrievalResult.failure(
                next(iter(self._adapters), EmailService.GMAIL),
                f"Unsupported service: {service}",
            )

        if not isinstance(request, RetrievalRequest):
            try:
                request = RetrievalRequest.model_validate(request)
            except (ValidationError, ValueError, ConfigurationError) as exc:
                logger.warning("fetch_batch_invalid_request", service=service.value, error=str(exc))
                return RetrievalResult.failure(service, f"Invalid request: {exc}")

        adapter = self._adapters.get(service)
        if adapter is None:
            logger.warning("fetch_batch_service_not_configured", service=service.value)
            return RetrievalResult.failure(service, f"Service not configured: {service.value}")

        try:
            return await adapter.fetch_batch(request)
        except Exception as exc:
            logger.exception("fetch_batch_unhandled_error", service=service.value)
            return RetrievalResult.failure(service, str(exc) or type(exc).__name__)

    async def delete_by_id(self, message: Email) -> DeleteOutcome:
        adapter = self._adapters.get(message.service)
        if adapter is None:
            logger.warning("delete_service_not_configured", service=message.service.value)
            return DeleteOutcome.rejected(f"Service not configured: {message.service.value}")
        return await adapter.delete_by_id(message)

    # ------------------------------------------------------------------
    # Synchronous wrappers
    # ------------------------------------------------------------------

    def fetch_batch_sync(
        self,
        service: EmailService | str,
        request: RetrievalRequest | Mapping[str, Any],
    ) -> RetrievalResult:
        return asyncio.run(self.fetch_batch(service, request))

    def delete_by_id_sync(self, message: Email) -> DeleteOutcome:
        return asyncio.run(self.delete_by_id(message))
