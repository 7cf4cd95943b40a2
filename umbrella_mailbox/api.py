"""FastAPI surface over a :class:`RetrievalOrchestrator`."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from .models import DeleteStatus, Email, EmailService

if TYPE_CHECKING:
    from .orchestrator import RetrievalOrchestrator

_DELETE_STATUS_CODES = {
    DeleteStatus.DELETED: 200,
    DeleteStatus.REJECTED: 409,
    DeleteStatus.FAILED: 502,
}


def _parse_service(value: str) -> EmailService:
    for service in EmailService:
        if service.value.lower() == value.lower():
            return service
    raise HTTPException(status_code=404, detail=f"Unknown service: {value}")


def create_app(orchestrator: RetrievalOrchestrator) -> FastAPI:
    """Build the app with ``/health``, batch fetch and delete routes."""
    app = FastAPI(title="umbrella-mailbox", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({
            "service": "umbrella-mailbox",
            "supported_services": [s.value for s in orchestrator.supported_services],
        })

    @app.post("/v1/{service}/emails:fetch")
    async def fetch_emails(
        service: str,
        payload: dict[str, Any] = Body(...),
    ) -> JSONResponse:
        # Validation errors become a failure envelope, not a 422.
        result = await orchestrator.fetch_batch(_parse_service(service), payload)
        return JSONResponse(result.to_wire())

    @app.post("/v1/emails:delete")
    async def delete_email(message: Email) -> JSONResponse:
        outcome = await orchestrator.delete_by_id(message)
        return JSONResponse(
            {"status": outcome.status.value, "reason": outcome.reason},
            status_code=_DELETE_STATUS_CODES[outcome.status],
        )

    return app

