"""Tests for umbrella_mailbox.api."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from tests.conftest import FakeGmailSession, FakeGraphSession, gmail_message

from umbrella_mailbox.api import create_app
from umbrella_mailbox.errors import ProviderError
from umbrella_mailbox.models import EmailService
from umbrella_mailbox.orchestrator import RetrievalOrchestrator


@pytest.fixture
def gmail_session() -> FakeGmailSession:
    return FakeGmailSession([gmail_message("m1"), gmail_message("m2")])


@pytest.fixture
def client(make_gmail_adapter, make_outlook_adapter, gmail_session) -> TestClient:
    orchestrator = RetrievalOrchestrator({
        EmailService.GMAIL: make_gmail_adapter(gmail_session),
        EmailService.OUTLOOK: make_outlook_adapter(
            FakeGraphSession(delete_error=ProviderError("Outlook", "Service Unavailable", status_code=503))
        ),
    })
    return TestClient(create_app(orchestrator))


def _wire_email(message_id: str, service: str) -> dict:
    return {
        "id": message_id,
        "service": service,
        "from": "alice@example.com",
        "to": ["bob@example.com"],
        "sentDateTime": "2024-01-01T10:00:00Z",
        "subject": "Hello",
        "body": "",
        "attachments": [],
    }


class TestHealth:
    def test_health(self, client: TestClient):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {
            "service": "umbrella-mailbox",
            "supported_services": ["Gmail", "Outlook"],
        }


class TestFetch:
    def test_fetch(self, client: TestClient):
        resp = client.post("/v1/gmail/emails:fetch", json={"startIndex": 0, "numberOfEmails": 5})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["count"] == 2
        assert body["message"] == "Last batch retrieved"
        assert body["service"] == "Gmail"
        assert {e["id"] for e in body["emails"]} == {"m1", "m2"}
        assert "sentDateTime" in body["emails"][0]
        assert "from" in body["emails"][0]

    def test_invalid_request_is_failure_envelope(self, client: TestClient):
        resp = client.post("/v1/Gmail/emails:fetch", json={"numberOfEmails": 0})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is False
        assert body["emails"] == []

    def test_custom_folder_without_handle_is_failure_envelope(self, client: TestClient):
        resp = client.post(
            "/v1/Gmail/emails:fetch",
            json={"numberOfEmails": 2, "folder": {"folderType": "Custom", "service": "Gmail"}},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is False
        assert body["emails"] == []
        assert "requires a provider handle" in body["message"]

    def test_unknown_service_404(self, client: TestClient):
        resp = client.post("/v1/yahoo/emails:fetch", json={"numberOfEmails": 5})
        assert resp.status_code == 404


class TestDelete:
    def test_deleted(self, client: TestClient, gmail_session: FakeGmailSession):
        resp = client.post("/v1/emails:delete", json=_wire_email("m1", "Gmail"))
        assert resp.status_code == 200
        assert resp.json()["status"] == "deleted"
        assert ("delete", "m1") in gmail_session.calls

    def test_rejected_409(self, client: TestClient):
        resp = client.post("/v1/emails:delete", json=_wire_email("", "Gmail"))
        assert resp.status_code == 409
        assert resp.json() == {"status": "rejected", "reason": "Email id is empty"}

    def test_provider_failure_502(self, client: TestClient):
        resp = client.post("/v1/emails:delete", json=_wire_email("g1", "Outlook"))
        assert resp.status_code == 502
        assert resp.json()["status"] == "failed"
        assert "Service Unavailable" in resp.json()["reason"]

    def test_malformed_email_422(self, client: TestClient):
        resp = client.post("/v1/emails:delete", json={"id": "x"})
        assert resp.status_code == 422
