"""Tests for the ``python -m umbrella_mailbox`` entry point."""

from __future__ import annotations

import json

import pytest

from tests.conftest import FakeGmailSession, gmail_message

from umbrella_mailbox import __main__ as cli
from umbrella_mailbox.models import EmailService, FolderType
from umbrella_mailbox.orchestrator import RetrievalOrchestrator
from umbrella_mailbox.providers import GmailAdapter
from umbrella_mailbox.rate_limit import RateLimiter


@pytest.fixture
def gmail_env(monkeypatch):
    monkeypatch.setenv("MAILBOX_ENABLED_SERVICES", '["Gmail"]')
    monkeypatch.setenv("MAILBOX_LOG_JSON", "false")
    monkeypatch.setenv("GMAIL_MAILBOX", "user@example.com")
    monkeypatch.setenv("GMAIL_CLIENT_ID", "cid")
    monkeypatch.setenv("GMAIL_CLIENT_SECRET", "shh")


@pytest.fixture
def session(monkeypatch, gmail_env) -> FakeGmailSession:
    session = FakeGmailSession([gmail_message("m1")])

    def _from_config(config, sessions=None):
        return RetrievalOrchestrator({
            EmailService.GMAIL: GmailAdapter(session, limiter=RateLimiter(0)),
        })

    monkeypatch.setattr(cli.RetrievalOrchestrator, "from_config", staticmethod(_from_config))
    return session


class TestFetch:
    def test_prints_result_json(self, session, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["fetch", "gmail", "--count", "5"])
        assert excinfo.value.code == 0
        out = json.loads(capsys.readouterr().out)
        assert out["success"] is True
        assert out["count"] == 1
        assert out["message"] == "Last batch retrieved"
        assert session.closed is True

    def test_folder_options(self, session, capsys):
        with pytest.raises(SystemExit):
            cli.main(["fetch", "Gmail", "--folder", "sent", "--count", "1"])
        assert session.calls[0][1] == "SENT"

    def test_folder_id_is_custom(self, session, capsys):
        with pytest.raises(SystemExit):
            cli.main(["fetch", "Gmail", "--folder-id", "Label_7", "--count", "1"])
        assert session.calls[0][1] == "Label_7"

    def test_invalid_count(self, session, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["fetch", "Gmail", "--count", "0"])
        assert excinfo.value.code == 1
        assert "Invalid request" in capsys.readouterr().err

    def test_unknown_service_is_usage_error(self, gmail_env, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["fetch", "yahoo"])
        assert excinfo.value.code == 2


class TestConfigurationErrors:
    def test_missing_provider_settings(self, monkeypatch, capsys):
        monkeypatch.setenv("MAILBOX_ENABLED_SERVICES", '["Outlook"]')
        monkeypatch.delenv("OUTLOOK_CLIENT_ID", raising=False)
        monkeypatch.delenv("OUTLOOK_CLIENT_SECRET", raising=False)
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["fetch", "Outlook"])
        assert excinfo.value.code == 1
        assert "Configuration error" in capsys.readouterr().err


class TestParser:
    def test_folder_type_case_insensitive(self):
        args = cli._build_parser().parse_args(["fetch", "owa", "--folder", "TRASH"])
        assert args.service is EmailService.OWA
        assert args.folder is FolderType.TRASH
