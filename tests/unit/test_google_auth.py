from __future__ import annotations

from types import SimpleNamespace

import pytest

from nearbook.contracts.calendar_v1 import Calendar
from nearbook.core.config import config
from nearbook.core.errors import UpstreamUnavailableError
from nearbook.services import google_auth
from nearbook.services.google_service import SCOPES

CALENDARS = [
    Calendar(id="me@example.com", summary="Me", accessRole="owner", primary=True),
    Calendar(id="crew@group.calendar.google.com", summary="Crew", accessRole="reader"),
]


@pytest.fixture
def signed_in(monkeypatch, tmp_path):
    """Stubs the browser flow and token file; returns the saved-token record."""
    monkeypatch.setattr(config, "google_client_id", "client-id")
    monkeypatch.setattr(config, "google_client_secret", "client-secret")
    monkeypatch.setattr(config, "google_calendar_default_id", "primary")
    monkeypatch.setattr(config, "google_calendar_tokens_path", tmp_path / "tokens.json")

    creds = SimpleNamespace(scopes=list(SCOPES))
    flow = SimpleNamespace(run_local_server=lambda port: creds)
    monkeypatch.setattr(
        google_auth.InstalledAppFlow, "from_client_config", lambda cfg, scopes: flow
    )
    monkeypatch.setattr(
        google_auth,
        "GoogleService",
        lambda credentials: SimpleNamespace(list_calendars=lambda: CALENDARS),
    )
    saved: dict = {}

    def fake_save(path, c, default_calendar_id):
        saved.update(path=path, creds=c, default_calendar_id=default_calendar_id)

    monkeypatch.setattr(google_auth, "_save_tokens", fake_save)
    saved["creds_obj"] = creds
    return saved


def test_missing_client_secrets_stops_before_sign_in(monkeypatch, capsys):
    monkeypatch.setattr(config, "google_client_id", "")
    assert google_auth.run_google_auth() == 1
    assert "GOOGLE_CLIENT_ID" in capsys.readouterr().out


@pytest.mark.parametrize(
    "answer, expected",
    [("2", "crew@group.calendar.google.com"), ("a", "all"), ("", "primary"), ("9", "primary")],
)
def test_default_calendar_choice(signed_in, monkeypatch, answer, expected):
    monkeypatch.setattr("builtins.input", lambda prompt="": answer)
    assert google_auth.run_google_auth() == 0
    assert signed_in["default_calendar_id"] == expected
    assert signed_in["path"] == config.google_calendar_tokens_path


def test_calendar_list_failure_keeps_configured_default(signed_in, monkeypatch, capsys):
    def failing(credentials):
        def list_calendars():
            raise UpstreamUnavailableError("HTTP 503")

        return SimpleNamespace(list_calendars=list_calendars)

    monkeypatch.setattr(google_auth, "GoogleService", failing)
    assert google_auth.run_google_auth() == 0
    assert signed_in["default_calendar_id"] == "primary"
    assert "Could not list calendars" in capsys.readouterr().out


def test_sign_in_without_calendar_scope_saves_nothing(signed_in, capsys):
    signed_in["creds_obj"].scopes = ["openid"]
    assert google_auth.run_google_auth() == 1
    assert "path" not in signed_in
    assert "calendar.readonly" in capsys.readouterr().out
