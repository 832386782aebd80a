from __future__ import annotations

import dataclasses
from datetime import UTC
from types import SimpleNamespace

import pytest

from nearbook.core.bootstrap import Geodata, build_geodata, build_orchestrator
from nearbook.core.config import Config
from nearbook.orchestrators.booking.orchestrator import user_tz
from nearbook.services.maps_client import GoogleMapsClient, NominatimGeocoder


@pytest.fixture
def clean_env(monkeypatch):
    for key in (
        "GOOGLE_MAPS_API_KEY",
        "ROUTING_API_KEY",
        "GEOCODING_API_KEY",
        "GEOCODER_PROVIDER",
        "DISTANCE_STRATEGY",
        "CANDIDATE_WINDOW_DAYS",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_maps_key_backs_both_routing_and_geocoding(clean_env):
    clean_env.setenv("GOOGLE_MAPS_API_KEY", "shared")
    cfg = Config.load()
    assert cfg.routing_api_key == "shared"
    assert cfg.geocoding_api_key == "shared"


def test_unknown_choices_fall_back_to_defaults(clean_env):
    clean_env.setenv("DISTANCE_STRATEGY", "teleport")
    clean_env.setenv("GEOCODER_PROVIDER", "Nominatim")
    cfg = Config.load()
    assert cfg.distance_strategy == "auto"
    assert cfg.geocoder_provider == "nominatim"


def test_validate_reports_problems(clean_env):
    cfg = dataclasses.replace(
        Config.load(), candidate_window_days=-1, distance_strategy="driving", routing_api_key=""
    )
    problems = cfg.validate()
    assert any("CANDIDATE_WINDOW_DAYS" in p for p in problems)
    assert any("DISTANCE_STRATEGY=driving" in p for p in problems)


def test_validate_reports_unknown_timezone(clean_env):
    cfg = dataclasses.replace(Config.load(), user_timezone="Europe/Lundon")
    assert any("USER_TIMEZONE" in p and "Europe/Lundon" in p for p in cfg.validate())
    ok = dataclasses.replace(Config.load(), user_timezone="Europe/London")
    assert not any("USER_TIMEZONE" in p for p in ok.validate())


def test_unknown_timezone_setting_logs_and_uses_utc(caplog):
    with caplog.at_level("WARNING", logger="nearbook"):
        assert user_tz("Europe/Lundon") is UTC
    assert "Europe/Lundon" in caplog.text
    assert user_tz("") is UTC


@pytest.mark.asyncio
async def test_build_geodata_from_keys(clean_env):
    cfg = dataclasses.replace(
        Config.load(), routing_api_key="r", geocoding_api_key="g", geocoder_provider="google"
    )
    geodata = build_geodata(cfg)
    try:
        assert isinstance(geodata.routing, GoogleMapsClient)
        assert geodata.geocoder is geodata.routing
    finally:
        await geodata.close()


@pytest.mark.asyncio
async def test_build_geodata_with_nominatim_and_no_keys(clean_env):
    cfg = dataclasses.replace(
        Config.load(), routing_api_key="", geocoding_api_key="", geocoder_provider="nominatim"
    )
    geodata = build_geodata(cfg)
    try:
        assert geodata.routing is None
        assert isinstance(geodata.geocoder, NominatimGeocoder)
    finally:
        await geodata.close()


@pytest.mark.asyncio
async def test_build_geodata_without_any_service(clean_env):
    cfg = dataclasses.replace(
        Config.load(), routing_api_key="", geocoding_api_key="", geocoder_provider="none"
    )
    geodata = build_geodata(cfg)
    assert geodata.routing is None and geodata.geocoder is None
    await geodata.close()


def test_build_orchestrator_searches_the_calendar_chosen_at_sign_in(clean_env):
    events = SimpleNamespace(is_connected=True, default_calendar_id="crew@group.calendar.google.com")
    cfg = dataclasses.replace(Config.load(), google_calendar_default_id="primary")

    orchestrator, _ = build_orchestrator(cfg, events=events, geodata=Geodata())

    assert orchestrator.settings.default_calendar_id == "crew@group.calendar.google.com"
