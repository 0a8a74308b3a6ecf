# tests/test_api_key_dependency.py
from http import HTTPStatus

import pytest

from meeting_booker.api.dependencies import api_key as auth_module
from meeting_booker.services import booking_service
from meeting_booker.services.booking_orchestrator import BookingOrchestrator


@pytest.fixture(autouse=True)
def offline_orchestrator(monkeypatch, settings, fakes_factory):
    provisioner, composer = fakes_factory()
    monkeypatch.setattr(
        booking_service,
        "build_orchestrator",
        lambda: BookingOrchestrator(provisioner, composer, calendar_host=settings.OUTLOOK_HOST),
    )


class DummySettingsProd:
    APP_ENV = "prod"
    BOOKING_API_KEY = "supersecret"


class DummySettingsProdNoKey:
    APP_ENV = "prod"
    BOOKING_API_KEY = None


class DummySettingsLocalWithKey:
    APP_ENV = "local"
    BOOKING_API_KEY = "localkey"


def test_process_401_when_key_missing_in_prod(monkeypatch, client, settings):
    """
    In a non-local env with BOOKING_API_KEY set, calling /process without the
    X-Booking-Api-Key header should return 401.
    """
    monkeypatch.setattr(auth_module, "get_settings", lambda: DummySettingsProd())

    resp = client.post("/process", json={"session_id": "abc"})
    assert resp.status_code == HTTPStatus.UNAUTHORIZED
    assert "invalid or missing" in resp.json()["detail"].lower()


def test_process_401_when_key_wrong_in_prod(monkeypatch, client, settings):
    monkeypatch.setattr(auth_module, "get_settings", lambda: DummySettingsProd())

    resp = client.post(
        "/process",
        json={"session_id": "abc"},
        headers={"X-Booking-Api-Key": "wrong-key"},
    )
    assert resp.status_code == HTTPStatus.UNAUTHORIZED


def test_process_passes_auth_when_key_correct_in_prod(monkeypatch, client, settings):
    """
    Correct key => request reaches the handler, which rejects the unknown session.
    """
    monkeypatch.setattr(auth_module, "get_settings", lambda: DummySettingsProd())

    resp = client.post(
        "/process",
        json={"session_id": "abc"},
        headers={"X-Booking-Api-Key": "supersecret"},
    )
    assert resp.status_code == HTTPStatus.BAD_REQUEST
    assert resp.json()["detail"] == "Session expired. Please re-upload."


def test_misconfigured_prod_returns_500(monkeypatch, client, settings):
    monkeypatch.setattr(auth_module, "get_settings", lambda: DummySettingsProdNoKey())

    resp = client.post("/process", json={"session_id": "abc"})
    assert resp.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert "not configured" in resp.json()["detail"]


def test_local_env_enforces_key_when_set(monkeypatch, client, settings):
    monkeypatch.setattr(auth_module, "get_settings", lambda: DummySettingsLocalWithKey())

    assert client.post("/process", json={"session_id": "abc"}).status_code == HTTPStatus.UNAUTHORIZED
    resp = client.post(
        "/process",
        json={"session_id": "abc"},
        headers={"X-Booking-Api-Key": "localkey"},
    )
    assert resp.status_code == HTTPStatus.BAD_REQUEST


def test_health_is_not_protected(monkeypatch, client, settings):
    monkeypatch.setattr(auth_module, "get_settings", lambda: DummySettingsProd())

    assert client.get("/health").status_code == HTTPStatus.OK
