"""
tests/conftest.py -- Shared test fixtures for SessionKeeper.

This module provides:
  - FakeClock: controllable clock injected into SessionRegistry so expiry
    scenarios run without sleeping
  - settings: isolated Settings with a temp credential directory
  - store / stored_credential: a CredentialStore seeded with u@test.com/secret
  - service: AuthenticationService built from settings + the fake-clock registry
  - client: TestClient over the real FastAPI app

Design: the TestClient base_url is https://testserver. The session cookie is
Secure, and httpx's cookie jar only replays Secure cookies over https, so the
jar-driven login -> request -> logout flows need an https origin.
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api.main import build_service, create_app
from auth.models import Credential
from auth.service import AuthenticationService
from auth.sessions import SessionRegistry
from auth.store import CredentialStore
from core.config import Settings

TEST_SECRET = "0f3d9c2a7b5e41c8a6d2f0e9b7c4a1d35e8f2b6c9a0d4e7f1b3c5a8d2e6f9b0c"
TEST_EMAIL = "u@test.com"
TEST_PASSWORD = "secret"
TTL = timedelta(minutes=20)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        secret_key=TEST_SECRET,
        users_path=str(tmp_path / "users"),
        session_ttl_seconds=int(TTL.total_seconds()),
        rate_limit_enabled=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(ttl=TTL, clock=clock)


@pytest.fixture
def store(settings: Settings) -> CredentialStore:
    return CredentialStore(settings.users_path)


@pytest.fixture
def stored_credential(store: CredentialStore) -> Credential:
    credential = Credential.create(TEST_EMAIL, TEST_PASSWORD)
    store.write(credential)
    return credential


@pytest.fixture
def service(settings: Settings, registry: SessionRegistry) -> AuthenticationService:
    return build_service(settings, registry=registry)


@pytest.fixture
def client(settings: Settings, service: AuthenticationService) -> Generator[TestClient, None, None]:
    app = create_app(settings, service=service)
    with TestClient(app, base_url="https://testserver", raise_server_exceptions=True) as c:
        yield c


def set_cookie_headers(resp) -> list[str]:
    """Return every Set-Cookie header value on an httpx response."""
    return resp.headers.get_list("set-cookie")
