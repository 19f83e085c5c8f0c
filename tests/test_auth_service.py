"""Unit tests for auth/service.py -- AuthenticationService.

Covers:
- Login scenario: correct password opens a session, wrong password raises
  AuthenticationError, unknown email raises NotFound, malformed input raises
  ValidationError
- Session id derivation: deterministic per subject, keyed by the secret
- Re-login overwrites and extends the existing session
- read/update/delete delegate to the registry without escalating misses
- post_request_hook: set for active sessions, clear otherwise
- Passwords never reach the logs
"""

from __future__ import annotations

import logging
from datetime import timedelta

import pytest

from api.main import build_service
from auth.errors import AuthenticationError, InternalError, NotFound, ValidationError
from auth.models import Credential
from auth.service import SESSION_ID_KEY, AuthenticationService
from auth.sessions import SessionRegistry
from auth.store import CredentialStore
from conftest import TEST_EMAIL, TEST_PASSWORD, TTL, FakeClock
from core.config import Settings


class TestCreateSession:
    def test_scenario_login_read_delete(
        self, service: AuthenticationService, stored_credential: Credential, clock: FakeClock
    ) -> None:
        session_id = service.create_session(TEST_EMAIL, TEST_PASSWORD)
        assert session_id == service.session_id_for(stored_credential.subject_id)

        session, found = service.read_session(session_id)
        assert found is True
        assert session.is_active(clock())
        assert session.expires_at == clock() + TTL
        assert session.credential_ref == stored_credential.subject_id

        service.delete_session(session_id)
        _, found = service.read_session(session_id)
        assert found is False

    def test_wrong_password_raises_authentication_error(
        self, service: AuthenticationService, stored_credential: Credential
    ) -> None:
        with pytest.raises(AuthenticationError):
            service.create_session(TEST_EMAIL, "wrong")
        assert len(service.sessions) == 0

    def test_unknown_email_raises_not_found(self, service: AuthenticationService) -> None:
        with pytest.raises(NotFound):
            service.create_session("nobody@test.com", TEST_PASSWORD)

    def test_unknown_email_still_runs_bcrypt(self, service: AuthenticationService, monkeypatch) -> None:
        """Timing equalization: the dummy hash is verified before NotFound propagates."""
        calls: list[str] = []

        def spy(plain: str, hashed: str) -> bool:
            calls.append(hashed)
            return False

        monkeypatch.setattr("auth.service.verify_password", spy)
        with pytest.raises(NotFound):
            service.create_session("nobody@test.com", TEST_PASSWORD)
        assert len(calls) == 1

    @pytest.mark.parametrize("email", ["not-an-email", "u@", "@test.com", "u@@test.com", "u@test"])
    def test_malformed_email_raises_validation_error(self, service: AuthenticationService, email: str) -> None:
        with pytest.raises(ValidationError):
            service.create_session(email, TEST_PASSWORD)

    @pytest.mark.parametrize(("email", "password"), [("", TEST_PASSWORD), ("   ", TEST_PASSWORD), (TEST_EMAIL, "  ")])
    def test_missing_fields_raise_validation_error(
        self, service: AuthenticationService, email: str, password: str
    ) -> None:
        with pytest.raises(ValidationError):
            service.create_session(email, password)

    def test_whitespace_around_inputs_is_trimmed(
        self, service: AuthenticationService, stored_credential: Credential
    ) -> None:
        session_id = service.create_session(f"  {TEST_EMAIL}\t", f" {TEST_PASSWORD} ")
        assert session_id == service.session_id_for(stored_credential.subject_id)

    def test_corrupt_record_raises_internal_error(
        self, service: AuthenticationService, store: CredentialStore
    ) -> None:
        store.path_for(TEST_EMAIL).write_text("[]")
        with pytest.raises(InternalError):
            service.create_session(TEST_EMAIL, TEST_PASSWORD)

    def test_relogin_overwrites_and_extends(
        self, service: AuthenticationService, stored_credential: Credential, clock: FakeClock
    ) -> None:
        first = service.create_session(TEST_EMAIL, TEST_PASSWORD)
        clock.advance(minutes=10)
        second = service.create_session(TEST_EMAIL, TEST_PASSWORD)
        assert first == second
        session, _ = service.read_session(second)
        assert session.expires_at == clock() + TTL
        assert len(service.sessions) == 1


class TestSessionIdDerivation:
    def test_differs_per_subject(self, service: AuthenticationService) -> None:
        assert service.session_id_for("subject-a") != service.session_id_for("subject-b")

    def test_keyed_by_secret(self, tmp_path, registry: SessionRegistry) -> None:
        a = build_service(Settings(secret_key="a" * 40, users_path=str(tmp_path / "a")), registry=registry)
        b = build_service(Settings(secret_key="b" * 40, users_path=str(tmp_path / "b")), registry=registry)
        assert a.session_id_for("subject") != b.session_id_for("subject")

    def test_not_the_subject_id(self, service: AuthenticationService, stored_credential: Credential) -> None:
        assert service.session_id_for(stored_credential.subject_id) != stored_credential.subject_id


class TestDelegation:
    def test_read_missing_is_not_an_error(self, service: AuthenticationService) -> None:
        session, found = service.read_session("missing")
        assert (session, found) == (None, False)

    def test_update_upserts_with_fresh_window(
        self, service: AuthenticationService, stored_credential: Credential, clock: FakeClock
    ) -> None:
        session_id = service.create_session(TEST_EMAIL, TEST_PASSWORD)
        session, _ = service.read_session(session_id)
        clock.advance(minutes=25)
        service.update_session(session_id, session)
        refreshed, _ = service.read_session(session_id)
        assert refreshed.expires_at == clock() + TTL

    def test_delete_missing_is_idempotent(self, service: AuthenticationService) -> None:
        service.delete_session("missing")
        service.delete_session("missing")


class TestPostRequestHook:
    def test_no_session_id_clears(self, service: AuthenticationService) -> None:
        directive = service.post_request_hook(None)
        assert directive.action == "clear"
        assert directive.name == "session_cookie"
        assert directive.value == ""

    def test_unknown_session_id_clears(self, service: AuthenticationService) -> None:
        assert service.post_request_hook("missing").action == "clear"

    def test_active_session_sets_encoded_cookie(
        self, service: AuthenticationService, stored_credential: Credential
    ) -> None:
        session_id = service.create_session(TEST_EMAIL, TEST_PASSWORD)
        directive = service.post_request_hook(session_id)
        assert directive.is_set
        assert service.codec.decode(directive.value) == {SESSION_ID_KEY: session_id}

    def test_expired_session_clears(
        self, service: AuthenticationService, stored_credential: Credential, clock: FakeClock
    ) -> None:
        session_id = service.create_session(TEST_EMAIL, TEST_PASSWORD)
        clock.advance(seconds=TTL.total_seconds() + 1)
        assert service.post_request_hook(session_id).action == "clear"


class TestLogging:
    def test_failed_login_does_not_log_password(
        self, service: AuthenticationService, stored_credential: Credential, caplog
    ) -> None:
        with caplog.at_level(logging.DEBUG, logger="sessionkeeper"):
            with pytest.raises(AuthenticationError):
                service.create_session(TEST_EMAIL, "hunter2-wrong")
        assert "Login failed" in caplog.text
        assert "hunter2-wrong" not in caplog.text


def test_ttl_comes_from_settings(tmp_path) -> None:
    settings = Settings(secret_key="c" * 40, users_path=str(tmp_path), session_ttl_seconds=90)
    assert build_service(settings).sessions.ttl == timedelta(seconds=90)


def test_injected_empty_registry_is_kept(settings: Settings, clock: FakeClock) -> None:
    """An empty registry has len() == 0; build_service must still use it."""
    registry = SessionRegistry(ttl=TTL, clock=clock)
    assert len(registry) == 0
    assert build_service(settings, registry=registry).sessions is registry


class TestPasswordByteLimit:
    def test_multibyte_password_over_72_bytes_is_rejected(self, service: AuthenticationService) -> None:
        # 40 characters, 80 bytes in UTF-8
        with pytest.raises(ValidationError) as exc_info:
            service.create_session(TEST_EMAIL, "é" * 40)
        assert exc_info.value.message == "Password must be at most 72 bytes."

    def test_exactly_72_bytes_reaches_the_store(self, service: AuthenticationService) -> None:
        with pytest.raises(NotFound):
            service.create_session("nobody@test.com", "é" * 36)
