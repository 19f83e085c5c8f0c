"""
auth/service.py -- Login, logout and session maintenance.

AuthenticationService is the only component that combines the credential
store, the session registry and the cookie codec:

  create_session(email, password)
      trim -> validate email format -> load credential -> bcrypt verify
      -> derive session id -> registry.create_session()

  post_request_hook(session_id)
      Runs after every handled request. Produces the single cookie directive
      for the response: "set" with a freshly encoded token when the request
      ends with an active session, "clear" otherwise.

Session identifiers:
  HMAC-SHA256(secret_key, subject_id), hex. The same user always gets the same
  identifier, so one user holds at most one session and a second login
  overwrites (and extends) the first. Keying the HMAC with the server secret
  means the identifier cannot be computed from the email address alone.

Timing [C1]:
  An unknown email still costs one bcrypt verification (against DUMMY_HASH) so
  response time does not reveal whether the account exists. The HTTP layer
  also gives NotFound and AuthenticationError the same status and message.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass

from email_validator import EmailNotValidError, validate_email

from auth.codec import CookieCodec
from auth.errors import AuthenticationError, NotFound, ValidationError
from auth.models import Session
from auth.passwords import DUMMY_HASH, MAX_PASSWORD_BYTES, password_too_long, verify_password
from auth.sessions import SessionRegistry
from auth.store import CredentialStore

logger = logging.getLogger("sessionkeeper.auth")

SESSION_ID_KEY = "session_id"


@dataclass(frozen=True)
class CookieDirective:
    """What the response should do with the session cookie.

    action is "set" (value carries the encoded token) or "clear" (value is empty).
    """

    action: str
    name: str
    value: str = ""

    @property
    def is_set(self) -> bool:
        return self.action == "set"


class AuthenticationService:
    def __init__(
        self,
        credentials: CredentialStore,
        sessions: SessionRegistry,
        codec: CookieCodec,
        secret_key: str,
    ) -> None:
        self.credentials = credentials
        self.sessions = sessions
        self.codec = codec
        self._id_key = secret_key.encode("utf-8")

    def session_id_for(self, subject_id: str) -> str:
        return hmac.new(self._id_key, subject_id.encode("utf-8"), hashlib.sha256).hexdigest()

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def create_session(self, email: str, password: str) -> str:
        """Verify a credential and open a session for it. Returns the session id.

        Raises:
            ValidationError:     email/password missing, or email malformed,
                                 or password longer than bcrypt accepts.
            NotFound:            no credential stored for the email.
            AuthenticationError: password does not match the stored hash.
            InternalError:       the credential record could not be read.
        """
        trimmed_email = email.strip()
        trimmed_password = password.strip()
        if not trimmed_email:
            raise ValidationError("Email is required.")
        if not trimmed_password:
            raise ValidationError("Password is required.")
        if password_too_long(trimmed_password):
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        try:
            validate_email(trimmed_email, check_deliverability=False)
        except EmailNotValidError as exc:
            logger.warning("Login rejected: malformed email (%s)", exc)
            raise ValidationError("Invalid email address.") from exc

        try:
            credential = self.credentials.read(trimmed_email)
        except NotFound:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            verify_password(trimmed_password, DUMMY_HASH)
            logger.warning("Login failed: unknown credential")
            raise

        if not verify_password(trimmed_password, credential.password_hash):
            logger.warning("Login failed: password mismatch for subject %s", credential.subject_id[:12])
            raise AuthenticationError("password incorrect")

        session_id = self.session_id_for(credential.subject_id)
        self.sessions.create_session(session_id, credential.subject_id)
        logger.info("Session created for subject %s", credential.subject_id[:12])
        return session_id

    def delete_session(self, session_id: str) -> None:
        self.sessions.delete_session(session_id)
        logger.info("Session deleted")

    # ------------------------------------------------------------------
    # Session maintenance
    # ------------------------------------------------------------------

    def read_session(self, session_id: str) -> tuple[Session | None, bool]:
        """Return the registry's (session, found) pair unchanged.

        A miss is not an error here; callers check `found` and the expiry.
        """
        session, found = self.sessions.read_session(session_id)
        if not found:
            logger.debug("Session lookup missed")
        return session, found

    def update_session(self, session_id: str, session: Session) -> Session:
        """Reset the TTL window for a session (upsert)."""
        return self.sessions.update_session(session_id, session)

    def refresh_session(self, session_id: str) -> Session | None:
        """Slide the expiry of an active session; None if missing or expired."""
        return self.sessions.refresh_if_active(session_id)

    def is_active(self, session_id: str) -> bool:
        session, found = self.read_session(session_id)
        return found and session is not None and session.is_active(self.sessions.now())

    # ------------------------------------------------------------------
    # Cookie emission
    # ------------------------------------------------------------------

    def post_request_hook(self, session_id: str | None) -> CookieDirective:
        """Decide the cookie for the response that is about to be sent."""
        if session_id and self.is_active(session_id):
            token = self.codec.encode({SESSION_ID_KEY: session_id})
            return CookieDirective(action="set", name=self.codec.name, value=token)
        return CookieDirective(action="clear", name=self.codec.name)
