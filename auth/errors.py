"""
auth/errors.py -- Error taxonomy for the authentication core.

Every failure the core reports is an AuthError subclass. Each carries the HTTP
status the API boundary maps it to and a message that is safe to show a client.
Anything that is not an AuthError is unexpected and the boundary answers it
with the NotFound status (fail-closed default, see api/main.py).

AuthenticationError deliberately has no status of its own: it inherits the
404 default so a wrong password and an unknown email look the same on the wire.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all authentication core failures."""

    status_code: int = 404
    message: str = "Resource not found."

    def __init__(self, detail: str | None = None) -> None:
        # detail is for logs; message is what the client sees.
        self.detail = detail or self.message
        super().__init__(self.detail)


class ValidationError(AuthError):
    """Malformed email or password input."""

    status_code = 400
    message = "Bad request."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail)
        # Validation messages describe the caller's own input, so they are safe to echo.
        if detail:
            self.message = detail


class NotFound(AuthError):
    """Unknown credential or session."""

    message = "Invalid email or password."


class AuthenticationError(AuthError):
    """Supplied password does not match the stored hash."""

    message = "Invalid email or password."


class InternalError(AuthError):
    """I/O, encoding or other unexpected failure inside a component."""

    status_code = 500
    message = "Internal server error."


class CookieDecodeError(AuthError):
    """A cookie token failed authentication, was malformed or has aged out.

    detail may carry library error text, so it never becomes the client message.
    """

    status_code = 400
    message = "Bad request."
