"""
auth/middleware.py -- Per-request session resolution and cookie emission.

SessionMiddleware wraps every route:

  before the handler
    1. No session cookie                    -> anonymous request.
    2. Cookie fails to decode               -> anonymous request (fail-open
                                               to anonymous, never a 4xx).
    3. Decoded session id missing/expired   -> anonymous request; the stale
                                               registry entry is left alone.
    4. Active session                       -> expiry slides forward and the
                                               id is published on request.state.

  after the handler
    AuthenticationService.post_request_hook() turns request.state.session_id
    into exactly one Set-Cookie header: the encoded token, or a clearing cookie.

request.state is the request-scoped carrier between the middleware and the
handlers. Login writes the new session id into it and logout sets it back to
None, so the hook sees the outcome of the handler, not just the inbound cookie.

Layer rule: auth/middleware.py may import from starlette because it is part of
the ASGI stack; it still does not import from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from auth.errors import CookieDecodeError
from auth.service import SESSION_ID_KEY, AuthenticationService, CookieDirective

logger = logging.getLogger("sessionkeeper.auth")


def apply_cookie_directive(response: Response, directive: CookieDirective, secure: bool = True) -> None:
    """Write the directive onto the response as a Set-Cookie header.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": cookie sent on same-site navigations and top-level GETs,
        not on cross-site POST.
    A set cookie has no max_age, so it lives for the browser session while the
    server-side TTL governs validity. A cleared cookie gets Max-Age=-1 and an
    Expires in the past so every browser drops it.
    """
    if directive.is_set:
        response.set_cookie(
            directive.name,
            value=directive.value,
            path="/",
            secure=secure,
            httponly=True,
            samesite="lax",
        )
        return
    response.set_cookie(
        directive.name,
        value="",
        max_age=-1,
        expires=datetime.now(timezone.utc) - timedelta(hours=10),
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )


class SessionMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, service: AuthenticationService, secure_cookies: bool = True) -> None:
        super().__init__(app)
        self.service = service
        self.secure_cookies = secure_cookies

    def resolve_session_id(self, request: Request) -> str | None:
        """Return the active session id carried by the request, or None."""
        token = request.cookies.get(self.service.codec.name)
        if not token:
            return None
        try:
            payload = self.service.codec.decode(token)
        except CookieDecodeError as exc:
            logger.info("Ignoring undecodable session cookie: %s", exc.detail)
            return None
        session_id = payload.get(SESSION_ID_KEY)
        if not session_id:
            return None
        if self.service.refresh_session(session_id) is None:
            logger.debug("Session cookie refers to a missing or expired session")
            return None
        return session_id

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.session_id = self.resolve_session_id(request)
        response = await call_next(request)
        directive = self.service.post_request_hook(getattr(request.state, "session_id", None))
        apply_cookie_directive(response, directive, secure=self.secure_cookies)
        return response
