"""
api/routes/session.py -- Login and logout endpoints.

Routes:
  POST /login   -- verify email/password, open a session
  GET  /logout  -- close the caller's session

Neither route writes a cookie itself. Both record the outcome on
request.state.session_id and SessionMiddleware's post-request hook emits the
Set-Cookie header (set for an active session, clear otherwise).

Security:
  [H2] POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  [C1] AuthenticationService.create_session() equalizes bcrypt timing for
       unknown emails -- never inline the store lookup in a route.
  [M5] Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter

from api.models import BoolResponse, LoginRequest
from auth.errors import ValidationError
from auth.service import AuthenticationService


def build_router(limiter: Limiter, login_rate_limit: str) -> APIRouter:
    """Return the session router with the login limit bound to `limiter`."""
    router = APIRouter()

    @router.post("/login", response_model=BoolResponse)
    @limiter.limit(login_rate_limit)  # [H2]
    def login(request: Request, body: LoginRequest) -> JSONResponse:
        """Authenticate with email and password and open a session.

        Failures raise AuthError subclasses; api/main.py maps them to the
        error envelope. Unknown email and wrong password share one response.
        """
        service: AuthenticationService = request.app.state.auth_service
        request.state.session_id = service.create_session(body.email, body.password)
        resp = JSONResponse(content=BoolResponse(data=True).model_dump())
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    @router.get("/logout", response_model=BoolResponse)
    def logout(request: Request) -> JSONResponse:
        """Delete the caller's session. 400 when the request carries no active session."""
        service: AuthenticationService = request.app.state.auth_service
        session_id = getattr(request.state, "session_id", None)
        if not session_id:
            raise ValidationError("No active session.")
        service.delete_session(session_id)
        request.state.session_id = None
        return JSONResponse(content=BoolResponse(data=True).model_dump())

    return router
