"""
API request and response models for SessionKeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Every session endpoint answers with the same envelope:
    {"data": true,  "errors": null}        on success
    {"data": false, "errors": "<message>"} on failure
"""

from typing import Optional

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /login.

    Email format is checked by AuthenticationService after trimming, not here,
    so a malformed address yields the service's ValidationError message.
    max_length on password is a character cap only. Multibyte passwords can
    still exceed bcrypt's 72-byte limit, which the service rejects with 400.
    """

    email: str = Field(max_length=320)
    password: str = Field(max_length=72)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class BoolResponse(BaseModel):
    data: bool
    errors: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
