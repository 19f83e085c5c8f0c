"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class. Credential and Session own the domain shape; the store,
registry and service do the work. Credential carries two small constructors
(create / from_record) because the on-disk JSON layout is part of its contract.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime

from auth.errors import ValidationError
from auth.passwords import MAX_PASSWORD_BYTES, hash_password, password_too_long


def normalize_email(email: str) -> str:
    """Canonical form used for key derivation: surrounding whitespace stripped, lowercased."""
    return email.strip().lower()


def derive_subject_id(email: str) -> str:
    """Return the stable subject identifier for an email address.

    SHA-256 of the normalized email, hex encoded. Doubles as the credential
    storage key, so the same address always maps to the same record file.
    """
    return hashlib.sha256(normalize_email(email).encode("utf-8")).hexdigest()


@dataclass
class Credential:
    """A persisted email/password-hash record.

    subject_id is derived from email (see derive_subject_id) and is never
    chosen by the caller. created_at is stored as an RFC 1123 string in the
    JSON record, e.g. "Mon, 02 Jan 2006 15:04:05 GMT".
    """

    subject_id: str
    email: str
    password_hash: str
    created_at: datetime

    @classmethod
    def create(cls, email: str, password: str) -> Credential:
        """Trim inputs, hash the password and stamp created_at.

        Raises ValidationError if the trimmed password is over MAX_PASSWORD_BYTES.
        """
        trimmed_email = email.strip()
        trimmed_password = password.strip()
        if password_too_long(trimmed_password):
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        return cls(
            subject_id=derive_subject_id(trimmed_email),
            email=trimmed_email,
            password_hash=hash_password(trimmed_password),
            created_at=datetime.now(timezone.utc).replace(microsecond=0),
        )

    def to_record(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "email": self.email,
            "password_hash": self.password_hash,
            "created_at": format_datetime(self.created_at.astimezone(timezone.utc), usegmt=True),
        }

    @classmethod
    def from_record(cls, record: dict) -> Credential:
        """Build a Credential from its JSON record. Raises KeyError/ValueError/TypeError on bad input."""
        return cls(
            subject_id=record["subject_id"],
            email=record["email"],
            password_hash=record["password_hash"],
            created_at=parsedate_to_datetime(record["created_at"]),
        )


@dataclass
class Session:
    """A server-side session record.

    credential_ref points back at the Credential (its subject_id). A session
    is active iff now < expires_at; "expired" is computed, never stored.
    """

    session_id: str
    credential_ref: str
    created_at: datetime
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at
