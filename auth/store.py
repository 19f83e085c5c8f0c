"""
auth/store.py -- File-backed persistence for Credential records.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
Credential.to_record / Credential.from_record are the mappers. Route and
service code never touches the filesystem directly.

Layout: one JSON document per subject at
    <users_path>/<sha256(normalized email)>.json
The filename is the credential's subject_id, so a record can be found from an
email address alone without an index.

Concurrency:
  Writes go to a temp file in the same directory and are moved into place with
  os.replace(), which is atomic on POSIX and Windows. A reader therefore sees
  either the old record or the new one, never a half-written file. Writers to
  the same key are additionally serialized by a per-key lock so two concurrent
  writes cannot interleave their temp-file/rename pairs.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from auth.errors import InternalError, NotFound
from auth.models import Credential, derive_subject_id

logger = logging.getLogger("sessionkeeper.store")

_EXTENSION = ".json"


class CredentialStore:
    """Repository for Credential records.

    Usage:
        store = CredentialStore("./data/users")
        store.write(Credential.create("u@test.com", "secret"))
        cred = store.read("u@test.com")
        store.delete("u@test.com")
    """

    def __init__(self, users_path: str | Path) -> None:
        self.base_path = Path(users_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def path_for(self, email: str) -> Path:
        """Return the record location for an email: base path + derived key + extension."""
        return self.base_path / f"{derive_subject_id(email)}{_EXTENSION}"

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def write(self, credential: Credential) -> None:
        """Persist a credential, replacing any existing record for the same email.

        Raises InternalError on any I/O failure. The temp file is removed if
        the write does not complete.
        """
        path = self.path_for(credential.email)
        payload = json.dumps(credential.to_record(), indent=2)
        with self._lock_for(path.stem):
            fd, tmp_name = tempfile.mkstemp(dir=self.base_path, prefix=f".{path.stem}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except OSError as exc:
                logger.error("Credential write failed for %s: %s", path.name, exc)
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
                raise InternalError(f"credential write failed: {exc}") from exc
        logger.info("Credential record written (%s)", path.name)

    def read(self, email: str) -> Credential:
        """Load the credential for an email.

        Raises NotFound if no record exists for the derived key, InternalError
        if the file cannot be read or does not decode to a Credential.
        """
        path = self.path_for(email)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NotFound(f"no credential for key {path.stem}") from exc
        except OSError as exc:
            logger.error("Credential read failed for %s: %s", path.name, exc)
            raise InternalError(f"credential read failed: {exc}") from exc
        try:
            return Credential.from_record(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("Credential record %s is corrupt: %s", path.name, exc)
            raise InternalError(f"credential decode failed: {exc}") from exc

    def delete(self, email: str) -> None:
        """Remove the credential record for an email.

        Raises NotFound if there is nothing to delete, InternalError on other
        I/O failures.
        """
        path = self.path_for(email)
        with self._lock_for(path.stem):
            try:
                path.unlink()
            except FileNotFoundError as exc:
                raise NotFound(f"no credential for key {path.stem}") from exc
            except OSError as exc:
                logger.error("Credential delete failed for %s: %s", path.name, exc)
                raise InternalError(f"credential delete failed: {exc}") from exc
        logger.info("Credential record deleted (%s)", path.name)
