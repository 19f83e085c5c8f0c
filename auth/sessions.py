"""
auth/sessions.py -- In-memory, thread-safe registry of active sessions.

SessionRegistry is the only shared mutable state in the service. Request
handlers run on a worker thread pool, so every operation takes a single
reader/writer lock scoped to the whole map:
  - read_session() takes the shared (read) side; readers run concurrently.
  - create/update/delete/refresh take the exclusive (write) side.

Each call is atomic on its own. A caller doing read_session() followed by
update_session() gets no atomicity across the pair -- use refresh_if_active()
when the check and the refresh must happen as one step.

TTL semantics: expires_at = last touch + ttl. Nothing is evicted in the
background. An expired entry stays in the map until it is overwritten by
create_session() or removed by delete_session(); staleness is only observed
when a request presents the identifier.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from auth.models import Session

logger = logging.getLogger("sessionkeeper.sessions")

DEFAULT_TTL = timedelta(minutes=20)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReadWriteLock:
    """Writer-preferring reader/writer lock built on a Condition.

    Waiting writers block new readers so a steady stream of refreshes cannot
    starve a logout.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class SessionRegistry:
    """Concurrent session map keyed by session identifier.

    Args:
        ttl:   Sliding expiry window. Defaults to 20 minutes.
        clock: Zero-arg callable returning an aware datetime. Injected so
               tests can move time without sleeping.
    """

    def __init__(self, ttl: timedelta = DEFAULT_TTL, clock: Callable[[], datetime] = utcnow) -> None:
        self.ttl = ttl
        self._clock = clock
        self._lock = ReadWriteLock()
        self._sessions: dict[str, Session] = {}

    def now(self) -> datetime:
        return self._clock()

    def create_session(self, session_id: str, credential_ref: str) -> Session:
        """Insert a fresh session, overwriting any existing entry for session_id."""
        now = self._clock()
        session = Session(
            session_id=session_id,
            credential_ref=credential_ref,
            created_at=now,
            expires_at=now + self.ttl,
        )
        with self._lock.write():
            self._sessions[session_id] = session
        return session

    def read_session(self, session_id: str) -> tuple[Session | None, bool]:
        """Look up a session. Returns (session, found).

        Expired entries are returned as found; comparing expires_at against
        the current time is the caller's job.
        """
        with self._lock.read():
            session = self._sessions.get(session_id)
        return session, session is not None

    def update_session(self, session_id: str, session: Session) -> Session:
        """Reset the TTL window for session_id, keeping the credential reference.

        Upsert: succeeds even when session_id was not present before.
        """
        now = self._clock()
        refreshed = replace(session, session_id=session_id, created_at=now, expires_at=now + self.ttl)
        with self._lock.write():
            self._sessions[session_id] = refreshed
        return refreshed

    def delete_session(self, session_id: str) -> None:
        """Remove session_id if present. Idempotent."""
        with self._lock.write():
            self._sessions.pop(session_id, None)

    def refresh_if_active(self, session_id: str) -> Session | None:
        """Check-and-refresh as a single atomic step.

        Returns the refreshed session when one exists and has not expired.
        Returns None for a missing or expired entry and leaves the map as it
        was -- an expired entry is not removed here.
        """
        with self._lock.write():
            session = self._sessions.get(session_id)
            now = self._clock()
            if session is None or not session.is_active(now):
                return None
            refreshed = replace(session, created_at=now, expires_at=now + self.ttl)
            self._sessions[session_id] = refreshed
        logger.debug("Session refreshed until %s", refreshed.expires_at.isoformat())
        return refreshed

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._sessions)
