"""
api/limiter.py -- slowapi rate limiter factory.

create_app() builds one Limiter per application and stores it on app.state,
where slowapi looks for it by convention. Routes receive the same instance when
their router is built, so the decorator and the app share one in-memory
counter store. Two apps in one process (e.g. in tests) never share counters.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address


def make_limiter(enabled: bool = True) -> Limiter:
    return Limiter(key_func=get_remote_address, storage_uri="memory://", enabled=enabled)
