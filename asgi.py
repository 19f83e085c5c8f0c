"""
asgi.py -- Process entry point for the SessionKeeper API.

Settings are read from the environment exactly once, here, and injected into
create_app(). Nothing below this file reads the environment.

Run with:  uvicorn asgi:app
"""

from api.main import create_app
from core.config import Settings

app = create_app(Settings())
