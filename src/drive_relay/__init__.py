"""Drive Relay - stateless OAuth session backend and Drive sync client.

This package provides a FastAPI session backend that keeps a Google refresh
token only in an encrypted, path-scoped cookie, and an asyncio client that
mints access tokens from it and saves a single Drive-hosted document with
conflict detection.
"""
from .client import AuthService, SyncEngine
from .server import create_app

__version__ = "0.1.0"
__all__ = ["AuthService", "SyncEngine", "create_app"]
