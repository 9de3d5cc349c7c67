"""Drive Relay client - token orchestration and document sync.

Provides the asyncio client that obtains access tokens from the session
backend (escalating to a consent popup when needed) and keeps a single
Drive-hosted document in sync with the embedded document runtime.
"""
from .storage import KeyValueStorage, MemoryStorage, JsonFileStorage
from .token_cache import TokenCache, TokenRecord
from .popup import AuthPopup, PopupOutcome, PopupWindow, WindowHost
from .auth_service import AuthService, handle_token_response
from .hashing import HashService, generate_content_hash
from .drive_repository import DriveRepository, build_drive_service
from .runtime import (
    DocumentRuntime,
    NetworkFlag,
    NetworkStatus,
    NotificationAction,
    Notifier,
    SaverDescriptor,
)
from .sync_engine import OpenFileSession, SyncEngine, SyncState, parse_open_state

__all__ = [
    "KeyValueStorage",
    "MemoryStorage",
    "JsonFileStorage",
    "TokenCache",
    "TokenRecord",
    "AuthPopup",
    "PopupOutcome",
    "PopupWindow",
    "WindowHost",
    "AuthService",
    "handle_token_response",
    "HashService",
    "generate_content_hash",
    "DriveRepository",
    "build_drive_service",
    "DocumentRuntime",
    "NetworkFlag",
    "NetworkStatus",
    "NotificationAction",
    "Notifier",
    "SaverDescriptor",
    "OpenFileSession",
    "SyncEngine",
    "SyncState",
    "parse_open_state",
]
