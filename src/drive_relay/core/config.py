"""
Configuration management for Drive Relay.

This module centralizes configuration values for the session backend and the
client sync engine to avoid hardcoded values scattered throughout the codebase.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from ..utils.constants import (
    AUTOSAVE_DEBOUNCE_SECONDS,
    GOOGLE_AUTH_URI,
    GOOGLE_TOKEN_URI,
    HASH_TIMEOUT_SECONDS,
    POPUP_HEIGHT,
    POPUP_TIMEOUT,
    POPUP_WIDTH,
    REFRESH_COOKIE_MAX_AGE_DAYS,
    TOKEN_SKEW_SECONDS,
)

logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()


class ServerConfig:
    """
    Centralized configuration for the stateless session backend.

    Provides a single source of truth for OAuth client settings, the cookie
    encryption key and the API namespace the refresh cookie is scoped to.
    """

    def __init__(self) -> None:
        # OAuth client configuration
        self.client_id = os.getenv("GOOGLE_OAUTH_CLIENT_ID")
        self.client_secret = os.getenv("GOOGLE_OAUTH_CLIENT_SECRET", "")
        self.redirect_uri = os.getenv("DRIVE_RELAY_REDIRECT_URI")
        self.auth_uri = os.getenv("DRIVE_RELAY_AUTH_URI", GOOGLE_AUTH_URI)
        self.token_uri = os.getenv("DRIVE_RELAY_TOKEN_URI", GOOGLE_TOKEN_URI)

        # 32-byte AES key, base64 or base64url encoded
        self.encryption_key_b64 = os.getenv("DRIVE_RELAY_ENC_KEY_B64", "")

        # API namespace; the refresh cookie is only sent to this path
        self.api_prefix = self._normalize_prefix(os.getenv("DRIVE_RELAY_API_PREFIX", "/api/"))
        self.refresh_ttl_days = int(
            os.getenv("DRIVE_RELAY_REFRESH_TTL_DAYS", str(REFRESH_COOKIE_MAX_AGE_DAYS))
        )

        # Server bind address
        self.host = os.getenv("DRIVE_RELAY_HOST", "127.0.0.1")
        self.port = int(os.getenv("DRIVE_RELAY_PORT", "8888"))

    @staticmethod
    def _normalize_prefix(prefix: str) -> str:
        """Ensure the API prefix starts and ends with a slash."""
        prefix = "/" + prefix.strip("/")
        return prefix if prefix == "/" else prefix + "/"

    @property
    def refresh_cookie_max_age(self) -> int:
        """Refresh cookie lifetime in seconds."""
        return self.refresh_ttl_days * 24 * 60 * 60

    def is_oauth_configured(self) -> bool:
        """Check if the OAuth client is configured enough to start a flow."""
        return bool(self.client_id and self.redirect_uri)

    def client_config(self) -> Dict[str, Any]:
        """Build a client secrets mapping in the format google-auth-oauthlib expects."""
        return {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": self.auth_uri,
                "token_uri": self.token_uri,
                "redirect_uris": [self.redirect_uri] if self.redirect_uri else [],
            }
        }

    def get_problems(self) -> List[str]:
        """List configuration problems, empty when everything is in place."""
        problems = []
        if not self.client_id:
            problems.append("GOOGLE_OAUTH_CLIENT_ID is not set")
        if not self.redirect_uri:
            problems.append("DRIVE_RELAY_REDIRECT_URI is not set")
        if not self.encryption_key_b64:
            problems.append("DRIVE_RELAY_ENC_KEY_B64 is not set")
        return problems

    def get_environment_summary(self) -> Dict[str, Any]:
        """Get a summary of the current configuration (excluding secrets)."""
        return {
            "client_configured": self.is_oauth_configured(),
            "client_secret_set": bool(self.client_secret),
            "encryption_key_set": bool(self.encryption_key_b64),
            "redirect_uri": self.redirect_uri,
            "api_prefix": self.api_prefix,
            "refresh_ttl_days": self.refresh_ttl_days,
            "bind": f"{self.host}:{self.port}",
        }


@dataclass
class ClientConfig:
    """Settings for the client-side auth orchestrator and sync engine."""

    base_url: str = "http://localhost:8888"
    start_path: str = "/api/oauth/start"
    token_path: str = "/api/token"
    autosave_debounce: float = AUTOSAVE_DEBOUNCE_SECONDS
    token_skew_seconds: int = TOKEN_SKEW_SECONDS
    hash_timeout: float = HASH_TIMEOUT_SECONDS
    popup_timeout: Optional[float] = POPUP_TIMEOUT
    popup_width: int = POPUP_WIDTH
    popup_height: int = POPUP_HEIGHT

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Build a client configuration, honouring DRIVE_RELAY_BASE_URL."""
        return cls(base_url=os.getenv("DRIVE_RELAY_BASE_URL", cls.base_url))


# Global configuration instance
_server_config: Optional[ServerConfig] = None


def get_server_config() -> ServerConfig:
    """Get the global server configuration instance."""
    global _server_config
    if _server_config is None:
        _server_config = ServerConfig()
    return _server_config


def reload_server_config() -> ServerConfig:
    """Reload the server configuration from environment variables."""
    global _server_config
    _server_config = ServerConfig()
    logger.info("Reloaded server configuration: %s", _server_config.get_environment_summary())
    return _server_config
