"""
Google identity provider adapter for Drive Relay.

Builds the authorization URL for the Authorization-Code + PKCE flow, exchanges
authorization codes for tokens and mints access tokens from refresh tokens.
The adapter is stateless: verifiers, state and refresh tokens are always passed
in by the HTTP handlers, which keep them in cookies.
"""

import base64
import hashlib
import logging
import os
import secrets
from typing import Any, Dict, Optional, Tuple

import requests
from google_auth_oauthlib.flow import Flow
from google_auth_oauthlib.helpers import session_from_client_config
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from ..core.config import ServerConfig, get_server_config
from ..utils.errors import (
    ConfigurationError,
    NoSessionError,
    TokenExchangeError,
    UpstreamPolicyRestrictedError,
)

logger = logging.getLogger(__name__)

# Provider error codes that reflect an administrator policy decision
POLICY_ERROR_CODES = frozenset(
    ["admin_policy_enforced", "org_internal", "access_denied", "policy_enforced"]
)
# Provider error codes that reflect our own client misconfiguration
CLIENT_ERROR_CODES = frozenset(["invalid_client", "unauthorized_client"])


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def create_pkce_pair() -> Tuple[str, str]:
    """
    Create a PKCE verifier/challenge pair.

    Returns:
        Tuple of (verifier, S256 challenge).
    """
    verifier = _b64url(secrets.token_bytes(32))
    challenge = _b64url(hashlib.sha256(verifier.encode("ascii")).digest())
    return verifier, challenge


def generate_state() -> str:
    """Generate a random CSRF state value."""
    return _b64url(secrets.token_bytes(16))


def provider_error_status(error_code: Optional[str]) -> int:
    """
    Map an identity-provider error code to the HTTP status the relay returns.

    invalid_grant means the session is gone (401); admin policy denials are
    surfaced as 405; client misconfiguration and anything unknown as 500.
    """
    if error_code == "invalid_grant":
        return 401
    if error_code in POLICY_ERROR_CODES:
        return 405
    return 500


class GoogleIdentityProvider:
    """Thin wrapper around google-auth-oauthlib for the relay's three provider calls."""

    def __init__(self, config: Optional[ServerConfig] = None) -> None:
        self.config = config or get_server_config()
        # Google may grant a superset (e.g. drive alongside drive.file)
        os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")

    def _require_client(self) -> None:
        if not self.config.is_oauth_configured():
            raise ConfigurationError(
                "Server misconfiguration: missing GOOGLE_OAUTH_CLIENT_ID or DRIVE_RELAY_REDIRECT_URI"
            )

    def _create_flow(self, scopes: Optional[list], code_verifier: str) -> Flow:
        """Create an OAuth flow bound to our own PKCE verifier."""
        return Flow.from_client_config(
            self.config.client_config(),
            scopes=scopes,
            redirect_uri=self.config.redirect_uri,
            code_verifier=code_verifier,
            autogenerate_code_verifier=False,
        )

    def build_authorization_url(
        self, scope: str, state: str, code_verifier: str, code_challenge: str
    ) -> str:
        """
        Build the consent URL.

        Requests offline access and forces the consent prompt so that a
        refresh token is issued even when the user granted access before.
        """
        self._require_client()
        flow = self._create_flow([scope], code_verifier)
        auth_url, _ = flow.authorization_url(
            state=state,
            access_type="offline",
            prompt="consent",
            code_challenge=code_challenge,
            code_challenge_method="S256",
        )
        logger.info(f"Authorization URL built. State: {state[:8]}...")
        return auth_url

    def exchange_code(self, code: str, code_verifier: str) -> Dict[str, Any]:
        """
        Exchange an authorization code (plus PKCE verifier) for tokens.

        Raises:
            TokenExchangeError: If the provider rejects the code.
        """
        self._require_client()
        flow = self._create_flow(None, code_verifier)
        try:
            token = flow.fetch_token(code=code)
        except OAuth2Error as e:
            logger.warning(f"Code exchange rejected by provider: {e.error}")
            raise TokenExchangeError(
                f"Token exchange failed: {e.error}", error_code=e.error, http_status=400
            )
        except requests.RequestException as e:
            logger.error(f"Code exchange failed: {e}")
            raise TokenExchangeError("Token exchange failed: provider unreachable")

        logger.info("Exchanged authorization code for tokens")
        return self._normalize(token)

    def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """
        Mint a short-lived access token from a refresh token.

        Returns:
            Mapping with access_token, expires_in and scope.

        Raises:
            NoSessionError: If the refresh token was revoked or expired.
            UpstreamPolicyRestrictedError: If an admin policy blocks access.
            TokenExchangeError: For client misconfiguration and other failures.
        """
        if not self.config.client_id:
            raise ConfigurationError("Missing GOOGLE_OAUTH_CLIENT_ID")

        session, _ = session_from_client_config(self.config.client_config(), scopes=None)
        try:
            token = session.refresh_token(
                self.config.token_uri,
                refresh_token=refresh_token,
                client_id=self.config.client_id,
                client_secret=self.config.client_secret,
            )
        except OAuth2Error as e:
            status = provider_error_status(e.error)
            logger.warning(f"Refresh rejected by provider: {e.error} (-> {status})")
            if status == 401:
                raise NoSessionError("Session expired or revoked")
            if status == 405:
                raise UpstreamPolicyRestrictedError(e.description or e.error)
            raise TokenExchangeError(f"Refresh failed: {e.error}", error_code=e.error)
        except requests.RequestException as e:
            logger.error(f"Refresh failed: {e}")
            raise TokenExchangeError("Refresh failed: provider unreachable")

        return self._normalize(token)

    @staticmethod
    def _normalize(token: Dict[str, Any]) -> Dict[str, Any]:
        """Flatten an oauthlib token mapping into plain JSON-friendly values."""
        scope = token.get("scope")
        if isinstance(scope, (list, tuple, set)):
            scope = " ".join(scope)
        expires_in = token.get("expires_in")
        return {
            "access_token": token.get("access_token"),
            "refresh_token": token.get("refresh_token"),
            "expires_in": int(expires_in) if expires_in is not None else None,
            "scope": scope,
            "token_type": token.get("token_type"),
        }
