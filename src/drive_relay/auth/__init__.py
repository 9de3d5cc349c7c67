"""
Authentication package for Drive Relay.

This package provides the stateless pieces of the session backend:
- AES-256-GCM envelopes for the refresh-token cookie
- The temporary PKCE/state cookie codec
- Scope resolution and satisfaction rules
- The Google identity provider adapter (PKCE authorization, code exchange, refresh)
"""

from .crypto import decrypt, encrypt, generate_key, load_key
from .temp_cookie import TempSessionPayload, decode_temp_cookie, encode_temp_cookie
from .scopes import ScopeResolver, resolve_short_scope, split_scopes
from .google_auth import (
    GoogleIdentityProvider,
    create_pkce_pair,
    generate_state,
    provider_error_status,
)

__all__ = [
    # Crypto
    "encrypt",
    "decrypt",
    "load_key",
    "generate_key",
    # Temp cookie
    "TempSessionPayload",
    "encode_temp_cookie",
    "decode_temp_cookie",
    # Scopes
    "ScopeResolver",
    "resolve_short_scope",
    "split_scopes",
    # Identity provider
    "GoogleIdentityProvider",
    "create_pkce_pair",
    "generate_state",
    "provider_error_status",
]
