"""
Temporary OAuth session cookie shared between the start and callback handlers.

The cookie carries the PKCE verifier, the CSRF state and an optional return
path as URL-encoded JSON. Older deployments wrote short keys (v, s, r); those
are still accepted when decoding.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)


@dataclass
class TempSessionPayload:
    """PKCE verifier, CSRF state and optional return path for one OAuth flow."""

    verifier: Optional[str] = None
    state: Optional[str] = None
    return_path: Optional[str] = None


def encode_temp_cookie(verifier: str, state: str, return_path: Optional[str] = None) -> str:
    """
    Build the cookie value.

    Args:
        verifier: PKCE code verifier.
        state: CSRF state value.
        return_path: Optional return path; dropped unless it starts with '/'.

    Returns:
        URL-encoded JSON, safe to place in a Set-Cookie header unquoted.
    """
    payload = {"verifier": verifier, "state": state}
    if return_path and return_path.startswith("/"):
        payload["returnPath"] = return_path
    return quote(json.dumps(payload, separators=(",", ":")), safe="")


def decode_temp_cookie(raw: Optional[str]) -> Optional[TempSessionPayload]:
    """
    Parse a cookie value produced by encode_temp_cookie().

    Accepts both URL-encoded and already-decoded JSON. Descriptive keys take
    precedence over the legacy short keys.

    Returns:
        The payload, or None when the value is empty or not a JSON object.
    """
    if not raw:
        return None
    text = unquote(raw) if raw.startswith("%") else raw
    try:
        data = json.loads(text)
    except ValueError:
        logger.debug("Temp session cookie is not valid JSON")
        return None
    if not isinstance(data, dict):
        return None

    return TempSessionPayload(
        verifier=data.get("verifier") or data.get("v"),
        state=data.get("state") or data.get("s"),
        return_path=data.get("returnPath") or data.get("r"),
    )
