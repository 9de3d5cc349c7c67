"""
HTML responses for the OAuth callback.

The callback page runs inside the consent popup (or the main window when the
popup was blocked). It either navigates to a validated return path or tells
its opener that authorization finished and closes itself.
"""

import html
import json
import re
from typing import Optional
from urllib.parse import unquote

from ..utils.constants import AUTH_COMPLETE_MESSAGE, RETURN_PATH_MAX_LENGTH

_SCHEME_PREFIX = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
_CONTROL_CHARS = re.compile(r"[\x00\r\n]")
_SAFE_PATH = re.compile(
    r"^/[A-Za-z0-9\-._~!$&'()*+,;=:@/%]*"
    r"(\?[A-Za-z0-9\-._~!$&'()*+,;=:@/%]*)?"
    r"(#[A-Za-z0-9\-._~!$&'()*+,;=:@/%]*)?$"
)


def sanitize_return_path(path: Optional[str]) -> Optional[str]:
    """
    Accept only a clean same-site path (leading slash), optionally with query
    and fragment.

    Rejects absolute and protocol-relative URLs, scheme-like prefixes, control
    characters (raw or percent-encoded) and anything outside a conservative
    character set.

    Returns:
        The decoded path, or None if it is unsafe.
    """
    if not isinstance(path, str):
        return None
    if not path or len(path) > RETURN_PATH_MAX_LENGTH:
        return None
    if _SCHEME_PREFIX.match(path) or path.startswith("//"):
        return None
    if not path.startswith("/"):
        return None
    if _CONTROL_CHARS.search(path):
        return None

    try:
        decoded = unquote(path, errors="strict") if "%" in path else path
    except UnicodeDecodeError:
        return None
    if _CONTROL_CHARS.search(decoded) or decoded.startswith("//"):
        return None
    if not _SAFE_PATH.match(decoded):
        return None
    return decoded


def _js_string(value: str) -> str:
    """Encode a value as a JavaScript string literal safe inside <script>."""
    return json.dumps(value).replace("</", "<\\/")


def create_callback_html(return_path: Optional[str] = None) -> str:
    """Create the page that finishes the flow in the popup or main window."""
    if return_path:
        script = f"window.location.replace({_js_string(return_path)});"
    else:
        message = _js_string(AUTH_COMPLETE_MESSAGE)
        script = (
            "try {"
            " if (window.opener) {"
            f" window.opener.postMessage({{ type: {message} }}, window.location.origin);"
            " }"
            " } catch (e) {}"
            " window.close();"
        )
    return (
        "<!doctype html><html><head><title>Authentication Successful</title></head>"
        f"<body><script>{script}</script>"
        "<p>Authentication complete. You can close this window.</p>"
        "</body></html>"
    )


def create_error_html(error_message: str) -> str:
    """Create an error page for failures the user sees in the popup."""
    return (
        "<!doctype html><html><head><title>Authentication Failed</title></head><body>"
        "<h1>Authentication Failed</h1>"
        f"<p>{html.escape(error_message)}</p>"
        "<p>Please close this window and try again.</p>"
        "</body></html>"
    )
