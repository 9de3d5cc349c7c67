"""Custom exceptions for Drive Relay.

This module provides structured error handling with specific exception types
for the session backend and the client sync engine. All exceptions inherit
from RelayError.
"""
from typing import Optional, Any

import httpx


class RelayError(Exception):
    """Base exception for all drive-relay errors.

    Attributes:
        message: Human-readable error description.
        file_id: Optional file ID related to the error.
        http_status: Status code used when the error reaches an HTTP handler.
    """

    http_status = 500

    def __init__(self, message: str, file_id: Optional[str] = None) -> None:
        self.message = message
        self.file_id = file_id
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the error message, optionally including file ID."""
        if self.file_id:
            return f"{self.message} (file: {self.file_id})"
        return self.message


class ConfigurationError(RelayError):
    """Raised when required server configuration is missing or invalid."""
    pass


class DecryptionError(RelayError):
    """Raised when an encrypted envelope is malformed, unsupported or tampered."""

    http_status = 401


class MissingPkceDataError(RelayError):
    """Raised when the callback lacks the code, temp cookie or PKCE verifier."""

    http_status = 400


class StateMismatchError(RelayError):
    """Raised when the callback state does not match the temp-session cookie."""

    http_status = 400


class NoSessionError(RelayError):
    """Raised when there is no usable refresh session."""

    http_status = 401


class UpstreamPolicyRestrictedError(RelayError):
    """Raised when the identity provider denies access by admin policy."""

    http_status = 405


class TokenExchangeError(RelayError):
    """Raised when the identity provider rejects a code or refresh exchange.

    Attributes:
        error_code: OAuth error code returned by the provider, if any.
    """

    def __init__(
        self, message: str, error_code: Optional[str] = None, http_status: int = 500
    ) -> None:
        self.error_code = error_code
        self.http_status = http_status
        super().__init__(message)


class TokenFailedError(RelayError):
    """Raised on the client when the token endpoint fails for another reason.

    Attributes:
        status: HTTP status returned by the token endpoint.
    """

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        self.status = status
        super().__init__(message)


class ScopeNotGrantedError(RelayError):
    """Raised when consent completed but the granted scope is insufficient."""

    http_status = 403


class AuthenticationError(RelayError):
    """Raised when the storage API rejects the access token."""

    http_status = 401


class PermissionDeniedError(RelayError):
    """Raised when access to a file is denied."""

    http_status = 403


class DriveFileNotFoundError(RelayError):
    """Raised when a requested file doesn't exist or isn't granted to the app."""

    http_status = 404


class QuotaExceededError(RelayError):
    """Raised when API rate limit or quota is exceeded."""

    http_status = 429


class NetworkError(RelayError):
    """Raised when the network is unavailable or a transport call failed."""

    http_status = 503


class SyncConflictError(RelayError):
    """Raised when the remote content changed since it was loaded or saved.

    Attributes:
        local_hash: The content hash we track locally.
        remote_hash: The hash of the current remote content.
    """

    http_status = 409

    def __init__(
        self,
        message: str,
        local_hash: Optional[str],
        remote_hash: Optional[str],
        file_id: Optional[str] = None
    ) -> None:
        self.local_hash = local_hash
        self.remote_hash = remote_hash
        super().__init__(message, file_id)


class FileNotLoadedError(RelayError):
    """Raised when a save is requested before any file was loaded."""

    def __init__(self) -> None:
        super().__init__("File not loaded")


class OpenStateError(RelayError):
    """Raised when the page's open-state parameter is missing or names several files."""

    http_status = 400


class PopupTimeoutError(RelayError):
    """Raised when the authorization popup did not complete in time."""

    http_status = 408


PERMISSION_DENIED_HINT = (
    "The app token lacks write access for this file. If you manually crafted the "
    "state parameter, Drive may not have granted drive.file access. Open the file "
    "via Google Drive \"Open with\" (after install) or temporarily use a broader "
    "scope for testing."
)

NOT_FOUND_HINTS = [
    "Confirm the file ID is correct (no extra characters).",
    "Ensure you are logged into the same Google account that owns / can access the file.",
    "If the file lives in a Shared Drive, make sure it is shared with your account.",
    "With only the drive.file scope, the token covers just the files opened via "
    "the Drive UI \"Open with\" flow or a Picker.",
]


def handle_http_error(error: Any, file_id: Optional[str] = None) -> RelayError:
    """Convert googleapiclient HttpError to a specific exception.

    Args:
        error: The HttpError from googleapiclient.
        file_id: Optional file ID for context.

    Returns:
        An appropriate RelayError subclass.
    """
    try:
        status = error.resp.status
    except AttributeError:
        return RelayError(f"API error: {str(error)}", file_id)

    if status == 401:
        return AuthenticationError(
            "Authentication failed. Please authenticate again.",
            file_id
        )
    elif status == 403:
        return PermissionDeniedError(f"Permission Denied: {PERMISSION_DENIED_HINT}", file_id)
    elif status == 404:
        return DriveFileNotFoundError(
            "File not found (404). Possible causes:\n- " + "\n- ".join(NOT_FOUND_HINTS),
            file_id
        )
    elif status == 429:
        return QuotaExceededError(
            "API quota exceeded. Please wait a moment and try again.",
            file_id
        )
    else:
        return RelayError(f"API error (HTTP {status}): {str(error)}", file_id)


NETWORK_ERROR_PATTERNS = (
    'network error',
    'fetch failed',
    'failed to fetch',
    'network request failed',
    'connection refused',
    'connection timeout',
    'timeout',
    'timed out',
    'no internet',
    'offline',
    'unreachable',
    'dns',
)


def is_network_error(error: Optional[BaseException]) -> bool:
    """Check whether an error is likely a network-related issue.

    Args:
        error: The exception to check.

    Returns:
        True if the error appears to be network-related.
    """
    if error is None:
        return False
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, (ConnectionError, TimeoutError)):
        return True

    message = str(error).lower()
    name = type(error).__name__.lower()
    return any(pattern in message or pattern in name for pattern in NETWORK_ERROR_PATTERNS)


# Standard error message format helper
def format_error(action: str, error: Exception) -> str:
    """Format an error message consistently.

    Args:
        action: The action that failed (e.g., "Load", "Save").
        error: The exception that occurred.

    Returns:
        Formatted error string.
    """
    if isinstance(error, RelayError):
        return f"{action} failed: {error.message}"
    return f"{action} failed: {str(error)}"
