"""Cookie helpers for the session handlers."""

from fastapi import Request, Response

from ..utils.constants import REFRESH_COOKIE_NAME, TEMP_COOKIE_MAX_AGE, TEMP_COOKIE_NAME


def is_https_request(request: Request) -> bool:
    """
    Decide whether the inbound request arrived over HTTPS.

    Honours the first X-Forwarded-Proto value set by the edge proxy, then an
    explicit :443 host, then the request URL scheme.
    """
    forwarded_proto = request.headers.get("x-forwarded-proto", "").split(",")[0].strip()
    if forwarded_proto:
        return forwarded_proto.lower() == "https"
    host = request.headers.get("host", "")
    return host.endswith(":443") or request.url.scheme == "https"


def request_origin(request: Request) -> str:
    """Return the origin (scheme://host) the request was addressed to, or ''."""
    host = request.headers.get("host", "")
    if not host:
        return ""
    proto = request.headers.get("x-forwarded-proto", "").split(",")[0].strip()
    return f"{proto or request.url.scheme}://{host}"


def set_temp_cookie(response: Response, value: str, secure: bool) -> None:
    """Set the short-lived PKCE/state cookie on Path=/."""
    response.set_cookie(
        TEMP_COOKIE_NAME,
        value,
        max_age=TEMP_COOKIE_MAX_AGE,
        path="/",
        secure=secure,
        httponly=True,
        samesite="lax",
    )


def clear_temp_cookie(response: Response, secure: bool, path: str = "/") -> None:
    """Clear the PKCE/state cookie on the given path."""
    response.delete_cookie(
        TEMP_COOKIE_NAME, path=path, secure=secure, httponly=True, samesite="lax"
    )


def set_refresh_cookie(
    response: Response, envelope: str, secure: bool, path: str, max_age: int
) -> None:
    """Set the encrypted refresh-session cookie, scoped to the API namespace."""
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        envelope,
        max_age=max_age,
        path=path,
        secure=secure,
        httponly=True,
        samesite="lax",
    )


def clear_refresh_cookie(response: Response, secure: bool, path: str) -> None:
    """Clear the refresh-session cookie."""
    response.delete_cookie(
        REFRESH_COOKIE_NAME, path=path, secure=secure, httponly=True, samesite="lax"
    )
