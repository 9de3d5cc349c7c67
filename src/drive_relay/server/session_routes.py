"""Token minting and logout handlers."""

import logging

from fastapi import Depends, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from ..auth.crypto import decrypt, load_key
from ..auth.google_auth import GoogleIdentityProvider
from ..core.config import ServerConfig
from ..utils.constants import REFRESH_COOKIE_NAME, REFRESH_TOKEN_AAD
from ..utils.errors import ConfigurationError, DecryptionError, NoSessionError
from .cookies import clear_refresh_cookie, clear_temp_cookie, is_https_request, request_origin
from .main import get_config, get_identity_provider, router

logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {"Cache-Control": "no-store"}


def _is_same_origin(request: Request) -> bool:
    """
    Reject cross-site callers.

    A request passes when it carries neither Origin nor Referer, or when the
    one it carries matches the origin the request was addressed to.
    """
    expected = request_origin(request)
    origin = request.headers.get("origin")
    referer = request.headers.get("referer")

    if origin:
        return origin == expected
    if referer:
        return referer == expected or referer.startswith(expected + "/")
    return True


@router.get("/token")
def mint_token(
    request: Request,
    config: ServerConfig = Depends(get_config),
    provider: GoogleIdentityProvider = Depends(get_identity_provider),
) -> Response:
    """
    Mint a fresh access token from the encrypted refresh cookie.

    Returns:
        JSON with access_token, expires_in and the granted scope.
    """
    if not config.client_id:
        raise ConfigurationError("Missing GOOGLE_OAUTH_CLIENT_ID")
    if not _is_same_origin(request):
        logger.warning("Rejected token request from a foreign origin")
        return PlainTextResponse("Forbidden", status_code=403)

    envelope = request.cookies.get(REFRESH_COOKIE_NAME)
    if not envelope:
        raise NoSessionError("No session")

    key = load_key(config.encryption_key_b64)
    try:
        refresh_token = decrypt(envelope, aad=REFRESH_TOKEN_AAD, key=key).decode("utf-8")
    except (DecryptionError, UnicodeDecodeError):
        raise NoSessionError("Invalid session")

    data = provider.refresh_access_token(refresh_token)
    return JSONResponse(
        {
            "access_token": data["access_token"],
            "expires_in": data["expires_in"],
            "scope": data["scope"],
        },
        headers=NO_STORE_HEADERS,
    )


@router.api_route("/logout", methods=["GET", "POST"])
def logout(request: Request, config: ServerConfig = Depends(get_config)) -> Response:
    """Clear the session cookies. Idempotent."""
    secure = is_https_request(request)
    response = Response(status_code=204)
    clear_refresh_cookie(response, secure, config.api_prefix)
    clear_temp_cookie(response, secure)
    if config.api_prefix != "/":
        clear_temp_cookie(response, secure, path=config.api_prefix)
    logger.info("Session cleared")
    return response
