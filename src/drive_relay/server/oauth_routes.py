"""OAuth start and callback handlers."""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse

from ..auth.crypto import encrypt, load_key
from ..auth.google_auth import GoogleIdentityProvider, create_pkce_pair, generate_state
from ..auth.scopes import resolve_short_scope
from ..auth.temp_cookie import decode_temp_cookie, encode_temp_cookie
from ..core.config import ServerConfig
from ..utils.constants import REFRESH_TOKEN_AAD, RETURN_PATH_CLAMP, TEMP_COOKIE_NAME
from ..utils.errors import ConfigurationError, MissingPkceDataError, StateMismatchError
from .cookies import (
    clear_temp_cookie,
    is_https_request,
    set_refresh_cookie,
    set_temp_cookie,
)
from .main import get_config, get_identity_provider, router
from .pages import create_callback_html, create_error_html, sanitize_return_path

logger = logging.getLogger(__name__)


@router.get("/oauth/start")
def oauth_start(
    request: Request,
    td_scope: Optional[str] = None,
    td_return: Optional[str] = None,
    config: ServerConfig = Depends(get_config),
    provider: GoogleIdentityProvider = Depends(get_identity_provider),
) -> RedirectResponse:
    """
    Begin the consent flow.

    Generates a PKCE pair and state, stores them (plus the optional return
    path) in the temp-session cookie and redirects to the consent screen.
    """
    if not config.is_oauth_configured():
        raise ConfigurationError(
            "Missing GOOGLE_OAUTH_CLIENT_ID or DRIVE_RELAY_REDIRECT_URI"
        )

    scope = resolve_short_scope(td_scope)
    verifier, challenge = create_pkce_pair()
    state = generate_state()

    return_path = None
    if td_return and td_return.startswith("/"):
        return_path = td_return[:RETURN_PATH_CLAMP]

    auth_url = provider.build_authorization_url(scope, state, verifier, challenge)

    secure = is_https_request(request)
    response = RedirectResponse(auth_url, status_code=302)
    set_temp_cookie(response, encode_temp_cookie(verifier, state, return_path), secure)
    # Older deployments scoped the temp cookie to the API path
    if config.api_prefix != "/":
        clear_temp_cookie(response, secure, path=config.api_prefix)

    logger.info(f"OAuth flow started for scope {scope}")
    return response


@router.get("/oauth/callback")
def oauth_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    config: ServerConfig = Depends(get_config),
    provider: GoogleIdentityProvider = Depends(get_identity_provider),
):
    """
    Complete the consent flow.

    Validates the temp-session cookie against the callback parameters,
    exchanges the code, stores the encrypted refresh token and returns a page
    that resumes the application.
    """
    if error:
        logger.warning(f"Provider returned error on callback: {error}")
        return HTMLResponse(
            content=create_error_html(f"Authorization failed: {error}"), status_code=400
        )
    if not code:
        raise MissingPkceDataError("Missing code")
    if not config.is_oauth_configured():
        raise ConfigurationError(
            "Missing GOOGLE_OAUTH_CLIENT_ID or DRIVE_RELAY_REDIRECT_URI"
        )

    raw_cookie = request.cookies.get(TEMP_COOKIE_NAME)
    if not raw_cookie:
        raise MissingPkceDataError("Missing temp cookie (PKCE data not found)")
    payload = decode_temp_cookie(raw_cookie)
    if payload is None or not payload.verifier:
        raise MissingPkceDataError("Missing PKCE code_verifier in cookie")

    if not state:
        raise StateMismatchError("Missing state parameter in callback URL")
    if state != payload.state:
        raise StateMismatchError("State mismatch between cookie and callback")

    # Resolve the key before spending the single-use code
    key = load_key(config.encryption_key_b64)

    tokens = provider.exchange_code(code, payload.verifier)
    refresh_token = tokens.get("refresh_token")
    if not refresh_token:
        return PlainTextResponse(
            "No refresh_token received (consent may be required)", status_code=400
        )

    envelope = encrypt(refresh_token.encode("utf-8"), aad=REFRESH_TOKEN_AAD, key=key)
    return_path = sanitize_return_path(payload.return_path)

    secure = is_https_request(request)
    response = HTMLResponse(content=create_callback_html(return_path))
    set_refresh_cookie(
        response, envelope, secure, config.api_prefix, config.refresh_cookie_max_age
    )
    clear_temp_cookie(response, secure)

    logger.info("OAuth callback complete, refresh session stored")
    return response
