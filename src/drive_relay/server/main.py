"""Router and shared dependencies for the session backend."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from ..auth.google_auth import GoogleIdentityProvider
from ..core.config import ServerConfig, get_server_config
from ..utils.errors import ConfigurationError, RelayError

logger = logging.getLogger(__name__)

# Handlers register themselves on this router; create_app() mounts it under the API prefix
router = APIRouter()


def get_config() -> ServerConfig:
    """FastAPI dependency returning the active server configuration."""
    return get_server_config()


def get_identity_provider(config: ServerConfig = Depends(get_config)) -> GoogleIdentityProvider:
    """FastAPI dependency returning the identity provider adapter."""
    return GoogleIdentityProvider(config)


async def relay_error_handler(request: Request, exc: RelayError) -> PlainTextResponse:
    """Render a RelayError as a short plain-text response with its HTTP status."""
    if isinstance(exc, ConfigurationError):
        logger.error(f"{request.url.path}: {exc.message}")
        return PlainTextResponse("Server misconfiguration", status_code=exc.http_status)

    logger.warning(f"{request.url.path}: {type(exc).__name__} ({exc.http_status})")
    return PlainTextResponse(exc.message, status_code=exc.http_status)
