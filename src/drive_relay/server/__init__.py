"""Drive Relay session backend - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from ..core.config import ServerConfig, get_server_config
from ..utils.errors import RelayError
from .main import get_config, get_identity_provider, relay_error_handler, router

from . import oauth_routes
from . import session_routes

__all__ = ["create_app", "get_config", "get_identity_provider", "router", "main"]

logger = logging.getLogger(__name__)


def create_app(config: Optional[ServerConfig] = None) -> FastAPI:
    """
    Create the session backend application.

    Args:
        config: Server configuration; defaults to the global instance. Only the
            API prefix is read here, handlers resolve config per request.
    """
    config = config or get_server_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for problem in config.get_problems():
            logger.error(f"Configuration problem: {problem}")
        logger.info(f"Session backend ready: {config.get_environment_summary()}")
        yield

    app = FastAPI(title="Drive Relay", lifespan=lifespan)
    app.add_exception_handler(RelayError, relay_error_handler)
    app.include_router(router, prefix=config.api_prefix.rstrip("/"))
    return app


def main():
    """Entry point for the Drive Relay session backend."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    config = get_server_config()
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_level="info")
