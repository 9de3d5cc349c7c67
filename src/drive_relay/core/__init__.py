"""
Core utilities package for Drive Relay.

This package provides shared configuration for the session backend and the
client sync engine.
"""

from .config import (
    ClientConfig,
    ServerConfig,
    get_server_config,
    reload_server_config,
)

__all__ = [
    "ClientConfig",
    "ServerConfig",
    "get_server_config",
    "reload_server_config",
]
