"""
Google OAuth Scopes for Drive Relay.

This module defines the Drive scopes the relay can request and the resolver
that decides which one the current page wants and whether a grant covers it.
"""

import logging
from typing import Callable, List, Optional
from urllib.parse import parse_qs

from ..utils.constants import (
    DEFAULT_SCOPE,
    DRIVE_FILE_SCOPE,
    DRIVE_SCOPE,
    SCOPE_QUERY_PARAM,
    SCOPE_SHORT_CODES,
)

logger = logging.getLogger(__name__)


def resolve_short_scope(raw: Optional[str]) -> str:
    """
    Map a short scope code ("drive", "drive.file") to the full scope URL.

    Anything else falls back to the default file-level scope.
    """
    return SCOPE_SHORT_CODES.get((raw or "").strip(), DEFAULT_SCOPE)


def split_scopes(granted: Optional[str]) -> List[str]:
    """Split a space-delimited scope string into individual scopes."""
    if not granted:
        return []
    return [scope for scope in granted.split() if scope]


def _query_value(query: str, name: str) -> Optional[str]:
    values = parse_qs(query.lstrip("?"), keep_blank_values=True).get(name)
    return values[0] if values else None


class ScopeResolver:
    """Resolves and evaluates OAuth scopes for the current page."""

    def __init__(self, query_provider: Optional[Callable[[], str]] = None) -> None:
        """
        Args:
            query_provider: Returns the page's current query string
                (e.g. "?td_scope=drive&id=abc"). Defaults to an empty query.
        """
        self._query_provider = query_provider or (lambda: "")

    def determine(self) -> str:
        """Determine the desired scope from the page's td_scope parameter."""
        raw = self.current_page_override()
        if raw is not None and raw.strip() in SCOPE_SHORT_CODES:
            return SCOPE_SHORT_CODES[raw.strip()]
        return DEFAULT_SCOPE

    def is_satisfied(self, granted: Optional[str], desired: str) -> bool:
        """
        Return whether the granted scopes satisfy the desired scope.

        The drive-wide scope satisfies a file-level request; any other scope
        must match exactly. An empty grant never satisfies anything.
        """
        scopes = split_scopes(granted)
        if not scopes:
            return False
        if desired == DRIVE_SCOPE:
            return DRIVE_SCOPE in scopes
        if desired == DRIVE_FILE_SCOPE:
            return DRIVE_SCOPE in scopes or DRIVE_FILE_SCOPE in scopes
        return desired in scopes

    def derive_short(self, desired: str) -> Optional[str]:
        """Derive the short override code for a full scope URL."""
        if desired.endswith("/drive"):
            return "drive"
        if desired.endswith("/drive.file"):
            return "drive.file"
        return None

    def current_page_override(self) -> Optional[str]:
        """Return the raw td_scope value on the current page (not validated)."""
        try:
            return _query_value(self._query_provider(), SCOPE_QUERY_PARAM)
        except Exception as e:
            logger.debug(f"Could not read page query: {e}")
            return None
