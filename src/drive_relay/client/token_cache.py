"""Client-side access token cache."""

import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..utils.constants import TOKEN_SKEW_SECONDS, TOKEN_STORAGE_KEY
from .storage import KeyValueStorage, MemoryStorage

logger = logging.getLogger(__name__)


@dataclass
class TokenRecord:
    """A cached access token.

    Attributes:
        access_token: The bearer token.
        expire_at: Expiry as epoch milliseconds.
        scope: Space-delimited scopes granted with the token.
    """

    access_token: str
    expire_at: int
    scope: str

    def to_json(self) -> str:
        return json.dumps(
            {"accessToken": self.access_token, "expireAt": self.expire_at, "scope": self.scope}
        )


class TokenCache:
    """
    Holds at most one access token in client-local storage.

    A record is never returned once now >= expire_at - skew. Storage failures
    are treated as a cache miss so that a read-only or disabled storage never
    breaks authentication.
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        skew_seconds: int = TOKEN_SKEW_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage or MemoryStorage()
        self.skew_ms = skew_seconds * 1000
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def read(self) -> Optional[TokenRecord]:
        """Return the cached record if it is still usable."""
        try:
            raw = self.storage.get_item(TOKEN_STORAGE_KEY)
        except Exception as e:
            logger.debug(f"Token cache read failed: {e}")
            return None
        if not raw:
            return None

        try:
            data = json.loads(raw)
            record = TokenRecord(
                access_token=data["accessToken"],
                expire_at=int(data["expireAt"]),
                scope=data.get("scope") or "",
            )
        except (ValueError, KeyError, TypeError, AttributeError):
            logger.debug("Ignoring corrupt token cache entry")
            return None

        if not record.access_token or self._now_ms() >= record.expire_at - self.skew_ms:
            return None
        return record

    def write(self, access_token: str, expires_in: int, scope: Optional[str]) -> TokenRecord:
        """Store a freshly minted token and return its record."""
        record = TokenRecord(
            access_token=access_token,
            expire_at=self._now_ms() + int(expires_in) * 1000,
            scope=scope or "",
        )
        try:
            self.storage.set_item(TOKEN_STORAGE_KEY, record.to_json())
        except Exception as e:
            logger.debug(f"Token cache write failed: {e}")
        return record

    def clear(self) -> None:
        """Drop the cached token."""
        try:
            self.storage.remove_item(TOKEN_STORAGE_KEY)
        except Exception as e:
            logger.debug(f"Token cache clear failed: {e}")
