"""
Consent popup handling for the OAuth flow.

The controller opens a centered popup pointed at the authorization-start
handler and resolves when the callback page posts its completion message, or
when the user closes the popup. If the popup is blocked the host window is
navigated to a fallback URL instead.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Optional, Protocol, Tuple

from ..core.config import ClientConfig
from ..utils.constants import (
    AUTH_COMPLETE_MESSAGE,
    POPUP_HEIGHT,
    POPUP_POLL_INTERVAL,
    POPUP_TIMEOUT,
    POPUP_WIDTH,
    POPUP_WINDOW_NAME,
)
from ..utils.errors import PopupTimeoutError

logger = logging.getLogger(__name__)


class PopupWindow(Protocol):
    """A handle on an opened popup window."""

    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


class WindowHost(Protocol):
    """The top-level window the client runs in."""

    def location(self) -> str:
        """Current path + query + fragment, e.g. '/wiki?id=abc#Home'."""
        ...

    def viewport(self) -> Tuple[int, int, int, int]:
        """Return (width, height, screen_x, screen_y) of the host window."""
        ...

    def open_popup(self, url: str, name: str, features: str) -> Optional[PopupWindow]:
        """Open a popup; returns None when the popup was blocked."""
        ...

    def navigate(self, url: str) -> None:
        """Navigate the host window away to another URL."""
        ...


class PopupOutcome(Enum):
    """How a consent popup finished."""

    COMPLETED = "completed"
    CLOSED = "closed"
    REDIRECTED = "redirected"


class AuthPopup:
    """Opens the consent popup and waits for it to finish."""

    def __init__(
        self,
        host: WindowHost,
        width: int = POPUP_WIDTH,
        height: int = POPUP_HEIGHT,
        poll_interval: float = POPUP_POLL_INTERVAL,
        timeout: Optional[float] = POPUP_TIMEOUT,
    ) -> None:
        self.host = host
        self.width = width
        self.height = height
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._completed: Optional[asyncio.Event] = None

    @classmethod
    def from_config(cls, host: WindowHost, config: ClientConfig) -> "AuthPopup":
        """Build a popup controller sized and bounded by the client settings."""
        return cls(
            host,
            width=config.popup_width,
            height=config.popup_height,
            timeout=config.popup_timeout,
        )

    def _features(self) -> str:
        """Window features for a popup centered on the host window."""
        vw, vh, screen_x, screen_y = self.host.viewport()
        left = vw // 2 - self.width // 2 + screen_x
        top = vh // 2 - self.height // 2 + screen_y
        return f"scrollbars=yes,width={self.width},height={self.height},top={top},left={left}"

    def handle_message(self, data: Any) -> bool:
        """
        Feed a message posted to the host window.

        Returns:
            True if the message was the completion signal of a pending popup.
        """
        if not isinstance(data, dict) or data.get("type") != AUTH_COMPLETE_MESSAGE:
            return False
        if self._completed is None:
            return False
        self._completed.set()
        return True

    async def open_and_wait(self, popup_url: str, fallback_url: str) -> PopupOutcome:
        """
        Open the popup (or fall back to navigation) and wait until it finishes.

        Args:
            popup_url: Authorization start URL for the popup.
            fallback_url: URL to navigate to when the popup is blocked.

        Returns:
            COMPLETED on the completion message, CLOSED when the popup closed
            without one, REDIRECTED when the host navigated away.

        Raises:
            PopupTimeoutError: If the popup did not finish within the timeout.
        """
        popup = self.host.open_popup(popup_url, POPUP_WINDOW_NAME, self._features())
        if popup is None:
            logger.info("Popup blocked, navigating to the consent screen")
            self.host.navigate(fallback_url)
            return PopupOutcome.REDIRECTED

        completed = asyncio.Event()
        self._completed = completed
        try:
            outcome = await asyncio.wait_for(self._wait(popup, completed), self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Consent popup timed out")
            raise PopupTimeoutError("Authorization popup did not complete in time")
        finally:
            self._completed = None
            if not popup.closed:
                popup.close()

        logger.debug(f"Consent popup finished: {outcome.value}")
        return outcome

    async def _wait(self, popup: PopupWindow, completed: asyncio.Event) -> PopupOutcome:
        while not completed.is_set():
            if popup.closed:
                return PopupOutcome.COMPLETED if completed.is_set() else PopupOutcome.CLOSED
            try:
                await asyncio.wait_for(completed.wait(), self.poll_interval)
            except asyncio.TimeoutError:
                continue
        return PopupOutcome.COMPLETED
