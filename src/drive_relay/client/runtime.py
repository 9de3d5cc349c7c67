"""Interfaces to the embedded document runtime and the host UI."""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, Tuple

from ..utils.constants import SAVER_CAPABILITIES, SAVER_NAME, SAVER_PRIORITY

# callback(error_message) reports a failed save through the runtime's own UI
SaveCallback = Callable[[Optional[str]], None]
SaverHandler = Callable[[str, str, SaveCallback], Awaitable[bool]]


@dataclass(frozen=True)
class SaverDescriptor:
    """How the runtime lists our saver in its save pipeline."""

    name: str = SAVER_NAME
    priority: int = SAVER_PRIORITY
    capabilities: Tuple[str, ...] = SAVER_CAPABILITIES


@dataclass
class NotificationAction:
    """A button offered alongside an error notification."""

    text: str
    fn: Callable[[], Awaitable[None]]


class DocumentRuntime(Protocol):
    """The embedded document runtime that owns editing and the save pipeline."""

    def render(self, content: str) -> None: ...

    def register_saver(self, descriptor: SaverDescriptor, handler: SaverHandler) -> None: ...

    def unregister_saver(self, name: str) -> None: ...

    def reset_dirty(self) -> None:
        """Zero the change counter and refresh the dirty indicator."""
        ...

    async def save_wiki(self) -> None:
        """Run the runtime's own save entry point."""
        ...


class Notifier(Protocol):
    def toast(self, message: str) -> None: ...

    def error(self, title: str, message: str, action: Optional[NotificationAction] = None) -> None: ...


class NetworkStatus(Protocol):
    def is_online(self) -> bool: ...

    def set_online(self, online: bool) -> None: ...


class NetworkFlag:
    """NetworkStatus backed by a flag the host flips on online/offline events."""

    def __init__(self, online: bool = True) -> None:
        self.online = online

    def is_online(self) -> bool:
        return self.online

    def set_online(self, online: bool) -> None:
        self.online = online
