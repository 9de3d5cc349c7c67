"""
Sync engine for a single Drive-hosted document.

The engine owns the opened file's identity, content hash and version marker,
and runs every save through one queue: requests overwrite a single pending
slot, autosaves are debounced, at most one upload is in flight and each
upload is preceded by a conflict preflight unless the user chose to override.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs

from ..core.config import ClientConfig
from ..utils.constants import DEFAULT_FILE_NAME
from ..utils.errors import (
    FileNotLoadedError,
    OpenStateError,
    PERMISSION_DENIED_HINT,
    PermissionDeniedError,
    RelayError,
    SyncConflictError,
    format_error,
    is_network_error,
)
from .auth_service import AuthService
from .drive_repository import DriveRepository
from .hashing import HashService
from .runtime import (
    DocumentRuntime,
    NetworkFlag,
    NetworkStatus,
    NotificationAction,
    Notifier,
    SaveCallback,
    SaverDescriptor,
)

logger = logging.getLogger(__name__)


class SyncState(Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"
    SAVING = "saving"
    CONFLICTED = "conflicted"


@dataclass
class OpenFileSession:
    """The file currently opened in the runtime.

    Attributes:
        file_id: Drive file ID.
        file_name: Display name.
        content_hash: Hash of the content last loaded or saved.
        version: Drive version marker of the content last loaded or saved.
        force_next_save: One-shot override; the next upload skips the
            conflict preflight and clears the flag.
    """

    file_id: str
    file_name: str = DEFAULT_FILE_NAME
    content_hash: Optional[str] = None
    version: Optional[str] = None
    force_next_save: bool = False

    def consume_force_flag(self) -> bool:
        forced = self.force_next_save
        self.force_next_save = False
        return forced


@dataclass
class PendingSave:
    html: str
    autosave: bool


def parse_open_state(query: str) -> str:
    """
    Extract the single file ID from the page's open-state parameters.

    Accepts a plain `id` parameter or the Drive "Open with" `state` JSON
    parameter carrying `ids`.

    Raises:
        OpenStateError: If no file or several files are named.
    """
    params = parse_qs(query.lstrip("?"))
    plain_id = params.get("id", [None])[0]
    if plain_id:
        return plain_id

    raw_state = params.get("state", [None])[0]
    ids = None
    if raw_state:
        try:
            state = json.loads(raw_state)
        except ValueError:
            state = None
        if isinstance(state, dict):
            ids = state.get("ids")

    if not isinstance(ids, list) or len(ids) != 1 or not ids[0]:
        raise OpenStateError("Missing or multi file state")
    return str(ids[0])


class SyncEngine:
    """Loads a Drive file into the runtime and saves it back safely."""

    def __init__(
        self,
        auth: AuthService,
        repository: DriveRepository,
        runtime: DocumentRuntime,
        notifier: Notifier,
        network: Optional[NetworkStatus] = None,
        hash_service: Optional[HashService] = None,
        config: Optional[ClientConfig] = None,
        autosave_enabled: Optional[Callable[[], bool]] = None,
        on_save_success: Optional[Callable[[], None]] = None,
    ) -> None:
        self.auth = auth
        self.repository = repository
        self.runtime = runtime
        self.notifier = notifier
        self.network = network or NetworkFlag()
        self.config = config or ClientConfig.from_env()
        self.hash_service = hash_service or HashService(timeout=self.config.hash_timeout)
        self.autosave_enabled = autosave_enabled or (lambda: True)
        self.on_save_success = on_save_success
        self.descriptor = SaverDescriptor()

        self.state = SyncState.UNLOADED
        self.session: Optional[OpenFileSession] = None
        self.last_conflict: Optional[SyncConflictError] = None

        self._pending: Optional[PendingSave] = None
        self._waiters: List[asyncio.Future] = []
        self._saving = False
        self._queue_task: Optional[asyncio.Task] = None
        self._saver_requested = False
        self._saver_registered = False

    def _require_session(self) -> OpenFileSession:
        if self.session is None:
            raise FileNotLoadedError()
        return self.session

    async def load_file(self, query: str) -> Dict[str, Any]:
        """
        Load the file named by the page's open-state parameters.

        Fetches metadata and content, renders the content into the runtime and
        registers the saver.

        Returns:
            The file metadata.
        """
        file_id = parse_open_state(query)
        token = await self.auth.get_access_token()

        meta = await self.repository.get_file_metadata(file_id, token)
        text = await self.repository.download_file_content(file_id, token)
        version = meta.get("version")

        self.session = OpenFileSession(
            file_id=file_id,
            file_name=meta.get("name") or DEFAULT_FILE_NAME,
            content_hash=await self.hash_service.generate_content_hash(text),
            version=str(version) if version is not None else None,
        )
        self.runtime.render(text)
        self.state = SyncState.LOADED
        self.notifier.toast("File loaded")
        logger.info(f"Loaded {self.session.file_name} ({file_id}), version {self.session.version}")

        self.register_saver()
        return meta

    async def save(self, html: str, autosave: bool = False) -> bool:
        """
        Queue a save and wait for the upload that carries it.

        Returns:
            True when saved, False on a handled conflict or when offline.

        Raises:
            FileNotLoadedError: If no file is loaded.
            RelayError: If the upload failed.
        """
        self._require_session()
        if not self.network.is_online():
            logger.info("Offline, leaving the save to the runtime's fallback saver")
            return False

        waiter = asyncio.get_running_loop().create_future()
        self._pending = PendingSave(html, autosave)
        self._waiters.append(waiter)
        self._kick_queue()
        return await waiter

    def _kick_queue(self) -> None:
        if self._saving:
            return
        self._saving = True
        self._queue_task = asyncio.ensure_future(self._process_save_queue())

    async def _process_save_queue(self) -> None:
        """Drain the pending slot, one upload at a time."""
        try:
            while self._pending is not None:
                request = self._pending
                # Trailing debounce: wait until autosaves stop replacing the slot
                while request.autosave:
                    await asyncio.sleep(self.config.autosave_debounce)
                    if self._pending is request:
                        break
                    request = self._pending

                self._pending = None
                waiters, self._waiters = self._waiters, []
                self.state = SyncState.SAVING

                try:
                    ok = await self._upload(request.html)
                except Exception as e:
                    logger.warning(f"Upload error: {e}")
                    self.state = SyncState.LOADED
                    for waiter in waiters:
                        if not waiter.done():
                            waiter.set_exception(e)
                    continue

                self.state = SyncState.LOADED if ok else SyncState.CONFLICTED
                for waiter in waiters:
                    if not waiter.done():
                        waiter.set_result(ok)
        finally:
            self._saving = False

    async def _upload(self, html: str) -> bool:
        """Run the preflight and upload the content."""
        session = self._require_session()
        token = await self.auth.get_access_token()

        if not session.consume_force_flag():
            if await self._has_conflict(token):
                return False

        try:
            meta = await self._upload_with_retry(session.file_id, html, token)
        except PermissionDeniedError:
            self.notifier.error("Permission Denied", PERMISSION_DENIED_HINT)
            raise
        except Exception as e:
            if is_network_error(e):
                logger.warning(f"Network error while saving {session.file_id}: {e}")
            self.notifier.toast(format_error("Save", e))
            raise

        session.content_hash = await self.hash_service.generate_content_hash(html)
        version = meta.get("version")
        if version is not None:
            session.version = str(version)
        self.last_conflict = None
        self.notifier.toast("Saved")
        logger.info(f"Saved {session.file_id}, version {session.version}")
        return True

    async def _upload_with_retry(self, file_id: str, html: str, token: str) -> Dict[str, Any]:
        """Upload; on 403 re-request consent once and retry."""
        try:
            return await self.repository.upload_file_content(file_id, html, token)
        except PermissionDeniedError as denied:
            logger.warning("Upload denied, re-requesting consent")
            try:
                new_token = await self.auth.reauthenticate_with_consent()
                return await self.repository.upload_file_content(file_id, html, new_token)
            except RelayError as retry_error:
                logger.warning(f"Retry after consent failed: {retry_error}")
                raise denied from retry_error

    async def _has_conflict(self, token: str) -> bool:
        """
        Check whether the remote file changed since we loaded or saved it.

        Compares the version marker first; only a moved version (or an unknown
        one) costs a download and a content hash comparison.
        """
        session = self._require_session()
        try:
            remote_version = await self.repository.get_file_version(session.file_id, token)
            if session.version is not None and remote_version == session.version:
                return False

            remote_text = await self.repository.download_file_content(session.file_id, token)
            remote_hash = await self.hash_service.generate_content_hash(remote_text)
        except Exception as e:
            logger.warning(f"Conflict preflight failed, continuing with upload: {e}")
            return False

        if session.content_hash is None or remote_hash == session.content_hash:
            # Metadata-only change (rename, sharing); the content is ours
            if remote_version is not None:
                session.version = remote_version
            return False

        self.last_conflict = SyncConflictError(
            "The file changed on Google Drive",
            local_hash=session.content_hash,
            remote_hash=remote_hash,
            file_id=session.file_id,
        )
        logger.warning(
            f"Conflict detected: local={session.content_hash} remote={remote_hash} "
            f"(version {session.version} -> {remote_version})"
        )
        self.notifier.error(
            "Conflict Detected",
            "The file changed on Google Drive. Reload before saving.",
            NotificationAction("Save Anyway", self.save_anyway),
        )
        return True

    async def save_anyway(self) -> None:
        """Skip the next preflight and ask the runtime to save again."""
        self._require_session().force_next_save = True
        await self.runtime.save_wiki()

    async def _saver_handler(self, text: str, method: str, callback: SaveCallback) -> bool:
        """The save function registered with the runtime's save pipeline."""
        if not self.network.is_online():
            return False
        if not self.autosave_enabled():
            callback("Autosave disabled")
            return False

        try:
            ok = await self.save(text, autosave=(method == "autosave"))
        except Exception as e:
            callback(e.message if isinstance(e, RelayError) else str(e))
            return False
        if not ok:
            return False

        self.runtime.reset_dirty()
        if self.on_save_success:
            self.on_save_success()
        return True

    def register_saver(self) -> None:
        """Ask for the saver to be registered whenever autosave and network allow."""
        self._saver_requested = True
        self.update_saver_registration()

    def update_saver_registration(self) -> None:
        """Register or unregister the saver to match preferences and network."""
        if not self._saver_requested:
            return
        should_be_active = self.autosave_enabled() and self.network.is_online()
        if should_be_active and not self._saver_registered:
            self.runtime.register_saver(self.descriptor, self._saver_handler)
            self._saver_registered = True
            logger.info(f"Saver {self.descriptor.name} registered")
        elif not should_be_active and self._saver_registered:
            self.runtime.unregister_saver(self.descriptor.name)
            self._saver_registered = False
            reason = "autosave disabled" if not self.autosave_enabled() else "offline"
            logger.info(f"Saver {self.descriptor.name} unregistered ({reason})")

    def set_online(self, online: bool) -> None:
        """React to an online/offline transition."""
        was_online = self.network.is_online()
        self.network.set_online(online)
        if was_online != online:
            logger.info("Back online" if online else "Went offline, saves fall back to local")
            self.update_saver_registration()
