"""Low-level Google Drive operations used by the sync engine."""

import asyncio
import io
import logging
from typing import Any, Callable, Dict, Optional

import httplib2
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload, MediaIoBaseUpload

from ..utils.constants import DRIVE_METADATA_FIELDS, DRIVE_UPLOAD_FIELDS, HTML_MIME_TYPE
from ..utils.errors import NetworkError, handle_http_error

logger = logging.getLogger(__name__)


def build_drive_service(access_token: str) -> Any:
    """Build a Drive v3 service authorized with a bare access token."""
    creds = Credentials(token=access_token)
    return build('drive', 'v3', credentials=creds, cache_discovery=False)


class DriveRepository:
    """
    Drive v3 file operations.

    Every call takes the access token to use, so the caller decides when to
    re-acquire one. Blocking client calls run in a worker thread.
    """

    def __init__(self, service_factory: Optional[Callable[[str], Any]] = None) -> None:
        self._service_factory = service_factory or build_drive_service

    async def _run(self, file_id: str, operation: Callable[[], Any]) -> Any:
        try:
            return await asyncio.to_thread(operation)
        except HttpError as e:
            logger.warning(f"Drive call failed for {file_id}: HTTP {e.resp.status}")
            raise handle_http_error(e, file_id) from e
        except (OSError, httplib2.HttpLib2Error) as e:
            raise NetworkError(f"Network error talking to Drive: {e}", file_id) from e

    async def get_file_metadata(self, file_id: str, token: str) -> Dict[str, Any]:
        """Get id, name, mimeType, modifiedTime and version of a file."""
        service = self._service_factory(token)
        return await self._run(
            file_id,
            lambda: service.files().get(
                fileId=file_id, fields=DRIVE_METADATA_FIELDS, supportsAllDrives=True
            ).execute(),
        )

    async def download_file_content(self, file_id: str, token: str) -> str:
        """Download file content as text."""
        service = self._service_factory(token)

        def download() -> str:
            request = service.files().get_media(fileId=file_id, supportsAllDrives=True)
            fh = io.BytesIO()
            downloader = MediaIoBaseDownload(fh, request)
            done = False
            while done is False:
                status, done = downloader.next_chunk()
            return fh.getvalue().decode('utf-8')

        return await self._run(file_id, download)

    async def get_file_version(self, file_id: str, token: str) -> Optional[str]:
        """Get the current version marker of a file."""
        service = self._service_factory(token)
        meta = await self._run(
            file_id,
            lambda: service.files().get(
                fileId=file_id, fields='version', supportsAllDrives=True
            ).execute(),
        )
        version = meta.get('version')
        return str(version) if version is not None else None

    async def upload_file_content(self, file_id: str, content: str, token: str) -> Dict[str, Any]:
        """
        Replace file content with a media upload.

        Returns:
            The updated id, modifiedTime and version.
        """
        service = self._service_factory(token)

        def upload() -> Dict[str, Any]:
            fh = io.BytesIO(content.encode('utf-8'))
            media = MediaIoBaseUpload(fh, mimetype=HTML_MIME_TYPE, resumable=False)
            return service.files().update(
                fileId=file_id,
                media_body=media,
                supportsAllDrives=True,
                fields=DRIVE_UPLOAD_FIELDS,
            ).execute()

        return await self._run(file_id, upload)
