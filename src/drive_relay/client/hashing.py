"""
Content hashing for conflict detection.

The hash is a fast fingerprint used only to answer "did this change", never
for integrity. Large documents are hashed off the event loop on a worker
thread; if the worker fails or stalls the hash is computed inline.
"""

import asyncio
import logging
import zlib
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from ..utils.constants import HASH_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


def generate_content_hash(content: str) -> str:
    """Return a CRC-32 plus length fingerprint of the content."""
    data = content.encode("utf-8")
    return f"{zlib.crc32(data) & 0xFFFFFFFF:08x}-{len(data):x}"


class HashService:
    """Computes content hashes on a worker thread with an inline fallback."""

    def __init__(
        self,
        timeout: float = HASH_TIMEOUT_SECONDS,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.timeout = timeout
        self._executor = executor

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="drive-relay-hash"
            )
        return self._executor

    async def generate_content_hash(self, content: str) -> str:
        """Hash content on the worker, falling back to inline computation."""
        loop = asyncio.get_running_loop()
        try:
            future = loop.run_in_executor(self._get_executor(), generate_content_hash, content)
            return await asyncio.wait_for(future, self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Hash computation timed out, falling back to inline hashing")
        except Exception as e:
            logger.warning(f"Hash worker failed ({e}), falling back to inline hashing")
        return generate_content_hash(content)

    def destroy(self) -> None:
        """Shut the worker down; later calls start a fresh one."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
