"""Unit tests for content hashing."""

import asyncio
import os
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../src"))

from drive_relay.client.hashing import HashService, generate_content_hash


class TestGenerateContentHash:
    def test_stable(self):
        assert generate_content_hash("<html>a</html>") == generate_content_hash("<html>a</html>")

    def test_detects_change(self):
        assert generate_content_hash("<html>a</html>") != generate_content_hash("<html>b</html>")

    def test_non_ascii(self):
        assert generate_content_hash("héllo") != generate_content_hash("hello")


class TestHashService:
    """Tests for HashService worker and fallback."""

    def setup_method(self):
        self.service = HashService(timeout=5.0)

    def teardown_method(self):
        self.service.destroy()

    @pytest.mark.asyncio
    async def test_matches_inline_hash(self):
        content = "<html>" + "x" * 100_000 + "</html>"
        assert await self.service.generate_content_hash(content) == generate_content_hash(content)

    @pytest.mark.asyncio
    async def test_falls_back_on_worker_failure(self):
        executor = Mock(spec=ThreadPoolExecutor)
        executor.submit.side_effect = RuntimeError("cannot schedule new futures after shutdown")
        service = HashService(executor=executor)
        assert await service.generate_content_hash("abc") == generate_content_hash("abc")

    @pytest.mark.asyncio
    async def test_falls_back_on_timeout(self):
        gate = threading.Event()
        blocker = ThreadPoolExecutor(max_workers=1)
        # Occupy the only worker so the hash job queues behind it
        busy = asyncio.get_running_loop().run_in_executor(blocker, gate.wait, 5)
        service = HashService(timeout=0.05, executor=blocker)

        assert await service.generate_content_hash("abc") == generate_content_hash("abc")

        gate.set()
        await busy
        blocker.shutdown()
