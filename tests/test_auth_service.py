"""Unit tests for the access token orchestrator."""

import asyncio
import os
import sys
import time
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../src"))

from drive_relay.client.auth_service import AuthService, handle_token_response
from drive_relay.client.popup import PopupOutcome
from drive_relay.client.token_cache import TokenCache
from drive_relay.core.config import ClientConfig
from drive_relay.utils.constants import DRIVE_FILE_SCOPE, DRIVE_SCOPE
from drive_relay.utils.errors import (
    NetworkError,
    NoSessionError,
    ScopeNotGrantedError,
    TokenFailedError,
    UpstreamPolicyRestrictedError,
)


class FakeHost:
    def __init__(self, location="/wiki?id=abc"):
        self._location = location

    def location(self):
        return self._location


class StubPopup:
    """Records consent requests and reports a fixed outcome."""

    def __init__(self, host, outcome=PopupOutcome.COMPLETED, on_open=None):
        self.host = host
        self.outcome = outcome
        self.on_open = on_open
        self.calls = []

    async def open_and_wait(self, popup_url, fallback_url):
        self.calls.append((popup_url, fallback_url))
        if self.on_open:
            self.on_open()
        await asyncio.sleep(0.01)
        return self.outcome


class TokenBackend:
    """Scripted /api/token responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        await asyncio.sleep(0.01)
        status, body = self.responses[0] if len(self.responses) == 1 else self.responses.pop(0)
        if isinstance(body, dict):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body)


def token_body(scope=DRIVE_FILE_SCOPE, access_token="ya29.minted"):
    return {"access_token": access_token, "expires_in": 3599, "scope": scope}


class AuthServiceTestBase:
    location = "/wiki?id=abc"

    def setup_method(self):
        self.host = FakeHost(self.location)
        self.popup = StubPopup(self.host)
        self.cache = TokenCache()
        self.applied = []

    def make_service(self, backend: TokenBackend) -> AuthService:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(backend), base_url="http://relay.test"
        )
        return AuthService(
            self.popup,
            config=ClientConfig(base_url="http://relay.test"),
            http_client=client,
            token_cache=self.cache,
            on_token=self.applied.append,
        )


class TestGetAccessToken(AuthServiceTestBase):
    """Tests for the default file-scope flow."""

    @pytest.mark.asyncio
    async def test_cached_token_needs_no_request(self):
        backend = TokenBackend((200, token_body()))
        service = self.make_service(backend)
        self.cache.write("ya29.cached", 3600, DRIVE_FILE_SCOPE)

        assert await service.get_access_token() == "ya29.cached"
        assert backend.requests == 0
        assert self.applied == ["ya29.cached"]

    @pytest.mark.asyncio
    async def test_drive_scope_cache_satisfies_file_scope(self):
        backend = TokenBackend((200, token_body()))
        service = self.make_service(backend)
        self.cache.write("ya29.cached", 3600, DRIVE_SCOPE)

        assert await service.get_access_token() == "ya29.cached"
        assert backend.requests == 0

    @pytest.mark.asyncio
    async def test_silent_mint_is_cached(self):
        backend = TokenBackend((200, token_body()))
        service = self.make_service(backend)

        assert await service.get_access_token() == "ya29.minted"
        assert await service.get_access_token() == "ya29.minted"
        assert backend.requests == 1
        assert self.popup.calls == []
        assert self.cache.read().scope == DRIVE_FILE_SCOPE

    @pytest.mark.asyncio
    async def test_single_flight(self):
        backend = TokenBackend((200, token_body()))
        service = self.make_service(backend)

        tokens = await asyncio.gather(*[service.get_access_token() for _ in range(5)])

        assert tokens == ["ya29.minted"] * 5
        assert backend.requests == 1

    @pytest.mark.asyncio
    async def test_no_session_requests_consent(self):
        backend = TokenBackend((401, "No session"), (200, token_body()))
        service = self.make_service(backend)

        assert await service.get_access_token() == "ya29.minted"
        assert backend.requests == 2
        popup_url, fallback_url = self.popup.calls[0]
        assert popup_url == "/api/oauth/start"
        assert parse_qs(urlparse(fallback_url).query)["td_return"] == ["/wiki?id=abc"]

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_consent(self):
        backend = TokenBackend((401, "No session"), (200, token_body()))
        service = self.make_service(backend)

        tokens = await asyncio.gather(*[service.get_access_token() for _ in range(4)])

        assert tokens == ["ya29.minted"] * 4
        assert len(self.popup.calls) == 1
        assert backend.requests == 2

    @pytest.mark.asyncio
    async def test_redirected_popup_means_no_session(self):
        self.popup.outcome = PopupOutcome.REDIRECTED
        backend = TokenBackend((401, "No session"))
        service = self.make_service(backend)

        with pytest.raises(NoSessionError):
            await service.get_access_token()
        assert backend.requests == 1

    @pytest.mark.asyncio
    async def test_policy_restriction(self):
        backend = TokenBackend((405, "admin_policy_enforced"))
        service = self.make_service(backend)

        with pytest.raises(UpstreamPolicyRestrictedError) as exc_info:
            await service.get_access_token()
        assert "admin policy" in exc_info.value.message
        assert "admin_policy_enforced" in exc_info.value.message
        assert self.popup.calls == []

    @pytest.mark.asyncio
    async def test_other_failure(self):
        backend = TokenBackend((500, "boom"))
        service = self.make_service(backend)

        with pytest.raises(TokenFailedError) as exc_info:
            await service.get_access_token()
        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def unreachable(request):
            raise httpx.ConnectError("connection refused")

        client = httpx.AsyncClient(transport=httpx.MockTransport(unreachable), base_url="http://relay.test")
        service = AuthService(self.popup, config=ClientConfig(), http_client=client)

        with pytest.raises(NetworkError):
            await service.get_access_token()

    @pytest.mark.asyncio
    async def test_clear_cached_token(self):
        backend = TokenBackend((200, token_body()))
        service = self.make_service(backend)
        await service.get_access_token()

        service.clear_cached_token()
        await service.get_access_token()
        assert backend.requests == 2


class TestScopeEscalation(AuthServiceTestBase):
    """Tests for a page that asks for the drive-wide scope."""

    location = "/wiki?id=abc&td_scope=drive"

    @pytest.mark.asyncio
    async def test_insufficient_scope_escalates(self):
        backend = TokenBackend((200, token_body(DRIVE_FILE_SCOPE)), (200, token_body(DRIVE_SCOPE, "ya29.wide")))
        service = self.make_service(backend)

        assert await service.get_access_token() == "ya29.wide"
        popup_url, fallback_url = self.popup.calls[0]
        assert popup_url == "/api/oauth/start?td_scope=drive"
        fallback_params = parse_qs(urlparse(fallback_url).query)
        assert fallback_params["td_scope"] == ["drive"]
        assert fallback_params["td_return"] == ["/wiki?id=abc&td_scope=drive"]

    @pytest.mark.asyncio
    async def test_scope_not_granted_after_consent(self):
        backend = TokenBackend((200, token_body(DRIVE_FILE_SCOPE)))
        service = self.make_service(backend)

        with pytest.raises(ScopeNotGrantedError):
            await service.get_access_token()
        assert len(self.popup.calls) == 1
        assert backend.requests == 2
        assert self.cache.read() is None

    @pytest.mark.asyncio
    async def test_file_scope_cache_does_not_satisfy(self):
        self.cache.write("ya29.narrow", 3600, DRIVE_FILE_SCOPE)
        backend = TokenBackend((200, token_body(DRIVE_SCOPE, "ya29.wide")))
        service = self.make_service(backend)

        assert await service.get_access_token() == "ya29.wide"
        assert backend.requests == 1


class TestReauthenticate(AuthServiceTestBase):
    @pytest.mark.asyncio
    async def test_forces_consent_and_replaces_cache(self):
        self.cache.write("ya29.old", 3600, DRIVE_FILE_SCOPE)
        backend = TokenBackend((200, token_body(access_token="ya29.new")))
        service = self.make_service(backend)

        assert await service.reauthenticate_with_consent() == "ya29.new"
        assert len(self.popup.calls) == 1
        assert backend.requests == 1
        assert self.cache.read().access_token == "ya29.new"


class TestHandleTokenResponse:
    def test_missing_access_token(self):
        response = httpx.Response(200, json={"expires_in": 10})
        with pytest.raises(TokenFailedError):
            handle_token_response(response)

    def test_non_json_body(self):
        response = httpx.Response(200, text="<html>")
        with pytest.raises(TokenFailedError):
            handle_token_response(response)

    def test_no_session(self):
        with pytest.raises(NoSessionError):
            handle_token_response(httpx.Response(401, text="No session"))
