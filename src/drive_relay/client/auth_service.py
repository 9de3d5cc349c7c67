"""
Access token orchestration for the client.

AuthService is the single entry point the sync engine uses for a bearer
token: cached token, then a silent mint from the session backend, then an
interactive consent popup when there is no session or the grant is too narrow.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from ..auth.scopes import ScopeResolver
from ..core.config import ClientConfig
from ..utils.constants import RETURN_QUERY_PARAM, SCOPE_QUERY_PARAM
from ..utils.errors import (
    NetworkError,
    NoSessionError,
    ScopeNotGrantedError,
    TokenFailedError,
    UpstreamPolicyRestrictedError,
)
from .popup import AuthPopup, PopupOutcome
from .token_cache import TokenCache

logger = logging.getLogger(__name__)

POLICY_RESTRICTED_MESSAGE = (
    "Access is restricted by your organization's admin policy. "
    "Please contact your administrator for assistance. ({detail})"
)


def handle_token_response(response: httpx.Response) -> Dict[str, Any]:
    """
    Translate a token endpoint response into a token mapping or an error.

    Raises:
        NoSessionError: On 401.
        UpstreamPolicyRestrictedError: On 405, carrying a user-facing message.
        TokenFailedError: On any other failure.
    """
    if response.status_code == 401:
        raise NoSessionError("No session")
    if response.status_code == 405:
        detail = response.text or "Unknown error"
        raise UpstreamPolicyRestrictedError(POLICY_RESTRICTED_MESSAGE.format(detail=detail))
    if not response.is_success:
        raise TokenFailedError(
            f"Token request failed (HTTP {response.status_code})", status=response.status_code
        )

    try:
        data = response.json()
    except ValueError:
        raise TokenFailedError("Token response is not JSON", status=response.status_code)
    if not isinstance(data, dict) or not data.get("access_token"):
        raise TokenFailedError("Token response has no access_token", status=response.status_code)
    return data


class AuthService:
    """Orchestrates scope handling, token minting and consent."""

    def __init__(
        self,
        popup: AuthPopup,
        config: Optional[ClientConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        token_cache: Optional[TokenCache] = None,
        scope_resolver: Optional[ScopeResolver] = None,
        on_token: Optional[Callable[[str], None]] = None,
    ) -> None:
        """
        Args:
            popup: Consent popup controller bound to the host window.
            config: Client settings; defaults to ClientConfig.from_env().
            http_client: Client for the session backend. It must keep cookies
                between requests. Created from config.base_url when omitted.
            token_cache: Access token cache.
            scope_resolver: Resolver for the desired scope; defaults to one
                reading the host window's query string.
            on_token: Called with every token handed out.
        """
        self.config = config or ClientConfig.from_env()
        self.popup = popup
        self.token_cache = token_cache or TokenCache(skew_seconds=self.config.token_skew_seconds)
        self.scope_resolver = scope_resolver or ScopeResolver(self._current_query)
        self.on_token = on_token
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(base_url=self.config.base_url)
        self._mint_in_flight: Dict[str, asyncio.Task] = {}
        self._consent_in_flight: Dict[str, asyncio.Task] = {}

    def _current_query(self) -> str:
        location = self.popup.host.location()
        path = location.split("#", 1)[0]
        return path.split("?", 1)[1] if "?" in path else ""

    async def aclose(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_client:
            await self._client.aclose()

    async def get_access_token(self) -> str:
        """
        Return an access token satisfying the current desired scope.

        Consent is requested automatically when there is no session or the
        granted scope is insufficient.
        """
        desired = self.scope_resolver.determine()
        cached = self.token_cache.read()
        if cached and self.scope_resolver.is_satisfied(cached.scope, desired):
            self._notify(cached.access_token)
            return cached.access_token

        token = await self._obtain_authorized_token(desired)
        return self._apply_token(token, desired)

    async def reauthenticate_with_consent(self) -> str:
        """Force a consent flow, replacing any cached token."""
        desired = self.scope_resolver.determine()
        self.token_cache.clear()
        token = await self._obtain_authorized_token(desired, force_consent_first=True)
        return self._apply_token(token, desired)

    def clear_cached_token(self) -> None:
        """Clear the cached token (the backend session cookie is untouched)."""
        self.token_cache.clear()

    def build_start_urls(self, override: Optional[str]) -> Tuple[str, str]:
        """
        Build the popup and fallback authorization-start URLs.

        The popup URL carries only the scope override; the fallback URL also
        carries the current location as the return target.
        """
        popup_params = {}
        if override:
            popup_params[SCOPE_QUERY_PARAM] = override

        fallback_params = dict(popup_params)
        current = self.popup.host.location()
        if current.startswith("/"):
            fallback_params[RETURN_QUERY_PARAM] = current

        def build(params: Dict[str, str]) -> str:
            base = self.config.start_path
            return f"{base}?{urlencode(params)}" if params else base

        return build(popup_params), build(fallback_params)

    def _notify(self, access_token: str) -> None:
        if self.on_token:
            self.on_token(access_token)

    def _apply_token(self, token: Dict[str, Any], desired: str) -> str:
        access_token = token["access_token"]
        self.token_cache.write(
            access_token, int(token.get("expires_in") or 0), token.get("scope") or desired
        )
        self._notify(access_token)
        return access_token

    async def _fetch_token(self) -> Dict[str, Any]:
        """Call the session backend's token endpoint."""
        try:
            response = await self._client.get(self.config.token_path)
        except httpx.TransportError as e:
            raise NetworkError(f"Token request failed: {e}") from e
        return handle_token_response(response)

    @staticmethod
    def _forget(in_flight: Dict[str, asyncio.Task], scope: str, task: asyncio.Task) -> None:
        if in_flight.get(scope) is task:
            del in_flight[scope]

    async def _mint(self, scope: str) -> Dict[str, Any]:
        """Mint a token, sharing one in-flight request per scope."""
        task = self._mint_in_flight.get(scope)
        if task is None:
            task = asyncio.ensure_future(self._fetch_token())
            self._mint_in_flight[scope] = task
            task.add_done_callback(lambda t, s=scope: self._forget(self._mint_in_flight, s, t))
        return await asyncio.shield(task)

    async def _consent_and_mint(self, override: Optional[str], scope: str) -> Dict[str, Any]:
        """Run the consent popup and mint, sharing one in-flight consent per scope."""
        task = self._consent_in_flight.get(scope)
        if task is None:
            task = asyncio.ensure_future(self._run_consent(override, scope))
            self._consent_in_flight[scope] = task
            task.add_done_callback(lambda t, s=scope: self._forget(self._consent_in_flight, s, t))
        return await asyncio.shield(task)

    async def _run_consent(self, override: Optional[str], scope: str) -> Dict[str, Any]:
        popup_url, fallback_url = self.build_start_urls(override)
        outcome = await self.popup.open_and_wait(popup_url, fallback_url)
        if outcome is PopupOutcome.REDIRECTED:
            raise NoSessionError("Navigating to the consent screen")
        return await self._mint(scope)

    async def _obtain_authorized_token(
        self, desired: str, force_consent_first: bool = False
    ) -> Dict[str, Any]:
        """Obtain a token whose granted scope satisfies the desired scope."""
        page_override = self.scope_resolver.current_page_override()
        override = page_override or self.scope_resolver.derive_short(desired)
        is_satisfied = self.scope_resolver.is_satisfied

        if force_consent_first:
            first = await self._consent_and_mint(override, desired)
            if is_satisfied(first.get("scope"), desired):
                return first

        try:
            initial = await self._mint(desired)
        except NoSessionError:
            logger.info("No session, requesting consent")
            after_consent = await self._consent_and_mint(page_override, desired)
            if not is_satisfied(after_consent.get("scope"), desired):
                raise ScopeNotGrantedError(f"Consent did not grant {desired}")
            return after_consent

        if is_satisfied(initial.get("scope"), desired):
            return initial

        logger.info(f"Granted scope insufficient for {desired}, escalating")
        escalated = await self._consent_and_mint(override, desired)
        if not is_satisfied(escalated.get("scope"), desired):
            raise ScopeNotGrantedError(f"Consent did not grant {desired}")
        return escalated
