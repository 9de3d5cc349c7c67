"""Unit tests for the Google identity provider adapter."""

import base64
import hashlib
import json
import os
import sys
from unittest.mock import Mock, patch
from urllib.parse import parse_qs, urlparse

import pytest
import requests
from oauthlib.oauth2.rfc6749.errors import InvalidGrantError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../src"))

from drive_relay.auth.google_auth import (
    GoogleIdentityProvider,
    create_pkce_pair,
    generate_state,
    provider_error_status,
)
from drive_relay.core.config import ServerConfig
from drive_relay.utils.constants import DRIVE_FILE_SCOPE
from drive_relay.utils.errors import (
    ConfigurationError,
    NoSessionError,
    TokenExchangeError,
    UpstreamPolicyRestrictedError,
)


def make_config(**overrides):
    env = {
        "GOOGLE_OAUTH_CLIENT_ID": "client-123",
        "GOOGLE_OAUTH_CLIENT_SECRET": "secret",
        "DRIVE_RELAY_REDIRECT_URI": "https://relay.example/api/oauth/callback",
    }
    env.update(overrides)
    with patch.dict(os.environ, env):
        return ServerConfig()


class TestPkce:
    def test_challenge_is_s256_of_verifier(self):
        verifier, challenge = create_pkce_pair()
        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        assert challenge == base64.urlsafe_b64encode(digest).decode().rstrip("=")

    def test_verifier_length_and_alphabet(self):
        verifier, _ = create_pkce_pair()
        assert 43 <= len(verifier) <= 128
        assert "=" not in verifier and "+" not in verifier and "/" not in verifier

    def test_state_is_random(self):
        assert generate_state() != generate_state()


class TestProviderErrorStatus:
    @pytest.mark.parametrize(
        "code, status",
        [
            ("invalid_grant", 401),
            ("admin_policy_enforced", 405),
            ("org_internal", 405),
            ("access_denied", 405),
            ("policy_enforced", 405),
            ("invalid_client", 500),
            ("unauthorized_client", 500),
            ("server_error", 500),
            (None, 500),
        ],
    )
    def test_mapping(self, code, status):
        assert provider_error_status(code) == status


class TestAuthorizationUrl:
    def test_builds_consent_url(self):
        provider = GoogleIdentityProvider(make_config())
        verifier, challenge = create_pkce_pair()

        url = provider.build_authorization_url(DRIVE_FILE_SCOPE, "state-1", verifier, challenge)

        params = parse_qs(urlparse(url).query)
        assert params["client_id"] == ["client-123"]
        assert params["scope"] == [DRIVE_FILE_SCOPE]
        assert params["state"] == ["state-1"]
        assert params["code_challenge"] == [challenge]
        assert params["code_challenge_method"] == ["S256"]
        assert params["access_type"] == ["offline"]
        assert params["prompt"] == ["consent"]

    def test_requires_client_configuration(self):
        provider = GoogleIdentityProvider(make_config(DRIVE_RELAY_REDIRECT_URI=""))
        with pytest.raises(ConfigurationError):
            provider.build_authorization_url(DRIVE_FILE_SCOPE, "s", "v", "c")


def token_endpoint_response(payload, status=200):
    """A token endpoint reply as OAuth2Session.post would return it."""
    response = Mock()
    response.status_code = status
    response.headers = {"Content-Type": "application/json"}
    response.text = json.dumps(payload)
    return response


class TestRefreshAccessToken:
    """Tests for refresh_access_token against a stubbed token endpoint."""

    def setup_method(self):
        self.config = make_config()
        self.provider = GoogleIdentityProvider(self.config)
        self.patcher = patch("requests_oauthlib.OAuth2Session.post")
        self.post = self.patcher.start()

    def teardown_method(self):
        self.patcher.stop()

    def test_success_posts_refresh_grant(self):
        self.post.return_value = token_endpoint_response(
            {
                "access_token": "ya29.a",
                "expires_in": 3599,
                "scope": f"openid {DRIVE_FILE_SCOPE}",
                "token_type": "Bearer",
            }
        )
        result = self.provider.refresh_access_token("1//rt")

        assert result["access_token"] == "ya29.a"
        assert result["expires_in"] == 3599
        assert result["scope"] == f"openid {DRIVE_FILE_SCOPE}"

        args, kwargs = self.post.call_args
        assert args[0] == self.config.token_uri
        assert kwargs["data"]["grant_type"] == "refresh_token"
        assert kwargs["data"]["refresh_token"] == "1//rt"
        assert kwargs["data"]["client_id"] == "client-123"

    def test_custom_token_uri(self):
        config = make_config(DRIVE_RELAY_TOKEN_URI="https://idp.example/token")
        self.post.return_value = token_endpoint_response(
            {"access_token": "ya29.a", "expires_in": 60, "token_type": "Bearer"}
        )
        GoogleIdentityProvider(config).refresh_access_token("1//rt")
        assert self.post.call_args.args[0] == "https://idp.example/token"

    def test_invalid_grant_means_no_session(self):
        self.post.return_value = token_endpoint_response(
            {"error": "invalid_grant", "error_description": "Token has been expired or revoked."},
            status=400,
        )
        with pytest.raises(NoSessionError):
            self.provider.refresh_access_token("1//rt")

    def test_policy_error(self):
        self.post.return_value = token_endpoint_response(
            {"error": "admin_policy_enforced", "error_description": "Blocked by admin"},
            status=400,
        )
        with pytest.raises(UpstreamPolicyRestrictedError) as exc_info:
            self.provider.refresh_access_token("1//rt")
        assert exc_info.value.message == "Blocked by admin"

    def test_client_error(self):
        self.post.return_value = token_endpoint_response({"error": "invalid_client"}, status=401)
        with pytest.raises(TokenExchangeError) as exc_info:
            self.provider.refresh_access_token("1//rt")
        assert exc_info.value.http_status == 500
        assert exc_info.value.error_code == "invalid_client"

    def test_transport_failure(self):
        self.post.side_effect = requests.ConnectionError("down")
        with pytest.raises(TokenExchangeError):
            self.provider.refresh_access_token("1//rt")

class TestExchangeCode:
    def test_rejected_code(self):
        provider = GoogleIdentityProvider(make_config())
        with patch("drive_relay.auth.google_auth.Flow") as mock_flow_cls:
            mock_flow_cls.from_client_config.return_value.fetch_token.side_effect = (
                InvalidGrantError()
            )
            with pytest.raises(TokenExchangeError) as exc_info:
                provider.exchange_code("code", "verifier")
        assert exc_info.value.http_status == 400

    def test_success(self):
        provider = GoogleIdentityProvider(make_config())
        with patch("drive_relay.auth.google_auth.Flow") as mock_flow_cls:
            flow = mock_flow_cls.from_client_config.return_value
            flow.fetch_token.return_value = {
                "access_token": "ya29.a",
                "refresh_token": "1//rt",
                "expires_in": 3599,
                "scope": [DRIVE_FILE_SCOPE],
            }
            tokens = provider.exchange_code("code", "verifier")

        assert tokens["refresh_token"] == "1//rt"
        flow.fetch_token.assert_called_once_with(code="code")
        assert mock_flow_cls.from_client_config.call_args.kwargs["code_verifier"] == "verifier"
