"""Unit tests for scope resolution."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../src"))

from drive_relay.auth.scopes import ScopeResolver, resolve_short_scope, split_scopes
from drive_relay.utils.constants import DRIVE_FILE_SCOPE, DRIVE_SCOPE


class TestResolveShortScope:
    def test_known_codes(self):
        assert resolve_short_scope("drive") == DRIVE_SCOPE
        assert resolve_short_scope("drive.file") == DRIVE_FILE_SCOPE

    @pytest.mark.parametrize("raw", [None, "", "drive.readonly", "https://www.googleapis.com/auth/drive"])
    def test_unknown_falls_back_to_default(self, raw):
        assert resolve_short_scope(raw) == DRIVE_FILE_SCOPE

    def test_split_scopes(self):
        assert split_scopes(f"openid  {DRIVE_SCOPE}") == ["openid", DRIVE_SCOPE]
        assert split_scopes(None) == []


class TestScopeResolver:
    """Tests for ScopeResolver."""

    def setup_method(self):
        self.query = ""
        self.resolver = ScopeResolver(lambda: self.query)

    def test_determine_default(self):
        assert self.resolver.determine() == DRIVE_FILE_SCOPE

    def test_determine_page_override(self):
        self.query = "?id=abc&td_scope=drive"
        assert self.resolver.determine() == DRIVE_SCOPE
        assert self.resolver.current_page_override() == "drive"

    def test_determine_ignores_unknown_override(self):
        self.query = "?td_scope=everything"
        assert self.resolver.determine() == DRIVE_FILE_SCOPE
        assert self.resolver.current_page_override() == "everything"

    def test_drive_scope_satisfies_both(self):
        assert self.resolver.is_satisfied(DRIVE_SCOPE, DRIVE_SCOPE)
        assert self.resolver.is_satisfied(DRIVE_SCOPE, DRIVE_FILE_SCOPE)

    def test_file_scope_satisfies_only_file_scope(self):
        assert self.resolver.is_satisfied(DRIVE_FILE_SCOPE, DRIVE_FILE_SCOPE)
        assert not self.resolver.is_satisfied(DRIVE_FILE_SCOPE, DRIVE_SCOPE)

    def test_satisfied_within_scope_list(self):
        granted = f"openid {DRIVE_FILE_SCOPE} email"
        assert self.resolver.is_satisfied(granted, DRIVE_FILE_SCOPE)

    @pytest.mark.parametrize("granted", [None, "", "   "])
    def test_empty_grant_never_satisfies(self, granted):
        assert not self.resolver.is_satisfied(granted, DRIVE_FILE_SCOPE)
        assert not self.resolver.is_satisfied(granted, DRIVE_SCOPE)

    def test_derive_short(self):
        assert self.resolver.derive_short(DRIVE_SCOPE) == "drive"
        assert self.resolver.derive_short(DRIVE_FILE_SCOPE) == "drive.file"
        assert self.resolver.derive_short("openid") is None

    def test_failing_query_provider(self):
        def broken():
            raise RuntimeError("no window")

        resolver = ScopeResolver(broken)
        assert resolver.current_page_override() is None
        assert resolver.determine() == DRIVE_FILE_SCOPE
