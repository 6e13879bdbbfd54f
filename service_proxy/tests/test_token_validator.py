"""
Unit tests for upstream token validation.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_proxy.app.credentials.token_validator import (
    GitHubCredential,
    load_credential,
    parse_token,
)
from shared.errors import ConfigurationError
from shared.test_helpers import classic_token, fine_grained_token


class TestParseToken:
    """Test cases for parse_token."""

    def test_classic_token_uses_token_scheme(self):
        """Classic tokens are sent with the 'token' scheme."""
        raw = classic_token()
        credential = parse_token(raw)

        assert credential.scheme == "token"
        assert credential.kind == "classic"
        assert credential.authorization_header == f"token {raw}"

    def test_fine_grained_token_uses_bearer_scheme(self):
        """Fine-grained tokens are sent as bearer tokens."""
        raw = fine_grained_token()
        credential = parse_token(raw)

        assert credential.scheme == "Bearer"
        assert credential.kind == "fine_grained"
        assert credential.authorization_header == f"Bearer {raw}"

    @pytest.mark.parametrize("raw", [
        "ghp_short",
        "ghp_" + "a" * 37,
        "github_pat_" + "A" * 83,
        "gho_" + "a" * 36,
        "not-a-token",
        "ghp_" + "a" * 35 + "-",
    ])
    def test_malformed_tokens_rejected(self, raw):
        """Anything outside the two accepted shapes is a configuration error."""
        with pytest.raises(ConfigurationError) as exc_info:
            parse_token(raw)

        assert exc_info.value.code == "configuration_error"

    def test_repr_masks_token(self):
        """The token never appears in full in the repr."""
        raw = classic_token("z")
        credential = GitHubCredential(token=raw, scheme="token")

        assert raw not in repr(credential)
        assert "ghp_***" in repr(credential)


class TestLoadCredential:
    """Test cases for load_credential."""

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_missing_token_runs_unauthenticated(self, raw):
        """No token configured yields no credential."""
        assert load_credential(raw) is None

    def test_invalid_token_runs_unauthenticated(self):
        """A rejected token degrades to unauthenticated instead of failing."""
        assert load_credential("ghp_tooshort") is None

    def test_surrounding_whitespace_ignored(self):
        """Tokens pasted with a trailing newline are still accepted."""
        raw = classic_token()
        credential = load_credential(f"  {raw}\n")

        assert credential is not None
        assert credential.token == raw
