"""
Tests for credential precedence and secret masking.
"""

import pytest

from wa_gateway.integrations.providers.credentials import (
    CredentialPolicy,
    CredentialSource,
    mask_headers,
    mask_secret,
)
from wa_gateway.integrations.providers.exceptions import CredentialsMissingError


class TestCredentialPolicy:
    """Tests for CredentialPolicy.select."""

    @pytest.fixture
    def policy(self):
        return CredentialPolicy(admin_token="admin-token", global_token="global-token")

    def test_override_beats_everything(self, policy):
        credential = policy.select(override="explicit", session_token="session", administrative=True)

        assert credential.value == "explicit"
        assert credential.source == CredentialSource.OVERRIDE

    def test_session_token_beats_admin_and_global(self, policy):
        credential = policy.select(session_token="session", administrative=True)

        assert credential.source == CredentialSource.SESSION

    def test_admin_only_for_administrative_calls(self, policy):
        assert policy.select(administrative=True).source == CredentialSource.ADMIN
        assert policy.select(administrative=False).source == CredentialSource.GLOBAL

    def test_per_call_restriction_disables_global(self, policy):
        with pytest.raises(CredentialsMissingError) as exc_info:
            policy.select(allow_global_fallback=False)

        assert "global fallback disabled" in str(exc_info.value)

    def test_per_call_flag_cannot_widen_policy(self):
        policy = CredentialPolicy(global_token="global-token", allow_global_fallback=False)

        with pytest.raises(CredentialsMissingError):
            policy.select(allow_global_fallback=True)

    def test_nothing_configured_raises(self):
        with pytest.raises(CredentialsMissingError) as exc_info:
            CredentialPolicy().select()

        assert exc_info.value.kind == "credentials_missing"

    def test_repr_masks_value(self, policy):
        credential = policy.select(session_token="abcd1234efgh5678")

        assert "abcd1234efgh5678" not in repr(credential)
        assert "abcd****5678" in repr(credential)


class TestMasking:
    """Tests for mask_secret and mask_headers."""

    def test_mask_secret(self):
        assert mask_secret("abcd1234efgh5678") == "abcd****5678"
        assert mask_secret("short") == "****"
        assert mask_secret(None) == ""

    def test_mask_headers_masks_only_credentials(self):
        headers = {
            "token": "abcd1234efgh5678",
            "Authorization": "Bearer abcd1234efgh5678",
            "Client-Token": "zzzz0000yyyy1111",
            "Content-Type": "application/json",
        }

        masked = mask_headers(headers)

        assert masked["token"] == "abcd****5678"
        assert masked["Authorization"] == "Bearer abcd****5678"
        assert masked["Client-Token"] == "zzzz****1111"
        assert masked["Content-Type"] == "application/json"
