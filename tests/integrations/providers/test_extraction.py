"""
Tests for vendor payload extraction rules.
"""

from wa_gateway.integrations.providers.extraction import (
    digits_only,
    entry_token,
    extract_device_name,
    extract_pair_code,
    extract_phone,
    extract_qr,
    extract_state,
    extract_token,
    find_session_token,
    get_path,
    is_connected,
)


class TestFieldRules:
    """Tests for single-field extraction."""

    def test_get_path_stops_at_non_mappings(self):
        assert get_path({"a": {"b": 1}}, ("a", "b")) == 1
        assert get_path({"a": "text"}, ("a", "b")) is None
        assert get_path(None, ("a",)) is None

    def test_token_priority(self):
        payload = {"instance": {"token": "nested"}, "access_token": "late"}

        assert extract_token(payload) == "nested"
        assert extract_token({"token": "  top  ", "instance": {"token": "nested"}}) == "top"
        assert extract_token({"raw": {"data": {"token": "deep"}}}) == "deep"
        assert extract_token({}) is None

    def test_device_name_variants(self):
        assert extract_device_name({"instance": {"profileName": "Loja"}}) == "Loja"
        assert extract_device_name({"phone_device": {"name": "iPhone"}}) == "iPhone"

    def test_phone_is_reduced_to_digits(self):
        assert extract_phone({"instance": {"me": {"id": "5511999990000:12@s.whatsapp.net"}}}) == "5511999990000"
        assert extract_phone({"phone": "+55 (11) 99999-0000"}) == "5511999990000"
        assert digits_only("abc") is None

    def test_state_skips_status_objects(self):
        assert extract_state({"status": {"connected": True}, "instance": {"status": "OPEN"}}) == "open"
        assert extract_state({"status": "Disconnected"}) == "disconnected"
        assert extract_state({}) is None

    def test_qr_format_detection(self):
        assert extract_qr({"qrcode": "data:image/png;base64,AAA"}) == ("data:image/png;base64,AAA", "dataurl")
        assert extract_qr({"info": {"base64": "AAA"}}) == ("AAA", "base64")
        assert extract_qr({"qrcode": ""}) == (None, None)

    def test_pair_code(self):
        assert extract_pair_code({"instance": {"paircode": "ABCD-1234"}}) == "ABCD-1234"


class TestConnectionFlags:
    """Tests for is_connected."""

    def test_explicit_flag_wins_over_state(self):
        assert is_connected({"status": {"connected": False}, "state": "connected"}) is False
        assert is_connected({"connected": True, "state": "closed"}) is True

    def test_state_text_fallback(self):
        assert is_connected({"state": "ready"}) is True
        assert is_connected({"state": "connecting"}) is False
        assert is_connected({}) is False


class TestSessionListing:
    """Tests for token lookup in list responses."""

    def test_root_array_match_is_case_insensitive(self):
        data = [{"name": "other", "token": "x"}, {"name": "WA-Acme-42", "token": "tok-42"}]

        assert find_session_token(data, "wa-acme-42") == "tok-42"

    def test_nested_lists_and_alternate_keys(self):
        data = {"instances": [{"instanceName": "wa-1", "data": {"api_token": "tok-1"}}]}

        assert find_session_token(data, "wa-1") == "tok-1"

    def test_no_match_returns_none(self):
        assert find_session_token({"sessions": [{"name": "wa-2", "token": "t"}]}, "wa-1") is None
        assert find_session_token("garbage", "wa-1") is None

    def test_entry_token_ignores_blank_values(self):
        assert entry_token({"token": "  ", "session_token": "s"}) == "s"
