"""
Tests for provider adapter selection.
"""

import pytest

from wa_gateway.config.settings import Settings
from wa_gateway.integrations.providers.candidates import EndpointOverride
from wa_gateway.integrations.providers.factory import build_uazapi_overrides, create_provider_adapter
from wa_gateway.integrations.providers.uazapi import UazapiAdapter
from wa_gateway.integrations.providers.zapi import ZapiAdapter


class TestProviderFactory:
    """Tests for create_provider_adapter."""

    def test_uazapi_selected(self, settings):
        assert isinstance(create_provider_adapter(settings), UazapiAdapter)

    def test_zapi_selected_case_insensitively(self):
        settings = Settings(_env_file=None, PROVIDER=" ZAPI ", ZAPI_INSTANCE_ID="i", ZAPI_TOKEN="t")

        assert isinstance(create_provider_adapter(settings), ZapiAdapter)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown PROVIDER"):
            create_provider_adapter(Settings(_env_file=None, PROVIDER="evolution"))

    def test_overrides_from_settings(self):
        settings = Settings(
            _env_file=None,
            UAZAPI_QR_PATH="/my/qr",
            UAZAPI_QR_KEYS="instance, name",
            UAZAPI_DISCONNECT_PATH="/my/logout",
            UAZAPI_DISCONNECT_METHOD="DELETE",
        )

        overrides = build_uazapi_overrides(settings)

        assert overrides == {
            "disconnect": EndpointOverride(path="/my/logout", method="DELETE", keys=()),
            "qr": EndpointOverride(path="/my/qr", method=None, keys=("instance", "name")),
        }
