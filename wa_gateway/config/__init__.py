"""
Configuration Module

Application configuration settings and utilities.
"""

from wa_gateway.config.settings import EndpointOverrideSettings, Settings, get_settings

__all__ = [
    "EndpointOverrideSettings",
    "Settings",
    "get_settings",
]
