"""
WhatsApp instance gateway.

Links each tenant to one vendor session and relays outbound messages through it.
"""

__version__ = "0.3.0"
