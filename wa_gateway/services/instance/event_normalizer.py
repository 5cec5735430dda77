# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Normalización de webhooks entrantes del proveedor a
#              ConnectionEvent y verificación de firma.
# ============================================================================
"""
Inbound webhook normalization.

Single Responsibility: Turn a raw vendor webhook payload into a
ConnectionEvent using the alternate field names listed in extraction.py,
and verify the optional shared-secret signature.
"""

import hashlib
import hmac
import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from wa_gateway.integrations.providers.extraction import (
    EVENT_AT_RULE,
    EVENT_DEVICE_RULE,
    EVENT_INSTANCE_RULE,
    EVENT_PHONE_RULE,
    EVENT_STATUS_RULE,
    EVENT_TYPE_RULE,
    digits_only,
    first_string,
    first_value,
)
from wa_gateway.models.instance import ConnectionEvent, EventSource, utc_now

logger = logging.getLogger(__name__)


def verify_signature(secret: str | None, signature: str | None, body: bytes) -> bool:
    """
    Validate a webhook signature.

    Accepts either the shared secret itself or an HMAC-SHA256 hex digest of
    the raw body (optionally prefixed with `sha256=`). No configured secret
    means every request is accepted.
    """
    if not secret:
        return True
    if not signature:
        return False

    signature = signature.strip()
    if hmac.compare_digest(signature.encode(), secret.encode()):
        return True

    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    provided = signature[7:] if signature.startswith("sha256=") else signature
    return hmac.compare_digest(provided.lower().encode(), expected.encode())


def parse_timestamp(value: Any) -> datetime | None:
    """ISO-8601 strings and epoch seconds/milliseconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e12 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return parse_timestamp(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable webhook timestamp: {text}")
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def normalize_webhook_payload(
    tenant_id: str,
    payload: Mapping[str, Any],
    observation: int | None = None,
) -> ConnectionEvent | None:
    """
    Build a ConnectionEvent from a webhook payload.

    Returns None when no status can be found.
    """
    status = first_string(payload, EVENT_STATUS_RULE)
    if not status:
        return None

    return ConnectionEvent(
        tenant_id=tenant_id,
        reported_status=status,
        session_hint=first_string(payload, EVENT_INSTANCE_RULE),
        device_name=first_string(payload, EVENT_DEVICE_RULE),
        phone_number=digits_only(first_string(payload, EVENT_PHONE_RULE)),
        observed_at=parse_timestamp(first_value(payload, EVENT_AT_RULE)) or utc_now(),
        source=EventSource.WEBHOOK,
        event_type=first_string(payload, EVENT_TYPE_RULE),
        observation=observation,
    )
