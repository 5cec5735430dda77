# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Reglas de extracción de campos de payloads de proveedores.
#              Los nombres alternativos de cada campo viven como datos.
# ============================================================================
"""
Payload extraction rules.

Single Responsibility: Pull logical fields (token, device name, phone, QR,
connection flags) out of vendor payloads whose field naming varies.

Each logical field is an ordered tuple of key paths evaluated in priority
order; onboarding a vendor that names things differently means editing
these tables, not the code that reads them.
"""

import re
from collections.abc import Iterable, Mapping
from typing import Any

FieldPath = tuple[str, ...]
FieldRule = tuple[FieldPath, ...]

TOKEN_RULE: FieldRule = (
    ("token",),
    ("instance", "token"),
    ("data", "token"),
    ("raw", "token"),
    ("raw", "data", "token"),
    ("raw", "instance", "token"),
    ("session_token",),
    ("bearer_token",),
    ("api_token",),
    ("accessToken",),
    ("access_token",),
)

# Token fields on an entry of a "list sessions" response
LISTED_TOKEN_KEYS: tuple[str, ...] = (
    "token",
    "instance_token",
    "session_token",
    "bearer_token",
    "api_token",
    "accessToken",
    "access_token",
)

# Fields that carry the session name on a listed entry
SESSION_NAME_KEYS: tuple[str, ...] = ("name", "instance", "session", "sessionId", "instanceName")

# Keys under which list endpoints nest their arrays
SESSION_LIST_KEYS: tuple[str, ...] = ("instances", "sessions", "list", "data", "result")

DEVICE_NAME_RULE: FieldRule = (
    ("device_name",),
    ("instance", "device_name"),
    ("raw", "device_name"),
    ("raw", "instance", "device_name"),
    ("status", "device_name"),
    ("phone_device", "name"),
    ("instance", "device", "name"),
    ("raw", "instance", "device", "name"),
    ("deviceName",),
    ("instance", "profileName"),
)

PHONE_RULE: FieldRule = (
    ("phone",),
    ("instance", "phone"),
    ("status", "phone"),
    ("raw", "phone"),
    ("raw", "instance", "phone"),
    ("raw", "data", "phone"),
    ("instance", "me", "id"),
    ("raw", "instance", "me", "id"),
    ("wid",),
    ("instance", "wid"),
    ("raw", "instance", "wid"),
    ("status", "jid"),
)

QR_IMAGE_RULE: FieldRule = (
    ("qrCode",),
    ("qrcode",),
    ("qr",),
    ("base64",),
    ("instance", "qrcode"),
    ("info", "qrCode"),
    ("info", "qrcode"),
    ("info", "qr"),
    ("info", "base64"),
    ("status", "qrCode"),
    ("status", "qrcode"),
    ("status", "qr"),
    ("status", "base64"),
    ("status", "qr_image"),
    ("status", "qr_image_base64"),
)

QR_URL_RULE: FieldRule = (
    ("url",),
    ("info", "url"),
    ("status", "url"),
    ("status", "qr_url"),
)

PAIR_CODE_RULE: FieldRule = (
    ("paircode",),
    ("pairCode",),
    ("instance", "paircode"),
    ("status", "paircode"),
)

CONNECTED_FLAG_RULE: FieldRule = (
    ("status", "connected"),
    ("connected",),
    ("instance", "connected"),
)

LOGGED_IN_FLAG_RULE: FieldRule = (
    ("status", "loggedIn"),
    ("loggedIn",),
    ("instance", "loggedIn"),
)

STATE_RULE: FieldRule = (
    ("state",),
    ("connection_status",),
    ("instance", "status"),
    ("status", "state"),
    ("status",),
)

CONNECTED_AT_RULE: FieldRule = (
    ("connected_at",),
    ("instance", "connected_at"),
    ("status", "connected_at"),
)

# Inbound webhook normalization
EVENT_TYPE_RULE: FieldRule = (("type",), ("event", "type"), ("event_type",), ("EventType",))
EVENT_STATUS_RULE: FieldRule = (
    ("status",),
    ("state",),
    ("data", "status"),
    ("data", "state"),
    ("event", "status"),
    ("instance", "status"),
)
EVENT_INSTANCE_RULE: FieldRule = (
    ("instance_id",),
    ("instance",),
    ("data", "instance"),
    ("data", "instance_id"),
    ("instanceId",),
    ("instanceName",),
    ("instance", "name"),
)
EVENT_DEVICE_RULE: FieldRule = (
    ("deviceName",),
    ("device_name",),
    ("data", "deviceName"),
    ("data", "device_name"),
)
EVENT_PHONE_RULE: FieldRule = (
    ("phone",),
    ("phoneNumber",),
    ("data", "phone"),
    ("data", "phoneNumber"),
)
EVENT_AT_RULE: FieldRule = (("connected_at",), ("at",), ("timestamp",), ("data", "timestamp"))

CONNECTED_STATES = frozenset({"connected", "ready", "open", "online", "authenticated"})
DISCONNECTED_STATES = frozenset(
    {"disconnected", "logged_out", "loggedout", "logout", "closed", "close", "offline", "conflict"}
)
AWAITING_QR_STATES = frozenset({"qr", "qrcode", "connecting", "pairing", "awaiting_qr", "starting"})

_NON_DIGITS = re.compile(r"\D")


def get_path(data: Any, path: FieldPath) -> Any:
    """Follow a key path through nested mappings; None when any step is missing."""
    current = data
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def first_value(data: Any, rule: Iterable[FieldPath]) -> Any:
    """First non-empty value for a rule, in priority order."""
    for path in rule:
        value = get_path(data, path)
        if value is None or value == "":
            continue
        return value
    return None


def first_string(data: Any, rule: Iterable[FieldPath]) -> str | None:
    """First non-empty string (or number rendered as string) for a rule."""
    for path in rule:
        value = get_path(data, path)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def first_bool(data: Any, rule: Iterable[FieldPath]) -> bool | None:
    for path in rule:
        value = get_path(data, path)
        if isinstance(value, bool):
            return value
    return None


def digits_only(value: Any) -> str | None:
    if value is None:
        return None
    digits = _NON_DIGITS.sub("", str(value).split("@")[0].split(":")[0])
    return digits or None


def extract_token(data: Any) -> str | None:
    return first_string(data, TOKEN_RULE)


def extract_device_name(data: Any) -> str | None:
    return first_string(data, DEVICE_NAME_RULE)


def extract_phone(data: Any) -> str | None:
    return digits_only(first_string(data, PHONE_RULE))


def extract_state(data: Any) -> str | None:
    """Connection state text, lowercased (skips nested status objects)."""
    state = first_string(data, STATE_RULE)
    return state.lower() if state else None


def extract_qr(data: Any) -> tuple[str | None, str | None]:
    """
    Return `(qr, format)` where format is "dataurl" or "base64".

    Values starting with `data:image` are data URLs; anything else is base64.
    """
    qr = first_string(data, QR_IMAGE_RULE)
    if not qr:
        return None, None
    return qr, ("dataurl" if qr.startswith("data:image") else "base64")


def extract_qr_url(data: Any) -> str | None:
    return first_string(data, QR_URL_RULE)


def extract_pair_code(data: Any) -> str | None:
    return first_string(data, PAIR_CODE_RULE)


def is_connected(data: Any) -> bool:
    """
    Connected when an explicit flag says so, or the state is connected/ready.

    An explicit `false` flag wins over the state text.
    """
    flag = first_bool(data, CONNECTED_FLAG_RULE)
    if flag is not None:
        return flag
    state = extract_state(data)
    return state in CONNECTED_STATES if state else False


def collect_session_entries(data: Any) -> list[Mapping[str, Any]]:
    """Gather list entries from a root array or from the known nesting keys."""
    entries: list[Any] = []
    if isinstance(data, list):
        entries.extend(data)
    elif isinstance(data, Mapping):
        for key in SESSION_LIST_KEYS:
            value = data.get(key)
            if isinstance(value, list):
                entries.extend(value)
    return [entry for entry in entries if isinstance(entry, Mapping)]


def entry_matches_name(entry: Mapping[str, Any], session_name: str) -> bool:
    """Case-insensitive exact match on any of the session name keys."""
    target = session_name.lower()
    for key in SESSION_NAME_KEYS:
        value = entry.get(key)
        if isinstance(value, str) and value.lower() == target:
            return True
    return False


def entry_token(entry: Any) -> str | None:
    """Token-shaped field on a listed entry, falling back to `entry.data`."""
    for candidate in (entry, get_path(entry, ("data",))):
        if not isinstance(candidate, Mapping):
            continue
        for key in LISTED_TOKEN_KEYS:
            value = candidate.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def find_session_token(data: Any, session_name: str) -> str | None:
    """Token of the listed entry whose name matches `session_name`."""
    for entry in collect_session_entries(data):
        if entry_matches_name(entry, session_name):
            token = entry_token(entry)
            if token:
                return token
    return None
