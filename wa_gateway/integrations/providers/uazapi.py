# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Adaptador para la API de uazapi. Las rutas administrativas no
#              están documentadas, por lo que se prueban candidatos en orden.
# ============================================================================
"""
uazapi Adapter.

Single Responsibility: Translate gateway operations into uazapi requests.

Fixed endpoints (status, connect, send) are called directly. Session
administration (create, disconnect, QR, token lookup) goes through the
CandidateResolver because its paths, verbs and parameter names vary
between uazapi deployments.
"""

import logging
from typing import Any

from .base import (
    Capability,
    CarouselMessage,
    ConnectOutcome,
    CreatedSession,
    ProviderAdapter,
    QrCode,
    SessionStatus,
    TextMessage,
    WebhookConfiguration,
)
from .candidates import (
    CandidateResolver,
    EndpointCandidate,
    EndpointOverride,
    expand_candidates,
    override_candidates,
)
from .credentials import CredentialPolicy
from .exceptions import CandidatesExhaustedError, CredentialsMissingError, VendorError
from .extraction import (
    LOGGED_IN_FLAG_RULE,
    digits_only,
    entry_token,
    extract_device_name,
    extract_pair_code,
    extract_phone,
    extract_qr,
    extract_qr_url,
    extract_state,
    extract_token,
    find_session_token,
    first_bool,
    is_connected,
)
from .http_client import VendorHttpClient

logger = logging.getLogger(__name__)

CREATE_PATHS = (
    "/instance/init",
    "/admin/instance/create",
    "/admin/instances/create",
    "/admin/session/create",
    "/admin/sessions/create",
    "/admin/create/instance",
    "/admin/create/session",
    "/instance/create",
    "/session/create",
    "/create/instance",
    "/create/session",
)
CREATE_KEYS = ("name", "instance", "session", "sessionId", "instanceName")

DISCONNECT_PATHS = (
    "/session/logout",
    "/instance/logout",
    "/disconnect",
    "/session/reset",
    "/instance/reset",
    "/logout",
    "/sessions/logout",
    "/sessions/reset",
    "/sessions/disconnect",
    "/instance/:name/logout",
    "/instances/:name/logout",
    "/session/:name/logout",
    "/sessions/:name/logout",
    "/disconnect/:name",
    "/logout/:name",
    "/instance/:name/reset",
    "/session/:name/reset",
    "/instances/:name/reset",
    "/session/:name/disconnect",
    "/sessions/:name/disconnect",
    "/instance/:name/disconnect",
    "/instances/:name/disconnect",
    "/session/:name/delete",
    "/instance/:name/delete",
    "/sessions/:name/delete",
    "/instances/:name/delete",
)
DISCONNECT_ADMIN_PATHS = (
    "/admin/instance/:name/logout",
    "/admin/instances/:name/logout",
    "/admin/session/:name/logout",
    "/admin/sessions/:name/logout",
    "/admin/instance/:name/reset",
    "/admin/instances/:name/reset",
    "/admin/disconnect/:name",
    "/admin/logout/:name",
    "/admin/disconnect",
    "/admin/logout",
    "/admin/session/:name/disconnect",
    "/admin/sessions/:name/disconnect",
    "/admin/instance/:name/disconnect",
    "/admin/instances/:name/disconnect",
    "/admin/session/:name/delete",
    "/admin/sessions/:name/delete",
    "/admin/instance/:name/delete",
    "/admin/instances/:name/delete",
    "/admin/sessions/disconnect",
    "/admin/sessions/logout",
)
DISCONNECT_KEYS = ("instance", "name", "session", "sessionId", "instanceName", "session_id")
DISCONNECT_METHODS = ("POST", "GET", "DELETE")

QR_PATHS = (
    "/qrcode",
    "/whatsapp/qr",
    "/status/qrcode",
    "/instance/qr",
    "/connect/qr",
    "/status/instance",
    "/status",
    "/instance/status",
    "/get/qr",
    "/qr",
)
QR_ADMIN_PATHS = (
    "/admin/status/instance",
    "/admin/instance/status",
    "/admin/instance/qr",
    "/admin/status/qrcode",
    "/admin/get/qr",
    "/admin/qr",
)
QR_QUERY_KEYS = ("instance", "name", "session", "sessionId", "instanceName", "keys")
QR_BODY_KEYS = ("instance", "name", "session", "sessionId", "instanceName")

SESSION_LIST_PATHS = (
    "/admin/instances",
    "/admin/sessions",
    "/admin/list",
    "/admin/instances/list",
    "/instances",
    "/sessions",
    "/list",
)
SESSION_DETAIL_PATHS = (
    "/admin/instance/:name",
    "/admin/instances/:name",
    "/admin/session/:name",
    "/admin/sessions/:name",
)

STATUS_PATH = "/instance/status"
CONNECT_PATH = "/instance/connect"
SEND_TEXT_PATH = "/send/text"
SEND_CAROUSEL_PATH = "/send/carousel"


def _post_each_then_get_all(paths: tuple[str, ...], keys: tuple[str, ...]) -> list[EndpointCandidate]:
    """Per path: POST once per body key, then GET with every key in the query."""
    candidates: list[EndpointCandidate] = []
    for path in paths:
        candidates.extend(expand_candidates([path], ("POST",), keys))
        candidates.extend(expand_candidates([path], ("GET",), keys, fan_out_keys=False))
    return candidates


def _get_all_then_post_each(
    paths: tuple[str, ...], query_keys: tuple[str, ...], body_keys: tuple[str, ...]
) -> list[EndpointCandidate]:
    """Per path: GET with every key in the query, then POST once per body key."""
    candidates: list[EndpointCandidate] = []
    for path in paths:
        candidates.extend(expand_candidates([path], ("GET",), query_keys, fan_out_keys=False))
        candidates.extend(expand_candidates([path], ("POST",), body_keys))
    return candidates


class UazapiAdapter(ProviderAdapter):
    """
    uazapi implementation of the full capability set.

    Authentication: `token` header plus `Authorization: Bearer`; admin
    endpoints also carry `admintoken`.
    """

    name = "uazapi"
    capabilities = frozenset(Capability)
    session_scoped = True

    def __init__(
        self,
        http: VendorHttpClient,
        resolver: CandidateResolver,
        credentials: CredentialPolicy,
        overrides: dict[str, EndpointOverride] | None = None,
        qr_force: bool = True,
    ) -> None:
        self._http = http
        self._resolver = resolver
        self._credentials = credentials
        self._overrides = overrides or {}
        self._qr_force = qr_force

    async def initialize(self) -> None:
        await self._http.initialize()

    async def close(self) -> None:
        await self._http.close()

    # ------------------------------------------------------------------
    # Headers
    # ------------------------------------------------------------------

    def _headers(
        self,
        *,
        token: str | None = None,
        administrative: bool = False,
    ) -> dict[str, str]:
        credential = self._credentials.select(override=token, administrative=administrative)
        headers = {
            "token": credential.value,
            "Content-Type": "application/json",
            "Authorization": f"Bearer {credential.value}",
        }
        admin_token = self._credentials.admin_token
        if administrative and admin_token:
            headers["admintoken"] = admin_token
            headers["Authorization"] = f"Bearer {admin_token}"
        return headers

    def _admin_headers_or_none(self) -> dict[str, str] | None:
        """Admin headers when an admin credential is configured."""
        if not self._credentials.admin_token:
            return None
        return self._headers(administrative=True)

    # ------------------------------------------------------------------
    # Session administration
    # ------------------------------------------------------------------

    async def create_session(self, session_name: str, token: str | None = None) -> CreatedSession:
        headers = self._headers(token=token, administrative=True)
        candidates = override_candidates(self._overrides.get("create"), CREATE_KEYS) + _post_each_then_get_all(
            CREATE_PATHS, CREATE_KEYS
        )
        result = await self._resolver.resolve(
            "createSession",
            candidates,
            session_name=session_name,
            headers_for=lambda _candidate: headers,
        )
        created_token = extract_token(result.data)
        logger.info(
            f"uazapi session '{session_name}' created via {result.candidate.method} {result.url} "
            f"(token in response: {bool(created_token)})"
        )
        return CreatedSession(session_name=session_name, token=created_token, raw=result.data)

    async def resolve_session_token(self, session_name: str) -> str | None:
        """
        Scan admin list endpoints for the session and return its token.

        Falls back to per-session detail endpoints. Returns None when nothing
        matches; missing admin credentials also yield None.
        """
        name = (session_name or "").strip()
        if not name:
            return None
        try:
            headers = self._headers(administrative=True)
        except CredentialsMissingError:
            logger.warning("Cannot scan uazapi sessions: no admin or global credential configured")
            return None

        try:
            listed = await self._resolver.resolve(
                "resolveSessionToken.list",
                expand_candidates(SESSION_LIST_PATHS, ("GET",)),
                session_name=name,
                headers_for=lambda _candidate: headers,
                accept=lambda data: find_session_token(data, name) is not None,
            )
            return find_session_token(listed.data, name)
        except CandidatesExhaustedError:
            logger.debug(f"Session '{name}' not found in uazapi list endpoints")

        try:
            detail = await self._resolver.resolve(
                "resolveSessionToken.detail",
                expand_candidates(SESSION_DETAIL_PATHS, ("GET",)),
                session_name=name,
                headers_for=lambda _candidate: headers,
                accept=lambda data: entry_token(data) is not None,
            )
            return entry_token(detail.data)
        except CandidatesExhaustedError:
            logger.info(f"No token found for uazapi session '{name}'")
            return None

    async def connect_session(
        self, session_name: str, token: str | None = None, phone: str | None = None
    ) -> ConnectOutcome:
        headers = self._headers(token=token)

        try:
            status = await self._http.request("GET", STATUS_PATH, headers=headers)
            if is_connected(status):
                logger.info(f"uazapi session '{session_name}' already connected, skipping connect")
                return ConnectOutcome(connected=True, raw=status)
        except VendorError as e:
            logger.debug(f"Status pre-check failed for '{session_name}': {e}")

        payload: dict[str, Any] = {}
        number = digits_only(phone)
        if number:
            payload["phone"] = number
        data = await self._http.request("POST", CONNECT_PATH, headers=headers, json=payload)

        qr = self._parse_qr(data)
        return ConnectOutcome(
            connected=is_connected(data),
            qr=qr if qr.available else None,
            pair_code=extract_pair_code(data),
            raw=data,
        )

    async def disconnect_session(self, session_name: str, token: str | None = None) -> Any:
        instance_headers = self._headers(token=token)
        admin_headers = self._admin_headers_or_none()

        candidates = override_candidates(
            self._overrides.get("disconnect"),
            DISCONNECT_KEYS,
            fallback_methods=DISCONNECT_METHODS,
        )
        candidates += expand_candidates(DISCONNECT_PATHS, DISCONNECT_METHODS, DISCONNECT_KEYS)
        if admin_headers is not None:
            candidates += expand_candidates(DISCONNECT_ADMIN_PATHS, DISCONNECT_METHODS, DISCONNECT_KEYS)
        else:
            candidates = [c for c in candidates if not c.administrative]

        result = await self._resolver.resolve(
            "disconnectSession",
            candidates,
            session_name=session_name,
            headers_for=lambda c: admin_headers if c.administrative and admin_headers else instance_headers,
            extra={"action": "logout"},
        )
        logger.info(f"uazapi session '{session_name}' disconnected via {result.candidate.method} {result.url}")
        return result.data

    # ------------------------------------------------------------------
    # Status & QR
    # ------------------------------------------------------------------

    async def get_session_status(self, session_name: str, token: str | None = None) -> SessionStatus:
        data = await self._http.request("GET", STATUS_PATH, headers=self._headers(token=token))
        qr, qr_format = extract_qr(data)
        return SessionStatus(
            connected=is_connected(data),
            state=extract_state(data),
            logged_in=first_bool(data, LOGGED_IN_FLAG_RULE),
            device_name=extract_device_name(data),
            phone_number=extract_phone(data),
            qr_code=qr,
            qr_format=qr_format,
            pair_code=extract_pair_code(data),
            raw=data,
        )

    async def get_qr_code(self, session_name: str, token: str | None = None, force: bool = False) -> QrCode:
        instance_headers = self._headers(token=token)
        admin_headers = self._admin_headers_or_none()
        force = force or self._qr_force

        candidates = override_candidates(self._overrides.get("qr"), QR_QUERY_KEYS, default_method="GET")
        if admin_headers is not None:
            candidates += _get_all_then_post_each(QR_ADMIN_PATHS, QR_QUERY_KEYS, QR_BODY_KEYS)
        else:
            candidates = [c for c in candidates if not c.administrative]
        candidates += _get_all_then_post_each(QR_PATHS, QR_QUERY_KEYS, QR_BODY_KEYS)

        def force_params(candidate: EndpointCandidate) -> dict[str, Any] | None:
            if not force:
                return None
            return {"force": "true"} if candidate.method == "GET" else {"force": True}

        result = await self._resolver.resolve(
            "getQrCode",
            candidates,
            session_name=session_name,
            headers_for=lambda c: admin_headers if c.administrative and admin_headers else instance_headers,
            extra=force_params,
        )
        qr = self._parse_qr(result.data)
        qr.endpoint = result.url
        return qr

    @staticmethod
    def _parse_qr(data: Any) -> QrCode:
        qr, qr_format = extract_qr(data)
        return QrCode(
            qr=qr,
            format=qr_format,
            url=extract_qr_url(data),
            connected=is_connected(data),
            device_name=extract_device_name(data),
            phone_number=extract_phone(data),
            raw=data,
        )

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_text(self, session_name: str | None, message: TextMessage, token: str | None = None) -> Any:
        payload = {"number": digits_only(message.phone) or message.phone, "text": message.text}
        return await self._http.request_with_retry(
            "POST", SEND_TEXT_PATH, headers=self._headers(token=token), json=payload
        )

    async def send_carousel(
        self, session_name: str | None, message: CarouselMessage, token: str | None = None
    ) -> Any:
        payload = {
            "number": digits_only(message.phone) or message.phone,
            "text": message.text,
            "carousel": [
                {
                    "text": card.text,
                    "image": card.image,
                    "buttons": [
                        {"text": button.text, "type": button.type.value, "id": button.target()}
                        for button in card.buttons
                    ],
                }
                for card in message.cards
            ],
            "delay": max(0, int(message.delay_seconds)) * 1000,
            "readchat": True,
        }
        return await self._http.request_with_retry(
            "POST", SEND_CAROUSEL_PATH, headers=self._headers(token=token), json=payload
        )

    async def configure_webhook(self, webhook_url: str, token: str | None = None) -> WebhookConfiguration:
        # uazapi exposes no webhook configuration endpoint
        return WebhookConfiguration(
            webhook_url=webhook_url,
            applied=False,
            note="uazapi has no webhook configuration endpoint; register this URL on the vendor panel",
        )
