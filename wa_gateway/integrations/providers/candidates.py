# ============================================================================
# SCOPE: MULTI-TENANT
# Description: Resolución de endpoints candidatos para APIs de proveedores
#              con contrato parcialmente documentado.
# ============================================================================
"""
Endpoint Candidate Resolver.

Single Responsibility: Try an ordered list of (path, method, parameter key)
candidates until one succeeds.

Algorithm:
- Candidate list = [configured override] + [built-in candidates], in
  declaration order. Order never changes between calls.
- Session name is substituted into `:name` / `{name}` path placeholders.
- Transport and HTTP errors are recorded as CandidateAttempts and the next
  candidate is tried. The first success is returned immediately.
- Each candidate gets a bounded timeout and the whole operation shares one
  deadline. Exhaustion raises CandidatesExhaustedError carrying every attempt.
"""

import asyncio
import logging
import re
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import quote

from .exceptions import CandidatesExhaustedError, VendorError, VendorRejectedError, VendorUnreachableError
from .http_client import VendorHttpClient

logger = logging.getLogger(__name__)

_NAME_PLACEHOLDER = re.compile(r":name\b|\{name\}")

# Methods whose session-name parameters travel in the query string
QUERY_METHODS = frozenset({"GET", "DELETE"})


class AttemptOutcome(str, Enum):
    """Result of one candidate attempt."""

    SUCCESS = "success"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class EndpointCandidate:
    """One concrete (path, method, parameter keys) guess."""

    path: str
    method: str = "POST"
    keys: tuple[str, ...] = ()
    administrative: bool = False
    from_override: bool = False

    def render_path(self, session_name: str | None) -> str:
        return render_path(self.path, session_name)


@dataclass(frozen=True)
class EndpointOverride:
    """Operator supplied candidate tried before the built-in list."""

    path: str
    method: str | None = None
    keys: tuple[str, ...] = ()


@dataclass
class CandidateAttempt:
    """Diagnostic record of one candidate attempt (never persisted)."""

    operation: str
    method: str
    url: str
    keys: tuple[str, ...]
    outcome: AttemptOutcome
    status_code: int | None = None
    error: str | None = None
    elapsed_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "method": self.method,
            "url": self.url,
            "keys": list(self.keys),
            "outcome": self.outcome.value,
            "status_code": self.status_code,
            "error": self.error,
        }


@dataclass
class ResolvedCandidate:
    """Successful resolution: the winning candidate, its payload and the attempt log."""

    candidate: EndpointCandidate
    url: str
    data: Any
    attempts: list[CandidateAttempt] = field(default_factory=list)


def render_path(template: str, session_name: str | None) -> str:
    """Replace `:name` / `{name}` placeholders with the URL-encoded session name."""
    if session_name is None:
        return template
    encoded = quote(str(session_name), safe="")
    return _NAME_PLACEHOLDER.sub(encoded, template)


def is_admin_path(path: str) -> bool:
    return path.startswith("/admin")


def expand_candidates(
    paths: Iterable[str],
    methods: Sequence[str] = ("POST",),
    keys: Sequence[str] = (),
    *,
    fan_out_keys: bool = True,
) -> list[EndpointCandidate]:
    """
    Build candidates in path -> method -> key order.

    With `fan_out_keys` every key becomes its own candidate; otherwise one
    candidate carries all keys at once.
    """
    candidates: list[EndpointCandidate] = []
    for path in paths:
        for method in methods:
            method = method.upper()
            if fan_out_keys and keys:
                for key in keys:
                    candidates.append(EndpointCandidate(path, method, (key,), is_admin_path(path)))
            else:
                candidates.append(EndpointCandidate(path, method, tuple(keys), is_admin_path(path)))
    return candidates


def override_candidates(
    override: EndpointOverride | None,
    default_keys: Sequence[str],
    default_method: str = "POST",
    fallback_methods: Sequence[str] = (),
) -> list[EndpointCandidate]:
    """
    Expand an override into candidates.

    The override method (or `default_method`) is tried first, then any
    `fallback_methods` not yet tried. An override sends all of its keys at
    once; without explicit keys the operation's default keys are used.
    """
    if override is None or not override.path:
        return []
    methods = [(override.method or default_method).upper()]
    for method in fallback_methods:
        if method.upper() not in methods:
            methods.append(method.upper())
    keys = override.keys or tuple(default_keys)
    return [
        EndpointCandidate(
            override.path,
            method,
            tuple(keys),
            administrative=is_admin_path(override.path),
            from_override=True,
        )
        for method in methods
    ]


def build_request_parts(
    candidate: EndpointCandidate,
    session_name: str | None,
    extra: dict[str, Any] | None = None,
) -> tuple[Any, dict[str, Any] | None]:
    """
    Place the session name under each candidate key.

    GET/DELETE send parameters in the query string; other methods send a JSON body.
    """
    payload: dict[str, Any] = {}
    if session_name is not None:
        for key in candidate.keys:
            payload[key] = session_name
    if extra:
        payload.update(extra)

    if candidate.method in QUERY_METHODS:
        return None, (payload or None)
    return (payload or None), None


class CandidateResolver:
    """
    Try endpoint candidates until one succeeds.

    Stateless with respect to tenants; safe to share.
    """

    def __init__(
        self,
        http: VendorHttpClient,
        candidate_timeout: float | None = None,
        deadline: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            http: Vendor HTTP client
            candidate_timeout: Per-candidate timeout (defaults to the client timeout)
            deadline: Overall time limit for one operation in seconds
            clock: Monotonic clock (injectable for tests)
        """
        self._http = http
        self._candidate_timeout = candidate_timeout or http.timeout
        self._deadline = deadline
        self._clock = clock

    async def resolve(
        self,
        operation: str,
        candidates: Sequence[EndpointCandidate],
        *,
        session_name: str | None,
        headers_for: Callable[[EndpointCandidate], dict[str, str]],
        extra: dict[str, Any] | Callable[[EndpointCandidate], dict[str, Any] | None] | None = None,
        accept: Callable[[Any], bool] | None = None,
    ) -> ResolvedCandidate:
        """
        Run candidates in order and return the first success.

        Args:
            operation: Name used in logs and errors
            candidates: Ordered candidate list
            session_name: Value substituted into placeholders and keys
            headers_for: Builds request headers for a candidate
            extra: Additional parameters (dict, or callable per candidate)
            accept: Optional predicate on a 2xx payload; rejected payloads
                are recorded as UNMATCHED and probing continues

        Raises:
            CandidatesExhaustedError: When no candidate succeeds in time
        """
        attempts: list[CandidateAttempt] = []
        last_error: Exception | None = None
        started = self._clock()

        for candidate in candidates:
            remaining = self._deadline - (self._clock() - started)
            if remaining <= 0:
                logger.warning(f"[{operation}] deadline of {self._deadline}s exceeded after {len(attempts)} attempts")
                raise CandidatesExhaustedError(
                    operation,
                    attempts,
                    last_error,
                    reason=f"deadline of {self._deadline}s exceeded"
                    + (f"; last error: {last_error}" if last_error else ""),
                )

            path = candidate.render_path(session_name)
            url = self._http.build_url(path)
            extra_params = extra(candidate) if callable(extra) else extra
            body, params = build_request_parts(candidate, session_name, extra_params)
            headers = headers_for(candidate)
            timeout = min(self._candidate_timeout, remaining)

            attempt_started = self._clock()
            try:
                data = await asyncio.wait_for(
                    self._http.request(
                        candidate.method,
                        path,
                        headers=headers,
                        json=body,
                        params=params,
                        timeout=timeout,
                    ),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                last_error = VendorUnreachableError(f"Timeout after {timeout:.1f}s calling {candidate.method} {url}")
                attempts.append(self._attempt(operation, candidate, url, AttemptOutcome.NETWORK_ERROR, last_error, attempt_started))
                continue
            except VendorRejectedError as e:
                last_error = e
                attempts.append(self._attempt(operation, candidate, url, AttemptOutcome.HTTP_ERROR, e, attempt_started))
                continue
            except VendorError as e:
                last_error = e
                attempts.append(self._attempt(operation, candidate, url, AttemptOutcome.NETWORK_ERROR, e, attempt_started))
                continue

            if accept is not None and not accept(data):
                attempts.append(self._attempt(operation, candidate, url, AttemptOutcome.UNMATCHED, None, attempt_started))
                continue

            attempts.append(self._attempt(operation, candidate, url, AttemptOutcome.SUCCESS, None, attempt_started))
            logger.info(f"[{operation}] {candidate.method} {url} succeeded after {len(attempts)} attempt(s)")
            return ResolvedCandidate(candidate=candidate, url=url, data=data, attempts=attempts)

        logger.warning(f"[{operation}] all {len(attempts)} candidates failed; last error: {last_error}")
        raise CandidatesExhaustedError(operation, attempts, last_error)

    def _attempt(
        self,
        operation: str,
        candidate: EndpointCandidate,
        url: str,
        outcome: AttemptOutcome,
        error: Exception | None,
        started: float,
    ) -> CandidateAttempt:
        status_code = error.status_code if isinstance(error, VendorRejectedError) else None
        attempt = CandidateAttempt(
            operation=operation,
            method=candidate.method,
            url=url,
            keys=candidate.keys,
            outcome=outcome,
            status_code=status_code,
            error=str(error) if error else None,
            elapsed_ms=(self._clock() - started) * 1000,
        )
        logger.debug(
            f"[{operation}] {attempt.method} {url} keys={list(attempt.keys)} -> {outcome.value}"
            + (f" ({attempt.error})" if attempt.error else "")
        )
        return attempt
