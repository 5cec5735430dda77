"""
Tests for the endpoint candidate resolver.
"""

import json

import httpx
import pytest

from wa_gateway.integrations.providers.candidates import (
    AttemptOutcome,
    CandidateResolver,
    EndpointCandidate,
    EndpointOverride,
    build_request_parts,
    expand_candidates,
    override_candidates,
    render_path,
)
from wa_gateway.integrations.providers.exceptions import CandidatesExhaustedError
from wa_gateway.integrations.providers.http_client import VendorHttpClient


def _no_headers(candidate):
    return {}


def _refuse(request):
    raise httpx.ConnectError("refused", request=request)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestCandidateExpansion:
    """Tests for building candidate lists."""

    def test_expand_orders_path_then_method_then_key(self):
        candidates = expand_candidates(["/a", "/b"], ("POST", "get"), ("name", "session"))

        assert [(c.path, c.method, c.keys) for c in candidates] == [
            ("/a", "POST", ("name",)),
            ("/a", "POST", ("session",)),
            ("/a", "GET", ("name",)),
            ("/a", "GET", ("session",)),
            ("/b", "POST", ("name",)),
            ("/b", "POST", ("session",)),
            ("/b", "GET", ("name",)),
            ("/b", "GET", ("session",)),
        ]

    def test_expand_without_fan_out_sends_all_keys(self):
        candidates = expand_candidates(["/a"], ("GET",), ("name", "instance"), fan_out_keys=False)

        assert len(candidates) == 1
        assert candidates[0].keys == ("name", "instance")

    def test_admin_paths_are_flagged(self):
        candidates = expand_candidates(["/admin/instances", "/instance/init"])

        assert candidates[0].administrative is True
        assert candidates[1].administrative is False

    def test_override_method_first_then_fallbacks(self):
        override = EndpointOverride(path="/custom/create", method="put")

        candidates = override_candidates(override, ("name",), fallback_methods=("POST", "PUT", "GET"))

        assert [c.method for c in candidates] == ["PUT", "POST", "GET"]
        assert all(c.from_override for c in candidates)
        assert all(c.keys == ("name",) for c in candidates)

    def test_override_keys_replace_defaults(self):
        override = EndpointOverride(path="/x", keys=("instanceName",))

        candidates = override_candidates(override, ("name", "session"))

        assert candidates[0].keys == ("instanceName",)
        assert candidates[0].method == "POST"

    def test_empty_override_yields_nothing(self):
        assert override_candidates(None, ("name",)) == []
        assert override_candidates(EndpointOverride(path=""), ("name",)) == []


class TestRequestParts:
    """Tests for path rendering and parameter placement."""

    def test_render_path_encodes_session_name(self):
        assert render_path("/instance/:name/qr", "my store/1") == "/instance/my%20store%2F1/qr"
        assert render_path("/session/{name}", "wa-1") == "/session/wa-1"

    def test_render_path_without_name_keeps_template(self):
        assert render_path("/instance/status", None) == "/instance/status"

    def test_get_sends_query_params(self):
        candidate = EndpointCandidate("/qr", "GET", ("name", "instance"))

        body, params = build_request_parts(candidate, "wa-1", {"force": "true"})

        assert body is None
        assert params == {"name": "wa-1", "instance": "wa-1", "force": "true"}

    def test_post_sends_json_body(self):
        candidate = EndpointCandidate("/init", "POST", ("session",))

        body, params = build_request_parts(candidate, "wa-1")

        assert body == {"session": "wa-1"}
        assert params is None

    def test_no_parameters_yields_none(self):
        body, params = build_request_parts(EndpointCandidate("/x", "POST"), None)

        assert body is None
        assert params is None


class TestCandidateResolver:
    """Tests for CandidateResolver.resolve."""

    @pytest.mark.asyncio
    async def test_first_success_wins_after_failures(self, recording_transport):
        recording_transport.add("POST", "/b", 500)
        recording_transport.add("POST", "/c", {"token": "abc"})
        recording_transport.add("POST", "/d", {"token": "never"})
        http = VendorHttpClient("https://vendor.test", transport=recording_transport.transport)
        resolver = CandidateResolver(http)

        result = await resolver.resolve(
            "create",
            expand_candidates(["/a", "/b", "/c", "/d"]),
            session_name="wa-1",
            headers_for=_no_headers,
        )

        assert result.data == {"token": "abc"}
        assert result.candidate.path == "/c"
        assert [a.outcome for a in result.attempts] == [
            AttemptOutcome.HTTP_ERROR,
            AttemptOutcome.HTTP_ERROR,
            AttemptOutcome.SUCCESS,
        ]
        assert [a.status_code for a in result.attempts[:2]] == [404, 500]
        assert recording_transport.calls("POST", "/d") == []
        await http.close()

    @pytest.mark.asyncio
    async def test_exhaustion_reports_last_url_and_every_attempt(self, recording_transport):
        http = VendorHttpClient("https://vendor.test", transport=recording_transport.transport)
        resolver = CandidateResolver(http)

        with pytest.raises(CandidatesExhaustedError) as exc_info:
            await resolver.resolve(
                "disconnect",
                expand_candidates(["/one", "/two"], ("POST", "DELETE")),
                session_name="wa-1",
                headers_for=_no_headers,
            )

        error = exc_info.value
        assert len(error.attempts) == 4
        assert error.last_url == "https://vendor.test/two"
        assert "last URL: https://vendor.test/two" in str(error)
        assert "HTTP 404" in str(error)
        assert error.kind == "candidates_exhausted"
        await http.close()

    @pytest.mark.asyncio
    async def test_network_errors_are_recorded_and_skipped(self):
        def handler(request):
            if request.url.path == "/down":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"ok": True})

        http = VendorHttpClient("https://vendor.test", transport=httpx.MockTransport(handler))
        resolver = CandidateResolver(http)

        result = await resolver.resolve(
            "status", expand_candidates(["/down", "/up"], ("GET",)), session_name=None, headers_for=_no_headers
        )

        assert result.attempts[0].outcome == AttemptOutcome.NETWORK_ERROR
        assert result.candidate.path == "/up"
        await http.close()

    @pytest.mark.asyncio
    async def test_deadline_stops_probing(self, recording_transport):
        clock = FakeClock()

        def slow_failure(request):
            clock.now += 40.0
            return httpx.Response(500, json={})

        recording_transport.add("POST", "/a", slow_failure)
        recording_transport.add("POST", "/b", slow_failure)
        recording_transport.add("POST", "/c", {"ok": True})
        http = VendorHttpClient("https://vendor.test", transport=recording_transport.transport)
        resolver = CandidateResolver(http, deadline=60.0, clock=clock)

        with pytest.raises(CandidatesExhaustedError) as exc_info:
            await resolver.resolve(
                "create", expand_candidates(["/a", "/b", "/c"]), session_name="wa-1", headers_for=_no_headers
            )

        assert "deadline" in str(exc_info.value)
        assert len(exc_info.value.attempts) == 2
        assert recording_transport.calls("POST", "/c") == []
        await http.close()

    @pytest.mark.asyncio
    async def test_unaccepted_payload_continues(self, recording_transport):
        recording_transport.add("GET", "/list", {"instances": []})
        recording_transport.add("GET", "/detail", {"token": "found"})
        http = VendorHttpClient("https://vendor.test", transport=recording_transport.transport)
        resolver = CandidateResolver(http)

        result = await resolver.resolve(
            "resolve_token",
            expand_candidates(["/list", "/detail"], ("GET",)),
            session_name="wa-1",
            headers_for=_no_headers,
            accept=lambda data: "token" in data,
        )

        assert result.attempts[0].outcome == AttemptOutcome.UNMATCHED
        assert result.data == {"token": "found"}
        await http.close()

    @pytest.mark.asyncio
    async def test_headers_and_extra_are_per_candidate(self, recording_transport):
        recording_transport.add("GET", "/admin/qr", {"qrcode": "x"})
        http = VendorHttpClient("https://vendor.test", transport=recording_transport.transport)
        resolver = CandidateResolver(http)

        await resolver.resolve(
            "qr",
            expand_candidates(["/admin/qr"], ("GET",), ("name",)),
            session_name="wa-1",
            headers_for=lambda c: {"admintoken": "adm"} if c.administrative else {},
            extra=lambda c: {"force": "true"},
        )

        request = recording_transport.requests[0]
        assert request.headers["admintoken"] == "adm"
        assert request.url.params["force"] == "true"
        assert request.url.params["name"] == "wa-1"
        await http.close()

    @pytest.mark.asyncio
    async def test_second_key_on_same_path_wins(self, recording_transport):
        def accepts_instance_key(request):
            body = json.loads(request.content or b"{}")
            if "instance" in body:
                return httpx.Response(200, json={"token": "tok-1"})
            return httpx.Response(400, json={"error": "missing instance"})

        recording_transport.add("POST", "/instance/init", accepts_instance_key)
        http = VendorHttpClient("https://vendor.test", transport=recording_transport.transport)
        resolver = CandidateResolver(http)

        result = await resolver.resolve(
            "create",
            expand_candidates(["/instance/init"], ("POST",), ("name", "instance", "session")),
            session_name="wa-1",
            headers_for=_no_headers,
        )

        assert result.candidate.keys == ("instance",)
        assert [(a.keys, a.outcome, a.status_code) for a in result.attempts] == [
            (("name",), AttemptOutcome.HTTP_ERROR, 400),
            (("instance",), AttemptOutcome.SUCCESS, None),
        ]
        assert [json.loads(r.content) for r in recording_transport.requests] == [
            {"name": "wa-1"},
            {"instance": "wa-1"},
        ]
        await http.close()


class TestCandidateResolverDeterminism:
    """Repeated runs over the same scripted vendor give identical results."""

    @staticmethod
    def _scripted_vendor():
        """Same response sequence on every run: 404, network error, 500, 400, then success."""
        script = iter(
            [
                lambda r: httpx.Response(404, json={}),
                _refuse,
                lambda r: httpx.Response(500, json={"error": "busy"}),
                lambda r: httpx.Response(400, json={"error": "bad key"}),
                lambda r: httpx.Response(200, json={"token": "tok-1"}),
            ]
        )
        return httpx.MockTransport(lambda request: next(script)(request))

    @pytest.mark.asyncio
    async def test_same_result_and_attempt_log_across_runs(self):
        candidates = expand_candidates(
            ["/instance/init", "/admin/instance/create"], ("POST", "GET"), ("name", "instance")
        )
        runs = []

        for _ in range(3):
            http = VendorHttpClient("https://vendor.test", transport=self._scripted_vendor())
            resolver = CandidateResolver(http)
            result = await resolver.resolve("create", candidates, session_name="wa-1", headers_for=_no_headers)
            runs.append(
                (
                    result.url,
                    result.candidate,
                    result.data,
                    [
                        (a.method, a.url, a.keys, a.outcome, a.status_code, a.to_dict())
                        for a in result.attempts
                    ],
                )
            )
            await http.close()

        assert runs[0] == runs[1] == runs[2]
        url, candidate, data, log = runs[0]
        assert (candidate.path, candidate.method, candidate.keys) == ("/admin/instance/create", "POST", ("name",))
        assert data == {"token": "tok-1"}
        assert [(method, keys, outcome, status) for method, _, keys, outcome, status, _ in log] == [
            ("POST", ("name",), AttemptOutcome.HTTP_ERROR, 404),
            ("POST", ("instance",), AttemptOutcome.NETWORK_ERROR, None),
            ("GET", ("name",), AttemptOutcome.HTTP_ERROR, 500),
            ("GET", ("instance",), AttemptOutcome.HTTP_ERROR, 400),
            ("POST", ("name",), AttemptOutcome.SUCCESS, None),
        ]
        assert url == "https://vendor.test/admin/instance/create"
