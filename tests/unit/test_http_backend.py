"""Unit tests for HttpJudgmentBackend against a local aiohttp app."""

import asyncio
import base64
import pytest
from aiohttp import web, test_utils

from gapwatch.errors import CollaboratorError
from gapwatch.observer.http_backend import HttpJudgmentBackend, format_elapsed


def run_against(routes, call, api_key=None, timeout_seconds=5.0):
    """Serve ``routes`` locally and run ``call(backend)`` against them.

    Returns:
        (result of call, list of (path, headers, json body) received)
    """
    received = []

    def recording(handler):
        async def wrapped(request):
            received.append((request.path, dict(request.headers), await request.json()))
            return await handler(request)
        return wrapped

    async def runner():
        app = web.Application()
        for path, handler in routes.items():
            app.router.add_post(path, recording(handler))
        server = test_utils.TestServer(app)
        await server.start_server()
        try:
            backend = HttpJudgmentBackend(str(server.make_url('/api')), api_key=api_key,
                                          timeout_seconds=timeout_seconds)
            return await call(backend)
        finally:
            await server.close()

    return asyncio.run(runner()), received


def respond(payload, status=200):
    async def handler(request):
        if status != 200:
            return web.Response(status=status, text="upstream exploded")
        return web.json_response(payload)
    return handler


@pytest.mark.unit
class TestHttpJudgmentBackend:
    """Test cases for the three collaborator endpoints."""

    def test_analyze_gap(self):
        routes = {'/api/analyze-gap': respond(
            {"gap_score": 0.72, "signals": ["hedging", "circular"], "transcript": "so maybe..."})}

        result, received = run_against(
            routes, lambda backend: backend.analyze_gap(b'RIFFdata', "wav", "Sort a list"))

        assert result.gap_score == pytest.approx(0.72)
        assert result.signals == ["hedging", "circular"]
        assert result.transcript == "so maybe..."
        path, headers, body = received[0]
        assert body == {
            "audioBase64": base64.b64encode(b'RIFFdata').decode('ascii'),
            "audioFormat": "wav",
            "problem": "Sort a list",
        }
        assert "Authorization" not in headers

    def test_gap_score_clamped(self):
        routes = {'/api/analyze-gap': respond({"gap_score": 1.7})}

        result, _ = run_against(routes, lambda backend: backend.analyze_gap(b'x', "wav", "p"))

        assert result.gap_score == 1.0
        assert result.signals == []
        assert result.transcript is None

    @pytest.mark.parametrize("body", [
        '{"gap_score": NaN}',
        '{"gap_score": Infinity}',
        '{"gap_score": "high"}',
    ])
    def test_invalid_gap_score_raises(self, body):
        async def handler(request):
            return web.Response(text=body, content_type="application/json")

        with pytest.raises(CollaboratorError):
            run_against({'/api/analyze-gap': handler},
                        lambda backend: backend.analyze_gap(b'x', "wav", "p"))

    def test_missing_gap_score(self):
        routes = {'/api/analyze-gap': respond({"signals": []})}

        with pytest.raises(CollaboratorError):
            run_against(routes, lambda backend: backend.analyze_gap(b'x', "wav", "p"))

    def test_non_200_raises(self):
        routes = {'/api/analyze-gap': respond(None, status=502)}

        with pytest.raises(CollaboratorError) as exc_info:
            run_against(routes, lambda backend: backend.analyze_gap(b'x', "wav", "p"))

        assert "502" in str(exc_info.value)

    def test_bearer_token(self):
        routes = {'/api/generate-probe': respond({"probe": "What breaks first?"})}

        _, received = run_against(
            routes,
            lambda backend: backend.generate_probe("p", 0.8, ["hedging"], []),
            api_key="secret")

        assert received[0][1]["Authorization"] == "Bearer secret"

    def test_generate_probe(self):
        routes = {'/api/generate-probe': respond({"probe": "  What breaks first?  "})}

        result, received = run_against(
            routes,
            lambda backend: backend.generate_probe("Sort a list", 0.8, ["hedging"], ["Why n log n?"]))

        assert result == "What breaks first?"
        assert received[0][2] == {
            "problem": "Sort a list",
            "gapScore": 0.8,
            "signals": ["hedging"],
            "previousProbes": ["Why n log n?"],
        }

    def test_empty_probe_raises(self):
        routes = {'/api/generate-probe': respond({"probe": ""})}

        with pytest.raises(CollaboratorError):
            run_against(routes, lambda backend: backend.generate_probe("p", 0.8, [], []))

    def test_check_session_end(self):
        routes = {'/api/check-session-end': respond({"should_end": True, "reason": "Covered"})}

        result, received = run_against(
            routes,
            lambda backend: backend.check_session_end("Sort a list", 5, 65000, ["a", "b"]))

        assert result.should_end is True
        assert result.reason == "Covered"
        assert received[0][2] == {
            "problem": "Sort a list",
            "probeCount": 5,
            "elapsed": "1:05",
            "recentProbes": ["a", "b"],
        }

    def test_timeout_raises(self):
        async def slow(request):
            await asyncio.sleep(1)
            return web.json_response({"should_end": False})

        with pytest.raises(CollaboratorError):
            run_against({'/api/check-session-end': slow},
                        lambda backend: backend.check_session_end("p", 4, 0, []),
                        timeout_seconds=0.2)

    def test_unreachable_service(self):
        backend = HttpJudgmentBackend("http://127.0.0.1:1/api", timeout_seconds=2.0)

        with pytest.raises(CollaboratorError):
            asyncio.run(backend.generate_probe("p", 0.9, [], []))

    def test_base_url_trailing_slash(self):
        backend = HttpJudgmentBackend("http://localhost:3000/api/")
        assert backend.base_url == "http://localhost:3000/api"

    @pytest.mark.parametrize("elapsed_ms,expected", [
        (0, "0:00"),
        (65000, "1:05"),
        (600999, "10:00"),
        (-5, "0:00"),
    ])
    def test_format_elapsed(self, elapsed_ms, expected):
        assert format_elapsed(elapsed_ms) == expected
