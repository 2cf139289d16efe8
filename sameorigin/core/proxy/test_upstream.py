"""Tests for the timeout-guarded upstream call and its scheme fallback."""

import asyncio

import pytest
from aiohttp import ClientConnectionError

from sameorigin.core.config_manager import ProxySettings
from sameorigin.core.proxy.errors import UpstreamUnavailable
from sameorigin.core.proxy.upstream import UpstreamCaller

HANG = object()


class StubSession:
    """Записывает вызовы request() и проигрывает заданные исходы по очереди."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if outcome is HANG:
            await asyncio.sleep(3600)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def make_settings(**overrides):
    overrides.setdefault("upstream_url", "https://upstream.example:8443")
    overrides.setdefault("timeout", 0.05)
    return ProxySettings(**overrides)


class TestUpstreamCaller:
    """Upstream Caller."""

    @pytest.mark.asyncio
    async def test_returns_first_response(self):
        response = object()
        session = StubSession(response)
        caller = UpstreamCaller(session, make_settings())

        result = await caller.call("GET", "/x?q=1", {}, b"")

        assert result is response
        assert len(session.calls) == 1
        method, url, kwargs = session.calls[0]
        assert (method, url) == ("GET", "https://upstream.example:8443/x?q=1")
        assert kwargs["allow_redirects"] is False
        assert kwargs["data"] is None

    @pytest.mark.asyncio
    async def test_hanging_call_falls_back_once_over_http(self):
        fallback_response = object()
        session = StubSession(HANG, fallback_response)
        caller = UpstreamCaller(session, make_settings())

        result = await caller.call("POST", "/rs/add", {}, b"{}")

        assert result is fallback_response
        assert [url for _, url, _ in session.calls] == [
            "https://upstream.example:8443/rs/add",
            "http://upstream.example:8443/rs/add",
        ]

    @pytest.mark.asyncio
    async def test_both_attempts_fail(self):
        session = StubSession(HANG, HANG)
        caller = UpstreamCaller(session, make_settings())

        with pytest.raises(UpstreamUnavailable) as exc_info:
            await caller.call("GET", "/", {}, b"")

        assert len(session.calls) == 2
        error = exc_info.value
        assert isinstance(error.primary_error, asyncio.TimeoutError)
        assert isinstance(error.fallback_error, asyncio.TimeoutError)
        assert error.timed_out

    @pytest.mark.asyncio
    async def test_fallback_disabled_single_attempt(self):
        session = StubSession(HANG)
        caller = UpstreamCaller(session, make_settings(enable_scheme_fallback=False))

        with pytest.raises(UpstreamUnavailable) as exc_info:
            await caller.call("GET", "/", {}, b"")

        assert len(session.calls) == 1
        assert exc_info.value.fallback_error is None

    @pytest.mark.asyncio
    async def test_connection_error_carries_both_causes(self):
        primary = ClientConnectionError("connection refused")
        fallback = ClientConnectionError("connection reset")
        session = StubSession(primary, fallback)
        caller = UpstreamCaller(session, make_settings())

        with pytest.raises(UpstreamUnavailable) as exc_info:
            await caller.call("GET", "/", {}, b"")

        assert exc_info.value.primary_error is primary
        assert exc_info.value.fallback_error is fallback
        assert not exc_info.value.timed_out
        assert "connection refused" in str(exc_info.value)
        assert "connection reset" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_plain_http_upstream_has_no_fallback(self):
        session = StubSession(ClientConnectionError("refused"))
        caller = UpstreamCaller(session, make_settings(upstream_url="http://upstream.example:8080"))

        with pytest.raises(UpstreamUnavailable):
            await caller.call("GET", "/", {}, b"")

        assert len(session.calls) == 1

    @pytest.mark.asyncio
    async def test_same_body_bytes_for_both_attempts(self):
        body = b'{"missionId": 17}'
        session = StubSession(OSError("unreachable"), object())
        caller = UpstreamCaller(session, make_settings())

        await caller.call("POST", "/rs/add", {}, body)

        assert session.calls[0][2]["data"] is body
        assert session.calls[1][2]["data"] is body
