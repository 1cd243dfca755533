"""Unit tests for the panel HTTP client."""

import asyncio
import json
from contextlib import aclosing

import httpx
import pytest

from realmctl.core.config import PanelSettings
from realmctl.core.exceptions import AuthError, MutationFailedError, ServiceError
from realmctl.services.panel import (
    TOKEN_HEADER,
    PanelClient,
    ServiceState,
    describe_failure,
)


def _call(panel_server, method, *args):
    async def _go():
        async with panel_server.client() as panel:
            return await getattr(panel, method)(*args)
    return asyncio.run(_go())


class TestDescribeFailure:
    """Tests for failure messages built from responses."""

    def test_uses_error_body(self):
        response = httpx.Response(400, json={"error": "Invalid listen address"})
        assert describe_failure(response) == "Bad Request: Invalid listen address"

    def test_falls_back_to_status_line(self):
        assert describe_failure(httpx.Response(502, text="<html>")) == "Bad Gateway"
        assert describe_failure(httpx.Response(500, json={"message": "x"})) == "Internal Server Error"


class TestStatus:
    """Tests for service status polling."""

    def test_running(self, panel_server):
        panel_server.status = "启用"
        assert _call(panel_server, "check_status") is ServiceState.RUNNING

    def test_any_other_status_is_stopped(self, panel_server):
        for status in ("停用", "inactive", ""):
            panel_server.status = status
            assert _call(panel_server, "check_status") is ServiceState.STOPPED

    def test_http_error_is_unknown(self, panel_server):
        panel_server.fail["/check_status"] = (500, {"error": "systemctl failed"})
        assert _call(panel_server, "check_status") is ServiceState.UNKNOWN

    def test_non_json_is_unknown(self, panel_server):
        panel_server.fail["/check_status"] = (200, "not json")
        assert _call(panel_server, "check_status") is ServiceState.UNKNOWN

    def test_unreachable_is_unknown(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async def _go():
            async with PanelClient("http://panel.test", transport=httpx.MockTransport(handler)) as panel:
                return await panel.check_status()

        assert asyncio.run(_go()) is ServiceState.UNKNOWN

    def test_check_status_sends_no_token(self, panel_server):
        _call(panel_server, "check_status")
        assert panel_server.paths == ["/check_status"]

    def test_watch_status_yields_repeatedly(self, panel_server):
        async def _go():
            states = []
            async with panel_server.client() as panel:
                async with aclosing(panel.watch_status(0)) as stream:
                    async for state in stream:
                        states.append(state)
                        panel_server.status = "停用"
                        if len(states) == 2:
                            break
            return states

        assert asyncio.run(_go()) == [ServiceState.RUNNING, ServiceState.STOPPED]


class TestTokens:
    """Tests for token acquisition and mutating requests."""

    def test_login_posts_password_with_token(self, panel_server):
        _call(panel_server, "login", "s3cret")

        assert panel_server.paths == ["/login", "/get_csrf_token", "/login"]
        assert panel_server.calls("/login")[0].method == "GET"
        login = panel_server.calls("/login", "POST")[0]
        assert json.loads(login.content) == {"password": "s3cret"}
        assert login.headers[TOKEN_HEADER] == "token-1"
        assert "realm_session=fresh" in login.headers["Cookie"]

    def test_login_rejected(self, panel_server):
        panel_server.fail["/login"] = (401, {"error": "Invalid password"})
        with pytest.raises(AuthError) as exc:
            _call(panel_server, "login", "wrong")
        assert "Invalid password" in str(exc.value)
        assert exc.value.exit_code == 7

    def test_fresh_token_for_every_mutation(self, panel_server):
        async def _go():
            async with panel_server.client() as panel:
                await panel.restart_service()
                await panel.stop_service()
                await panel.start_service()

        asyncio.run(_go())

        assert panel_server.paths == [
            "/get_csrf_token", "/restart_service",
            "/get_csrf_token", "/stop_service",
            "/get_csrf_token", "/start_service",
        ]
        tokens = [r.headers[TOKEN_HEADER] for r in panel_server.requests if r.url.path != "/get_csrf_token"]
        assert tokens == ["token-1", "token-2", "token-3"]

    def test_token_failure_stops_the_mutation(self, panel_server):
        panel_server.fail["/get_csrf_token"] = (401, {"error": "Unauthorized"})
        with pytest.raises(AuthError):
            _call(panel_server, "restart_service")
        assert "/restart_service" not in panel_server.paths

    def test_token_missing_from_body(self, panel_server):
        panel_server.fail["/get_csrf_token"] = (200, {"token": "x"})
        with pytest.raises(AuthError) as exc:
            _call(panel_server, "get_token")
        assert "no token" in str(exc.value)

    def test_restart_failure(self, panel_server):
        panel_server.fail["/restart_service"] = (500, {"error": "Failed to restart service"})
        with pytest.raises(MutationFailedError) as exc:
            _call(panel_server, "restart_service")
        assert exc.value.status_code == 500

    def test_start_failure(self, panel_server):
        panel_server.fail["/start_service"] = (500, {"error": "Failed to start service"})
        with pytest.raises(ServiceError):
            _call(panel_server, "start_service")

    def test_transport_error_becomes_api_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async def _go():
            async with PanelClient("http://panel.test", transport=httpx.MockTransport(handler)) as panel:
                await panel.login("pw")

        with pytest.raises(AuthError) as exc:
            asyncio.run(_go())
        assert "Cannot reach panel" in str(exc.value)
        assert any("ReadTimeout" in d for d in exc.value.details)


class TestFromSettings:
    """Tests for building a client from configuration."""

    def test_uses_url(self):
        client = PanelClient.from_settings(PanelSettings(url="https://panel.example.com/", timeout=None))
        assert client.base_url == "https://panel.example.com"
        asyncio.run(client.aclose())
