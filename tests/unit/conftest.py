"""Shared fixtures: an in-memory forwarding panel behind httpx.MockTransport."""

import asyncio
import json
from typing import Optional

import httpx
import pytest

from realmctl.core.context import create_context
from realmctl.services.orchestrator import MutationOrchestrator
from realmctl.services.pagination import PaginationController
from realmctl.services.panel import PanelClient
from realmctl.services.rules import RuleRepository


PANEL_URL = "http://panel.test"


class FakePanel:
    """Minimal panel: rules, tokens, service state, canned failures.

    ``fail`` maps a path to ``(status_code, body)``; ``reject`` maps a listen
    address to the error returned the next time that rule is added.
    """

    def __init__(self, rules=None, status="启用"):
        self.rules = [dict(r) for r in (rules or [])]
        self.status = status
        self.fail: dict = {}
        self.reject: dict = {}
        self.requests: list[httpx.Request] = []
        self.tokens_issued = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path in self.fail:
            code, body = self.fail[path]
            if isinstance(body, str):
                return httpx.Response(code, text=body)
            return httpx.Response(code, json=body)

        if path == "/get_csrf_token":
            self.tokens_issued += 1
            return httpx.Response(200, json={"csrf_token": f"token-{self.tokens_issued}"})

        if path == "/login" and request.method == "GET":
            return httpx.Response(
                200,
                text="<html>login</html>",
                headers={"Set-Cookie": "realm_session=fresh; Path=/"},
            )

        if path in ("/login", "/logout"):
            return httpx.Response(200, json={"message": "ok"})

        if path == "/get_rules":
            page = int(request.url.params["page"])
            size = int(request.url.params["size"])
            start = (page - 1) * size
            return httpx.Response(200, json={
                "rules": self.rules[start:start + size],
                "total": len(self.rules),
            })

        if path == "/add_rule":
            payload = json.loads(request.content)
            error = self.reject.pop(payload["listen"], None)
            if error is not None:
                return httpx.Response(400, json={"error": error})
            self.rules.append(payload)
            return httpx.Response(200, json={"message": "Rule added"})

        if path == "/delete_rule":
            listen = request.url.params["listen"]
            self.rules = [r for r in self.rules if r["listen"] != listen]
            return httpx.Response(200, json={"message": "Rule deleted"})

        if path in ("/start_service", "/restart_service"):
            self.status = "启用"
            return httpx.Response(200, json={"message": "ok"})

        if path == "/stop_service":
            self.status = "停用"
            return httpx.Response(200, json={"message": "ok"})

        if path == "/check_status":
            return httpx.Response(200, json={"status": self.status})

        return httpx.Response(404, json={"error": "not found"})

    def client(self) -> PanelClient:
        return PanelClient(PANEL_URL, transport=httpx.MockTransport(self.handler))

    @property
    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def calls(self, path: str, method: Optional[str] = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.path == path and (method is None or r.method == method)
        ]

    def clear(self) -> None:
        self.requests.clear()


@pytest.fixture
def panel_server():
    """Empty fake panel; tests seed ``panel_server.rules`` as needed."""
    return FakePanel()


@pytest.fixture
def orchestrate(panel_server):
    """Run ``action(orchestrator)`` against the fake panel after an initial sync.

    Returns ``(result, orchestrator)``. The fake's request log is cleared after
    the initial sync so tests only see the requests made by ``action``.
    """
    def _run(action, *, dry_run=False):
        async def _go():
            async with panel_server.client() as panel:
                pagination = PaginationController(RuleRepository(panel), page_size=10)
                orchestrator = MutationOrchestrator(create_context(dry_run=dry_run), panel, pagination)
                await orchestrator.sync()
                panel_server.clear()
                return await action(orchestrator), orchestrator

        return asyncio.run(_go())

    return _run


@pytest.fixture
def cli_config(tmp_path):
    """Config file pointing at the fake panel with the audit log under tmp_path."""
    path = tmp_path / "config.yaml"
    path.write_text(
        f"panel:\n"
        f"  url: {PANEL_URL}\n"
        f"  status_interval: 0.01\n"
        f"audit:\n"
        f"  enabled: true\n"
        f"  log_path: {tmp_path / 'audit.log'}\n"
    )
    return path
