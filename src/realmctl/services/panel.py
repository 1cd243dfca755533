"""HTTP client for the forwarding panel.

Wraps ``httpx.AsyncClient`` with the panel's conventions:
- session cookie obtained by ``login``
- a fresh token from ``/get_csrf_token`` before every mutating request,
  sent in the ``X-CSRF-Token`` header and never reused
- service control (start/stop/restart) and status polling

Nothing here retries. Every failure is raised once and the caller decides
whether to report or collect it.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, AsyncIterator, Optional

import httpx

from realmctl.core.config import PanelSettings
from realmctl.core.exceptions import (
    ApiError,
    AuthError,
    MutationFailedError,
    ServiceError,
)
from realmctl.core.output import console

TOKEN_HEADER = "X-CSRF-Token"

# Status string the panel reports when systemctl says the unit is active
RUNNING_STATUS = "启用"


class ServiceState(Enum):
    """Display state of the remote forwarding service."""
    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


def describe_failure(response: httpx.Response) -> str:
    """Human-readable reason for a non-success response.

    Prefers the panel's ``{"error": ...}`` body, falls back to the
    status line.
    """
    reason = response.reason_phrase or f"HTTP {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return reason
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return f"{reason}: {body['error']}"
    return reason


class PanelClient:
    """Async client for one forwarding panel.

    Use as an async context manager so the connection pool is closed:

        async with PanelClient.from_settings(settings) as panel:
            await panel.login(password)
            await panel.restart_service()
    """

    def __init__(
        self,
        base_url: str,
        *,
        verify_tls: bool = True,
        timeout: Optional[float] = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            verify=verify_tls,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: PanelSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "PanelClient":
        return cls(
            settings.url,
            verify_tls=settings.verify_tls,
            timeout=settings.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "PanelClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        error_cls: type[ApiError] = ApiError,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request; transport failures become ``error_cls``.

        Non-success statuses are returned, not raised, so callers can
        choose the error type.
        """
        console.debug(f"{method} {path}")
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise error_cls(
                f"Cannot reach panel at {self.base_url}",
                hint="Check panel.url in the configuration and that the panel is running",
                details=[f"{type(e).__name__}: {e}"],
            ) from e
        console.debug(f"{method} {path} -> {response.status_code}")
        return response

    async def get_token(self) -> str:
        """Fetch a fresh single-use mutation token.

        Raises:
            AuthError: If the token endpoint fails or returns no token
        """
        response = await self.request("GET", "/get_csrf_token", error_cls=AuthError)
        if not response.is_success:
            raise AuthError(
                f"Failed to get token: {describe_failure(response)}",
                status_code=response.status_code,
                status_text=response.reason_phrase,
                hint="The session may have expired; check REALMCTL_PASSWORD",
            )
        try:
            token = response.json().get("csrf_token")
        except (ValueError, AttributeError) as e:
            raise AuthError("Token endpoint returned an invalid body") from e
        if not isinstance(token, str) or not token:
            raise AuthError("Token endpoint returned no token")
        return token

    async def mutate(
        self,
        method: str,
        path: str,
        *,
        error_cls: type[ApiError] = MutationFailedError,
        action: str = "Request",
        **kwargs: Any,
    ) -> httpx.Response:
        """Acquire a fresh token, then send one mutating request with it.

        Raises:
            AuthError: If the token cannot be fetched
            error_cls: If the request fails or returns a non-success status
        """
        token = await self.get_token()
        headers = {**kwargs.pop("headers", {}), TOKEN_HEADER: token}
        response = await self.request(method, path, error_cls=error_cls, headers=headers, **kwargs)
        if not response.is_success:
            raise error_cls(
                f"{action} failed: {describe_failure(response)}",
                status_code=response.status_code,
                status_text=response.reason_phrase,
            )
        return response

    async def login(self, password: str) -> None:
        """Open an authenticated session.

        The login page is loaded first: the panel seeds the session cookie
        and its CSRF token there, and only then accepts the POST. Its status
        is not checked; an already logged-in session gets a redirect.

        Raises:
            AuthError: If the password is rejected or the panel is unreachable
        """
        await self.request("GET", "/login", error_cls=AuthError)
        await self.mutate(
            "POST",
            "/login",
            json={"password": password},
            error_cls=AuthError,
            action="Login",
        )

    async def logout(self) -> None:
        await self.mutate("POST", "/logout", error_cls=AuthError, action="Logout")

    async def start_service(self) -> None:
        await self.mutate("POST", "/start_service", error_cls=ServiceError, action="Start service")

    async def stop_service(self) -> None:
        await self.mutate("POST", "/stop_service", error_cls=ServiceError, action="Stop service")

    async def restart_service(self) -> None:
        """Restart the forwarding service so it picks up rule changes.

        Raises:
            MutationFailedError: If the restart call fails
        """
        await self.mutate(
            "POST",
            "/restart_service",
            error_cls=MutationFailedError,
            action="Restart service",
        )

    async def check_status(self) -> ServiceState:
        """Poll the service status. Any error maps to UNKNOWN."""
        try:
            response = await self.request("GET", "/check_status")
            if not response.is_success:
                console.debug(f"Status check failed: {describe_failure(response)}")
                return ServiceState.UNKNOWN
            data = response.json()
        except (ApiError, ValueError) as e:
            console.debug(f"Status check failed: {e}")
            return ServiceState.UNKNOWN

        if not isinstance(data, dict):
            return ServiceState.UNKNOWN
        if data.get("status") == RUNNING_STATUS:
            return ServiceState.RUNNING
        return ServiceState.STOPPED

    async def watch_status(self, interval: float) -> AsyncIterator[ServiceState]:
        """Yield the service state now and then every ``interval`` seconds.

        Read-only; never touches the rule view.
        """
        while True:
            yield await self.check_status()
            await asyncio.sleep(interval)
