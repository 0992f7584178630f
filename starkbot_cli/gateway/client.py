"""HTTP client for a Starkbot instance gateway.

Covers the chat endpoints (plain and streamed), chat sessions, installed
modules and the module TUI dashboard endpoints. Every request carries the
gateway bearer token; a 401 on the chat path triggers one token refresh and
one retry when a refresher is configured.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar
from urllib.parse import quote

import httpx
from loguru import logger
from pydantic import BaseModel

from starkbot_cli.dashboard.models import ActionResult, ActionSet, SessionCursor, TuiFrame
from starkbot_cli.errors import GatewayAuthError, GatewayError
from starkbot_cli.gateway.models import (
    ChatResponse,
    MessagesResponse,
    ModuleInfo,
    NewSessionResponse,
    SessionsResponse,
)
from starkbot_cli.stream.dispatcher import EventDispatcher

TokenRefresher = Callable[[], Awaitable[str]]
M = TypeVar("M", bound=BaseModel)

RECONNECT_HINT = "Run `starkbot connect` to reconnect."


def _body_text(resp: httpx.Response) -> str:
    try:
        return resp.text.strip()
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return ""


def _json_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise GatewayError(f"Malformed gateway response: {exc}", resp.status_code) from exc


def _parse_item(data: Any, model: type[M]) -> M:
    try:
        return model.model_validate(data)
    except ValueError as exc:
        raise GatewayError(f"Malformed gateway response: {exc}") from exc


def _parse(resp: httpx.Response, model: type[M]) -> M:
    """Validate a JSON body against ``model``; bad bodies become ``GatewayError``."""
    return _parse_item(_json_body(resp), model)


class GatewayClient:
    """Async client for one instance gateway."""

    def __init__(
        self,
        base_url: str,
        token: str,
        session_id: str | None = None,
        token_refresher: TokenRefresher | None = None,
        request_timeout_s: float = 30.0,
        connect_timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self.session_id = session_id
        self._token_refresher = token_refresher
        # Streams stay open for as long as the server keeps talking.
        self._timeout = httpx.Timeout(request_timeout_s, connect=connect_timeout_s)
        self._stream_timeout = httpx.Timeout(None, connect=connect_timeout_s)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Plumbing ──────────────────────────────────────────────────────

    def _headers(self, accept: str = "application/json") -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": accept,
        }

    def _chat_body(self, message: str) -> dict[str, Any]:
        body: dict[str, Any] = {"message": message}
        if self.session_id:
            body["session_id"] = self.session_id
        return body

    async def _refresh_token(self) -> None:
        if self._token_refresher is None:
            raise GatewayAuthError(f"Gateway rejected the token (HTTP 401). {RECONNECT_HINT}", 401)
        logger.info("[gateway] 401 from gateway, refreshing token")
        try:
            token = await self._token_refresher()
        except Exception as exc:
            raise GatewayAuthError(f"Gateway token refresh failed: {exc}. {RECONNECT_HINT}", 401) from exc
        if not token:
            raise GatewayAuthError(f"Gateway token refresh returned no token. {RECONNECT_HINT}", 401)
        self.token = token

    def _raise_for_status(self, resp: httpx.Response, context: str = "") -> None:
        if resp.is_success:
            return
        text = _body_text(resp)
        prefix = f"{context}: " if context else ""
        message = f"{prefix}HTTP {resp.status_code}: {text}" if text else f"{prefix}HTTP {resp.status_code}"
        if resp.status_code == 401:
            raise GatewayAuthError(f"{message}. {RECONNECT_HINT}", 401)
        raise GatewayError(message, resp.status_code)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        retry_auth: bool = False,
        context: str = "",
    ) -> httpx.Response:
        for attempt in range(2):
            try:
                resp = await self._client.request(
                    method,
                    path,
                    json=json,
                    params=params,
                    headers=self._headers(),
                )
            except httpx.HTTPError as exc:
                raise GatewayError(f"Gateway connection error: {exc}") from exc
            if resp.status_code == 401 and retry_auth and attempt == 0:
                await self._refresh_token()
                continue
            self._raise_for_status(resp, context)
            return resp
        raise GatewayAuthError(f"Gateway rejected the refreshed token. {RECONNECT_HINT}", 401)

    @asynccontextmanager
    async def _open_stream(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        retry_auth: bool = False,
    ) -> AsyncIterator[httpx.Response]:
        attempt = 0
        while True:
            request = self._client.build_request(
                method,
                path,
                json=json,
                params=params,
                headers=self._headers(accept="text/event-stream"),
                timeout=self._stream_timeout,
            )
            try:
                resp = await self._client.send(request, stream=True)
            except httpx.HTTPError as exc:
                raise GatewayError(f"Gateway connection error: {exc}") from exc
            try:
                if resp.status_code == 401 and retry_auth and attempt == 0:
                    attempt += 1
                    await self._refresh_token()
                    continue
                if not resp.is_success:
                    await resp.aread()
                    self._raise_for_status(resp)
                logger.debug(f"[gateway] stream open {method} {path}")
                yield resp
                return
            finally:
                await resp.aclose()

    # ── Chat ──────────────────────────────────────────────────────────

    async def chat(self, message: str) -> ChatResponse:
        """Send a message and wait for the full response."""
        resp = await self._request("POST", "/api/gateway/chat", json=self._chat_body(message), retry_auth=True)
        return _parse(resp, ChatResponse)

    async def chat_stream(self, message: str, dispatcher: EventDispatcher) -> int:
        """Send a message and dispatch streamed events until ``done``.

        Returns the number of events dispatched. The connection is closed
        as soon as ``done`` arrives, even if the server sent more.
        """
        async with self._open_stream(
            "POST",
            "/api/gateway/chat/stream",
            json=self._chat_body(message),
            retry_auth=True,
        ) as resp:
            try:
                return await dispatcher.run(resp.aiter_bytes())
            except httpx.HTTPError as exc:
                raise GatewayError(f"Gateway stream interrupted: {exc}") from exc

    async def new_session(self) -> NewSessionResponse:
        resp = await self._request("POST", "/api/gateway/sessions/new")
        return _parse(resp, NewSessionResponse)

    async def list_sessions(self) -> SessionsResponse:
        resp = await self._request("GET", "/api/gateway/sessions")
        return _parse(resp, SessionsResponse)

    async def get_history(self, session_id: int) -> MessagesResponse:
        resp = await self._request("GET", f"/api/gateway/sessions/{session_id}/messages")
        return _parse(resp, MessagesResponse)

    async def ping(self) -> bool:
        """Health check. Never raises."""
        try:
            resp = await self._client.get("/api/health", headers=self._headers())
        except httpx.HTTPError as exc:
            logger.debug(f"[gateway] ping failed: {exc}")
            return False
        return resp.is_success

    # ── Modules and dashboards ────────────────────────────────────────

    @staticmethod
    def _module_path(module: str) -> str:
        return f"/api/modules/{quote(module, safe='')}"

    async def list_modules(self) -> list[ModuleInfo]:
        resp = await self._request("GET", "/api/modules", context="Failed to list modules")
        data = _json_body(resp)
        if isinstance(data, dict):
            data = data.get("modules", [])
        if not isinstance(data, list):
            return []
        return [_parse_item(item, ModuleInfo) for item in data if isinstance(item, dict)]

    async def fetch_tui_frame(
        self,
        module: str,
        width: int,
        height: int,
        cursor: SessionCursor | None = None,
    ) -> TuiFrame:
        """Fetch one rendered dashboard frame.

        The body is either JSON (``{ansi, actions?, navigable?}``) or the raw
        ANSI block, depending on the response content type.
        """
        params: dict[str, Any] = {"width": width, "height": height}
        if cursor is not None:
            params.update(cursor.as_state())
        resp = await self._request(
            "GET",
            f"{self._module_path(module)}/proxy/rpc/dashboard/tui",
            params=params,
            context="Failed to fetch dashboard",
        )
        content_type = (resp.headers.get("Content-Type") or "").lower()
        if "application/json" in content_type:
            return TuiFrame.from_dict(_json_body(resp))
        return TuiFrame(ansi=resp.text)

    async def fetch_tui_actions(self, module: str) -> ActionSet:
        """Fetch the declared action set. Any failure means no actions."""
        try:
            resp = await self._client.get(
                f"{self._module_path(module)}/proxy/rpc/dashboard/tui/actions",
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            logger.debug(f"[gateway] actions fetch failed for {module!r}: {exc}")
            return ActionSet()
        if not resp.is_success:
            logger.debug(f"[gateway] actions fetch for {module!r} returned HTTP {resp.status_code}")
            return ActionSet()
        try:
            return ActionSet.from_dict(resp.json())
        except ValueError:
            return ActionSet()

    async def post_tui_action(
        self,
        module: str,
        action: str,
        cursor: SessionCursor,
        inputs: list[str] | None = None,
    ) -> ActionResult:
        """Submit an action. Failures come back as ``ActionResult(ok=False)``."""
        body: dict[str, Any] = {"action": action, "state": cursor.as_state()}
        if inputs is not None:
            body["inputs"] = inputs
        try:
            resp = await self._client.post(
                f"{self._module_path(module)}/proxy/rpc/dashboard/tui/action",
                json=body,
                headers=self._headers(),
            )
        except httpx.HTTPError as exc:
            return ActionResult(ok=False, error=f"connection error: {exc}")
        if not resp.is_success:
            return ActionResult(ok=False, error=f"HTTP {resp.status_code}")
        try:
            return ActionResult.from_dict(resp.json())
        except ValueError:
            return ActionResult(ok=False, error="Malformed action response")

    def open_tui_stream(self, module: str, width: int, height: int):
        """Open the live push stream for a module dashboard (async context manager)."""
        return self._open_stream(
            "GET",
            f"/api/gateway/modules/{quote(module, safe='')}/tui/stream",
            params={"width": width, "height": height},
        )
