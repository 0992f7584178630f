"""Account API client, limited to fetching gateway credentials."""

from __future__ import annotations

import httpx
from pydantic import BaseModel

from starkbot_cli.errors import GatewayError


class GatewayTokenResponse(BaseModel):
    token: str
    domain: str


class FlashClient:
    """Talks to the starkbot.cloud account API with the user's JWT."""

    def __init__(
        self,
        base_url: str,
        jwt: str,
        request_timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.jwt = jwt
        self._timeout = request_timeout_s
        self._transport = transport

    async def get_gateway_token(self) -> GatewayTokenResponse:
        """Fetch the current gateway token and instance domain."""
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            try:
                resp = await client.get(
                    "/api/tenant/gateway-token",
                    headers={"Authorization": f"Bearer {self.jwt}"},
                )
            except httpx.HTTPError as exc:
                raise GatewayError(f"Account API connection error: {exc}") from exc

        if not resp.is_success:
            message = resp.text.strip() or f"HTTP {resp.status_code}"
            try:
                data = resp.json()
                if isinstance(data, dict) and isinstance(data.get("error"), str):
                    message = data["error"]
            except ValueError:
                pass
            raise GatewayError(message, resp.status_code)
        try:
            return GatewayTokenResponse.model_validate(resp.json())
        except ValueError as exc:
            raise GatewayError(f"Malformed account API response: {exc}", resp.status_code) from exc
