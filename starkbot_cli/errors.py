"""Error types shared across starkbot-cli."""

from __future__ import annotations


class StarkbotError(RuntimeError):
    """Base error. The message is shown to the user as-is."""


class NotConfiguredError(StarkbotError):
    """Credentials or gateway settings are missing."""


class GatewayError(StarkbotError):
    """Transport failure talking to an instance gateway."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GatewayAuthError(GatewayError):
    """Gateway rejected the token (HTTP 401)."""


class DashboardError(StarkbotError):
    """Fatal dashboard failure, raised after the terminal has been restored."""
