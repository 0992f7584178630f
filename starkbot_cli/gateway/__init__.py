"""Instance gateway and account API clients."""

from starkbot_cli.gateway.client import GatewayClient, TokenRefresher
from starkbot_cli.gateway.flash import FlashClient, GatewayTokenResponse

__all__ = ["FlashClient", "GatewayClient", "GatewayTokenResponse", "TokenRefresher"]
