"""Configuration module for starkbot-cli."""

from starkbot_cli.config.credentials import (
    Credentials,
    instance_url,
    load_credentials,
    require_gateway_credentials,
)
from starkbot_cli.config.loader import get_config_path, load_config, save_config
from starkbot_cli.config.schema import Config

__all__ = [
    "Config",
    "Credentials",
    "get_config_path",
    "instance_url",
    "load_config",
    "load_credentials",
    "require_gateway_credentials",
    "save_config",
]
