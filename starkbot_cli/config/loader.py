"""Load and save ``config.json``."""

from __future__ import annotations

import json
import os
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from starkbot_cli.config.schema import Config

HOME_ENV = "STARKBOT_CLI_HOME"


def get_config_dir() -> Path:
    override = os.environ.get(HOME_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".starkbot-cli"


def ensure_config_dir() -> Path:
    path = get_config_dir()
    path.mkdir(parents=True, exist_ok=True, mode=0o700)
    return path


def get_config_path() -> Path:
    return get_config_dir() / "config.json"


def write_private_json(path: Path, data: dict) -> None:
    """Write ``data`` as JSON, readable by the owner only."""
    ensure_config_dir()
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=2)
    os.chmod(path, 0o600)


def load_config(path: Path | None = None) -> Config:
    """Read the config file over the defaults. A missing or broken file gives defaults."""
    path = path or get_config_path()
    if not path.exists():
        return Config()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError("config root is not an object")
        return Config(**data)
    except (OSError, ValueError, ValidationError) as exc:
        logger.warning(f"[config] ignoring unreadable {path}: {exc}")
        return Config()


def save_config(config: Config, path: Path | None = None) -> Path:
    path = path or get_config_path()
    write_private_json(path, config.model_dump(mode="json"))
    return path
