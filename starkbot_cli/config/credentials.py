"""Stored account and gateway credentials (``credentials.json``)."""

from __future__ import annotations

import base64
import json
import time
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

from starkbot_cli.config.loader import get_config_dir, write_private_json
from starkbot_cli.errors import NotConfiguredError

JWT_EXPIRY_BUFFER_S = 300


class Credentials(BaseModel):
    model_config = ConfigDict(extra="ignore")

    jwt: str = ""
    username: str = ""
    tenant_id: str = ""
    gateway_token: str | None = None
    instance_domain: str | None = None
    instance_url: str | None = None
    jwt_expires_at: str | None = None

    @property
    def has_gateway(self) -> bool:
        return bool(self.gateway_token and self.instance_domain)


def get_credentials_path() -> Path:
    return get_config_dir() / "credentials.json"


def load_credentials(path: Path | None = None) -> Credentials | None:
    path = path or get_credentials_path()
    if not path.exists():
        return None
    try:
        return Credentials.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, ValidationError) as exc:
        logger.warning(f"[config] ignoring unreadable {path}: {exc}")
        return None


def save_credentials(creds: Credentials, path: Path | None = None) -> None:
    write_private_json(path or get_credentials_path(), creds.model_dump(mode="json", exclude_none=True))


def update_credentials(path: Path | None = None, **changes: str | None) -> Credentials:
    existing = load_credentials(path) or Credentials()
    updated = existing.model_copy(update=changes)
    save_credentials(updated, path)
    return updated


def clear_credentials(path: Path | None = None) -> bool:
    """Delete the credentials file. Returns True if one existed."""
    path = path or get_credentials_path()
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def _jwt_exp(token: str) -> float | None:
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(payload).decode("utf-8"))
    except ValueError:
        return None
    exp = data.get("exp") if isinstance(data, dict) else None
    return float(exp) if isinstance(exp, (int, float)) and exp else None


def is_jwt_expired(creds: Credentials, now: float | None = None) -> bool:
    """True when the JWT is missing, unreadable or within five minutes of expiry."""
    if not creds.jwt:
        return True
    exp = _jwt_exp(creds.jwt)
    if exp is None:
        return True
    current = time.time() if now is None else now
    return current > exp - JWT_EXPIRY_BUFFER_S


def require_credentials(path: Path | None = None) -> Credentials:
    creds = load_credentials(path)
    if creds is None:
        raise NotConfiguredError("Not logged in. Run `starkbot connect --jwt <token>` first.")
    if is_jwt_expired(creds):
        raise NotConfiguredError("Session expired. Run `starkbot connect --jwt <token>` with a fresh token.")
    return creds


def require_gateway_credentials(path: Path | None = None) -> Credentials:
    """Credentials with a gateway token and domain. The JWT may be absent."""
    creds = load_credentials(path)
    if creds is None or not creds.has_gateway:
        raise NotConfiguredError("Gateway not configured. Run `starkbot connect` first.")
    return creds


def instance_url(creds: Credentials, domain: str | None = None) -> str:
    """Base URL of the instance gateway."""
    if creds.instance_url:
        return creds.instance_url
    return f"https://{domain or creds.instance_domain}"
