"""Tests for starkbot_cli.config."""

import base64
import json
import os
import stat

import pytest

from starkbot_cli.config.credentials import (
    Credentials,
    clear_credentials,
    instance_url,
    is_jwt_expired,
    load_credentials,
    require_credentials,
    require_gateway_credentials,
    save_credentials,
    update_credentials,
)
from starkbot_cli.config.loader import get_config_dir, get_config_path, load_config, save_config
from starkbot_cli.config.schema import Config
from starkbot_cli.errors import NotConfiguredError


def make_jwt(exp):
    def part(data):
        return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()

    return f"{part({'alg': 'HS256'})}.{part({'exp': exp})}.sig"


@pytest.fixture(autouse=True)
def cli_home(tmp_path, monkeypatch):
    monkeypatch.setenv("STARKBOT_CLI_HOME", str(tmp_path / "home"))
    for key in list(os.environ):
        if key.startswith("STARKBOT_") and key != "STARKBOT_CLI_HOME":
            monkeypatch.delenv(key)
    return tmp_path / "home"


class TestConfig:
    def test_defaults_when_missing(self, cli_home):
        config = load_config()
        assert get_config_dir() == cli_home
        assert config.flash_base_url == "https://starkbot.cloud"
        assert config.dashboard.page_size == 20
        assert config.dashboard.refresh_interval_s == 5.0
        assert config.log_path is None

    def test_round_trip_with_private_mode(self, cli_home):
        config = Config()
        config.dashboard.page_size = 10
        path = save_config(config)

        assert path == get_config_path()
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert load_config().dashboard.page_size == 10

    def test_broken_file_gives_defaults(self, cli_home):
        cli_home.mkdir(parents=True)
        get_config_path().write_text("{nope", encoding="utf-8")
        assert load_config().flash_base_url == "https://starkbot.cloud"

    def test_refresh_interval_floor(self):
        assert Config(dashboard={"refresh_interval_s": 0.5}).dashboard.refresh_interval_s == 5.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("STARKBOT_DASHBOARD__ERROR_FLASH_S", "0.25")
        assert Config().dashboard.error_flash_s == 0.25


class TestCredentials:
    def test_missing(self):
        assert load_credentials() is None
        with pytest.raises(NotConfiguredError, match="Not logged in"):
            require_credentials()
        with pytest.raises(NotConfiguredError, match="starkbot connect"):
            require_gateway_credentials()

    def test_update_creates_and_merges(self):
        update_credentials(gateway_token="gw", instance_domain="bot.starkbot.cloud")
        update_credentials(username="ada")

        creds = require_gateway_credentials()
        assert creds.username == "ada"
        assert creds.gateway_token == "gw"
        assert instance_url(creds) == "https://bot.starkbot.cloud"

    def test_instance_url_prefers_explicit_url(self):
        creds = Credentials(instance_domain="bot.starkbot.cloud", instance_url="http://localhost:8080")
        assert instance_url(creds) == "http://localhost:8080"

    def test_save_is_private_and_clear_removes(self, cli_home):
        save_credentials(Credentials(jwt="x"))
        path = cli_home / "credentials.json"
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert clear_credentials() is True
        assert clear_credentials() is False

    def test_jwt_expiry_buffer(self):
        now = 1_700_000_000
        assert not is_jwt_expired(Credentials(jwt=make_jwt(now + 301)), now=now)
        assert is_jwt_expired(Credentials(jwt=make_jwt(now + 299)), now=now)
        assert is_jwt_expired(Credentials(jwt="not-a-jwt"), now=now)
        assert is_jwt_expired(Credentials(jwt=""), now=now)

    def test_expired_session(self):
        save_credentials(Credentials(jwt=make_jwt(1)))
        with pytest.raises(NotConfiguredError, match="expired"):
            require_credentials()
