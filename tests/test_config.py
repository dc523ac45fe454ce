"""Tests for client configuration."""

import pytest
from pydantic import ValidationError

from obs_checkout.config import (
    CheckoutOptions,
    ClientConfig,
    load_client_config,
    save_client_config,
)
from obs_checkout.constants import DEFAULT_API_URL


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("OBS_API_URL", "OBS_USERNAME", "OBS_PASSWORD"):
        monkeypatch.delenv(var, raising=False)


class TestClientConfig:

    def test_missing_file_yields_defaults(self, tmp_path):
        config = load_client_config(tmp_path / "config.yaml")
        assert config == ClientConfig()
        assert config.api_url == DEFAULT_API_URL

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "api_url: https://api.example.org\n"
            "username: tester\n"
            "password: secret\n"
            "verify_tls: false\n"
        )

        config = load_client_config(path)

        assert config.api_url == "https://api.example.org"
        assert config.username == "tester"
        assert config.password == "secret"
        assert config.verify_tls is False

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("api_url: https://api.example.org\nusername: tester\n")
        monkeypatch.setenv("OBS_USERNAME", "ci-bot")
        monkeypatch.setenv("OBS_PASSWORD", "token")

        config = load_client_config(path)

        assert config.api_url == "https://api.example.org"
        assert config.username == "ci-bot"
        assert config.password == "token"

    def test_invalid_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ValueError, match="expected a mapping"):
            load_client_config(path)

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "nested" / "config.yaml"
        config = ClientConfig(api_url="https://api.example.org", username="tester", timeout=5.0)

        save_client_config(config, path)

        assert load_client_config(path) == config

    def test_default_location(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            "obs_checkout.config.default_config_path", lambda: tmp_path / "default.yaml"
        )
        (tmp_path / "default.yaml").write_text("username: someone\n")
        assert load_client_config().username == "someone"


class TestCheckoutOptions:

    def test_defaults(self):
        options = CheckoutOptions()
        assert options.expand_links is True
        assert options.revision is None
        assert options.fetch_meta is True
        assert options.max_workers >= 1

    def test_validation(self):
        with pytest.raises(ValidationError):
            CheckoutOptions(max_workers=0)
        with pytest.raises(ValidationError):
            CheckoutOptions(lock_timeout=-1)

    def test_immutable(self):
        with pytest.raises(ValidationError):
            CheckoutOptions().expand_links = False
