"""Tests for configuration loading."""
import pytest

from http_observability.config import Config, load_config, parse_bool, validate_config
from http_observability.config import ENV_MAPPINGS


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for env_var in ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)


def test_defaults():
    config = load_config()

    assert config.backend_url == "http://localhost:4000"
    assert config.transmission_enabled is False
    assert config.batch_max_size == 10
    assert config.batch_max_wait_ms == 5000
    assert config.http_timeout_ms == 10000
    assert config.retry_attempts == 3
    assert config.retry_delay_ms == 1000
    assert config.circuit_breaker_threshold == 5
    assert config.circuit_breaker_cooldown_ms == 300000


def test_ini_file(tmp_path):
    path = tmp_path / "agent.ini"
    path.write_text(
        "[service]\n"
        "name = checkout\n"
        "version = 2.0.0\n"
        "[backend]\n"
        "url = https://collector.example.com\n"
        "api_key = from-file\n"
        "[transmission]\n"
        "enabled = true\n"
        "batch_size = 25\n"
        "[circuit_breaker]\n"
        "cooldown_ms = 60000\n"
    )

    config = load_config(str(path))

    assert config.service_name == "checkout"
    assert config.service_version == "2.0.0"
    assert config.backend_url == "https://collector.example.com"
    assert config.api_key == "from-file"
    assert config.transmission_enabled is True
    assert config.batch_max_size == 25
    assert config.circuit_breaker_cooldown_ms == 60000


def test_env_overrides_ini(tmp_path, monkeypatch):
    path = tmp_path / "agent.ini"
    path.write_text("[backend]\napi_key = from-file\n")
    monkeypatch.setenv("OBSERVABILITY_API_KEY", "from-env")
    monkeypatch.setenv("HTTP_BATCH_SIZE", "50")
    monkeypatch.setenv("HTTP_TRANSMISSION_ENABLED", "TRUE")

    config = load_config(str(path))

    assert config.api_key == "from-env"
    assert config.batch_max_size == 50
    assert config.transmission_enabled is True


def test_invalid_number_keeps_default(monkeypatch):
    monkeypatch.setenv("HTTP_BATCH_TIMEOUT", "soon")
    assert load_config().batch_max_wait_ms == 5000


def test_out_of_range_values_clamped(monkeypatch):
    monkeypatch.setenv("HTTP_BATCH_SIZE", "0")
    monkeypatch.setenv("HTTP_RETRY_DELAY", "-5")

    config = load_config()

    assert config.batch_max_size == 1
    assert config.retry_delay_ms == 0


def test_missing_file_uses_defaults(tmp_path):
    config = load_config(str(tmp_path / "missing.ini"))
    assert config == Config()


@pytest.mark.parametrize("value,expected", [
    ("true", True), ("1", True), ("Yes", True), ("on", True),
    ("false", False), ("0", False), ("", False),
])
def test_parse_bool(value, expected):
    assert parse_bool(value) is expected


def test_validate_config_lists_missing_settings():
    assert validate_config(Config(api_key="k")) == ['organisation_id', 'project_id']


def test_validate_config_complete(config):
    assert validate_config(config) == []


def test_identity(config):
    identity = config.identity
    assert identity.service == "checkout"
    assert identity.organisation_id == "org-1"
    assert identity.repository_url == "https://git.example.com/shop/checkout"
