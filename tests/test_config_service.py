"""Tests for the configuration service."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from hypothesis import given, strategies as st

from warehouse.models import AppConfig
from warehouse.services import ConfigurationService
from warehouse.services.config import VALID_LOG_LEVELS
from warehouse.services.errors import ConfigurationError


valid_paths = st.builds(
    lambda x: Path("/srv") / x,
    st.text(min_size=1, max_size=30, alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd"))),
)

valid_config_strategy = st.builds(
    AppConfig,
    bind_address=st.builds(lambda port: f"0.0.0.0:{port}", st.integers(min_value=1, max_value=65535)),
    storage_path=valid_paths,
    log_level=st.sampled_from(VALID_LOG_LEVELS),
    cache_ttl=st.integers(min_value=1, max_value=7 * 24 * 3600),
    sweep_interval=st.none() | st.integers(min_value=1, max_value=3600),
    http_timeout=st.floats(min_value=0.1, max_value=600.0, allow_nan=False, allow_infinity=False),
    http_max_retries=st.integers(min_value=0, max_value=10),
    log_dir=st.none() | valid_paths,
)


@given(valid_config_strategy)
def test_configuration_round_trip(config: AppConfig) -> None:
    """
    Property: Saving a valid configuration and loading it back preserves every value.
    """
    import tempfile

    with tempfile.TemporaryDirectory() as temp_dir:
        config_path = Path(temp_dir) / "warehouse.json"
        service = ConfigurationService(config_path, environ={})

        service.save_config(config)

        assert service.load_config() == config


def test_defaults_without_any_source() -> None:
    config = ConfigurationService(environ={}).load_config()

    assert config == AppConfig()
    assert config.effective_sweep_interval == config.cache_ttl


def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    config = ConfigurationService(tmp_path / "absent.json", environ={}).load_config()

    assert config == AppConfig()


def test_environment_overrides_file(tmp_path: Path) -> None:
    config_path = tmp_path / "warehouse.json"
    config_path.write_text(json.dumps({"cache_ttl": 600, "log_level": "DEBUG"}), encoding="utf-8")
    environ = {
        "WAREHOUSE_CACHE_TTL": "120",
        "WAREHOUSE_STORAGE_PATH": "/var/cache/warehouse",
        "WAREHOUSE_SWEEP_INTERVAL": "30",
        "UNRELATED": "ignored",
    }

    config = ConfigurationService(config_path, environ=environ).load_config()

    assert config.cache_ttl == 120
    assert config.log_level == "DEBUG"
    assert config.storage_path == Path("/var/cache/warehouse")
    assert config.sweep_interval == 30
    assert config.effective_sweep_interval == 30


def test_empty_optional_environment_value_means_unset() -> None:
    config = ConfigurationService(environ={"WAREHOUSE_SWEEP_INTERVAL": "", "WAREHOUSE_LOG_DIR": ""}).load_config()

    assert config.sweep_interval is None
    assert config.log_dir is None


def test_log_level_is_case_insensitive() -> None:
    config = ConfigurationService(environ={"WAREHOUSE_LOG_LEVEL": "warning"}).load_config()

    assert config.log_level == "WARNING"


def test_dotenv_file_is_loaded(tmp_path: Path) -> None:
    dotenv_path = tmp_path / ".env"
    dotenv_path.write_text("WAREHOUSE_CACHE_TTL=90\nWAREHOUSE_LOG_LEVEL=ERROR\n", encoding="utf-8")

    with patch.dict(os.environ, {"WAREHOUSE_LOG_LEVEL": "DEBUG"}):
        os.environ.pop("WAREHOUSE_CACHE_TTL", None)
        config = ConfigurationService(dotenv_path=dotenv_path).load_config()

    assert config.cache_ttl == 90
    # The process environment wins over .env
    assert config.log_level == "DEBUG"


def test_unknown_file_keys_are_ignored(tmp_path: Path) -> None:
    config_path = tmp_path / "warehouse.json"
    config_path.write_text(json.dumps({"cache_ttl": 60, "colour": "blue"}), encoding="utf-8")

    config = ConfigurationService(config_path, environ={}).load_config()

    assert config.cache_ttl == 60


@pytest.mark.parametrize(
    "environ",
    [
        {"WAREHOUSE_CACHE_TTL": "soon"},
        {"WAREHOUSE_CACHE_TTL": "0"},
        {"WAREHOUSE_SWEEP_INTERVAL": "-1"},
        {"WAREHOUSE_LOG_LEVEL": "VERBOSE"},
        {"WAREHOUSE_BIND_ADDRESS": "localhost"},
        {"WAREHOUSE_HTTP_TIMEOUT": "0"},
        {"WAREHOUSE_HTTP_MAX_RETRIES": "11"},
        {"WAREHOUSE_MANIFEST_URL": "ftp://example/manifest.json"},
    ],
)
def test_invalid_values_are_configuration_errors(environ: dict[str, str]) -> None:
    with pytest.raises(ConfigurationError):
        ConfigurationService(environ=environ).load_config()


def test_boolean_is_not_an_integer(tmp_path: Path) -> None:
    config_path = tmp_path / "warehouse.json"
    config_path.write_text(json.dumps({"cache_ttl": True}), encoding="utf-8")

    with pytest.raises(ConfigurationError) as exc_info:
        ConfigurationService(config_path, environ={}).load_config()

    assert exc_info.value.setting == "cache_ttl"


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]"])
def test_unreadable_file_is_a_configuration_error(tmp_path: Path, content: str) -> None:
    config_path = tmp_path / "warehouse.json"
    config_path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        ConfigurationService(config_path, environ={}).load_config()


def test_save_rejects_invalid_configuration(tmp_path: Path) -> None:
    service = ConfigurationService(tmp_path / "warehouse.json", environ={})

    with pytest.raises(ValueError):
        service.save_config(AppConfig(cache_ttl=0))

    assert not (tmp_path / "warehouse.json").exists()
