"""Configuration service: JSON file, .env file and WAREHOUSE_* environment variables."""

import json
import os
from collections.abc import Callable, Mapping
from dataclasses import fields, replace
from pathlib import Path
from typing import Any

import structlog
from dotenv import find_dotenv, load_dotenv

from ..models import AppConfig
from .errors import ConfigurationError

log = structlog.stdlib.get_logger()

ENV_PREFIX = "WAREHOUSE_"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _optional(convert: Callable[[str], Any]) -> Callable[[Any], Any]:
    def parse(value: Any) -> Any:
        if value is None or value == "":
            return None
        return convert(value)
    return parse


def _parse_bool_free_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("expected an integer, got a boolean")
    return int(value)


# Setting name -> converter from raw JSON/env value
_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    "bind_address": str,
    "storage_path": lambda v: Path(str(v)),
    "log_level": lambda v: str(v).upper(),
    "cache_ttl": _parse_bool_free_int,
    "sweep_interval": _optional(_parse_bool_free_int),
    "http_timeout": float,
    "http_max_retries": _parse_bool_free_int,
    "manifest_url": str,
    "log_dir": _optional(lambda v: Path(str(v))),
}


class ValidationResult:
    """Result of configuration validation."""

    def __init__(self, is_valid: bool, errors: list[str] | None = None) -> None:
        self.is_valid: bool = is_valid
        self.errors: list[str] = errors or []


class ConfigurationService:
    """Builds the gateway settings.

    Precedence, lowest first: defaults, the JSON config file, ``.env``,
    process environment.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
        dotenv_path: Path | None = None,
    ) -> None:
        """Initialize the configuration service.

        Args:
            config_path: Optional JSON config file
            environ: Environment to read; defaults to os.environ after loading .env
            dotenv_path: Explicit .env file; defaults to the nearest one from the working directory
        """
        self.config_path: Path | None = config_path
        self._environ = environ
        self._dotenv_path = dotenv_path

    def load_config(self) -> AppConfig:
        """Load, merge and validate the configuration.

        Raises:
            ConfigurationError: If a source is unreadable or a value is invalid
        """
        values: dict[str, Any] = {}

        if self.config_path is not None:
            values.update(self._read_config_file(self.config_path))

        values.update(self._read_environment())

        config = self._dict_to_config(values)
        validation_result = self.validate_config(config)
        if not validation_result.is_valid:
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(validation_result.errors)}",
                expected="see the listed constraints",
            )

        log.info(
            "Configuration loaded",
            config_path=str(self.config_path) if self.config_path else None,
            storage_path=str(config.storage_path),
            cache_ttl=config.cache_ttl,
        )
        return config

    def save_config(self, config: AppConfig, path: Path | None = None) -> None:
        """Write the configuration as JSON.

        Raises:
            ValueError: If the configuration is invalid
            OSError: If the file cannot be written
        """
        target = path or self.config_path
        if target is None:
            raise ValueError("No configuration path to save to")

        validation_result = self.validate_config(config)
        if not validation_result.is_valid:
            raise ValueError(f"Invalid configuration: {', '.join(validation_result.errors)}")

        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            json.dump(self._config_to_dict(config), f, indent=2, ensure_ascii=False)

        log.info("Configuration saved", path=str(target))

    def validate_config(self, config: AppConfig) -> ValidationResult:
        """Validate configuration settings."""
        errors = []

        host, sep, port = config.bind_address.rpartition(":")
        if not sep or not host or not port.isdigit() or not 0 < int(port) < 65536:
            errors.append("bind_address must look like host:port")

        if not isinstance(config.storage_path, Path) or not str(config.storage_path):
            errors.append("storage_path must be a path")

        if config.log_level not in VALID_LOG_LEVELS:
            errors.append(f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}")

        if config.cache_ttl < 1:
            errors.append("cache_ttl must be a positive number of seconds")

        if config.sweep_interval is not None and config.sweep_interval < 1:
            errors.append("sweep_interval must be a positive number of seconds")

        if config.http_timeout <= 0:
            errors.append("http_timeout must be positive")

        if not 0 <= config.http_max_retries <= 10:
            errors.append("http_max_retries must be between 0 and 10")

        if not config.manifest_url.startswith(("http://", "https://")):
            errors.append("manifest_url must be an http(s) URL")

        return ValidationResult(len(errors) == 0, errors)

    def _read_config_file(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            log.info("Configuration file not found, using defaults", config_path=str(path))
            return {}

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                "Cannot read configuration file",
                setting="config_path",
                current_value=str(path),
                expected="a readable JSON object",
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration file must contain a JSON object",
                setting="config_path",
                current_value=str(path),
            )

        unknown = sorted(set(data) - set(_CONVERTERS))
        if unknown:
            log.warning("Ignoring unknown configuration keys", keys=unknown)
        return {k: v for k, v in data.items() if k in _CONVERTERS}

    def _read_environment(self) -> dict[str, str]:
        environ = self._environ
        if environ is None:
            dotenv_path = self._dotenv_path or find_dotenv(usecwd=True)
            if dotenv_path:
                load_dotenv(dotenv_path, override=False)
            environ = os.environ

        values = {}
        for name in _CONVERTERS:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        return values

    def _config_to_dict(self, config: AppConfig) -> dict[str, Any]:
        """Convert AppConfig to a JSON-serializable dictionary."""
        data: dict[str, Any] = {}
        for f in fields(AppConfig):
            value = getattr(config, f.name)
            data[f.name] = str(value) if isinstance(value, Path) else value
        return data

    def _dict_to_config(self, data: dict[str, Any]) -> AppConfig:
        """Convert raw values to AppConfig, on top of the defaults."""
        converted: dict[str, Any] = {}
        for name, raw in data.items():
            try:
                converted[name] = _CONVERTERS[name](raw)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid value for {name}: {e}",
                    setting=name,
                    current_value=raw,
                ) from e
        return replace(AppConfig(), **converted)
