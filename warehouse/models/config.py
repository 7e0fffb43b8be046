"""Configuration data models."""

from dataclasses import dataclass
from pathlib import Path

DEFAULT_MANIFEST_URL = "https://launchermeta.mojang.com/mc/game/version_manifest_v2.json"


@dataclass(frozen=True)
class AppConfig:
    """Gateway settings."""
    bind_address: str = "127.0.0.1:8080"  # Used by the HTTP front end, not the core
    storage_path: Path = Path("./storage")
    log_level: str = "INFO"
    cache_ttl: int = 3600  # Seconds since last access
    sweep_interval: int | None = None  # None = sweep every cache_ttl seconds
    http_timeout: float = 30.0
    http_max_retries: int = 0
    manifest_url: str = DEFAULT_MANIFEST_URL
    log_dir: Path | None = None

    @property
    def effective_sweep_interval(self) -> int:
        return self.sweep_interval if self.sweep_interval is not None else self.cache_ttl
