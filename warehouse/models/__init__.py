"""Data models for the warehouse gateway."""

from .cache import CacheEntry, SweepResult
from .catalog import GameSummary, LoaderSummary
from .config import AppConfig
from .game import Build, Game, Version

__all__ = [
    "AppConfig",
    "Build",
    "CacheEntry",
    "Game",
    "GameSummary",
    "LoaderSummary",
    "SweepResult",
    "Version",
]
