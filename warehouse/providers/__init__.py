"""Upstream providers and the games assembled from them."""

from .base import Provider, first_stable
from .games import build_minecraft, default_games
from .vanilla import VanillaProvider, VersionType

__all__ = [
    "Provider",
    "VanillaProvider",
    "VersionType",
    "build_minecraft",
    "default_games",
    "first_stable",
]
