"""Caching gateway for game server builds."""

__version__ = "0.1.0"
