"""Catalog summaries returned to callers of the registry."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LoaderSummary:
    """Public description of a provider."""
    id: str
    name: str
    website: str | None = None


@dataclass(frozen=True)
class GameSummary:
    """Public description of a registered game and its loaders."""
    id: str
    loaders: list[LoaderSummary] = field(default_factory=list)
