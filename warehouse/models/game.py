"""Game, version and build data models."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..providers.base import Provider


STABLE_VERSION_TYPE = "release"


@dataclass(frozen=True)
class Version:
    """A release of a game as reported by a provider."""
    id: str
    version_type: str
    is_stable: bool = False

    @classmethod
    def standard(cls, id: str, version_type: str) -> "Version":
        """Build a version whose stability is derived from its type."""
        return cls(id=id, version_type=version_type, is_stable=version_type == STABLE_VERSION_TYPE)


@dataclass(frozen=True)
class Build:
    """A downloadable artifact for a version."""
    id: str
    version: Version
    download_url: str | None = None  # None when the build cannot be downloaded

    @property
    def filename(self) -> str:
        """Canonical cache filename for this build."""
        return f"{self.version.id}-{self.id}.jar"


@dataclass
class Game:
    """A named bundle of providers keyed by loader id."""
    id: str
    providers: dict[str, "Provider"] = field(default_factory=dict)

    def add_provider(self, provider: "Provider") -> None:
        self.providers[provider.name] = provider

    def get_provider(self, name: str) -> "Provider | None":
        return self.providers.get(name)

    def list_providers(self) -> list["Provider"]:
        return list(self.providers.values())
