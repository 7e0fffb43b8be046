"""Provider interface shared by every loader implementation."""

from typing import Protocol, runtime_checkable

from ..models import Build, Version


@runtime_checkable
class Provider(Protocol):
    """Source of version and build metadata for one (game, loader) pair.

    Providers satisfy this structurally; none inherit from it. They are
    immutable after construction and may be shared by several games and
    any number of concurrent requests.
    """

    name: str
    website: str | None

    def supports_version_type(self, version_type: str) -> bool:
        ...

    async def fetch_versions(self) -> list[Version]:
        """Return the full upstream catalog in provider order.

        Raises:
            FetchError: If the upstream is unreachable or malformed
        """
        ...

    async def fetch_builds(self, version: Version) -> list[Build]:
        """Return the builds available for a version.

        Raises:
            NotFoundError: If the version does not exist upstream
            FetchError: If the upstream is unreachable or malformed
        """
        ...

    async def get_latest_stable(self) -> Version | None:
        """Return the first stable version in catalog order, if any."""
        ...


def first_stable(versions: list[Version]) -> Version | None:
    return next((v for v in versions if v.is_stable), None)
