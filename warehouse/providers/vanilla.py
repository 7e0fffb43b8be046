"""Vanilla Minecraft server builds from the Mojang version manifest.

Resolving a build takes two hops: the manifest lists every version with the
URL of its detail document, and the detail document carries the server jar
download.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from ..models import Build, Version
from ..models.config import DEFAULT_MANIFEST_URL
from ..services.errors import FetchError, NotFoundError
from ..services.http_client import HttpClientService
from .base import first_stable

log = structlog.stdlib.get_logger()


class VersionType(Enum):
    """Version types published in the manifest."""
    RELEASE = "release"
    SNAPSHOT = "snapshot"
    OLD_BETA = "old_beta"
    OLD_ALPHA = "old_alpha"

    @classmethod
    def parse(cls, raw: str) -> "VersionType":
        """Map an upstream type string, treating unknown types as snapshots."""
        try:
            return cls(raw)
        except ValueError:
            return cls.SNAPSHOT


@dataclass(frozen=True)
class ManifestEntry:
    """One row of the version manifest."""
    id: str
    version_type: VersionType
    url: str

    def to_version(self) -> Version:
        return Version(
            id=self.id,
            version_type=self.version_type.value,
            is_stable=self.version_type is VersionType.RELEASE,
        )


class VanillaProvider:
    """Provider for the official Minecraft server jar."""

    name = "vanilla"
    website = "https://www.minecraft.net"

    def __init__(self, http_client: HttpClientService, manifest_url: str = DEFAULT_MANIFEST_URL) -> None:
        self._client = http_client
        self._manifest_url = manifest_url

    def supports_version_type(self, version_type: str) -> bool:
        return True

    async def fetch_versions(self) -> list[Version]:
        entries = await self._fetch_manifest()
        return [entry.to_version() for entry in entries]

    async def get_latest_stable(self) -> Version | None:
        return first_stable(await self.fetch_versions())

    async def fetch_builds(self, version: Version) -> list[Build]:
        entries = await self._fetch_manifest()
        entry = next((e for e in entries if e.id == version.id), None)
        if entry is None:
            raise NotFoundError(f"Version '{version.id}' not found", resource="version", identifier=version.id)

        detail = await self._client.get_json(entry.url)
        download_url = self._server_download_url(detail, entry.url)
        if download_url is None:
            log.info("Version has no server download", version=entry.id)

        return [Build(id=entry.id, version=entry.to_version(), download_url=download_url)]

    async def _fetch_manifest(self) -> list[ManifestEntry]:
        manifest = await self._client.get_json(self._manifest_url)

        raw_versions = manifest.get("versions") if isinstance(manifest, dict) else None
        if not isinstance(raw_versions, list):
            raise FetchError("Malformed version manifest: missing 'versions' list", url=self._manifest_url)

        entries: list[ManifestEntry] = []
        for item in raw_versions:
            entry = self._parse_entry(item)
            if entry is None:
                log.warning("Skipping malformed manifest entry", entry=str(item)[:200])
                continue
            entries.append(entry)

        log.debug("Version manifest fetched", versions=len(entries))
        return entries

    @staticmethod
    def _parse_entry(item: Any) -> ManifestEntry | None:
        if not isinstance(item, dict):
            return None
        version_id, version_type, url = item.get("id"), item.get("type"), item.get("url")
        if not all(isinstance(v, str) and v for v in (version_id, version_type, url)):
            return None
        return ManifestEntry(id=version_id, version_type=VersionType.parse(version_type), url=url)

    @staticmethod
    def _server_download_url(detail: Any, detail_url: str) -> str | None:
        """Extract ``downloads.server.url``; None when the version ships no server."""
        if not isinstance(detail, dict):
            raise FetchError("Malformed version detail document", url=detail_url)

        downloads = detail.get("downloads")
        if downloads is None:
            return None
        if not isinstance(downloads, dict):
            raise FetchError("Malformed 'downloads' section in version detail", url=detail_url)

        server = downloads.get("server")
        if not isinstance(server, dict):
            return None

        url = server.get("url")
        return url if isinstance(url, str) and url else None
