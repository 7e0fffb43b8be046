"""Game registry and download orchestration."""

import asyncio
from collections.abc import Mapping
from types import MappingProxyType

import structlog

from ..models import Build, Game, GameSummary, LoaderSummary, SweepResult, Version
from ..models.game import STABLE_VERSION_TYPE
from ..providers.base import Provider
from .cache import ArtifactCache
from .errors import NotFoundError, StorageError
from .http_client import HttpClientService

log = structlog.stdlib.get_logger()


class GameRegistry:
    """Registered games plus the cache-through download path.

    Lookups read an immutable snapshot of the game map and never wait;
    registration is serialized and publishes a new snapshot. Downloads of an
    uncached build join any fetch already in flight for it. A caller whose
    cache read outlasts that fetch can still start a second one.
    """

    def __init__(self, cache: ArtifactCache, http_client: HttpClientService) -> None:
        self._cache = cache
        self._http_client = http_client
        self._games: Mapping[str, Game] = MappingProxyType({})
        self._register_lock = asyncio.Lock()
        self._inflight: dict[tuple[str, str], asyncio.Task[bytes]] = {}

    @property
    def cache(self) -> ArtifactCache:
        return self._cache

    async def register_game(self, game: Game) -> None:
        """Add a game, replacing any game with the same id."""
        async with self._register_lock:
            games = dict(self._games)
            games[game.id] = game
            self._games = MappingProxyType(games)

        log.info("Game registered", game=game.id, loaders=sorted(game.providers))

    def get_game(self, game_id: str) -> Game | None:
        return self._games.get(game_id)

    def get_loader(self, game_id: str, loader_id: str) -> Provider | None:
        game = self._games.get(game_id)
        if game is None:
            return None
        return game.get_provider(loader_id)

    def require_loader(self, game_id: str, loader_id: str) -> Provider:
        """Like get_loader, but raises NotFoundError instead of returning None."""
        provider = self.get_loader(game_id, loader_id)
        if provider is None:
            raise NotFoundError(
                f"Loader '{loader_id}' not found for game '{game_id}'",
                resource="loader",
                identifier=f"{game_id}/{loader_id}",
            )
        return provider

    def list_games(self) -> list[GameSummary]:
        return [
            GameSummary(
                id=game.id,
                loaders=[
                    LoaderSummary(id=p.name, name=p.name, website=p.website)
                    for p in game.list_providers()
                ],
            )
            for game in sorted(self._games.values(), key=lambda g: g.id)
        ]

    async def list_versions(self, game_id: str, loader_id: str, stable_only: bool = False) -> list[Version]:
        provider = self.require_loader(game_id, loader_id)
        versions = await provider.fetch_versions()
        if stable_only:
            versions = [v for v in versions if v.is_stable]
        return versions

    async def list_builds(self, game_id: str, loader_id: str, version_id: str) -> list[Build]:
        provider = self.require_loader(game_id, loader_id)
        return await provider.fetch_builds(Version.standard(version_id, STABLE_VERSION_TYPE))

    async def resolve_build(
        self,
        game_id: str,
        loader_id: str,
        version_id: str,
        build_id: str | None = None,
    ) -> Build:
        """Pick the requested build, or the first one when no build id is given.

        Raises:
            NotFoundError: Unknown game, loader, version or build, or no builds at all
            UpstreamError: The provider could not list builds
        """
        builds = await self.list_builds(game_id, loader_id, version_id)

        if build_id is not None:
            build = next((b for b in builds if b.id == build_id), None)
            if build is None:
                raise NotFoundError(f"Build '{build_id}' not found", resource="build", identifier=build_id)
            return build

        if not builds:
            raise NotFoundError("No builds available for this version", resource="build", identifier=version_id)
        return builds[0]

    async def download(
        self,
        game_id: str,
        loader_id: str,
        version_id: str,
        build_id: str | None = None,
    ) -> tuple[Build, bytes]:
        """Resolve a build and return it with its artifact bytes."""
        build = await self.resolve_build(game_id, loader_id, version_id, build_id)
        data = await self.download_build(game_id, build)
        return build, data

    async def download_build(self, game_id: str, build: Build) -> bytes:
        """Serve a build from the cache, fetching and storing it on a miss.

        Raises:
            NotFoundError: The build is not cached and has no download URL
            UpstreamError: The upstream fetch failed
            StorageError: The cache could not be read
        """
        filename = build.filename
        key = (game_id, filename)

        task = self._inflight.get(key)
        if task is None:
            data = await self._cache.get(game_id, filename)
            if data is not None:
                log.info("Serving build from cache", game=game_id, filename=filename, size=len(data))
                return data

            # Another caller may have started the fetch while we read the cache
            task = self._inflight.get(key)

        if task is None:
            if build.download_url is None:
                raise NotFoundError(
                    f"No download URL available for build '{build.id}'",
                    resource="download_url",
                    identifier=build.id,
                )
            task = asyncio.create_task(self._fetch_and_store(game_id, filename, build.download_url))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            log.debug("Joining in-flight download", game=game_id, filename=filename)

        # A cancelled caller must not abort the fetch or the cache write
        return await asyncio.shield(task)

    async def sweep_cache(self) -> SweepResult:
        return await self._cache.sweep()

    async def _fetch_and_store(self, game_id: str, filename: str, url: str) -> bytes:
        log.info("Cache miss, fetching build", game=game_id, filename=filename, url=url)
        data = await self._http_client.get_bytes(url)

        try:
            await self._cache.put(game_id, filename, data)
        except StorageError as e:
            log.error(
                "Failed to cache build, serving fetched bytes anyway",
                game=game_id,
                filename=filename,
                error=e.message,
                technical_details=e.technical_details,
            )

        return data

    def _forget(self, key: tuple[str, str], task: "asyncio.Task[bytes]") -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the result as retrieved even when every waiter was cancelled
        if not task.cancelled():
            task.exception()
