"""Command-line entry point for the warehouse gateway.

This module provides:
- Command-line argument parsing
- Composition of the cache, fetch client, registry and reclaimer
- Graceful shutdown of the background reclaimer
"""

import argparse
import asyncio
import json
import signal
import sys
from dataclasses import asdict
from datetime import timedelta
from pathlib import Path
from typing import Any

import structlog

from . import __version__
from .models import AppConfig, Build, Version
from .providers import default_games
from .services.cache import ArtifactCache
from .services.config import VALID_LOG_LEVELS, ConfigurationService
from .services.errors import AppError, ConfigurationError, StorageError, get_error_service
from .services.filesystem import FileSystemService
from .services.http_client import HttpClientService
from .services.logging import setup_logging
from .services.reclaimer import CacheReclaimer
from .services.registry import GameRegistry

log = structlog.stdlib.get_logger()

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


class ApplicationContext:
    """Owns every long-lived service for the lifetime of the process.

    The registry is built once here and handed to whoever serves requests.
    """

    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self._filesystem: FileSystemService | None = None
        self._http_client: HttpClientService | None = None
        self._cache: ArtifactCache | None = None
        self._registry: GameRegistry | None = None
        self._reclaimer: CacheReclaimer | None = None

    @property
    def filesystem(self) -> FileSystemService:
        if self._filesystem is None:
            self._filesystem = FileSystemService()
        return self._filesystem

    @property
    def http_client(self) -> HttpClientService:
        if self._http_client is None:
            self._http_client = HttpClientService(
                timeout=self.config.http_timeout,
                max_retries=self.config.http_max_retries,
            )
        return self._http_client

    @property
    def cache(self) -> ArtifactCache:
        if self._cache is None:
            self._cache = ArtifactCache(
                storage_path=self.config.storage_path,
                ttl=timedelta(seconds=self.config.cache_ttl),
                filesystem=self.filesystem,
            )
        return self._cache

    @property
    def reclaimer(self) -> CacheReclaimer:
        if self._reclaimer is None:
            self._reclaimer = CacheReclaimer(self.cache, interval=self.config.effective_sweep_interval)
        return self._reclaimer

    async def registry(self) -> GameRegistry:
        """Get the registry, registering the built-in games on first use."""
        if self._registry is None:
            registry = GameRegistry(self.cache, self.http_client)
            for game in default_games(self.http_client, self.config):
                await registry.register_game(game)
            self._registry = registry
        return self._registry

    async def cleanup(self) -> None:
        """Stop background work and close connections."""
        if self._reclaimer is not None:
            await self._reclaimer.stop()
        if self._http_client is not None:
            await self._http_client.close()
        log.debug("Application cleanup complete")


def version_to_dict(version: Version) -> dict[str, Any]:
    return {"id": version.id, "type": version.version_type, "is_stable": version.is_stable}


def build_to_dict(build: Build) -> dict[str, Any]:
    return {
        "id": build.id,
        "version": version_to_dict(build.version),
        "download_url": build.download_url,
    }


def success(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data, "error": None}


def failure(message: str) -> dict[str, Any]:
    return {"success": False, "data": None, "error": message}


def emit(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def run_command(context: ApplicationContext, args: argparse.Namespace) -> int:
    """Execute one command and print its JSON envelope.

    Returns:
        Exit code
    """
    try:
        registry = await context.registry()

        if args.command == "games":
            emit(success([asdict(game) for game in registry.list_games()]))

        elif args.command == "versions":
            versions = await registry.list_versions(args.game, args.loader, stable_only=args.stable_only)
            emit(success([version_to_dict(v) for v in versions]))

        elif args.command == "builds":
            builds = await registry.list_builds(args.game, args.loader, args.version)
            emit(success([build_to_dict(b) for b in builds]))

        elif args.command == "download":
            build, data = await registry.download(args.game, args.loader, args.version, build_id=args.build_id)
            output: Path = args.output or Path.cwd() / build.filename
            try:
                await asyncio.to_thread(context.filesystem.write_bytes_atomic, output, data)
            except OSError as e:
                raise StorageError(
                    f"Cannot write {output}",
                    original_error=e,
                    path=str(output),
                    operation="write_output",
                ) from e
            emit(success({"path": str(output), "size": len(data), "build": build_to_dict(build)}))

        elif args.command == "sweep":
            result = await registry.sweep_cache()
            emit(success(asdict(result)))

        elif args.command == "reclaim":
            await run_reclaimer(context)

        return EXIT_OK

    except AppError as e:
        error = get_error_service().handle_error(
            e,
            operation=args.command,
            component="cli",
            context={"game": getattr(args, "game", None), "loader": getattr(args, "loader", None)},
        )
        emit(failure(error.message))
        return EXIT_ERROR


async def run_reclaimer(context: ApplicationContext) -> None:
    """Sweep once, then keep sweeping on the configured interval until SIGINT/SIGTERM."""
    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except NotImplementedError:
            # Windows: KeyboardInterrupt still reaches main()
            pass

    reclaimer = context.reclaimer
    await reclaimer.run_once()
    reclaimer.start()

    log.info("Reclaimer running", interval=reclaimer.interval, storage_path=str(context.config.storage_path))
    await shutdown.wait()
    log.info("Shutdown requested")


async def run(config: AppConfig, args: argparse.Namespace) -> int:
    context = ApplicationContext(config)
    try:
        return await run_command(context, args)
    finally:
        await context.cleanup()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="warehouse",
        description="Caching gateway for game server builds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  warehouse games
  warehouse versions minecraft vanilla --stable-only
  warehouse download minecraft vanilla 1.20.1 -o server.jar
  warehouse reclaim
        """,
    )

    _ = parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    _ = parser.add_argument("--config", type=Path, default=None, help="Path to a JSON configuration file")
    _ = parser.add_argument(
        "--log-level",
        choices=VALID_LOG_LEVELS,
        default=None,
        help="Override the configured log level",
    )
    _ = parser.add_argument("--log-dir", type=Path, default=None, help="Directory for rotating log files")

    commands = parser.add_subparsers(dest="command", required=True)

    _ = commands.add_parser("games", help="List registered games and their loaders")

    versions = commands.add_parser("versions", help="List versions for a game loader")
    _ = versions.add_argument("game")
    _ = versions.add_argument("loader")
    _ = versions.add_argument("--stable-only", action="store_true", help="Only list stable versions")

    builds = commands.add_parser("builds", help="List builds for a version")
    _ = builds.add_argument("game")
    _ = builds.add_argument("loader")
    _ = builds.add_argument("version")

    download = commands.add_parser("download", help="Download a build through the cache")
    _ = download.add_argument("game")
    _ = download.add_argument("loader")
    _ = download.add_argument("version")
    _ = download.add_argument("--build-id", default=None, help="Build to download (default: first build)")
    _ = download.add_argument("-o", "--output", type=Path, default=None, help="Output file (default: build filename)")

    _ = commands.add_parser("sweep", help="Remove expired cache entries once")
    _ = commands.add_parser("reclaim", help="Sweep the cache periodically until interrupted")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the application."""
    args = build_parser().parse_args(argv)

    try:
        config = ConfigurationService(config_path=args.config).load_config()
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        sys.exit(EXIT_CONFIG)

    _ = setup_logging(
        log_level=args.log_level or config.log_level,
        log_dir=args.log_dir or config.log_dir,
    )
    log.info("Starting warehouse", version=__version__, command=args.command)

    try:
        exit_code = asyncio.run(run(config, args))
    except KeyboardInterrupt:
        log.info("Interrupted by user")
        exit_code = EXIT_INTERRUPTED

    log.info("Warehouse exiting", exit_code=exit_code)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
