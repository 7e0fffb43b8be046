"""Disk-backed artifact cache with sliding TTL expiry.

Layout under the storage root::

    <namespace>/<filename>                 raw blob
    <namespace>/<filename stem>.meta.bin   CacheEntry record

A blob without its metadata record (or the reverse) is never served. Such
halves are removed by ``get`` when it meets them and by ``sweep`` once they
are older than the TTL.
"""

import asyncio
from collections.abc import Callable
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path

import structlog

from ..models import CacheEntry, SweepResult
from .errors import StorageError, ValidationError
from .filesystem import FileSystemService

log = structlog.stdlib.get_logger()

META_SUFFIX = ".meta.bin"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArtifactCache:
    """Key/value store of blobs keyed by (namespace, filename).

    The TTL counts from the last access, so entries that keep being read
    never expire. There is no size bound and no in-process locking; the
    file system arbitrates concurrent callers.
    """

    def __init__(
        self,
        storage_path: Path,
        ttl: timedelta,
        filesystem: FileSystemService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the cache and create its storage root.

        Args:
            storage_path: Root directory for all namespaces
            ttl: Time since last access after which an entry expires
            filesystem: File system primitives (a default instance when omitted)
            clock: Returns the current timezone-aware time
        """
        if ttl <= timedelta(0):
            raise ValueError("Cache TTL must be positive")

        self.storage_path = storage_path
        self.ttl = ttl
        self._fs = filesystem or FileSystemService()
        self._clock = clock

        try:
            self._fs.ensure_directory(storage_path)
        except OSError as e:
            raise StorageError(
                "Cannot create cache storage directory",
                original_error=e,
                path=str(storage_path),
                operation="init",
            ) from e

        log.info("Artifact cache initialized", storage_path=str(storage_path), ttl_seconds=ttl.total_seconds())

    async def get(self, namespace: str, filename: str) -> bytes | None:
        """Return the cached blob and refresh its access time, or None on a miss.

        Raises:
            ValidationError: If namespace or filename is not a plain file name
            StorageError: On I/O failures other than a missing file
        """
        blob_path, meta_path = self._entry_paths(namespace, filename)
        return await asyncio.to_thread(self._get_sync, blob_path, meta_path)

    async def put(self, namespace: str, filename: str, data: bytes) -> None:
        """Store a blob, replacing any existing entry.

        Raises:
            ValidationError: If namespace or filename is not a plain file name
            StorageError: If either file cannot be written
        """
        blob_path, meta_path = self._entry_paths(namespace, filename)
        await asyncio.to_thread(self._put_sync, blob_path, meta_path, data)

    async def delete(self, namespace: str, filename: str) -> bool:
        """Remove an entry. Returns True if anything was deleted."""
        blob_path, meta_path = self._entry_paths(namespace, filename)
        return await asyncio.to_thread(self._delete_sync, blob_path, meta_path)

    async def contains(self, namespace: str, filename: str) -> bool:
        """Check that both halves of an entry exist, without touching its access time."""
        blob_path, meta_path = self._entry_paths(namespace, filename)
        return await asyncio.to_thread(lambda: blob_path.is_file() and meta_path.is_file())

    async def sweep(self) -> SweepResult:
        """Delete every expired entry and every empty namespace.

        Failures on individual entries are logged and counted, not raised.

        Raises:
            StorageError: If the storage root itself cannot be listed
        """
        return await asyncio.to_thread(self._sweep_sync)

    def _entry_paths(self, namespace: str, filename: str) -> tuple[Path, Path]:
        self._validate_component(namespace, "namespace")
        self._validate_component(filename, "filename")
        if filename.endswith(META_SUFFIX):
            raise ValidationError(
                "Filename uses the reserved metadata suffix",
                field="filename",
                value=filename,
                constraints=[f"must not end with {META_SUFFIX}"],
            )

        blob_path = self.storage_path / namespace / filename
        meta_path = blob_path.with_name(blob_path.stem + META_SUFFIX)
        return blob_path, meta_path

    @staticmethod
    def _validate_component(value: str, field: str) -> None:
        if not value or value in {".", ".."} or any(c in value for c in ("/", "\\", "\x00")):
            raise ValidationError(
                f"Invalid cache {field}",
                field=field,
                value=value,
                constraints=["a single non-empty path component"],
            )

    def _get_sync(self, blob_path: Path, meta_path: Path) -> bytes | None:
        try:
            raw_meta = self._fs.read_bytes(meta_path)
        except FileNotFoundError:
            if self._remove_quietly(blob_path):
                log.info("Removed blob without metadata", path=str(blob_path))
            return None
        except OSError as e:
            raise StorageError("Cannot read cache metadata", original_error=e, path=str(meta_path), operation="get") from e

        try:
            entry = CacheEntry.from_bytes(raw_meta)
        except ValueError as e:
            log.warning("Discarding entry with unreadable metadata", path=str(meta_path), error=str(e))
            self._remove_quietly(blob_path)
            self._remove_quietly(meta_path)
            return None

        now = self._clock()
        if now - entry.accessed >= self.ttl:
            log.debug("Cache entry expired", path=str(blob_path), accessed=entry.accessed.isoformat())
            self._remove_quietly(blob_path)
            self._remove_quietly(meta_path)
            return None

        try:
            data = self._fs.read_bytes(blob_path)
        except FileNotFoundError:
            if self._remove_quietly(meta_path):
                log.info("Removed metadata without blob", path=str(meta_path))
            return None
        except OSError as e:
            raise StorageError("Cannot read cached blob", original_error=e, path=str(blob_path), operation="get") from e

        try:
            self._fs.write_bytes_atomic(meta_path, CacheEntry(accessed=now).to_bytes())
        except OSError as e:
            raise StorageError("Cannot refresh cache metadata", original_error=e, path=str(meta_path), operation="get") from e

        log.debug("Cache hit", path=str(blob_path), size=len(data))
        return data

    def _put_sync(self, blob_path: Path, meta_path: Path, data: bytes) -> None:
        try:
            self._fs.write_bytes_atomic(blob_path, data)
            self._fs.write_bytes_atomic(meta_path, CacheEntry(accessed=self._clock()).to_bytes())
        except OSError as e:
            raise StorageError("Cannot write cache entry", original_error=e, path=str(blob_path), operation="put") from e

        log.info("Cache entry stored", path=str(blob_path), size=len(data))

    def _delete_sync(self, blob_path: Path, meta_path: Path) -> bool:
        try:
            removed_blob = self._fs.remove_file(blob_path)
            removed_meta = self._fs.remove_file(meta_path)
        except OSError as e:
            raise StorageError("Cannot delete cache entry", original_error=e, path=str(blob_path), operation="delete") from e
        return removed_blob or removed_meta

    def _remove_quietly(self, path: Path) -> bool:
        """Best-effort removal used while cleaning up inconsistent entries."""
        try:
            return self._fs.remove_file(path)
        except OSError as e:
            log.warning("Failed to remove cache file", path=str(path), error=str(e))
            return False

    def _sweep_sync(self) -> SweepResult:
        result = SweepResult()
        now = self._clock()

        try:
            namespaces = self._fs.list_directories(self.storage_path)
        except OSError as e:
            raise StorageError("Cannot list cache storage", original_error=e, path=str(self.storage_path), operation="sweep") from e

        for namespace_dir in namespaces:
            try:
                self._sweep_namespace(namespace_dir, now, result)
            except OSError as e:
                result.failures += 1
                log.warning("Skipping unreadable namespace", path=str(namespace_dir), error=str(e))
                continue

            if self._fs.remove_directory_if_empty(namespace_dir):
                result.namespaces_removed += 1

        log.info("Cache sweep completed", **asdict(result))
        return result

    def _sweep_namespace(self, namespace_dir: Path, now: datetime, result: SweepResult) -> None:
        blobs: dict[str, Path] = {}
        metas: dict[str, Path] = {}
        for path in self._fs.list_files(namespace_dir):
            if path.name.endswith(META_SUFFIX):
                metas[path.name[: -len(META_SUFFIX)]] = path
            else:
                blobs[path.stem] = path

        for stem, meta_path in metas.items():
            blob_path = blobs.pop(stem, None)
            if blob_path is None:
                self._sweep_orphan(meta_path, now, result)
                continue

            try:
                entry = CacheEntry.from_bytes(self._fs.read_bytes(meta_path))
            except FileNotFoundError:
                continue
            except ValueError:
                log.warning("Removing entry with unreadable metadata", path=str(meta_path))
                expired = True
            except OSError as e:
                result.failures += 1
                log.warning("Failed to read cache metadata", path=str(meta_path), error=str(e))
                continue
            else:
                expired = now - entry.accessed > self.ttl

            if not expired:
                continue

            try:
                self._fs.remove_file(blob_path)
                self._fs.remove_file(meta_path)
            except OSError as e:
                result.failures += 1
                log.warning("Failed to remove expired entry", path=str(blob_path), error=str(e))
                continue

            result.entries_removed += 1
            log.debug("Expired entry removed", path=str(blob_path))

        for blob_path in blobs.values():
            self._sweep_orphan(blob_path, now, result)

    def _sweep_orphan(self, path: Path, now: datetime, result: SweepResult) -> None:
        """Remove half of an entry once its file is older than the TTL.

        Younger halves are left alone: they may belong to a put in progress.
        """
        try:
            age = now.timestamp() - self._fs.get_mtime(path)
            if age <= self.ttl.total_seconds():
                return
            self._fs.remove_file(path)
        except FileNotFoundError:
            return
        except OSError as e:
            result.failures += 1
            log.warning("Failed to remove orphaned cache file", path=str(path), error=str(e))
            return

        result.orphans_removed += 1
        log.info("Orphaned cache file removed", path=str(path))
