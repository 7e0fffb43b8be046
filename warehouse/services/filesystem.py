"""File system primitives backing the artifact cache.

All methods are synchronous; async callers run them in worker threads.
"""

import uuid
from pathlib import Path

import structlog

log = structlog.stdlib.get_logger()


class FileSystemService:
    """Low-level file operations with logging."""

    def ensure_directory(self, path: Path) -> None:
        """Ensure that a directory exists, creating it if necessary.

        Raises:
            OSError: If the path exists as a file or cannot be created
        """
        if path.exists():
            if not path.is_dir():
                log.error("Path exists but is not a directory", path=str(path))
                raise NotADirectoryError(f"Path exists but is not a directory: {path}")
            return

        path.mkdir(parents=True, exist_ok=True)
        log.debug("Directory created", path=str(path))

    def read_bytes(self, path: Path) -> bytes:
        """Read a whole file.

        Raises:
            FileNotFoundError: If the file does not exist
            OSError: If the file cannot be read
        """
        return path.read_bytes()

    def write_bytes_atomic(self, path: Path, data: bytes) -> None:
        """Write data to a temporary sibling, then rename it over the target.

        Readers see either the old content or the new one, never a partial file.

        Raises:
            OSError: If the file cannot be written
        """
        self.ensure_directory(path.parent)
        temp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")

        try:
            with open(temp_path, "wb") as f:
                f.write(data)
            temp_path.replace(path)
        except OSError as e:
            log.error("Failed to write file", path=str(path), error=str(e))
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                log.warning("Failed to clean up temporary file", path=str(temp_path))
            raise

        log.debug("File written", path=str(path), size=len(data))

    def remove_file(self, path: Path) -> bool:
        """Delete a file if it exists.

        Returns:
            True if a file was deleted, False if it was already gone

        Raises:
            OSError: If the file exists but cannot be deleted
        """
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        log.debug("File deleted", path=str(path))
        return True

    def get_mtime(self, path: Path) -> float:
        """Modification time of a file as a POSIX timestamp."""
        return path.stat().st_mtime

    def list_files(self, directory: Path) -> list[Path]:
        """List regular files directly inside a directory.

        Returns an empty list when the directory does not exist.
        """
        if not directory.is_dir():
            return []
        return [p for p in directory.iterdir() if p.is_file()]

    def list_directories(self, directory: Path) -> list[Path]:
        """List subdirectories directly inside a directory."""
        if not directory.is_dir():
            return []
        return [p for p in directory.iterdir() if p.is_dir()]

    def remove_directory_if_empty(self, directory: Path) -> bool:
        """Remove a directory when it has no entries left.

        Returns:
            True if the directory was removed
        """
        try:
            next(directory.iterdir())
            return False
        except StopIteration:
            pass
        except FileNotFoundError:
            return False

        try:
            directory.rmdir()
        except FileNotFoundError:
            return False
        except OSError as e:
            # A concurrent put may have repopulated it
            log.debug("Directory not removed", path=str(directory), error=str(e))
            return False

        log.info("Empty directory removed", path=str(directory))
        return True
