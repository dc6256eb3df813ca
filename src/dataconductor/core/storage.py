# src/dataconductor/core/storage.py
"""File storage for run outputs.

Every run gets its own directory (executions/<execution_id>) under the
data dir. Intermediate node outputs are written there as streamed files
and handed to downstream nodes by path, never held in memory whole.
"""

from __future__ import annotations

import re
import shutil
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from dataconductor.core.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def sanitize_name(name: str) -> str:
    """Reduce a display name to lowercase [a-z0-9_] for use in paths."""
    return _UNSAFE_CHARS.sub("_", name).lower()


def file_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 timestamp with ':' and '.' replaced, safe for filenames."""
    moment = moment or datetime.now(UTC)
    return re.sub(r"[:.]", "-", moment.isoformat(timespec="milliseconds"))


class StorageBackend(Protocol):
    """Where execution files are written.

    Implementations:
    - LocalStorage: files under a local data directory
    """

    def run_directory(self, execution_id: str) -> Path:
        """Return (creating if needed) the directory for one execution."""
        ...

    def save(self, directory: Path, name: str, chunks: Iterable[bytes], extension: str) -> Path:
        """Stream chunks to <directory>/<sanitized name>_<timestamp>.<extension>.

        Returns:
            Absolute path of the written file
        """
        ...

    def write(self, directory: Path, filename: str, chunks: Iterable[bytes]) -> Path:
        """Stream chunks to an exact filename inside directory."""
        ...

    def delete(self, path: Path) -> None:
        ...

    def delete_directory(self, path: Path) -> None:
        ...

    def list(self, directory: Path) -> list[Path]:
        ...


class LocalStorage:
    """Storage backend on the local filesystem.

    Example:
        storage = LocalStorage(Path("data"))
        run_dir = storage.run_directory("exec-1")
        path = storage.save(run_dir, "transform-1", [b"[]"], "json")
    """

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def run_directory(self, execution_id: str) -> Path:
        path = (self._data_dir / "executions" / execution_id).resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def save(self, directory: Path, name: str, chunks: Iterable[bytes], extension: str) -> Path:
        filename = f"{sanitize_name(name)}_{file_timestamp()}.{extension}"
        return self.write(directory, filename, chunks)

    def write(self, directory: Path, filename: str, chunks: Iterable[bytes]) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = (directory / filename).resolve()
        try:
            with path.open("wb") as f:
                for chunk in chunks:
                    f.write(chunk)
        except BaseException:
            # Never leave a truncated file behind for downstream nodes
            path.unlink(missing_ok=True)
            raise
        logger.debug("file_written", path=str(path))
        return path

    def delete(self, path: Path) -> None:
        path.unlink(missing_ok=True)

    def delete_directory(self, path: Path) -> None:
        if path.exists():
            shutil.rmtree(path)

    def list(self, directory: Path) -> list[Path]:
        """Files in directory, newest first. Missing directory lists empty."""
        if not directory.is_dir():
            return []
        files = [p for p in directory.iterdir() if p.is_file() and not p.name.startswith(".")]
        return sorted(files, key=lambda p: p.stat().st_mtime, reverse=True)
