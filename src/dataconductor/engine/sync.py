# src/dataconductor/engine/sync.py
"""Sync step: produces the trigger file a scheduled run starts from.

Collecting data from upstream systems is outside this package; the
built-in LatestFileSync simply picks up whatever a collector last dropped
into the pipeline's downloads directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from dataconductor.core.catalog import ScheduledPipeline
from dataconductor.core.logging import get_logger
from dataconductor.core.storage import LocalStorage, sanitize_name

logger = get_logger(__name__)


class SyncStep(Protocol):
    def __call__(self, pipeline: ScheduledPipeline) -> Path | None:
        """Return the trigger file for a run, or None if there is nothing to process."""
        ...


class LatestFileSync:
    """Newest non-hidden file in <downloads_dir>/<sanitized pipeline name>."""

    def __init__(self, downloads_dir: Path) -> None:
        self._downloads_dir = downloads_dir
        self._storage = LocalStorage(downloads_dir)

    def directory_for(self, pipeline: ScheduledPipeline) -> Path:
        return self._downloads_dir / sanitize_name(pipeline.name)

    def __call__(self, pipeline: ScheduledPipeline) -> Path | None:
        directory = self.directory_for(pipeline)
        files = self._storage.list(directory)
        if not files:
            logger.warning("no_downloaded_file", pipeline_id=pipeline.pipeline_id, directory=str(directory))
            return None
        return files[0]
