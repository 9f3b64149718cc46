"""Artifact lifecycle: tracked expiry, download hand-off and startup sweep"""

import asyncio
import itertools
import os
import shutil
import threading
import time
from pathlib import Path
from typing import Dict, Iterable, Optional

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import ArtifactNotFoundError, DownloadExpiredError, LifecycleError
from ..core.logger import get_logger
from ..core.validators import is_safe_artifact_name
from .models import ArtifactRecord, ArtifactState, ArtifactStats

logger = get_logger(__name__)


class ArtifactLifecycleManager:
    """
    Owns the registry of output files awaiting download

    Each tracked file gets a timer that deletes it once the expiry window
    passes. A filename that is not tracked counts as expired, so the
    download path never serves a file whose record was lost.

    All registry mutations happen under one lock; timers fire on the
    event loop that tracked the file.
    """

    def __init__(self, app_settings: Optional[Settings] = None):
        self.settings = app_settings or default_settings
        self.output_dir = Path(self.settings.output_dir)
        self.upload_dir = Path(self.settings.upload_dir)
        self.expiry_seconds = float(self.settings.artifact_expiry_seconds)
        self._records: Dict[str, ArtifactRecord] = {}
        self._lock = threading.RLock()
        self._tokens = itertools.count(1)

    def resolve(self, filename: str) -> Path:
        """
        Path of an artifact inside the output directory

        Raises:
            ArtifactNotFoundError: If the name could escape the output directory
        """
        if not is_safe_artifact_name(filename):
            raise ArtifactNotFoundError(f"Invalid artifact name: {filename!r}")
        return self.output_dir / filename

    def track(self, filename: str) -> None:
        """
        Start (or restart) the expiry window of an artifact

        Tracking a name again replaces its record and timer.

        Args:
            filename: Artifact name relative to the output directory
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            previous = self._records.pop(filename, None)
            if previous is not None:
                previous.timer.cancel()
                logger.debug(f"Re-tracking {filename}, previous timer cancelled")

            token = next(self._tokens)
            timer = loop.call_later(self.expiry_seconds, self._expire, filename, token)
            self._records[filename] = ArtifactRecord(
                filename=filename,
                created_at=time.time(),
                started_monotonic=time.monotonic(),
                timer=timer,
                token=token,
            )
        logger.info(f"Tracking {filename} for {self.expiry_seconds:g}s")

    def is_expired(self, filename: str) -> bool:
        """Untracked names are always expired"""
        with self._lock:
            record = self._records.get(filename)
            if record is None:
                return True
            return record.age_seconds(time.monotonic()) >= self.expiry_seconds

    def state(self, filename: str) -> ArtifactState:
        with self._lock:
            if filename not in self._records:
                return ArtifactState.UNTRACKED
            if self.is_expired(filename):
                return ArtifactState.EXPIRED
            return ArtifactState.TRACKED

    def stop_tracking(self, filename: str) -> bool:
        """
        Cancel the timer and forget the record without touching the file

        Returns:
            True if the name was tracked
        """
        with self._lock:
            record = self._records.pop(filename, None)
            if record is None:
                return False
            record.timer.cancel()
        logger.debug(f"Stopped tracking {filename}")
        return True

    def open_for_download(self, filename: str):
        """
        Open a tracked, unexpired artifact for streaming

        The returned handle stays readable even if the expiry timer removes
        the directory entry while the stream is in progress.

        Returns:
            Tuple of (path, open binary file, size in bytes)

        Raises:
            DownloadExpiredError: If the artifact is expired or untracked
            ArtifactNotFoundError: If the artifact is missing on disk
        """
        with self._lock:
            if self.is_expired(filename):
                raise DownloadExpiredError(filename)
            path = self.resolve(filename)
            try:
                handle = open(path, "rb")
            except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
                raise ArtifactNotFoundError(filename) from e
        try:
            size = os.fstat(handle.fileno()).st_size
        except OSError:
            handle.close()
            raise
        return path, handle, size

    async def complete_download(self, filename: str) -> None:
        """Download finished: forget the record and delete the file"""
        self.stop_tracking(filename)
        self.delete_artifact(filename)
        logger.info(f"Artifact {filename} downloaded and removed")

    def _expire(self, filename: str, token: int) -> None:
        with self._lock:
            record = self._records.get(filename)
            if record is None or record.token != token:
                return
            self.delete_artifact(filename)
            self._records.pop(filename, None)
        logger.info(f"Artifact {filename} expired")

    def delete_artifact(self, filename: str) -> bool:
        """Delete an artifact file or directory; failures are logged, not raised"""
        try:
            path = self.resolve(filename)
            _remove(path)
            return True
        except FileNotFoundError:
            logger.debug(f"Artifact already gone: {filename}")
        except (OSError, LifecycleError, ArtifactNotFoundError) as e:
            logger.warning(f"Failed to delete artifact {filename}: {e}")
        return False

    def clear_on_startup(self) -> int:
        """
        Empty the upload and output directories before serving traffic

        Returns:
            Number of entries removed
        """
        removed = 0
        for directory in (self.upload_dir, self.output_dir):
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created directory {directory}")
                continue
            removed += self._empty_directory(directory.iterdir())
        logger.info(f"Startup sweep removed {removed} leftover entries")
        return removed

    def _empty_directory(self, entries: Iterable[Path]) -> int:
        removed = 0
        for entry in entries:
            try:
                _remove(entry)
                removed += 1
            except OSError as e:
                logger.warning(f"Failed to remove {entry} during startup sweep: {e}")
        return removed

    def shutdown(self) -> None:
        """Cancel every timer and clear the registry; files stay for the next sweep"""
        with self._lock:
            for record in self._records.values():
                record.timer.cancel()
            count = len(self._records)
            self._records.clear()
        logger.info(f"Artifact manager stopped, {count} records dropped")

    @property
    def tracked_count(self) -> int:
        with self._lock:
            return len(self._records)

    def get_stats(self) -> ArtifactStats:
        """Tracked count plus the oldest and newest tracked names"""
        with self._lock:
            records = sorted(self._records.values(), key=lambda r: r.started_monotonic)
        return ArtifactStats(
            tracked_files=len(records),
            oldest_file=records[0].filename if records else None,
            newest_file=records[-1].filename if records else None,
        )


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()
