from __future__ import annotations

import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from prayer_schedule.schedule.errors import CacheAbsentError
from prayer_schedule.schedule.models import CacheRecord

logger = logging.getLogger(__name__)


def atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class CacheStore:
    """
    The last known-good schedule payload on disk.

    Bytes are stored verbatim and returned verbatim; validation is the codec's job.
    Writers and clearers share one lock, and every write lands through a rename so
    readers see either the old file, the new file, or no file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> bytes:
        try:
            return self._path.read_bytes()
        except FileNotFoundError as e:
            raise CacheAbsentError(f"No cached schedule at {self._path}") from e

    def read_record(self) -> CacheRecord:
        data = self.read()
        try:
            mtime = self._path.stat().st_mtime
        except FileNotFoundError:
            mtime = datetime.now(timezone.utc).timestamp()
        return CacheRecord(
            payload=data,
            retrieved_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
            provenance="remote",
        )

    def write(self, data: bytes) -> None:
        with self._lock:
            atomic_write_bytes(self._path, data)
        logger.info("Schedule cache written. path=%s size=%d", self._path, len(data))

    def clear(self, *, expected: Optional[bytes] = None) -> bool:
        """
        Remove the cached payload. Safe to call when nothing is cached.

        With `expected`, the file is removed only while it still holds exactly those
        bytes, so a reader discarding a corrupt payload cannot delete a good one that
        a concurrent writer has just put in place.
        """
        with self._lock:
            try:
                if expected is not None and self._path.read_bytes() != expected:
                    logger.info("Schedule cache replaced before clear, keeping it. path=%s", self._path)
                    return False
                self._path.unlink()
            except FileNotFoundError:
                return False
        logger.info("Schedule cache cleared. path=%s", self._path)
        return True
