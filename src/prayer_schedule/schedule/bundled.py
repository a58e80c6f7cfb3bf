from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from prayer_schedule.schedule import codec
from prayer_schedule.schedule.errors import BundledPayloadCorruptError, PayloadError
from prayer_schedule.schedule.models import ScheduleDataset

logger = logging.getLogger(__name__)

BUNDLED_RESOURCE = Path(__file__).resolve().parent.parent / "data" / "prayer_times_2025.json"


def read_bundled_bytes(path: Optional[str | Path] = None) -> bytes:
    return Path(path or BUNDLED_RESOURCE).read_bytes()


class BundledScheduleProvider:
    def __init__(self, path: Optional[str | Path] = None) -> None:
        self._path = path
        self._dataset: Optional[ScheduleDataset] = None
        self._lock = threading.Lock()

    def load(self) -> ScheduleDataset:
        """Decode the schedule shipped with the package. Raises BundledPayloadCorruptError on any failure."""
        with self._lock:
            if self._dataset is not None:
                return self._dataset
            source = self._path or BUNDLED_RESOURCE
            try:
                data = read_bundled_bytes(self._path)
            except OSError as e:
                logger.critical("Bundled schedule payload is missing. source=%s error=%s", source, e)
                raise BundledPayloadCorruptError(f"Bundled schedule payload could not be read: {source}") from e
            try:
                self._dataset = codec.decode(data)
            except PayloadError as e:
                logger.critical("Bundled schedule payload failed validation. source=%s error=%s", source, e)
                raise BundledPayloadCorruptError(f"Bundled schedule payload is invalid: {e}") from e
            logger.debug("Bundled schedule loaded. source=%s days=%d", source, len(self._dataset.entries))
            return self._dataset
