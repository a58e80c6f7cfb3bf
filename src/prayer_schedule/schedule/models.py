from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Literal, Optional

PRAYER_NAMES = ("fajr", "dhuhr", "asr", "maghrib", "isha")

Source = Literal["remote", "cache", "bundled"]
Provenance = Literal["remote", "bundled"]


class Strategy(str, Enum):
    PREFER_REMOTE = "prefer_remote"
    PREFER_CACHE = "prefer_cache"


@dataclass(frozen=True, slots=True)
class PrayerWindow:
    adhan: time
    jamaah: time


@dataclass(frozen=True, slots=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class DailyEntry:
    date: date
    fajr: PrayerWindow
    sunrise: time
    dhuhr: PrayerWindow
    asr: PrayerWindow
    maghrib: PrayerWindow
    isha: PrayerWindow
    jummah: Optional[time] = None

    def windows(self) -> list[tuple[str, PrayerWindow]]:
        return [(name, getattr(self, name)) for name in PRAYER_NAMES]


@dataclass(frozen=True, slots=True)
class ScheduleDataset:
    year: int
    mosque: str
    location: Location
    entries: tuple[DailyEntry, ...]

    def entry_for(self, day: date) -> Optional[DailyEntry]:
        """Return the entry for a calendar day, or None when the dataset does not cover it."""
        lo, hi = 0, len(self.entries)
        while lo < hi:
            mid = (lo + hi) // 2
            if self.entries[mid].date < day:
                lo = mid + 1
            else:
                hi = mid
        if lo < len(self.entries) and self.entries[lo].date == day:
            return self.entries[lo]
        return None

    def prayers(self, day: date) -> list[tuple[str, PrayerWindow]]:
        entry = self.entry_for(day)
        if entry is None:
            return []
        return entry.windows()


@dataclass(frozen=True, slots=True)
class CacheRecord:
    payload: bytes
    retrieved_at: datetime
    provenance: Provenance = "remote"


@dataclass(frozen=True, slots=True)
class ResolutionResult:
    dataset: ScheduleDataset
    source: Source
    warning: Optional[str] = None
