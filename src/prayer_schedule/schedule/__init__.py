"""Schedule codec, tiers and the resolver that composes them."""

from __future__ import annotations

from typing import TYPE_CHECKING

from prayer_schedule.schedule.errors import BundledPayloadCorruptError, ScheduleError
from prayer_schedule.schedule.models import (
    CacheRecord,
    DailyEntry,
    Location,
    PrayerWindow,
    ResolutionResult,
    ScheduleDataset,
    Strategy,
)

if TYPE_CHECKING:
    from prayer_schedule.schedule.resolver import ScheduleResolver

__all__ = [
    "BundledPayloadCorruptError",
    "CacheRecord",
    "DailyEntry",
    "Location",
    "PrayerWindow",
    "ResolutionResult",
    "ScheduleDataset",
    "ScheduleError",
    "ScheduleResolver",
    "Strategy",
]


def __getattr__(name: str):
    if name == "ScheduleResolver":
        from prayer_schedule.schedule.resolver import ScheduleResolver as _ScheduleResolver

        return _ScheduleResolver
    raise AttributeError(name)
