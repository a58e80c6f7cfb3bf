from __future__ import annotations

import asyncio
from datetime import date, time, timedelta
from typing import Iterable, Optional, Sequence, Union

from prayer_schedule.schedule import codec
from prayer_schedule.schedule.models import DailyEntry, Location, PrayerWindow, ScheduleDataset


def _window(hour: int, minute: int, gap: int) -> PrayerWindow:
    start = time(hour, minute)
    end_minutes = hour * 60 + minute + gap
    return PrayerWindow(adhan=start, jamaah=time(end_minutes // 60, end_minutes % 60))


def make_entry(day: date, *, jummah: Optional[time] = None) -> DailyEntry:
    return DailyEntry(
        date=day,
        fajr=_window(6, 5, 20),
        sunrise=time(7, 31),
        dhuhr=_window(12, 10, 80),
        asr=_window(14, 20, 15),
        maghrib=_window(16, 25, 5),
        isha=_window(18, 5, 15),
        jummah=jummah,
    )


def make_dataset(days: Iterable[date], *, mosque: str = "Central Mosque Rochdale") -> ScheduleDataset:
    entries = []
    for day in days:
        entries.append(make_entry(day, jummah=time(13, 30) if day.weekday() == 4 else None))
    return ScheduleDataset(
        year=entries[0].date.year,
        mosque=mosque,
        location=Location(latitude=53.6097, longitude=-2.1561),
        entries=tuple(entries),
    )


def make_payload(*days: date, mosque: str = "Central Mosque Rochdale") -> bytes:
    return codec.encode(make_dataset(days, mosque=mosque))


def week_of(start: date) -> list[date]:
    return [start + timedelta(days=i) for i in range(7)]


Response = Union[bytes, BaseException]


class FakeFetcher:
    """Stands in for RemoteFetcher. Replays responses in order, repeating the last one."""

    def __init__(self, responses: Sequence[Response], *, delay: float = 0.0) -> None:
        self._responses = list(responses)
        self._delay = delay
        self.calls = 0
        self.endpoints: list[str] = []

    async def fetch(self, endpoint: str, timeout: float) -> bytes:
        index = min(self.calls, len(self._responses) - 1)
        self.calls += 1
        self.endpoints.append(endpoint)
        if self._delay:
            await asyncio.sleep(self._delay)
        response = self._responses[index]
        if isinstance(response, BaseException):
            raise response
        return response
