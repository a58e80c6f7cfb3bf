from __future__ import annotations

import json
import math
from datetime import date, time
from typing import Any

from prayer_schedule.schedule.errors import MalformedPayloadError, SchemaViolationError
from prayer_schedule.schedule.models import (
    PRAYER_NAMES,
    DailyEntry,
    Location,
    PrayerWindow,
    ScheduleDataset,
)


def format_hhmm(value: time) -> str:
    if value.second or value.microsecond or value.tzinfo is not None:
        raise ValueError(f"Schedule times must be whole minutes without a timezone, got: {value.isoformat()}")
    return f"{value.hour:02d}:{value.minute:02d}"


def _parse_hhmm(value: Any, where: str) -> time:
    if not isinstance(value, str):
        raise SchemaViolationError(f"{where}: expected HH:MM string, got {type(value).__name__}")
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isascii() and p.isdigit() and len(p) == 2 for p in parts):
        raise SchemaViolationError(f"{where}: invalid time {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if hour > 23 or minute > 59:
        raise SchemaViolationError(f"{where}: time out of range {value!r}")
    return time(hour, minute)


def _parse_date(value: Any, where: str) -> date:
    if not isinstance(value, str) or len(value) != 10:
        raise SchemaViolationError(f"{where}: expected YYYY-MM-DD, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise SchemaViolationError(f"{where}: invalid date {value!r}") from e


def _require(payload: dict, key: str, where: str) -> Any:
    if key not in payload or payload[key] is None:
        raise SchemaViolationError(f"{where}: missing field {key!r}")
    return payload[key]


def _require_mapping(value: Any, where: str) -> dict:
    if not isinstance(value, dict):
        raise SchemaViolationError(f"{where}: expected object, got {type(value).__name__}")
    return value


def _decode_window(payload: Any, where: str) -> PrayerWindow:
    payload = _require_mapping(payload, where)
    adhan = _parse_hhmm(_require(payload, "adhan", where), f"{where}.adhan")
    jamaah = _parse_hhmm(_require(payload, "jamaah", where), f"{where}.jamaah")
    if adhan > jamaah:
        raise SchemaViolationError(
            f"{where}: adhan {format_hhmm(adhan)} is after jamaah {format_hhmm(jamaah)}"
        )
    return PrayerWindow(adhan=adhan, jamaah=jamaah)


def _decode_entry(payload: Any, index: int) -> DailyEntry:
    where = f"prayerTimes[{index}]"
    payload = _require_mapping(payload, where)
    day = _parse_date(_require(payload, "date", where), f"{where}.date")
    where = f"prayerTimes[{day.isoformat()}]"
    windows = {name: _decode_window(_require(payload, name, where), f"{where}.{name}") for name in PRAYER_NAMES}
    sunrise = _parse_hhmm(_require(payload, "sunrise", where), f"{where}.sunrise")
    _check_day_order(windows, sunrise, where)
    jummah_raw = payload.get("jummah")
    return DailyEntry(
        date=day,
        sunrise=sunrise,
        jummah=_parse_hhmm(jummah_raw, f"{where}.jummah") if jummah_raw is not None else None,
        **windows,
    )


def _check_day_order(windows: dict[str, PrayerWindow], sunrise: time, where: str) -> None:
    # Adhans run fajr, sunrise, dhuhr, asr, maghrib, isha within one day.
    sequence = [("fajr", windows["fajr"].adhan), ("sunrise", sunrise)]
    sequence.extend((name, windows[name].adhan) for name in PRAYER_NAMES[1:])
    for (prev_name, prev), (name, cur) in zip(sequence, sequence[1:]):
        if cur <= prev:
            raise SchemaViolationError(
                f"{where}: {name} {format_hhmm(cur)} is not after {prev_name} {format_hhmm(prev)}"
            )


def _decode_location(payload: Any) -> Location:
    payload = _require_mapping(payload, "location")
    values = []
    for key in ("latitude", "longitude"):
        value = _require(payload, key, "location")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise SchemaViolationError(f"location.{key}: expected number, got {type(value).__name__}")
        if not math.isfinite(value):
            raise SchemaViolationError(f"location.{key}: must be finite, got {value!r}")
        values.append(float(value))
    return Location(latitude=values[0], longitude=values[1])


def decode_dataset(payload: Any) -> ScheduleDataset:
    """Build a dataset from already-parsed JSON, enforcing ordering and window invariants."""
    payload = _require_mapping(payload, "document")
    year = _require(payload, "year", "document")
    if isinstance(year, bool) or not isinstance(year, int):
        raise SchemaViolationError(f"year: expected integer, got {type(year).__name__}")
    mosque = _require(payload, "mosque", "document")
    if not isinstance(mosque, str):
        raise SchemaViolationError(f"mosque: expected string, got {type(mosque).__name__}")
    raw_entries = _require(payload, "prayerTimes", "document")
    if not isinstance(raw_entries, list):
        raise SchemaViolationError(f"prayerTimes: expected array, got {type(raw_entries).__name__}")
    if not raw_entries:
        raise SchemaViolationError("prayerTimes: must contain at least one day")

    entries = [_decode_entry(item, i) for i, item in enumerate(raw_entries)]
    for prev, cur in zip(entries, entries[1:]):
        if cur.date == prev.date:
            raise SchemaViolationError(f"prayerTimes: duplicate date {cur.date.isoformat()}")
        if cur.date < prev.date:
            raise SchemaViolationError(
                f"prayerTimes: dates out of order {prev.date.isoformat()} > {cur.date.isoformat()}"
            )

    return ScheduleDataset(
        year=year,
        mosque=mosque,
        location=_decode_location(_require(payload, "location", "document")),
        entries=tuple(entries),
    )


def decode(data: bytes) -> ScheduleDataset:
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayloadError(f"Schedule payload is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise MalformedPayloadError(f"Top-level JSON must be an object, got: {type(payload).__name__}")
    return decode_dataset(payload)


def _encode_window(window: PrayerWindow) -> dict:
    return {"adhan": format_hhmm(window.adhan), "jamaah": format_hhmm(window.jamaah)}


def _encode_entry(entry: DailyEntry) -> dict:
    payload: dict[str, Any] = {"date": entry.date.isoformat()}
    payload["fajr"] = _encode_window(entry.fajr)
    payload["sunrise"] = format_hhmm(entry.sunrise)
    for name in PRAYER_NAMES[1:]:
        payload[name] = _encode_window(getattr(entry, name))
    if entry.jummah is not None:
        payload["jummah"] = format_hhmm(entry.jummah)
    return payload


def encode_dataset(dataset: ScheduleDataset) -> dict:
    return {
        "year": dataset.year,
        "mosque": dataset.mosque,
        "location": {
            "latitude": dataset.location.latitude,
            "longitude": dataset.location.longitude,
        },
        "prayerTimes": [_encode_entry(entry) for entry in dataset.entries],
    }


def encode(dataset: ScheduleDataset) -> bytes:
    text = json.dumps(encode_dataset(dataset), indent=2, ensure_ascii=False)
    return (text + "\n").encode("utf-8")


__all__ = ["decode", "decode_dataset", "encode", "encode_dataset", "format_hhmm"]
