"""Time slot primitives.

Slots are half-open ``[start, end)`` intervals stored as ``{"start": "HH:MM", "end": "HH:MM"}``
dicts. Comparisons run on the raw strings, which orders correctly only because
the boundary models below force zero-padded 24-hour values.
"""

import re
from datetime import date as date_type
from typing import Iterable, Mapping

from pydantic import BaseModel, field_validator, model_validator

TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')

Slot = Mapping[str, str]


class TimeSlot(BaseModel):
    start: str
    end: str

    class Config:
        extra = 'forbid'

    @field_validator('start', 'end')
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        normalized = value.strip()
        if not TIME_PATTERN.match(normalized):
            raise ValueError('Times must use the 24-hour HH:MM format.')
        return normalized

    @model_validator(mode='after')
    def validate_order(self) -> 'TimeSlot':
        if self.start >= self.end:
            raise ValueError('Time slot start must be before its end.')
        return self


class DateEntry(BaseModel):
    date: str
    time_slots: list[TimeSlot] = []

    class Config:
        extra = 'forbid'

    @field_validator('date')
    @classmethod
    def validate_date(cls, value: str) -> str:
        return validate_date_string(value)


def validate_date_string(value: str) -> str:
    normalized = value.strip()
    try:
        parsed = date_type.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError('Dates must use the YYYY-MM-DD format.') from exc
    if parsed.isoformat() != normalized:
        raise ValueError('Dates must use the YYYY-MM-DD format.')
    return normalized


def overlaps(a: Slot, b: Slot) -> bool:
    return a['start'] < b['end'] and a['end'] > b['start']


def contains(outer: Slot, inner: Slot) -> bool:
    return inner['start'] >= outer['start'] and inner['end'] <= outer['end']


def equals(a: Slot, b: Slot) -> bool:
    return a['start'] == b['start'] and a['end'] == b['end']


def as_slot(slot: Slot) -> dict[str, str]:
    return {'start': slot['start'], 'end': slot['end']}


def is_contained_in_any(slot: Slot, candidates: Iterable[Slot]) -> bool:
    return any(contains(candidate, slot) for candidate in candidates)


def find_equal(slot: Slot, candidates: Iterable[Slot]) -> dict[str, str] | None:
    for candidate in candidates:
        if equals(candidate, slot):
            return as_slot(candidate)
    return None


def overlapping_pairs(existing: Iterable[Slot], new_slots: Iterable[Slot]) -> list[dict]:
    """Return every ``(existing, new)`` pair that overlaps, in existing-slot order."""
    new_slots = list(new_slots)
    return [
        {'existing': as_slot(current), 'requested': as_slot(candidate)}
        for current in existing
        for candidate in new_slots
        if overlaps(current, candidate)
    ]


def overlapping_within(slots: Iterable[Slot]) -> list[dict]:
    """Return overlapping pairs inside a single batch."""
    slots = list(slots)
    return [
        {'existing': as_slot(slots[i]), 'requested': as_slot(slots[j])}
        for i in range(len(slots))
        for j in range(i + 1, len(slots))
        if overlaps(slots[i], slots[j])
    ]


def find_date_entry(entries: Iterable[dict], date: str) -> dict | None:
    for entry in entries:
        if entry['date'] == date:
            return entry
    return None


def remove_date_entry(entries: Iterable[dict], date: str) -> list[dict]:
    return [entry for entry in entries if entry['date'] != date]


def copy_entries(entries: Iterable[dict] | None) -> list[dict]:
    """Deep-copy stored entries so edits never alias the loaded JSON value."""
    return [
        {'date': entry['date'], 'time_slots': [as_slot(slot) for slot in entry.get('time_slots', [])]}
        for entry in entries or []
    ]
