"""Weekly provider availability.

Availability is stored as a mapping of lowercase weekday name to a list of
``"HH:MM - HH:MM"`` wall-clock ranges, e.g.::

    {'monday': ['09:00 - 12:00', '13:00 - 17:00'], 'tuesday': []}

Ranges within a day must have ``end > start``, be listed in chronological
order and must not overlap. Writes are rejected with ``ValidationError``;
reading stored data that breaks those rules raises ``ConfigurationError``.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Mapping

from clinic_scheduling.core.errors import ConfigurationError, ValidationError
from clinic_scheduling.scheduling.intervals import contains, overlaps

WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')
TIME_FORMAT = '%H:%M'


@dataclass(frozen=True, order=True)
class TimeRange:
    start: time
    end: time

    @property
    def label(self) -> str:
        return f'{self.start.strftime(TIME_FORMAT)} - {self.end.strftime(TIME_FORMAT)}'

    @property
    def minutes(self) -> int:
        return (self.end.hour * 60 + self.end.minute) - (self.start.hour * 60 + self.start.minute)

    def on(self, day: date) -> tuple[datetime, datetime]:
        return datetime.combine(day, self.start), datetime.combine(day, self.end)


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def _parse_clock(value: str) -> time:
    return datetime.strptime(value.strip(), TIME_FORMAT).time()


def parse_time_range(value: Any) -> TimeRange:
    """Parse ``"09:00 - 17:00"``, ``"09:00-17:00"`` or ``{"start": ..., "end": ...}``."""
    if isinstance(value, TimeRange):
        return value
    if isinstance(value, Mapping):
        start, end = value.get('start'), value.get('end')
    elif isinstance(value, str) and '-' in value:
        start, end = value.split('-', 1)
    else:
        raise ValueError(f'Unrecognised time range {value!r}.')
    if not isinstance(start, str) or not isinstance(end, str):
        raise ValueError(f'Unrecognised time range {value!r}.')
    return TimeRange(_parse_clock(start), _parse_clock(end))


def _day_errors(day_name: str, raw_ranges: Any) -> tuple[list[TimeRange], list[dict[str, str]]]:
    errors: list[dict[str, str]] = []
    ranges: list[TimeRange] = []

    if not isinstance(raw_ranges, (list, tuple)):
        return [], [{'field': f'availability.{day_name}', 'message': 'Expected a list of time ranges.'}]

    for index, raw in enumerate(raw_ranges):
        field = f'availability.{day_name}[{index}]'
        try:
            parsed = parse_time_range(raw)
        except ValueError as exc:
            errors.append({'field': field, 'message': str(exc)})
            continue

        if parsed.end <= parsed.start:
            errors.append({'field': field, 'message': f'Range {parsed.label} must end after it starts.'})
            continue

        if ranges:
            previous = ranges[-1]
            if overlaps(previous.start, previous.end, parsed.start, parsed.end):
                errors.append({'field': field, 'message': f'Range {parsed.label} overlaps {previous.label}.'})
                continue
            if parsed.start < previous.start:
                errors.append({'field': field, 'message': f'Range {parsed.label} is out of chronological order.'})
                continue

        ranges.append(parsed)

    return ranges, errors


def parse_weekly_availability(raw: Mapping[str, Any]) -> dict[str, list[TimeRange]]:
    """Validate a weekly availability mapping for writing."""
    if not isinstance(raw, Mapping):
        raise ValidationError('Availability must be an object keyed by weekday.')

    parsed: dict[str, list[TimeRange]] = {}
    errors: list[dict[str, str]] = []

    for key, raw_ranges in raw.items():
        day_name = str(key).strip().lower()
        if day_name not in WEEKDAYS:
            errors.append({'field': f'availability.{key}', 'message': 'Unknown weekday.'})
            continue
        ranges, day_errors = _day_errors(day_name, raw_ranges)
        errors.extend(day_errors)
        parsed[day_name] = ranges

    if errors:
        raise ValidationError('Invalid availability.', errors=errors)

    return parsed


def serialize_weekly_availability(parsed: Mapping[str, list[TimeRange]]) -> dict[str, list[str]]:
    return {day_name: [item.label for item in parsed.get(day_name, [])] for day_name in WEEKDAYS}


def ranges_for_date(stored: Mapping[str, Any] | None, day: date) -> list[TimeRange]:
    """Availability ranges for ``day``'s weekday from stored provider data."""
    raw_ranges = (stored or {}).get(weekday_name(day)) or []
    ranges, errors = _day_errors(weekday_name(day), raw_ranges)
    if errors:
        problems = '; '.join(f"{error['field']}: {error['message']}" for error in errors)
        raise ConfigurationError(f'Provider availability is misconfigured ({problems}).')
    return ranges


def is_within_availability(stored: Mapping[str, Any] | None, start: datetime, end: datetime) -> bool:
    """True when ``[start, end)`` lies inside one availability range of its day."""
    for item in ranges_for_date(stored, start.date()):
        range_start, range_end = item.on(start.date())
        if contains(range_start, range_end, start, end):
            return True
    return False
