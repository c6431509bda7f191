"""Map a wall-clock instant onto the "now" angle of each time scale.

Every scale starts its cycle at the top of the circle (``-90`` degrees in
screen coordinates) and advances clockwise:

* ``day``   -- minutes since midnight over 1440
* ``week``  -- hours since Sunday 00:00 over 168
* ``month`` -- elapsed days over the length of the month
* ``year``  -- day of year over 365 or 366

The functions are pure; the caller reads the clock once per tick and passes
the instant in.
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Tuple

__all__ = [
    "ANGLE_OFFSET_DEG",
    "SCALE_ORDER",
    "TimeAnchor",
    "TimeScale",
    "angle_for",
    "day_of_week",
    "days_in_month",
    "days_in_year",
    "period_of",
    "time_anchor",
    "weeks_spanned",
]

ANGLE_OFFSET_DEG = -90.0  # rotate so 0 points up


class TimeScale(Enum):
    """Zoom level of the timeline, ordered from the finest to the coarsest."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @property
    def rank(self) -> int:
        return SCALE_ORDER.index(self)

    @classmethod
    def parse(cls, value: "TimeScale | str") -> "TimeScale":
        if isinstance(value, TimeScale):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown time scale: {value!r}") from None

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, TimeScale):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, TimeScale):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, TimeScale):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, TimeScale):
            return NotImplemented
        return self.rank >= other.rank


SCALE_ORDER: Tuple[TimeScale, ...] = (TimeScale.DAY, TimeScale.WEEK, TimeScale.MONTH, TimeScale.YEAR)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def days_in_year(year: int) -> int:
    return 366 if calendar.isleap(year) else 365


def day_of_week(instant: datetime) -> int:
    """Return the weekday with Sunday as ``0``."""

    return instant.isoweekday() % 7


def weeks_spanned(year: int, month: int) -> int:
    """Number of Sunday-started calendar rows touched by the month (4 to 6)."""

    first_weekday = (calendar.weekday(year, month, 1) + 1) % 7
    return int(math.ceil((first_weekday + days_in_month(year, month)) / 7.0))


def angle_for(scale: TimeScale, instant: datetime) -> float:
    """Return the "now" angle in degrees for ``instant`` at ``scale``."""

    if scale is TimeScale.DAY:
        minutes = instant.hour * 60 + instant.minute
        return (minutes / 1440.0) * 360.0 + ANGLE_OFFSET_DEG
    if scale is TimeScale.WEEK:
        hours = day_of_week(instant) * 24 + instant.hour
        return (hours / (7.0 * 24.0)) * 360.0 + ANGLE_OFFSET_DEG
    if scale is TimeScale.MONTH:
        length = days_in_month(instant.year, instant.month)
        return ((instant.day - 1) / float(length)) * 360.0 + ANGLE_OFFSET_DEG
    if scale is TimeScale.YEAR:
        day_of_year = instant.timetuple().tm_yday
        return (day_of_year / float(days_in_year(instant.year))) * 360.0 + ANGLE_OFFSET_DEG
    raise ValueError(f"unsupported time scale: {scale!r}")


def period_of(scale: TimeScale, instant: datetime) -> timedelta:
    """Length of the natural cycle of ``scale`` that contains ``instant``."""

    if scale is TimeScale.DAY:
        return timedelta(days=1)
    if scale is TimeScale.WEEK:
        return timedelta(days=7)
    if scale is TimeScale.MONTH:
        return timedelta(days=days_in_month(instant.year, instant.month))
    if scale is TimeScale.YEAR:
        return timedelta(days=days_in_year(instant.year))
    raise ValueError(f"unsupported time scale: {scale!r}")


@dataclass(frozen=True)
class TimeAnchor:
    """Layout segment holding "now" and how far into it we are."""

    segment_index: int
    segment_progress: float
    angle: float


def time_anchor(scale: TimeScale, instant: datetime, *, weeks_in_month: int = 4) -> TimeAnchor:
    """Locate ``instant`` inside the segment layout of ``scale``.

    ``segment_index`` refers to the segments produced by
    :func:`nowring.geometry.layout_for` for the same scale; the month layout
    has ``weeks_in_month`` segments so late days are clamped to the last one.
    """

    angle = angle_for(scale, instant)
    if scale is TimeScale.DAY:
        progress = (instant.hour * 60 + instant.minute) / 1440.0
        slots = progress * 24.0
        return TimeAnchor(int(math.floor(slots)), slots % 1.0, angle)
    if scale is TimeScale.WEEK:
        return TimeAnchor(day_of_week(instant), instant.hour / 24.0, angle)
    if scale is TimeScale.MONTH:
        elapsed = instant.day - 1
        last = max(1, int(weeks_in_month)) - 1
        return TimeAnchor(min(elapsed // 7, last), (elapsed % 7) / 7.0, angle)
    if scale is TimeScale.YEAR:
        length = days_in_month(instant.year, instant.month)
        return TimeAnchor(instant.month - 1, (instant.day - 1) / float(length), angle)
    raise ValueError(f"unsupported time scale: {scale!r}")
