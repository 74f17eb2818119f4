"""
Per-day bucketing of canonical events for the calendar views.

Events are filed under their start day only. An event that crosses midnight
does not get a carry-over segment on the following day.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from api.services.calendar_events import CalendarEvent
from api.services.calendar_range import DateRange

# All-day row shows this many events before collapsing into "+N more"
ALL_DAY_VISIBLE_LIMIT = 2


@dataclass(frozen=True)
class DayBucket:
    """Events for one visible day, split into the all-day row and the grid."""
    date: date
    all_day_events: tuple[CalendarEvent, ...] = field(default_factory=tuple)
    timed_events: tuple[CalendarEvent, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.all_day_events and not self.timed_events


def _sort_key(event: CalendarEvent):
    return (event.start, event.end, event.id)


def bucketize(events: Iterable[CalendarEvent], date_range: DateRange) -> list[DayBucket]:
    """
    Partition events into one bucket per visible day.

    Args:
        events: Canonical events from any source
        date_range: Visible window

    Returns:
        DayBucket list in date order; events outside the window are ignored
    """
    days = date_range.days()
    all_day: dict[date, list[CalendarEvent]] = {d: [] for d in days}
    timed: dict[date, list[CalendarEvent]] = {d: [] for d in days}

    for event in events:
        day = event.start.date()
        if day not in timed:
            continue
        if event.is_all_day:
            all_day[day].append(event)
        else:
            timed[day].append(event)

    return [
        DayBucket(
            date=d,
            all_day_events=tuple(sorted(all_day[d], key=_sort_key)),
            timed_events=tuple(sorted(timed[d], key=_sort_key)),
        )
        for d in days
    ]


def all_day_overflow(
    bucket: DayBucket,
    limit: int = ALL_DAY_VISIBLE_LIMIT,
) -> tuple[tuple[CalendarEvent, ...], int]:
    """
    Split the all-day row into visible events and a hidden count.

    Returns:
        (visible events, number collapsed into "+N more")
    """
    visible = bucket.all_day_events[:limit]
    return visible, len(bucket.all_day_events) - len(visible)


def has_any_all_day(buckets: Iterable[DayBucket]) -> bool:
    """Whether the all-day row should be rendered at all."""
    return any(b.all_day_events for b in buckets)
