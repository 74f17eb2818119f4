"""
Pointer-to-time mapping and event intents for the calendar grid.

Inverts the layout engine's vertical formula so a click in a day column becomes
a concrete date-time. Intents are plain data handed to the event-editing
collaborator; nothing here creates or persists events.
"""
import math
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from typing import Optional

from api.services.calendar_events import CalendarEvent, EventSource
from api.services.calendar_layout import GridConfig
from api.utils.datetime_utils import local_midnight

DEFAULT_NEW_EVENT_DURATION = timedelta(hours=1)


@dataclass(frozen=True)
class CreateEventIntent:
    """Request to open the create dialog pre-filled with these values."""
    start: datetime
    end: datetime
    all_day: bool = False
    title: str = ""
    location: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["start"] = self.start.isoformat()
        data["end"] = self.end.isoformat()
        return data


@dataclass(frozen=True)
class EditEventIntent:
    """Request to open the edit dialog for an existing event."""
    event_id: str
    source: EventSource
    title: str
    start: datetime
    end: datetime
    all_day: bool
    location: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["source"] = self.source.value
        data["start"] = self.start.isoformat()
        data["end"] = self.end.isoformat()
        return data


def hour_at(y: float, grid: GridConfig) -> float:
    """Fractional hour under a pixel offset in the day column (unsnapped)."""
    return grid.start_hour + y / grid.hour_height_px


def time_at(y: float, day: date, grid: GridConfig) -> datetime:
    """
    Map a pixel offset in a day column to a snapped date-time.

    Args:
        y: Pixels from the top of the grid
        day: Date of the clicked column
        grid: Grid geometry (snap_minutes sets the granularity)

    Returns:
        Naive local datetime rounded to the nearest snap step, within the grid
    """
    hour = grid.clamp_hour(hour_at(y, grid))
    step = grid.snap_minutes
    minutes = math.floor(hour * 60 / step + 0.5) * step

    low = math.ceil(grid.start_hour * 60 / step) * step
    high = math.floor(grid.end_hour * 60 / step) * step
    minutes = min(max(minutes, low), high)

    return local_midnight(day) + timedelta(minutes=minutes)


def slot_create_intent(
    y: float,
    day: date,
    grid: GridConfig,
    duration: timedelta = DEFAULT_NEW_EVENT_DURATION,
) -> CreateEventIntent:
    """Create intent for a click on an empty slot."""
    start = time_at(y, day, grid)
    return CreateEventIntent(start=start, end=start + duration)


def all_day_create_intent(day: date) -> CreateEventIntent:
    """Create intent for a click in the all-day row."""
    start = local_midnight(day)
    return CreateEventIntent(start=start, end=start + timedelta(days=1), all_day=True)


def edit_intent(event: CalendarEvent) -> EditEventIntent:
    """Edit intent for a click on an existing event."""
    return EditEventIntent(
        event_id=event.id,
        source=event.source,
        title=event.title,
        start=event.start,
        end=event.end,
        all_day=event.is_all_day,
        location=event.location,
        description=event.description,
    )


def duplicate_intent(event: CalendarEvent) -> CreateEventIntent:
    """Create intent pre-filled from an existing event."""
    return CreateEventIntent(
        start=event.start,
        end=event.end,
        all_day=event.is_all_day,
        title=f"{event.title} (copy)",
        location=event.location,
        description=event.description,
    )
