"""
Overlap layout engine for the day/multi-day calendar grid.

Turns one day's timed events into pixel rectangles:
- vertical position from the event's clock times, clamped to the grid window
- a horizontal lane so overlapping events render side by side

Lane assignment is greedy first-fit over events sorted by start time (longest
first on ties). Events are grouped into overlap clusters, maximal runs of
transitively overlapping events, and every event in a cluster shares that
cluster's lane count. For start-sorted first-fit the number of lanes a cluster
opens equals its maximum simultaneous overlap, so no cluster is wider than it
has to be.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence

from api.services.calendar_buckets import DayBucket
from api.services.calendar_events import CalendarEvent
from api.utils.datetime_utils import hours_since_midnight

logger = logging.getLogger(__name__)

# Zero-length events occupy this much time for lane assignment
MIN_OCCUPANCY = timedelta(minutes=1)


@dataclass(frozen=True)
class GridConfig:
    """Geometry of the hourly grid. Hours are local wall-clock hours."""
    start_hour: float = 6
    end_hour: float = 23
    hour_height_px: float = 48.0
    min_event_height_px: float = 22.0
    snap_minutes: int = 15

    def __post_init__(self):
        if not (0 <= self.start_hour < self.end_hour <= 24):
            raise ValueError(
                f"grid window must satisfy 0 <= start < end <= 24, "
                f"got {self.start_hour}-{self.end_hour}"
            )
        if self.hour_height_px <= 0:
            raise ValueError("hour_height_px must be positive")
        if not (0 <= self.min_event_height_px <= self.grid_height):
            raise ValueError("min_event_height_px must fit inside the grid")
        if self.snap_minutes <= 0 or 60 % self.snap_minutes:
            raise ValueError("snap_minutes must be a positive divisor of 60")

    @classmethod
    def from_settings(cls, settings=None, **overrides) -> "GridConfig":
        """Build the grid from application settings, with per-view overrides."""
        if settings is None:
            from config.settings import settings
        values = {
            "start_hour": settings.grid_start_hour,
            "end_hour": settings.grid_end_hour,
            "hour_height_px": settings.hour_height_px,
            "min_event_height_px": settings.min_event_height_px,
            "snap_minutes": settings.snap_minutes,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def grid_height(self) -> float:
        return (self.end_hour - self.start_hour) * self.hour_height_px

    def clamp_hour(self, hour: float) -> float:
        return min(max(hour, self.start_hour), self.end_hour)

    def contains_hour(self, hour: float) -> bool:
        return self.start_hour <= hour <= self.end_hour

    def y_for_hour(self, hour: float) -> float:
        """Unclamped vertical offset of a fractional hour."""
        return (hour - self.start_hour) * self.hour_height_px


@dataclass(frozen=True)
class LayoutRect:
    """Pixel rectangle for one timed event within its day column."""
    event_id: str
    top: float
    height: float
    lane: int
    lane_count_in_cluster: int

    @property
    def width_fraction(self) -> float:
        return 1.0 / self.lane_count_in_cluster

    @property
    def left_fraction(self) -> float:
        return self.lane / self.lane_count_in_cluster

    def horizontal(self, column_width: float) -> tuple[float, float]:
        """(left, width) in pixels for a day column of the given width."""
        width = column_width / self.lane_count_in_cluster
        return self.lane * width, width

    def to_dict(self) -> dict:
        data = asdict(self)
        data["left_fraction"] = self.left_fraction
        data["width_fraction"] = self.width_fraction
        return data


@dataclass(frozen=True)
class LanePlacement:
    """Lane assignment for one event."""
    event: CalendarEvent
    lane: int
    cluster: int
    lane_count_in_cluster: int


def _occupied_end(event: CalendarEvent) -> datetime:
    return max(event.end, event.start + MIN_OCCUPANCY)


def layout_order(events: Iterable[CalendarEvent]) -> list[CalendarEvent]:
    """Deterministic placement order: start asc, duration desc, id asc."""
    return sorted(events, key=lambda e: (e.start, -(e.end - e.start), e.id))


def assign_lanes(events: Iterable[CalendarEvent]) -> list[LanePlacement]:
    """
    Assign every event a lane and an overlap cluster.

    Args:
        events: One day's timed events, in any order

    Returns:
        Placements in layout order
    """
    pending: list[tuple[CalendarEvent, int, int]] = []
    cluster_widths: list[int] = []
    lane_ends: list[datetime] = []
    cluster_end: Optional[datetime] = None

    for event in layout_order(events):
        end = _occupied_end(event)

        if cluster_end is None or event.start >= cluster_end:
            # Nothing open overlaps this event: start a fresh cluster
            cluster_widths.append(0)
            lane_ends = []
            cluster_end = end
        else:
            cluster_end = max(cluster_end, end)

        for lane, lane_end in enumerate(lane_ends):
            if lane_end <= event.start:
                lane_ends[lane] = end
                break
        else:
            lane = len(lane_ends)
            lane_ends.append(end)

        cluster = len(cluster_widths) - 1
        cluster_widths[cluster] = max(cluster_widths[cluster], len(lane_ends))
        pending.append((event, lane, cluster))

    return [
        LanePlacement(
            event=event,
            lane=lane,
            cluster=cluster,
            lane_count_in_cluster=cluster_widths[cluster],
        )
        for event, lane, cluster in pending
    ]


def vertical_geometry(event: CalendarEvent, grid: GridConfig, day: date) -> tuple[float, float]:
    """
    (top, height) in pixels for an event in the given day's column.

    Start and end are clamped to the grid window, so events that begin before
    or run past the visible hours are truncated at the grid edges.
    """
    start_hour = grid.clamp_hour(hours_since_midnight(event.start, day))
    end_hour = grid.clamp_hour(hours_since_midnight(event.end, day))
    if end_hour < start_hour:
        end_hour = start_hour

    top = (start_hour - grid.start_hour) * grid.hour_height_px
    height = max(grid.min_event_height_px, (end_hour - start_hour) * grid.hour_height_px)
    return top, height


def layout_day(
    timed_events: Sequence[CalendarEvent],
    grid: GridConfig,
    day: Optional[date] = None,
) -> list[LayoutRect]:
    """
    Lay out one day's timed events.

    Args:
        timed_events: Timed (not all-day) events filed under this day
        grid: Grid geometry
        day: Column date; defaults to the earliest event's start date

    Returns:
        One LayoutRect per event, in layout order
    """
    if not timed_events:
        return []
    if day is None:
        day = min(e.start for e in timed_events).date()

    rects = []
    for placement in assign_lanes(timed_events):
        top, height = vertical_geometry(placement.event, grid, day)
        rects.append(LayoutRect(
            event_id=placement.event.id,
            top=top,
            height=height,
            lane=placement.lane,
            lane_count_in_cluster=placement.lane_count_in_cluster,
        ))

    logger.debug(f"Laid out {len(rects)} events for {day.isoformat()}")
    return rects


def layout_days(buckets: Iterable[DayBucket], grid: GridConfig) -> dict[date, list[LayoutRect]]:
    """Lay out every bucket's timed events, keyed by date."""
    return {b.date: layout_day(b.timed_events, grid, b.date) for b in buckets}


def format_hour_label(hour: int) -> str:
    """12-hour clock label for the time column ("12AM", "9AM", "1PM")."""
    hour = hour % 24
    if hour == 0:
        return "12AM"
    if hour < 12:
        return f"{hour}AM"
    if hour == 12:
        return "12PM"
    return f"{hour - 12}PM"


def hour_labels(grid: GridConfig) -> list[tuple[int, float, str]]:
    """
    Labels for the time column.

    Returns:
        (hour, top px, label) for each whole hour the grid shows
    """
    first = int(grid.start_hour) if grid.start_hour == int(grid.start_hour) else int(grid.start_hour) + 1
    return [
        (hour, grid.y_for_hour(hour), format_hour_label(hour))
        for hour in range(first, int(grid.end_hour))
    ]
