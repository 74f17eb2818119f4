"""
Visible day-window selection for the 1/2/3-day calendar views.

Pure date arithmetic in local wall-clock time; no event data is consulted.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Union

from api.utils.datetime_utils import local_midnight

VIEW_WIDTHS = (1, 2, 3)

# Minimum horizontal swipe (px) that counts as prev/next on touch devices
SWIPE_THRESHOLD_PX = 50


class Navigation(str, Enum):
    """Navigation commands from the widget header."""
    PREV = "prev"
    NEXT = "next"
    TODAY = "today"


@dataclass(frozen=True)
class DateRange:
    """Half-open [start, end) window of whole local days."""
    start: datetime
    end: datetime

    @property
    def width(self) -> int:
        return (self.end - self.start).days

    def days(self) -> list[date]:
        """Visible dates in order."""
        return [(self.start + timedelta(days=i)).date() for i in range(self.width)]

    def contains(self, dt: datetime) -> bool:
        return self.start <= dt < self.end


def _as_date(anchor: Union[date, datetime]) -> date:
    return anchor.date() if isinstance(anchor, datetime) else anchor


def _check_width(view_width_days: int) -> int:
    if view_width_days not in VIEW_WIDTHS:
        raise ValueError(f"view width must be one of {VIEW_WIDTHS}, got {view_width_days!r}")
    return view_width_days


def select_range(anchor: Union[date, datetime], view_width_days: int) -> DateRange:
    """
    Compute the visible window for an anchor date.

    Args:
        anchor: Any moment on the first visible day
        view_width_days: 1, 2 or 3

    Returns:
        DateRange starting at the anchor's local midnight
    """
    width = _check_width(view_width_days)
    start = local_midnight(anchor)
    return DateRange(start=start, end=start + timedelta(days=width))


def navigate(
    anchor: Union[date, datetime],
    view_width_days: int,
    command: Union[Navigation, str],
    today: Optional[date] = None,
) -> date:
    """
    Apply a navigation command to the anchor date.

    next/prev shift by the view width; today resets to the current local date
    regardless of prior navigation.

    Returns:
        The new anchor date
    """
    width = _check_width(view_width_days)
    command = Navigation(command)
    current = _as_date(anchor)

    if command is Navigation.TODAY:
        return today or date.today()
    if command is Navigation.NEXT:
        return current + timedelta(days=width)
    return current - timedelta(days=width)


def filter_to_range(events: Iterable, date_range: DateRange) -> list:
    """Keep events whose start falls inside the window."""
    return [e for e in events if date_range.contains(e.start)]


def swipe_command(dx: float, threshold: float = SWIPE_THRESHOLD_PX) -> Optional[Navigation]:
    """
    Map a horizontal swipe distance to a navigation command.

    A leftward swipe (negative dx) advances, rightward goes back.
    """
    if abs(dx) <= threshold:
        return None
    return Navigation.NEXT if dx < 0 else Navigation.PREV


@dataclass(frozen=True)
class ViewState:
    """Anchor date plus view width, as held by the widget."""
    anchor: date
    view_width_days: int = 3

    def __post_init__(self):
        _check_width(self.view_width_days)

    @property
    def range(self) -> DateRange:
        return select_range(self.anchor, self.view_width_days)

    def apply(self, command: Union[Navigation, str], today: Optional[date] = None) -> "ViewState":
        return ViewState(
            anchor=navigate(self.anchor, self.view_width_days, command, today=today),
            view_width_days=self.view_width_days,
        )

    def with_width(self, view_width_days: int) -> "ViewState":
        return ViewState(anchor=self.anchor, view_width_days=view_width_days)
