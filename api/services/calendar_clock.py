"""
Live "now" marker for the calendar grid.

The marker uses the same vertical formula as the layout engine, but unlike
real events it is never clamped: outside the grid window it is simply hidden.

CurrentTimeTracker owns exactly one background thread per start()/stop()
cycle, mirroring the widget's mounted lifetime.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional

from api.services.calendar_layout import GridConfig
from api.utils.datetime_utils import hours_since_midnight

logger = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 60.0

# Pixels of context kept above "now" when scrolling the grid on mount
SCROLL_LEAD_PX = 80


@dataclass(frozen=True)
class NowMarker:
    """Position of the current-time line."""
    now: datetime
    top: Optional[float]

    @property
    def visible(self) -> bool:
        return self.top is not None

    def top_for_day(self, day: date) -> Optional[float]:
        """The marker is drawn only in today's column."""
        if day != self.now.date():
            return None
        return self.top

    def to_dict(self) -> dict:
        return {
            "now": self.now.isoformat(),
            "top": self.top,
            "visible": self.visible,
        }


def now_top(now: datetime, grid: GridConfig) -> Optional[float]:
    """
    Vertical offset of the current time, or None when outside the grid window.
    """
    hour = hours_since_midnight(now, now.date())
    if not grid.contains_hour(hour):
        return None
    return grid.y_for_hour(hour)


def initial_scroll_top(now: datetime, grid: GridConfig, lead_px: float = SCROLL_LEAD_PX) -> float:
    """
    Scroll offset that brings the current hour into view on mount.

    Returns 0 when the current hour is outside the grid.
    """
    if not grid.start_hour <= now.hour < grid.end_hour:
        return 0.0
    return max(0.0, grid.y_for_hour(now.hour) - lead_px)


class CurrentTimeTracker:
    """
    Recomputes the now marker on a fixed interval while started.

    Args:
        grid: Grid geometry shared with the layout engine
        clock: Returns the current local time (inject a fake for tests)
        interval_seconds: Tick interval
        on_tick: Optional callback receiving each new NowMarker
    """

    def __init__(
        self,
        grid: GridConfig,
        clock: Callable[[], datetime] = datetime.now,
        interval_seconds: float = DEFAULT_TICK_SECONDS,
        on_tick: Optional[Callable[[NowMarker], None]] = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.grid = grid
        self.clock = clock
        self.interval_seconds = interval_seconds
        self.on_tick = on_tick
        self._marker: Optional[NowMarker] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    def tick(self) -> NowMarker:
        """Recompute the marker now."""
        now = self.clock()
        marker = NowMarker(now=now, top=now_top(now, self.grid))
        self._marker = marker
        if self.on_tick:
            try:
                self.on_tick(marker)
            except Exception as e:
                logger.error(f"Now-marker callback failed: {e}")
        return marker

    def snapshot(self) -> NowMarker:
        """Last computed marker (computing one if the tracker never ticked)."""
        return self._marker or self.tick()

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval_seconds):
            self.tick()

    def start(self) -> None:
        """Start ticking. A second start() while running is a no-op."""
        with self._lock:
            if self._thread is not None:
                logger.debug("Current-time tracker already running")
                return

            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._loop,
                args=(stop_event,),
                name="calendar-now-tracker",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread

        # First tick runs unlocked so on_tick may call stop() or start()
        self.tick()

        with self._lock:
            if self._thread is not thread:
                return
            thread.start()
        logger.debug(f"Started current-time tracker (interval: {self.interval_seconds}s)")

    def stop(self) -> None:
        """Stop ticking and release the background thread."""
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop_event.set()

        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=max(1.0, self.interval_seconds))
            logger.debug("Stopped current-time tracker")

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    def __enter__(self) -> "CurrentTimeTracker":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
