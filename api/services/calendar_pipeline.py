"""
Multi-source merge pipeline for the calendar widgets.

build_layout() is the pure part: raw records from both sources plus a visible
range and grid in, a complete layout model out. It never raises on bad event
data; a missing or failed source simply contributes no events.

CalendarPipeline is the stateful shell around it. Each source arrives on its
own schedule, so every recomputation is tagged with a ComputationKey (visible
range + per-source snapshot versions). A result whose key no longer matches the
current state was computed against superseded inputs and is dropped.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Callable, Iterable, Optional, Union

from api.services.calendar_buckets import DayBucket, all_day_overflow, bucketize
from api.services.calendar_events import (
    CalendarEvent,
    EventSource,
    NormalizationResult,
    normalize_records,
)
from api.services.calendar_layout import GridConfig, LayoutRect, layout_day
from api.services.calendar_range import DateRange, Navigation, ViewState, filter_to_range
from api.services.resilience import SourceFetchError, source_status_message
from api.services.service_health import mark_service_failed, mark_service_healthy

logger = logging.getLogger(__name__)

# Health registry names for each source
SOURCE_SERVICE_NAMES = {
    EventSource.INTERNAL: "internal_events",
    EventSource.EXTERNAL: "google_calendar",
}

STATUS_OK = "ok"
STATUS_FAILED = "failed"
STATUS_MISSING = "missing"


@dataclass(frozen=True)
class SourceReport:
    """
    How one source contributed to a layout.

    accepted/rejected/skipped count the records that were normalized. A source
    whose fetch failed delivered no records, so those stay 0; the failure is
    carried by status "failed", failures (1 per failed fetch), error and the
    user-facing message.
    """
    source: EventSource
    status: str
    accepted: int = 0
    rejected: int = 0
    skipped: int = 0
    failures: int = 0
    error: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "source": self.source.value,
            "status": self.status,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "skipped": self.skipped,
            "failures": self.failures,
            "error": self.error,
            "message": self.message,
        }


@dataclass(frozen=True)
class DayLayout:
    """Everything one day column needs to render."""
    date: date
    all_day_events: tuple[CalendarEvent, ...]
    timed_events: tuple[CalendarEvent, ...]
    rects: tuple[LayoutRect, ...]

    @property
    def hidden_all_day(self) -> int:
        return all_day_overflow(DayBucket(self.date, self.all_day_events, self.timed_events))[1]

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "all_day_events": [e.to_dict() for e in self.all_day_events],
            "hidden_all_day": self.hidden_all_day,
            "timed_events": [e.to_dict() for e in self.timed_events],
            "rects": [r.to_dict() for r in self.rects],
        }


@dataclass(frozen=True)
class CalendarLayout:
    """Complete layout model for the visible range."""
    range: DateRange
    grid: GridConfig
    days: tuple[DayLayout, ...]
    reports: tuple[SourceReport, ...]

    @property
    def rects(self) -> list[LayoutRect]:
        return [r for day in self.days for r in day.rects]

    def report_for(self, source: Union[EventSource, str]) -> Optional[SourceReport]:
        source = EventSource(source)
        for report in self.reports:
            if report.source == source:
                return report
        return None

    @property
    def degraded(self) -> bool:
        return any(r.status == STATUS_FAILED for r in self.reports)

    def to_dict(self) -> dict:
        return {
            "range": {
                "start": self.range.start.isoformat(),
                "end": self.range.end.isoformat(),
                "days": self.range.width,
            },
            "grid": {
                "start_hour": self.grid.start_hour,
                "end_hour": self.grid.end_hour,
                "hour_height_px": self.grid.hour_height_px,
                "min_event_height_px": self.grid.min_event_height_px,
                "snap_minutes": self.grid.snap_minutes,
                "height_px": self.grid.grid_height,
            },
            "days": [d.to_dict() for d in self.days],
            "sources": [r.to_dict() for r in self.reports],
            "degraded": self.degraded,
        }


def _report(
    source: EventSource,
    result: Optional[NormalizationResult],
    error: Optional[BaseException],
) -> SourceReport:
    if error is not None:
        return SourceReport(
            source=source,
            status=STATUS_FAILED,
            failures=1,
            error=str(error),
            message=source_status_message(error),
        )
    if result is None:
        return SourceReport(source=source, status=STATUS_MISSING)
    return SourceReport(
        source=source,
        status=STATUS_OK,
        accepted=len(result.events),
        rejected=result.rejected,
        skipped=result.skipped,
    )


def build_layout(
    internal_records: Optional[Iterable[Any]],
    external_records: Optional[Iterable[Any]],
    date_range: DateRange,
    grid: GridConfig,
    tz: Optional[tzinfo] = None,
    errors: Optional[dict] = None,
) -> CalendarLayout:
    """
    Normalize, filter, bucket and lay out both sources.

    Args:
        internal_records: Company event rows, or None if not (yet) available
        external_records: Google event resources, or None if not available
        date_range: Visible window
        grid: Grid geometry
        tz: Local zone for offset-aware timestamps
        errors: Optional {EventSource: exception} for sources whose fetch failed

    Returns:
        CalendarLayout for the window
    """
    errors = {EventSource(k): v for k, v in (errors or {}).items()}
    inputs = {
        EventSource.INTERNAL: internal_records,
        EventSource.EXTERNAL: external_records,
    }

    events: list[CalendarEvent] = []
    reports = []
    for source, records in inputs.items():
        error = errors.get(source)
        result = None
        if error is None and records is not None:
            result = normalize_records(source, records, tz)
            events.extend(result.events)
        reports.append(_report(source, result, error))

    buckets = bucketize(filter_to_range(events, date_range), date_range)
    days = tuple(
        DayLayout(
            date=b.date,
            all_day_events=b.all_day_events,
            timed_events=b.timed_events,
            rects=tuple(layout_day(b.timed_events, grid, b.date)),
        )
        for b in buckets
    )
    return CalendarLayout(range=date_range, grid=grid, days=days, reports=tuple(reports))


@dataclass(frozen=True)
class SourceSnapshot:
    """Latest data (or failure) received from one source."""
    records: Optional[tuple] = None
    version: int = 0
    error: Optional[BaseException] = None
    received_at: Optional[datetime] = None

    @property
    def status(self) -> str:
        if self.error is not None:
            return STATUS_FAILED
        if self.records is None:
            return STATUS_MISSING
        return STATUS_OK


@dataclass(frozen=True)
class ComputationKey:
    """Identifies the inputs a layout was computed from."""
    range_start: datetime
    view_width: int
    internal_version: int
    external_version: int


@dataclass(frozen=True)
class KeyedLayout:
    """A layout tagged with the inputs it was computed from."""
    key: ComputationKey
    layout: CalendarLayout


class CalendarPipeline:
    """
    Holds the widget's view state and source snapshots.

    Usage:
        pipeline = CalendarPipeline(ViewState(date.today(), 3), grid)
        pipeline.update_source(EventSource.INTERNAL, rows)
        result = pipeline.compute()
        if pipeline.accept(result):
            render(pipeline.current())
    """

    def __init__(
        self,
        view: ViewState,
        grid: GridConfig,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.grid = grid
        self.tz = tz
        self.clock = clock
        self._view = view
        self._snapshots: dict[EventSource, SourceSnapshot] = {
            source: SourceSnapshot() for source in EventSource
        }
        self._current: Optional[KeyedLayout] = None
        self._lock = threading.Lock()

    @property
    def view(self) -> ViewState:
        return self._view

    @property
    def range(self) -> DateRange:
        return self._view.range

    @property
    def key(self) -> ComputationKey:
        with self._lock:
            return self._key_locked()

    def _key_locked(self) -> ComputationKey:
        return ComputationKey(
            range_start=self._view.range.start,
            view_width=self._view.view_width_days,
            internal_version=self._snapshots[EventSource.INTERNAL].version,
            external_version=self._snapshots[EventSource.EXTERNAL].version,
        )

    def snapshot(self, source: Union[EventSource, str]) -> SourceSnapshot:
        with self._lock:
            return self._snapshots[EventSource(source)]

    def set_view(self, view: ViewState) -> None:
        with self._lock:
            self._view = view

    def navigate(self, command: Union[Navigation, str], today: Optional[date] = None) -> ViewState:
        """Apply a prev/next/today command and return the new view."""
        with self._lock:
            self._view = self._view.apply(command, today=today or self.clock().date())
            return self._view

    def _fetched_for_current(self, fetched_for: Optional[DateRange]) -> bool:
        return fetched_for is None or fetched_for == self._view.range

    def update_source(
        self,
        source: Union[EventSource, str],
        records: Iterable[Any],
        fetched_for: Optional[DateRange] = None,
    ) -> bool:
        """
        Store fresh records from one source.

        Args:
            source: Which source delivered
            records: Raw records
            fetched_for: Range the fetch was issued for; late data for a
                superseded range is ignored

        Returns:
            True if the snapshot was updated
        """
        source = EventSource(source)
        with self._lock:
            if not self._fetched_for_current(fetched_for):
                logger.debug(f"Ignoring {source.value} records fetched for a superseded range")
                return False
            previous = self._snapshots[source]
            self._snapshots[source] = SourceSnapshot(
                records=tuple(records or ()),
                version=previous.version + 1,
                received_at=self.clock(),
            )
        return True

    def mark_source_failed(
        self,
        source: Union[EventSource, str],
        error: BaseException,
        fetched_for: Optional[DateRange] = None,
    ) -> bool:
        """
        Record a failed fetch. The source contributes no events until it recovers.
        """
        source = EventSource(source)
        with self._lock:
            if not self._fetched_for_current(fetched_for):
                logger.debug(f"Ignoring {source.value} failure for a superseded range")
                return False
            previous = self._snapshots[source]
            self._snapshots[source] = SourceSnapshot(
                records=None,
                version=previous.version + 1,
                error=error,
                received_at=self.clock(),
            )
        logger.warning(f"Calendar source {source.value} unavailable: {error}")
        return True

    def compute(self) -> KeyedLayout:
        """Compute a layout from the current snapshots (does not install it)."""
        with self._lock:
            key = self._key_locked()
            date_range = self._view.range
            internal = self._snapshots[EventSource.INTERNAL]
            external = self._snapshots[EventSource.EXTERNAL]

        errors = {}
        if internal.error is not None:
            errors[EventSource.INTERNAL] = internal.error
        if external.error is not None:
            errors[EventSource.EXTERNAL] = external.error

        layout = build_layout(
            internal.records,
            external.records,
            date_range,
            self.grid,
            tz=self.tz,
            errors=errors,
        )
        return KeyedLayout(key=key, layout=layout)

    def accept(self, result: KeyedLayout) -> bool:
        """
        Install a computed layout unless its inputs have been superseded.

        Returns:
            True if installed, False if the result was stale and discarded
        """
        with self._lock:
            if result.key != self._key_locked():
                logger.debug(f"Discarding stale calendar layout {result.key}")
                return False
            self._current = result
        return True

    def refresh(self) -> CalendarLayout:
        """Compute and install in one step; returns the current layout."""
        result = self.compute()
        self.accept(result)
        return self.current() or result.layout

    def current(self) -> Optional[CalendarLayout]:
        """Last accepted layout, or None before the first accept."""
        with self._lock:
            return self._current.layout if self._current else None


async def fetch_sources(
    fetchers: dict,
    date_range: DateRange,
) -> dict[EventSource, Union[list, SourceFetchError]]:
    """
    Fetch every source concurrently; one failing source never blocks another.

    Args:
        fetchers: {EventSource: callable(DateRange) -> list of raw records}
        date_range: Range to fetch

    Returns:
        {EventSource: records or SourceFetchError}
    """
    sources = [EventSource(s) for s in fetchers]
    calls = [asyncio.to_thread(fetchers[s], date_range) for s in fetchers]
    results = await asyncio.gather(*calls, return_exceptions=True)

    outcome: dict[EventSource, Union[list, SourceFetchError]] = {}
    for source, result in zip(sources, results):
        service = SOURCE_SERVICE_NAMES[source]
        if isinstance(result, BaseException):
            if not isinstance(result, SourceFetchError):
                result = SourceFetchError(service, str(result))
            mark_service_failed(service, str(result))
            outcome[source] = result
        else:
            mark_service_healthy(service)
            outcome[source] = list(result or [])
    return outcome


async def refresh_pipeline(pipeline: CalendarPipeline, fetchers: dict) -> Optional[CalendarLayout]:
    """
    Fetch both sources for the pipeline's current range and recompute.

    Data for a range the user has navigated away from is dropped.
    """
    date_range = pipeline.range
    outcome = await fetch_sources(fetchers, date_range)

    for source, result in outcome.items():
        if isinstance(result, SourceFetchError):
            pipeline.mark_source_failed(source, result, fetched_for=date_range)
        else:
            pipeline.update_source(source, result, fetched_for=date_range)

    result = pipeline.compute()
    pipeline.accept(result)
    return pipeline.current()


# Widget header helpers

NEXT_MEETING_GRACE_MINUTES = 5
NEXT_MEETING_HORIZON_MINUTES = 60


def _whole_minutes(delta: timedelta) -> int:
    # Truncates toward zero, so 90 seconds ago is -1 and 59 seconds is 0
    return int(delta.total_seconds() / 60)


def next_meeting(events: Iterable[CalendarEvent], now: datetime) -> Optional[CalendarEvent]:
    """
    First timed event starting between 5 minutes ago and 60 minutes from now.
    """
    timed = sorted((e for e in events if not e.is_all_day), key=lambda e: (e.start, e.id))
    for event in timed:
        minutes = _whole_minutes(event.start - now)
        if -NEXT_MEETING_GRACE_MINUTES <= minutes <= NEXT_MEETING_HORIZON_MINUTES:
            return event
    return None


def next_meeting_text(event: Optional[CalendarEvent], now: datetime) -> Optional[str]:
    if event is None:
        return None
    minutes = _whole_minutes(event.start - now)
    if minutes <= 0:
        return "Starting now"
    if minutes == 1:
        return "In 1 min"
    return f"In {minutes} min"


def sync_status_text(last_sync: Optional[datetime], now: datetime, refreshing: bool = False) -> str:
    """Short "last synced" label for the widget header."""
    if refreshing:
        return "Syncing..."
    if last_sync is None:
        return ""
    minutes = _whole_minutes(now - last_sync)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hour = last_sync.hour % 12 or 12
    suffix = "AM" if last_sync.hour < 12 else "PM"
    return f"{hour}:{last_sync.minute:02d} {suffix}"
