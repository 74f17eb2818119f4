"""
Calendar API endpoints for the portal.

Serves the merged day/multi-day layout model and maps grid clicks back to
create intents. Event persistence is handled elsewhere.
"""
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from api.services.calendar_clock import NowMarker, initial_scroll_top, now_top
from api.services.calendar_events import EventSource
from api.services.calendar_interaction import all_day_create_intent, slot_create_intent
from api.services.calendar_layout import GridConfig, hour_labels
from api.services.calendar_pipeline import (
    build_layout,
    fetch_sources,
    next_meeting,
    next_meeting_text,
)
from api.services.calendar_range import ViewState
from api.services.company_events import get_company_source
from api.services.google_calendar import get_google_source
from api.services.resilience import SourceFetchError
from api.services.service_health import mark_service_disabled
from api.utils.datetime_utils import local_now
from config.settings import settings

router = APIRouter(prefix="/api/calendar", tags=["calendar"])


class HourLabelResponse(BaseModel):
    """A label in the time column."""
    hour: int
    top: float
    label: str


class NowResponse(BaseModel):
    """Current-time marker."""
    now: str
    top: Optional[float] = None
    visible: bool
    scroll_top: float


class LayoutResponse(BaseModel):
    """Merged layout for the visible range."""
    anchor: str
    view_days: int
    range: dict
    grid: dict
    days: list[dict]
    sources: list[dict]
    degraded: bool
    hour_labels: list[HourLabelResponse]
    now: NowResponse
    next_meeting: Optional[dict] = None
    next_meeting_text: Optional[str] = None


class SlotRequest(BaseModel):
    """A click on the grid."""
    date: str  # YYYY-MM-DD of the clicked column
    y: Optional[float] = None  # pixels from grid top; omit for the all-day row
    duration_minutes: int = 60


class CreateIntentResponse(BaseModel):
    """Values to pre-fill the create dialog with."""
    start: str
    end: str
    all_day: bool
    title: str = ""
    location: Optional[str] = None
    description: Optional[str] = None


def _now() -> datetime:
    """Current local wall-clock time."""
    return local_now(settings.local_tz)


def _grid() -> GridConfig:
    return GridConfig.from_settings(settings)


def _now_response(marker: NowMarker, grid: GridConfig) -> NowResponse:
    return NowResponse(
        now=marker.now.isoformat(),
        top=marker.top,
        visible=marker.visible,
        scroll_top=initial_scroll_top(marker.now, grid),
    )


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"Invalid date: {value!r}. Use YYYY-MM-DD")


@router.get("/layout", response_model=LayoutResponse)
async def get_layout(
    anchor: Optional[str] = Query(default=None, description="Anchor date (YYYY-MM-DD); defaults to today"),
    days: Optional[int] = Query(default=None, description="Visible days: 1, 2 or 3"),
    navigate: Optional[str] = Query(default=None, description="prev, next or today"),
):
    """
    **Get the calendar layout** for a 1-3 day window.

    Merges company events and the connected Google Calendar, buckets them per
    day and resolves overlaps into lanes. A source that fails to load is
    reported in `sources` and the other source still renders.
    """
    now = _now()
    today = now.date()
    view_days = days if days is not None else settings.default_view_days

    try:
        view = ViewState(_parse_day(anchor) if anchor else today, view_days)
        if navigate:
            view = view.apply(navigate, today=today)
        grid = _grid()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    fetchers = {EventSource.INTERNAL: get_company_source().fetch_events}
    google = get_google_source()
    if google is not None:
        fetchers[EventSource.EXTERNAL] = google.fetch_events
    else:
        mark_service_disabled("google_calendar")

    outcome = await fetch_sources(fetchers, view.range)
    records = {}
    errors = {}
    for source, result in outcome.items():
        if isinstance(result, SourceFetchError):
            errors[source] = result
        else:
            records[source] = result

    layout = build_layout(
        records.get(EventSource.INTERNAL),
        records.get(EventSource.EXTERNAL),
        view.range,
        grid,
        tz=settings.local_tz,
        errors=errors,
    )
    data = layout.to_dict()

    marker = NowMarker(now=now, top=now_top(now, grid))
    today_events = [e for day in layout.days if day.date == today for e in day.timed_events]
    upcoming = next_meeting(today_events, now)

    return LayoutResponse(
        anchor=view.anchor.isoformat(),
        view_days=view.view_width_days,
        range=data["range"],
        grid=data["grid"],
        days=data["days"],
        sources=data["sources"],
        degraded=data["degraded"],
        hour_labels=[
            HourLabelResponse(hour=hour, top=top, label=label)
            for hour, top, label in hour_labels(grid)
        ],
        now=_now_response(marker, grid),
        next_meeting=upcoming.to_dict() if upcoming else None,
        next_meeting_text=next_meeting_text(upcoming, now),
    )


@router.post("/slot", response_model=CreateIntentResponse)
async def map_slot(request: SlotRequest):
    """
    **Map a grid click to a create intent.**

    `y` is snapped to the nearest slot within the grid window. Omitting `y`
    means the all-day row was clicked.
    """
    day = _parse_day(request.date)
    if request.duration_minutes <= 0:
        raise HTTPException(status_code=400, detail="duration_minutes must be positive")

    try:
        grid = _grid()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if request.y is None:
        intent = all_day_create_intent(day)
    else:
        intent = slot_create_intent(
            request.y, day, grid, duration=timedelta(minutes=request.duration_minutes)
        )
    return CreateIntentResponse(**intent.to_dict())


@router.get("/now", response_model=NowResponse)
async def get_now(request: Request):
    """
    **Get the current-time marker** position.

    Served from the background tracker when the app is running, otherwise
    computed on the spot.
    """
    grid = _grid()
    tracker = getattr(request.app.state, "now_tracker", None)
    if tracker is not None and tracker.is_running:
        marker = tracker.snapshot()
        grid = tracker.grid
    else:
        now = _now()
        marker = NowMarker(now=now, top=now_top(now, grid))
    return _now_response(marker, grid)
