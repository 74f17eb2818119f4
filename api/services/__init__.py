"""
Portal Calendar Services Package.

This package contains the calendar layout engine and its event sources.
Use this module to import commonly-used services.

Example:
    from api.services import (
        GridConfig,
        build_layout,
        select_range,
    )

Key service modules:
- calendar_events: canonical event model and per-source normalizers
- calendar_range: visible window selection and navigation
- calendar_buckets: per-day split into all-day and timed events
- calendar_layout: overlap lanes and vertical geometry
- calendar_clock: current-time marker and tracker
- calendar_interaction: pixel to date-time mapping, create/edit intents
- calendar_pipeline: multi-source merge with stale-result discard
"""

# ============================================================================
# Layout Engine
# ============================================================================

from api.services.calendar_events import (
    CalendarEvent,
    EventSource,
    NormalizationResult,
    normalize_records,
)

from api.services.calendar_range import (
    DateRange,
    Navigation,
    ViewState,
    navigate,
    select_range,
)

from api.services.calendar_buckets import (
    DayBucket,
    bucketize,
)

from api.services.calendar_layout import (
    GridConfig,
    LayoutRect,
    layout_day,
)

from api.services.calendar_clock import (
    CurrentTimeTracker,
    NowMarker,
    now_top,
)

from api.services.calendar_interaction import (
    CreateEventIntent,
    EditEventIntent,
    time_at,
)

from api.services.calendar_pipeline import (
    CalendarLayout,
    CalendarPipeline,
    build_layout,
)

# ============================================================================
# Event Sources
# ============================================================================

from api.services.resilience import (
    MalformedEventError,
    SourceFetchError,
)

from api.services.service_health import (
    ServiceStatus,
    get_service_health,
)


__all__ = [
    # Layout engine
    "CalendarEvent",
    "EventSource",
    "NormalizationResult",
    "normalize_records",
    "DateRange",
    "Navigation",
    "ViewState",
    "navigate",
    "select_range",
    "DayBucket",
    "bucketize",
    "GridConfig",
    "LayoutRect",
    "layout_day",
    "CurrentTimeTracker",
    "NowMarker",
    "now_top",
    "CreateEventIntent",
    "EditEventIntent",
    "time_at",
    "CalendarLayout",
    "CalendarPipeline",
    "build_layout",
    # Sources
    "MalformedEventError",
    "SourceFetchError",
    "ServiceStatus",
    "get_service_health",
]
