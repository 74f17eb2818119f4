"""
Calendar event normalization for the portal.

Maps records from the two event sources into one canonical shape:
- internal: company events stored in the managed backend
  (start_time / end_time / all_day / event_type)
- external: Google Calendar API events
  (start.dateTime or start.date / colorId / hangoutLink)

The mapping functions here are the only code that knows about source shapes.
Everything downstream sees CalendarEvent.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from api.services.resilience import MalformedEventError
from api.utils.datetime_utils import is_date_only, parse_timestamp
from config.calendar_config import event_type_color, google_color

logger = logging.getLogger(__name__)

DEFAULT_DURATION = timedelta(hours=1)
ALL_DAY_DURATION = timedelta(days=1)


class EventSource(str, Enum):
    """Where a canonical event came from."""
    INTERNAL = "internal"
    EXTERNAL = "external"


@dataclass(frozen=True)
class CalendarEvent:
    """Canonical calendar event (naive local wall-clock times)."""
    id: str
    title: str
    start: datetime
    end: datetime
    is_all_day: bool
    source: EventSource
    color_tag: Optional[str] = None
    location: Optional[str] = None
    conference_link: Optional[str] = None
    description: Optional[str] = None
    event_type: Optional[str] = None
    calendar_id: Optional[str] = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def to_dict(self) -> dict:
        """Convert to dict for the widget payload."""
        return {
            "id": self.id,
            "title": self.title,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "is_all_day": self.is_all_day,
            "source": self.source.value,
            "color_tag": self.color_tag,
            "location": self.location,
            "conference_link": self.conference_link,
            "description": self.description,
            "event_type": self.event_type,
            "calendar_id": self.calendar_id,
        }


@dataclass
class NormalizationResult:
    """Outcome of normalizing one source's records."""
    source: EventSource
    events: list[CalendarEvent] = field(default_factory=list)
    rejected: int = 0  # malformed records (bad or missing times)
    skipped: int = 0   # well-formed but not shown (inactive, cancelled)
    reasons: list[str] = field(default_factory=list)


class _Skip(Exception):
    """Record is valid but should not be displayed."""


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _resolve_times(
    start_raw: Any,
    end_raw: Any,
    record_id: Any,
    tz: Optional[tzinfo],
    default_duration: timedelta = DEFAULT_DURATION,
) -> tuple[datetime, datetime]:
    """Parse start/end, defaulting a missing end. Raises MalformedEventError."""
    if start_raw in (None, ""):
        raise MalformedEventError("missing start time", record_id)

    start = parse_timestamp(start_raw, tz)
    if start is None:
        raise MalformedEventError(f"unparseable start time {start_raw!r}", record_id)

    if end_raw in (None, ""):
        try:
            end = start + default_duration
        except OverflowError:
            raise MalformedEventError(f"start time {start_raw!r} out of range", record_id)
    else:
        end = parse_timestamp(end_raw, tz)
        if end is None:
            raise MalformedEventError(f"unparseable end time {end_raw!r}", record_id)

    if end < start:
        raise MalformedEventError("end time before start time", record_id)

    return start, end


def _all_day_end(start: datetime, record_id: Any) -> datetime:
    try:
        return start + ALL_DAY_DURATION
    except OverflowError:
        raise MalformedEventError("all-day event on the last representable day", record_id)


def _internal_event(record: dict, tz: Optional[tzinfo]) -> CalendarEvent:
    if not isinstance(record, dict):
        raise MalformedEventError("record is not a mapping")

    raw_id = record.get("id")
    if raw_id in (None, ""):
        raise MalformedEventError("missing id")
    if record.get("is_active") is False:
        raise _Skip("inactive")

    if record.get("all_day") is None:
        all_day = is_date_only(record.get("start_time"))
    else:
        all_day = bool(record.get("all_day"))
    start, end = _resolve_times(
        record.get("start_time"),
        record.get("end_time"),
        raw_id,
        tz,
        default_duration=ALL_DAY_DURATION if all_day else DEFAULT_DURATION,
    )
    if all_day and end == start:
        end = _all_day_end(start, raw_id)
    event_type = _optional_str(record.get("event_type")) or "company"

    return CalendarEvent(
        id=f"{EventSource.INTERNAL.value}:{raw_id}",
        title=_optional_str(record.get("title")) or "Untitled",
        start=start,
        end=end,
        is_all_day=all_day,
        source=EventSource.INTERNAL,
        color_tag=event_type_color(event_type),
        location=_optional_str(record.get("location")),
        conference_link=_optional_str(record.get("meeting_url")),
        description=_optional_str(record.get("description")),
        event_type=event_type,
    )


def _conference_link(record: dict) -> Optional[str]:
    link = _optional_str(record.get("hangoutLink"))
    if link:
        return link
    conference = record.get("conferenceData")
    if not isinstance(conference, dict):
        return None
    entry_points = conference.get("entryPoints")
    if not isinstance(entry_points, list):
        return None
    for entry in entry_points:
        if isinstance(entry, dict) and entry.get("entryPointType") == "video":
            uri = _optional_str(entry.get("uri"))
            if uri:
                return uri
    return None


def _external_event(record: dict, tz: Optional[tzinfo]) -> CalendarEvent:
    if not isinstance(record, dict):
        raise MalformedEventError("record is not a mapping")

    raw_id = record.get("id")
    if raw_id in (None, ""):
        raise MalformedEventError("missing id")
    if record.get("status") == "cancelled":
        raise _Skip("cancelled")

    start_block = record.get("start") or {}
    end_block = record.get("end") or {}
    if not isinstance(start_block, dict) or not isinstance(end_block, dict):
        raise MalformedEventError("start/end must be objects", raw_id)

    start_raw = start_block.get("dateTime") or start_block.get("date")
    end_raw = end_block.get("dateTime") or end_block.get("date")
    all_day = bool(start_block.get("date")) and not start_block.get("dateTime")

    start, end = _resolve_times(
        start_raw,
        end_raw,
        raw_id,
        tz,
        default_duration=ALL_DAY_DURATION if all_day else DEFAULT_DURATION,
    )
    if all_day and end == start:
        end = _all_day_end(start, raw_id)

    return CalendarEvent(
        id=f"{EventSource.EXTERNAL.value}:{raw_id}",
        title=_optional_str(record.get("summary")) or "Untitled",
        start=start,
        end=end,
        is_all_day=all_day,
        source=EventSource.EXTERNAL,
        color_tag=google_color(record.get("colorId")),
        location=_optional_str(record.get("location")),
        conference_link=_conference_link(record),
        description=_optional_str(record.get("description")),
        event_type="personal",
        calendar_id=_optional_str(record.get("calendarId")),
    )


# Every source must register its mapping here
NORMALIZERS: dict[EventSource, Callable[[dict, Optional[tzinfo]], CalendarEvent]] = {
    EventSource.INTERNAL: _internal_event,
    EventSource.EXTERNAL: _external_event,
}


def normalize_record(
    source: EventSource,
    record: Any,
    tz: Optional[tzinfo] = None,
) -> Optional[CalendarEvent]:
    """
    Normalize a single record, returning None if it is rejected or skipped.
    """
    normalizer = NORMALIZERS[EventSource(source)]
    try:
        return normalizer(record, tz)
    except (MalformedEventError, _Skip):
        return None
    except Exception as e:
        logger.warning(f"Failed to normalize {EventSource(source).value} event: {e}")
        return None


def normalize_internal(record: Any, tz: Optional[tzinfo] = None) -> Optional[CalendarEvent]:
    """Normalize a company event record from the managed backend."""
    return normalize_record(EventSource.INTERNAL, record, tz)


def normalize_external(record: Any, tz: Optional[tzinfo] = None) -> Optional[CalendarEvent]:
    """Normalize a Google Calendar API event resource."""
    return normalize_record(EventSource.EXTERNAL, record, tz)


def normalize_records(
    source: EventSource,
    records: Optional[Iterable[Any]],
    tz: Optional[tzinfo] = None,
) -> NormalizationResult:
    """
    Normalize every record from one source.

    Malformed records are dropped and counted, never raised.

    Args:
        source: Which source the records came from
        records: Raw records (None is treated as an empty list)
        tz: Local zone for offset-aware timestamps

    Returns:
        NormalizationResult with the canonical events and reject counts
    """
    source = EventSource(source)
    normalizer = NORMALIZERS[source]
    result = NormalizationResult(source=source)

    for record in records or []:
        try:
            result.events.append(normalizer(record, tz))
        except _Skip:
            result.skipped += 1
        except MalformedEventError as e:
            result.rejected += 1
            result.reasons.append(e.reason)
            logger.debug(f"Dropped malformed {source.value} event: {e}")
        except Exception as e:
            result.rejected += 1
            result.reasons.append(f"unexpected record shape: {e}")
            logger.warning(f"Failed to normalize {source.value} event: {e}")

    if result.rejected:
        logger.info(
            f"Normalized {len(result.events)} {source.value} events "
            f"({result.rejected} malformed, {result.skipped} skipped)"
        )
    return result


def meeting_kind(event: CalendarEvent) -> Optional[str]:
    """
    Classify how the meeting is attended, for the widget icon.

    Returns:
        "video", "phone", "in_person", or None when there is no location
    """
    location = (event.location or "").lower()
    if event.conference_link or "zoom" in location or "meet" in location:
        return "video"
    if "call" in location or "phone" in location:
        return "phone"
    if event.location:
        return "in_person"
    return None


def is_past(event: CalendarEvent, now: datetime) -> bool:
    """True once the event has ended."""
    return event.end < now
