"""
Pytest configuration and shared fixtures for portal calendar tests.

Test Categories:
- unit: Fast tests with no external dependencies (< 100ms each)
- slow: Tests that start the FastAPI app or background threads

Run categories:
- pytest -m unit              # Fast unit tests only
- pytest -m "not slow"        # Skip slow tests
- pytest                      # All tests
"""
from datetime import date, datetime, time, timedelta

import pytest


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "slow: Slow tests (TestClient, threads)")


@pytest.fixture(autouse=True)
def fresh_service_health():
    """Each test starts with an empty source health registry."""
    from api.services.service_health import reset_service_health
    reset_service_health()
    yield
    reset_service_health()


@pytest.fixture
def grid():
    """Multi-day widget grid: 6AM-11PM at 48px per hour."""
    from api.services.calendar_layout import GridConfig
    return GridConfig(start_hour=6, end_hour=23, hour_height_px=48.0, min_event_height_px=22.0)


@pytest.fixture
def day():
    return date(2026, 3, 10)


@pytest.fixture
def make_event(day):
    """
    Factory for canonical timed events on the fixture day.

    Usage:
        event = make_event("a", 9, 10.5)   # 9:00 - 10:30
    """
    from api.services.calendar_events import CalendarEvent, EventSource

    def _make(event_id, start_hour, end_hour, all_day=False, source=EventSource.INTERNAL, on=None):
        base = datetime.combine(on or day, time.min)
        start = base + timedelta(minutes=round(start_hour * 60))
        end = base + timedelta(minutes=round(end_hour * 60))
        return CalendarEvent(
            id=event_id,
            title=f"Event {event_id}",
            start=start,
            end=end,
            is_all_day=all_day,
            source=source,
        )

    return _make


@pytest.fixture
def internal_record():
    """A well-formed company event row."""
    return {
        "id": "c1",
        "title": "Team Meeting",
        "start_time": "2026-03-10T09:00:00",
        "end_time": "2026-03-10T10:00:00",
        "all_day": False,
        "event_type": "meeting",
        "location": "Office",
        "meeting_url": None,
        "is_active": True,
    }


@pytest.fixture
def external_record():
    """A well-formed Google Calendar event resource."""
    return {
        "id": "g1",
        "summary": "Client Call",
        "start": {"dateTime": "2026-03-10T09:30:00"},
        "end": {"dateTime": "2026-03-10T10:30:00"},
        "colorId": "9",
        "hangoutLink": "https://meet.google.com/abc-defg-hij",
        "status": "confirmed",
    }
