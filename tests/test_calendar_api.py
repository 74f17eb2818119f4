"""
Tests for Calendar API endpoints.
"""
import pytest

# These tests use TestClient which initializes the app (slow)
pytestmark = pytest.mark.slow
from fastapi.testclient import TestClient
from unittest.mock import patch, MagicMock
from datetime import datetime

import httpx

from api.main import app
from api.services.company_events import close_company_source
from api.services.resilience import SourceFetchError


client = TestClient(app)

NOW = datetime(2026, 3, 10, 9, 50)


@pytest.fixture
def mock_company_source():
    """Company source returning two overlapping events."""
    mock = MagicMock()
    mock.fetch_events.return_value = [
        {
            "id": "c1",
            "title": "Team Meeting",
            "start_time": "2026-03-10T10:00:00",
            "end_time": "2026-03-10T11:00:00",
            "event_type": "meeting",
        },
        {
            "id": "c2",
            "title": "Broker Open",
            "start_time": "2026-03-10",
            "all_day": True,
        },
    ]
    return mock


@pytest.fixture
def mock_google_source():
    """Google source returning one event overlapping the company meeting."""
    mock = MagicMock()
    mock.fetch_events.return_value = [
        {
            "id": "g1",
            "summary": "Client Call",
            "start": {"dateTime": "2026-03-10T10:30:00"},
            "end": {"dateTime": "2026-03-10T11:30:00"},
        }
    ]
    return mock


@pytest.fixture
def patched_sources(mock_company_source, mock_google_source):
    with patch("api.routes.calendar.get_company_source", return_value=mock_company_source), \
         patch("api.routes.calendar.get_google_source", return_value=mock_google_source), \
         patch("api.routes.calendar._now", return_value=NOW):
        yield


class TestLayoutEndpoint:
    """Test /api/calendar/layout endpoint."""

    def test_layout_endpoint_exists(self, patched_sources):
        """Should return the merged layout."""
        response = client.get("/api/calendar/layout?anchor=2026-03-10&days=3")
        assert response.status_code == 200

    def test_merges_sources(self, patched_sources):
        """Overlapping events from both sources should share a cluster."""
        data = client.get("/api/calendar/layout?anchor=2026-03-10&days=1").json()

        [day] = data["days"]
        assert day["date"] == "2026-03-10"
        assert [r["event_id"] for r in day["rects"]] == ["internal:c1", "external:g1"]
        assert all(r["lane_count_in_cluster"] == 2 for r in day["rects"])
        assert [e["id"] for e in day["all_day_events"]] == ["internal:c2"]
        assert data["degraded"] is False

    def test_range_and_grid(self, patched_sources):
        """Should describe the visible range and grid."""
        data = client.get("/api/calendar/layout?anchor=2026-03-10&days=2").json()
        assert data["range"] == {"start": "2026-03-10T00:00:00", "end": "2026-03-12T00:00:00", "days": 2}
        assert data["view_days"] == 2
        assert len(data["days"]) == 2
        assert data["hour_labels"][0]["top"] == 0

    def test_navigate_next(self, patched_sources, mock_company_source):
        """Should shift the window by the view width."""
        data = client.get("/api/calendar/layout?anchor=2026-03-10&days=3&navigate=next").json()
        assert data["anchor"] == "2026-03-13"
        date_range = mock_company_source.fetch_events.call_args.args[0]
        assert date_range.start == datetime(2026, 3, 13)

    def test_navigate_today(self, patched_sources):
        """Should reset to today."""
        data = client.get("/api/calendar/layout?anchor=2026-05-01&days=1&navigate=today").json()
        assert data["anchor"] == "2026-03-10"

    def test_defaults_to_today(self, patched_sources):
        data = client.get("/api/calendar/layout").json()
        assert data["anchor"] == "2026-03-10"

    def test_next_meeting(self, patched_sources):
        """Should report the meeting starting within the hour."""
        data = client.get("/api/calendar/layout?anchor=2026-03-10&days=1").json()
        assert data["next_meeting"]["id"] == "internal:c1"
        assert data["next_meeting_text"] == "In 10 min"

    def test_now_marker(self, patched_sources):
        data = client.get("/api/calendar/layout?anchor=2026-03-10&days=1").json()
        assert data["now"]["visible"] is True
        assert data["now"]["now"] == "2026-03-10T09:50:00"

    @pytest.mark.parametrize("query", [
        "days=4",
        "days=0",
        "anchor=not-a-date",
        "navigate=sideways",
    ])
    def test_bad_parameters(self, patched_sources, query):
        """Should return 400 for invalid parameters."""
        response = client.get(f"/api/calendar/layout?{query}")
        assert response.status_code == 400

    def test_google_failure_degrades(self, patched_sources, mock_google_source):
        """A failed Google fetch should still render company events."""
        mock_google_source.fetch_events.side_effect = SourceFetchError(
            "google_calendar", "401 Unauthorized", status_code=401
        )

        response = client.get("/api/calendar/layout?anchor=2026-03-10&days=1")

        assert response.status_code == 200
        data = response.json()
        assert data["degraded"] is True
        assert [r["event_id"] for r in data["days"][0]["rects"]] == ["internal:c1"]
        external = next(s for s in data["sources"] if s["source"] == "external")
        assert external["status"] == "failed"
        assert external["message"].startswith("Calendar connection expired")

    def test_google_not_connected(self, mock_company_source):
        """Without a Google connection only company events are shown."""
        with patch("api.routes.calendar.get_company_source", return_value=mock_company_source), \
             patch("api.routes.calendar.get_google_source", return_value=None), \
             patch("api.routes.calendar._now", return_value=NOW):
            data = client.get("/api/calendar/layout?anchor=2026-03-10&days=1").json()

        external = next(s for s in data["sources"] if s["source"] == "external")
        assert external["status"] == "missing"
        assert data["degraded"] is False

    def test_reuses_backend_client(self):
        """Repeated layout requests should share one backend HTTP client."""
        created = []
        real_client = httpx.Client

        def handler(request):
            return httpx.Response(200, json=[])

        def make_client(**kwargs):
            c = real_client(transport=httpx.MockTransport(handler), **kwargs)
            created.append(c)
            return c

        close_company_source()
        try:
            with patch("api.services.company_events.httpx.Client", side_effect=make_client), \
                 patch("api.routes.calendar.get_google_source", return_value=None), \
                 patch("api.routes.calendar._now", return_value=NOW):
                for _ in range(3):
                    response = client.get("/api/calendar/layout?anchor=2026-03-10&days=1")
                    assert response.status_code == 200
                    internal = next(s for s in response.json()["sources"] if s["source"] == "internal")
                    assert internal["status"] == "ok"
        finally:
            close_company_source()

        assert len(created) == 1
        assert created[0].is_closed


class TestSlotEndpoint:
    """Test /api/calendar/slot endpoint."""

    def test_maps_click_to_intent(self):
        """Should snap the click and return a one-hour create intent."""
        from config.settings import settings

        y = (14.5 - settings.grid_start_hour) * settings.hour_height_px
        response = client.post("/api/calendar/slot", json={"date": "2026-03-10", "y": y})

        assert response.status_code == 200
        data = response.json()
        assert data["start"] == "2026-03-10T14:30:00"
        assert data["end"] == "2026-03-10T15:30:00"
        assert data["all_day"] is False

    def test_all_day_row(self):
        """Omitting y should produce an all-day intent."""
        data = client.post("/api/calendar/slot", json={"date": "2026-03-10"}).json()
        assert data["all_day"] is True
        assert data["end"] == "2026-03-11T00:00:00"

    def test_custom_duration(self):
        data = client.post("/api/calendar/slot", json={"date": "2026-03-10", "y": 0, "duration_minutes": 30}).json()
        assert data["end"].endswith(":30:00")

    @pytest.mark.parametrize("body", [
        {"date": "03/10/2026", "y": 10},
        {"date": "2026-03-10", "y": 10, "duration_minutes": 0},
        {"y": 10},
    ])
    def test_invalid(self, body):
        response = client.post("/api/calendar/slot", json=body)
        assert response.status_code == 400


class TestNowEndpoint:
    """Test /api/calendar/now endpoint."""

    def test_inside_grid(self):
        with patch("api.routes.calendar._now", return_value=datetime(2026, 3, 10, 14, 30)):
            data = client.get("/api/calendar/now").json()

        from config.settings import settings
        assert data["visible"] is True
        assert data["top"] == (14.5 - settings.grid_start_hour) * settings.hour_height_px

    def test_outside_grid(self):
        with patch("api.routes.calendar._now", return_value=datetime(2026, 3, 10, 3, 0)):
            data = client.get("/api/calendar/now").json()
        assert data["visible"] is False
        assert data["top"] is None
        assert data["scroll_top"] == 0


class TestHealthEndpoint:

    def test_health(self):
        """Should report source health."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert set(data["services"]) == {"internal_events", "google_calendar"}

    def test_health_degraded_after_failure(self):
        from api.services.service_health import mark_service_failed
        mark_service_failed("google_calendar", "401 Unauthorized")

        data = client.get("/health").json()
        assert data["status"] == "degraded"
        assert data["services"]["google_calendar"]["last_error"] == "401 Unauthorized"
