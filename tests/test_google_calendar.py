"""
Tests for the Google Calendar event source.
"""
import pytest
from datetime import date, timezone
from unittest.mock import MagicMock, patch

import httplib2
from googleapiclient.errors import HttpError

pytestmark = pytest.mark.unit

from api.services.calendar_range import select_range
from api.services.google_calendar import GoogleCalendarSource, close_google_source, get_google_source
from api.services.resilience import SourceFetchError


RANGE = select_range(date(2026, 3, 10), 1)


def _http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b'{"error": {"message": "failed"}}')


@pytest.fixture
def source():
    """Source with a mocked Calendar API service."""
    src = GoogleCalendarSource(access_token="token", tz=timezone.utc)
    src._service = MagicMock()
    return src


def _list_call(source):
    return source._service.events.return_value.list


class TestFetchEvents:
    """Tests for GoogleCalendarSource.fetch_events()."""

    def test_single_page(self, source):
        """Should return items tagged with the calendar id."""
        _list_call(source).return_value.execute.return_value = {
            "items": [{"id": "g1", "summary": "Call"}],
        }

        items = source.fetch_events(RANGE)

        assert items == [{"id": "g1", "summary": "Call", "calendarId": "primary"}]
        kwargs = _list_call(source).call_args.kwargs
        assert kwargs["calendarId"] == "primary"
        assert kwargs["timeMin"] == "2026-03-10T00:00:00+00:00"
        assert kwargs["timeMax"] == "2026-03-11T00:00:00+00:00"
        assert kwargs["singleEvents"] is True
        assert kwargs["orderBy"] == "startTime"

    def test_follows_pages(self, source):
        """Should follow nextPageToken until exhausted."""
        _list_call(source).return_value.execute.side_effect = [
            {"items": [{"id": "g1"}], "nextPageToken": "p2"},
            {"items": [{"id": "g2"}]},
        ]

        items = source.fetch_events(RANGE)

        assert [i["id"] for i in items] == ["g1", "g2"]
        assert _list_call(source).call_args.kwargs["pageToken"] == "p2"

    def test_empty(self, source):
        _list_call(source).return_value.execute.return_value = {}
        assert source.fetch_events(RANGE) == []

    def test_auth_error_not_retried(self, source):
        """A 401 should fail at once."""
        execute = _list_call(source).return_value.execute
        execute.side_effect = _http_error(401)

        with pytest.raises(SourceFetchError) as exc_info:
            source.fetch_events(RANGE)

        assert exc_info.value.status_code == 401
        assert execute.call_count == 1

    def test_server_error_retried(self, source):
        """A 503 should be retried."""
        execute = _list_call(source).return_value.execute
        execute.side_effect = [_http_error(503), {"items": [{"id": "g1"}]}]

        with patch("api.services.resilience.time.sleep"):
            items = source.fetch_events(RANGE)

        assert [i["id"] for i in items] == ["g1"]
        assert execute.call_count == 2

    def test_unexpected_error_wrapped(self, source):
        """Any other failure should become a SourceFetchError."""
        _list_call(source).return_value.execute.side_effect = RuntimeError("discovery failed")

        with pytest.raises(SourceFetchError):
            source.fetch_events(RANGE)


class TestServiceConstruction:

    def test_builds_service_lazily(self):
        """Should build the Calendar v3 client from the access token."""
        src = GoogleCalendarSource(access_token="token")
        with patch("api.services.google_calendar.build") as mock_build:
            service = src.service
            assert src.service is service

        mock_build.assert_called_once()
        args, kwargs = mock_build.call_args
        assert args[:2] == ("calendar", "v3")
        assert kwargs["credentials"].token == "token"


class TestGetGoogleSource:

    def test_disabled_without_token(self):
        """Should return None when Google is not connected."""
        from config.settings import Settings
        assert get_google_source(Settings(GOOGLE_CALENDAR_ACCESS_TOKEN="")) is None

    def test_enabled(self):
        from config.settings import Settings
        source = get_google_source(Settings(GOOGLE_CALENDAR_ACCESS_TOKEN="abc", GOOGLE_CALENDAR_ID="team"))
        assert source.access_token == "abc"
        assert source.calendar_id == "team"

    def test_app_source_is_shared(self, monkeypatch):
        """Should reuse one source, and so one API service, until closed."""
        from config.settings import Settings
        monkeypatch.setattr("config.settings.settings", Settings(GOOGLE_CALENDAR_ACCESS_TOKEN="abc"))
        close_google_source()

        first = get_google_source()
        assert get_google_source() is first

        first._service = MagicMock()
        service = first._service
        close_google_source()

        service.close.assert_called_once()
        assert get_google_source() is not first
        close_google_source()

    def test_app_source_none_when_disconnected(self, monkeypatch):
        from config.settings import Settings
        monkeypatch.setattr("config.settings.settings", Settings(GOOGLE_CALENDAR_ACCESS_TOKEN=""))
        assert get_google_source() is None
