"""
Tests for the company events source (managed backend REST API).
"""
import pytest
from datetime import date, timezone
from unittest.mock import patch

import httpx

pytestmark = pytest.mark.unit

from api.services.calendar_range import select_range
from api.services.company_events import CompanyEventsSource, close_company_source, get_company_source
from api.services.resilience import SourceFetchError


RANGE = select_range(date(2026, 3, 10), 3)
UTC = timezone.utc


def _source(handler, **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return CompanyEventsSource(
        base_url="https://backend.example.com/",
        api_key="anon-key",
        tz=UTC,
        http_client=client,
        **kwargs,
    )


class TestCompanyEventsSource:
    """Tests for CompanyEventsSource.fetch_events()."""

    def test_builds_query(self):
        """Should query active events starting inside the range."""
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = request.url
            seen["headers"] = request.headers
            return httpx.Response(200, json=[{"id": "c1"}])

        rows = _source(handler).fetch_events(RANGE)

        assert rows == [{"id": "c1"}]
        url = seen["url"]
        assert url.path == "/rest/v1/calendar_events"
        assert url.params.get("is_active") == "eq.true"
        assert url.params.get_list("start_time") == [
            "gte.2026-03-10T00:00:00+00:00",
            "lt.2026-03-13T00:00:00+00:00",
        ]
        assert url.params.get("order") == "start_time.asc"
        assert seen["headers"]["apikey"] == "anon-key"
        assert seen["headers"]["authorization"] == "Bearer anon-key"

    def test_custom_table(self):
        """Should read from the configured table."""
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, json=[])

        _source(handler, table="portal_events").fetch_events(RANGE)
        assert paths == ["/rest/v1/portal_events"]

    def test_client_error_not_retried(self):
        """A 401 should fail immediately as a SourceFetchError."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, json={"message": "JWT expired"})

        with pytest.raises(SourceFetchError) as exc_info:
            _source(handler).fetch_events(RANGE)

        assert exc_info.value.status_code == 401
        assert len(calls) == 1

    def test_server_error_retried(self):
        """A 503 should be retried before succeeding."""
        responses = iter([httpx.Response(503), httpx.Response(200, json=[{"id": "c9"}])])

        with patch("api.services.resilience.time.sleep") as mock_sleep:
            rows = _source(lambda request: next(responses)).fetch_events(RANGE)

        assert rows == [{"id": "c9"}]
        assert mock_sleep.call_count == 1

    def test_connection_error_wrapped(self):
        """Transport failures should surface as SourceFetchError."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SourceFetchError) as exc_info:
            _source(handler).fetch_events(RANGE)
        assert "connection" in str(exc_info.value)

    def test_timeout_wrapped(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(SourceFetchError) as exc_info:
            _source(handler).fetch_events(RANGE)
        assert "timed out" in str(exc_info.value)

    def test_unexpected_shape(self):
        """Should reject a non-list body."""
        with pytest.raises(SourceFetchError):
            _source(lambda request: httpx.Response(200, json={"rows": []})).fetch_events(RANGE)

    def test_close(self):
        source = _source(lambda request: httpx.Response(200, json=[]))
        source.close()
        assert source._http_client is None


class TestGetCompanySource:

    def test_from_settings(self):
        """Should build from settings."""
        from config.settings import Settings

        s = Settings(
            PORTAL_BACKEND_URL="https://backend.example.com",
            PORTAL_BACKEND_API_KEY="key",
            PORTAL_COMPANY_EVENTS_TABLE="events",
            PORTAL_BACKEND_TIMEOUT=3,
        )
        source = get_company_source(s)
        assert source.base_url == "https://backend.example.com"
        assert source.table == "events"
        assert source.timeout == 3

    def test_app_source_is_shared(self):
        """Should reuse one source, and so one HTTP client, until closed."""
        close_company_source()
        try:
            first = get_company_source()
            assert get_company_source() is first

            client = first.http_client
            assert get_company_source().http_client is client
        finally:
            close_company_source()

        assert client.is_closed
        assert get_company_source() is not first
        close_company_source()

    def test_explicit_settings_not_shared(self):
        """Sources built from explicit settings should not replace the shared one."""
        from config.settings import Settings

        close_company_source()
        shared = get_company_source()
        try:
            assert get_company_source(Settings()) is not shared
            assert get_company_source() is shared
        finally:
            close_company_source()
