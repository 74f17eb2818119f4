"""
Company event source for the portal calendar.

Reads the portal's own calendar events from the managed backend's REST API
(PostgREST-style filters). Returns raw rows; normalization happens in
calendar_events.
"""
import logging
from typing import Optional

import httpx

from api.services.calendar_range import DateRange
from api.services.resilience import (
    BACKEND_RETRY,
    SourceFetchError,
    TransientSourceError,
    is_retryable_status,
    retry_sync,
)
from api.utils.datetime_utils import to_aware_local

logger = logging.getLogger(__name__)

SOURCE_NAME = "internal_events"


class CompanyEventsSource:
    """Fetcher for company events stored in the managed backend."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        table: str = "calendar_events",
        timeout: float = 10.0,
        tz=None,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the source.

        Args:
            base_url: Backend base URL (the REST API lives under /rest/v1)
            api_key: Backend anon/service key
            table: Events table name
            timeout: Request timeout in seconds
            tz: Local zone used to express the range bounds
            http_client: Optional pre-built client (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.table = table
        self.timeout = timeout
        self.tz = tz
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=self.timeout)
        return self._http_client

    def close(self):
        """Close HTTP client."""
        if self._http_client:
            self._http_client.close()
            self._http_client = None

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def fetch_events(self, date_range: DateRange) -> list[dict]:
        """
        Fetch active company events starting inside the range.

        Raises:
            SourceFetchError: if the backend cannot be reached or errors
        """
        try:
            return self._fetch(date_range)
        except SourceFetchError:
            raise
        except httpx.TimeoutException as e:
            logger.warning(f"Company events timeout: {e}")
            raise SourceFetchError(SOURCE_NAME, f"request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Company events connection failed: {e}")
            raise SourceFetchError(SOURCE_NAME, f"connection error: {e}") from e

    @retry_sync(BACKEND_RETRY)
    def _fetch(self, date_range: DateRange) -> list[dict]:
        url = f"{self.base_url}/rest/v1/{self.table}"
        params = [
            ("select", "*"),
            ("is_active", "eq.true"),
            ("start_time", f"gte.{to_aware_local(date_range.start, self.tz).isoformat()}"),
            ("start_time", f"lt.{to_aware_local(date_range.end, self.tz).isoformat()}"),
            ("order", "start_time.asc"),
        ]

        response = self.http_client.get(url, params=params, headers=self._headers())
        if response.status_code >= 400:
            status = response.status_code
            error_cls = TransientSourceError if is_retryable_status(status) else SourceFetchError
            raise error_cls(SOURCE_NAME, f"backend returned {status}", status_code=status)

        data = response.json()
        if not isinstance(data, list):
            raise SourceFetchError(SOURCE_NAME, "unexpected response shape")

        logger.debug(f"Fetched {len(data)} company events for {date_range.start.date()}")
        return data


# Singleton source built from app settings
_company_source: Optional[CompanyEventsSource] = None


def get_company_source(settings=None) -> CompanyEventsSource:
    """
    Get the company events source.

    Without arguments the app-wide instance is returned so its HTTP client
    and connection pool are reused across requests. Passing settings builds
    a new, unshared source.
    """
    global _company_source
    if settings is not None:
        return _build_company_source(settings)
    if _company_source is None:
        from config.settings import settings as app_settings
        _company_source = _build_company_source(app_settings)
    return _company_source


def close_company_source():
    """Close the app-wide source's HTTP client (app shutdown)."""
    global _company_source
    if _company_source is not None:
        _company_source.close()
        _company_source = None


def _build_company_source(settings) -> CompanyEventsSource:
    return CompanyEventsSource(
        base_url=settings.backend_url,
        api_key=settings.backend_api_key,
        table=settings.company_events_table,
        timeout=settings.backend_timeout,
        tz=settings.local_tz,
    )
