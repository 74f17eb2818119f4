"""
Google Calendar event source for the portal calendar.

Fetches raw Google Calendar API event resources for the visible range. The
OAuth flow lives elsewhere; this source only needs an access token.
Normalization happens in calendar_events, not here.
"""
import logging
from typing import Optional

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from api.services.calendar_range import DateRange
from api.services.resilience import (
    GOOGLE_API_RETRY,
    SourceFetchError,
    TransientSourceError,
    is_retryable_status,
    retry_sync,
)
from api.utils.datetime_utils import to_aware_local

logger = logging.getLogger(__name__)

SOURCE_NAME = "google_calendar"


class GoogleCalendarSource:
    """
    Read-only Google Calendar fetcher.

    Provides the external event records for the layout pipeline.
    """

    def __init__(
        self,
        access_token: str,
        calendar_id: str = "primary",
        max_results: int = 250,
        tz=None,
    ):
        """
        Initialize the source.

        Args:
            access_token: OAuth access token from the connection flow
            calendar_id: Calendar to read
            max_results: Page size for events.list
            tz: Local zone used to express the range bounds
        """
        self.access_token = access_token
        self.calendar_id = calendar_id
        self.max_results = max_results
        self.tz = tz
        self._service = None

    @property
    def service(self):
        """Get or create Google Calendar API service."""
        if self._service is None:
            credentials = Credentials(token=self.access_token)
            self._service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
        return self._service

    def close(self):
        """Close the API service's HTTP connection."""
        if self._service is not None:
            self._service.close()
            self._service = None

    def fetch_events(self, date_range: DateRange) -> list[dict]:
        """
        Fetch every event resource that starts inside the range.

        Args:
            date_range: Visible window (naive local times)

        Returns:
            Raw event resources, each tagged with "calendarId"

        Raises:
            SourceFetchError: if the API call fails
        """
        try:
            return self._fetch_pages(date_range)
        except SourceFetchError:
            raise
        except Exception as e:
            logger.error(f"Failed to fetch Google Calendar events: {e}")
            raise SourceFetchError(SOURCE_NAME, str(e)) from e

    @retry_sync(GOOGLE_API_RETRY)
    def _fetch_pages(self, date_range: DateRange) -> list[dict]:
        params = {
            "calendarId": self.calendar_id,
            "timeMin": to_aware_local(date_range.start, self.tz).isoformat(),
            "timeMax": to_aware_local(date_range.end, self.tz).isoformat(),
            "maxResults": self.max_results,
            "singleEvents": True,
            "orderBy": "startTime",
        }

        items: list[dict] = []
        page_token: Optional[str] = None
        while True:
            if page_token:
                params["pageToken"] = page_token
            try:
                result = self.service.events().list(**params).execute()
            except HttpError as e:
                status = getattr(e.resp, "status", None)
                status = int(status) if status is not None else None
                error_cls = TransientSourceError if status and is_retryable_status(status) else SourceFetchError
                raise error_cls(SOURCE_NAME, f"Google API error {status}: {e}", status_code=status) from e

            for item in result.get("items", []):
                items.append({**item, "calendarId": self.calendar_id})

            page_token = result.get("nextPageToken")
            if not page_token:
                break

        logger.debug(f"Fetched {len(items)} Google Calendar events for {date_range.start.date()}")
        return items


# Singleton source built from app settings
_google_source: Optional[GoogleCalendarSource] = None


def get_google_source(settings=None) -> Optional[GoogleCalendarSource]:
    """
    Get the Google source, or None if Google Calendar is not connected.

    Without arguments the app-wide instance is returned so the API service is
    built once. Passing settings builds a new, unshared source.
    """
    global _google_source
    if settings is not None:
        return _build_google_source(settings) if settings.google_enabled else None

    from config.settings import settings as app_settings
    if not app_settings.google_enabled:
        return None
    if _google_source is None:
        _google_source = _build_google_source(app_settings)
    return _google_source


def close_google_source():
    """Release the app-wide source's API service (app shutdown)."""
    global _google_source
    if _google_source is not None:
        _google_source.close()
        _google_source = None


def _build_google_source(settings) -> GoogleCalendarSource:
    return GoogleCalendarSource(
        access_token=settings.google_access_token,
        calendar_id=settings.google_calendar_id,
        max_results=settings.google_max_results,
        tz=settings.local_tz,
    )
