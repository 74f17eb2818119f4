"""
Event Source Health Registry for the portal calendar.

Tracks availability of the two event sources:
- internal_events (company events in the managed backend)
- google_calendar (the user's connected Google Calendar)

A failed source is a quiet, non-blocking status for the widget: the other
source's events still render. The registry records failures so the widget can
show "Some events could not be loaded" and the /health endpoint can report it.

Usage:
    from api.services.service_health import mark_service_healthy, mark_service_failed

    mark_service_healthy("internal_events")
    mark_service_failed("google_calendar", "401 Unauthorized")

    summary = get_service_health().get_summary()
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ServiceStatus(str, Enum):
    """Source availability status."""
    HEALTHY = "healthy"
    UNAVAILABLE = "unavailable"
    DISABLED = "disabled"
    UNKNOWN = "unknown"


# Source name -> description
SERVICE_CONFIG = {
    "internal_events": "Company calendar events (managed backend)",
    "google_calendar": "Google Calendar API",
}


@dataclass
class ServiceState:
    """Current state of a source."""
    status: ServiceStatus = ServiceStatus.UNKNOWN
    last_check: Optional[datetime] = None
    last_healthy: Optional[datetime] = None
    last_failed: Optional[datetime] = None
    failure_count: int = 0
    consecutive_failures: int = 0
    last_error: Optional[str] = None


class ServiceHealthRegistry:
    """
    Registry tracking health of the event sources.

    Thread-safe singleton; source fetches may complete on worker threads.
    """

    _instance: Optional["ServiceHealthRegistry"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ServiceHealthRegistry":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._states: dict[str, ServiceState] = {}
        self._state_lock = threading.Lock()

        for service in SERVICE_CONFIG:
            self._states[service] = ServiceState()

        self._initialized = True

    def _state(self, service: str) -> ServiceState:
        if service not in self._states:
            self._states[service] = ServiceState()
        return self._states[service]

    def mark_healthy(self, service: str) -> None:
        """
        Mark a source as healthy.

        Resets consecutive failure count and updates timestamps.
        """
        with self._state_lock:
            state = self._state(service)
            now = datetime.now(timezone.utc)
            was_unhealthy = state.status == ServiceStatus.UNAVAILABLE

            state.status = ServiceStatus.HEALTHY
            state.last_check = now
            state.last_healthy = now
            state.consecutive_failures = 0
            state.last_error = None

        if was_unhealthy:
            logger.info(f"Event source recovered: {service}")

    def mark_failed(self, service: str, error: str) -> None:
        """Mark a source as unavailable and count the failure."""
        with self._state_lock:
            state = self._state(service)
            now = datetime.now(timezone.utc)
            was_healthy = state.status in (ServiceStatus.HEALTHY, ServiceStatus.UNKNOWN)

            state.status = ServiceStatus.UNAVAILABLE
            state.last_check = now
            state.last_failed = now
            state.failure_count += 1
            state.consecutive_failures += 1
            state.last_error = error[:500] if error else None  # Truncate long errors

        if was_healthy:
            logger.warning(f"Event source failed: {service} - {(error or '')[:100]}")

    def mark_disabled(self, service: str) -> None:
        """Mark a source as not connected (e.g. Google not linked)."""
        with self._state_lock:
            state = self._state(service)
            state.status = ServiceStatus.DISABLED
            state.last_check = datetime.now(timezone.utc)

    def get_state(self, service: str) -> Optional[ServiceState]:
        """Get current state of a source."""
        with self._state_lock:
            return self._states.get(service)

    def get_summary(self) -> dict:
        """
        Get summary of source health for the /health endpoint.

        Returns dict with:
        - overall_status: healthy/degraded
        - services: dict of source -> status info
        """
        with self._state_lock:
            services = {}
            for service, description in SERVICE_CONFIG.items():
                state = self._states.get(service, ServiceState())
                services[service] = {
                    "status": state.status.value,
                    "description": description,
                    "last_check": state.last_check.isoformat() if state.last_check else None,
                    "last_error": state.last_error,
                    "failure_count": state.failure_count,
                    "consecutive_failures": state.consecutive_failures,
                }
            has_unavailable = any(
                s.status == ServiceStatus.UNAVAILABLE for s in self._states.values()
            )

        return {
            "overall_status": "degraded" if has_unavailable else "healthy",
            "services": services,
            "checked_at": datetime.now(timezone.utc).isoformat(),
        }


# Module-level singleton accessor
_registry: Optional[ServiceHealthRegistry] = None


def get_service_health() -> ServiceHealthRegistry:
    """Get the service health registry singleton."""
    global _registry
    if _registry is None:
        _registry = ServiceHealthRegistry()
    return _registry


def reset_service_health() -> None:
    """Drop the singleton (tests)."""
    global _registry
    with ServiceHealthRegistry._lock:
        ServiceHealthRegistry._instance = None
    _registry = None


# Convenience functions for common operations

def mark_service_healthy(service: str) -> None:
    """Mark a source as healthy (convenience wrapper)."""
    get_service_health().mark_healthy(service)


def mark_service_failed(service: str, error: str) -> None:
    """Mark a source as failed (convenience wrapper)."""
    get_service_health().mark_failed(service, error)


def mark_service_disabled(service: str) -> None:
    """Mark a source as not connected (convenience wrapper)."""
    get_service_health().mark_disabled(service)
