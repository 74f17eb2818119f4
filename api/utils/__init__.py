# Portal Calendar API Utilities
"""
Shared utility functions for the portal calendar services.
"""

from api.utils.datetime_utils import (
    hours_since_midnight,
    is_date_only,
    local_midnight,
    local_now,
    parse_timestamp,
    to_local_naive,
)

__all__ = [
    "hours_since_midnight",
    "is_date_only",
    "local_midnight",
    "local_now",
    "parse_timestamp",
    "to_local_naive",
]
