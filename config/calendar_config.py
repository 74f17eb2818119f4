"""
Calendar Palette Configuration Loader.

Loads event colour palettes from YAML with fallback to the built-in defaults.
"""
import logging
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

# Google Calendar colorId palette
DEFAULT_GOOGLE_COLORS = {
    "1": "#7986cb", "2": "#33b679", "3": "#8e24aa", "4": "#e67c73",
    "5": "#f6bf26", "6": "#f4511e", "7": "#039be5", "8": "#616161",
    "9": "#3f51b5", "10": "#0b8043", "11": "#d50000",
}

# Company event_type palette
DEFAULT_EVENT_TYPE_COLORS = {
    "company": "#10b981",
    "training": "#3b82f6",
    "deadline": "#ef4444",
    "meeting": "#a855f7",
    "personal": "#8b5cf6",
}

DEFAULT_EVENT_COLOR = "#10b981"

# Cached config
_palette: Optional[dict] = None
_palette_path: Optional[Path] = None


def _load_yaml(path: Path) -> dict:
    """Load YAML file with error handling."""
    try:
        if path.exists():
            with open(path, "r") as f:
                return yaml.safe_load(f) or {}
    except Exception as e:
        logger.error(f"Failed to load {path}: {e}")
    return {}


def _resolve_path() -> Path:
    from config.settings import settings
    return _palette_path or settings.palette_path


def get_palette() -> dict:
    """
    Get the merged colour palette.

    Returns:
        Dict with google_colors, event_type_colors and default_color
    """
    global _palette
    if _palette is None:
        loaded = _load_yaml(_resolve_path())
        _palette = {
            "google_colors": {
                **DEFAULT_GOOGLE_COLORS,
                **{str(k): v for k, v in (loaded.get("google_colors") or {}).items()},
            },
            "event_type_colors": {
                **DEFAULT_EVENT_TYPE_COLORS,
                **(loaded.get("event_type_colors") or {}),
            },
            "default_color": loaded.get("default_color") or DEFAULT_EVENT_COLOR,
        }
    return _palette


def reload_config(path: Optional[Path] = None) -> None:
    """Reload the palette, optionally from a different file."""
    global _palette, _palette_path
    _palette = None
    _palette_path = path
    logger.info("Calendar palette reloaded")


def google_color(color_id: Optional[str]) -> str:
    """
    Resolve a Google colorId to a hex colour.

    Unknown or missing ids fall back to the default event colour.
    """
    palette = get_palette()
    if color_id is not None and str(color_id) in palette["google_colors"]:
        return palette["google_colors"][str(color_id)]
    return palette["default_color"]


def event_type_color(event_type: Optional[str]) -> str:
    """Resolve a company event_type to a hex colour."""
    palette = get_palette()
    if event_type:
        color = palette["event_type_colors"].get(event_type.lower())
        if color:
            return color
    return palette["event_type_colors"].get("company", palette["default_color"])
