from .thresholds import (
    ThresholdConfig,
    get_thresholds,
    THRESHOLDS,
    CONFIDENCE_THRESHOLD,
    DISPLAY_CONFIDENCE_THRESHOLD,
)
from .settings import Settings, get_settings, settings

__all__ = [
    "ThresholdConfig",
    "get_thresholds",
    "THRESHOLDS",
    "CONFIDENCE_THRESHOLD",
    "DISPLAY_CONFIDENCE_THRESHOLD",
    "Settings", "get_settings", "settings"
]
