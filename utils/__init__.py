"""
Utility functions for the desktop assistant.
"""

from .events import ProcessingEvent, LifecycleEvent, ScreenshotTakenEvent
from .metrics import timer, log_latency, get_current_metrics

__all__ = [
    "ProcessingEvent",
    "LifecycleEvent",
    "ScreenshotTakenEvent",
    "timer",
    "log_latency",
    "get_current_metrics",
]
