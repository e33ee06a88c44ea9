"""
Event system for assistant lifecycle communication.

This module centralizes the channel names sent to the presentation layer
and the dataclasses used to record what was emitted, so the orchestrator,
the shortcut router and the window adapters never disagree on a name.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import time


class ProcessingEvent(str, Enum):
    """Lifecycle channels consumed by the presentation layer."""
    NO_SCREENSHOTS = "processing-no-screenshots"
    INITIAL_START = "initial-start"
    PROBLEM_EXTRACTED = "problem-extracted"
    INITIAL_SOLUTION_ERROR = "solution-error"
    DEBUG_START = "debug-start"
    DEBUG_SUCCESS = "debug-success"
    DEBUG_ERROR = "debug-error"
    SOLUTION_SUCCESS = "solution-success"
    RESET_VIEW = "reset-view"
    TOGGLE_CHAT = "toggle-chat"
    SCREENSHOT_TAKEN = "screenshot-taken"


@dataclass
class LifecycleEvent:
    """A single emitted lifecycle event."""
    name: str
    payload: Any = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ScreenshotTakenEvent:
    """Payload for the screenshot-taken channel."""
    path: str
    preview: str

    def as_payload(self) -> dict:
        return {"path": self.path, "preview": self.preview}


def channel_name(event: "ProcessingEvent | str") -> str:
    """Return the wire name for an event enum member or raw channel string."""
    if isinstance(event, ProcessingEvent):
        return event.value
    return str(event)

