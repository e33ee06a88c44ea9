"""
Headless presentation window.

The assistant has no UI of its own; this window logs every lifecycle event
and keeps a record of them, and the manager tracks visibility, position and
the always-on-top level the shortcuts ask for.
"""

import logging
from typing import Any, List, Optional, Tuple

from utils.events import LifecycleEvent, ProcessingEvent

logger = logging.getLogger(__name__)

_EVENT_ICONS = {
    ProcessingEvent.NO_SCREENSHOTS.value: "📭",
    ProcessingEvent.INITIAL_START.value: "🔍",
    ProcessingEvent.PROBLEM_EXTRACTED.value: "✅",
    ProcessingEvent.INITIAL_SOLUTION_ERROR.value: "❌",
    ProcessingEvent.DEBUG_START.value: "🐛",
    ProcessingEvent.DEBUG_SUCCESS.value: "✅",
    ProcessingEvent.DEBUG_ERROR.value: "❌",
    ProcessingEvent.SOLUTION_SUCCESS.value: "📋",
    ProcessingEvent.RESET_VIEW.value: "🔄",
    ProcessingEvent.TOGGLE_CHAT.value: "💬",
    ProcessingEvent.SCREENSHOT_TAKEN.value: "📸",
}


def _summarize(payload: Any) -> str:
    if payload is None:
        return ""
    if isinstance(payload, dict):
        if "problem_statement" in payload:
            return str(payload["problem_statement"])[:80]
        return ", ".join(f"{k}={str(v)[:40]}" for k, v in payload.items() if k != "preview")
    return str(payload)[:80]


class ConsoleWindow:
    """Records lifecycle events and logs them instead of rendering them."""

    def __init__(self, quiet: bool = False):
        self.quiet = quiet
        self.events: List[LifecycleEvent] = []
        self.always_on_top: Tuple[bool, str] = (False, "normal")
        self._destroyed = False

    def send(self, channel: str, payload: Any = None) -> None:
        if self._destroyed:
            raise RuntimeError("Window has been destroyed")

        self.events.append(LifecycleEvent(name=channel, payload=payload))
        icon = _EVENT_ICONS.get(channel, "•")
        logger.info(f"{icon} {channel} {_summarize(payload)}".rstrip())
        if not self.quiet and channel == ProcessingEvent.PROBLEM_EXTRACTED.value and isinstance(payload, dict):
            print(f"\n🧩 {payload.get('problem_statement', '')}\n")

    def is_destroyed(self) -> bool:
        return self._destroyed

    def destroy(self) -> None:
        self._destroyed = True

    def set_always_on_top(self, flag: bool, level: str = "normal") -> None:
        self.always_on_top = (flag, level)
        logger.debug(f"Always on top: {flag} ({level})")


class HeadlessWindowManager:
    """WindowAccessor over a single ConsoleWindow."""

    def __init__(self, window: Optional[ConsoleWindow] = None, visible: bool = True):
        self.window = window if window is not None else ConsoleWindow()
        self.visible = visible
        self.position = (0, 0)

    def get_main_window(self) -> Optional[ConsoleWindow]:
        if self.window is None or self.window.is_destroyed():
            return None
        return self.window

    def center_and_show_window(self) -> None:
        self.position = (0, 0)
        self.visible = True
        logger.info("Window centered and shown")

    def toggle_main_window(self) -> None:
        self.visible = not self.visible
        logger.info(f"Window {'shown' if self.visible else 'hidden'}")

    def is_visible(self) -> bool:
        return self.visible

    def move_window(self, dx: int, dy: int) -> None:
        x, y = self.position
        self.position = (x + dx, y + dy)
        logger.debug(f"Window moved to {self.position}")
