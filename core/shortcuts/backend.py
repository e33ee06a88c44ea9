"""
OS keyboard-hook backend for global shortcuts.

This is the only module that touches the keyboard hook. It keeps a
process-wide claim table (one owner per key combination), refuses
combinations the platform reserves for itself, and rebuilds the pynput
GlobalHotKeys listener whenever the claimed set changes.

Handlers are invoked on the listener thread; callers that need the asyncio
loop must marshal themselves (ShortcutRegistry does).
"""

import logging
import sys
import threading
from typing import Callable, Dict, Optional, Protocol, Tuple

from .accelerator import Accelerator, AcceleratorError, parse_accelerator

logger = logging.getLogger(__name__)


# Combinations the OS keeps for itself; claiming them silently never fires
RESERVED_COMBINATIONS = {
    "darwin": {
        "cmd+space", "cmd+tab", "cmd+q", "ctrl+cmd+q", "cmd+alt+esc",
        "cmd+shift+3", "cmd+shift+4", "cmd+shift+5",
    },
    "win32": {
        "ctrl+alt+delete", "ctrl+shift+esc", "alt+tab", "alt+f4", "cmd+l",
    },
    "linux": {
        "ctrl+alt+delete", "alt+tab",
    },
}

# canonical combination -> owning backend
_CLAIMS: Dict[str, "PynputShortcutBackend"] = {}
_CLAIMS_LOCK = threading.Lock()


class ShortcutBackend(Protocol):
    """What ShortcutRegistry needs from the OS shortcut table."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def register(self, accelerator: str, handler: Callable[[], None]) -> bool: ...

    def unregister(self, accelerator: str) -> None: ...

    def is_registered(self, accelerator: str) -> bool: ...

    def is_reserved(self, accelerator: str) -> bool: ...


class PynputShortcutBackend:
    """
    Global shortcut backend built on pynput.keyboard.GlobalHotKeys.

    pynput cannot see bindings held by other applications, so "claimed
    elsewhere" means claimed by another backend in this process; reserved
    system combinations are refused up front.
    """

    def __init__(self, platform: str = sys.platform):
        self.platform = platform
        self._handlers: Dict[str, Tuple[Accelerator, Callable[[], None]]] = {}
        self._listener = None
        self._started = False
        self._lock = threading.RLock()

    def _parse(self, accelerator: str) -> Optional[Accelerator]:
        try:
            return parse_accelerator(accelerator, self.platform)
        except AcceleratorError as e:
            logger.error(f"Invalid accelerator {accelerator!r}: {e}")
            return None

    def _reserved(self) -> set:
        key = "linux" if self.platform.startswith("linux") else self.platform
        return RESERVED_COMBINATIONS.get(key, set())

    def is_reserved(self, accelerator: str) -> bool:
        parsed = self._parse(accelerator)
        return parsed is not None and parsed.canonical() in self._reserved()

    def is_registered(self, accelerator: str) -> bool:
        parsed = self._parse(accelerator)
        if parsed is None:
            return False
        with self._lock:
            return parsed.canonical() in self._handlers

    def register(self, accelerator: str, handler: Callable[[], None]) -> bool:
        """
        Claim a combination for this backend.

        Returns:
            False when the accelerator is invalid, reserved, or owned by
            another backend; True otherwise
        """
        parsed = self._parse(accelerator)
        if parsed is None:
            return False

        canonical = parsed.canonical()
        if canonical in self._reserved():
            return False

        with _CLAIMS_LOCK:
            owner = _CLAIMS.get(canonical)
            if owner is not None and owner is not self:
                return False
            _CLAIMS[canonical] = self

        with self._lock:
            self._handlers[canonical] = (parsed, handler)
            self._rebuild_listener()
        return True

    def unregister(self, accelerator: str) -> None:
        parsed = self._parse(accelerator)
        if parsed is None:
            return

        canonical = parsed.canonical()
        with self._lock:
            if self._handlers.pop(canonical, None) is None:
                return
            self._release(canonical)
            self._rebuild_listener()

    def unregister_all(self) -> None:
        with self._lock:
            for canonical in list(self._handlers):
                self._release(canonical)
            self._handlers.clear()
            self._rebuild_listener()

    def start(self) -> None:
        """Start delivering key events to registered handlers."""
        with self._lock:
            self._started = True
            self._rebuild_listener()

    def stop(self) -> None:
        with self._lock:
            self._started = False
            self._stop_listener()

    def _release(self, canonical: str) -> None:
        with _CLAIMS_LOCK:
            if _CLAIMS.get(canonical) is self:
                del _CLAIMS[canonical]

    def _stop_listener(self) -> None:
        if self._listener is not None:
            try:
                self._listener.stop()
            except Exception as e:
                logger.debug(f"Keyboard hook shutdown minor error: {e}")
            self._listener = None

    def _rebuild_listener(self) -> None:
        """GlobalHotKeys takes its mapping at construction, so changes mean a restart."""
        self._stop_listener()
        if not self._started or not self._handlers:
            return

        hotkeys = {parsed.to_pynput(): handler for parsed, handler in self._handlers.values()}
        try:
            self._listener = self._create_listener(hotkeys)
            self._listener.start()
            logger.debug(f"Keyboard hook listening for: {sorted(hotkeys)}")
        except Exception as e:
            self._listener = None
            logger.error(f"Keyboard hook unavailable, shortcuts will not fire: {e}")

    def _create_listener(self, hotkeys: Dict[str, Callable[[], None]]):
        # pynput picks its platform backend at import time; on a headless
        # Linux host that import fails, so it stays local to this call
        from pynput import keyboard
        return keyboard.GlobalHotKeys(hotkeys)
