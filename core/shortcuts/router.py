"""
Action router: the binding table from global shortcuts to assistant actions.

Each entry names one action, its preferred accelerator and the fallbacks to
try when the OS refuses it. Handlers hold no state of their own; they call
straight into the orchestrator or a window/capture collaborator.
"""

import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from core.interfaces import CaptureService, ScreenshotQueues, WindowAccessor
from core.processing.orchestrator import ProcessingOrchestrator
from core.state import SessionState, View
from utils.events import ProcessingEvent, ScreenshotTakenEvent, channel_name

from .registry import ShortcutCallback, ShortcutRegistry

logger = logging.getLogger(__name__)

# Delay before an always-on-top window is relaxed back to the floating level (macOS)
TOGGLE_RELAX_DELAY = 0.1


@dataclass
class ShortcutSpec:
    """One row of the shortcut table."""
    action: str
    primary: str
    fallbacks: List[str] = field(default_factory=list)


DEFAULT_SHORTCUTS = [
    ShortcutSpec("Show/Center Window", "CommandOrControl+Shift+Space",
                 ["CommandOrControl+Shift+S", "Alt+Shift+Space"]),
    ShortcutSpec("Take Screenshot", "CommandOrControl+H",
                 ["CommandOrControl+Shift+H", "Alt+Shift+H"]),
    ShortcutSpec("Process Screenshots", "CommandOrControl+Enter",
                 ["CommandOrControl+Shift+Enter", "Alt+Shift+Enter"]),
    ShortcutSpec("Reset Queues", "CommandOrControl+R",
                 ["CommandOrControl+Shift+R", "Alt+Shift+R"]),
    ShortcutSpec("Move Window Left", "Alt+CommandOrControl+Left"),
    ShortcutSpec("Move Window Right", "Alt+CommandOrControl+Right"),
    ShortcutSpec("Move Window Down", "Alt+CommandOrControl+Down"),
    ShortcutSpec("Move Window Up", "Alt+CommandOrControl+Up"),
    ShortcutSpec("MCQ Mode", "CommandOrControl+Shift+M"),
    ShortcutSpec("Coding Mode", "CommandOrControl+Shift+C"),
    ShortcutSpec("Toggle Chat", "Alt+Shift+L"),
    ShortcutSpec("Toggle Window", "CommandOrControl+B",
                 ["CommandOrControl+Shift+B", "Alt+Shift+B", "CommandOrControl+T"]),
]


def build_shortcut_table(overrides: Optional[Dict[str, List[str]]] = None) -> List[ShortcutSpec]:
    """
    Apply {action: [primary, *fallbacks]} overrides to the default table.

    Unknown actions are logged and ignored.
    """
    overrides = dict(overrides or {})
    table = []
    for spec in DEFAULT_SHORTCUTS:
        accelerators = overrides.pop(spec.action, None)
        if accelerators:
            table.append(ShortcutSpec(spec.action, accelerators[0], list(accelerators[1:])))
        else:
            table.append(ShortcutSpec(spec.action, spec.primary, list(spec.fallbacks)))

    for action in overrides:
        logger.warning(f"Ignoring shortcut override for unknown action: {action}")
    return table


class ActionRouter:
    """Registers the shortcut table and implements each action."""

    def __init__(self,
                 registry: ShortcutRegistry,
                 orchestrator: ProcessingOrchestrator,
                 windows: WindowAccessor,
                 capture: CaptureService,
                 queues: ScreenshotQueues,
                 state: SessionState,
                 overrides: Optional[Dict[str, List[str]]] = None,
                 move_step: int = 60,
                 platform: str = sys.platform):
        self.registry = registry
        self.orchestrator = orchestrator
        self.windows = windows
        self.capture = capture
        self.queues = queues
        self.state = state
        self.move_step = move_step
        self.platform = platform
        self.table = build_shortcut_table(overrides)

    def handlers(self) -> Dict[str, ShortcutCallback]:
        """action -> callback"""
        step = self.move_step
        return {
            "Show/Center Window": self.show_window,
            "Take Screenshot": self.take_screenshot,
            "Process Screenshots": self.process_screenshots,
            "Reset Queues": self.reset_queues,
            "Move Window Left": self._mover("left", -step, 0),
            "Move Window Right": self._mover("right", step, 0),
            "Move Window Down": self._mover("down", 0, step),
            "Move Window Up": self._mover("up", 0, -step),
            "MCQ Mode": self.process_mcq,
            "Coding Mode": self.process_coding,
            "Toggle Chat": self.toggle_chat,
            "Toggle Window": self.toggle_window,
        }

    def register_all(self) -> Dict[str, str]:
        """
        Register every table entry with fallback negotiation.

        Returns:
            {action: accelerator} for the shortcuts that ended up bound
        """
        logger.info("=== Starting Global Shortcuts Registration ===")
        logger.info(f"Platform: {self.platform}")

        handlers = self.handlers()
        for spec in self.table:
            self.registry.register_with_fallback(
                spec.primary,
                spec.fallbacks,
                handlers[spec.action],
                spec.action,
                action=spec.action,
            )

        self.registry.log_summary()
        return self.registry.working_shortcuts()

    # Actions

    def show_window(self) -> None:
        logger.info("Show/Center window shortcut pressed...")
        self.windows.center_and_show_window()

    async def take_screenshot(self) -> None:
        main_window = self.windows.get_main_window()
        if main_window is None:
            return

        logger.info("Taking screenshot...")
        try:
            screenshot_path = await self.capture.take_screenshot()
            preview = await self.capture.get_image_preview(screenshot_path)
            event = ScreenshotTakenEvent(path=screenshot_path, preview=preview)
            main_window.send(channel_name(ProcessingEvent.SCREENSHOT_TAKEN), event.as_payload())
        except Exception as e:
            logger.error(f"Error capturing screenshot: {e}")

    async def process_screenshots(self) -> None:
        logger.info("Process screenshots shortcut pressed...")
        await self.orchestrator.process_screenshots()

    def reset_queues(self) -> None:
        logger.info("Reset pressed. Cancelling requests and resetting queues...")
        self.orchestrator.cancel_all()

        self.queues.clear_queues()
        logger.info("Cleared queues.")

        self.state.set_view(View.QUEUE)

        main_window = self.windows.get_main_window()
        if main_window is not None and not main_window.is_destroyed():
            main_window.send(channel_name(ProcessingEvent.RESET_VIEW))

    def _mover(self, direction: str, dx: int, dy: int) -> Callable[[], None]:
        def move() -> None:
            logger.info(f"Moving window {direction}.")
            self.windows.move_window(dx, dy)
        return move

    async def process_mcq(self) -> None:
        logger.info("MCQ Mode shortcut pressed")
        await self.orchestrator.process_mcq()

    async def process_coding(self) -> None:
        logger.info("Coding Mode shortcut pressed")
        await self.orchestrator.process_coding()

    def toggle_chat(self) -> None:
        logger.info("Chat shortcut pressed")
        main_window = self.windows.get_main_window()
        if main_window is not None:
            main_window.send(channel_name(ProcessingEvent.TOGGLE_CHAT))

    async def toggle_window(self) -> None:
        logger.info("Toggle Window shortcut pressed")
        self.windows.toggle_main_window()

        main_window = self.windows.get_main_window()
        if main_window is None or self.platform != "darwin" or not self.windows.is_visible():
            return

        # Force the window to the front, then let it float normally again
        main_window.set_always_on_top(True, "normal")
        await asyncio.sleep(TOGGLE_RELAX_DELAY)
        if not main_window.is_destroyed():
            main_window.set_always_on_top(True, "floating")
