"""
Shared fixtures and fakes.

Nothing here touches a real keyboard hook, screen, clipboard or network.
"""
import asyncio
from typing import Callable, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from core.processing.orchestrator import ProcessingOrchestrator
from core.shortcuts.registry import ShortcutRegistry
from core.state import SessionState
from core.window import ConsoleWindow, HeadlessWindowManager
from utils.events import channel_name
from utils.metrics import clear_metrics


def find_events(events: list, name) -> list:
    """Recorded LifecycleEvents on one channel."""
    wanted = channel_name(name)
    return [e for e in events if e.name == wanted]


def last_payload(events: list, name):
    """Payload of the most recent event on a channel, or None."""
    matches = find_events(events, name)
    return matches[-1].payload if matches else None


class FakeShortcutBackend:
    """
    In-memory OS shortcut table.

    external: accelerators some other application already holds
    reserved: accelerators the OS keeps for itself
    """

    def __init__(self, external=(), reserved=()):
        self.external = set(external)
        self.reserved = set(reserved)
        self.handlers: Dict[str, Callable[[], None]] = {}
        self.started = False
        self.stopped = False
        self.register_calls: List[str] = []
        self.unregister_calls: List[str] = []

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False
        self.stopped = True

    def register(self, accelerator: str, handler: Callable[[], None]) -> bool:
        self.register_calls.append(accelerator)
        if accelerator in self.external or accelerator in self.reserved:
            return False
        self.handlers[accelerator] = handler
        return True

    def unregister(self, accelerator: str) -> None:
        self.unregister_calls.append(accelerator)
        self.handlers.pop(accelerator, None)

    def is_registered(self, accelerator: str) -> bool:
        return accelerator in self.handlers

    def is_reserved(self, accelerator: str) -> bool:
        return accelerator in self.reserved

    def press(self, accelerator: str) -> None:
        """Simulate the OS firing a key event."""
        self.handlers[accelerator]()


class InMemoryQueues:
    """Primary and auxiliary artifact queues."""

    def __init__(self, primary: Optional[List[str]] = None, extra: Optional[List[str]] = None):
        self.primary = list(primary or [])
        self.extra = list(extra or [])
        self.clear_count = 0

    def get_screenshot_queue(self) -> List[str]:
        return list(self.primary)

    def get_extra_screenshot_queue(self) -> List[str]:
        return list(self.extra)

    def clear_queues(self) -> None:
        self.primary.clear()
        self.extra.clear()
        self.clear_count += 1


class CaptureStub:
    """Returns fixed paths; records enqueue flags."""

    def __init__(self, path: str = "/tmp/fresh.png", preview: str = "data:image/png;base64,AAAA"):
        self.path = path
        self.preview = preview
        self.calls: List[bool] = []
        self.error: Optional[Exception] = None
        self.discarded: List[str] = []

    async def take_screenshot(self, enqueue: bool = True) -> str:
        self.calls.append(enqueue)
        if self.error is not None:
            raise self.error
        return self.path

    async def get_image_preview(self, path: str) -> str:
        return self.preview

    def discard(self, path: str) -> None:
        self.discarded.append(path)


class ClipboardStub:

    def __init__(self):
        self.texts: List[str] = []

    def write_text(self, text: str) -> None:
        self.texts.append(text)


class Gate:
    """Blocks an analysis call until released, to hold a slot open."""

    def __init__(self, result=None, error: Optional[Exception] = None):
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.result = result
        self.error = error
        self.calls = 0

    async def call(self, *args, **kwargs):
        self.calls += 1
        self.entered.set()
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.result

    async def wait_entered(self, timeout: float = 2.0) -> None:
        await asyncio.wait_for(self.entered.wait(), timeout)


@pytest.fixture(autouse=True)
def fresh_metrics():
    clear_metrics()
    yield
    clear_metrics()


@pytest.fixture
def backend():
    return FakeShortcutBackend()


@pytest.fixture
def registry(backend):
    reg = ShortcutRegistry(backend=backend)
    yield reg
    reg.teardown()


@pytest.fixture
def window():
    return ConsoleWindow(quiet=True)


@pytest.fixture
def windows(window):
    return HeadlessWindowManager(window)


@pytest.fixture
def queues():
    return InMemoryQueues()


@pytest.fixture
def capture():
    return CaptureStub()


@pytest.fixture
def clipboard():
    return ClipboardStub()


@pytest.fixture
def state():
    return SessionState()


@pytest.fixture
def llm():
    client = AsyncMock()
    client.analyze_image_file.return_value = {"text": "2+2=4"}
    client.analyze_image_mcq.return_value = {"text": "B) 4"}
    client.analyze_image_coding.return_value = {"text": "```python\nprint(1)\n```"}
    client.analyze_audio_file.return_value = {"text": "what is two plus two"}
    client.generate_solution.return_value = {"solution": {"code": "print(4)"}}
    client.debug_solution_with_images.return_value = {"solution": {"code": "print(2 + 2)"}}
    return client


@pytest.fixture
def orchestrator(windows, queues, capture, state, llm, clipboard):
    return ProcessingOrchestrator(windows, queues, capture, state, llm, clipboard=clipboard)
