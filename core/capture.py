"""
Screen capture and the two artifact queues.

Screenshots are grabbed with mss and written as PNG files. While the view is
"queue" new artifacts go to the primary queue; in any other view they go to
the auxiliary queue that the debug pass reads. Both queues are bounded and
drop (and delete) their oldest file when full.
"""

import asyncio
import base64
import logging
import uuid
from pathlib import Path
from typing import List

import mss
import mss.tools

from core.state import SessionState, View

logger = logging.getLogger(__name__)


class ScreenshotCapture:
    """mss-backed capture service; also the owner of both artifact queues."""

    def __init__(self, state: SessionState, screenshot_dir: str,
                 max_queue_size: int = 5, monitor: int = 1):
        self.state = state
        self.screenshot_dir = Path(screenshot_dir).expanduser()
        self.max_queue_size = max_queue_size
        self.monitor = monitor
        self._screenshot_queue: List[str] = []
        self._extra_screenshot_queue: List[str] = []

    # Queues

    def get_screenshot_queue(self) -> List[str]:
        return list(self._screenshot_queue)

    def get_extra_screenshot_queue(self) -> List[str]:
        return list(self._extra_screenshot_queue)

    def enqueue(self, path: str) -> None:
        """Add an artifact (screenshot or audio file) to the queue for the current view."""
        if self.state.get_view() is View.QUEUE:
            queue = self._screenshot_queue
        else:
            queue = self._extra_screenshot_queue

        queue.append(path)
        while len(queue) > self.max_queue_size:
            self._delete(queue.pop(0))

    def clear_queues(self) -> None:
        for path in self._screenshot_queue + self._extra_screenshot_queue:
            self._delete(path)
        self._screenshot_queue.clear()
        self._extra_screenshot_queue.clear()

    # Capture

    async def take_screenshot(self, enqueue: bool = True) -> str:
        """
        Grab the configured monitor to a new PNG file.

        Args:
            enqueue: False returns a one-off artifact kept out of both queues

        Returns:
            Path of the written file
        """
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        path = str(self.screenshot_dir / f"{uuid.uuid4()}.png")

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._grab_sync, path)
        logger.debug(f"Screenshot written to {path}")

        if enqueue:
            self.enqueue(path)
        return path

    def _grab_sync(self, path: str) -> None:
        with mss.mss() as sct:
            monitors = sct.monitors
            monitor = monitors[self.monitor] if self.monitor < len(monitors) else monitors[0]
            shot = sct.grab(monitor)
            mss.tools.to_png(shot.rgb, shot.size, output=path)

    async def get_image_preview(self, path: str) -> str:
        """Return the file as a base64 data URL."""
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, Path(path).read_bytes)
        encoded = base64.b64encode(data).decode("utf-8")
        return f"data:image/png;base64,{encoded}"

    def discard(self, path: str) -> None:
        """Delete a one-off artifact that was never enqueued."""
        self._delete(path)

    def _delete(self, path: str) -> None:
        try:
            Path(path).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not delete {path}: {e}")
