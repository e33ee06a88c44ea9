"""
Collaborator interfaces consumed by the shortcut router and the orchestrator.

Window management, capture, queue storage, clipboard and the language-model
client all live outside the core; these Protocols are the whole contract.
Accessors that may have nothing to return use Optional and every call site
checks for None.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from core.processing.cancellation import CancellationToken


@runtime_checkable
class MainWindow(Protocol):
    """The presentation window; receives lifecycle events by channel name."""

    def send(self, channel: str, payload: Any = None) -> None: ...

    def is_destroyed(self) -> bool: ...

    def set_always_on_top(self, flag: bool, level: str = "normal") -> None: ...


@runtime_checkable
class WindowAccessor(Protocol):
    """Window lifecycle and geometry."""

    def get_main_window(self) -> Optional[MainWindow]: ...

    def center_and_show_window(self) -> None: ...

    def toggle_main_window(self) -> None: ...

    def is_visible(self) -> bool: ...

    def move_window(self, dx: int, dy: int) -> None: ...


@runtime_checkable
class ScreenshotQueues(Protocol):
    """Ordered artifact queues, oldest first."""

    def get_screenshot_queue(self) -> List[str]: ...

    def get_extra_screenshot_queue(self) -> List[str]: ...

    def clear_queues(self) -> None: ...


@runtime_checkable
class CaptureService(Protocol):
    """Screen capture. enqueue=False returns a fresh artifact outside both queues."""

    async def take_screenshot(self, enqueue: bool = True) -> str: ...

    async def get_image_preview(self, path: str) -> str: ...

    def discard(self, path: str) -> None: ...


@runtime_checkable
class Clipboard(Protocol):

    def write_text(self, text: str) -> None: ...


@runtime_checkable
class AnalysisClient(Protocol):
    """Language-model client. Every call may be abandoned through its token."""

    async def analyze_audio_file(self, path: str,
                                 token: Optional["CancellationToken"] = None) -> Dict[str, Any]: ...

    async def analyze_audio_from_base64(self, data: str, mime_type: str,
                                        token: Optional["CancellationToken"] = None) -> Dict[str, Any]: ...

    async def analyze_image_file(self, path: str,
                                 token: Optional["CancellationToken"] = None) -> Dict[str, Any]: ...

    async def analyze_image_mcq(self, path: str,
                                token: Optional["CancellationToken"] = None) -> Dict[str, Any]: ...

    async def analyze_image_coding(self, path: str,
                                   token: Optional["CancellationToken"] = None) -> Dict[str, Any]: ...

    async def generate_solution(self, problem_info: Dict[str, Any],
                                token: Optional["CancellationToken"] = None) -> Dict[str, Any]: ...

    async def debug_solution_with_images(self, problem_info: Dict[str, Any], current_code: str,
                                         debug_image_paths: List[str],
                                         token: Optional["CancellationToken"] = None) -> Dict[str, Any]: ...
