"""
Processing orchestrator: turns "process" commands into analysis workflows.

Two independent operation slots:
- primary: screenshot/audio extraction, MCQ mode and coding mode
- secondary: the debug pass over the auxiliary screenshot queue

Every workflow catches failures at its own boundary and reports them as a
lifecycle event; the shared problem record is only written after a
successful extraction. A command aimed at a slot that is already busy is
rejected (logged, no events, no state change) rather than queued.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from core.interfaces import (
    AnalysisClient,
    CaptureService,
    Clipboard,
    MainWindow,
    ScreenshotQueues,
    WindowAccessor,
)
from core.processing.cancellation import CancellationToken, OperationCancelledError, OperationSlot
from core.processing.classifier import ProcessingMode, resolve_mode, strip_code_fences
from core.state import ProblemInfo, SessionState, View
from utils.events import ProcessingEvent, channel_name
from utils.metrics import timer

logger = logging.getLogger(__name__)

CLIPBOARD_SUCCESS_PAYLOAD = {
    "problem_statement": "Solution copied to clipboard!",
    "validation_type": "manual",
    "output_format": {"type": "text", "subtype": "text"},
}


class MissingProblemInfoError(RuntimeError):
    """Debug requested before any problem was extracted."""
    pass


def _error_message(error: Exception) -> str:
    return str(error) or error.__class__.__name__


def _result_text(result: Any) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, dict) and "text" in result:
        return str(result["text"])
    raise ValueError("Analysis response did not include any text")


def _solution_code(result: Any) -> str:
    try:
        return str(result["solution"]["code"])
    except (KeyError, TypeError):
        raise ValueError("Solution response did not include code") from None


class ProcessingOrchestrator:
    """
    Owner of both operation slots and the only writer of the problem record.

    All methods run on the event loop; the awaits on the analysis client are
    the only suspension points.
    """

    def __init__(self,
                 windows: WindowAccessor,
                 queues: ScreenshotQueues,
                 capture: CaptureService,
                 state: SessionState,
                 llm: AnalysisClient,
                 clipboard: Optional[Clipboard] = None):
        self.windows = windows
        self.queues = queues
        self.capture = capture
        self.state = state
        self.llm = llm
        if clipboard is None:
            from core.clipboard import PyperclipClipboard
            clipboard = PyperclipClipboard()
        self.clipboard = clipboard

        self.primary_slot = OperationSlot("primary")
        self.secondary_slot = OperationSlot("secondary")

    # Entry points

    async def process_screenshots(self) -> None:
        """Process the queue (queue view) or run a debug pass (any other view)."""
        main_window = self.windows.get_main_window()
        if main_window is None:
            return

        view = self.state.get_view()
        screenshot_queue = self.queues.get_screenshot_queue() if view is View.QUEUE else []
        last_path = screenshot_queue[-1] if screenshot_queue else None

        mode = resolve_mode(view, last_path)
        if mode is None:
            self._emit(main_window, ProcessingEvent.NO_SCREENSHOTS)
        elif mode is ProcessingMode.DEBUG:
            await self._process_debug(main_window)
        elif mode is ProcessingMode.AUDIO:
            await self._run_extraction(
                main_window,
                mode,
                lambda token: self.llm.analyze_audio_file(last_path, token=token),
                ProblemInfo.from_audio,
            )
        else:
            await self._run_extraction(
                main_window,
                mode,
                lambda token: self.llm.analyze_image_file(last_path, token=token),
                ProblemInfo.from_screenshot,
            )

    async def process_mcq(self) -> None:
        """Answer a multiple-choice question from the newest queued screenshot."""
        main_window = self.windows.get_main_window()
        if main_window is None:
            return

        screenshot_queue = self.queues.get_screenshot_queue()
        if not screenshot_queue:
            self._emit(main_window, ProcessingEvent.NO_SCREENSHOTS)
            return

        last_path = screenshot_queue[-1]
        await self._run_extraction(
            main_window,
            ProcessingMode.MCQ,
            lambda token: self.llm.analyze_image_mcq(last_path, token=token),
            ProblemInfo.from_mcq,
        )

    async def process_coding(self) -> None:
        """
        Capture the screen, generate code for it and put the code on the clipboard.

        Nothing is committed and the view does not change.
        """
        main_window = self.windows.get_main_window()
        if main_window is None:
            return

        stage = ProcessingMode.CODING.value
        token = self.primary_slot.try_open(stage)
        if token is None:
            self._reject_busy(self.primary_slot, stage)
            return

        logger.info("Processing Coding Mode...")
        screenshot_path = None
        try:
            with timer("capture"):
                screenshot_path = await self.capture.take_screenshot(enqueue=False)
            token.raise_if_cancelled()

            with timer(stage):
                result = await self.llm.analyze_image_coding(screenshot_path, token=token)
            token.raise_if_cancelled()

            clean_text = strip_code_fences(_result_text(result))
            self.clipboard.write_text(clean_text)

            self._emit(main_window, ProcessingEvent.SOLUTION_SUCCESS, dict(CLIPBOARD_SUCCESS_PAYLOAD))
            logger.info("Coding solution copied to clipboard")

        except OperationCancelledError:
            logger.info("Discarded coding result: request was cancelled")
        except Exception as e:
            if token.is_cancelled:
                logger.info(f"Discarded coding failure after cancel: {e}")
            else:
                logger.error(f"Coding processing error: {e}")
                self._emit(main_window, ProcessingEvent.INITIAL_SOLUTION_ERROR, _error_message(e))
        finally:
            if screenshot_path is not None:
                self.capture.discard(screenshot_path)
            self.primary_slot.release(token)

    def cancel_all(self) -> None:
        """Abandon whatever is in flight and reset the debug flag. Idempotent."""
        if self.primary_slot.cancel():
            logger.info("Cancelled in-flight primary request")
        if self.secondary_slot.cancel():
            logger.info("Cancelled in-flight debug request")
        self.state.set_has_debugged(False)

    async def process_audio_base64(self, data: str, mime_type: str) -> Dict[str, Any]:
        """Analyze inline base64 audio (chat/voice surface); no slot, no events."""
        with timer("audio"):
            return await self.llm.analyze_audio_from_base64(data, mime_type)

    async def process_audio_file(self, path: str) -> Dict[str, Any]:
        """Analyze an audio file directly; no slot, no events."""
        with timer("audio"):
            return await self.llm.analyze_audio_file(path)

    @property
    def has_active_request(self) -> bool:
        return self.primary_slot.active or self.secondary_slot.active

    # Workflows

    async def _run_extraction(self,
                              main_window: MainWindow,
                              mode: ProcessingMode,
                              analyze: Callable[[CancellationToken], Awaitable[Any]],
                              build: Callable[[str], ProblemInfo]) -> None:
        """Shared skeleton for audio, image and MCQ extraction on the primary slot."""
        stage = mode.value
        token = self.primary_slot.try_open(stage)
        if token is None:
            self._reject_busy(self.primary_slot, stage)
            return

        self._emit(main_window, ProcessingEvent.INITIAL_START)
        self.state.set_view(View.RESULTS)

        try:
            with timer(stage):
                result = await analyze(token)
            token.raise_if_cancelled()

            problem_info = build(_result_text(result))
            self._emit(main_window, ProcessingEvent.PROBLEM_EXTRACTED, problem_info.to_dict())
            self.state.set_problem_info(problem_info)

        except OperationCancelledError:
            logger.info(f"Discarded {stage} result: request was cancelled")
        except Exception as e:
            if token.is_cancelled:
                logger.info(f"Discarded {stage} failure after cancel: {e}")
            else:
                logger.error(f"{stage.capitalize()} processing error: {e}")
                self._emit(main_window, ProcessingEvent.INITIAL_SOLUTION_ERROR, _error_message(e))
        finally:
            self.primary_slot.release(token)

    async def _process_debug(self, main_window: MainWindow) -> None:
        extra_queue = self.queues.get_extra_screenshot_queue()
        if not extra_queue:
            logger.info("No extra screenshots to process")
            self._emit(main_window, ProcessingEvent.NO_SCREENSHOTS)
            return

        token = self.secondary_slot.try_open("debug")
        if token is None:
            self._reject_busy(self.secondary_slot, "debug")
            return

        self._emit(main_window, ProcessingEvent.DEBUG_START)

        try:
            problem_info = self.state.get_problem_info()
            if problem_info is None:
                raise MissingProblemInfoError("No problem info available")
            problem = problem_info.to_dict()

            # Regenerate the baseline the debug pass critiques
            with timer("solution"):
                current_solution = await self.llm.generate_solution(problem, token=token)
            token.raise_if_cancelled()
            current_code = _solution_code(current_solution)

            with timer("debug"):
                debug_result = await self.llm.debug_solution_with_images(
                    problem, current_code, list(extra_queue), token=token
                )
            token.raise_if_cancelled()

            self.state.set_has_debugged(True)
            self._emit(main_window, ProcessingEvent.DEBUG_SUCCESS, debug_result)

        except OperationCancelledError:
            logger.info("Discarded debug result: request was cancelled")
        except Exception as e:
            if token.is_cancelled:
                logger.info(f"Discarded debug failure after cancel: {e}")
            else:
                logger.error(f"Debug processing error: {e}")
                self._emit(main_window, ProcessingEvent.DEBUG_ERROR, _error_message(e))
        finally:
            self.secondary_slot.release(token)

    # Helpers

    def _reject_busy(self, slot: OperationSlot, command: str) -> None:
        logger.warning(f"Ignoring {command} request: {slot.name} slot is busy with {slot.token!r}")

    def _emit(self, main_window: MainWindow, event: ProcessingEvent, payload: Any = None) -> None:
        channel = channel_name(event)
        try:
            if main_window.is_destroyed():
                logger.debug(f"Window destroyed, dropping {channel}")
                return
            main_window.send(channel, payload)
        except Exception as e:
            logger.error(f"Failed to deliver {channel}: {e}")
