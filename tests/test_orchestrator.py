"""
Tests for the processing orchestrator: dispatch, commit-on-success,
slot bookkeeping, cancellation and busy rejection.
"""
import asyncio

import pytest

from core.processing.orchestrator import CLIPBOARD_SUCCESS_PAYLOAD
from core.state import ProblemInfo, View
from utils.events import ProcessingEvent

from conftest import Gate, find_events, last_payload


def channels(window):
    return [event.name for event in window.events]


class TestProcessPrimary:
    """Queue view: extraction from the newest primary artifact."""

    @pytest.mark.asyncio
    async def test_empty_queue_emits_no_screenshots_only(self, orchestrator, window, state, llm):
        await orchestrator.process_screenshots()

        assert channels(window) == [ProcessingEvent.NO_SCREENSHOTS.value]
        assert state.get_view() is View.QUEUE
        assert state.get_problem_info() is None
        assert not orchestrator.primary_slot.active
        assert not orchestrator.secondary_slot.active
        llm.analyze_image_file.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_window_does_nothing(self, orchestrator, window, queues, llm):
        queues.primary.append("shot1.png")
        window.destroy()

        await orchestrator.process_screenshots()

        assert window.events == []
        llm.analyze_image_file.assert_not_called()

    @pytest.mark.asyncio
    async def test_image_scenario(self, orchestrator, window, queues, state, llm):
        queues.primary.append("shot1.png")

        await orchestrator.process_screenshots()

        assert channels(window) == [
            ProcessingEvent.INITIAL_START.value,
            ProcessingEvent.PROBLEM_EXTRACTED.value,
        ]
        payload = last_payload(window.events, ProcessingEvent.PROBLEM_EXTRACTED)
        assert payload["problem_statement"] == "2+2=4"
        assert payload["validation_type"] == "manual"
        assert payload["difficulty"] == "custom"
        assert payload["input_format"]["description"] == "Generated from screenshot"

        assert state.get_problem_info().problem_statement == "2+2=4"
        assert state.get_view() is View.RESULTS
        assert not orchestrator.primary_slot.active
        llm.analyze_image_file.assert_awaited_once()
        assert llm.analyze_image_file.await_args.args[0] == "shot1.png"

    @pytest.mark.asyncio
    async def test_newest_artifact_is_analyzed(self, orchestrator, queues, llm):
        queues.primary.extend(["old.png", "new.png"])

        await orchestrator.process_screenshots()

        assert llm.analyze_image_file.await_args.args[0] == "new.png"

    @pytest.mark.asyncio
    async def test_audio_scenario(self, orchestrator, window, queues, state, llm):
        queues.primary.append("voice.mp3")
        views_at_extraction = []

        original_send = window.send

        def send(channel, payload=None):
            if channel == ProcessingEvent.PROBLEM_EXTRACTED.value:
                views_at_extraction.append(state.get_view())
            original_send(channel, payload)

        window.send = send

        await orchestrator.process_screenshots()

        llm.analyze_audio_file.assert_awaited_once()
        llm.analyze_image_file.assert_not_called()
        assert views_at_extraction == [View.RESULTS]
        assert last_payload(window.events, ProcessingEvent.PROBLEM_EXTRACTED) == {
            "problem_statement": "what is two plus two",
            "input_format": {},
            "output_format": {},
            "constraints": [],
            "test_cases": [],
        }
        assert not orchestrator.primary_slot.active

    @pytest.mark.asyncio
    async def test_audio_suffix_is_case_insensitive(self, orchestrator, queues, llm):
        queues.primary.append("VOICE.WAV")

        await orchestrator.process_screenshots()

        llm.analyze_audio_file.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_analysis_leaves_state_and_clears_slot(self, orchestrator, window, queues, state, llm):
        previous = ProblemInfo.from_screenshot("earlier problem")
        state.set_problem_info(previous)
        queues.primary.append("shot1.png")
        llm.analyze_image_file.side_effect = RuntimeError("model offline")

        await orchestrator.process_screenshots()

        assert channels(window) == [
            ProcessingEvent.INITIAL_START.value,
            ProcessingEvent.INITIAL_SOLUTION_ERROR.value,
        ]
        assert last_payload(window.events, ProcessingEvent.INITIAL_SOLUTION_ERROR) == "model offline"
        assert state.get_problem_info() == previous
        assert not orchestrator.primary_slot.active

    @pytest.mark.asyncio
    async def test_failed_audio_analysis_clears_slot(self, orchestrator, window, queues, state, llm):
        queues.primary.append("voice.m4a")
        llm.analyze_audio_file.side_effect = RuntimeError("unsupported")

        await orchestrator.process_screenshots()

        assert find_events(window.events, ProcessingEvent.INITIAL_SOLUTION_ERROR)
        assert state.get_problem_info() is None
        assert not orchestrator.primary_slot.active

    @pytest.mark.asyncio
    async def test_response_without_text_is_an_error(self, orchestrator, window, queues, state, llm):
        queues.primary.append("shot1.png")
        llm.analyze_image_file.return_value = {"unexpected": True}

        await orchestrator.process_screenshots()

        assert find_events(window.events, ProcessingEvent.INITIAL_SOLUTION_ERROR)
        assert state.get_problem_info() is None


class TestProcessDebug:
    """Any non-queue view runs the debug pass over the auxiliary queue."""

    @pytest.mark.asyncio
    async def test_empty_extra_queue(self, orchestrator, window, state, llm):
        state.set_view(View.RESULTS)

        await orchestrator.process_screenshots()

        assert channels(window) == [ProcessingEvent.NO_SCREENSHOTS.value]
        assert not orchestrator.secondary_slot.active
        llm.generate_solution.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_problem_info(self, orchestrator, window, queues, state, llm):
        state.set_view(View.RESULTS)
        queues.extra.append("dbg1.png")

        await orchestrator.process_screenshots()

        assert channels(window) == [
            ProcessingEvent.DEBUG_START.value,
            ProcessingEvent.DEBUG_ERROR.value,
        ]
        assert last_payload(window.events, ProcessingEvent.DEBUG_ERROR) == "No problem info available"
        llm.generate_solution.assert_not_called()
        llm.debug_solution_with_images.assert_not_called()
        assert not orchestrator.secondary_slot.active
        assert state.has_debugged() is False

    @pytest.mark.asyncio
    async def test_successful_debug_pass(self, orchestrator, window, queues, state, llm):
        state.set_problem_info(ProblemInfo.from_screenshot("2+2=4"))
        state.set_view(View.RESULTS)
        queues.extra.extend(["dbg1.png", "dbg2.png"])

        await orchestrator.process_screenshots()

        assert channels(window) == [
            ProcessingEvent.DEBUG_START.value,
            ProcessingEvent.DEBUG_SUCCESS.value,
        ]
        assert last_payload(window.events, ProcessingEvent.DEBUG_SUCCESS) == {
            "solution": {"code": "print(2 + 2)"}
        }
        problem, code, paths = llm.debug_solution_with_images.await_args.args
        assert problem["problem_statement"] == "2+2=4"
        assert code == "print(4)"
        assert paths == ["dbg1.png", "dbg2.png"]
        assert state.has_debugged() is True
        assert not orchestrator.secondary_slot.active

    @pytest.mark.asyncio
    async def test_debug_failure(self, orchestrator, window, queues, state, llm):
        state.set_problem_info(ProblemInfo.from_screenshot("2+2=4"))
        state.set_view(View.DEBUG)
        queues.extra.append("dbg1.png")
        llm.debug_solution_with_images.side_effect = RuntimeError("vision failed")

        await orchestrator.process_screenshots()

        assert last_payload(window.events, ProcessingEvent.DEBUG_ERROR) == "vision failed"
        assert state.has_debugged() is False
        assert not orchestrator.secondary_slot.active

    @pytest.mark.asyncio
    async def test_solution_without_code_is_a_debug_error(self, orchestrator, window, queues, state, llm):
        state.set_problem_info(ProblemInfo.from_screenshot("2+2=4"))
        state.set_view(View.RESULTS)
        queues.extra.append("dbg1.png")
        llm.generate_solution.return_value = {"solution": {}}

        await orchestrator.process_screenshots()

        assert find_events(window.events, ProcessingEvent.DEBUG_ERROR)
        llm.debug_solution_with_images.assert_not_called()


class TestModes:

    @pytest.mark.asyncio
    async def test_mcq(self, orchestrator, window, queues, state, llm):
        queues.primary.append("question.png")

        await orchestrator.process_mcq()

        payload = last_payload(window.events, ProcessingEvent.PROBLEM_EXTRACTED)
        assert payload["problem_statement"] == "B) 4"
        assert payload["difficulty"] == "easy"
        assert payload["validation_type"] == "manual"
        assert payload["output_format"]["type"] == "string"
        assert payload["output_format"]["subtype"] == "text"
        assert state.get_problem_info().problem_statement == "B) 4"
        assert not orchestrator.primary_slot.active

    @pytest.mark.asyncio
    async def test_mcq_empty_queue(self, orchestrator, window, llm):
        await orchestrator.process_mcq()

        assert channels(window) == [ProcessingEvent.NO_SCREENSHOTS.value]
        llm.analyze_image_mcq.assert_not_called()

    @pytest.mark.asyncio
    async def test_coding_strips_fences_and_copies(self, orchestrator, window, capture, clipboard, state, llm):
        await orchestrator.process_coding()

        assert capture.calls == [False]
        assert clipboard.texts == ["print(1)"]
        assert channels(window) == [ProcessingEvent.SOLUTION_SUCCESS.value]
        assert last_payload(window.events, ProcessingEvent.SOLUTION_SUCCESS) == CLIPBOARD_SUCCESS_PAYLOAD
        assert state.get_problem_info() is None
        assert state.get_view() is View.QUEUE
        assert not orchestrator.primary_slot.active

    @pytest.mark.asyncio
    async def test_coding_failure(self, orchestrator, window, capture, clipboard):
        capture.error = OSError("screen locked")

        await orchestrator.process_coding()

        assert last_payload(window.events, ProcessingEvent.INITIAL_SOLUTION_ERROR) == "screen locked"
        assert clipboard.texts == []
        assert not orchestrator.primary_slot.active

    @pytest.mark.asyncio
    async def test_coding_discards_the_fresh_capture(self, orchestrator, capture, llm):
        await orchestrator.process_coding()
        llm.analyze_image_coding.side_effect = RuntimeError("model offline")
        await orchestrator.process_coding()

        assert capture.discarded == ["/tmp/fresh.png", "/tmp/fresh.png"]

    @pytest.mark.asyncio
    async def test_coding_capture_failure_discards_nothing(self, orchestrator, capture):
        capture.error = OSError("screen locked")

        await orchestrator.process_coding()

        assert capture.discarded == []

    @pytest.mark.asyncio
    async def test_coding_analysis_failure(self, orchestrator, window, clipboard, state, llm):
        llm.analyze_image_coding.side_effect = RuntimeError("quota exceeded")

        await orchestrator.process_coding()

        assert channels(window) == [ProcessingEvent.INITIAL_SOLUTION_ERROR.value]
        assert last_payload(window.events, ProcessingEvent.INITIAL_SOLUTION_ERROR) == "quota exceeded"
        assert clipboard.texts == []
        assert state.get_problem_info() is None
        assert not orchestrator.primary_slot.active

    @pytest.mark.asyncio
    async def test_coding_response_without_text(self, orchestrator, window, clipboard, llm):
        llm.analyze_image_coding.return_value = {"candidates": []}

        await orchestrator.process_coding()

        assert channels(window) == [ProcessingEvent.INITIAL_SOLUTION_ERROR.value]
        assert clipboard.texts == []
        assert not orchestrator.primary_slot.active

    @pytest.mark.asyncio
    async def test_coding_strips_language_tag(self, orchestrator, clipboard, llm):
        llm.analyze_image_coding.return_value = {"text": "```cpp\nint main(){}\n```"}

        await orchestrator.process_coding()

        assert clipboard.texts == ["int main(){}"]

    @pytest.mark.asyncio
    async def test_mcq_failure_keeps_previous_problem(self, orchestrator, window, queues, state, llm):
        previous = ProblemInfo.from_screenshot("earlier problem")
        state.set_problem_info(previous)
        queues.primary.append("question.png")
        llm.analyze_image_mcq.side_effect = RuntimeError("model offline")

        await orchestrator.process_mcq()

        assert channels(window) == [
            ProcessingEvent.INITIAL_START.value,
            ProcessingEvent.INITIAL_SOLUTION_ERROR.value,
        ]
        assert state.get_problem_info() == previous
        assert not orchestrator.primary_slot.active


class TestCancellation:

    def test_cancel_all_is_idempotent(self, orchestrator, state):
        state.set_has_debugged(True)

        orchestrator.cancel_all()
        orchestrator.cancel_all()

        assert state.has_debugged() is False
        assert not orchestrator.has_active_request

    @pytest.mark.asyncio
    async def test_late_result_is_discarded(self, orchestrator, window, queues, state, llm):
        gate = Gate(result={"text": "too late"})
        llm.analyze_image_file.side_effect = gate.call
        queues.primary.append("shot1.png")

        task = asyncio.create_task(orchestrator.process_screenshots())
        await gate.wait_entered()
        assert orchestrator.primary_slot.active

        orchestrator.cancel_all()
        assert not orchestrator.primary_slot.active

        gate.release.set()
        await task

        assert channels(window) == [ProcessingEvent.INITIAL_START.value]
        assert state.get_problem_info() is None

    @pytest.mark.asyncio
    async def test_late_error_is_discarded(self, orchestrator, window, queues, state, llm):
        gate = Gate(error=RuntimeError("aborted"))
        llm.debug_solution_with_images.side_effect = gate.call
        state.set_problem_info(ProblemInfo.from_screenshot("2+2=4"))
        state.set_view(View.RESULTS)
        queues.extra.append("dbg1.png")

        task = asyncio.create_task(orchestrator.process_screenshots())
        await gate.wait_entered()
        orchestrator.cancel_all()
        gate.release.set()
        await task

        assert channels(window) == [ProcessingEvent.DEBUG_START.value]
        assert state.has_debugged() is False

    @pytest.mark.asyncio
    async def test_new_request_after_cancel_is_not_cleared_by_the_old_one(self, orchestrator, window, queues, state, llm):
        first = Gate(result={"text": "stale"})
        llm.analyze_image_file.side_effect = first.call
        queues.primary.append("shot1.png")

        stale = asyncio.create_task(orchestrator.process_screenshots())
        await first.wait_entered()
        orchestrator.cancel_all()
        # The first run moved to results; a reset returns to the queue view
        state.set_view(View.QUEUE)

        second = Gate(result={"text": "fresh"})
        llm.analyze_image_file.side_effect = second.call
        fresh = asyncio.create_task(orchestrator.process_screenshots())
        await second.wait_entered()

        first.release.set()
        await stale
        assert orchestrator.primary_slot.active

        second.release.set()
        await fresh
        assert last_payload(window.events, ProcessingEvent.PROBLEM_EXTRACTED)["problem_statement"] == "fresh"
        assert not orchestrator.primary_slot.active


class TestBusyGuard:

    @pytest.mark.asyncio
    async def test_second_primary_command_is_rejected(self, orchestrator, window, queues, state, llm):
        gate = Gate(result={"text": "2+2=4"})
        llm.analyze_image_file.side_effect = gate.call
        queues.primary.append("shot1.png")

        first = asyncio.create_task(orchestrator.process_screenshots())
        await gate.wait_entered()

        await orchestrator.process_mcq()
        await orchestrator.process_coding()

        assert channels(window) == [ProcessingEvent.INITIAL_START.value]
        llm.analyze_image_mcq.assert_not_called()
        llm.analyze_image_coding.assert_not_called()

        gate.release.set()
        await first
        assert gate.calls == 1
        assert state.get_problem_info().problem_statement == "2+2=4"

    @pytest.mark.asyncio
    async def test_primary_and_secondary_run_concurrently(self, orchestrator, window, queues, state, llm):
        gate = Gate(result={"text": "new problem"})
        llm.analyze_image_mcq.side_effect = gate.call
        state.set_problem_info(ProblemInfo.from_screenshot("2+2=4"))
        state.set_view(View.RESULTS)
        queues.primary.append("question.png")
        queues.extra.append("dbg1.png")

        mcq = asyncio.create_task(orchestrator.process_mcq())
        await gate.wait_entered()

        await orchestrator.process_screenshots()
        assert find_events(window.events, ProcessingEvent.DEBUG_SUCCESS)

        gate.release.set()
        await mcq
        assert not orchestrator.has_active_request


class TestPassThroughAudio:

    @pytest.mark.asyncio
    async def test_base64_audio(self, orchestrator, window, llm):
        llm.analyze_audio_from_base64.return_value = {"text": "hello"}

        result = await orchestrator.process_audio_base64("AAAA", "audio/webm")

        assert result == {"text": "hello"}
        llm.analyze_audio_from_base64.assert_awaited_once_with("AAAA", "audio/webm")
        assert window.events == []
        assert not orchestrator.has_active_request

    @pytest.mark.asyncio
    async def test_audio_file(self, orchestrator, llm):
        result = await orchestrator.process_audio_file("voice.mp3")

        assert result == {"text": "what is two plus two"}
        llm.analyze_audio_file.assert_awaited_once_with("voice.mp3")
