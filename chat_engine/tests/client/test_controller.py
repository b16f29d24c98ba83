"""
Unit tests for chat_engine.client.controller module.
"""

import asyncio
from unittest.mock import patch

import pytest

from chat_engine.client.controller import (
    ERROR_PREFIX,
    TYPING_PLACEHOLDER,
    ControllerState,
    GenerationController,
)
from chat_engine.core.errors import BackendError, GenerationError


@pytest.fixture
def controller(backend):
    return GenerationController(backend)


@pytest.fixture
def snapshots(controller):
    """Assistant text every time the controller reports a change."""
    seen = []
    controller.on_change = lambda turn: seen.append(turn.assistant)
    return seen


def gated_stream(backend, gate, before=("Hello",), after=(" world",), final="Hello world."):
    """Stream that pauses on gate between two batches of deltas."""

    async def fake_stream(prompt, model_id=None, session_id=None):
        for delta in before:
            backend.emit_delta(delta, session_id)
        await gate.wait()
        for delta in after:
            backend.emit_delta(delta, session_id)
        backend.emit_complete(final, session_id)

    return fake_stream


class TestSendStreaming:
    """Tests for the streaming path."""

    @pytest.mark.asyncio
    async def test_listeners_attached_before_request(self, controller, backend):
        """Test both subscriptions exist when generate_stream is invoked."""
        counts = []

        async def fake_stream(prompt, model_id=None, session_id=None):
            counts.append(
                (
                    backend.events.listener_count("stream-delta"),
                    backend.events.listener_count("stream-complete"),
                )
            )
            # Emitted before the request even "returns"
            backend.emit_delta("early", session_id)
            backend.emit_complete("early", session_id)

        backend.generate_stream = fake_stream
        turn = await controller.send("Hi", "A")

        assert counts == [(1, 1)]
        assert turn.assistant == "early"
        assert backend.events.listener_count() == 0

    @pytest.mark.asyncio
    async def test_completion_overwrites_reconciled_text(self, controller, backend, snapshots):
        """Test the completion text replaces reconciliation drift."""
        backend.queue_response(["The quick", "quick brown fox"])

        turn = await controller.send("Hi", "A")

        assert "The quick brown fox" in snapshots
        # In-memory completion is the raw concatenation
        assert turn.assistant == "The quickquick brown fox"
        assert controller.state is ControllerState.IDLE
        assert not controller.is_generating

    @pytest.mark.asyncio
    async def test_empty_completion_keeps_reconciled_text(self, controller, backend):
        """Test an empty final text leaves the reconciled text in place."""

        async def fake_stream(prompt, model_id=None, session_id=None):
            backend.emit_delta("Okay", session_id)
            backend.emit_delta("Okay so", session_id)
            backend.emit_complete("", session_id)

        backend.generate_stream = fake_stream
        turn = await controller.send("Hi")

        assert turn.assistant == "Okay so"

    @pytest.mark.asyncio
    async def test_passes_prompt_model_and_session(self, controller, backend):
        """Test the request carries trimmed prompt, model id and session id."""
        await controller.send("  Hi  ", "B")

        command, prompt, model_id, session_id = backend.calls[-1]
        assert (command, prompt, model_id) == ("generate_stream", "Hi", "B")
        assert session_id

    @pytest.mark.asyncio
    async def test_subscriptions_released_after_completion(self, controller, backend):
        """Test listeners are gone once the turn completes."""
        await controller.send("Hi")
        assert backend.events.listener_count() == 0

    @pytest.mark.asyncio
    async def test_blank_prompt_ignored(self, controller, backend):
        """Test blank prompts start nothing."""
        assert await controller.send("   ") is None
        assert controller.turns == []
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_second_send_refused_while_generating(self, controller, backend):
        """Test only one session can be active."""
        gate = asyncio.Event()
        backend.generate_stream = gated_stream(backend, gate)

        task = asyncio.create_task(controller.send("first"))
        await asyncio.sleep(0)

        assert controller.is_generating
        assert await controller.send("second") is None
        assert len(controller.turns) == 1

        gate.set()
        await task
        assert controller.turns[0].assistant == "Hello world."

    @pytest.mark.asyncio
    async def test_events_for_other_session_dropped(self, controller, backend):
        """Test deltas and completions with a foreign session id are ignored."""
        gate = asyncio.Event()
        backend.generate_stream = gated_stream(backend, gate)

        task = asyncio.create_task(controller.send("Hi"))
        await asyncio.sleep(0)

        backend.emit_delta("stale", "old-session")
        backend.emit_complete("stale reply", "old-session")

        assert controller.is_generating
        assert controller.turns[0].assistant == "Hello"

        gate.set()
        await task
        assert controller.turns[0].assistant == "Hello world."

    @pytest.mark.asyncio
    async def test_wait_idle(self, controller, backend):
        """Test wait_idle returns once completion fires."""
        gate = asyncio.Event()
        backend.generate_stream = gated_stream(backend, gate)

        task = asyncio.create_task(controller.send("Hi"))
        await asyncio.sleep(0)
        waiter = asyncio.create_task(controller.wait_idle())
        await asyncio.sleep(0)
        assert not waiter.done()

        gate.set()
        await asyncio.wait_for(waiter, timeout=1)
        await task
        assert controller.state is ControllerState.IDLE


class TestCancel:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_delta_after_cancel_is_reconciled(self, controller, backend, snapshots):
        """Test fragments arriving after cancel still reach the turn."""
        gate = asyncio.Event()
        backend.generate_stream = gated_stream(backend, gate)

        task = asyncio.create_task(controller.send("Hi"))
        await asyncio.sleep(0)
        assert controller.state is ControllerState.STREAMING

        assert await controller.cancel() is True
        assert controller.state is ControllerState.COMPLETING
        assert controller.is_generating
        assert ("cancel_generation",) in backend.calls

        gate.set()
        await task

        assert "Hello world" in snapshots
        assert snapshots.index("Hello world") < snapshots.index("Hello world.")
        assert controller.turns[0].assistant == "Hello world."
        assert controller.state is ControllerState.IDLE

    @pytest.mark.asyncio
    async def test_cancel_when_idle(self, controller):
        """Test cancel with no session does nothing."""
        assert await controller.cancel() is False
        assert controller.state is ControllerState.IDLE

    @pytest.mark.asyncio
    async def test_cancel_failure_is_logged(self, controller, backend):
        """Test a failing cancel request does not raise."""
        gate = asyncio.Event()
        backend.generate_stream = gated_stream(backend, gate)
        backend.fail["cancel_generation"] = BackendError("not running")

        task = asyncio.create_task(controller.send("Hi"))
        await asyncio.sleep(0)
        assert await controller.cancel() is True

        gate.set()
        await task
        assert controller.state is ControllerState.IDLE

    @pytest.mark.asyncio
    async def test_in_memory_stream_stops_on_cancel(self, backend):
        """Test in-memory backend stops emitting after a cancel request."""
        backend.chunk_delay = 0.01
        backend.queue_response("one two three four five six")
        controller = GenerationController(backend)

        task = asyncio.create_task(controller.send("Hi"))
        await asyncio.sleep(0.015)
        await controller.cancel()
        await task

        assert controller.turns[0].assistant.startswith("one")
        assert controller.turns[0].assistant != "one two three four five six"
        assert controller.state is ControllerState.IDLE


class TestFailures:
    """Tests for request failure handling."""

    @pytest.mark.asyncio
    async def test_stream_request_failure(self, controller, backend):
        """Test failed start request writes an error turn and releases listeners."""
        backend.fail["generate_stream"] = BackendError("offline")

        turn = await controller.send("Hi")

        assert turn.assistant == f"{ERROR_PREFIX} offline"
        assert isinstance(controller.last_error, GenerationError)
        assert backend.events.listener_count() == 0
        assert controller.state is ControllerState.IDLE
        assert not controller.is_generating

    @pytest.mark.asyncio
    async def test_subscription_failure_releases_first_listener(self, controller, backend):
        """Test a failed completion subscription undoes the delta one."""
        listen = backend.events.listen

        def flaky_listen(event, handler):
            if event == "stream-complete":
                raise RuntimeError("bus closed")
            return listen(event, handler)

        with patch.object(backend.events, "listen", side_effect=flaky_listen):
            turn = await controller.send("Hi")

        assert turn.assistant == f"{ERROR_PREFIX} bus closed"
        assert backend.events.listener_count() == 0
        assert not any(call[0] == "generate_stream" for call in backend.calls)

    @pytest.mark.asyncio
    async def test_failure_after_completion_keeps_reply(self, controller, backend):
        """Test an error raised after completion does not overwrite the turn."""

        async def fake_stream(prompt, model_id=None, session_id=None):
            backend.emit_complete("done", session_id)
            raise BackendError("late transport error")

        backend.generate_stream = fake_stream
        turn = await controller.send("Hi")

        assert turn.assistant == "done"
        assert controller.last_error is None

    @pytest.mark.asyncio
    async def test_next_send_after_failure(self, controller, backend):
        """Test the controller accepts a new prompt after a failure."""
        backend.fail["generate_stream"] = BackendError("offline")
        await controller.send("Hi")
        del backend.fail["generate_stream"]

        turn = await controller.send("Again")
        assert turn.assistant == "You said: Again"
        assert controller.last_error is None


class TestSingleShot:
    """Tests for the non-streaming path."""

    @pytest.mark.asyncio
    async def test_single_shot_reply(self, backend, snapshots):
        """Test single-shot shows a placeholder then the reply."""
        controller = GenerationController(backend, streaming_enabled=False)
        controller.on_change = lambda turn: snapshots.append(turn.assistant)
        backend.queue_response("Hello there")

        turn = await controller.send("Hi", "A")

        assert snapshots[0] == TYPING_PLACEHOLDER
        assert turn.assistant == "Hello there"
        assert ("generate", "Hi", "A") in backend.calls
        assert backend.events.listener_count() == 0
        assert controller.state is ControllerState.IDLE

    @pytest.mark.asyncio
    async def test_single_shot_failure(self, backend):
        """Test single-shot failure writes the error text."""
        controller = GenerationController(backend, streaming_enabled=False)
        backend.fail["generate"] = BackendError("model not loaded")

        turn = await controller.send("Hi")

        assert turn.assistant == f"{ERROR_PREFIX} model not loaded"
        assert controller.last_error.message == "model not loaded"

    @pytest.mark.asyncio
    async def test_cancel_single_shot_keeps_state(self, backend):
        """Test cancel during single-shot only asks the backend to stop."""
        gate = asyncio.Event()

        async def slow_generate(prompt, model_id=None):
            await gate.wait()
            return "late reply"

        backend.generate = slow_generate
        controller = GenerationController(backend, streaming_enabled=False)

        task = asyncio.create_task(controller.send("Hi"))
        await asyncio.sleep(0)
        assert await controller.cancel() is True
        assert controller.state is ControllerState.NON_STREAMING

        gate.set()
        turn = await task
        assert turn.assistant == "late reply"


class TestConversation:
    """Tests for conversation helpers."""

    @pytest.mark.asyncio
    async def test_render_splits_reasoning(self, controller, backend):
        """Test render parses the last turn."""
        backend.queue_response(["<think><think>plan", "</think>Answer"])
        await controller.send("Hi")

        result = controller.render()
        assert result.reasoning == "plan"
        assert result.visible == "Answer"

    def test_render_without_turns(self, controller):
        """Test render with an empty conversation."""
        assert controller.render().visible == ""

    @pytest.mark.asyncio
    async def test_new_chat(self, controller):
        """Test new_chat clears turns when idle."""
        await controller.send("Hi")
        assert controller.new_chat() is True
        assert controller.turns == []

    @pytest.mark.asyncio
    async def test_new_chat_refused_while_generating(self, controller, backend):
        """Test new_chat is refused during a generation."""
        gate = asyncio.Event()
        backend.generate_stream = gated_stream(backend, gate)

        task = asyncio.create_task(controller.send("Hi"))
        await asyncio.sleep(0)
        assert controller.new_chat() is False

        gate.set()
        await task
        assert len(controller.turns) == 1
