"""
Generation Controller

Owns the request/stream/cancel lifecycle of one prompt at a time.

States:
    streaming:    IDLE -> SENDING -> STREAMING -> COMPLETING -> IDLE
    single-shot:  IDLE -> SENDING -> NON_STREAMING -> IDLE

Protocol:
  1. Subscribe to "stream-delta" and "stream-complete" (as one pair)
  2. Issue generate_stream(prompt, model_id, session_id)
  3. Each delta is reconciled into the turn's assistant text
  4. "stream-complete" is the only end-of-turn signal: its text replaces the
     reconciled text, both subscriptions are released, state returns to IDLE

Cancel only asks the backend to stop. Deltas that arrive afterwards are still
reconciled, and the session ends when "stream-complete" arrives.

Usage:
    controller = GenerationController(backend)
    controller.on_change = lambda turn: redraw(controller.render(turn))
    await controller.send("Hello", model_id="qwen3:14b")
    await controller.wait_idle()
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from chat_engine.config import (
    OVERLAP_WINDOW,
    REASONING_CLOSE_TAG,
    REASONING_OPEN_TAG,
    STREAMING_ENABLED,
)
from chat_engine.core.errors import GenerationError
from chat_engine.core.models import (
    STREAM_COMPLETE_EVENT,
    STREAM_DELTA_EVENT,
    ConversationTurn,
    StreamComplete,
    StreamDelta,
)

from .events import EventBus, SubscriptionPair
from .reconciler import DeltaReconciler
from .tags import TagParseResult, parse

if TYPE_CHECKING:
    from chat_engine.backend.base import Backend

logger = logging.getLogger(__name__)

ERROR_PREFIX = "[ERROR]"
TYPING_PLACEHOLDER = "Typing..."


class ControllerState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    NON_STREAMING = "non_streaming"
    COMPLETING = "completing"


@dataclass
class GenerationSession:
    """The single in-flight generation. Owned by the controller."""

    turn: ConversationTurn
    streaming: bool
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    subscriptions: SubscriptionPair | None = None
    reconciler: DeltaReconciler | None = None
    generating: bool = True
    cancel_requested: bool = False
    done: asyncio.Event = field(default_factory=asyncio.Event)


class GenerationController:
    """
    Drives one conversation against a backend.

    Attributes:
        turns: Conversation so far, oldest first
        state: Current ControllerState
        session: The active GenerationSession, or None when idle
        last_error: GenerationError of the most recent failed session
        on_change: Called with the turn whenever its assistant text changes
    """

    def __init__(
        self,
        backend: Backend,
        events: EventBus | None = None,
        streaming_enabled: bool = STREAMING_ENABLED,
        window: int = OVERLAP_WINDOW,
        open_tag: str = REASONING_OPEN_TAG,
        close_tag: str = REASONING_CLOSE_TAG,
    ):
        self.backend = backend
        self.events = events if events is not None else backend.events
        self.streaming_enabled = streaming_enabled
        self._window = window
        self._open_tag = open_tag
        self._close_tag = close_tag

        self.turns: list[ConversationTurn] = []
        self.state = ControllerState.IDLE
        self.session: GenerationSession | None = None
        self.last_error: GenerationError | None = None

        self.on_change: Callable[[ConversationTurn], None] | None = None

    @property
    def is_generating(self) -> bool:
        return self.session is not None

    @property
    def last_turn(self) -> ConversationTurn | None:
        return self.turns[-1] if self.turns else None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(self, prompt: str, model_id: str | None = None) -> ConversationTurn | None:
        """
        Start a generation for prompt.

        Returns once the backend accepted (or rejected) the request. For the
        streaming path the turn keeps filling in until ``wait_idle()`` returns.

        Returns:
            The new turn, or None if the prompt was blank or a session is active
        """
        text = (prompt or "").strip()
        if not text:
            return None
        if self.session is not None:
            logger.warning("Generation already in progress, prompt ignored")
            return None

        streaming = self.streaming_enabled
        turn = ConversationTurn(text, "" if streaming else TYPING_PLACEHOLDER)
        self.turns.append(turn)
        session = GenerationSession(turn=turn, streaming=streaming)
        self.session = session
        self.last_error = None
        self._set_state(ControllerState.SENDING)
        self._notify(turn)

        if streaming:
            await self._run_streaming(session, text, model_id)
        else:
            await self._run_single_shot(session, text, model_id)
        return turn

    async def cancel(self) -> bool:
        """
        Ask the backend to stop the active generation.

        Returns:
            False if there was nothing to cancel
        """
        session = self.session
        if session is None:
            return False

        session.cancel_requested = True
        if self.state in (ControllerState.SENDING, ControllerState.STREAMING):
            self._set_state(ControllerState.COMPLETING)

        try:
            await self.backend.cancel_generation()
        except Exception as e:
            logger.warning(f"cancel_generation failed: {e}")
        return True

    async def wait_idle(self) -> None:
        """Wait until the active session (if any) has completed."""
        session = self.session
        if session is not None:
            await session.done.wait()

    def new_chat(self) -> bool:
        """Clear the conversation. Refused while generating."""
        if self.session is not None:
            logger.warning("Cannot start a new chat while generating")
            return False
        self.turns.clear()
        self.last_error = None
        return True

    def render(self, turn: ConversationTurn | None = None) -> TagParseResult:
        """Reasoning/visible split of a turn (default: the last one)."""
        turn = turn or self.last_turn
        text = turn.assistant if turn is not None else ""
        return parse(text, self._open_tag, self._close_tag)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def _run_streaming(
        self, session: GenerationSession, prompt: str, model_id: str | None
    ) -> None:
        reconciler = DeltaReconciler(
            session.turn.assistant, self._window, self._open_tag, self._close_tag
        )
        reconciler.on_change = lambda text: self._apply_text(session, text)
        session.reconciler = reconciler

        try:
            # Both listeners exist before the request is issued
            session.subscriptions = self._subscribe(session)
            await self.backend.generate_stream(prompt, model_id, session_id=session.session_id)
        except Exception as e:
            self._fail(session, e)
            return

        if self.session is session and self.state is ControllerState.SENDING:
            self._set_state(ControllerState.STREAMING)

    async def _run_single_shot(
        self, session: GenerationSession, prompt: str, model_id: str | None
    ) -> None:
        self._set_state(ControllerState.NON_STREAMING)
        try:
            response = await self.backend.generate(prompt, model_id)
        except Exception as e:
            self._fail(session, e)
            return

        session.turn.assistant = response
        self._finish(session)

    def _subscribe(self, session: GenerationSession) -> SubscriptionPair:
        delta = self.events.listen(
            STREAM_DELTA_EVENT, lambda payload: self._on_delta(session, payload)
        )
        try:
            complete = self.events.listen(
                STREAM_COMPLETE_EVENT, lambda payload: self._on_complete(session, payload)
            )
        except Exception:
            delta.release()
            raise
        return SubscriptionPair(delta, complete)

    def _on_delta(self, session: GenerationSession, payload: dict[str, Any]) -> None:
        event = StreamDelta.from_payload(payload)
        if not self._accepts(session, event.session_id):
            return
        if self.state is ControllerState.SENDING:
            self._set_state(ControllerState.STREAMING)
        session.reconciler.append(event.delta)

    def _on_complete(self, session: GenerationSession, payload: dict[str, Any]) -> None:
        event = StreamComplete.from_payload(payload)
        if not self._accepts(session, event.session_id):
            return
        self._set_state(ControllerState.COMPLETING)
        if event.text:
            # Completion text replaces the reconciled text
            session.turn.assistant = event.text
        self._finish(session)

    def _accepts(self, session: GenerationSession, event_session_id: str | None) -> bool:
        if self.session is not session:
            logger.debug("Dropping event for a session that is no longer active")
            return False
        if event_session_id is not None and event_session_id != session.session_id:
            logger.debug(f"Dropping event for session {event_session_id}")
            return False
        return True

    def _apply_text(self, session: GenerationSession, text: str) -> None:
        session.turn.assistant = text
        self._notify(session.turn)

    def _fail(self, session: GenerationSession, exc: BaseException) -> None:
        if self.session is not session:
            # Completion already closed the session
            logger.warning(f"Generation request failed after completion: {exc}")
            return
        logger.error(f"Generation failed: {exc}")
        self.last_error = GenerationError(str(exc))
        session.turn.assistant = f"{ERROR_PREFIX} {exc}"
        self._finish(session)

    def _finish(self, session: GenerationSession) -> None:
        session.generating = False
        if session.subscriptions is not None:
            session.subscriptions.release()
        self.session = None
        self._set_state(ControllerState.IDLE)
        session.done.set()
        self._notify(session.turn)

    def _set_state(self, state: ControllerState) -> None:
        if state is not self.state:
            logger.debug(f"[STATE] {self.state.value} -> {state.value}")
            self.state = state

    def _notify(self, turn: ConversationTurn) -> None:
        if self.on_change:
            try:
                self.on_change(turn)
            except Exception:
                logger.exception("on_change callback failed")
