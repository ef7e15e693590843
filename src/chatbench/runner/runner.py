"""
Chat Runner

Drives one streaming exchange at a time: picks the message the run writes
into, feeds provider deltas into it through the session store, and handles
finish, failure and cancellation.

Run states: IDLE -> STARTING -> STREAMING -> FINISHED | CANCELLED | FAILED.
Only one run may be in flight across the whole store.
"""

import asyncio
import inspect
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from ..constants import PRIMARY_DELTA_FIELD, REASONING_DELTA_FIELD, RUN_ERROR_PREFIX
from ..exceptions import ConfigurationError, RunInProgressError
from ..llm.base import BaseProvider, StreamEventKind
from ..llm.factory import get_provider
from ..llm.stream_parser import iter_until_cancelled
from ..sessions.manager import SessionStore
from ..sessions.session import Message, MessageRole
from ..user_config import ModelConfig
from ..utils import generate_id


class RunState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    FAILED = "failed"


ACTIVE_STATES = {RunState.STARTING, RunState.STREAMING}


@dataclass
class RunAccumulator:
    """
    Accumulated text of the target message during a run.
    `text` is what the message shows: content and reasoning deltas merged in
    arrival order. `content` and `reasoning` keep the two sources apart.
    """

    text: str = ""
    content: str = ""
    reasoning: str = ""

    def append(self, delta: str, source: str = PRIMARY_DELTA_FIELD):
        self.text += delta
        if source == REASONING_DELTA_FIELD:
            self.reasoning += delta
        else:
            self.content += delta


@dataclass
class RunOutcome:
    state: RunState
    session_id: str
    target_message_id: str
    created_target: bool
    accumulator: RunAccumulator
    error: str | None = None

    @property
    def text(self) -> str:
        return self.accumulator.text


@dataclass
class _ActiveRun:
    session_id: str
    target_message_id: str
    created_target: bool
    history: list[Message]
    config: ModelConfig
    provider: BaseProvider
    cancel_event: asyncio.Event
    accumulator: RunAccumulator
    on_finish: Callable[[str], Any] | None = None


class ChatRunner:
    """Single-flight streaming runner bound to one session store."""

    def __init__(
        self,
        store: SessionStore,
        provider_resolver: Callable[[Any], BaseProvider | None] = get_provider,
    ):
        self.store = store
        self.provider_resolver = provider_resolver
        self._state = RunState.IDLE
        self._active: _ActiveRun | None = None
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state in ACTIVE_STATES

    @property
    def target_message_id(self) -> str | None:
        return self._active.target_message_id if self._active and self.is_running else None

    def start(self, model_config_id: str, on_finish: Callable[[str], Any] | None = None) -> asyncio.Task:
        """
        Start a run on the current session and return the task streaming it.

        Raises ConfigurationError or RunInProgressError without touching any
        state when the run cannot start. Must be called from a running loop.
        """
        if self.is_running:
            raise RunInProgressError("A generation is already in progress")

        config = self.store.get_model_config(model_config_id)
        if config is None:
            raise ConfigurationError("Select a model configuration first")

        session = self.store.current_session
        if session is None or not session.messages:
            raise ConfigurationError("The current session has no messages to respond to")

        provider = self.provider_resolver(config.provider_id)
        if provider is None:
            raise ConfigurationError(f"Provider {config.provider_id} not found")

        loop = asyncio.get_running_loop()

        self._state = RunState.STARTING
        self.store.set_generating(True)

        history = session.messages
        last_message = history[-1]
        accumulator = RunAccumulator()
        if last_message.role == MessageRole.ASSISTANT:
            # Continue the last assistant message
            target_id = last_message.id
            accumulator.text = last_message.content
            accumulator.content = last_message.content
            created_target = False
        else:
            target_id = generate_id()
            self.store.add_message(
                role=MessageRole.ASSISTANT,
                content="",
                index=len(history),
                id=target_id,
                session_id=session.id,
            )
            created_target = True

        run = _ActiveRun(
            session_id=session.id,
            target_message_id=target_id,
            created_target=created_target,
            history=history,
            config=config,
            provider=provider,
            cancel_event=asyncio.Event(),
            accumulator=accumulator,
            on_finish=on_finish,
        )
        self._active = run
        logger.info(
            f"Run started on session {session.id} with {provider.name} "
            f"({'new' if created_target else 'continued'} message {target_id})"
        )
        self._task = loop.create_task(self._stream(run), name=f"chat-run-{target_id}")
        return self._task

    async def run(self, model_config_id: str, on_finish: Callable[[str], Any] | None = None) -> RunOutcome:
        """Start a run and wait for its outcome."""
        return await self.start(model_config_id, on_finish)

    def stop(self) -> bool:
        """
        Cancel the active run. No delta is applied once this returns.
        Returns False when nothing was running.
        """
        if not self.is_running or self._active is None:
            return False
        self._active.cancel_event.set()
        self._state = RunState.CANCELLED
        self.store.set_generating(False)
        logger.info(f"Run on message {self._active.target_message_id} cancelled")
        return True

    async def wait(self) -> RunOutcome | None:
        """Wait for the most recent run to settle."""
        if self._task is None:
            return None
        return await self._task

    async def _stream(self, run: _ActiveRun) -> RunOutcome:
        if self._active is run and self._state == RunState.STARTING:
            self._state = RunState.STREAMING

        error = None
        try:
            events = run.provider.stream(run.history, run.config, run.cancel_event)
            async with aclosing(events), aclosing(iter_until_cancelled(events, run.cancel_event)) as guarded:
                async for event in guarded:
                    if run.cancel_event.is_set():
                        break
                    if event.kind == StreamEventKind.DELTA:
                        run.accumulator.append(event.text, event.source)
                        self.store.update_message(
                            run.target_message_id,
                            session_id=run.session_id,
                            content=run.accumulator.text,
                        )
                    elif event.kind == StreamEventKind.DONE:
                        break
                    elif event.kind == StreamEventKind.ERROR:
                        error = event.error or "Unknown error"
                        break
        except asyncio.CancelledError:
            run.cancel_event.set()
            self._settle(run, RunState.CANCELLED)
            raise
        except Exception as e:
            logger.exception(f"Run on message {run.target_message_id} crashed: {e}")
            error = str(e) or e.__class__.__name__

        if run.cancel_event.is_set():
            return self._settle(run, RunState.CANCELLED)

        if error is not None:
            logger.warning(f"Run on message {run.target_message_id} failed: {error}")
            self.store.add_message(
                role=MessageRole.ERROR,
                content=f"{RUN_ERROR_PREFIX}{error}",
                meta={"errorDetails": error},
                session_id=run.session_id,
            )
            return self._settle(run, RunState.FAILED, error)

        outcome = self._settle(run, RunState.FINISHED)
        logger.info(f"Run on message {run.target_message_id} finished ({len(run.accumulator.text)} chars)")
        if run.on_finish is not None:
            try:
                result = run.on_finish(run.accumulator.text)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Run completion callback failed: {e}")
        return outcome

    def _settle(self, run: _ActiveRun, state: RunState, error: str | None = None) -> RunOutcome:
        # A newer run may already own the runner after stop(); leave its state alone
        if self._active is run:
            self._state = state
            self.store.set_generating(False)
        return RunOutcome(
            state=state,
            session_id=run.session_id,
            target_message_id=run.target_message_id,
            created_target=run.created_target,
            accumulator=run.accumulator,
            error=error,
        )
