"""
Test suite for the chat runner.

A scripted provider fed through a queue lets each test decide exactly when
deltas arrive relative to stop(), session switches and second start() calls.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from chatbench.exceptions import ConfigurationError, RunInProgressError
from chatbench.llm.base import BaseProvider, StreamEvent, StreamEventKind
from chatbench.runner.runner import ChatRunner, RunState
from chatbench.sessions.session import MessageRole
from chatbench.user_config import ProviderId

from .conftest import DONE_LINE, patch_post, sse_line, streaming_response


class ScriptedProvider(BaseProvider):
    """Yields whatever events the test puts on its queue."""

    id = ProviderId.TEST_MOCK
    name = "Scripted"

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.calls = []

    def get_default_settings(self):
        return {}

    async def stream(self, messages, config, cancel_event=None):
        self.calls.append(messages)
        while True:
            event = await self.queue.get()
            yield event
            if event.kind != StreamEventKind.DELTA:
                return

    def push(self, *events: StreamEvent):
        for event in events:
            self.queue.put_nowait(event)


async def wait_until(predicate, timeout: float = 1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def runner(store, provider, mock_config):
    store.add_model_config(mock_config)
    return ChatRunner(store, provider_resolver=lambda provider_id: provider)


@pytest.fixture
def chat(store):
    """A session with a system prompt and one user message."""
    session_id = store.create_session()
    store.add_message(MessageRole.SYSTEM, "You are a helpful AI assistant.")
    store.add_message(MessageRole.USER, "Hi")
    return session_id


def roles(store):
    return [m.role for m in store.current_session.messages]


class TestRunLifecycle:
    @pytest.mark.asyncio
    async def test_new_assistant_message_is_created(self, store, runner, provider, chat, mock_config):
        provider.push(StreamEvent.delta("Hel"), StreamEvent.delta("lo"), StreamEvent.done("Hello"))

        outcome = await runner.run(mock_config.id)

        assert outcome.state == RunState.FINISHED
        assert outcome.created_target is True
        assert roles(store) == [MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT]
        assert store.current_session.messages[-1].id == outcome.target_message_id
        assert store.current_session.messages[-1].content == "Hello"
        assert runner.state == RunState.FINISHED
        assert store.is_generating is False

    @pytest.mark.asyncio
    async def test_history_excludes_new_target(self, store, runner, provider, chat, mock_config):
        provider.push(StreamEvent.done(""))
        await runner.run(mock_config.id)

        sent = provider.calls[0]
        assert [m.content for m in sent] == ["You are a helpful AI assistant.", "Hi"]

    @pytest.mark.asyncio
    async def test_continues_trailing_assistant_message(self, store, runner, provider, chat, mock_config):
        partial_id = store.add_message(MessageRole.ASSISTANT, "partial")
        provider.push(StreamEvent.delta("X"), StreamEvent.delta("Y"), StreamEvent.done("XY"))

        outcome = await runner.run(mock_config.id)

        assert outcome.created_target is False
        assert outcome.target_message_id == partial_id
        assert outcome.text == "partialXY"
        assert store.get_message(partial_id).content == "partialXY"
        assert len(store.current_session.messages) == 3
        assert provider.calls[0][-1].content == "partial"

    @pytest.mark.asyncio
    async def test_generating_flag_during_run(self, store, runner, provider, chat, mock_config):
        task = runner.start(mock_config.id)

        assert store.is_generating is True
        assert runner.is_running
        assert runner.target_message_id is not None

        provider.push(StreamEvent.done(""))
        await task

        assert store.is_generating is False
        assert runner.target_message_id is None

    @pytest.mark.asyncio
    async def test_reasoning_and_content_are_merged(self, store, runner, provider, chat, mock_config):
        provider.push(
            StreamEvent.delta("think ", "reasoning_content"),
            StreamEvent.delta("answer"),
            StreamEvent.done("think answer"),
        )

        outcome = await runner.run(mock_config.id)

        assert store.current_session.messages[-1].content == "think answer"
        assert outcome.accumulator.reasoning == "think "
        assert outcome.accumulator.content == "answer"

    @pytest.mark.asyncio
    async def test_on_finish_receives_full_text(self, store, runner, provider, chat, mock_config):
        finished = AsyncMock()
        provider.push(StreamEvent.delta("done"), StreamEvent.done("done"))

        await runner.run(mock_config.id, on_finish=finished)

        finished.assert_awaited_once_with("done")

    @pytest.mark.asyncio
    async def test_stream_end_without_final_event_finishes(self, store, runner, chat, mock_config):
        async def short_stream(messages, config, cancel_event=None):
            yield StreamEvent.delta("only")

        provider = ScriptedProvider()
        provider.stream = short_stream
        runner.provider_resolver = lambda provider_id: provider

        outcome = await runner.run(mock_config.id)

        assert outcome.state == RunState.FINISHED
        assert store.current_session.messages[-1].content == "only"


class TestCancellation:
    @pytest.mark.asyncio
    async def test_stop_keeps_applied_deltas_only(self, store, runner, provider, chat, mock_config):
        task = runner.start(mock_config.id)
        target_id = runner.target_message_id

        provider.push(StreamEvent.delta("A"))
        await wait_until(lambda: store.get_message(target_id).content == "A")

        assert runner.stop() is True
        provider.push(StreamEvent.delta("B"), StreamEvent.done("AB"))
        outcome = await asyncio.wait_for(task, timeout=1.0)

        assert outcome.state == RunState.CANCELLED
        assert store.get_message(target_id).content == "A"
        assert MessageRole.ERROR not in roles(store)
        assert store.is_generating is False
        assert runner.state == RunState.CANCELLED

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, store, runner):
        assert runner.stop() is False
        assert runner.state == RunState.IDLE
        assert store.is_generating is False

    @pytest.mark.asyncio
    async def test_new_run_after_stop(self, store, runner, provider, chat, mock_config):
        first = runner.start(mock_config.id)
        runner.stop()
        await asyncio.wait_for(first, timeout=1.0)

        provider.push(StreamEvent.delta(" again"), StreamEvent.done(" again"))
        outcome = await runner.run(mock_config.id)

        # the empty assistant message left by the cancelled run is continued
        assert outcome.created_target is False
        assert outcome.state == RunState.FINISHED
        assert store.current_session.messages[-1].content == " again"

    @pytest.mark.asyncio
    async def test_task_cancellation_settles_run(self, store, runner, provider, chat, mock_config):
        task = runner.start(mock_config.id)
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert runner.state == RunState.CANCELLED
        assert store.is_generating is False


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_second_start_is_rejected(self, store, runner, provider, chat, mock_config):
        task = runner.start(mock_config.id)

        with pytest.raises(RunInProgressError):
            runner.start(mock_config.id)

        provider.push(StreamEvent.delta("once"), StreamEvent.done("once"))
        await task

        assert roles(store).count(MessageRole.ASSISTANT) == 1
        assert store.current_session.messages[-1].content == "once"
        assert len(provider.calls) == 1


class TestSessionPinning:
    @pytest.mark.asyncio
    async def test_switching_session_mid_run(self, store, runner, provider, chat, mock_config):
        task = runner.start(mock_config.id)
        target_id = runner.target_message_id

        other = store.create_session()
        provider.push(StreamEvent.delta("still here"), StreamEvent.done("still here"))
        await task

        assert store.current_session_id == other
        assert store.current_session.messages == []
        assert store.get_message(target_id, session_id=chat).content == "still here"

    @pytest.mark.asyncio
    async def test_edits_during_run_are_kept(self, store, runner, provider, chat, mock_config):
        task = runner.start(mock_config.id)
        target_id = runner.target_message_id

        store.update_message(target_id, session_id=chat, role=MessageRole.THINK)
        provider.push(StreamEvent.delta("reasoning"), StreamEvent.done("reasoning"))
        await task

        message = store.get_message(target_id, session_id=chat)
        assert message.role == MessageRole.THINK
        assert message.content == "reasoning"


class TestConfigurationErrors:
    @pytest.mark.asyncio
    async def test_missing_model_config(self, store, runner, chat):
        with pytest.raises(ConfigurationError):
            runner.start("missing")

        assert roles(store) == [MessageRole.SYSTEM, MessageRole.USER]
        assert store.is_generating is False
        assert runner.state == RunState.IDLE

    @pytest.mark.asyncio
    async def test_no_current_session(self, store, runner, mock_config):
        with pytest.raises(ConfigurationError):
            runner.start(mock_config.id)

    @pytest.mark.asyncio
    async def test_empty_session(self, store, runner, mock_config):
        store.create_session()
        with pytest.raises(ConfigurationError):
            runner.start(mock_config.id)
        assert store.current_session.messages == []

    @pytest.mark.asyncio
    async def test_unknown_provider(self, store, chat, mock_config):
        store.add_model_config(mock_config)
        runner = ChatRunner(store, provider_resolver=lambda provider_id: None)

        with pytest.raises(ConfigurationError):
            runner.start(mock_config.id)
        assert store.is_generating is False


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_appends_error_message(self, store, runner, provider, chat, mock_config):
        provider.push(StreamEvent.failure("API Error 401: invalid api key"))

        outcome = await runner.run(mock_config.id)

        assert outcome.state == RunState.FAILED
        error = store.current_session.messages[-1]
        assert error.role == MessageRole.ERROR
        assert error.content == "API Error: API Error 401: invalid api key"
        assert error.meta == {"errorDetails": "API Error 401: invalid api key"}
        assert store.is_generating is False

    @pytest.mark.asyncio
    async def test_failure_after_partial_content(self, store, runner, provider, chat, mock_config):
        provider.push(StreamEvent.delta("par"), StreamEvent.failure("connection reset"))

        outcome = await runner.run(mock_config.id)

        assert outcome.state == RunState.FAILED
        assert roles(store)[-2:] == [MessageRole.ASSISTANT, MessageRole.ERROR]
        assert store.current_session.messages[-2].content == "par"

    @pytest.mark.asyncio
    async def test_provider_crash_is_reported(self, store, runner, chat, mock_config):
        async def broken_stream(messages, config, cancel_event=None):
            raise RuntimeError("adapter bug")
            yield  # pragma: no cover

        provider = ScriptedProvider()
        provider.stream = broken_stream
        runner.provider_resolver = lambda provider_id: provider

        outcome = await runner.run(mock_config.id)

        assert outcome.state == RunState.FAILED
        assert store.current_session.messages[-1].content == "API Error: adapter bug"


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_malformed_record_between_deltas(self, store, chat, openai_config):
        store.add_model_config(openai_config)
        runner = ChatRunner(store)
        response = streaming_response(sse_line("A"), b"data: {not-json\n", sse_line("B"), DONE_LINE)

        with patch("aiohttp.ClientSession.post") as mock_post:
            patch_post(mock_post, response)
            outcome = await runner.run(openai_config.id)

        assert outcome.state == RunState.FINISHED
        assert store.current_session.messages[-1].content == "AB"
        assert MessageRole.ERROR not in roles(store)

    @pytest.mark.asyncio
    async def test_http_error_becomes_error_message(self, store, chat, openai_config):
        store.add_model_config(openai_config)
        runner = ChatRunner(store)
        response = streaming_response(status=429, text="rate limited")

        with patch("aiohttp.ClientSession.post") as mock_post:
            patch_post(mock_post, response)
            outcome = await runner.run(openai_config.id)

        assert outcome.state == RunState.FAILED
        assert store.current_session.messages[-1].content == "API Error: API Error 429: rate limited"

    @pytest.mark.asyncio
    async def test_mock_provider_run(self, store, chat, mock_config):
        store.add_model_config(mock_config)
        runner = ChatRunner(store)

        outcome = await runner.run(mock_config.id)

        assert outcome.state == RunState.FINISHED
        assert store.current_session.messages[-1].content == "Hi there"
