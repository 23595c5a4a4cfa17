# =============================================================================
# Unit Tests - Response Multiplexer
# =============================================================================
#
# Drives ResponseMultiplexer with scripted completion streams and checks
# frame order, terminal frames, and that the upstream is closed exactly
# once on every exit path.
# =============================================================================

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from ragchat.errors import CompletionServiceError, StreamError
from ragchat.models.frames import ContentFrame, DoneFrame, ErrorFrame, ReferenceFrame
from ragchat.services.llm import CompletionStream, TextDelta
from ragchat.services.streaming import ResponseMultiplexer, StreamState
from ragchat.services.vectorstore import SimilarityMatch


def _run(coro):
    return asyncio.run(coro)


class ScriptedCompletion:
    """Builds a CompletionStream from a list of deltas and counts pulls."""

    def __init__(self, deltas, error: Exception | None = None):
        self.deltas = deltas
        self.error = error
        self.pulled = 0
        self.close = AsyncMock()

    async def _generate(self):
        for delta in self.deltas:
            self.pulled += 1
            yield delta
        if self.error is not None:
            raise self.error

    def stream(self) -> CompletionStream:
        return CompletionStream(self._generate(), self.close)


async def _frames(multiplexer):
    return [frame async for frame in multiplexer.frames()]


REFERENCES = [SimilarityMatch("Button docs", 0.92), SimilarityMatch("Input docs", 0.71)]


class TestFrameOrder:
    def test_reference_then_content_then_done(self):
        completion = ScriptedCompletion([TextDelta("Use "), TextDelta("<Button/>", "stop")])
        mux = ResponseMultiplexer(REFERENCES, completion.stream())
        frames = _run(_frames(mux))

        assert [f.type for f in frames] == ["reference", "content", "content", "done"]
        assert isinstance(frames[0], ReferenceFrame)
        assert frames[0].content == "Button docs\nInput docs"
        assert [r.similarity for r in frames[0].references] == [0.92, 0.71]
        assert frames[-1] == DoneFrame(finish_reason="stop")
        assert mux.state is StreamState.DONE
        completion.close.assert_awaited_once()

    def test_no_reference_frame_without_references(self):
        completion = ScriptedCompletion([TextDelta("Hi")])
        frames = _run(_frames(ResponseMultiplexer([], completion.stream())))
        assert [f.type for f in frames] == ["content", "done"]

    def test_empty_deltas_are_not_forwarded(self):
        completion = ScriptedCompletion([TextDelta(""), TextDelta("x"), TextDelta("", "length")])
        frames = _run(_frames(ResponseMultiplexer([], completion.stream())))
        assert frames == [ContentFrame(content="x"), DoneFrame(finish_reason="length")]

    def test_exhausted_stream_defaults_to_stop(self):
        completion = ScriptedCompletion([TextDelta("x")])
        frames = _run(_frames(ResponseMultiplexer([], completion.stream())))
        assert frames[-1] == DoneFrame(finish_reason="stop")

    def test_finish_reason_stops_pulling(self):
        completion = ScriptedCompletion([TextDelta("a", "stop"), TextDelta("never")])
        frames = _run(_frames(ResponseMultiplexer([], completion.stream())))
        assert [f.type for f in frames] == ["content", "done"]
        assert completion.pulled == 1
        completion.close.assert_awaited_once()

    def test_frames_are_single_use(self):
        async def scenario():
            mux = ResponseMultiplexer([], ScriptedCompletion([]).stream())
            await _frames(mux)
            with pytest.raises(RuntimeError):
                await anext(mux.frames())

        _run(scenario())


class TestErrors:
    def test_upstream_failure_becomes_error_frame(self):
        completion = ScriptedCompletion(
            [TextDelta("partial")], error=CompletionServiceError("socket reset"),
        )
        mux = ResponseMultiplexer(REFERENCES, completion.stream())
        frames = _run(_frames(mux))

        assert [f.type for f in frames] == ["reference", "content", "error"]
        assert frames[-1] == ErrorFrame(error=CompletionServiceError.public_message)
        assert mux.state is StreamState.ERROR
        completion.close.assert_awaited_once()

    def test_unexpected_failure_uses_generic_message(self):
        completion = ScriptedCompletion([], error=KeyError("secret detail"))
        frames = _run(_frames(ResponseMultiplexer([], completion.stream())))
        assert frames == [ErrorFrame(error=StreamError.public_message)]

    def test_no_done_frame_after_error(self):
        completion = ScriptedCompletion([], error=CompletionServiceError("boom"))
        frames = _run(_frames(ResponseMultiplexer([], completion.stream())))
        assert not any(isinstance(f, DoneFrame) for f in frames)


class TestCancellation:
    def test_closing_frames_stops_upstream(self):
        completion = ScriptedCompletion([TextDelta("a"), TextDelta("b"), TextDelta("c")])
        mux = ResponseMultiplexer([], completion.stream())

        async def scenario():
            frames = mux.frames()
            first = await anext(frames)
            await frames.aclose()
            return first

        assert _run(scenario()) == ContentFrame(content="a")
        assert mux.state is StreamState.CANCELLED
        assert completion.pulled == 1
        completion.close.assert_awaited_once()

    def test_task_cancellation_closes_upstream(self):
        release = asyncio.Event()

        async def slow():
            yield TextDelta("a")
            await release.wait()
            yield TextDelta("never")

        close = AsyncMock()
        mux = ResponseMultiplexer([], CompletionStream(slow(), close))
        received = []

        async def consume():
            async for frame in mux.frames():
                received.append(frame)

        async def scenario():
            task = asyncio.create_task(consume())
            while not received:
                await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        _run(scenario())
        assert received == [ContentFrame(content="a")]
        assert mux.state is StreamState.CANCELLED
        close.assert_awaited_once()

    def test_disconnect_probe_stops_before_pulling(self):
        completion = ScriptedCompletion([TextDelta("a"), TextDelta("b")])
        probe = AsyncMock(return_value=True)
        mux = ResponseMultiplexer(REFERENCES, completion.stream(), is_disconnected=probe)
        frames = _run(_frames(mux))

        assert [f.type for f in frames] == ["reference"]
        assert completion.pulled == 0
        assert mux.state is StreamState.CANCELLED
        completion.close.assert_awaited_once()

    def test_disconnect_midway(self):
        completion = ScriptedCompletion([TextDelta("a"), TextDelta("b"), TextDelta("c")])
        probe = AsyncMock(side_effect=[False, True])
        mux = ResponseMultiplexer([], completion.stream(), is_disconnected=probe)
        frames = _run(_frames(mux))

        assert frames == [ContentFrame(content="a")]
        assert completion.pulled == 1


class TestSSE:
    def test_events_are_data_lines_of_json(self):
        completion = ScriptedCompletion([TextDelta("Hi", "stop")])
        mux = ResponseMultiplexer(REFERENCES[:1], completion.stream())

        async def collect():
            return [event async for event in mux.sse()]

        events = _run(collect())
        assert all(e.startswith("data: ") and e.endswith("\n\n") for e in events)
        payloads = [json.loads(e[len("data: "):]) for e in events]
        assert payloads == [
            {
                "type": "reference",
                "content": "Button docs",
                "references": [{"content": "Button docs", "similarity": 0.92}],
            },
            {"type": "content", "content": "Hi"},
            {"type": "done", "finish_reason": "stop"},
        ]
        completion.close.assert_awaited_once()
