"""
tests/unit/test_aggregator.py — Response Aggregator Tests

Covers:
  - Zero, one and many chunks resolve exactly once on completion
  - A second completion for the same round is ignored
  - Interleaved sessions only feed their own buffer
  - Start rounds stash frames until bind() and drop foreign ones
  - Timeout raises RoundTimeoutError and releases subscriptions
"""

import json

import pytest

from copypaist.exceptions import RoundTimeoutError, SessionError
from copypaist.gateway.protocol import MessageKind, make_chunk, make_complete
from copypaist.gateway.transport import SessionTransport
from copypaist.session.aggregator import ResponseAggregator
from copypaist.session.envelope import EnvelopeKind, ErrorKind

_ANALYSIS = json.dumps({"type": "ANALYSIS", "issues": []})


@pytest.fixture
def transport():
    return SessionTransport("http://localhost:3001")


def _feed(transport, session_id, text, pieces=3):
    step = max(1, len(text) // pieces)
    for i in range(0, len(text), step):
        transport.dispatch(make_chunk(session_id, text[i:i + step]))


def _subscribed(transport) -> int:
    return (
        transport.handler_count(MessageKind.STREAM_CHUNK)
        + transport.handler_count(MessageKind.STREAM_COMPLETE)
    )


class TestResolution:
    @pytest.mark.asyncio
    async def test_many_chunks_concatenated(self, transport):
        with ResponseAggregator(transport, "s1") as round_:
            _feed(transport, "s1", f"```json\n{_ANALYSIS}\n```", pieces=7)
            transport.dispatch(make_complete("s1"))
            envelope = await round_.result(timeout=1)
        assert envelope.kind is EnvelopeKind.ANALYSIS

    @pytest.mark.asyncio
    async def test_single_chunk(self, transport):
        with ResponseAggregator(transport, "s1") as round_:
            transport.dispatch(make_chunk("s1", _ANALYSIS))
            transport.dispatch(make_complete("s1"))
            envelope = await round_.result(timeout=1)
        assert envelope.kind is EnvelopeKind.ANALYSIS

    @pytest.mark.asyncio
    async def test_zero_chunks_is_decode_error(self, transport):
        with ResponseAggregator(transport, "s1") as round_:
            transport.dispatch(make_complete("s1"))
            envelope = await round_.result(timeout=1)
        assert envelope.kind is EnvelopeKind.ERROR
        assert envelope.error_kind is ErrorKind.DECODE

    @pytest.mark.asyncio
    async def test_second_completion_ignored(self, transport):
        with ResponseAggregator(transport, "s1") as round_:
            transport.dispatch(make_chunk("s1", _ANALYSIS))
            transport.dispatch(make_complete("s1"))
            transport.dispatch(make_chunk("s1", "garbage"))
            transport.dispatch(make_complete("s1"))
            envelope = await round_.result(timeout=1)
        assert envelope.kind is EnvelopeKind.ANALYSIS
        assert round_.buffer == _ANALYSIS

    @pytest.mark.asyncio
    async def test_completion_releases_subscriptions(self, transport):
        round_ = ResponseAggregator(transport, "s1")
        round_.open()
        assert _subscribed(transport) == 2
        transport.dispatch(make_complete("s1"))
        assert round_.resolved
        assert _subscribed(transport) == 0

    @pytest.mark.asyncio
    async def test_result_before_open_raises(self, transport):
        with pytest.raises(SessionError):
            await ResponseAggregator(transport, "s1").result(timeout=0.01)


class TestSessionFiltering:
    @pytest.mark.asyncio
    async def test_interleaved_sessions(self, transport):
        a = ResponseAggregator(transport, "A")
        b = ResponseAggregator(transport, "B")
        a.open()
        b.open()
        transport.dispatch(make_chunk("A", '{"type": "ANAL'))
        transport.dispatch(make_chunk("B", '{"type": "ERROR", '))
        transport.dispatch(make_chunk("A", 'YSIS"}'))
        transport.dispatch(make_chunk("B", '"message": "boom"}'))
        transport.dispatch(make_complete("B"))
        transport.dispatch(make_complete("A"))

        env_a = await a.result(timeout=1)
        env_b = await b.result(timeout=1)
        assert env_a.kind is EnvelopeKind.ANALYSIS
        assert env_b.error_kind is ErrorKind.REMOTE
        assert a.buffer == '{"type": "ANALYSIS"}'

    @pytest.mark.asyncio
    async def test_frames_without_session_ignored(self, transport):
        with ResponseAggregator(transport, "s1") as round_:
            transport.dispatch(make_chunk("", "noise"))
            transport.dispatch(make_chunk("s1", _ANALYSIS))
            transport.dispatch(make_complete("s1"))
            await round_.result(timeout=1)
        assert round_.buffer == _ANALYSIS


class TestBinding:
    @pytest.mark.asyncio
    async def test_stashed_frames_replayed_on_bind(self, transport):
        with ResponseAggregator(transport) as round_:
            transport.dispatch(make_chunk("new", _ANALYSIS))
            transport.dispatch(make_chunk("other", "junk"))
            transport.dispatch(make_complete("new"))
            assert not round_.resolved
            round_.bind("new")
            envelope = await round_.result(timeout=1)
        assert envelope.kind is EnvelopeKind.ANALYSIS
        assert round_.buffer == _ANALYSIS

    @pytest.mark.asyncio
    async def test_frames_after_bind_accepted(self, transport):
        with ResponseAggregator(transport) as round_:
            transport.dispatch(make_chunk("new", '{"type": '))
            round_.bind("new")
            transport.dispatch(make_chunk("new", '"ANALYSIS"}'))
            transport.dispatch(make_complete("new"))
            envelope = await round_.result(timeout=1)
        assert envelope.kind is EnvelopeKind.ANALYSIS

    @pytest.mark.asyncio
    async def test_rebind_to_other_session_raises(self, transport):
        with ResponseAggregator(transport, "s1") as round_:
            round_.bind("s1")
            with pytest.raises(SessionError):
                round_.bind("s2")


class TestTimeout:
    @pytest.mark.asyncio
    async def test_missing_completion_times_out(self, transport):
        round_ = ResponseAggregator(transport, "s1")
        round_.open()
        transport.dispatch(make_chunk("s1", _ANALYSIS))
        with pytest.raises(RoundTimeoutError) as exc_info:
            await round_.result(timeout=0.05)
        assert exc_info.value.session_id == "s1"
        assert _subscribed(transport) == 0

    @pytest.mark.asyncio
    async def test_late_completion_after_timeout_ignored(self, transport):
        round_ = ResponseAggregator(transport, "s1")
        round_.open()
        with pytest.raises(RoundTimeoutError):
            await round_.result(timeout=0.01)
        transport.dispatch(make_complete("s1"))
        assert not round_.resolved
