"""
Tests for the hybrid wire protocol: encoding, the relay and the reader.
"""

import pytest

from proveit.llm.base import BlockStart, UpstreamError
from proveit.models.session import Phase
from proveit.streaming import (
    DoneEvent,
    ErrorEvent,
    KillSignalEvent,
    NarrativeText,
    PhaseChangeEvent,
    ScoresEvent,
    SearchQueryEvent,
    SearchingEvent,
    StreamReader,
    StreamRelay,
    encode_event,
    parse_event_line,
    read_stream,
)
from proveit.streaming.relay import (
    CONFIGURATION_ERROR_MESSAGE,
    CONTEXT_TOO_LONG_MESSAGE,
    GENERIC_ERROR_MESSAGE,
    OVERLOADED_MESSAGE,
    RATE_LIMITED_MESSAGE,
    classify_error,
)
from fakes import ScriptedProvider, search_events, text_events


async def collect(relay: StreamRelay) -> bytes:
    return b"".join([chunk async for chunk in relay])


def relay_for(events, error=None) -> StreamRelay:
    provider = ScriptedProvider(events, error=error)
    return StreamRelay(provider.stream_events([], "system"), label="test")


def decode_all(data: bytes, split_at=None):
    """Decode bytes in one go or split into two chunks at ``split_at``."""
    reader = StreamReader()
    chunks = [data] if split_at is None else [data[:split_at], data[split_at:]]
    items = []
    for chunk in chunks:
        items.extend(reader.feed(chunk))
    items.extend(reader.finish())
    return items


class TestProtocol:
    """Tests for event encoding and parsing."""

    def test_encode_event_is_single_line(self):
        line = encode_event(SearchingEvent(active=True))
        assert line == 'data: {"type":"searching","active":true}\n'

    def test_parse_phase_change(self):
        event = parse_event_line('data: {"type":"phase_change","phase":"research"}')
        assert isinstance(event, PhaseChangeEvent)
        assert event.phase == Phase.RESEARCH

    def test_parse_scores(self):
        event = parse_event_line('data: {"type":"scores","scores":{"desirability":7,"viability":null}}')
        assert isinstance(event, ScoresEvent)
        assert event.scores.desirability == 7
        assert event.scores.viability is None

    def test_parse_kill_signal(self):
        event = parse_event_line(
            'data: {"type":"kill_signal","signal":{"type":"tarpit","evidence":"tiny"}}'
        )
        assert isinstance(event, KillSignalEvent)
        assert event.signal.evidence == "tiny"

    @pytest.mark.parametrize("line", [
        "data: {not json",
        'data: {"type":"unknown"}',
        'data: {"type":"phase_change","phase":"nowhere"}',
        'data: {"type":"scores","scores":{"feasibility":11}}',
        "data: []",
        "plain text",
    ])
    def test_malformed_lines_return_none(self, line):
        assert parse_event_line(line) is None


class TestStreamRelay:
    """Tests for re-encoding model events into wire bytes."""

    @pytest.mark.asyncio
    async def test_search_then_text(self):
        events = search_events('{"que', 'ry":"x"}', index=0) + text_events("done", index=1)
        data = await collect(relay_for(events))
        assert data == (
            b'data: {"type":"searching","active":true}\n'
            b'data: {"type":"search_query","query":"x"}\n'
            b'data: {"type":"searching","active":false}\n'
            b"done\n"
            b'data: {"type":"done"}\n'
        )

    @pytest.mark.asyncio
    async def test_text_passes_through_verbatim(self):
        data = await collect(relay_for(text_events("Hello ", "world.\n", "Second")))
        assert data.startswith(b"Hello world.\nSecond")
        assert data.endswith(b'\ndata: {"type":"done"}\n')

    @pytest.mark.asyncio
    async def test_no_extra_newline_at_line_start(self):
        data = await collect(relay_for(text_events("line\n")))
        assert data == b'line\ndata: {"type":"done"}\n'

    @pytest.mark.asyncio
    async def test_malformed_search_input_is_dropped(self):
        events = search_events('{"query": "unterminated')
        data = await collect(relay_for(events))
        assert b"search_query" not in data
        assert data.endswith(b'data: {"type":"done"}\n')

    @pytest.mark.asyncio
    async def test_search_closed_when_stream_ends_mid_search(self):
        data = await collect(relay_for(search_events('{"query":"x"}')))
        assert data == (
            b'data: {"type":"searching","active":true}\n'
            b'data: {"type":"search_query","query":"x"}\n'
            b'data: {"type":"searching","active":false}\n'
            b'data: {"type":"done"}\n'
        )

    @pytest.mark.asyncio
    async def test_search_closed_before_error(self):
        events = [BlockStart(index=0, block_type="server_tool_use", name="web_search")]
        error = UpstreamError("overloaded", status=529)
        items = decode_all(await collect(relay_for(events, error=error)))

        assert items == [
            SearchingEvent(active=True),
            SearchingEvent(active=False),
            ErrorEvent(message=OVERLOADED_MESSAGE),
        ]

    @pytest.mark.asyncio
    async def test_other_tools_are_ignored(self):
        events = search_events('{"query":"x"}', name="calculator")
        data = await collect(relay_for(events))
        assert data == b'data: {"type":"done"}\n'

    @pytest.mark.asyncio
    async def test_failure_after_partial_text_emits_single_error(self):
        error = UpstreamError("overloaded", status=529)
        data = await collect(relay_for(text_events("partial"), error=error))

        items = decode_all(data)
        errors = [item for item in items if isinstance(item, ErrorEvent)]
        assert len(errors) == 1
        assert errors[0].message == OVERLOADED_MESSAGE
        assert not any(isinstance(item, DoneEvent) for item in items)
        assert items[0] == NarrativeText("partial\n")

    @pytest.mark.asyncio
    async def test_failure_on_first_advance(self):
        data = await collect(relay_for([], error=UpstreamError("bad key", status=401)))
        assert data == ('data: {"type":"error","message":"%s"}\n' % CONFIGURATION_ERROR_MESSAGE).encode()

    @pytest.mark.asyncio
    async def test_unrecognized_failure_uses_generic_message(self):
        data = await collect(relay_for([], error=ValueError("boom")))
        assert GENERIC_ERROR_MESSAGE.encode() in data

    @pytest.mark.asyncio
    async def test_upstream_closed_after_stream(self):
        provider = ScriptedProvider(text_events("hi"))
        relay = StreamRelay(provider.stream_events([], "system"))
        await collect(relay)
        assert provider.closed

    @pytest.mark.asyncio
    async def test_relay_consumed_once(self):
        relay = relay_for([])
        await collect(relay)
        with pytest.raises(RuntimeError):
            await collect(relay)


class TestClassifyError:
    """Tests for upstream failure classification."""

    @pytest.mark.parametrize("error,expected", [
        (UpstreamError("prompt is too long: 250000 tokens", status=400), CONTEXT_TOO_LONG_MESSAGE),
        (UpstreamError("context_window_exceeded", status=400), CONTEXT_TOO_LONG_MESSAGE),
        (UpstreamError("invalid x-api-key", status=401), CONFIGURATION_ERROR_MESSAGE),
        (UpstreamError("forbidden", status=403), CONFIGURATION_ERROR_MESSAGE),
        (UpstreamError("slow down", status=429), RATE_LIMITED_MESSAGE),
        (UpstreamError("slow down", error_type="rate_limit_error"), RATE_LIMITED_MESSAGE),
        (UpstreamError("overloaded", status=529), OVERLOADED_MESSAGE),
        (UpstreamError("overloaded", error_type="overloaded_error"), OVERLOADED_MESSAGE),
    ])
    def test_recognized(self, error, expected):
        assert classify_error(error) == expected

    @pytest.mark.parametrize("error", [
        UpstreamError("bad request", status=400),
        UpstreamError("server error", status=500),
        RuntimeError("boom"),
    ])
    def test_unrecognized(self, error):
        assert classify_error(error) is None


class TestStreamReader:
    """Tests for decoding chunked wire bytes."""

    SAMPLE = (
        "Intro line\n"
        'data: {"type":"phase_change","phase":"research"}\n'
        "Prix café ☕ naïve\n"
        'data: {"type":"searching","active":true}\n'
        "tail without newline"
    ).encode("utf-8")

    def test_decodes_text_and_events(self):
        items = decode_all(self.SAMPLE)
        assert items == [
            NarrativeText("Intro line\n"),
            PhaseChangeEvent(phase=Phase.RESEARCH),
            NarrativeText("Prix café ☕ naïve\n"),
            SearchingEvent(active=True),
            NarrativeText("tail without newline"),
        ]

    def test_every_split_point_gives_same_items(self):
        expected = decode_all(self.SAMPLE)
        for offset in range(len(self.SAMPLE) + 1):
            assert decode_all(self.SAMPLE, split_at=offset) == expected, offset

    def test_byte_at_a_time(self):
        reader = StreamReader()
        items = []
        for i in range(len(self.SAMPLE)):
            items.extend(reader.feed(self.SAMPLE[i:i + 1]))
        items.extend(reader.finish())
        assert items == decode_all(self.SAMPLE)

    def test_malformed_control_line_dropped(self):
        data = b'before\ndata: {broken\nafter\n'
        assert decode_all(data) == [NarrativeText("before\n"), NarrativeText("after\n")]

    def test_empty_lines_produce_nothing(self):
        assert decode_all(b"\n\n\n") == []

    def test_control_line_without_terminator_at_end(self):
        # A control line is only recognized once terminated; the remainder is text
        items = decode_all(b'data: {"type":"done"}')
        assert items == [NarrativeText('data: {"type":"done"}')]

    def test_feed_after_finish_raises(self):
        reader = StreamReader()
        reader.finish()
        with pytest.raises(RuntimeError):
            reader.feed(b"more")

    @pytest.mark.asyncio
    async def test_read_stream(self):
        async def source():
            yield b"Hel"
            yield b"lo\ndata: "
            yield b'{"type":"done"}\n'

        items = [item async for item in read_stream(source())]
        assert items == [NarrativeText("Hello\n"), DoneEvent()]


class TestRoundTrip:
    """Relay output decoded by the reader reproduces the narrative and events."""

    @pytest.mark.asyncio
    async def test_round_trip(self):
        events = (
            text_events("Looking into it.\n", "Let me search.", index=0)
            + search_events('{"query":"idea validation tools"}', index=1)
            + text_events("Found three competitors.\n", index=2)
        )
        data = await collect(relay_for(events))
        items = decode_all(data)

        text = "".join(item.text for item in items if isinstance(item, NarrativeText))
        controls = [item for item in items if not isinstance(item, NarrativeText)]

        # Narrative is reproduced, plus the terminator inserted before the first control line
        assert text == "Looking into it.\nLet me search.\nFound three competitors.\n"
        assert controls == [
            SearchingEvent(active=True),
            SearchQueryEvent(query="idea validation tools"),
            SearchingEvent(active=False),
            DoneEvent(),
        ]
