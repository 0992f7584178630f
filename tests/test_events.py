"""Tests for frame parsing and event dispatch."""

import pytest

from starkbot_cli.stream.dispatcher import EventDispatcher, iter_events
from starkbot_cli.stream.events import EventKind, parse_frame, split_frame


async def _chunks(*parts):
    for part in parts:
        yield part


# ============================================================
# parse_frame
# ============================================================


class TestSplitFrame:
    def test_event_label_and_data(self):
        raw = split_frame('event: text\ndata: "hi"')
        assert raw.event == "text"
        assert raw.data == '"hi"'

    def test_multiple_data_lines_join_with_newline(self):
        raw = split_frame('data: {"content":\ndata:  "a"}')
        assert raw.data == '{"content":\n "a"}'

    def test_comment_and_crlf(self):
        raw = split_frame(": ping\r\nevent: done\r\ndata: {}\r")
        assert raw.event == "done"
        assert raw.data == "{}"

    def test_no_data_line(self):
        assert split_frame("event: text").data is None


class TestParseFrame:
    def test_string_payload_becomes_content(self):
        event = parse_frame('event: text\ndata: "hi"')
        assert event.kind is EventKind.TEXT
        assert event.content == "hi"

    def test_kind_from_payload_type(self):
        event = parse_frame('data: {"type": "tool_call", "tool_name": "search", "parameters": {"q": "x"}}')
        assert event.kind is EventKind.TOOL_CALL
        assert event.tool_name == "search"
        assert event.parameters == {"q": "x"}

    def test_event_line_wins_over_type_field(self):
        event = parse_frame('event: thinking\ndata: {"type": "text", "content": "pondering"}')
        assert event.kind is EventKind.THINKING
        assert event.content == "pondering"

    def test_subagent_fields(self):
        event = parse_frame(
            'event: subagent_spawned\ndata: {"label": "scout", "agent_subtype": "research"}'
        )
        assert event.label == "scout"
        assert event.agent_subtype == "research"

    def test_tool_result_fields(self):
        event = parse_frame(
            'event: tool_result\ndata: {"tool_name": "search", "success": false, '
            '"duration_ms": 41.0, "error": "boom"}'
        )
        assert event.success is False
        assert event.duration_ms == 41
        assert event.error == "boom"

    def test_wrongly_typed_fields_are_dropped(self):
        event = parse_frame('event: tool_call\ndata: {"tool_name": 5, "parameters": []}')
        assert event.tool_name is None
        assert event.parameters == {}

    @pytest.mark.parametrize(
        "frame",
        [
            "event: text",
            ": comment only",
            "",
            "event: text\ndata: {not json",
            'event: mystery\ndata: {"x": 1}',
            'data: {"no": "type"}',
        ],
    )
    def test_unusable_frames_produce_nothing(self, frame):
        assert parse_frame(frame) is None


# ============================================================
# EventDispatcher
# ============================================================


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_text_then_done_scenario(self):
        seen = []
        dispatcher = EventDispatcher()
        dispatcher.on_any(seen.append)

        count = await dispatcher.run(_chunks(b'event: text\ndata: "hi"\n\nevent: done\ndata: {}\n\n'))

        assert count == 2
        assert [e.kind for e in seen] == [EventKind.TEXT, EventKind.DONE]
        assert seen[0].content == "hi"

    @pytest.mark.asyncio
    async def test_events_after_done_are_never_dispatched(self):
        seen = []
        dispatcher = EventDispatcher()
        dispatcher.on_any(seen.append)
        consumed = []

        async def chunks():
            for part in (b'event: done\ndata: {}\n\nevent: text\ndata: "late"\n\n', b'event: text\ndata: "x"\n\n'):
                consumed.append(part)
                yield part

        count = await dispatcher.run(chunks())

        assert count == 1
        assert [e.kind for e in seen] == [EventKind.DONE]
        assert len(consumed) == 1

    @pytest.mark.asyncio
    async def test_without_stop_on_done_reads_everything(self):
        seen = []
        dispatcher = EventDispatcher()
        dispatcher.on_any(seen.append)
        await dispatcher.run(
            _chunks('event: done\ndata: {}\n\nevent: text\ndata: "more"\n\n'),
            stop_on_done=False,
        )
        assert [e.kind for e in seen] == [EventKind.DONE, EventKind.TEXT]

    @pytest.mark.asyncio
    async def test_malformed_frames_are_skipped_in_order(self):
        seen = []
        dispatcher = EventDispatcher()
        dispatcher.on(EventKind.TEXT, lambda e: seen.append(e.content))
        await dispatcher.run(
            _chunks(
                'event: text\ndata: "a"\n\n',
                "event: text\ndata: {broken\n\n",
                'event: text\ndata: "b"\n',
                "\n",
                'event: done\ndata: {}\n\n',
            )
        )
        assert seen == ["a", "b"]

    def test_handlers_run_by_kind_then_any(self):
        order = []
        dispatcher = EventDispatcher()
        dispatcher.on_any(lambda e: order.append("any"))
        dispatcher.on(EventKind.TEXT, lambda e: order.append("text-1"))
        dispatcher.on(EventKind.TEXT, lambda e: order.append("text-2"))
        dispatcher.on(EventKind.DONE, lambda e: order.append("done"))

        dispatcher.dispatch(parse_frame('event: text\ndata: "x"'))

        assert order == ["text-1", "text-2", "any"]

    @pytest.mark.asyncio
    async def test_iter_events_drops_trailing_partial_frame(self):
        events = [e async for e in iter_events(_chunks('event: text\ndata: "a"\n\nevent: text\ndata: "b"'))]
        assert [e.content for e in events] == ["a"]
