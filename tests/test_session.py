"""Tests for starkbot_cli.dashboard.session."""

import asyncio
import io

import pytest

from fakes import FakeDashboardClient, FakeTerminal, settle
from starkbot_cli.bus.events import PushFrame, Quit, RefreshTick
from starkbot_cli.dashboard.models import ActionDefinition, ActionResult, ActionSet, TuiFrame
from starkbot_cli.dashboard.session import (
    DashboardSession,
    SessionState,
    normalize_refresh_interval,
    print_frame_once,
)
from starkbot_cli.dashboard.terminal import CLEAR_SCREEN
from starkbot_cli.errors import DashboardError, GatewayError

UP = "\x1b[A"
DOWN = "\x1b[B"
PAGE_DOWN = "\x1b[6~"


def make_session(client, terminal, **kwargs):
    kwargs.setdefault("push_updates", False)
    kwargs.setdefault("error_flash_s", 0)
    return DashboardSession(client, "wallet", 80, 24, terminal, output=io.StringIO(), **kwargs)


async def start(session, terminal):
    task = asyncio.create_task(session.run())
    for _ in range(100):
        if terminal.on_data is not None:
            break
        await asyncio.sleep(0)
    assert terminal.on_data is not None, "session never attached its key reader"
    return task


async def quit_session(task, terminal):
    terminal.press("q")
    await asyncio.wait_for(task, timeout=1)


# ============================================================
# Lifecycle
# ============================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_initial_render_happens_in_raw_mode(self):
        client, terminal = FakeDashboardClient(), FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        assert terminal.raw
        assert client.fetches == [{"selected": 0, "scroll": 0}]
        assert session.output.getvalue() == CLEAR_SCREEN + "<frame 1>"
        assert session.state is SessionState.AWAITING_INPUT

        await quit_session(task, terminal)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["q", "\x03", "\x1b", "\x1b\x1b"])
    async def test_quit_keys_terminate(self, key):
        client, terminal = FakeDashboardClient(), FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        terminal.press(key)
        await asyncio.wait_for(task, timeout=1)

        assert session.state is SessionState.TERMINATED
        assert not session.running
        assert terminal.releases == 1
        assert terminal.on_data is None
        assert session.output.getvalue().endswith(CLEAR_SCREEN)

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self):
        client, terminal = FakeDashboardClient(), FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)
        await quit_session(task, terminal)

        session.close()
        session.close()

        assert terminal.releases == 1
        assert session.bus.closed

    @pytest.mark.asyncio
    async def test_quit_message_from_bus(self):
        client, terminal = FakeDashboardClient(), FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        session.bus.publish(Quit("SIGTERM"))
        await asyncio.wait_for(task, timeout=1)

        assert session.state is SessionState.TERMINATED
        assert terminal.releases == 1

    @pytest.mark.asyncio
    async def test_initial_render_failure_restores_terminal(self):
        client, terminal = FakeDashboardClient(), FakeTerminal()
        client.fail_next_fetch = GatewayError("Failed to fetch dashboard: HTTP 502", 502)
        session = make_session(client, terminal)

        with pytest.raises(DashboardError, match="HTTP 502"):
            await session.run()

        assert terminal.acquires == 1
        assert terminal.releases == 1
        assert session.state is SessionState.TERMINATED

    @pytest.mark.asyncio
    async def test_refresh_failure_mid_session_is_fatal(self):
        client, terminal = FakeDashboardClient(), FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        client.fail_next_fetch = GatewayError("Gateway connection error: reset")
        session.bus.publish(RefreshTick())

        with pytest.raises(DashboardError, match="reset"):
            await asyncio.wait_for(task, timeout=1)
        assert terminal.releases == 1

    @pytest.mark.asyncio
    async def test_refresh_tick_renders_again(self):
        client, terminal = FakeDashboardClient(), FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        session.bus.publish(RefreshTick())
        await settle()

        assert session.render_count == 2
        await quit_session(task, terminal)

    @pytest.mark.asyncio
    async def test_timer_ticks_until_closed(self):
        client, terminal = FakeDashboardClient(), FakeTerminal()
        session = make_session(client, terminal)
        session.refresh_interval_s = 0.01
        task = await start(session, terminal)

        for _ in range(100):
            if session.render_count >= 3:
                break
            await asyncio.sleep(0.01)
        assert session.render_count >= 3

        await quit_session(task, terminal)
        fetched = len(client.fetches)
        await asyncio.sleep(0.05)

        assert len(client.fetches) == fetched
        assert session._timer_task.done()

    @pytest.mark.asyncio
    async def test_end_of_input_ends_session(self):
        client, terminal = FakeDashboardClient(), FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        terminal.press("")
        await asyncio.wait_for(task, timeout=1)

        assert session.state is SessionState.TERMINATED
        assert terminal.releases == 1

    def test_refresh_interval_floor(self):
        assert normalize_refresh_interval(0.2) == 5.0
        assert normalize_refresh_interval(None) == 5.0
        assert normalize_refresh_interval(2) == 2.0


# ============================================================
# Navigation
# ============================================================


class TestNavigation:
    @pytest.mark.asyncio
    async def test_down_then_up_sends_cursor(self):
        client = FakeDashboardClient(action_set=ActionSet(navigable=True))
        terminal = FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        terminal.press(DOWN)
        await settle()
        terminal.press(DOWN)
        await settle()
        terminal.press(UP)
        await settle()

        assert client.fetches == [
            {"selected": 0, "scroll": 0},
            {"selected": 1, "scroll": 0},
            {"selected": 2, "scroll": 0},
            {"selected": 1, "scroll": 0},
        ]
        await quit_session(task, terminal)

    @pytest.mark.asyncio
    async def test_up_at_top_does_not_render(self):
        client = FakeDashboardClient(action_set=ActionSet(navigable=True))
        terminal = FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        terminal.press(UP)
        await settle()

        assert session.render_count == 1
        await quit_session(task, terminal)

    @pytest.mark.asyncio
    async def test_scroll_follows_selection_past_page(self):
        client = FakeDashboardClient(action_set=ActionSet(navigable=True))
        terminal = FakeTerminal()
        session = make_session(client, terminal, page_size=2)
        task = await start(session, terminal)

        for _ in range(3):
            terminal.press(DOWN)
            await settle()
        terminal.press(PAGE_DOWN)
        await settle()

        assert client.fetches[-2] == {"selected": 3, "scroll": 2}
        assert client.fetches[-1] == {"selected": 5, "scroll": 4}
        await quit_session(task, terminal)

    @pytest.mark.asyncio
    async def test_keys_are_noops_when_not_navigable(self):
        client = FakeDashboardClient(action_set=ActionSet(navigable=False))
        terminal = FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        terminal.press(DOWN)
        terminal.press("x")
        await settle()

        assert session.render_count == 1
        assert session.cursor.as_state() == {"selected": 0, "scroll": 0}
        assert client.posts == []
        await quit_session(task, terminal)

    @pytest.mark.asyncio
    async def test_live_session_navigates_without_declared_list(self):
        client = FakeDashboardClient(hold_stream=True)
        terminal = FakeTerminal()
        session = make_session(client, terminal, push_updates=True, gate_navigation=False)
        task = await start(session, terminal)

        assert not session.navigable
        terminal.press(DOWN)
        await settle()

        assert client.fetches == [{"selected": 0, "scroll": 0}, {"selected": 1, "scroll": 0}]
        await quit_session(task, terminal)

    @pytest.mark.asyncio
    async def test_frame_can_turn_navigation_on(self):
        client = FakeDashboardClient(frames=[TuiFrame(ansi="list", navigable=True)])
        terminal = FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        assert session.navigable
        terminal.press(DOWN)
        await settle()
        assert client.fetches[-1] == {"selected": 1, "scroll": 0}
        await quit_session(task, terminal)


# ============================================================
# Actions
# ============================================================


class TestActions:
    @pytest.mark.asyncio
    async def test_prompts_collected_in_order(self):
        action = ActionDefinition(key="s", label="Send", action="send", prompts=("To?", "Amount?"))
        client = FakeDashboardClient(action_set=ActionSet(actions=(action,)))
        terminal = FakeTerminal(answers=["0xabc", "5"])
        session = make_session(client, terminal)
        task = await start(session, terminal)

        terminal.press("s")
        await settle()

        assert terminal.questions == ["  To? ", "  Amount? "]
        assert client.posts == [("send", {"selected": 0, "scroll": 0}, ["0xabc", "5"])]
        assert terminal.events.count("suspend") == 2
        assert terminal.raw
        assert session.render_count == 2
        await quit_session(task, terminal)

    @pytest.mark.asyncio
    async def test_declined_confirmation_never_submits(self):
        action = ActionDefinition(key="d", label="Delete", action="delete", confirm=True)
        client = FakeDashboardClient(action_set=ActionSet(actions=(action,)))
        terminal = FakeTerminal(answers=["n"])
        session = make_session(client, terminal)
        task = await start(session, terminal)

        terminal.press("d")
        await settle()

        assert terminal.questions == ["  Confirm Delete? (y/N) "]
        assert client.posts == []
        assert session.render_count == 2
        await quit_session(task, terminal)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer", ["y", "Y", " y "])
    async def test_confirmed_action_submits(self, answer):
        action = ActionDefinition(key="d", label="Delete", action="delete", confirm=True)
        client = FakeDashboardClient(action_set=ActionSet(actions=(action,)))
        terminal = FakeTerminal(answers=[answer])
        session = make_session(client, terminal)
        task = await start(session, terminal)

        terminal.press("d")
        await settle()

        assert client.posts == [("delete", {"selected": 0, "scroll": 0}, None)]
        await quit_session(task, terminal)

    @pytest.mark.asyncio
    async def test_prompts_then_confirm(self):
        action = ActionDefinition(key="r", label="Rename", action="rename", confirm=True, prompts=("Name?",))
        client = FakeDashboardClient(action_set=ActionSet(actions=(action,)))
        terminal = FakeTerminal(answers=["bob", "yes"])
        session = make_session(client, terminal)
        task = await start(session, terminal)

        terminal.press("r")
        await settle()

        assert terminal.questions == ["  Name? ", "  Confirm Rename? (y/N) "]
        assert client.posts == []
        await quit_session(task, terminal)

    @pytest.mark.asyncio
    async def test_failed_action_flashes_error(self):
        action = ActionDefinition(key="x", label="Run", action="run")
        client = FakeDashboardClient(
            action_set=ActionSet(actions=(action,)),
            result=ActionResult(ok=False, error="insufficient funds"),
        )
        terminal = FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        terminal.press("x")
        await settle()

        output = session.output.getvalue()
        assert "\x1b[31mError: insufficient funds\x1b[0m" in output
        assert output.endswith(CLEAR_SCREEN + "<frame 2>")
        assert session.running
        await quit_session(task, terminal)

    @pytest.mark.asyncio
    async def test_frame_actions_replace_key_map(self):
        old = ActionDefinition(key="r", label="Refresh", action="refresh")
        new = TuiFrame(ansi="v2", actions=(ActionDefinition(key="d", label="Delete", action="delete"),))
        client = FakeDashboardClient(action_set=ActionSet(actions=(old,)))
        terminal = FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        await session.handle(PushFrame(new))
        terminal.press("r")
        await settle()
        assert client.posts == []

        terminal.press("d")
        await settle()
        assert [post[0] for post in client.posts] == ["delete"]
        await quit_session(task, terminal)

    @pytest.mark.asyncio
    async def test_quit_key_wins_over_declared_action(self):
        action = ActionDefinition(key="q", label="Query", action="query")
        client = FakeDashboardClient(action_set=ActionSet(actions=(action,)))
        terminal = FakeTerminal()
        session = make_session(client, terminal)
        task = await start(session, terminal)

        await quit_session(task, terminal)

        assert client.posts == []
        assert session.state is SessionState.TERMINATED


# ============================================================
# Push updates
# ============================================================


class TestPushUpdates:
    @pytest.mark.asyncio
    async def test_pushed_frame_is_drawn_after_first_is_skipped(self):
        client = FakeDashboardClient(
            stream_chunks=[
                b'event: tui_frame\ndata: {"ansi": "dup"}\n\n',
                b'event: tui_frame\ndata: {"ansi": "pushed", "actions": []}\n\n',
            ],
            hold_stream=True,
        )
        terminal = FakeTerminal()
        session = make_session(client, terminal, push_updates=True)
        task = await start(session, terminal)
        await settle()

        output = session.output.getvalue()
        assert "dup" not in output
        assert output.endswith(CLEAR_SCREEN + "pushed")
        assert session.actions == ()

        await quit_session(task, terminal)
        assert client.streams_opened == 1

    @pytest.mark.asyncio
    async def test_push_failure_does_not_end_session(self):
        client = FakeDashboardClient(stream_error=GatewayError("HTTP 404", 404))
        terminal = FakeTerminal()
        session = make_session(client, terminal, push_updates=True)
        task = await start(session, terminal)
        await settle()

        assert session.running
        session.bus.publish(RefreshTick())
        await settle()
        assert session.render_count == 2
        await quit_session(task, terminal)


@pytest.mark.asyncio
async def test_print_frame_once():
    client = FakeDashboardClient(frames=[TuiFrame(ansi="\x1b[1mhello\x1b[0m")])
    out = io.StringIO()
    await print_frame_once(client, "wallet", 80, 24, output=out)
    assert out.getvalue() == "\x1b[1mhello\x1b[0m"
    assert client.fetches == [None]
