"""Tests for starkbot_cli.bus."""

import pytest

from starkbot_cli.bus import KeyPress, MessageBus, PushFrame, Quit, RefreshTick
from starkbot_cli.dashboard.models import TuiFrame


class TestMessageBus:
    @pytest.mark.asyncio
    async def test_messages_come_out_in_order(self):
        bus = MessageBus()
        frame = PushFrame(TuiFrame(ansi="x"))
        for message in (KeyPress("a"), frame, Quit("done")):
            assert bus.publish(message)

        assert await bus.consume() == KeyPress("a")
        assert await bus.consume() == frame
        assert await bus.consume() == Quit("done")

    @pytest.mark.asyncio
    async def test_pending_ticks_are_coalesced(self):
        bus = MessageBus()
        assert bus.publish(RefreshTick())
        assert not bus.publish(RefreshTick())
        assert bus.publish(KeyPress("a"))
        assert bus.size() == 2

        assert isinstance(await bus.consume(), RefreshTick)
        assert bus.publish(RefreshTick())

    def test_closed_bus_drops_everything(self):
        bus = MessageBus()
        bus.publish(KeyPress("a"))
        bus.close()

        assert bus.closed
        assert bus.size() == 0
        assert not bus.publish(KeyPress("b"))
