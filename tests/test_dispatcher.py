"""
Tests for per-chat serialized dispatching.
"""
import asyncio

from orderbot.dispatcher import ChatDispatcher
from orderbot.models import Outgoing


class Recorder:
    def __init__(self):
        self.handled = []
        self.sent = []

    async def send(self, msg: Outgoing):
        self.sent.append((msg.chat_id, msg.text))


class TestOrdering:
    def test_fifo_per_chat(self):
        rec = Recorder()

        async def handle(chat_id, text):
            await asyncio.sleep(0.01 if text == "a" else 0)
            rec.handled.append((chat_id, text))
            return [Outgoing(chat_id, text.upper())]

        async def scenario():
            d = ChatDispatcher(handle, rec.send)
            for text in ("a", "b", "c"):
                d.submit("1", text)
            d.submit("2", "x")
            await d.join()

        asyncio.run(scenario())

        assert [t for c, t in rec.handled if c == "1"] == ["a", "b", "c"]
        assert [t for c, t in rec.sent if c == "1"] == ["A", "B", "C"]
        assert ("2", "X") in rec.sent

    def test_one_step_at_a_time(self):
        running = {"now": 0, "max": 0}

        async def handle(chat_id, text):
            running["now"] += 1
            running["max"] = max(running["max"], running["now"])
            await asyncio.sleep(0)
            running["now"] -= 1
            return []

        async def scenario():
            d = ChatDispatcher(handle, Recorder().send)
            for i in range(5):
                d.submit("1", str(i))
            await d.join()

        asyncio.run(scenario())
        assert running["max"] == 1


class TestReset:
    """Reset commands cancel the in-flight step and drop the queue."""

    def test_menu_cancels_pending_work(self):
        rec = Recorder()

        async def scenario():
            started = asyncio.Event()

            async def handle(chat_id, text):
                if text == "slow":
                    started.set()
                    await asyncio.sleep(10)
                rec.handled.append(text)
                return [Outgoing(chat_id, text)]

            d = ChatDispatcher(handle, rec.send)
            d.submit("1", "slow")
            d.submit("1", "queued")
            await started.wait()
            d.submit("1", "menu")
            await asyncio.wait_for(d.join(), timeout=2)

        asyncio.run(scenario())

        assert rec.handled == ["menu"]
        assert rec.sent == [("1", "menu")]


class TestErrors:
    def test_failing_step_does_not_stop_worker(self):
        rec = Recorder()

        async def handle(chat_id, text):
            if text == "boom":
                raise RuntimeError("boom")
            return [Outgoing(chat_id, text)]

        async def scenario():
            d = ChatDispatcher(handle, rec.send)
            d.submit("1", "boom")
            d.submit("1", "ok")
            await d.join()

        asyncio.run(scenario())
        assert rec.sent == [("1", "ok")]

    def test_failing_send_does_not_stop_worker(self):
        delivered = []

        async def handle(chat_id, text):
            return [Outgoing(chat_id, text)]

        async def send(msg):
            if msg.text == "first":
                raise ConnectionError("telegram down")
            delivered.append(msg.text)

        async def scenario():
            d = ChatDispatcher(handle, send)
            d.submit("1", "first")
            d.submit("1", "second")
            await d.join()

        asyncio.run(scenario())
        assert delivered == ["second"]


class TestPaused:
    """A paused chat gets no steps and no replies."""

    def test_queued_messages_dropped_while_paused(self):
        rec = Recorder()
        paused = set()

        async def handle(chat_id, text):
            rec.handled.append(text)
            return [Outgoing(chat_id, text)]

        async def scenario():
            d = ChatDispatcher(handle, rec.send, paused=paused.__contains__)
            d.submit("1", "a")
            d.submit("2", "b")
            paused.add("1")
            await d.join()

        asyncio.run(scenario())

        assert rec.handled == ["b"]
        assert rec.sent == [("2", "b")]

    def test_replies_discarded_when_paused_mid_step(self):
        rec = Recorder()
        paused = set()

        async def scenario():
            started = asyncio.Event()

            async def handle(chat_id, text):
                started.set()
                await asyncio.sleep(0.01)
                return [Outgoing(chat_id, text), Outgoing("-100", "report")]

            d = ChatDispatcher(handle, rec.send, paused=paused.__contains__)
            d.submit("1", "slow")
            await started.wait()
            paused.add("1")
            await d.join()

        asyncio.run(scenario())
        assert rec.sent == [("-100", "report")]

    def test_drain_waits_for_cancelled_step(self):
        events = []

        async def scenario():
            started = asyncio.Event()

            async def handle(chat_id, text):
                started.set()
                try:
                    await asyncio.sleep(10)
                except asyncio.CancelledError:
                    events.append("unwound")
                    raise
                return []

            d = ChatDispatcher(handle, Recorder().send)
            d.submit("1", "slow")
            d.submit("1", "queued")
            await started.wait()
            await d.drain("1")
            events.append("drained")
            await asyncio.wait_for(d.join(), timeout=2)

        asyncio.run(scenario())
        assert events == ["unwound", "drained"]
