"""
Tests for operator handoff: the handoff set, commands and authorization,
and how handoff changes interact with work already queued for the chat.
"""
import asyncio

import pytest

from orderbot.dispatcher import ChatDispatcher
from orderbot.flow.stages import Stage
from orderbot.handoff import (
    HANDOFF_ENDED,
    HANDOFF_STARTED,
    USAGE,
    HandoffCoordinator,
    normalize_target,
)
from orderbot.storage import HandoffStore

OPERATOR = 42
COMMAND_CHAT = "-500"
CHAT = "5511988887777"


@pytest.fixture
def coordinator(settings, sessions):
    return HandoffCoordinator(settings, HandoffStore(), sessions)


def command(coordinator, chat_id, sender_id, text):
    return asyncio.run(coordinator.handle_command(chat_id, sender_id, text))


class SlowResolver:
    """Signals when a lookup starts, then takes a while to answer."""

    def __init__(self, inner):
        self.inner = inner
        self.started = asyncio.Event()

    async def resolve(self, postal_code):
        self.started.set()
        await asyncio.sleep(0.05)
        return await self.inner.resolve(postal_code)


class TestNormalizeTarget:
    def test_default_to_current_chat(self):
        assert normalize_target(None, "123") == "123"
        assert normalize_target("  ", "123") == "123"

    def test_group_ids_and_spaces(self):
        assert normalize_target("-100 123", "1") == "-100123"

    def test_malformed(self):
        assert normalize_target("abc", "1") is None
        assert normalize_target("12a", "1") is None


class TestHandoffSet:
    def test_start_is_idempotent(self, coordinator):
        out = []
        assert asyncio.run(coordinator.start_handoff("123", out)) is True
        assert asyncio.run(coordinator.start_handoff("123", out)) is False
        assert [m.text for m in out] == [HANDOFF_STARTED]
        assert coordinator.is_handed_off("123")

    def test_end_resets_session(self, coordinator, sessions):
        session = sessions.get_or_create("123")
        session.stage = Stage.COLLECT_PAYMENT
        session.draft.customer_name = "Loja"
        asyncio.run(coordinator.start_handoff("123"))

        out = []
        assert asyncio.run(coordinator.end_handoff("123", out)) is True
        assert [m.text for m in out] == [HANDOFF_ENDED]
        assert sessions.get_or_create("123").stage is Stage.INIT
        assert sessions.get_or_create("123").draft.customer_name == ""
        assert not coordinator.is_handed_off("123")

    def test_end_when_not_handed_off(self, coordinator, sessions):
        sessions.get_or_create("123").stage = Stage.COLLECT_ITEM
        out = []
        assert asyncio.run(coordinator.end_handoff("123", out)) is False
        assert out == []
        assert sessions.get_or_create("123").stage is Stage.INIT


class TestCommands:
    """!handoff / !bot parsing and authorization."""

    def test_ordinary_text(self, coordinator):
        assert command(coordinator, "123", OPERATOR, "oi") is None

    def test_non_operator_dropped(self, coordinator):
        assert command(coordinator, "123", 7, "!handoff") == []
        assert command(coordinator, "123", 7, "!bot 456") == []
        assert not coordinator.is_handed_off("123")

    def test_operator_in_own_chat(self, coordinator):
        out = command(coordinator, "123", OPERATOR, "!handoff")
        assert [(m.chat_id, m.text) for m in out] == [("123", HANDOFF_STARTED)]
        assert coordinator.is_handed_off("123")

    def test_command_chat_targets_other_chat(self, coordinator):
        out = command(coordinator, COMMAND_CHAT, 7, "!handoff 123")
        assert ("123", HANDOFF_STARTED) in [(m.chat_id, m.text) for m in out]
        assert any(m.chat_id == COMMAND_CHAT for m in out)

        out = command(coordinator, COMMAND_CHAT, 7, "!BOT 123")
        assert ("123", HANDOFF_ENDED) in [(m.chat_id, m.text) for m in out]
        assert not coordinator.is_handed_off("123")

    def test_repeated_handoff(self, coordinator):
        command(coordinator, COMMAND_CHAT, None, "!handoff 123")
        out = command(coordinator, COMMAND_CHAT, None, "!handoff 123")
        assert [m.text for m in out] == ["Chat 123 já está em handoff."]

    def test_bot_when_not_handed_off(self, coordinator):
        out = command(coordinator, COMMAND_CHAT, None, "!bot 123")
        assert [m.text for m in out] == ["Chat 123 não está em handoff."]

    def test_malformed_target(self, coordinator):
        out = command(coordinator, COMMAND_CHAT, None, "!handoff fulano")
        assert [(m.chat_id, m.text) for m in out] == [(COMMAND_CHAT, USAGE)]


class TestPendingWork:
    """Handoff changes drop the chat's queued and in-flight steps."""

    @staticmethod
    def build(settings, sessions, make_engine, resolver):
        sent = []

        async def send(msg):
            sent.append((msg.chat_id, msg.text))

        engine = make_engine(addresses=resolver)
        handoffs = HandoffStore()
        dispatcher = ChatDispatcher(engine.handle, send, paused=handoffs.__contains__)
        coordinator = HandoffCoordinator(settings, handoffs, sessions, dispatcher)
        return coordinator, dispatcher, sent

    def test_in_flight_step_not_answered_after_handoff(self, settings, sessions, make_engine, resolver):
        async def scenario():
            slow = SlowResolver(resolver)
            coordinator, dispatcher, sent = self.build(settings, sessions, make_engine, slow)
            sessions.get_or_create(CHAT).stage = Stage.COLLECT_POSTAL_CODE

            dispatcher.submit(CHAT, "01001000")
            dispatcher.submit(CHAT, "1")
            await slow.started.wait()
            await coordinator.start_handoff(CHAT)
            await dispatcher.join()
            return sent

        sent = asyncio.run(scenario())

        assert [text for chat, text in sent if chat == CHAT] == []
        assert sessions.get_or_create(CHAT).stage is Stage.COLLECT_POSTAL_CODE

    def test_queued_messages_dropped_on_handoff(self, settings, sessions, make_engine, resolver):
        async def scenario():
            coordinator, dispatcher, sent = self.build(settings, sessions, make_engine, resolver)
            for text in ("oi", "2", "Loja Centro"):
                dispatcher.submit(CHAT, text)
            await coordinator.start_handoff(CHAT)
            await dispatcher.join()
            return sent

        assert asyncio.run(scenario()) == []
        assert sessions.get_or_create(CHAT).stage is Stage.INIT

    def test_return_to_bot_reset_survives_in_flight_step(self, settings, sessions, make_engine, resolver):
        async def scenario():
            slow = SlowResolver(resolver)
            coordinator, dispatcher, sent = self.build(settings, sessions, make_engine, slow)
            session = sessions.get_or_create(CHAT)
            session.stage = Stage.COLLECT_POSTAL_CODE
            session.draft.customer_name = "Loja"

            dispatcher.submit(CHAT, "01001000")
            await slow.started.wait()
            await coordinator.end_handoff(CHAT)
            await dispatcher.join()
            return sent

        sent = asyncio.run(scenario())

        session = sessions.get_or_create(CHAT)
        assert session.stage is Stage.INIT
        assert session.draft.customer_name == ""
        assert sent == []
