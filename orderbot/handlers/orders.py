# orderbot/handlers/orders.py
import logging
from typing import List, Optional

from aiogram import Bot, Dispatcher, F
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError
from aiogram.filters import CommandStart
from aiogram.types import FSInputFile, Message

from ..config import Settings
from ..dispatcher import ChatDispatcher
from ..handoff import HandoffCoordinator
from ..models import Outgoing

logger = logging.getLogger(__name__)


async def deliver(bot: Bot, msg: Outgoing) -> None:
    """Send one Outgoing; Telegram refusals are logged and skipped."""
    try:
        if msg.image:
            await bot.send_photo(
                int(msg.chat_id),
                FSInputFile(msg.image),
                caption=msg.text or None,
            )
        elif msg.text:
            await bot.send_message(int(msg.chat_id), msg.text)
    except (TelegramBadRequest, TelegramForbiddenError) as e:
        logger.error("Failed to send message to chat_id=%s: %s", msg.chat_id, e)


async def route_message(
        handoff: HandoffCoordinator,
        dispatcher: ChatDispatcher,
        chat_id: str,
        sender_id: Optional[int],
        text: str,
) -> List[Outgoing]:
    """
    Inbound text routing: operator commands first, then the handoff gate,
    then the chat's queue. Returns the command replies to send right away.
    """
    # 1) operator commands (!handoff / !bot)
    replies = await handoff.handle_command(chat_id, sender_id, text)
    if replies is not None:
        return replies

    # 2) chats owned by a human operator are not answered
    if handoff.is_handed_off(chat_id):
        logger.debug("chat=%s in handoff, message ignored", chat_id)
        return []

    # 3) the chat's own worker runs the step
    dispatcher.submit(chat_id, text)
    return []


def register_order_handlers(
        dp: Dispatcher,
        settings: Settings,
        handoff: HandoffCoordinator,
        dispatcher: ChatDispatcher,
) -> None:
    @dp.message(CommandStart())
    async def cmd_start(message: Message):
        chat_id = str(message.chat.id)
        if handoff.is_handed_off(chat_id):
            return
        dispatcher.submit(chat_id, "menu")

    @dp.message(F.text)
    async def handle_text_message(message: Message):
        if message.from_user is not None and message.from_user.is_bot:
            return

        sender_id = message.from_user.id if message.from_user else None
        replies = await route_message(handoff, dispatcher, str(message.chat.id), sender_id, message.text or "")
        for msg in replies:
            await deliver(message.bot, msg)
