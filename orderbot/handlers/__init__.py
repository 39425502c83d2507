# orderbot/handlers/__init__.py
from aiogram import Dispatcher

from .orders import deliver, register_order_handlers, route_message
from ..config import Settings
from ..dispatcher import ChatDispatcher
from ..handoff import HandoffCoordinator


def register_all_handlers(
        dp: Dispatcher,
        settings: Settings,
        handoff: HandoffCoordinator,
        dispatcher: ChatDispatcher,
) -> None:
    register_order_handlers(dp, settings, handoff, dispatcher)
