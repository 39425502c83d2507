# main.py
import asyncio
import logging
from functools import partial

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from orderbot.address import AddressResolver
from orderbot.api_client import APIClient
from orderbot.catalog import CatalogHolder, build_index, load_catalog_file
from orderbot.config import load_settings
from orderbot.dispatcher import ChatDispatcher
from orderbot.flow.engine import OrderSessionEngine, find_catalog_images
from orderbot.handlers import deliver, register_all_handlers
from orderbot.handoff import HandoffCoordinator
from orderbot.storage import HandoffStore, SessionStore
from orderbot.submission import SubmissionGateway

logger = logging.getLogger(__name__)


async def main():
    settings = load_settings()

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    api = APIClient(settings)

    catalog = CatalogHolder(api, settings.catalog_endpoints)
    if settings.catalog_file:
        catalog.index = build_index(load_catalog_file(settings.catalog_file))
        logger.info("Catalog loaded from %s: %s items", settings.catalog_file, len(catalog.index))
    await catalog.refresh()

    sessions = SessionStore()
    engine = OrderSessionEngine(
        settings=settings,
        sessions=sessions,
        catalog=catalog,
        addresses=AddressResolver(settings.postal_lookup_url, settings.postal_lookup_timeout),
        gateway=SubmissionGateway(api),
        catalog_images=find_catalog_images(settings.catalog_images_dir),
    )

    bot = Bot(
        token=settings.tg_bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    handoffs = HandoffStore()
    dispatcher = ChatDispatcher(engine.handle, partial(deliver, bot), paused=handoffs.__contains__)
    handoff = HandoffCoordinator(settings, handoffs, sessions, dispatcher)

    dp = Dispatcher()
    register_all_handlers(dp, settings, handoff, dispatcher)

    refresher = asyncio.create_task(catalog.run_periodic(settings.catalog_refresh_seconds))
    try:
        await dp.start_polling(bot)
    finally:
        refresher.cancel()
        await bot.session.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
