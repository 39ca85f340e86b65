import asyncio
import logging
import sys

from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties

from rentalpro.config import config
from rentalpro.handlers import common, rooms, manage, invoices
from rentalpro.middlewares.auth import AuthMiddleware
from rentalpro.middlewares.db import DbSessionMiddleware
from rentalpro.middlewares.error import GlobalErrorMiddleware


async def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        stream=sys.stdout,
    )

    bot = Bot(
        token=config.BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )
    dp = Dispatcher()

    # Order: Error -> DB -> Auth (uses session)
    dp.update.outer_middleware(GlobalErrorMiddleware())
    dp.update.middleware(DbSessionMiddleware())
    dp.update.middleware(AuthMiddleware())

    # Form steps skip commands and menu buttons, so router order does not shadow them
    dp.include_router(common.router)
    dp.include_router(rooms.router)
    dp.include_router(manage.router)
    dp.include_router(invoices.router)

    if not common.auth.enabled:
        logging.warning("AUTH_URL is not set: sign in will fail until it is configured")

    logging.info("Starting bot...")
    await dp.start_polling(bot)


if __name__ == "__main__":
    try:
        if sys.platform == "win32":
            asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logging.info("Bot stopped.")
