import asyncio
import logging
from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from conecta_loja.config import require_bot_settings, settings
from conecta_loja.db.sqlite import init_db
from conecta_loja.bot.handlers import router
from conecta_loja.bot.sessions import close_all

async def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    require_bot_settings()
    init_db()

    bot = Bot(token=settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = Dispatcher()
    dp.include_router(router)

    try:
        await dp.start_polling(bot)
    finally:
        await close_all()
        await bot.session.close()

if __name__ == "__main__":
    asyncio.run(main())
