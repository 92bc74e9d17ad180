from __future__ import annotations

import argparse
import asyncio
import logging

from aiogram import __version__ as AIOGRAM_VERSION

from guildvault.bot import create_bot, create_dispatcher
from guildvault.config import settings
from guildvault.core.bus_provider import set_bus
from guildvault.db.base import async_session_maker, close_db, init_db
from guildvault.logging_setup import setup_logging
from guildvault.scheduler import init_scheduler, register_background_jobs
from guildvault.services.catalog import ItemCatalog
from guildvault.services.directory import GroupDirectory
from guildvault.services.ledger import InventoryLedger
from guildvault.trading.notifications import NotificationBus
from guildvault.trading.service import TradeService

log = logging.getLogger(__name__)


def build_services() -> dict:
    """Собирает сервисы приложения поверх общей фабрики сессий."""
    bus = NotificationBus(
        async_session_maker,
        max_attempts=settings.notify_max_attempts,
        batch_size=settings.notify_batch,
    )
    directory = GroupDirectory(async_session_maker)
    catalog = ItemCatalog(async_session_maker)
    ledger = InventoryLedger(async_session_maker)
    trade_service = TradeService(
        async_session_maker,
        directory=directory,
        catalog=catalog,
        ledger=ledger,
        bus=bus,
    )
    return {
        "bus": bus,
        "directory": directory,
        "catalog": catalog,
        "ledger": ledger,
        "trade_service": trade_service,
    }


async def _run() -> None:
    await init_db()

    services = build_services()
    set_bus(services["bus"])

    bot = create_bot(settings.bot_token)
    dp = create_dispatcher(**services)

    scheduler = init_scheduler(settings.scheduler_db_url)
    register_background_jobs(scheduler)
    scheduler.start()

    try:
        # досылаем то, что не успели разослать до остановки
        await services["bus"].dispatch_pending()
        log.info("Starting polling (aiogram %s)", AIOGRAM_VERSION)
        await dp.start_polling(bot)
    finally:
        scheduler.shutdown(wait=False)
        await bot.session.close()
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(prog="guildvault")
    parser.add_argument("--check", action="store_true", help="Print environment & exit")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    args = parser.parse_args()

    setup_logging(logging.DEBUG if args.debug else logging.INFO)

    if args.check:
        print("== Environment check ==")
        print("AIOGRAM_VERSION:", AIOGRAM_VERSION)
        print("BOT_TOKEN set:", "YES" if settings.bot_token else "NO")
        print("DATABASE_URL:", settings.database_url)
        print("SCHEDULER_DB_URL:", settings.scheduler_db_url)
        return

    asyncio.run(_run())


if __name__ == "__main__":
    main()
