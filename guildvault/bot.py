from __future__ import annotations

import logging
from typing import Any

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties

from guildvault.handlers import common, groups, inventory, trades

log = logging.getLogger(__name__)


def create_bot(token: str) -> Bot:
    """Bot с HTML-разметкой по умолчанию."""
    bot = Bot(token=token, default=DefaultBotProperties(parse_mode="HTML"))
    log.info("Bot created")
    return bot


def setup_routers(dp: Dispatcher) -> None:
    for module in (common, groups, inventory, trades):
        dp.include_router(module.router)
        log.info("Router included: %s", module.router.name)


def create_dispatcher(**deps: Any) -> Dispatcher:
    """
    Dispatcher с сервисами в workflow_data.
    Хендлеры получают их по имени аргумента: trade_service, ledger, directory, catalog, bus.
    """
    dp = Dispatcher(**deps)
    setup_routers(dp)
    return dp
