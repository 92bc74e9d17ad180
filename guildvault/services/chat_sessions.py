from __future__ import annotations
import logging

from aiogram import Bot

from guildvault.services.trade_cards import render_event
from guildvault.trading.notifications import EventHandler, NotificationBus, Subscription, TradeEvent

log = logging.getLogger(__name__)


def chat_session_key(chat_id: int) -> str:
    return f"tg:{chat_id}"


def make_chat_handler(bot: Bot, chat_id: int) -> EventHandler:
    """Доставка события в чат Telegram. Ошибка API пробрасывается, шина повторит доставку."""

    async def _deliver(event: TradeEvent) -> None:
        await bot.send_message(chat_id, render_event(event))

    return _deliver


def open_chat_session(bus: NotificationBus, bot: Bot, member_id: int, chat_id: int) -> Subscription:
    sub = bus.subscribe(member_id, make_chat_handler(bot, chat_id), key=chat_session_key(chat_id))
    log.info("Live session opened: member=%s chat=%s", member_id, chat_id)
    return sub


def close_chat_session(bus: NotificationBus, member_id: int, chat_id: int) -> bool:
    closed = bus.unsubscribe(member_id, chat_session_key(chat_id))
    if closed:
        log.info("Live session closed: member=%s chat=%s", member_id, chat_id)
    return closed
