from __future__ import annotations
from aiogram import Bot, F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from guildvault.handlers.utils import arg_id, command_args, ensure_user, reply_error, require_args
from guildvault.services.chat_sessions import close_chat_session, open_chat_session
from guildvault.services.directory import GroupDirectory
from guildvault.services.trade_cards import render_trade_card, trade_keyboard
from guildvault.trading.notifications import NotificationBus
from guildvault.trading.service import TradeService
from guildvault.trading.views import TradeView
from guildvault.utils.parsing import parse_parcel

router = Router(name="trades")


async def _send_cards(message: Message, trades: list[TradeView], viewer_id: int, empty: str) -> None:
    if not trades:
        await message.answer(empty)
        return
    for t in trades:
        await message.answer(render_trade_card(t), reply_markup=trade_keyboard(t, viewer_id))


@router.message(Command("offer"))
async def offer(message: Message, directory: GroupDirectory, trade_service: TradeService):
    """/offer <группа> <участник> [ref*кол-во] [монеты...]"""
    try:
        args = command_args(message)
        require_args(args, 3, "/offer <группа> <участник> [ref*кол-во] [12cp 3sp 5gp 1pp]")
        group_id = arg_id(args, 0, "ID группы")
        receiver_id = arg_id(args, 1, "ID участника")
        parcel = parse_parcel(args[2:])
        user = await ensure_user(directory, message.from_user)
        view = await trade_service.create_offer(group_id, user.id, receiver_id, parcel.item, parcel.coins)
        await message.answer(
            "Предложение отправлено, посылка в эскроу.\n\n" + render_trade_card(view),
            reply_markup=trade_keyboard(view, user.id),
        )
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("counter"))
async def counter(message: Message, directory: GroupDirectory, trade_service: TradeService):
    """/counter <обмен> [ref*кол-во] [монеты...]"""
    try:
        args = command_args(message)
        require_args(args, 2, "/counter <обмен> [ref*кол-во] [12cp 3sp 5gp 1pp]")
        trade_id = arg_id(args, 0, "ID обмена")
        parcel = parse_parcel(args[1:])
        user = await ensure_user(directory, message.from_user)
        view = await trade_service.make_counter_offer(trade_id, parcel.item, parcel.coins, actor_id=user.id)
        await message.answer(
            "Встречное предложение отправлено.\n\n" + render_trade_card(view),
            reply_markup=trade_keyboard(view, user.id),
        )
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("accept"))
async def accept(message: Message, directory: GroupDirectory, trade_service: TradeService):
    try:
        args = command_args(message)
        require_args(args, 1, "/accept <обмен>")
        trade_id = arg_id(args, 0, "ID обмена")
        user = await ensure_user(directory, message.from_user)
        await trade_service.accept_trade(trade_id, actor_id=user.id)
        await message.answer(f"✅ Обмен #{trade_id} завершён.")
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("cancel", "decline"))
async def cancel(message: Message, directory: GroupDirectory, trade_service: TradeService):
    """Отмена инициатором и отказ получателя: один и тот же переход."""
    try:
        args = command_args(message)
        require_args(args, 1, "/cancel <обмен>")
        trade_id = arg_id(args, 0, "ID обмена")
        user = await ensure_user(directory, message.from_user)
        await trade_service.cancel_trade(trade_id, actor_id=user.id)
        await message.answer(f"❌ Обмен #{trade_id} отменён, посылки возвращены.")
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("trade"))
async def show_trade(message: Message, directory: GroupDirectory, trade_service: TradeService):
    try:
        args = command_args(message)
        require_args(args, 1, "/trade <обмен>")
        trade_id = arg_id(args, 0, "ID обмена")
        user = await ensure_user(directory, message.from_user)
        view = await trade_service.get_trade(trade_id)
        if not view.involves(user.id):
            await message.answer("Это не ваш обмен.")
            return
        await message.answer(render_trade_card(view), reply_markup=trade_keyboard(view, user.id))
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("trades"))
async def trades(message: Message, directory: GroupDirectory, trade_service: TradeService):
    try:
        args = command_args(message)
        require_args(args, 1, "/trades <группа>")
        group_id = arg_id(args, 0, "ID группы")
        user = await ensure_user(directory, message.from_user)
        found = await trade_service.get_active_trades(group_id, user.id)
        await _send_cards(message, found, user.id, "Открытых обменов нет.")
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("incoming"))
async def incoming(message: Message, directory: GroupDirectory, trade_service: TradeService):
    try:
        user = await ensure_user(directory, message.from_user)
        found = await trade_service.get_incoming_trades(user.id)
        await _send_cards(message, found, user.id, "Входящих предложений нет.")
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("counters"))
async def counters(message: Message, directory: GroupDirectory, trade_service: TradeService):
    try:
        user = await ensure_user(directory, message.from_user)
        found = await trade_service.get_counter_offers(user.id)
        await _send_cards(message, found, user.id, "Встречных предложений нет.")
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("live"))
async def live(message: Message, bot: Bot, directory: GroupDirectory, bus: NotificationBus):
    user = await ensure_user(directory, message.from_user)
    open_chat_session(bus, bot, user.id, message.chat.id)
    await message.answer("🔔 Уведомления об обменах включены для этого чата. Выключить: /unlive")


@router.message(Command("unlive"))
async def unlive(message: Message, directory: GroupDirectory, bus: NotificationBus):
    user = await ensure_user(directory, message.from_user)
    if close_chat_session(bus, user.id, message.chat.id):
        await message.answer("🔕 Уведомления выключены.")
    else:
        await message.answer("Уведомления и так выключены.")


@router.callback_query(F.data.startswith("trade:"))
async def trade_action(cb: CallbackQuery, directory: GroupDirectory, trade_service: TradeService):
    try:
        _, raw_id, action = cb.data.split(":", 2)
        trade_id = int(raw_id)
        user = await ensure_user(directory, cb.from_user)
        if action == "accept":
            await trade_service.accept_trade(trade_id, actor_id=user.id)
            result = f"✅ Обмен #{trade_id} завершён."
        elif action in ("decline", "cancel"):
            await trade_service.cancel_trade(trade_id, actor_id=user.id)
            result = f"❌ Обмен #{trade_id} отменён, посылки возвращены."
        else:
            await cb.answer("Неизвестное действие", show_alert=True)
            return
        await cb.answer()
        if cb.message:
            await cb.message.edit_text(result)
    except Exception as e:
        await reply_error(cb, e)
