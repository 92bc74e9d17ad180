from __future__ import annotations
from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message
from sqlalchemy import text

from guildvault.config import settings
from guildvault.db.base import engine
from guildvault.handlers.utils import ensure_user
from guildvault.services.directory import GroupDirectory
from guildvault.trading.notifications import NotificationBus

router = Router(name="common")

HELP_TEXT = (
    "<b>Команды</b>\n"
    "/group_new &lt;название&gt; — создать группу (вы станете мастером)\n"
    "/join &lt;группа&gt; — вступить в группу игроком\n"
    "/members &lt;группа&gt; — участники группы\n"
    "/inventory &lt;группа&gt; — ваш инвентарь\n"
    "/offer &lt;группа&gt; &lt;участник&gt; [ref*кол-во] [монеты] — предложить обмен\n"
    "/counter &lt;обмен&gt; [ref*кол-во] [монеты] — встречное предложение\n"
    "/accept &lt;обмен&gt;, /decline &lt;обмен&gt;, /cancel &lt;обмен&gt;\n"
    "/trades &lt;группа&gt;, /incoming, /counters — списки обменов\n"
    "/live, /unlive — уведомления об обменах в этот чат"
)


@router.message(Command("start"))
async def start(message: Message, directory: GroupDirectory):
    user = await ensure_user(directory, message.from_user)
    await message.answer(f"Привет! Ваш ID участника: <code>{user.id}</code>\n\n{HELP_TEXT}")


@router.message(Command("help"))
async def help_cmd(message: Message):
    await message.answer(HELP_TEXT)


@router.message(Command("ping"))
async def ping(message: Message):
    await message.answer("pong")


@router.message(Command("health"))
async def health(message: Message, bus: NotificationBus):
    if settings.admins and message.from_user.id not in settings.admins:
        await message.answer("Команда доступна только администраторам бота.")
        return
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        pending = await bus.pending_count()
        await message.answer(f"ok (outbox: {pending})")
    except Exception as e:
        await message.answer(f"error: {e!r}")
