from __future__ import annotations
import logging
from html import escape
from typing import Optional, Union

from aiogram.types import CallbackQuery, Message
from aiogram.types import User as TgUser

from guildvault.db.models import RoleEnum, User
from guildvault.services.directory import GroupDirectory
from guildvault.trading.errors import InvalidParcelError, TradeError
from guildvault.utils.parsing import parse_id

log = logging.getLogger(__name__)

GENERIC_ERROR = "⚠️ Что-то пошло не так. Попробуйте позже."


async def ensure_user(directory: GroupDirectory, tg_user: TgUser) -> User:
    return await directory.ensure_user(tg_user.id, tg_user.username)


def command_args(message: Message) -> list[str]:
    """Аргументы команды без самой /команды."""
    parts = (message.text or "").split()
    return parts[1:]


def require_args(args: list[str], count: int, usage: str) -> None:
    if len(args) < count:
        raise InvalidParcelError(f"Использование: {usage}")


def arg_id(args: list[str], index: int, what: str) -> int:
    return parse_id(args[index], what)


def role_caption(role: Optional[RoleEnum]) -> str:
    if role is None:
        return "не состоит в группе"
    return {
        RoleEnum.dm: "Мастер (DM)",
        RoleEnum.player: "Игрок",
    }[role]


async def reply_error(target: Union[Message, CallbackQuery], exc: Exception) -> None:
    """Доменные ошибки показываем как есть, остальное пишем в лог.

    Текст ошибки может содержать ввод пользователя и <подсказки>:
    сообщения уходят в режиме HTML и экранируются, alert показывается как есть.
    """
    if isinstance(exc, (TradeError, ValueError)):
        text = f"⛔ {exc}"
    else:
        log.exception("Unhandled error in handler", exc_info=exc)
        text = GENERIC_ERROR
    if isinstance(target, CallbackQuery):
        await target.answer(text[:200], show_alert=True)
    else:
        await target.answer(escape(text))


async def require_dm(directory: GroupDirectory, group_id: int, user_id: int) -> None:
    if not await directory.is_dm(group_id, user_id):
        raise TradeError("Команда доступна только мастеру группы.")
