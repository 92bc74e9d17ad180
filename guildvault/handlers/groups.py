from __future__ import annotations
from html import escape

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from guildvault.db.models import RoleEnum
from guildvault.handlers.utils import (
    arg_id, command_args, ensure_user, reply_error, require_args, require_dm, role_caption,
)
from guildvault.services.directory import GroupDirectory

router = Router(name="groups")


@router.message(Command("group_new"))
async def group_new(message: Message, directory: GroupDirectory):
    try:
        user = await ensure_user(directory, message.from_user)
        name = " ".join(command_args(message))
        group = await directory.create_group(name, user.id)
        await message.answer(
            f"Группа <b>{escape(group.name)}</b> создана, ID: <code>{group.id}</code>.\n"
            f"Вы мастер. Игроки вступают командой /join {group.id}"
        )
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("join"))
async def join(message: Message, directory: GroupDirectory):
    try:
        args = command_args(message)
        require_args(args, 1, "/join <группа>")
        group_id = arg_id(args, 0, "ID группы")
        user = await ensure_user(directory, message.from_user)
        if await directory.get_role(group_id, user.id) == RoleEnum.dm:
            await message.answer("Вы мастер этой группы.")
            return
        await directory.add_member(group_id, user.id)
        await message.answer(f"Вы в группе {group_id}. Инвентарь: /inventory {group_id}")
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("members"))
async def members(message: Message, directory: GroupDirectory):
    try:
        args = command_args(message)
        require_args(args, 1, "/members <группа>")
        group_id = arg_id(args, 0, "ID группы")
        rows = await directory.list_members(group_id)
        if not rows:
            await message.answer("В группе никого нет.")
            return
        lines = [f"<b>Группа {group_id}</b>"]
        for member, user in rows:
            nick = member.nickname or (f"@{user.username}" if user.username else "—")
            lines.append(f"• <code>{user.id}</code> {escape(nick)} — {role_caption(member.role)}")
        await message.answer("\n".join(lines))
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("role"))
async def set_role(message: Message, directory: GroupDirectory):
    """/role <группа> <участник> dm|player, только для мастера."""
    try:
        args = command_args(message)
        require_args(args, 3, "/role <группа> <участник> dm|player")
        group_id = arg_id(args, 0, "ID группы")
        member_id = arg_id(args, 1, "ID участника")
        try:
            role = RoleEnum(args[2].lower())
        except ValueError:
            raise ValueError("Роль должна быть dm или player") from None
        actor = await ensure_user(directory, message.from_user)
        await require_dm(directory, group_id, actor.id)
        await directory.set_role(group_id, member_id, role)
        await message.answer(f"Участник {member_id}: {role_caption(role)}")
    except Exception as e:
        await reply_error(message, e)
