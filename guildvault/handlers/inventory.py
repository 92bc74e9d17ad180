from __future__ import annotations
from html import escape

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from guildvault.handlers.utils import (
    arg_id, command_args, ensure_user, reply_error, require_args, require_dm,
)
from guildvault.services.catalog import ItemCatalog
from guildvault.services.directory import GroupDirectory
from guildvault.services.ledger import InventoryLedger
from guildvault.services.trade_cards import render_inventory
from guildvault.utils.parsing import parse_coin_delta, parse_item

router = Router(name="inventory")


async def _show(message: Message, ledger: InventoryLedger, catalog: ItemCatalog, account_id: int, title: str):
    snap = await ledger.get_inventory(account_id)
    metas = await catalog.resolve_many(snap.items.keys())
    await message.answer(render_inventory(snap, metas, title))


@router.message(Command("inventory"))
async def inventory(message: Message, directory: GroupDirectory, ledger: InventoryLedger, catalog: ItemCatalog):
    """/inventory <группа> [участник]; чужой инвентарь видит только мастер."""
    try:
        args = command_args(message)
        require_args(args, 1, "/inventory <группа> [участник]")
        group_id = arg_id(args, 0, "ID группы")
        user = await ensure_user(directory, message.from_user)
        member_id = user.id
        if len(args) > 1:
            member_id = arg_id(args, 1, "ID участника")
            if member_id != user.id:
                await require_dm(directory, group_id, user.id)
        account_id = await directory.resolve_account_id(group_id, member_id)
        await _show(message, ledger, catalog, account_id, f"Инвентарь участника {member_id} (группа {group_id})")
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("grant"))
async def grant(message: Message, directory: GroupDirectory, ledger: InventoryLedger, catalog: ItemCatalog):
    try:
        args = command_args(message)
        require_args(args, 3, "/grant <группа> <участник> <ref*кол-во>")
        group_id = arg_id(args, 0, "ID группы")
        member_id = arg_id(args, 1, "ID участника")
        item = parse_item(args[2])
        actor = await ensure_user(directory, message.from_user)
        await require_dm(directory, group_id, actor.id)
        account_id = await directory.resolve_account_id(group_id, member_id)
        snap = await ledger.grant_item(actor.id, account_id, item.item_ref, item.quantity)
        metas = await catalog.resolve_many(snap.items.keys())
        await message.answer(render_inventory(snap, metas, f"Выдано. Инвентарь участника {member_id}"))
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("revoke"))
async def revoke(message: Message, directory: GroupDirectory, ledger: InventoryLedger, catalog: ItemCatalog):
    try:
        args = command_args(message)
        require_args(args, 3, "/revoke <группа> <участник> <ref*кол-во>")
        group_id = arg_id(args, 0, "ID группы")
        member_id = arg_id(args, 1, "ID участника")
        item = parse_item(args[2])
        actor = await ensure_user(directory, message.from_user)
        await require_dm(directory, group_id, actor.id)
        account_id = await directory.resolve_account_id(group_id, member_id)
        snap = await ledger.revoke_item(actor.id, account_id, item.item_ref, item.quantity)
        metas = await catalog.resolve_many(snap.items.keys())
        await message.answer(render_inventory(snap, metas, f"Изъято. Инвентарь участника {member_id}"))
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("coins"))
async def coins(message: Message, directory: GroupDirectory, ledger: InventoryLedger, catalog: ItemCatalog):
    try:
        args = command_args(message)
        require_args(args, 3, "/coins <группа> <участник> +5gp -2sp ...")
        group_id = arg_id(args, 0, "ID группы")
        member_id = arg_id(args, 1, "ID участника")
        delta = parse_coin_delta(args[2:])
        actor = await ensure_user(directory, message.from_user)
        await require_dm(directory, group_id, actor.id)
        account_id = await directory.resolve_account_id(group_id, member_id)
        snap = await ledger.adjust_coins(actor.id, account_id, delta)
        metas = await catalog.resolve_many(snap.items.keys())
        await message.answer(render_inventory(snap, metas, f"Монеты изменены. Инвентарь участника {member_id}"))
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("item_add"))
async def item_add(message: Message, directory: GroupDirectory, catalog: ItemCatalog):
    """/item_add <группа> <ref> <название...>: запись в каталоге предметов группы."""
    try:
        args = command_args(message)
        require_args(args, 3, "/item_add <группа> <ref> <название>")
        group_id = arg_id(args, 0, "ID группы")
        actor = await ensure_user(directory, message.from_user)
        await require_dm(directory, group_id, actor.id)
        meta = await catalog.upsert_item(args[1], " ".join(args[2:]), group_id=group_id)
        await message.answer(f"Каталог: <code>{escape(meta.ref)}</code> — {escape(meta.name)}")
    except Exception as e:
        await reply_error(message, e)


@router.message(Command("items"))
async def items(message: Message, catalog: ItemCatalog):
    try:
        query = " ".join(command_args(message))
        found = await catalog.search(query)
        if not found:
            await message.answer("Ничего не найдено.")
            return
        lines = [f"• <code>{escape(m.ref)}</code> {escape(m.name)} ({escape(m.category)})" for m in found]
        await message.answer("\n".join(lines))
    except Exception as e:
        await reply_error(message, e)
