# guildvault/services/directory.py
"""
Участники и группы: синхронизация пользователя Telegram, роли, поиск инвентаря.
"""
from __future__ import annotations
from typing import Optional, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guildvault.db import base
from guildvault.db.base import session_scope
from guildvault.db.models import Account, AccountCurrency, AccountItem, Group, GroupMember, RoleEnum, User
from guildvault.logging_setup import get_logger
from guildvault.trading.enums import TradeStatus
from guildvault.trading.errors import AccountNotFoundError, TradeNotAllowedError
from guildvault.trading.models_trade import Trade

logger = get_logger(__name__)


class MembershipDirectory(Protocol):
    async def resolve_account_id(self, group_id: int, member_id: int, session: Optional[AsyncSession] = None) -> int: ...

    async def is_trade_eligible(self, group_id: int, member_id: int, session: Optional[AsyncSession] = None) -> bool: ...


class GroupDirectory:
    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_maker = session_maker or base.async_session_maker

    # ---- пользователи ----

    async def ensure_user(self, tg_id: int, username: Optional[str] = None) -> User:
        """Внешний логин -> стабильный users.id (создаёт запись при первом обращении)."""
        async with self._session_maker() as s:
            async with s.begin():
                user = await s.scalar(select(User).where(User.tg_id == tg_id))
                if user is None:
                    user = User(tg_id=tg_id, username=username)
                    s.add(user)
                    await s.flush()
                    logger.info("User registered: id=%s tg_id=%s", user.id, tg_id)
                elif username and user.username != username:
                    user.username = username
            return user

    # ---- группы ----

    async def create_group(self, name: str, dm_user_id: int) -> Group:
        name = name.strip()
        if not name:
            raise ValueError("Название группы не может быть пустым")
        async with self._session_maker() as s:
            async with s.begin():
                group = Group(name=name, created_by=dm_user_id)
                s.add(group)
                await s.flush()
                s.add(GroupMember(group_id=group.id, user_id=dm_user_id, role=RoleEnum.dm))
            logger.info("Group created: id=%s name=%r dm=%s", group.id, name, dm_user_id)
            return group

    async def add_member(self, group_id: int, user_id: int, role: RoleEnum = RoleEnum.player) -> GroupMember:
        """Добавляет участника; у игрока сразу появляется пустой инвентарь."""
        async with self._session_maker() as s:
            async with s.begin():
                if await s.get(Group, group_id) is None:
                    raise TradeNotAllowedError(f"Группа {group_id} не найдена.")
                member = await self._member(s, group_id, user_id)
                if member is None:
                    member = GroupMember(group_id=group_id, user_id=user_id, role=role)
                    s.add(member)
                else:
                    member.is_active = True
                    member.role = role
                if role == RoleEnum.player:
                    await self._ensure_account(s, group_id, user_id)
            logger.info("Member %s joined group %s as %s", user_id, group_id, role.value)
            return member

    async def set_role(self, group_id: int, user_id: int, role: RoleEnum) -> None:
        """DM не хранит инвентарь: при повышении инвентарь удаляется, но только пустой и без открытых обменов."""
        async with self._session_maker() as s:
            async with s.begin():
                member = await self._member(s, group_id, user_id)
                if member is None:
                    raise TradeNotAllowedError(f"Участник {user_id} не состоит в группе {group_id}.")
                if role == RoleEnum.dm:
                    account = await s.scalar(
                        select(Account).where(Account.group_id == group_id, Account.user_id == user_id)
                    )
                    if account is not None:
                        await self._drop_empty_account(s, account)
                else:
                    await self._ensure_account(s, group_id, user_id)
                member.role = role
            logger.info("Member %s in group %s is now %s", user_id, group_id, role.value)

    async def get_role(self, group_id: int, user_id: int, session: Optional[AsyncSession] = None) -> Optional[RoleEnum]:
        async with session_scope(self._session_maker, session) as s:
            member = await self._member(s, group_id, user_id)
            if member is None or not member.is_active:
                return None
            return member.role

    async def is_dm(self, group_id: int, user_id: int) -> bool:
        return await self.get_role(group_id, user_id) == RoleEnum.dm

    async def list_members(self, group_id: int) -> list[tuple[GroupMember, User]]:
        async with self._session_maker() as s:
            rows = await s.execute(
                select(GroupMember, User)
                .join(User, User.id == GroupMember.user_id)
                .where(GroupMember.group_id == group_id, GroupMember.is_active.is_(True))
                .order_by(GroupMember.role, User.id)
            )
            return [(m, u) for m, u in rows.all()]

    # ---- интерфейс для обменов ----

    async def resolve_account_id(self, group_id: int, member_id: int, session: Optional[AsyncSession] = None) -> int:
        async with session_scope(self._session_maker, session) as s:
            account_id = await s.scalar(
                select(Account.id).where(Account.group_id == group_id, Account.user_id == member_id)
            )
        if account_id is None:
            raise AccountNotFoundError(group_id, member_id)
        return account_id

    async def is_trade_eligible(self, group_id: int, member_id: int, session: Optional[AsyncSession] = None) -> bool:
        """Меняться могут только активные игроки группы (не DM)."""
        return await self.get_role(group_id, member_id, session=session) == RoleEnum.player

    # ---- внутреннее ----

    @staticmethod
    async def _member(s: AsyncSession, group_id: int, user_id: int) -> Optional[GroupMember]:
        return await s.scalar(
            select(GroupMember).where(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        )

    @staticmethod
    async def _ensure_account(s: AsyncSession, group_id: int, user_id: int) -> Account:
        account = await s.scalar(select(Account).where(Account.group_id == group_id, Account.user_id == user_id))
        if account is None:
            account = Account(group_id=group_id, user_id=user_id)
            s.add(account)
            await s.flush()
            s.add(AccountCurrency(account_id=account.id, copper=0, silver=0, gold=0, platinum=0))
            await s.flush()
        return account

    @staticmethod
    async def _drop_empty_account(s: AsyncSession, account: Account) -> None:
        open_trades = await s.scalar(
            select(func.count(Trade.id)).where(
                Trade.group_id == account.group_id,
                (Trade.initiator_id == account.user_id) | (Trade.receiver_id == account.user_id),
                Trade.status.in_([TradeStatus.PENDING, TradeStatus.COUNTER_OFFERED]),
            )
        )
        if open_trades:
            raise TradeNotAllowedError("Сначала завершите или отмените открытые обмены участника.")
        stacks = await s.scalar(
            select(func.count(AccountItem.id)).where(AccountItem.account_id == account.id, AccountItem.quantity > 0)
        )
        cur = await s.get(AccountCurrency, account.id)
        has_coins = cur is not None and any((cur.copper, cur.silver, cur.gold, cur.platinum))
        if stacks or has_coins:
            raise TradeNotAllowedError("Инвентарь участника не пуст: сначала раздайте предметы и монеты.")
        await s.execute(
            delete(AccountCurrency)
            .where(AccountCurrency.account_id == account.id)
            .execution_options(synchronize_session=False)
        )
        await s.delete(account)
