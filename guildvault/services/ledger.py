# guildvault/services/ledger.py
"""
Инвентарь участника: стопки предметов и четыре счётчика монет.

debit/credit работают внутри транзакции вызывающего кода: всё, что списывается
за одно действие обмена, проходит или откатывается целиком вместе с ней.
Списание делается условным UPDATE (... WHERE quantity >= :n), а не чтение + запись.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guildvault.db import base
from guildvault.db.models import AccountCurrency, AccountItem, AuditLog
from guildvault.logging_setup import get_logger
from guildvault.trading.errors import InsufficientResourceError, InvalidParcelError
from guildvault.trading.parcels import DENOMINATIONS, Coins, ItemParcel, Parcel

logger = get_logger(__name__)

_NO_SYNC = {"synchronize_session": False}


@dataclass(frozen=True)
class InventorySnapshot:
    account_id: int
    items: dict[str, int] = field(default_factory=dict)
    coins: Coins = field(default_factory=Coins)

    def quantity(self, item_ref: str) -> int:
        return self.items.get(item_ref, 0)


class InventoryLedger:
    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_maker = session_maker or base.async_session_maker

    # ---- чтение ----

    async def snapshot(self, session: AsyncSession, account_id: int) -> InventorySnapshot:
        rows = await session.execute(
            select(AccountItem.item_ref, AccountItem.quantity)
            .where(AccountItem.account_id == account_id, AccountItem.quantity > 0)
            .order_by(AccountItem.item_ref)
        )
        cur = await session.get(AccountCurrency, account_id, populate_existing=True)
        coins = Coins(**{d: getattr(cur, d) for d in DENOMINATIONS}) if cur else Coins()
        return InventorySnapshot(account_id=account_id, items={r: q for r, q in rows.all()}, coins=coins)

    async def get_inventory(self, account_id: int) -> InventorySnapshot:
        async with self._session_maker() as s:
            return await self.snapshot(s, account_id)

    async def ensure_covers(self, session: AsyncSession, account_id: int, parcel: Parcel) -> None:
        """Проверка до любых изменений: хватает ли всего, что просят списать."""
        snap = await self.snapshot(session, account_id)
        if parcel.item is not None:
            held = snap.quantity(parcel.item.item_ref)
            if held < parcel.item.quantity:
                raise InsufficientResourceError(account_id, parcel.item.item_ref, parcel.item.quantity, held)
        for denom, amount in parcel.coins.nonzero().items():
            held = getattr(snap.coins, denom)
            if held < amount:
                raise InsufficientResourceError(account_id, denom, amount, held)

    # ---- списание / зачисление ----

    async def debit(self, session: AsyncSession, account_id: int, parcel: Parcel) -> None:
        """Проверенное списание. При нехватке: InsufficientResourceError, транзакцию откатывает вызывающий."""
        if parcel.item is not None:
            await self._debit_item(session, account_id, parcel.item)
        if not parcel.coins.is_empty():
            await self._debit_coins(session, account_id, parcel.coins)

    async def credit(self, session: AsyncSession, account_id: int, parcel: Parcel) -> None:
        """Зачисление без проверок: количество всегда >= 0 и ограничено ранее списанным."""
        if parcel.item is not None:
            await self._credit_item(session, account_id, parcel.item)
        if not parcel.coins.is_empty():
            await self._credit_coins(session, account_id, parcel.coins)

    async def _debit_item(self, session: AsyncSession, account_id: int, item: ItemParcel) -> None:
        res = await session.execute(
            update(AccountItem)
            .where(
                AccountItem.account_id == account_id,
                AccountItem.item_ref == item.item_ref,
                AccountItem.quantity >= item.quantity,
            )
            .values(quantity=AccountItem.quantity - item.quantity)
            .execution_options(**_NO_SYNC)
        )
        if res.rowcount != 1:
            held = await session.scalar(
                select(AccountItem.quantity).where(
                    AccountItem.account_id == account_id, AccountItem.item_ref == item.item_ref
                )
            )
            raise InsufficientResourceError(account_id, item.item_ref, item.quantity, held or 0)
        # пустые стопки не храним
        await session.execute(
            delete(AccountItem)
            .where(
                AccountItem.account_id == account_id,
                AccountItem.item_ref == item.item_ref,
                AccountItem.quantity == 0,
            )
            .execution_options(**_NO_SYNC)
        )

    async def _debit_coins(self, session: AsyncSession, account_id: int, coins: Coins) -> None:
        wanted = coins.nonzero()
        res = await session.execute(
            update(AccountCurrency)
            .where(
                AccountCurrency.account_id == account_id,
                *[getattr(AccountCurrency, d) >= n for d, n in wanted.items()],
            )
            .values({d: getattr(AccountCurrency, d) - n for d, n in wanted.items()})
            .execution_options(**_NO_SYNC)
        )
        if res.rowcount != 1:
            cur = await session.get(AccountCurrency, account_id, populate_existing=True)
            for denom, amount in wanted.items():
                held = getattr(cur, denom) if cur else 0
                if held < amount:
                    raise InsufficientResourceError(account_id, denom, amount, held)
            raise InsufficientResourceError(account_id, "монеты", sum(wanted.values()), 0)

    async def _credit_item(self, session: AsyncSession, account_id: int, item: ItemParcel) -> None:
        res = await session.execute(
            update(AccountItem)
            .where(AccountItem.account_id == account_id, AccountItem.item_ref == item.item_ref)
            .values(quantity=AccountItem.quantity + item.quantity)
            .execution_options(**_NO_SYNC)
        )
        if res.rowcount == 0:
            session.add(AccountItem(account_id=account_id, item_ref=item.item_ref, quantity=item.quantity))
            await session.flush()

    async def _credit_coins(self, session: AsyncSession, account_id: int, coins: Coins) -> None:
        wanted = coins.nonzero()
        res = await session.execute(
            update(AccountCurrency)
            .where(AccountCurrency.account_id == account_id)
            .values({d: getattr(AccountCurrency, d) + n for d, n in wanted.items()})
            .execution_options(**_NO_SYNC)
        )
        if res.rowcount == 0:
            session.add(AccountCurrency(account_id=account_id, **coins.as_dict()))
            await session.flush()

    # ---- администрирование (DM) ----

    async def grant_item(self, actor_id: int, account_id: int, item_ref: str, quantity: int) -> InventorySnapshot:
        item = ItemParcel(item_ref, quantity)
        async with self._session_maker() as s:
            async with s.begin():
                before = await self.snapshot(s, account_id)
                await self._credit_item(s, account_id, item)
                s.add(self._audit(actor_id, "GRANT_ITEM", account_id,
                                  f"{item_ref}={before.quantity(item_ref)}",
                                  f"{item_ref}={before.quantity(item_ref) + quantity}"))
            logger.info("DM %s granted %s x%s to account %s", actor_id, item_ref, quantity, account_id)
            return await self.snapshot(s, account_id)

    async def revoke_item(self, actor_id: int, account_id: int, item_ref: str, quantity: int) -> InventorySnapshot:
        item = ItemParcel(item_ref, quantity)
        async with self._session_maker() as s:
            async with s.begin():
                before = await self.snapshot(s, account_id)
                await self._debit_item(s, account_id, item)
                s.add(self._audit(actor_id, "REVOKE_ITEM", account_id,
                                  f"{item_ref}={before.quantity(item_ref)}",
                                  f"{item_ref}={before.quantity(item_ref) - quantity}"))
            logger.info("DM %s revoked %s x%s from account %s", actor_id, item_ref, quantity, account_id)
            return await self.snapshot(s, account_id)

    async def adjust_coins(self, actor_id: int, account_id: int, delta: dict[str, int]) -> InventorySnapshot:
        """delta может содержать отрицательные значения; итог по каждому номиналу не уходит ниже нуля."""
        unknown = set(delta) - set(DENOMINATIONS)
        if unknown:
            raise InvalidParcelError(f"Неизвестный номинал: {', '.join(sorted(unknown))}.")
        plus = Coins(**{d: n for d, n in delta.items() if n > 0})
        minus = Coins(**{d: -n for d, n in delta.items() if n < 0})
        if plus.is_empty() and minus.is_empty():
            raise InvalidParcelError("Нечего менять: укажите хотя бы один номинал.")
        async with self._session_maker() as s:
            async with s.begin():
                before = await self.snapshot(s, account_id)
                if not minus.is_empty():
                    await self._debit_coins(s, account_id, minus)
                if not plus.is_empty():
                    await self._credit_coins(s, account_id, plus)
                after = await self.snapshot(s, account_id)
                s.add(self._audit(actor_id, "ADJUST_COINS", account_id,
                                  str(before.coins.as_dict()), str(after.coins.as_dict())))
            logger.info("DM %s adjusted coins of account %s by %s", actor_id, account_id, delta)
            return after

    @staticmethod
    def _audit(actor_id: int, action: str, account_id: int, before: str, after: str) -> AuditLog:
        return AuditLog(
            actor_user_id=actor_id,
            actor_role="dm",
            action=action,
            entity=f"account:{account_id}",
            before=before,
            after=after,
        )
