from __future__ import annotations

from dataclasses import dataclass

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from guildvault.db.base import create_engine_and_sessionmaker, create_schema
from guildvault.db.models import AccountCurrency, AccountItem
from guildvault.services.catalog import ItemCatalog
from guildvault.services.directory import GroupDirectory
from guildvault.services.ledger import InventoryLedger
from guildvault.trading.models_trade import Trade, TradeEventRecord
from guildvault.trading.notifications import NotificationBus
from guildvault.trading.service import TradeService


@dataclass
class World:
    maker: object
    directory: GroupDirectory
    catalog: ItemCatalog
    ledger: InventoryLedger
    bus: NotificationBus
    service: TradeService
    group_id: int
    alice: int
    bob: int
    dm: int
    acc_alice: int
    acc_bob: int

    async def inventory(self, account_id: int):
        return await self.ledger.get_inventory(account_id)

    async def trade_count(self) -> int:
        async with self.maker() as s:
            return await s.scalar(select(func.count(Trade.id)))

    async def outbox(self) -> list[TradeEventRecord]:
        async with self.maker() as s:
            return list((await s.scalars(select(TradeEventRecord).order_by(TradeEventRecord.id))).all())

    async def totals(self) -> dict[str, int]:
        """Всё имущество группы: инвентари плюс посылки в эскроу открытых обменов."""
        out: dict[str, int] = {}
        async with self.maker() as s:
            for ref, qty in (await s.execute(select(AccountItem.item_ref, AccountItem.quantity))).all():
                out[ref] = out.get(ref, 0) + qty
            for cur in (await s.scalars(select(AccountCurrency))).all():
                for denom in ("copper", "silver", "gold", "platinum"):
                    out[denom] = out.get(denom, 0) + getattr(cur, denom)
            for trade in (await s.scalars(select(Trade))).all():
                for parcel in (trade.offered_parcel, trade.counter_parcel):
                    if parcel is None:
                        continue
                    if parcel.item is not None:
                        out[parcel.item.item_ref] = out.get(parcel.item.item_ref, 0) + parcel.item.quantity
                    for denom, n in parcel.coins.nonzero().items():
                        out[denom] = out.get(denom, 0) + n
        return {k: v for k, v in out.items() if v}


@pytest_asyncio.fixture
async def maker(tmp_path):
    engine, session_maker = create_engine_and_sessionmaker(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_schema(engine)
    yield session_maker
    await engine.dispose()


@pytest.fixture
def bus(maker) -> NotificationBus:
    return NotificationBus(maker, max_attempts=3, batch_size=100)


@pytest_asyncio.fixture
async def world(maker, bus) -> World:
    directory = GroupDirectory(maker)
    catalog = ItemCatalog(maker)
    ledger = InventoryLedger(maker)
    service = TradeService(
        maker,
        directory=directory,
        catalog=catalog,
        ledger=ledger,
        bus=bus,
        tx_retries=2,
        tx_backoff_secs=0.01,
    )

    alice = await directory.ensure_user(1001, "alice")
    bob = await directory.ensure_user(1002, "bob")
    dm = await directory.ensure_user(1003, "master")
    group = await directory.create_group("Party", dm.id)
    await directory.add_member(group.id, alice.id)
    await directory.add_member(group.id, bob.id)
    acc_alice = await directory.resolve_account_id(group.id, alice.id)
    acc_bob = await directory.resolve_account_id(group.id, bob.id)

    await ledger.grant_item(dm.id, acc_alice, "sword", 3)
    await ledger.adjust_coins(dm.id, acc_alice, {"gold": 50, "copper": 7})
    await ledger.grant_item(dm.id, acc_bob, "potion", 5)
    await ledger.adjust_coins(dm.id, acc_bob, {"silver": 20})

    return World(
        maker=maker,
        directory=directory,
        catalog=catalog,
        ledger=ledger,
        bus=bus,
        service=service,
        group_id=group.id,
        alice=alice.id,
        bob=bob.id,
        dm=dm.id,
        acc_alice=acc_alice,
        acc_bob=acc_bob,
    )
