import pytest

from guildvault.trading.errors import SettlementError, TradeNotFoundError
from guildvault.trading.parcels import Coins, Parcel
from guildvault.trading.settlement import EscrowState, SettlementEngine


async def test_accept_pending_moves_offer_to_receiver(world):
    view = await world.service.create_offer(
        world.group_id, world.alice, world.bob, ("sword", 2), {"gold": 5}
    )
    await world.service.accept_trade(view.id, actor_id=world.bob)

    alice = await world.inventory(world.acc_alice)
    bob = await world.inventory(world.acc_bob)
    assert alice.items == {"sword": 1}
    assert alice.coins == Coins(copper=7, gold=45)
    assert bob.items == {"potion": 5, "sword": 2}
    assert bob.coins == Coins(silver=20, gold=5)
    assert await world.trade_count() == 0


async def test_accept_counter_swaps_both_parcels(world):
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    await world.service.make_counter_offer(view.id, ("potion", 2), {"silver": 3})
    await world.service.accept_trade(view.id, actor_id=world.alice)

    alice = await world.inventory(world.acc_alice)
    bob = await world.inventory(world.acc_bob)
    assert alice.items == {"potion": 2, "sword": 2}
    assert alice.coins.silver == 3
    assert bob.items == {"potion": 3, "sword": 1}
    assert bob.coins.silver == 17


async def test_cancel_pending_refunds_initiator(world):
    before = await world.inventory(world.acc_alice)
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 3), {"gold": 50})
    assert "sword" not in (await world.inventory(world.acc_alice)).items
    await world.service.cancel_trade(view.id, actor_id=world.alice)
    assert await world.inventory(world.acc_alice) == before
    assert await world.trade_count() == 0


async def test_decline_counter_refunds_both(world):
    alice_before = await world.inventory(world.acc_alice)
    bob_before = await world.inventory(world.acc_bob)
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    await world.service.make_counter_offer(view.id, ("potion", 5), {"silver": 20})
    await world.service.cancel_trade(view.id, actor_id=world.alice)
    assert await world.inventory(world.acc_alice) == alice_before
    assert await world.inventory(world.acc_bob) == bob_before


async def test_second_accept_finds_nothing(world):
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    await world.service.accept_trade(view.id)
    with pytest.raises(TradeNotFoundError):
        await world.service.accept_trade(view.id)
    with pytest.raises(TradeNotFoundError):
        await world.service.cancel_trade(view.id)
    assert (await world.inventory(world.acc_bob)).quantity("sword") == 1


async def test_engine_settle_requires_receiver_account(world):
    engine = SettlementEngine(world.ledger)
    escrow = EscrowState(
        trade_id=1,
        offered=Parcel.build(("sword", 1)),
        counter=None,
        initiator_account_id=world.acc_alice,
        receiver_account_id=None,
    )
    async with world.maker() as s:
        with pytest.raises(ValueError):
            await engine.settle(s, escrow)


async def test_transient_db_errors_surface_as_settlement_error(world, monkeypatch):
    from sqlalchemy.exc import OperationalError

    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    calls = []

    async def flaky_settle(session, escrow):
        calls.append(escrow.trade_id)
        raise OperationalError("UPDATE account_items", {}, Exception("database is locked"))

    monkeypatch.setattr(world.service.settlement, "settle", flaky_settle)
    with pytest.raises(SettlementError):
        await world.service.accept_trade(view.id)

    # все попытки откатились: обмен на месте, эскроу не тронут
    assert len(calls) == 2
    assert (await world.service.get_trade(view.id)).offered.item.quantity == 1
    assert (await world.inventory(world.acc_bob)).quantity("sword") == 0


async def test_transient_error_then_success(world, monkeypatch):
    from sqlalchemy.exc import OperationalError

    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    real_settle = world.service.settlement.settle
    calls = []

    async def settle_once_flaky(session, escrow):
        calls.append(escrow.trade_id)
        if len(calls) == 1:
            raise OperationalError("UPDATE account_items", {}, Exception("database is locked"))
        await real_settle(session, escrow)

    monkeypatch.setattr(world.service.settlement, "settle", settle_once_flaky)
    await world.service.accept_trade(view.id)
    assert len(calls) == 2
    assert (await world.inventory(world.acc_bob)).quantity("sword") == 1
    assert await world.trade_count() == 0
