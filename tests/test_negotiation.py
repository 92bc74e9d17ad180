import pytest

from guildvault.trading.enums import TradeStatus
from guildvault.trading.errors import (
    AccountNotFoundError,
    InsufficientResourceError,
    InvalidParcelError,
    InvalidStateTransitionError,
    SelfTradeError,
    TradeNotAllowedError,
    TradeNotFoundError,
)
from guildvault.trading.parcels import Coins, ItemParcel


async def test_create_offer_escrows_initiator_parcel(world):
    view = await world.service.create_offer(
        world.group_id, world.alice, world.bob, ("sword", 2), {"gold": 10}
    )
    assert view.status == TradeStatus.PENDING
    assert view.offered.item == ItemParcel("sword", 2)
    assert view.offered.coins == Coins(gold=10)
    assert view.counter is None
    assert view.awaiting_member_id == world.bob

    snap = await world.inventory(world.acc_alice)
    assert snap.quantity("sword") == 1
    assert snap.coins.gold == 40
    # получатель пока ничего не получил
    assert (await world.inventory(world.acc_bob)).quantity("sword") == 0


async def test_coins_only_offer(world):
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, coins={"copper": 7})
    assert view.offered.item is None
    assert (await world.inventory(world.acc_alice)).coins.copper == 0


async def test_self_trade_rejected(world):
    with pytest.raises(SelfTradeError):
        await world.service.create_offer(world.group_id, world.alice, world.alice, ("sword", 1))
    assert await world.trade_count() == 0


async def test_empty_parcel_rejected(world):
    with pytest.raises(InvalidParcelError):
        await world.service.create_offer(world.group_id, world.alice, world.bob)
    with pytest.raises(InvalidParcelError):
        await world.service.create_offer(world.group_id, world.alice, world.bob, coins={"gold": 0})


async def test_negative_quantity_rejected(world):
    with pytest.raises(InvalidParcelError):
        await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", -1))
    with pytest.raises(InvalidParcelError):
        await world.service.create_offer(world.group_id, world.alice, world.bob, coins={"gold": -5})


async def test_over_quantity_leaves_no_trace(world):
    before = await world.inventory(world.acc_alice)
    with pytest.raises(InsufficientResourceError):
        await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 4))
    with pytest.raises(InsufficientResourceError):
        await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1), {"gold": 51})
    assert await world.inventory(world.acc_alice) == before
    assert await world.trade_count() == 0
    assert await world.outbox() == []


async def test_receiver_must_be_in_group(world):
    stranger = await world.directory.ensure_user(2001, "stranger")
    with pytest.raises(AccountNotFoundError):
        await world.service.create_offer(world.group_id, world.alice, stranger.id, ("sword", 1))
    assert (await world.inventory(world.acc_alice)).quantity("sword") == 3


async def test_dm_cannot_trade(world):
    with pytest.raises((AccountNotFoundError, TradeNotAllowedError)):
        await world.service.create_offer(world.group_id, world.alice, world.dm, ("sword", 1))
    assert await world.trade_count() == 0


async def test_counter_offer_escrows_receiver_parcel(world):
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    countered = await world.service.make_counter_offer(view.id, ("potion", 2), {"silver": 5}, actor_id=world.bob)

    assert countered.status == TradeStatus.COUNTER_OFFERED
    assert countered.counter.item == ItemParcel("potion", 2)
    assert countered.awaiting_member_id == world.alice
    snap = await world.inventory(world.acc_bob)
    assert snap.quantity("potion") == 3
    assert snap.coins.silver == 15

    assert [t.id for t in await world.service.get_counter_offers(world.alice)] == [view.id]
    assert await world.service.get_incoming_trades(world.bob) == []


async def test_counter_only_once(world):
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    await world.service.make_counter_offer(view.id, ("potion", 1))
    with pytest.raises(InvalidStateTransitionError):
        await world.service.make_counter_offer(view.id, ("potion", 1))
    assert (await world.inventory(world.acc_bob)).quantity("potion") == 4


async def test_counter_by_initiator_rejected(world):
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    with pytest.raises(TradeNotAllowedError):
        await world.service.make_counter_offer(view.id, coins={"gold": 1}, actor_id=world.alice)
    assert (await world.service.get_trade(view.id)).status == TradeStatus.PENDING


async def test_counter_over_quantity_keeps_trade_pending(world):
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    with pytest.raises(InsufficientResourceError):
        await world.service.make_counter_offer(view.id, ("potion", 6))
    trade = await world.service.get_trade(view.id)
    assert trade.status == TradeStatus.PENDING
    assert trade.counter is None
    assert (await world.inventory(world.acc_bob)).quantity("potion") == 5


async def test_unknown_trade(world):
    with pytest.raises(TradeNotFoundError):
        await world.service.make_counter_offer(999, ("potion", 1))
    with pytest.raises(TradeNotFoundError):
        await world.service.accept_trade(999)
    with pytest.raises(TradeNotFoundError):
        await world.service.cancel_trade(999)
    with pytest.raises(TradeNotFoundError):
        await world.service.get_trade(999)


async def test_turn_order_for_accept(world):
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    with pytest.raises(TradeNotAllowedError):
        await world.service.accept_trade(view.id, actor_id=world.alice)
    await world.service.make_counter_offer(view.id, ("potion", 1), actor_id=world.bob)
    with pytest.raises(TradeNotAllowedError):
        await world.service.accept_trade(view.id, actor_id=world.bob)
    await world.service.accept_trade(view.id, actor_id=world.alice)
    assert await world.trade_count() == 0


async def test_outsider_cannot_cancel(world):
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    with pytest.raises(TradeNotAllowedError):
        await world.service.cancel_trade(view.id, actor_id=world.dm)
    assert await world.trade_count() == 1


async def test_listing_queries(world):
    first = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    second = await world.service.create_offer(world.group_id, world.alice, world.bob, coins={"gold": 1})
    third = await world.service.create_offer(world.group_id, world.bob, world.alice, ("potion", 1))

    active = await world.service.get_active_trades(world.group_id, world.alice)
    assert [t.id for t in active] == [third.id, second.id, first.id]
    incoming = await world.service.get_incoming_trades(world.bob)
    assert [t.id for t in incoming] == [second.id, first.id]
    assert [t.id for t in await world.service.get_incoming_trades(world.alice)] == [third.id]
    assert await world.service.get_active_trades(world.group_id + 1, world.alice) == []


async def test_views_carry_item_metadata(world):
    await world.catalog.upsert_item("sword", "Длинный меч", category="weapon", weight=3.0)
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    assert view.offered_item.name == "Длинный меч"
    assert view.offered_item.category == "weapon"

    countered = await world.service.make_counter_offer(view.id, ("potion", 1))
    # предмет вне каталога показывается по ref
    assert countered.counter_item.name == "potion"
