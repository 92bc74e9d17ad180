"""
Свойства, которые держатся при любом порядке операций:
сохранение имущества, однократный расчёт, гонки accept/cancel.
"""
import asyncio

import pytest

from guildvault.trading.errors import InsufficientResourceError, TradeError, TradeNotFoundError


async def test_conservation_through_full_lifecycle(world):
    start = await world.totals()

    t1 = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 2), {"gold": 10})
    assert await world.totals() == start
    await world.service.make_counter_offer(t1.id, ("potion", 3), {"silver": 7})
    assert await world.totals() == start
    await world.service.accept_trade(t1.id)
    assert await world.totals() == start

    t2 = await world.service.create_offer(world.group_id, world.bob, world.alice, ("sword", 1))
    await world.service.make_counter_offer(t2.id, coins={"copper": 7})
    await world.service.cancel_trade(t2.id)
    assert await world.totals() == start

    t3 = await world.service.create_offer(world.group_id, world.alice, world.bob, ("potion", 3))
    await world.service.cancel_trade(t3.id)
    assert await world.totals() == start


async def test_offer_cancel_round_trip_restores_inventory(world):
    before = await world.inventory(world.acc_alice)
    for _ in range(3):
        view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 3), {"copper": 7})
        await world.service.cancel_trade(view.id)
    assert await world.inventory(world.acc_alice) == before


async def test_exact_quantity_boundary(world):
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 3))
    assert (await world.inventory(world.acc_alice)).quantity("sword") == 0
    with pytest.raises(InsufficientResourceError) as exc:
        await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1))
    assert exc.value.available == 0
    await world.service.cancel_trade(view.id)


async def test_accept_is_settled_exactly_once_under_concurrency(world):
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 2))
    results = await asyncio.gather(
        *[world.service.accept_trade(view.id) for _ in range(4)],
        return_exceptions=True,
    )
    ok = [r for r in results if r is None]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(ok) == 1
    assert len(failed) == 3
    assert all(isinstance(e, TradeNotFoundError) for e in failed)
    assert (await world.inventory(world.acc_bob)).quantity("sword") == 2


async def test_accept_cancel_race_has_single_winner(world):
    start = await world.totals()
    view = await world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 1), {"gold": 5})
    await world.service.make_counter_offer(view.id, ("potion", 1))

    accepted, cancelled = await asyncio.gather(
        world.service.accept_trade(view.id),
        world.service.cancel_trade(view.id),
        return_exceptions=True,
    )
    outcomes = [accepted, cancelled]
    assert sum(1 for r in outcomes if r is None) == 1
    loser = next(r for r in outcomes if r is not None)
    assert isinstance(loser, TradeError)

    assert await world.trade_count() == 0
    assert await world.totals() == start
    bob = await world.inventory(world.acc_bob)
    if accepted is None:
        assert bob.quantity("sword") == 1 and bob.quantity("potion") == 4
    else:
        assert bob.quantity("sword") == 0 and bob.quantity("potion") == 5


async def test_concurrent_offers_cannot_overdraw_a_stack(world):
    results = await asyncio.gather(
        *[
            world.service.create_offer(world.group_id, world.alice, world.bob, ("sword", 2))
            for _ in range(3)
        ],
        return_exceptions=True,
    )
    created = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(created) == 1
    assert all(isinstance(e, InsufficientResourceError) for e in rejected)
    assert (await world.inventory(world.acc_alice)).quantity("sword") == 1
    assert await world.trade_count() == 1
