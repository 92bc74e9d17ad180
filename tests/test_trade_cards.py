from datetime import datetime, timezone

from guildvault.services.trade_cards import render_event, render_trade_card, trade_keyboard
from guildvault.trading.enums import TradeEventKind, TradeStatus
from guildvault.trading.notifications import TradeEvent
from guildvault.trading.parcels import Parcel
from guildvault.trading.views import ItemMeta, TradeView

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _view(status=TradeStatus.PENDING, counter=None) -> TradeView:
    return TradeView(
        id=7,
        group_id=3,
        initiator_id=1,
        receiver_id=2,
        status=status,
        offered=Parcel.build(("sword", 2), {"gold": 5}),
        counter=counter,
        created_at=NOW,
        updated_at=NOW,
        offered_item=ItemMeta(ref="sword", name="Меч <+1>"),
    )


def _callbacks(markup) -> list[str]:
    return [b.callback_data for row in markup.inline_keyboard for b in row]


def test_card_escapes_item_names():
    text = render_trade_card(_view())
    assert "Обмен #7" in text
    assert "Меч &lt;+1&gt; ×2" in text
    assert "5gp" in text
    assert "Взамен" not in text


def test_card_shows_counter_parcel():
    text = render_trade_card(_view(TradeStatus.COUNTER_OFFERED, Parcel.build(None, {"silver": 3})))
    assert "Взамен: 3sp" in text


def test_keyboard_follows_turn():
    pending = _view()
    assert _callbacks(trade_keyboard(pending, 2)) == ["trade:7:accept", "trade:7:decline"]
    assert _callbacks(trade_keyboard(pending, 1)) == ["trade:7:cancel"]
    assert trade_keyboard(pending, 99) is None

    countered = _view(TradeStatus.COUNTER_OFFERED, Parcel.build(("potion", 1)))
    assert _callbacks(trade_keyboard(countered, 1)) == ["trade:7:accept", "trade:7:decline"]


def test_event_text_points_to_refetch():
    event = TradeEvent(event_id=1, kind=TradeEventKind.SETTLED, trade_id=7, group_id=3, initiator_id=1, receiver_id=2)
    text = render_event(event)
    assert "Обмен завершён" in text
    assert "/trades 3" in text
