from __future__ import annotations
from html import escape
from typing import Optional

from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from guildvault.services.ledger import InventorySnapshot
from guildvault.trading.enums import TradeEventKind, TradeStatus
from guildvault.trading.notifications import TradeEvent
from guildvault.trading.parcels import Parcel
from guildvault.trading.views import ItemMeta, TradeView
from guildvault.utils.dt import fmt_short
from guildvault.utils.parsing import format_coins

STATUS_CAPTION = {
    TradeStatus.PENDING: "⏳ ждёт ответа получателя",
    TradeStatus.COUNTER_OFFERED: "🔁 встречное предложение",
}

EVENT_CAPTION = {
    TradeEventKind.CREATED: "📦 Новое предложение обмена",
    TradeEventKind.COUNTER_OFFERED: "🔁 Встречное предложение",
    TradeEventKind.SETTLED: "✅ Обмен завершён",
    TradeEventKind.CANCELLED: "❌ Обмен отменён",
}


def parcel_text(parcel: Optional[Parcel], meta: Optional[ItemMeta] = None) -> str:
    if parcel is None:
        return "—"
    parts = []
    if parcel.item is not None:
        name = meta.name if meta else parcel.item.item_ref
        parts.append(f"{escape(name)} ×{parcel.item.quantity}")
    if not parcel.coins.is_empty():
        parts.append(format_coins(parcel.coins))
    return ", ".join(parts)


def render_trade_card(trade: TradeView) -> str:
    """Текст карточки обмена для сообщения участнику."""
    lines = [
        f"<b>Обмен #{trade.id}</b> (группа {trade.group_id})",
        f"Статус: {STATUS_CAPTION.get(trade.status, trade.status)}",
        f"От участника {trade.initiator_id} → участнику {trade.receiver_id}",
        f"Предлагает: {parcel_text(trade.offered, trade.offered_item)}",
    ]
    if trade.counter is not None:
        lines.append(f"Взамен: {parcel_text(trade.counter, trade.counter_item)}")
    lines.append(f"Обновлён: {fmt_short(trade.updated_at)}")
    return "\n".join(lines)


def trade_keyboard(trade: TradeView, viewer_id: int) -> Optional[InlineKeyboardMarkup]:
    """Кнопки для того, чей сейчас ход; у второй стороны только отмена."""
    if not trade.involves(viewer_id):
        return None
    b = InlineKeyboardBuilder()
    if trade.awaiting_member_id == viewer_id:
        b.button(text="✅ Принять", callback_data=f"trade:{trade.id}:accept")
        b.button(text="❌ Отклонить", callback_data=f"trade:{trade.id}:decline")
    else:
        b.button(text="↩️ Отменить", callback_data=f"trade:{trade.id}:cancel")
    b.adjust(2)
    return b.as_markup()


def render_event(event: TradeEvent) -> str:
    caption = EVENT_CAPTION.get(event.kind, str(event.kind))
    return (
        f"🔔 {caption}: обмен #{event.trade_id} (группа {event.group_id}).\n"
        f"Обновите список: /trades {event.group_id}"
    )


def render_inventory(snapshot: InventorySnapshot, metas: dict[str, ItemMeta], title: str) -> str:
    lines = [f"<b>{escape(title)}</b>", f"Монеты: {format_coins(snapshot.coins)}"]
    if not snapshot.items:
        lines.append("Предметов нет.")
    for ref, qty in snapshot.items.items():
        meta = metas.get(ref)
        name = meta.name if meta else ref
        lines.append(f"• {escape(name)} <code>{escape(ref)}</code> ×{qty}")
    return "\n".join(lines)
