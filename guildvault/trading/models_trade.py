"""
Модели данных для обменов
"""

from __future__ import annotations
from typing import Optional
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Index

from guildvault.db.models import Base
from guildvault.utils.dt import now_tz
from .enums import TradeEventKind, TradeStatus
from .parcels import Parcel

class Trade(Base):
    """Открытый обмен между инициатором и получателем внутри группы"""
    __tablename__ = "trades"

    id = Column(Integer, primary_key=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False, index=True)
    initiator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=TradeStatus.PENDING)  # TradeStatus

    # Посылка инициатора (уже списана с его инвентаря)
    offered_item_ref = Column(String(64), nullable=True)
    offered_item_qty = Column(Integer, nullable=True)
    offered_coins = Column(JSON, nullable=True)  # {"copper": .., "silver": .., "gold": .., "platinum": ..}

    # Встречная посылка получателя (списана в момент встречного предложения)
    counter_item_ref = Column(String(64), nullable=True)
    counter_item_qty = Column(Integer, nullable=True)
    counter_coins = Column(JSON, nullable=True)

    # Счётчик для условных UPDATE/DELETE (оптимистичная блокировка)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=now_tz)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=now_tz, onupdate=now_tz)

    @property
    def trade_status(self) -> TradeStatus:
        return TradeStatus(self.status)

    @property
    def offered_parcel(self) -> Optional[Parcel]:
        return Parcel.from_columns(self.offered_item_ref, self.offered_item_qty, self.offered_coins)

    @property
    def counter_parcel(self) -> Optional[Parcel]:
        return Parcel.from_columns(self.counter_item_ref, self.counter_item_qty, self.counter_coins)

    def __repr__(self):
        return f"<Trade(id={self.id}, group_id={self.group_id}, status={self.status}, v={self.version})>"

Index("ix_trades_receiver_status", Trade.receiver_id, Trade.status)
Index("ix_trades_initiator_status", Trade.initiator_id, Trade.status)

class TradeEventRecord(Base):
    """Outbox: событие пишется в той же транзакции, что и переход, рассылается после коммита"""
    __tablename__ = "trade_events"

    id = Column(Integer, primary_key=True)
    kind = Column(String(32), nullable=False)  # TradeEventKind
    trade_id = Column(Integer, nullable=False, index=True)  # без FK: запись обмена к этому моменту может быть удалена
    group_id = Column(Integer, nullable=False)
    initiator_id = Column(Integer, nullable=False)
    receiver_id = Column(Integer, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=now_tz)

    @classmethod
    def for_trade(cls, kind: TradeEventKind, trade: Trade) -> "TradeEventRecord":
        return cls(
            kind=kind.value,
            trade_id=trade.id,
            group_id=trade.group_id,
            initiator_id=trade.initiator_id,
            receiver_id=trade.receiver_id,
        )

    def __repr__(self):
        return f"<TradeEventRecord(id={self.id}, kind={self.kind}, trade_id={self.trade_id})>"
