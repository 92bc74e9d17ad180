"""
DTO обменов для вызывающего кода (бот, другие сервисы)
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .enums import TradeStatus
from .parcels import Parcel

@dataclass(frozen=True)
class ItemMeta:
    ref: str
    name: str
    description: str = ""
    category: str = "misc"
    weight: float = 0.0

@dataclass(frozen=True)
class TradeView:
    id: int
    group_id: int
    initiator_id: int
    receiver_id: int
    status: TradeStatus
    offered: Optional[Parcel]
    counter: Optional[Parcel]
    created_at: datetime
    updated_at: datetime
    offered_item: Optional[ItemMeta] = None
    counter_item: Optional[ItemMeta] = None

    @property
    def awaiting_member_id(self) -> int:
        """Чей сейчас ход: получатель отвечает на предложение, инициатор на встречное."""
        if self.status == TradeStatus.PENDING:
            return self.receiver_id
        return self.initiator_id

    def involves(self, member_id: int) -> bool:
        return member_id in (self.initiator_id, self.receiver_id)
