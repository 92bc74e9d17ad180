"""
Расчёт по обмену: перемещение посылок из эскроу.

Источник уже списан в момент эскроу, поэтому здесь только зачисления.
Вызывается строго внутри транзакции, которая удаляет запись обмена:
зачисление и удаление фиксируются вместе или не фиксируются вовсе,
повторный вызов для того же обмена не находит запись и ничего не зачисляет.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from guildvault.services.ledger import InventoryLedger
from .parcels import Parcel

log = logging.getLogger(__name__)

@dataclass(frozen=True)
class EscrowState:
    """Снимок обеих посылок обмена на момент захвата записи"""
    trade_id: int
    offered: Optional[Parcel]
    counter: Optional[Parcel]
    initiator_account_id: int
    receiver_account_id: Optional[int]

class SettlementEngine:
    def __init__(self, ledger: InventoryLedger):
        self._ledger = ledger

    async def transfer(self, session: AsyncSession, parcel: Optional[Parcel], to_account_id: int) -> None:
        """Зачисляет посылку на счёт получателя: стопка +N (или новая), монеты по номиналам."""
        if parcel is None or parcel.is_empty():
            return
        await self._ledger.credit(session, to_account_id, parcel)

    async def settle(self, session: AsyncSession, escrow: EscrowState) -> None:
        """Принятие: посылка инициатора уходит получателю, встречная инициатору."""
        if escrow.receiver_account_id is None:
            raise ValueError("settlement requires the receiver account")
        await self.transfer(session, escrow.offered, escrow.receiver_account_id)
        await self.transfer(session, escrow.counter, escrow.initiator_account_id)
        log.info(
            "Trade %s settled: offered -> account %s, counter -> account %s",
            escrow.trade_id, escrow.receiver_account_id,
            escrow.initiator_account_id if escrow.counter else None,
        )

    async def refund(self, session: AsyncSession, escrow: EscrowState) -> None:
        """Отмена: каждая посылка возвращается владельцу."""
        await self.transfer(session, escrow.offered, escrow.initiator_account_id)
        if escrow.counter is not None:
            if escrow.receiver_account_id is None:
                raise ValueError("refund of a counter parcel requires the receiver account")
            await self.transfer(session, escrow.counter, escrow.receiver_account_id)
        log.info("Trade %s escrow returned to owners", escrow.trade_id)
