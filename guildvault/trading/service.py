"""
Сервис обменов - конечный автомат переговоров

pending --counter--> counter_offered; из обоих статусов accept/cancel удаляют запись.
Каждый переход выполняется одной транзакцией БД: эскроу/возврат/зачисление, изменение записи
обмена и событие в outbox фиксируются вместе. Уведомления рассылаются после коммита.
"""

from __future__ import annotations
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_exponential

from guildvault.config import settings
from guildvault.db import base
from guildvault.services.catalog import ItemCatalog, ItemMetadataResolver
from guildvault.services.directory import GroupDirectory, MembershipDirectory
from guildvault.services.ledger import InventoryLedger
from guildvault.utils.dt import now_tz
from .enums import ACCEPTABLE, CANCELLABLE, COUNTERABLE, TradeEventKind, TradeStatus
from .errors import (
    InvalidStateTransitionError, SelfTradeError, SettlementError, TradeNotAllowedError, TradeNotFoundError,
)
from .models_trade import Trade, TradeEventRecord
from .notifications import NotificationBus
from .parcels import CoinsLike, ItemLike, Parcel
from .settlement import EscrowState, SettlementEngine
from .views import TradeView

log = logging.getLogger(__name__)

T = TypeVar("T")

_NO_SYNC = {"synchronize_session": False}

class TradeService:
    """Фасад для переговоров и расчётов по обменам"""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        *,
        directory: Optional[MembershipDirectory] = None,
        catalog: Optional[ItemMetadataResolver] = None,
        ledger: Optional[InventoryLedger] = None,
        settlement: Optional[SettlementEngine] = None,
        bus: Optional[NotificationBus] = None,
        tx_retries: Optional[int] = None,
        tx_backoff_secs: Optional[float] = None,
    ):
        self._session_maker = session_maker or base.async_session_maker
        self.directory = directory or GroupDirectory(self._session_maker)
        self.catalog = catalog or ItemCatalog(self._session_maker)
        self.ledger = ledger or InventoryLedger(self._session_maker)
        self.settlement = settlement or SettlementEngine(self.ledger)
        self.bus = bus
        self._tx_retries = max(1, tx_retries or settings.trade_tx_retries)
        self._tx_backoff = tx_backoff_secs if tx_backoff_secs is not None else settings.trade_tx_backoff_secs

    # ---- переходы ----

    async def create_offer(
        self,
        group_id: int,
        initiator_id: int,
        receiver_id: int,
        item: ItemLike = None,
        coins: CoinsLike = None,
    ) -> TradeView:
        """
        Создает предложение обмена и кладёт посылку инициатора в эскроу

        Raises:
            SelfTradeError, InvalidParcelError, AccountNotFoundError,
            TradeNotAllowedError, InsufficientResourceError, SettlementError
        """
        if initiator_id == receiver_id:
            raise SelfTradeError(initiator_id)
        parcel = Parcel.build(item, coins)

        async def _tx(s: AsyncSession) -> TradeView:
            initiator_acc = await self.directory.resolve_account_id(group_id, initiator_id, session=s)
            await self.directory.resolve_account_id(group_id, receiver_id, session=s)
            for member_id in (initiator_id, receiver_id):
                if not await self.directory.is_trade_eligible(group_id, member_id, session=s):
                    raise TradeNotAllowedError(f"Участник {member_id} не может участвовать в обменах (роль DM).")

            await self.ledger.ensure_covers(s, initiator_acc, parcel)
            await self.ledger.debit(s, initiator_acc, parcel)

            trade = Trade(
                group_id=group_id,
                initiator_id=initiator_id,
                receiver_id=receiver_id,
                status=TradeStatus.PENDING.value,
                offered_item_ref=parcel.item.item_ref if parcel.item else None,
                offered_item_qty=parcel.item.quantity if parcel.item else None,
                offered_coins=parcel.coins_column(),
                version=1,
            )
            s.add(trade)
            await s.flush()
            s.add(TradeEventRecord.for_trade(TradeEventKind.CREATED, trade))
            return await self._view(s, trade)

        view = await self._run_tx("create_offer", _tx)
        log.info("Trade %s created: group=%s %s -> %s", view.id, group_id, initiator_id, receiver_id)
        await self._notify_after_commit()
        return view

    async def make_counter_offer(
        self,
        trade_id: int,
        item: ItemLike = None,
        coins: CoinsLike = None,
        *,
        actor_id: Optional[int] = None,
    ) -> TradeView:
        """Встречное предложение получателя; его посылка тоже уходит в эскроу."""
        parcel = Parcel.build(item, coins)

        async def _tx(s: AsyncSession) -> TradeView:
            trade = await self._load(s, trade_id)
            if actor_id is not None and actor_id != trade.receiver_id:
                raise TradeNotAllowedError("Встречное предложение может сделать только получатель.")
            self._check_transition(trade, COUNTERABLE, "counter")

            receiver_acc = await self.directory.resolve_account_id(trade.group_id, trade.receiver_id, session=s)
            await self.ledger.ensure_covers(s, receiver_acc, parcel)
            await self.ledger.debit(s, receiver_acc, parcel)

            res = await s.execute(
                update(Trade)
                .where(
                    Trade.id == trade.id,
                    Trade.status == TradeStatus.PENDING.value,
                    Trade.version == trade.version,
                )
                .values(
                    status=TradeStatus.COUNTER_OFFERED.value,
                    counter_item_ref=parcel.item.item_ref if parcel.item else None,
                    counter_item_qty=parcel.item.quantity if parcel.item else None,
                    counter_coins=parcel.coins_column(),
                    version=Trade.version + 1,
                    updated_at=now_tz(),
                )
                .execution_options(**_NO_SYNC)
            )
            if res.rowcount != 1:
                raise InvalidStateTransitionError(trade.id, trade.status, "counter")
            await s.refresh(trade)
            s.add(TradeEventRecord.for_trade(TradeEventKind.COUNTER_OFFERED, trade))
            return await self._view(s, trade)

        view = await self._run_tx("make_counter_offer", _tx)
        log.info("Trade %s counter-offered by %s", trade_id, view.receiver_id)
        await self._notify_after_commit()
        return view

    async def accept_trade(self, trade_id: int, *, actor_id: Optional[int] = None) -> None:
        """Принятие: расчёт по обеим посылкам и удаление записи обмена."""

        async def _tx(s: AsyncSession) -> None:
            trade = await self._load(s, trade_id)
            status = self._check_transition(trade, ACCEPTABLE, "accept")
            if actor_id is not None:
                expected = trade.receiver_id if status == TradeStatus.PENDING else trade.initiator_id
                if actor_id != expected:
                    raise TradeNotAllowedError("Сейчас принять обмен может только другая сторона.")
            escrow = await self._escrow(s, trade, need_receiver=True)
            await self._claim(s, trade, "accept")
            await self.settlement.settle(s, escrow)
            s.add(TradeEventRecord.for_trade(TradeEventKind.SETTLED, trade))

        await self._run_tx("accept_trade", _tx)
        log.info("Trade %s accepted", trade_id)
        await self._notify_after_commit()

    async def cancel_trade(self, trade_id: int, *, actor_id: Optional[int] = None) -> None:
        """Отмена или отказ: посылки возвращаются владельцам, запись удаляется."""

        async def _tx(s: AsyncSession) -> None:
            trade = await self._load(s, trade_id)
            if actor_id is not None and actor_id not in (trade.initiator_id, trade.receiver_id):
                raise TradeNotAllowedError("Отменить обмен может только его участник.")
            self._check_transition(trade, CANCELLABLE, "cancel")
            escrow = await self._escrow(s, trade, need_receiver=trade.counter_parcel is not None)
            await self._claim(s, trade, "cancel")
            await self.settlement.refund(s, escrow)
            s.add(TradeEventRecord.for_trade(TradeEventKind.CANCELLED, trade))

        await self._run_tx("cancel_trade", _tx)
        log.info("Trade %s cancelled", trade_id)
        await self._notify_after_commit()

    # ---- чтение ----

    async def get_trade(self, trade_id: int) -> TradeView:
        async with self._session_maker() as s:
            trade = await self._load(s, trade_id)
            return await self._view(s, trade)

    async def get_active_trades(self, group_id: int, member_id: int) -> list[TradeView]:
        """Все открытые обмены участника в группе, новые сверху."""
        return await self._list(
            select(Trade)
            .where(
                Trade.group_id == group_id,
                or_(Trade.initiator_id == member_id, Trade.receiver_id == member_id),
                Trade.status.in_([s.value for s in TradeStatus]),
            )
            .order_by(Trade.created_at.desc(), Trade.id.desc())
        )

    async def get_incoming_trades(self, member_id: int) -> list[TradeView]:
        """Предложения, ждущие ответа участника как получателя."""
        return await self._list(
            select(Trade)
            .where(Trade.receiver_id == member_id, Trade.status == TradeStatus.PENDING.value)
            .order_by(Trade.created_at.desc(), Trade.id.desc())
        )

    async def get_counter_offers(self, member_id: int) -> list[TradeView]:
        """Встречные предложения на обмены, которые участник начал."""
        return await self._list(
            select(Trade)
            .where(Trade.initiator_id == member_id, Trade.status == TradeStatus.COUNTER_OFFERED.value)
            .order_by(Trade.updated_at.desc(), Trade.id.desc())
        )

    # ---- внутреннее ----

    async def _run_tx(self, op: str, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Выполняет fn в одной транзакции; временные сбои БД повторяет, доменные ошибки не повторяет."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._tx_retries),
            wait=wait_exponential(multiplier=self._tx_backoff, max=2),
            retry=retry_if_exception_type(OperationalError),
            before_sleep=lambda rs: log.warning(
                "%s: transient DB error, retry %d: %r", op, rs.attempt_number, rs.outcome.exception()
            ),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    async with self._session_maker() as s:
                        async with s.begin():
                            result = await fn(s)
        except RetryError as e:
            log.error("%s: giving up after %d attempts", op, self._tx_retries)
            raise SettlementError(
                "Не удалось выполнить операцию из-за временного сбоя, состояние обмена не изменилось. "
                "Попробуйте ещё раз позже."
            ) from e.last_attempt.exception()
        return result

    async def _notify_after_commit(self) -> None:
        if self.bus is None:
            return
        try:
            await self.bus.dispatch_pending()
        except Exception:
            # событие осталось в outbox, его доставит периодический диспетчер
            log.exception("Post-commit notification dispatch failed")

    @staticmethod
    async def _load(s: AsyncSession, trade_id: int) -> Trade:
        trade = await s.get(Trade, trade_id, populate_existing=True)
        if trade is None:
            raise TradeNotFoundError(trade_id)
        return trade

    @staticmethod
    def _check_transition(trade: Trade, allowed: frozenset, action: str) -> TradeStatus:
        status = trade.trade_status
        if status not in allowed:
            raise InvalidStateTransitionError(trade.id, status.value, action)
        return status

    async def _escrow(self, s: AsyncSession, trade: Trade, *, need_receiver: bool) -> EscrowState:
        initiator_acc = await self.directory.resolve_account_id(trade.group_id, trade.initiator_id, session=s)
        receiver_acc = None
        if need_receiver:
            receiver_acc = await self.directory.resolve_account_id(trade.group_id, trade.receiver_id, session=s)
        return EscrowState(
            trade_id=trade.id,
            offered=trade.offered_parcel,
            counter=trade.counter_parcel,
            initiator_account_id=initiator_acc,
            receiver_account_id=receiver_acc,
        )

    @staticmethod
    async def _claim(s: AsyncSession, trade: Trade, action: str) -> None:
        """Атомарный захват записи: ровно один из конкурирующих accept/cancel удаляет её."""
        res = await s.execute(
            delete(Trade)
            .where(Trade.id == trade.id, Trade.status == trade.status, Trade.version == trade.version)
            .execution_options(**_NO_SYNC)
        )
        if res.rowcount != 1:
            raise InvalidStateTransitionError(trade.id, trade.status, action)

    async def _list(self, stmt: Any) -> list[TradeView]:
        async with self._session_maker() as s:
            trades = (await s.scalars(stmt)).all()
            metas = await self.catalog.resolve_many(
                [t.offered_item_ref for t in trades] + [t.counter_item_ref for t in trades], session=s
            )
            return [self._to_view(t, metas) for t in trades]

    async def _view(self, s: AsyncSession, trade: Trade) -> TradeView:
        metas = await self.catalog.resolve_many([trade.offered_item_ref, trade.counter_item_ref], session=s)
        return self._to_view(trade, metas)

    @staticmethod
    def _to_view(trade: Trade, metas: dict) -> TradeView:
        return TradeView(
            id=trade.id,
            group_id=trade.group_id,
            initiator_id=trade.initiator_id,
            receiver_id=trade.receiver_id,
            status=trade.trade_status,
            offered=trade.offered_parcel,
            counter=trade.counter_parcel,
            created_at=trade.created_at,
            updated_at=trade.updated_at,
            offered_item=metas.get(trade.offered_item_ref) if trade.offered_item_ref else None,
            counter_item=metas.get(trade.counter_item_ref) if trade.counter_item_ref else None,
        )
