"""
Шина уведомлений об обменах.

События пишутся в outbox (trade_events) в той же транзакции, что и переход,
а рассылаются только после коммита. Доставка как минимум однократная:
запись удаляется, когда событие дошло до всех живых сессий обоих участников.
Получатель события должен перечитать список обменов, событие лишь сигнал.
"""

from __future__ import annotations
import asyncio
import itertools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guildvault.config import settings
from guildvault.db import base
from .enums import TradeEventKind
from .models_trade import TradeEventRecord

log = logging.getLogger(__name__)

@dataclass(frozen=True)
class TradeEvent:
    event_id: int
    kind: TradeEventKind
    trade_id: int
    group_id: int
    initiator_id: int
    receiver_id: int
    created_at: Optional[datetime] = None

    @property
    def participants(self) -> tuple[int, int]:
        return self.initiator_id, self.receiver_id

    @classmethod
    def from_record(cls, row: TradeEventRecord) -> "TradeEvent":
        return cls(
            event_id=row.id,
            kind=TradeEventKind(row.kind),
            trade_id=row.trade_id,
            group_id=row.group_id,
            initiator_id=row.initiator_id,
            receiver_id=row.receiver_id,
            created_at=row.created_at,
        )

EventHandler = Callable[[TradeEvent], Awaitable[None]]

_sub_ids = itertools.count(1)

class Subscription:
    """Живая сессия участника; закрывается вместе с соединением."""

    def __init__(self, bus: "NotificationBus", member_id: int, handler: EventHandler, key: Optional[str] = None):
        self.id = next(_sub_ids)
        self.member_id = member_id
        self.handler = handler
        self.key = key or f"sub:{self.id}"
        self._bus = bus
        self._closed = False

    @property
    def active(self) -> bool:
        return not self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus._remove(self)

    def __repr__(self):
        return f"<Subscription(member_id={self.member_id}, key={self.key}, active={self.active})>"

class NotificationBus:
    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        *,
        max_attempts: Optional[int] = None,
        batch_size: Optional[int] = None,
    ):
        self._session_maker = session_maker or base.async_session_maker
        self._max_attempts = max_attempts or settings.notify_max_attempts
        self._batch_size = batch_size or settings.notify_batch
        self._subs: dict[int, dict[str, Subscription]] = {}
        self._dispatch_lock = asyncio.Lock()
        # event_id -> (member_id, key) сессий, уже получивших событие
        self._reached: dict[int, set[tuple[int, str]]] = {}

    # ---- реестр подписок ----

    def subscribe(self, member_id: int, handler: EventHandler, *, key: Optional[str] = None) -> Subscription:
        """Регистрирует сессию. Повторная подписка с тем же key заменяет старую."""
        sub = Subscription(self, member_id, handler, key=key)
        previous = self._subs.setdefault(member_id, {}).get(sub.key)
        if previous is not None:
            previous.close()
        self._subs.setdefault(member_id, {})[sub.key] = sub
        log.debug("Subscribed %s", sub)
        return sub

    def unsubscribe(self, member_id: int, key: str) -> bool:
        sub = self._subs.get(member_id, {}).get(key)
        if sub is None:
            return False
        sub.close()
        return True

    def _remove(self, sub: Subscription) -> None:
        bucket = self._subs.get(sub.member_id)
        if not bucket or bucket.get(sub.key) is not sub:
            return
        del bucket[sub.key]
        if not bucket:
            del self._subs[sub.member_id]
        log.debug("Unsubscribed %s", sub)

    @asynccontextmanager
    async def connected(self, member_id: int, handler: EventHandler, *, key: Optional[str] = None) -> AsyncIterator[Subscription]:
        """Подписка на время жизни соединения."""
        sub = self.subscribe(member_id, handler, key=key)
        try:
            yield sub
        finally:
            sub.close()

    def subscribers(self, member_id: int) -> list[Subscription]:
        return list(self._subs.get(member_id, {}).values())

    # ---- доставка ----

    async def publish(self, event: TradeEvent) -> bool:
        """Отдаёт событие живым сессиям обоих участников. True, если все доставки прошли.

        Сессии, уже получившие событие при прошлой попытке, пропускаются.
        """
        ok = True
        reached = self._reached.setdefault(event.event_id, set())
        for member_id in dict.fromkeys(event.participants):
            for sub in self.subscribers(member_id):
                if (member_id, sub.key) in reached:
                    continue
                try:
                    await sub.handler(event)
                    reached.add((member_id, sub.key))
                except Exception as e:
                    ok = False
                    log.warning(
                        "Delivery of %s (trade %s) to member %s [%s] failed: %r",
                        event.kind, event.trade_id, member_id, sub.key, e,
                    )
        return ok

    async def dispatch_pending(self) -> int:
        """Рассылает outbox. Возвращает число событий, снятых с очереди как доставленные."""
        async with self._dispatch_lock:
            async with self._session_maker() as s:
                rows = (await s.scalars(
                    select(TradeEventRecord).order_by(TradeEventRecord.id).limit(self._batch_size)
                )).all()
            events = [TradeEvent.from_record(r) for r in rows]
            if not events:
                return 0

            delivered, failed = [], []
            for event in events:
                if await self.publish(event):
                    delivered.append(event.event_id)
                else:
                    failed.append(event.event_id)
            finished = list(delivered)

            async with self._session_maker() as s:
                async with s.begin():
                    if delivered:
                        await s.execute(
                            delete(TradeEventRecord)
                            .where(TradeEventRecord.id.in_(delivered))
                            .execution_options(synchronize_session=False)
                        )
                    if failed:
                        await s.execute(
                            update(TradeEventRecord)
                            .where(TradeEventRecord.id.in_(failed))
                            .values(attempts=TradeEventRecord.attempts + 1)
                            .execution_options(synchronize_session=False)
                        )
                        exhausted = (await s.scalars(
                            select(TradeEventRecord.id).where(
                                TradeEventRecord.id.in_(failed),
                                TradeEventRecord.attempts >= self._max_attempts,
                            )
                        )).all()
                        if exhausted:
                            log.warning("Dropping %d trade events after %d attempts: %s",
                                        len(exhausted), self._max_attempts, exhausted)
                            await s.execute(
                                delete(TradeEventRecord)
                                .where(TradeEventRecord.id.in_(exhausted))
                                .execution_options(synchronize_session=False)
                            )
                            finished.extend(exhausted)
            for event_id in finished:
                self._reached.pop(event_id, None)
            if failed:
                log.info("Trade events: %d delivered, %d will be retried", len(delivered), len(failed))
            return len(delivered)

    async def pending_count(self) -> int:
        async with self._session_maker() as s:
            return await s.scalar(select(func.count(TradeEventRecord.id))) or 0
