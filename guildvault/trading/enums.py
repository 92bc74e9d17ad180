"""
Перечисления для модуля обменов
"""

from enum import StrEnum

class TradeStatus(StrEnum):
    """Статус открытого обмена (завершённый обмен удаляется)"""
    PENDING = "pending"                  # Предложение ждёт ответа получателя
    COUNTER_OFFERED = "counter_offered"  # Получатель сделал встречное предложение

class TradeEventKind(StrEnum):
    """Тип события жизненного цикла обмена"""
    CREATED = "TradeCreated"
    COUNTER_OFFERED = "TradeCounterOffered"
    SETTLED = "TradeSettled"
    CANCELLED = "TradeCancelled"

# Из каких статусов разрешены переходы
COUNTERABLE = frozenset({TradeStatus.PENDING})
ACCEPTABLE = frozenset({TradeStatus.PENDING, TradeStatus.COUNTER_OFFERED})
CANCELLABLE = frozenset({TradeStatus.PENDING, TradeStatus.COUNTER_OFFERED})
