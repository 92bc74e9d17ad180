"""
Модуль обменов между участниками группы: эскроу, встречные предложения, расчёт.

Сервис (TradeService) импортируется из guildvault.trading.service напрямую.
"""

from .enums import TradeStatus, TradeEventKind
from .errors import (
    TradeError, InvalidParcelError, SelfTradeError, AccountNotFoundError, InsufficientResourceError,
    TradeNotFoundError, InvalidStateTransitionError, TradeNotAllowedError, SettlementError,
)
from .parcels import Coins, ItemParcel, Parcel
from .views import ItemMeta, TradeView

__all__ = [
    "TradeStatus", "TradeEventKind",
    "TradeError", "InvalidParcelError", "SelfTradeError", "AccountNotFoundError",
    "InsufficientResourceError", "TradeNotFoundError", "InvalidStateTransitionError",
    "TradeNotAllowedError", "SettlementError",
    "Coins", "ItemParcel", "Parcel",
    "ItemMeta", "TradeView",
]
