"""
Ошибки модуля обменов.

Все наследуются от TradeError; текст исключения показывается пользователю как есть.
"""

from __future__ import annotations


class TradeError(Exception):
    """Базовая ошибка обмена."""


class InvalidParcelError(TradeError):
    """Пустая или некорректная посылка (предмет/монеты)."""


class SelfTradeError(TradeError):
    def __init__(self, member_id: int):
        self.member_id = member_id
        super().__init__("Нельзя предложить обмен самому себе.")


class AccountNotFoundError(TradeError):
    def __init__(self, group_id: int, member_id: int):
        self.group_id = group_id
        self.member_id = member_id
        super().__init__(f"У участника {member_id} нет инвентаря в группе {group_id}.")


class InsufficientResourceError(TradeError):
    def __init__(self, account_id: int, resource: str, requested: int, available: int):
        self.account_id = account_id
        self.resource = resource
        self.requested = requested
        self.available = available
        super().__init__(
            f"Недостаточно «{resource}»: нужно {requested}, в наличии {available}."
        )


class TradeNotFoundError(TradeError):
    def __init__(self, trade_id: int):
        self.trade_id = trade_id
        super().__init__(f"Обмен #{trade_id} не найден (возможно, уже завершён или отменён).")


class InvalidStateTransitionError(TradeError):
    def __init__(self, trade_id: int, status: str, action: str):
        self.trade_id = trade_id
        self.status = status
        self.action = action
        super().__init__(f"Обмен #{trade_id} в статусе {status}: действие «{action}» недоступно.")


class TradeNotAllowedError(TradeError):
    """Действие запрещено правилами группы (роль DM, чужой ход и т.п.)."""


class SettlementError(TradeError):
    """Временный сбой БД не прошёл после всех повторов; состояние обмена не изменилось."""
