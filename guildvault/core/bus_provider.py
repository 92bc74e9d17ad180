"""
Провайдер шины уведомлений для безопасного доступа из фоновых задач
"""

from guildvault.trading.notifications import NotificationBus

_bus: NotificationBus | None = None

def set_bus(bus: NotificationBus) -> None:
    """Устанавливает экземпляр шины, созданный при старте"""
    global _bus
    _bus = bus

def get_bus() -> NotificationBus:
    """Возвращает экземпляр шины"""
    if _bus is None:
        raise RuntimeError("NotificationBus is not initialized. Call set_bus() on startup.")
    return _bus
