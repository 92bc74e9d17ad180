from __future__ import annotations
import logging

from guildvault.core.bus_provider import get_bus

log = logging.getLogger(__name__)


async def dispatch_trade_events(*args, **kwargs) -> None:
    """Периодическая досылка событий из outbox (то, что не ушло сразу после коммита)."""
    try:
        bus = get_bus()
        delivered = await bus.dispatch_pending()
        if delivered:
            log.info("dispatch_trade_events: delivered %d events", delivered)
    except Exception:
        log.exception("dispatch_trade_events: critical error")
