# guildvault/utils/dt.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

TZ = timezone.utc  # единая таймзона проекта (UTC)

def now_tz() -> datetime:
    """Текущее время в UTC с tzinfo (aware)."""
    return datetime.now(TZ)

def to_aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Приводит datetime к aware-UTC.
    - None -> None
    - naive -> .replace(tzinfo=UTC)
    - aware -> .astimezone(UTC)
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=TZ)
    return dt.astimezone(TZ)

def fmt_short(dt: Optional[datetime]) -> str:
    """Короткий формат для карточек: 2024-05-01 14:03 UTC."""
    aware = to_aware_utc(dt)
    if aware is None:
        return "—"
    return aware.strftime("%Y-%m-%d %H:%M UTC")
