# guildvault/utils/parsing.py
"""
Разбор аргументов команд бота.

Посылка: необязательная стопка `ref*qty` (или просто `ref` = 1 шт.)
и монеты `12cp 3sp 5gp 1pp` в любом порядке. Для /coins допускается знак: `+5gp -2sp`.
"""
from __future__ import annotations
import re
from typing import Iterable

from guildvault.trading.errors import InvalidParcelError
from guildvault.trading.parcels import Coins, ItemParcel, Parcel

COIN_SUFFIXES = {"cp": "copper", "sp": "silver", "gp": "gold", "pp": "platinum"}

_COIN_RE = re.compile(r"^(\d+)(cp|sp|gp|pp)$", re.IGNORECASE)
_SIGNED_COIN_RE = re.compile(r"^([+-]?\d+)(cp|sp|gp|pp)$", re.IGNORECASE)
_ITEM_RE = re.compile(r"^([A-Za-z0-9_\-:.]+?)(?:\*(\d+))?$")


def parse_id(raw: str, what: str = "ID") -> int:
    raw = (raw or "").strip().lstrip("#")
    if not raw.isdigit():
        raise InvalidParcelError(f"{what} должен быть числом, получено: {raw or '—'}")
    return int(raw)


def parse_item(token: str) -> ItemParcel:
    m = _ITEM_RE.match(token.strip())
    if not m:
        raise InvalidParcelError(f"Не понял предмет: {token}. Формат: ref или ref*кол-во")
    qty = int(m.group(2)) if m.group(2) else 1
    return ItemParcel(m.group(1), qty)


def parse_coin_delta(tokens: Iterable[str]) -> dict[str, int]:
    delta: dict[str, int] = {}
    for tok in tokens:
        m = _SIGNED_COIN_RE.match(tok.strip())
        if not m:
            raise InvalidParcelError(f"Не понял монеты: {tok}. Формат: +5gp -2sp")
        denom = COIN_SUFFIXES[m.group(2).lower()]
        delta[denom] = delta.get(denom, 0) + int(m.group(1))
    return delta


def parse_parcel(tokens: Iterable[str]) -> Parcel:
    """Собирает посылку из токенов команды; на пустую посылку InvalidParcelError."""
    item: ItemParcel | None = None
    coins: dict[str, int] = {}
    for tok in tokens:
        tok = tok.strip()
        if not tok:
            continue
        m = _COIN_RE.match(tok)
        if m:
            denom = COIN_SUFFIXES[m.group(2).lower()]
            coins[denom] = coins.get(denom, 0) + int(m.group(1))
            continue
        if item is not None:
            raise InvalidParcelError("В одной посылке может быть только одна стопка предметов.")
        item = parse_item(tok)
    return Parcel.build(item, Coins(**coins))


def format_coins(coins: Coins) -> str:
    parts = []
    for suffix, denom in reversed(list(COIN_SUFFIXES.items())):
        amount = getattr(coins, denom)
        if amount:
            parts.append(f"{amount}{suffix}")
    return " ".join(parts) if parts else "0"
