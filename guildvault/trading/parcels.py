"""
Посылки обмена: стопка предметов и/или монеты четырёх номиналов.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from typing import Any, Mapping, Optional, Union

from .errors import InvalidParcelError

DENOMINATIONS = ("copper", "silver", "gold", "platinum")

@dataclass(frozen=True)
class Coins:
    """Четыре независимых счётчика; конвертации между номиналами нет."""
    copper: int = 0
    silver: int = 0
    gold: int = 0
    platinum: int = 0

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidParcelError(f"Количество монет ({f.name}) должно быть целым числом.")
            if value < 0:
                raise InvalidParcelError(f"Количество монет ({f.name}) не может быть отрицательным.")

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "Coins":
        if not data:
            return cls()
        unknown = set(data) - set(DENOMINATIONS)
        if unknown:
            raise InvalidParcelError(f"Неизвестный номинал: {', '.join(sorted(unknown))}.")
        try:
            return cls(**{k: int(data.get(k) or 0) for k in DENOMINATIONS})
        except (TypeError, ValueError):
            raise InvalidParcelError("Количество монет должно быть целым числом.")

    def is_empty(self) -> bool:
        return not any(self.as_dict().values())

    def as_dict(self) -> dict[str, int]:
        return {k: getattr(self, k) for k in DENOMINATIONS}

    def nonzero(self) -> dict[str, int]:
        return {k: v for k, v in self.as_dict().items() if v}


@dataclass(frozen=True)
class ItemParcel:
    item_ref: str
    quantity: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.item_ref, str) or not self.item_ref.strip():
            raise InvalidParcelError("Не указан предмет.")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise InvalidParcelError("Количество предметов должно быть положительным целым числом.")


ItemLike = Union[ItemParcel, tuple, Mapping[str, Any], None]
CoinsLike = Union[Coins, Mapping[str, Any], None]


@dataclass(frozen=True)
class Parcel:
    """Всё, что одна сторона кладёт в эскроу."""
    item: Optional[ItemParcel] = None
    coins: Coins = field(default_factory=Coins)

    def is_empty(self) -> bool:
        return self.item is None and self.coins.is_empty()

    @classmethod
    def build(cls, item: ItemLike = None, coins: CoinsLike = None) -> "Parcel":
        """Нормализует аргументы API в посылку; пустая посылка считается ошибкой."""
        parcel = cls(item=_coerce_item(item), coins=_coerce_coins(coins))
        if parcel.is_empty():
            raise InvalidParcelError("Нужно предложить хотя бы предмет или монеты.")
        return parcel

    @classmethod
    def from_columns(
        cls, item_ref: Optional[str], item_qty: Optional[int], coins: Optional[Mapping[str, Any]]
    ) -> Optional["Parcel"]:
        """Собирает посылку из колонок trades; None, если стороне нечего отдавать."""
        item = ItemParcel(item_ref, int(item_qty)) if item_ref and item_qty else None
        parcel = cls(item=item, coins=Coins.from_mapping(coins))
        return None if parcel.is_empty() else parcel

    def coins_column(self) -> Optional[dict[str, int]]:
        return None if self.coins.is_empty() else self.coins.as_dict()


def _coerce_item(item: ItemLike) -> Optional[ItemParcel]:
    if item is None or isinstance(item, ItemParcel):
        return item
    if isinstance(item, tuple) and len(item) == 2:
        return ItemParcel(item[0], item[1])
    if isinstance(item, Mapping):
        ref = item.get("item_ref") or item.get("id")
        return ItemParcel(ref, item.get("quantity", 1))
    raise InvalidParcelError("Некорректное описание предмета.")


def _coerce_coins(coins: CoinsLike) -> Coins:
    if coins is None:
        return Coins()
    if isinstance(coins, Coins):
        return coins
    if isinstance(coins, Mapping):
        return Coins.from_mapping(coins)
    raise InvalidParcelError("Некорректное описание монет.")
