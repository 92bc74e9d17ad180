# guildvault/services/catalog.py
from __future__ import annotations
from typing import Iterable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from guildvault.db import base
from guildvault.db.base import session_scope
from guildvault.db.models import Item
from guildvault.logging_setup import get_logger
from guildvault.trading.views import ItemMeta

logger = get_logger(__name__)


class ItemMetadataResolver(Protocol):
    async def resolve_item_metadata(self, item_ref: str, session: Optional[AsyncSession] = None) -> ItemMeta: ...

    async def resolve_many(self, refs: Iterable[str], session: Optional[AsyncSession] = None) -> dict[str, ItemMeta]: ...


def placeholder_meta(item_ref: str) -> ItemMeta:
    """Предмет вне каталога показываем по его ref."""
    return ItemMeta(ref=item_ref, name=item_ref)


def _to_meta(row: Item) -> ItemMeta:
    return ItemMeta(
        ref=row.ref,
        name=row.name,
        description=row.description or "",
        category=row.category or "misc",
        weight=float(row.weight or 0),
    )


class ItemCatalog:
    """Каталог предметов (общий и кастомные предметы групп)."""

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_maker = session_maker or base.async_session_maker

    async def resolve_item_metadata(self, item_ref: str, session: Optional[AsyncSession] = None) -> ItemMeta:
        async with session_scope(self._session_maker, session) as s:
            row = await s.get(Item, item_ref)
        return _to_meta(row) if row else placeholder_meta(item_ref)

    async def resolve_many(self, refs: Iterable[str], session: Optional[AsyncSession] = None) -> dict[str, ItemMeta]:
        wanted = {r for r in refs if r}
        if not wanted:
            return {}
        async with session_scope(self._session_maker, session) as s:
            rows = (await s.scalars(select(Item).where(Item.ref.in_(wanted)))).all()
        found = {row.ref: _to_meta(row) for row in rows}
        return {ref: found.get(ref) or placeholder_meta(ref) for ref in wanted}

    async def upsert_item(
        self,
        ref: str,
        name: str,
        description: str = "",
        category: str = "misc",
        weight: float = 0.0,
        group_id: Optional[int] = None,
    ) -> ItemMeta:
        ref = ref.strip()
        if not ref or not name.strip():
            raise ValueError("ref и название предмета обязательны")
        async with self._session_maker() as s:
            async with s.begin():
                row = await s.get(Item, ref)
                if row is None:
                    row = Item(ref=ref)
                    s.add(row)
                row.name = name.strip()
                row.description = description
                row.category = category
                row.weight = weight
                row.group_id = group_id
            logger.info("Catalog item upserted: %s (%s)", ref, name)
            return _to_meta(row)

    async def search(self, query: str, limit: int = 20) -> list[ItemMeta]:
        pattern = f"%{query.strip()}%"
        async with self._session_maker() as s:
            rows = (await s.scalars(
                select(Item).where((Item.name.ilike(pattern)) | (Item.ref.ilike(pattern))).order_by(Item.name).limit(limit)
            )).all()
        return [_to_meta(r) for r in rows]
