import pytest

from guildvault.services.catalog import ItemCatalog


async def test_unknown_ref_resolves_to_placeholder(maker):
    catalog = ItemCatalog(maker)
    meta = await catalog.resolve_item_metadata("mystery-orb")
    assert meta.ref == "mystery-orb"
    assert meta.name == "mystery-orb"
    assert meta.category == "misc"


async def test_upsert_and_search(maker):
    catalog = ItemCatalog(maker)
    await catalog.upsert_item("rope", "Верёвка", description="50 футов", category="gear", weight=10)
    await catalog.upsert_item("rope", "Шёлковая верёвка", category="gear", weight=5)

    meta = await catalog.resolve_item_metadata("rope")
    assert meta.name == "Шёлковая верёвка"
    assert meta.weight == 5.0

    metas = await catalog.resolve_many(["rope", "torch", None])
    assert set(metas) == {"rope", "torch"}
    assert metas["torch"].name == "torch"

    assert [m.ref for m in await catalog.search("rop")] == ["rope"]


async def test_upsert_requires_ref_and_name(maker):
    with pytest.raises(ValueError):
        await ItemCatalog(maker).upsert_item(" ", "Без ref")
