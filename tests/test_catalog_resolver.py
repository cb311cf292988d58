"""Tests for the equipment catalog upsert."""

from types import SimpleNamespace

import pytest

from core.exceptions import CatalogInconsistencyError
from etl.flex_parser import FlatEquipmentRecord
from services.catalog_resolver import CatalogRef, build_catalog_row, resolve_catalog


def record(resource_id, name, rack_units=0):
    return FlatEquipmentRecord(resource_id=resource_id, section="FOH", name=name, rack_units=rack_units)


def test_build_catalog_row():
    assert build_catalog_row(record("r1", "Waves Server 2RU", 2)) == {
        "flex_resource_id": "r1",
        "name": "Waves Server 2RU",
        "display_name": "Waves Server 2RU",
        "rack_units": 2,
    }
    assert build_catalog_row(record("r2", "Shure SM58"))["rack_units"] is None


@pytest.mark.asyncio
async def test_empty_input_makes_no_calls(fake_store):
    assert await resolve_catalog(fake_store, []) == {}
    assert sum(fake_store.calls.values()) == 0


@pytest.mark.asyncio
async def test_first_occurrence_is_the_template(fake_store):
    """A resource id seen twice is inserted once, from its first record."""
    mapping = await resolve_catalog(fake_store, [
        record("r1", "Lake LM44 1RU", 1),
        record("r2", "Shure SM58"),
        record("r1", "Lake LM44 (spare)"),
    ])

    assert set(mapping) == {"r1", "r2"}
    assert len(fake_store.catalog) == 2
    assert fake_store.catalog["r1"].name == "Lake LM44 1RU"
    assert fake_store.catalog["r1"].rack_units == 1
    assert fake_store.catalog["r2"].rack_units is None
    assert fake_store.calls["insert_catalog_entries"] == 1


@pytest.mark.asyncio
async def test_existing_entries_are_reused(fake_store):
    fake_store.catalog["r1"] = SimpleNamespace(
        id=500, flex_resource_id="r1", name="Old Name", display_name="Console A", rack_units=None
    )

    mapping = await resolve_catalog(fake_store, [record("r1", "Console")])

    assert mapping == {"r1": CatalogRef(500, "Console A")}
    assert fake_store.calls["insert_catalog_entries"] == 0
    assert fake_store.catalog["r1"].name == "Old Name"


@pytest.mark.asyncio
async def test_entry_inserted_concurrently_is_picked_up(fake_store):
    """Rows skipped by the insert are still resolved by the follow-up query."""
    original_insert = fake_store.insert_catalog_entries

    async def racing_insert(rows):
        fake_store.catalog["r1"] = SimpleNamespace(
            id=900, flex_resource_id="r1", name="Other", display_name="Other", rack_units=None
        )
        return await original_insert(rows)

    fake_store.insert_catalog_entries = racing_insert

    mapping = await resolve_catalog(fake_store, [record("r1", "Console"), record("r2", "Stand")])

    assert mapping["r1"] == CatalogRef(900, "Other")
    assert "r2" in mapping


@pytest.mark.asyncio
async def test_missing_entry_after_insert_raises(fake_store):
    async def lossy_insert(rows):
        return 0

    fake_store.insert_catalog_entries = lossy_insert

    with pytest.raises(CatalogInconsistencyError) as excinfo:
        await resolve_catalog(fake_store, [record("r2", "B"), record("r1", "A")])

    assert excinfo.value.missing_ids == ["r1", "r2"]
