"""Tests for the SQLAlchemy import store on an in-memory SQLite database."""

import pytest

from core.exceptions import JobAlreadyExistsError
from db.models import EquipmentCatalog, Job, PullsheetItem, RackDrawing
from db.repository import PullsheetRepository
from etl.flex_parser import RackDescriptor


def catalog_row(resource_id, name="Console", rack_units=None):
    return {"flex_resource_id": resource_id, "name": name, "display_name": name, "rack_units": rack_units}


def item_row(job_id, resource_id, parent_id=None, rack_drawing_id=None):
    return {
        "job_id": job_id,
        "equipment_catalog_id": None,
        "display_name_override": None,
        "rack_drawing_id": rack_drawing_id,
        "parent_id": parent_id,
        "flex_resource_id": resource_id,
        "flex_section": "FOH",
        "name": f"Item {resource_id}",
        "rack_units": 0,
        "quantity": 1,
        "notes": None,
    }


@pytest.mark.asyncio
async def test_create_and_find_job(db_session):
    repo = PullsheetRepository(db_session)

    job = await repo.create_job("Test Show", "abc-123")

    assert job.id is not None
    assert job.created_at is not None
    found = await repo.find_job_by_pullsheet_id("abc-123")
    assert found.id == job.id
    assert await repo.find_job_by_pullsheet_id("other") is None


@pytest.mark.asyncio
async def test_duplicate_job_raises(db_session):
    repo = PullsheetRepository(db_session)
    await repo.create_job("Test Show", "abc-123")

    with pytest.raises(JobAlreadyExistsError) as excinfo:
        await repo.create_job("Test Show again", "abc-123")

    assert excinfo.value.pullsheet_id == "abc-123"
    # the session stays usable after the failed insert
    assert db_session.query(Job).count() == 1


@pytest.mark.asyncio
async def test_catalog_insert_skips_existing(db_session):
    repo = PullsheetRepository(db_session)
    await repo.insert_catalog_entries([catalog_row("r1", "Original")])

    inserted = await repo.insert_catalog_entries([catalog_row("r1", "Replacement"), catalog_row("r2", "Stand")])

    assert inserted == 1
    entries = await repo.find_catalog_entries(["r1", "r2", "r3"])
    by_id = {entry.flex_resource_id: entry for entry in entries}
    assert set(by_id) == {"r1", "r2"}
    assert by_id["r1"].name == "Original"


@pytest.mark.asyncio
async def test_find_catalog_entries_with_no_ids(db_session):
    assert await PullsheetRepository(db_session).find_catalog_entries([]) == []


@pytest.mark.asyncio
async def test_items_and_racks(db_session):
    repo = PullsheetRepository(db_session)
    job = await repo.create_job("Test Show", "abc-123")
    rack_id = await repo.create_rack_drawing(
        job.id, RackDescriptor(name="FOH DoubleWide 14-Space Rack", total_spaces=14, is_double_wide=True, section="FOH")
    )

    parent_id = await repo.create_pullsheet_item(item_row(job.id, "case", rack_drawing_id=rack_id))
    child_ids = await repo.bulk_create_pullsheet_items([
        item_row(job.id, "a", parent_id=parent_id),
        item_row(job.id, "b", parent_id=parent_id),
    ])
    await repo.commit()

    assert len(child_ids) == 2
    children = {item.flex_resource_id: item for item in db_session.get(PullsheetItem, parent_id).children}
    assert [children["a"].id, children["b"].id] == child_ids

    rack = db_session.get(RackDrawing, rack_id)
    assert rack.is_double_wide is True
    assert rack.flex_section == "FOH"
    assert [item.flex_resource_id for item in rack.pullsheet_items] == ["case"]


@pytest.mark.asyncio
async def test_rollback_keeps_only_the_job(db_session):
    """The job is committed on creation; everything after it waits for commit()."""
    repo = PullsheetRepository(db_session)
    job = await repo.create_job("Test Show", "abc-123")
    await repo.create_rack_drawing(job.id, RackDescriptor(name="FOH 8-Space Rack", total_spaces=8, section="FOH"))
    await repo.insert_catalog_entries([catalog_row("r1")])

    await repo.rollback()

    assert db_session.query(Job).count() == 1
    assert db_session.query(RackDrawing).count() == 0
    assert db_session.query(EquipmentCatalog).count() == 0
