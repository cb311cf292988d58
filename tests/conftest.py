# WORKFLOW: Shared fixtures for the pullsheet import test suite.
# Used by: All test modules
# Fixtures:
# 1. db_engine / db_session - In-memory SQLite database with the full schema
# 2. fake_store - In-memory ImportStore that records every call
# 3. make_flex_client - Factory for a Flex client stub returning a canned payload
# 4. foh_pullsheet - Flex row-data for one FOH section (rack + loose mic)

import asyncio
import copy
import itertools
from collections import Counter
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.exceptions import JobAlreadyExistsError
from db.models import Base
from db.repository import ImportStore

VALID_FLEX_URL = "https://spectrum.flexrentalsolutions.com/f5/ui/#equipment-list-scan/abc-123-uuid/prep"

FOH_PULLSHEET = [
    {
        "name": "FOH",
        "upstreamLink": {"elementName": "Test Show 2026"},
        "children": [
            {
                "resourceId": "rack-001",
                "name": "FOH 14-Space Rack",
                "note": None,
                "isVirtual": False,
                "children": [
                    {
                        "resourceId": "equip-001",
                        "name": "Waves Server 2RU",
                        "note": None,
                        "isVirtual": False,
                        "children": [],
                    }
                ],
            },
            {
                "resourceId": "equip-002",
                "name": "Shure SM58",
                "quantity": 4,
                "note": None,
                "isVirtual": False,
                "children": [],
            },
        ],
    }
]


class FakeStore(ImportStore):
    """In-memory ImportStore; ``calls`` counts every operation by name."""

    def __init__(self):
        self.jobs = {}
        self.racks = []
        self.catalog = {}
        self.items = []
        self.calls = Counter()
        self._ids = itertools.count(1)
        # When set, create_job raises as if another request inserted this job first
        self.job_created_elsewhere = None

    async def find_job_by_pullsheet_id(self, pullsheet_id):
        self.calls["find_job_by_pullsheet_id"] += 1
        return self.jobs.get(pullsheet_id)

    async def create_job(self, name, pullsheet_id):
        self.calls["create_job"] += 1
        if self.job_created_elsewhere is not None:
            self.jobs[pullsheet_id] = self.job_created_elsewhere
            raise JobAlreadyExistsError(pullsheet_id)
        if pullsheet_id in self.jobs:
            raise JobAlreadyExistsError(pullsheet_id)
        job = SimpleNamespace(
            id=next(self._ids),
            name=name,
            flex_pullsheet_id=pullsheet_id,
            description=None,
            created_at=None,
            updated_at=None,
        )
        self.jobs[pullsheet_id] = job
        return job

    async def create_rack_drawing(self, job_id, rack):
        self.calls["create_rack_drawing"] += 1
        await asyncio.sleep(0)
        rack_id = next(self._ids)
        self.racks.append({"id": rack_id, "job_id": job_id, "rack": rack})
        return rack_id

    async def find_catalog_entries(self, resource_ids):
        self.calls["find_catalog_entries"] += 1
        wanted = set(resource_ids)
        return [entry for rid, entry in self.catalog.items() if rid in wanted]

    async def insert_catalog_entries(self, rows):
        self.calls["insert_catalog_entries"] += 1
        inserted = 0
        for row in rows:
            if row["flex_resource_id"] in self.catalog:
                continue
            self.catalog[row["flex_resource_id"]] = SimpleNamespace(id=next(self._ids), **row)
            inserted += 1
        return inserted

    async def create_pullsheet_item(self, values):
        self.calls["create_pullsheet_item"] += 1
        await asyncio.sleep(0)
        item_id = next(self._ids)
        self.items.append(dict(values, id=item_id))
        return item_id

    async def bulk_create_pullsheet_items(self, rows):
        self.calls["bulk_create_pullsheet_items"] += 1
        ids = []
        for row in rows:
            item_id = next(self._ids)
            self.items.append(dict(row, id=item_id))
            ids.append(item_id)
        return ids

    async def commit(self):
        self.calls["commit"] += 1

    async def rollback(self):
        self.calls["rollback"] += 1

    def item(self, resource_id):
        return next(item for item in self.items if item["flex_resource_id"] == resource_id)


class FakeFlexClient:
    """Stands in for FlexClient; yields once so concurrent imports interleave."""

    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.requested = []

    async def fetch_pullsheet(self, pullsheet_id):
        self.requested.append(pullsheet_id)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.payload)


@pytest.fixture
def flex_url():
    return VALID_FLEX_URL


@pytest.fixture
def foh_pullsheet():
    return copy.deepcopy(FOH_PULLSHEET)


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def make_flex_client():
    return FakeFlexClient


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
