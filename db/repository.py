# WORKFLOW: Persistence operations used by the pullsheet import.
# Used by: Import orchestrator, catalog resolver
# Classes:
# 1. ImportStore - Abstract store interface (unique lookup, key-set lookup, create, batch create)
# 2. PullsheetRepository - SQLAlchemy implementation over one Session
#
# Transaction flow: create_job() commits on its own so the unique constraint on
# flex_pullsheet_id settles concurrent imports; every later write is flushed and
# committed once by the orchestrator (or rolled back on failure).

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence
import logging

from sqlalchemy import insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import JobAlreadyExistsError
from db.models import EquipmentCatalog, Job, PullsheetItem, RackDrawing
from etl.flex_parser import RackDescriptor

logger = logging.getLogger(__name__)


class ImportStore(ABC):
    """Store operations needed to persist one pullsheet import."""

    @abstractmethod
    async def find_job_by_pullsheet_id(self, pullsheet_id: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def create_job(self, name: str, pullsheet_id: str) -> Any:
        """Create and commit a job; raise JobAlreadyExistsError on a duplicate pullsheet id."""

    @abstractmethod
    async def create_rack_drawing(self, job_id: int, rack: RackDescriptor) -> int:
        ...

    @abstractmethod
    async def find_catalog_entries(self, resource_ids: Sequence[str]) -> List[Any]:
        ...

    @abstractmethod
    async def insert_catalog_entries(self, rows: List[Dict[str, Any]]) -> int:
        """Insert catalog rows, silently skipping resource ids that already exist."""

    @abstractmethod
    async def create_pullsheet_item(self, values: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    async def bulk_create_pullsheet_items(self, rows: List[Dict[str, Any]]) -> List[int]:
        """Insert rows in one batch and return their ids in input order."""

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...


class PullsheetRepository(ImportStore):
    """SQLAlchemy-backed import store."""

    def __init__(self, db: Session):
        self.db = db

    async def find_job_by_pullsheet_id(self, pullsheet_id: str) -> Optional[Job]:
        return self.db.query(Job).filter(Job.flex_pullsheet_id == pullsheet_id).first()

    async def create_job(self, name: str, pullsheet_id: str) -> Job:
        job = Job(name=name, flex_pullsheet_id=pullsheet_id)
        self.db.add(job)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Job insert for pullsheet {pullsheet_id} hit the unique constraint")
            raise JobAlreadyExistsError(pullsheet_id) from e
        self.db.refresh(job)
        logger.info(f"Created job {job.id} for pullsheet {pullsheet_id}")
        return job

    async def create_rack_drawing(self, job_id: int, rack: RackDescriptor) -> int:
        rack_drawing = RackDrawing(
            job_id=job_id,
            name=rack.name,
            total_spaces=rack.total_spaces,
            is_double_wide=rack.is_double_wide,
            flex_section=rack.section,
            notes=rack.notes,
        )
        self.db.add(rack_drawing)
        self.db.flush()
        return rack_drawing.id

    async def find_catalog_entries(self, resource_ids: Sequence[str]) -> List[EquipmentCatalog]:
        if not resource_ids:
            return []
        return (
            self.db.query(EquipmentCatalog)
            .filter(EquipmentCatalog.flex_resource_id.in_(list(resource_ids)))
            .all()
        )

    async def insert_catalog_entries(self, rows: List[Dict[str, Any]]) -> int:
        if not rows:
            return 0

        dialect = self.db.get_bind().dialect.name
        if dialect in ("postgresql", "sqlite"):
            dialect_insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = (
                dialect_insert(EquipmentCatalog)
                .values(rows)
                .on_conflict_do_nothing(index_elements=["flex_resource_id"])
            )
            result = self.db.execute(stmt)
            return max(result.rowcount or 0, 0)

        # No ON CONFLICT support: insert row by row inside savepoints
        inserted = 0
        for row in rows:
            try:
                with self.db.begin_nested():
                    self.db.execute(insert(EquipmentCatalog).values(**row))
                inserted += 1
            except IntegrityError:
                logger.debug(f"Catalog entry {row['flex_resource_id']} already exists")
        return inserted

    async def create_pullsheet_item(self, values: Dict[str, Any]) -> int:
        item = PullsheetItem(**values)
        self.db.add(item)
        self.db.flush()
        return item.id

    async def bulk_create_pullsheet_items(self, rows: List[Dict[str, Any]]) -> List[int]:
        items = [PullsheetItem(**row) for row in rows]
        self.db.add_all(items)
        self.db.flush()
        return [item.id for item in items]

    async def commit(self) -> None:
        self.db.commit()

    async def rollback(self) -> None:
        self.db.rollback()
