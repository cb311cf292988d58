# WORKFLOW: Pullsheet import orchestrator.
# Used by: /pullsheet/import endpoint
# Steps (ImportState):
# 1. validating - Flex URL -> pullsheet id
# 2. checking_duplicate - Existing job for the pullsheet id -> conflict
# 3. fetching - Flex API -> flex_parser -> ParsedImport
# 4. persisting_job - Create job; unique violation -> conflict
# 5. persisting_racks - Create rack drawings concurrently -> rack name map
# 6. resolving_catalog - Upsert equipment catalog -> resource id map
# 7. persisting_parents - Create top-level items concurrently -> item id map
# 8. persisting_children - Bulk insert nested items with resolved parent ids
# 9. done - Commit and report counts
#
# Failure flow: any unexpected error -> log -> rollback -> PullsheetImportError("Failed to import pullsheet")
# The job row is committed at step 4; it is the only write that survives a later failure.

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import InvalidFlexUrlError, JobAlreadyExistsError, PullsheetImportError
from db.repository import ImportStore, PullsheetRepository
from etl.flex_parser import FlatEquipmentRecord, ParsedImport, RackDescriptor, parse_flex_data
from etl.validators import validate_parsed_import
from services.catalog_resolver import CatalogRef, resolve_catalog
from services.flex_client import FlexClient, parse_pullsheet_id

logger = logging.getLogger(__name__)

IMPORT_FAILED_MESSAGE = "Failed to import pullsheet"
ALREADY_IMPORTED_MESSAGE = "This pullsheet has already been imported"


class ImportState(str, Enum):
    VALIDATING = "validating"
    CHECKING_DUPLICATE = "checking_duplicate"
    FETCHING = "fetching"
    PERSISTING_JOB = "persisting_job"
    PERSISTING_RACKS = "persisting_racks"
    RESOLVING_CATALOG = "resolving_catalog"
    PERSISTING_PARENTS = "persisting_parents"
    PERSISTING_CHILDREN = "persisting_children"
    DONE = "done"
    CONFLICT = "conflict"
    FAILED = "failed"


class ImportStatus(str, Enum):
    CREATED = "created"
    CONFLICT = "conflict"


@dataclass
class ImportOutcome:
    status: ImportStatus
    job: Any = None
    rack_drawings_created: int = 0
    pullsheet_items_created: int = 0
    existing_job_id: Optional[int] = None


# (record, rack drawing id or None for loose equipment)
PlacedRecord = Tuple[FlatEquipmentRecord, Optional[int]]


class PullsheetImporter:
    """Runs one pullsheet import against an ImportStore."""

    def __init__(self, store: ImportStore, flex_client: FlexClient, concurrency: Optional[int] = None):
        self.store = store
        self.flex_client = flex_client
        self.concurrency = max(1, concurrency or settings.import_concurrency)
        self.state = ImportState.VALIDATING

    def _enter(self, state: ImportState, pullsheet_id: Optional[str] = None) -> None:
        logger.info(f"Pullsheet {pullsheet_id or '-'}: {self.state.value} -> {state.value}")
        self.state = state

    async def import_pullsheet(self, flex_url: Optional[str]) -> ImportOutcome:
        """
        Import a Flex pullsheet.

        Args:
            flex_url: Flex UI URL of the pullsheet

        Returns:
            ImportOutcome with status CREATED, or CONFLICT when the pullsheet
            was already imported

        Raises:
            InvalidFlexUrlError: the URL does not contain a pullsheet id
            PullsheetImportError: any other failure, with an opaque message
        """
        self.state = ImportState.VALIDATING
        try:
            pullsheet_id = parse_pullsheet_id(flex_url)
        except InvalidFlexUrlError as e:
            logger.warning(f"Rejected Flex URL {flex_url!r}: {e}")
            self._enter(ImportState.FAILED)
            raise

        try:
            return await self._import(pullsheet_id)
        except Exception as e:
            logger.exception(f"Import of pullsheet {pullsheet_id} failed in state {self.state.value}: {e}")
            self._enter(ImportState.FAILED, pullsheet_id)
            await self._rollback_quietly()
            raise PullsheetImportError(IMPORT_FAILED_MESSAGE) from e

    async def _import(self, pullsheet_id: str) -> ImportOutcome:
        self._enter(ImportState.CHECKING_DUPLICATE, pullsheet_id)
        existing_job = await self.store.find_job_by_pullsheet_id(pullsheet_id)
        if existing_job is not None:
            return self._conflict(pullsheet_id, existing_job.id)

        self._enter(ImportState.FETCHING, pullsheet_id)
        raw = await self.flex_client.fetch_pullsheet(pullsheet_id)
        parsed = parse_flex_data(raw)
        _, issues = validate_parsed_import(parsed)
        for issue in issues:
            logger.warning(f"Pullsheet {pullsheet_id}: {issue}")

        self._enter(ImportState.PERSISTING_JOB, pullsheet_id)
        try:
            job = await self.store.create_job(parsed.job_name, pullsheet_id)
        except JobAlreadyExistsError:
            existing_job = await self.store.find_job_by_pullsheet_id(pullsheet_id)
            return self._conflict(pullsheet_id, existing_job.id if existing_job is not None else None)

        self._enter(ImportState.PERSISTING_RACKS, pullsheet_id)
        rack_ids = await self._persist_racks(job.id, parsed.rack_drawings)
        placed = self._place_equipment(parsed, rack_ids)

        self._enter(ImportState.RESOLVING_CATALOG, pullsheet_id)
        catalog = await resolve_catalog(self.store, [record for record, _ in placed])

        parents = [(r, rack_id) for r, rack_id in placed if r.parent_resource_id is None]
        children = [(r, rack_id) for r, rack_id in placed if r.parent_resource_id is not None]

        self._enter(ImportState.PERSISTING_PARENTS, pullsheet_id)
        item_ids = await self._persist_parents(job.id, parents, catalog)

        self._enter(ImportState.PERSISTING_CHILDREN, pullsheet_id)
        await self._persist_children(job.id, children, catalog, item_ids)

        await self.store.commit()
        self._enter(ImportState.DONE, pullsheet_id)
        logger.info(
            f"Imported pullsheet {pullsheet_id} as job {job.id}: "
            f"{len(parsed.rack_drawings)} racks, {len(placed)} items"
        )
        return ImportOutcome(
            status=ImportStatus.CREATED,
            job=job,
            rack_drawings_created=len(parsed.rack_drawings),
            pullsheet_items_created=len(placed),
        )

    def _conflict(self, pullsheet_id: str, job_id: Optional[int]) -> ImportOutcome:
        logger.info(f"Pullsheet {pullsheet_id} already imported as job {job_id}")
        self._enter(ImportState.CONFLICT, pullsheet_id)
        return ImportOutcome(status=ImportStatus.CONFLICT, existing_job_id=job_id)

    async def _rollback_quietly(self) -> None:
        try:
            await self.store.rollback()
        except Exception:
            logger.exception("Rollback after failed import also failed")

    async def _bounded_gather(self, calls: List[Callable[[], Awaitable[Any]]]) -> List[Any]:
        """
        Run calls concurrently, at most ``self.concurrency`` at a time, preserving order.

        On the first failure the remaining calls are cancelled and awaited
        before the error propagates.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(call: Callable[[], Awaitable[Any]]) -> Any:
            async with semaphore:
                return await call()

        tasks = [asyncio.ensure_future(run(call)) for call in calls]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _persist_racks(self, job_id: int, racks: List[RackDescriptor]) -> Dict[str, int]:
        if not racks:
            return {}

        def create(rack: RackDescriptor) -> Callable[[], Awaitable[int]]:
            return lambda: self.store.create_rack_drawing(job_id, rack)

        ids = await self._bounded_gather([create(rack) for rack in racks])
        # Duplicate rack names collapse onto the last created rack
        return {rack.name: rack_id for rack, rack_id in zip(racks, ids)}

    @staticmethod
    def _place_equipment(parsed: ParsedImport, rack_ids: Dict[str, int]) -> List[PlacedRecord]:
        placed: List[PlacedRecord] = []
        for rack in parsed.rack_drawings:
            rack_id = rack_ids[rack.name]
            placed.extend((record, rack_id) for record in rack.equipment)
        placed.extend((record, None) for record in parsed.loose_equipment)
        return placed

    @staticmethod
    def _item_values(
        job_id: int,
        record: FlatEquipmentRecord,
        rack_id: Optional[int],
        catalog: Dict[str, CatalogRef],
        parent_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        ref = catalog.get(record.resource_id)
        return {
            "job_id": job_id,
            "equipment_catalog_id": ref.catalog_id if ref else None,
            "display_name_override": ref.display_name if ref else None,
            "rack_drawing_id": rack_id,
            "parent_id": parent_id,
            "flex_resource_id": record.resource_id,
            "flex_section": record.section,
            "name": record.name,
            "rack_units": record.rack_units,
            "quantity": record.quantity,
            "notes": record.notes,
        }

    async def _persist_parents(
        self, job_id: int, parents: List[PlacedRecord], catalog: Dict[str, CatalogRef]
    ) -> Dict[str, int]:
        if not parents:
            return {}

        def create(record: FlatEquipmentRecord, rack_id: Optional[int]) -> Callable[[], Awaitable[int]]:
            values = self._item_values(job_id, record, rack_id, catalog)
            return lambda: self.store.create_pullsheet_item(values)

        ids = await self._bounded_gather([create(record, rack_id) for record, rack_id in parents])
        return {record.resource_id: item_id for (record, _), item_id in zip(parents, ids)}

    async def _persist_children(
        self,
        job_id: int,
        children: List[PlacedRecord],
        catalog: Dict[str, CatalogRef],
        item_ids: Dict[str, int],
    ) -> None:
        """
        Bulk insert nested items.

        Direct children of top-level items go in a single batch. Deeper
        levels need their parent's id first, so each further nesting level
        is one more batch. Trees of depth two (top-level items with direct
        children only) still take a single batch.
        """
        pending = list(children)
        while pending:
            pending_ids = {record.resource_id for record, _ in pending}
            batch = [
                (r, rack_id) for r, rack_id in pending
                if r.parent_resource_id in item_ids or r.parent_resource_id not in pending_ids
            ]
            if not batch:
                # Parent references form a cycle; nothing left can resolve
                batch = pending

            rows = []
            for record, rack_id in batch:
                parent_id = item_ids.get(record.parent_resource_id)
                if parent_id is None:
                    logger.warning(
                        f"Item {record.resource_id} references unknown parent "
                        f"{record.parent_resource_id}; storing without parent"
                    )
                rows.append(self._item_values(job_id, record, rack_id, catalog, parent_id))

            ids = await self.store.bulk_create_pullsheet_items(rows)
            for (record, _), item_id in zip(batch, ids):
                item_ids.setdefault(record.resource_id, item_id)

            batch_keys = {id(record) for record, _ in batch}
            pending = [(r, rack_id) for r, rack_id in pending if id(r) not in batch_keys]


def create_pullsheet_importer(db: Session, flex_client: Optional[FlexClient] = None) -> PullsheetImporter:
    """Create an importer backed by the SQLAlchemy repository."""
    return PullsheetImporter(PullsheetRepository(db), flex_client or FlexClient())
