# WORKFLOW: Equipment catalog upsert for one pullsheet import.
# Used by: Import orchestrator (resolving_catalog step)
# Functions:
# 1. resolve_catalog() - Map every resource id of an import to its catalog entry
# 2. build_catalog_row() - Catalog row template from the first record of a resource id
#
# Resolve flow: Records -> Distinct resource ids -> Existing entries -> Insert missing
# (duplicates skipped) -> Re-query -> resource id -> CatalogRef
# The mapping is local to one import; concurrent imports meet only in the table.

import logging
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from core.exceptions import CatalogInconsistencyError
from db.repository import ImportStore
from etl.flex_parser import FlatEquipmentRecord

logger = logging.getLogger(__name__)


class CatalogRef(NamedTuple):
    catalog_id: int
    display_name: Optional[str]


def build_catalog_row(record: FlatEquipmentRecord) -> Dict[str, Any]:
    return {
        "flex_resource_id": record.resource_id,
        "name": record.name,
        "display_name": record.name,
        "rack_units": record.rack_units or None,
    }


async def resolve_catalog(
    store: ImportStore, records: Sequence[FlatEquipmentRecord]
) -> Dict[str, CatalogRef]:
    """
    Ensure a catalog entry exists for every resource id in ``records``.

    Args:
        store: Import store
        records: Rack and loose equipment of one import

    Returns:
        Mapping of resource id to CatalogRef

    Raises:
        CatalogInconsistencyError: an id has no entry even after the insert
    """
    if not records:
        return {}

    # First occurrence of each resource id is its template
    templates: Dict[str, FlatEquipmentRecord] = {}
    for record in records:
        templates.setdefault(record.resource_id, record)
    resource_ids: List[str] = list(templates)

    existing = await store.find_catalog_entries(resource_ids)
    existing_ids = {entry.flex_resource_id for entry in existing}

    rows = [build_catalog_row(templates[rid]) for rid in resource_ids if rid not in existing_ids]
    if rows:
        inserted = await store.insert_catalog_entries(rows)
        logger.info(
            f"Catalog: {len(existing_ids)} existing, {inserted} inserted, "
            f"{len(rows) - inserted} created concurrently"
        )

    entries = await store.find_catalog_entries(resource_ids)
    mapping = {
        entry.flex_resource_id: CatalogRef(entry.id, entry.display_name)
        for entry in entries
    }

    missing = [rid for rid in resource_ids if rid not in mapping]
    if missing:
        raise CatalogInconsistencyError(missing)

    return mapping
