# WORKFLOW: Consistency checks for a flattened pullsheet before it is persisted.
# Used by: Import orchestrator (logs the report), scripts/parse_pullsheet.py
# Functions:
# 1. find_dangling_parent_refs() - Records whose parent is not part of the import
# 2. find_duplicate_rack_names() - Rack names that collide inside one import
# 3. validate_parsed_import() - Combined report
#
# Validation flow: ParsedImport -> Reference checks -> Issues list -> Logged by the importer
# Issues never block an import; persistence degrades dangling parents to null.

"""
Consistency checks for flattened Flex pullsheets.
"""

import logging
from collections import Counter
from typing import List, Tuple

from etl.flex_parser import FlatEquipmentRecord, ParsedImport

logger = logging.getLogger(__name__)


def find_dangling_parent_refs(parsed: ParsedImport) -> List[FlatEquipmentRecord]:
    """
    Find records whose parent resource id is not present in the import.

    Args:
        parsed: Flattened pullsheet

    Returns:
        Records with an unresolvable parent reference, in document order
    """
    records = parsed.all_equipment()
    known_ids = {record.resource_id for record in records}
    return [
        record for record in records
        if record.parent_resource_id is not None and record.parent_resource_id not in known_ids
    ]


def find_duplicate_rack_names(parsed: ParsedImport) -> List[str]:
    """Rack names used by more than one rack, in first-seen order."""
    counts = Counter(rack.name for rack in parsed.rack_drawings)
    seen = []
    for rack in parsed.rack_drawings:
        if counts[rack.name] > 1 and rack.name not in seen:
            seen.append(rack.name)
    return seen


def validate_parsed_import(parsed: ParsedImport) -> Tuple[bool, List[str]]:
    """
    Validate a flattened pullsheet.

    Args:
        parsed: Flattened pullsheet

    Returns:
        Tuple of (is_valid, list_of_issues)
    """
    issues = []

    for record in find_dangling_parent_refs(parsed):
        issues.append(
            f"Item {record.resource_id} ('{record.name}') references missing parent "
            f"{record.parent_resource_id}"
        )

    for name in find_duplicate_rack_names(parsed):
        issues.append(f"Rack name '{name}' is used by more than one rack")

    is_valid = len(issues) == 0
    if not is_valid:
        logger.warning(f"Pullsheet validation found {len(issues)} issues")

    return is_valid, issues
