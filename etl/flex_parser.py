# WORKFLOW: Decode and flatten Flex pullsheet row-data into typed flat records.
# Used by: Import orchestrator, scripts/parse_pullsheet.py
# Functions:
# 1. parse_sections() - Decode raw JSON sections into typed RawSection/RawNode models
# 2. classify_node() - Tag a node as rack, virtual group, assembly or leaf
# 3. flatten_equipment() - Pre-order flatten of a subtree with parent back-references
# 4. classify_items() - Split a section's nodes into racks and loose equipment
# 5. flatten() / parse_flex_data() - Build the ParsedImport for a whole pullsheet
#
# Parse flow: Flex JSON -> RawSection/RawNode -> classify -> flatten -> ParsedImport
# Nothing here touches the database; every function returns new lists.

"""
Flex pullsheet decoding and flattening.
"""

import logging
import re
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.exceptions import SourceFormatError

logger = logging.getLogger(__name__)

# "FOH 14-Space Rack", "MON 8 Space Rack"
RACK_SPACES_PATTERN = re.compile(r"(\d+)[-\s]?space", re.IGNORECASE)
# "Waves Server 2RU", "Amp - 1 RU", "Patch 1-RU"
RACK_UNITS_PATTERN = re.compile(r"(\d+)[-\s]?ru\b", re.IGNORECASE)


class NodeKind(str, Enum):
    RACK = "rack"
    VIRTUAL_GROUP = "virtual_group"
    ASSEMBLY = "assembly"
    LEAF = "leaf"


class RawNode(BaseModel):
    """One node of the Flex row-data tree."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    resource_id: Optional[str] = Field(None, alias="resourceId")
    name: str = ""
    quantity: Optional[int] = None
    note: Optional[str] = None
    is_virtual: bool = Field(False, alias="isVirtual")
    children: List["RawNode"] = Field(default_factory=list)

    @field_validator("resource_id", "note", mode="before")
    @classmethod
    def _stringify(cls, value):
        if value is None or value == "":
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value):
        return "" if value is None else value

    @field_validator("is_virtual", mode="before")
    @classmethod
    def _default_virtual(cls, value):
        return False if value is None else value

    @field_validator("children", mode="before")
    @classmethod
    def _default_children(cls, value):
        return [] if value is None else value


class UpstreamLink(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    element_name: Optional[str] = Field(None, alias="elementName")


class RawSection(BaseModel):
    """Top-level section of a pullsheet (FOH, MON, ...)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    upstream_link: Optional[UpstreamLink] = Field(None, alias="upstreamLink")
    children: List[RawNode] = Field(default_factory=list)

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, value):
        return "" if value is None else value

    @field_validator("children", mode="before")
    @classmethod
    def _default_children(cls, value):
        return [] if value is None else value

    @property
    def job_name(self) -> Optional[str]:
        if self.upstream_link and self.upstream_link.element_name:
            return self.upstream_link.element_name
        return None


class FlatEquipmentRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    resource_id: str
    section: str
    name: str
    quantity: int = Field(1, ge=1)
    rack_units: int = Field(0, ge=0)
    notes: Optional[str] = None
    parent_resource_id: Optional[str] = None


class RackDescriptor(BaseModel):
    name: str
    total_spaces: int = Field(0, ge=0)
    is_double_wide: bool = False
    section: str
    notes: Optional[str] = None
    equipment: List[FlatEquipmentRecord] = Field(default_factory=list)


class ParsedImport(BaseModel):
    job_name: str = ""
    rack_drawings: List[RackDescriptor] = Field(default_factory=list)
    loose_equipment: List[FlatEquipmentRecord] = Field(default_factory=list)

    def all_equipment(self) -> List[FlatEquipmentRecord]:
        """Rack equipment in rack order, followed by loose equipment."""
        records = [record for rack in self.rack_drawings for record in rack.equipment]
        records.extend(self.loose_equipment)
        return records


def is_rack(name: str) -> bool:
    lower = name.lower()
    return "rack" in lower and "space" in lower


def is_double_wide(name: str) -> bool:
    return "doublewide" in name.lower()


def extract_spaces(name: str) -> int:
    match = RACK_SPACES_PATTERN.search(name)
    return int(match.group(1)) if match else 0


def extract_rack_units(name: str) -> int:
    match = RACK_UNITS_PATTERN.search(name)
    return int(match.group(1)) if match else 0


def classify_node(node: RawNode) -> NodeKind:
    """
    Classify a node by name and shape.

    Rack detection wins over everything else; a node with children is a
    virtual group when flagged ``isVirtual`` and an assembly otherwise.
    """
    if is_rack(node.name):
        return NodeKind.RACK
    if node.children:
        return NodeKind.VIRTUAL_GROUP if node.is_virtual else NodeKind.ASSEMBLY
    return NodeKind.LEAF


def parse_sections(data: Any) -> List[RawSection]:
    """
    Decode Flex row-data into typed sections.

    Args:
        data: Decoded JSON returned by the Flex API

    Returns:
        List of RawSection, empty when data is not a list

    Raises:
        SourceFormatError: a section or node does not match the expected shape
    """
    if not isinstance(data, (list, tuple)):
        if data is not None:
            logger.warning(f"Expected a list of sections, got {type(data).__name__}")
        return []

    sections = []
    for index, entry in enumerate(data):
        try:
            sections.append(RawSection.model_validate(entry))
        except ValidationError as e:
            raise SourceFormatError(f"Invalid pullsheet section at index {index}: {e}") from e
    return sections


def _to_record(node: RawNode, section: str, parent_resource_id: Optional[str]) -> FlatEquipmentRecord:
    if not node.resource_id:
        raise SourceFormatError(f"Equipment '{node.name}' in section '{section}' has no resourceId")

    quantity = node.quantity if node.quantity is not None and node.quantity >= 1 else 1
    return FlatEquipmentRecord(
        resource_id=node.resource_id,
        section=section,
        name=node.name,
        quantity=quantity,
        rack_units=extract_rack_units(node.name),
        notes=node.note,
        parent_resource_id=parent_resource_id,
    )


def flatten_equipment(
    nodes: List[RawNode], section: str, parent_resource_id: Optional[str]
) -> List[FlatEquipmentRecord]:
    """
    Flatten nested equipment into a pre-order list with parent references.

    Rack nodes are skipped together with their subtree.
    """
    records: List[FlatEquipmentRecord] = []
    for node in nodes:
        if is_rack(node.name):
            continue
        records.append(_to_record(node, section, parent_resource_id))
        if node.children:
            records.extend(flatten_equipment(node.children, section, node.resource_id))
    return records


def build_rack(node: RawNode, section: str) -> RackDescriptor:
    return RackDescriptor(
        name=node.name,
        total_spaces=extract_spaces(node.name),
        is_double_wide=is_double_wide(node.name),
        section=section,
        notes=node.note,
        equipment=flatten_equipment(node.children, section, None),
    )


def classify_items(
    nodes: List[RawNode], section: str
) -> Tuple[List[RackDescriptor], List[FlatEquipmentRecord]]:
    """
    Split one level of a section into racks and loose equipment.

    Virtual groups are transparent: their children are classified as if
    they sat directly at this level.
    """
    racks: List[RackDescriptor] = []
    loose: List[FlatEquipmentRecord] = []

    for node in nodes:
        kind = classify_node(node)
        if kind is NodeKind.RACK:
            racks.append(build_rack(node, section))
        elif kind is NodeKind.VIRTUAL_GROUP:
            group_racks, group_loose = classify_items(node.children, section)
            racks.extend(group_racks)
            loose.extend(group_loose)
        elif kind is NodeKind.ASSEMBLY:
            loose.extend(flatten_equipment([node], section, None))
        else:
            loose.append(_to_record(node, section, None))

    return racks, loose


def flatten(sections: List[RawSection]) -> ParsedImport:
    """
    Build the ParsedImport for a decoded pullsheet.

    The job name comes from the first section that links to one.
    """
    job_name = ""
    rack_drawings: List[RackDescriptor] = []
    loose_equipment: List[FlatEquipmentRecord] = []

    for section in sections:
        if not job_name and section.job_name:
            job_name = section.job_name

        racks, loose = classify_items(section.children, section.name)
        rack_drawings.extend(racks)
        loose_equipment.extend(loose)

    return ParsedImport(
        job_name=job_name,
        rack_drawings=rack_drawings,
        loose_equipment=loose_equipment,
    )


def parse_flex_data(data: Any) -> ParsedImport:
    """Decode and flatten raw Flex row-data in one step."""
    parsed = flatten(parse_sections(data))
    logger.info(
        f"Parsed pullsheet '{parsed.job_name}': {len(parsed.rack_drawings)} racks, "
        f"{len(parsed.loose_equipment)} loose items"
    )
    return parsed
