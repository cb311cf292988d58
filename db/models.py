# WORKFLOW: Database models for the rack-drawing / pullsheet schema.
# Used by: Import repository, import orchestrator, API responses
# Models represent:
# 1. jobs - One imported Flex pullsheet (unique per pullsheet id)
# 2. rack_drawings - Racks found in the pullsheet, owned by a job
# 3. equipment_catalog - Deduplicated equipment types keyed by Flex resource id
# 4. pullsheet_items - Equipment instances of a job, optionally inside a rack
#    and optionally nested under another item of the same job
#
# Data flow: Flex API -> Flex parser -> Import orchestrator -> These tables -> Placement UI

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, default="")
    flex_pullsheet_id = Column(String(64), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    rack_drawings = relationship("RackDrawing", back_populates="job", cascade="all, delete-orphan")
    pullsheet_items = relationship("PullsheetItem", back_populates="job", cascade="all, delete-orphan")


class RackDrawing(Base):
    __tablename__ = "rack_drawings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    total_spaces = Column(Integer, nullable=False, default=0)
    is_double_wide = Column(Boolean, nullable=False, default=False)
    flex_section = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    job = relationship("Job", back_populates="rack_drawings")
    pullsheet_items = relationship("PullsheetItem", back_populates="rack_drawing")

    __table_args__ = (
        Index('idx_rack_drawings_job', 'job_id'),
    )


class EquipmentCatalog(Base):
    __tablename__ = "equipment_catalog"

    id = Column(Integer, primary_key=True, autoincrement=True)
    flex_resource_id = Column(String(64), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)
    rack_units = Column(Integer, nullable=True)

    # Relationships
    pullsheet_items = relationship("PullsheetItem", back_populates="equipment_catalog")


class PullsheetItem(Base):
    __tablename__ = "pullsheet_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False)
    equipment_catalog_id = Column(Integer, ForeignKey("equipment_catalog.id"), nullable=True)
    rack_drawing_id = Column(Integer, ForeignKey("rack_drawings.id", ondelete="SET NULL"), nullable=True)
    parent_id = Column(Integer, ForeignKey("pullsheet_items.id", ondelete="CASCADE"), nullable=True)
    flex_resource_id = Column(String(64), nullable=False)
    flex_section = Column(String(255), nullable=True)
    name = Column(String(255), nullable=False)
    display_name_override = Column(String(255), nullable=True)
    rack_units = Column(Integer, nullable=False, default=0)
    quantity = Column(Integer, nullable=False, default=1)
    notes = Column(Text, nullable=True)

    # Placement, written by the rack drawing editor
    start_position = Column(Integer, nullable=True)
    side = Column(String(10), nullable=True)  # front, back

    # Relationships
    job = relationship("Job", back_populates="pullsheet_items")
    rack_drawing = relationship("RackDrawing", back_populates="pullsheet_items")
    equipment_catalog = relationship("EquipmentCatalog", back_populates="pullsheet_items")
    parent = relationship("PullsheetItem", remote_side=[id], backref="children")

    __table_args__ = (
        Index('idx_pullsheet_items_job', 'job_id'),
        Index('idx_pullsheet_items_rack', 'rack_drawing_id'),
        Index('idx_pullsheet_items_parent', 'parent_id'),
    )
