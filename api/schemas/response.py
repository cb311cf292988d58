# WORKFLOW: Pydantic response schemas for the pullsheet import API.
# Used by: Pullsheet router, API documentation, tests
# Schemas include:
# 1. JobResponse - Created or existing job
# 2. ImportPullsheetResponse - Successful import with created counts
# 3. ConflictResponse - Pullsheet already imported (carries the existing job id)
# 4. ErrorResponse - Client error or opaque server failure
#
# Response flow: ImportOutcome -> Pydantic model -> camelCase JSON

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class JobResponse(CamelModel):
    id: int
    name: str
    flex_pullsheet_id: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ImportPullsheetResponse(CamelModel):
    job: JobResponse
    rack_drawings_created: int
    pullsheet_items_created: int


class ConflictResponse(CamelModel):
    error: str
    job_id: Optional[int] = None


class ErrorResponse(CamelModel):
    error: str
