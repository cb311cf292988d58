# WORKFLOW: Pydantic request schemas for API input validation.
# Used by: FastAPI endpoints for request validation and documentation
# Schemas include:
# 1. ImportPullsheetRequest - For /pullsheet/import endpoint
#
# Validation flow: HTTP request -> Pydantic validation -> Endpoint processing
# A missing flexUrl is accepted here and reported by the importer as a 400 with
# the same {"error": ...} payload as a malformed one.

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class ImportPullsheetRequest(BaseModel):
    """Request schema for the pullsheet import endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    flex_url: Optional[str] = Field(
        None,
        alias="flexUrl",
        description="Flex UI URL, e.g. https://<host>/f5/ui/#equipment-list-scan/<pullsheet-id>/prep",
    )
