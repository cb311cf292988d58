# WORKFLOW: Pullsheet import endpoint.
# Used by: Rack drawing frontend, integration testing
# Endpoints:
# 1. /pullsheet/import - Import a Flex pullsheet by URL
#
# Request flow: HTTP POST -> Request validation -> PullsheetImporter -> Outcome -> Status code
# 201 created, 400 bad Flex URL, 409 already imported, 500 anything else.
# Failure details stay in the log; the caller only sees "Failed to import pullsheet".

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
import logging

from api.schemas.request import ImportPullsheetRequest
from api.schemas.response import ConflictResponse, ErrorResponse, ImportPullsheetResponse, JobResponse
from core.exceptions import InvalidFlexUrlError, PullsheetImportError
from db.session import get_db
from services.flex_client import FlexClient, get_flex_client
from services.pullsheet_importer import (
    ALREADY_IMPORTED_MESSAGE,
    ImportStatus,
    create_pullsheet_importer,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pullsheets"])


@router.post(
    "/pullsheet/import",
    response_model=ImportPullsheetResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ConflictResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)
async def import_pullsheet(
    request: ImportPullsheetRequest,
    db: Session = Depends(get_db),
    flex_client: FlexClient = Depends(get_flex_client),
):
    """
    Import a Flex pullsheet as a new job.

    Creates the job, its rack drawings, catalog entries for unseen equipment
    and one pullsheet item per equipment record. A pullsheet can only be
    imported once.
    """
    logger.info(f"Pullsheet import request: {request.flex_url}")
    importer = create_pullsheet_importer(db, flex_client)

    try:
        outcome = await importer.import_pullsheet(request.flex_url)
    except InvalidFlexUrlError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error=str(e)).model_dump(),
        )
    except PullsheetImportError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error=str(e)).model_dump(),
        )

    if outcome.status is ImportStatus.CONFLICT:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=ConflictResponse(
                error=ALREADY_IMPORTED_MESSAGE, job_id=outcome.existing_job_id
            ).model_dump(by_alias=True),
        )

    return ImportPullsheetResponse(
        job=JobResponse.model_validate(outcome.job),
        rack_drawings_created=outcome.rack_drawings_created,
        pullsheet_items_created=outcome.pullsheet_items_created,
    )
