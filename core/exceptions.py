# WORKFLOW: Exception hierarchy for the pullsheet import pipeline.
# Used by: Flex client, flex parser, catalog resolver, import orchestrator, API routers
# Exceptions:
# 1. PullsheetImportError - Base class, also the single opaque failure surfaced to callers
# 2. InvalidFlexUrlError - Caller supplied a locator that does not parse (HTTP 400)
# 3. UpstreamFetchError / SourceFormatError - Flex API unavailable or payload unusable
# 4. JobAlreadyExistsError - Job unique constraint hit (converted to a conflict outcome)
# 5. CatalogInconsistencyError - Catalog entry missing after upsert
#
# Error flow: Raised in services -> Caught by orchestrator -> Logged -> Generic failure or conflict

from typing import Iterable


class PullsheetImportError(Exception):
    """Base class for all import pipeline errors."""


class InvalidFlexUrlError(PullsheetImportError):
    """The Flex URL is missing or does not contain a pullsheet id."""


class UpstreamFetchError(PullsheetImportError):
    """The Flex API could not be reached or returned an unusable response."""


class SourceFormatError(UpstreamFetchError):
    """The Flex payload does not match the expected node structure."""


class JobAlreadyExistsError(PullsheetImportError):
    """A job for this pullsheet id already exists."""

    def __init__(self, pullsheet_id: str):
        super().__init__(f"Job already exists for pullsheet {pullsheet_id}")
        self.pullsheet_id = pullsheet_id


class CatalogInconsistencyError(PullsheetImportError):
    """Resource ids still have no catalog entry after the upsert."""

    def __init__(self, missing_ids: Iterable[str]):
        self.missing_ids: list[str] = sorted(missing_ids)
        super().__init__(
            f"Catalog entries missing after upsert: {', '.join(self.missing_ids)}"
        )
