# WORKFLOW: Flex Rental Solutions API client and Flex URL handling.
# Used by: Import orchestrator, pullsheet router, scripts/parse_pullsheet.py
# Functions:
# 1. parse_pullsheet_id() - Extract the pullsheet id from a Flex UI URL
# 2. FlexClient.fetch_pullsheet() - GET the raw row-data tree for a pullsheet
# 3. get_flex_client() - Dependency injection for FastAPI endpoints
#
# Fetch flow: Flex URL -> pullsheet id -> HTTP GET row-data -> JSON -> flex_parser

from __future__ import annotations

import logging
import time
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from core.config import settings
from core.exceptions import InvalidFlexUrlError, UpstreamFetchError

logger = logging.getLogger(__name__)

# Columns requested alongside the tree structure
FLEX_CODE_LIST = ("quantity", "upstreamLink", "note", "isVirtual")


def parse_pullsheet_id(flex_url: Optional[str]) -> str:
    """
    Extract the pullsheet id from a Flex URL.

    The id is the second segment of the URL fragment, e.g.
    ``https://spectrum.flexrentalsolutions.com/f5/ui/#equipment-list-scan/{uuid}/prep``.

    Raises:
        InvalidFlexUrlError: the URL is missing or has no pullsheet id
    """
    if flex_url is None or not flex_url.strip():
        raise InvalidFlexUrlError("flexUrl is required")

    try:
        parsed = urlparse(flex_url.strip())
    except ValueError as e:
        raise InvalidFlexUrlError("Invalid Flex URL format") from e

    if not parsed.scheme or not parsed.netloc:
        raise InvalidFlexUrlError("Invalid Flex URL format")

    fragment_parts = parsed.fragment.split("/")
    if len(fragment_parts) < 2 or not fragment_parts[1]:
        raise InvalidFlexUrlError("Invalid Flex URL format")

    return fragment_parts[1]


class FlexClient:
    """Async client for the Flex line-item row-data endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.flex_base_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.flex_api_key
        self.timeout = timeout or settings.flex_request_timeout
        self.transport = transport

    def _row_data_url(self, pullsheet_id: str) -> str:
        return f"{self.base_url}/line-item/{pullsheet_id}/row-data/"

    def _params(self) -> list[tuple[str, str]]:
        params = [("_dc", str(int(time.time() * 1000)))]
        params.extend(("codeList", code) for code in FLEX_CODE_LIST)
        params.append(("node", "root"))
        return params

    async def fetch_pullsheet(self, pullsheet_id: str) -> Any:
        """
        Fetch the raw row-data tree for a pullsheet.

        Raises:
            UpstreamFetchError: transport failure, non-2xx status or invalid JSON
        """
        headers = {
            "X-Auth-Token": self.api_key,
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(
                    self._row_data_url(pullsheet_id), params=self._params(), headers=headers
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamFetchError(
                f"Error fetching data from Flex API: {e.response.status_code} {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamFetchError(f"Error fetching data from Flex API: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamFetchError("Flex API returned a non-JSON response") from e

        logger.info(f"Fetched pullsheet {pullsheet_id} from Flex")
        return data


def get_flex_client() -> FlexClient:
    """Dependency to get a Flex client built from settings."""
    return FlexClient()
