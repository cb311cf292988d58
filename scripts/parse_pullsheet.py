#!/usr/bin/env python3
"""
Fetch a Flex pullsheet and print the flattened result without touching the database.

Usage:
    python scripts/parse_pullsheet.py <flex-url-or-pullsheet-id> [--raw]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.exceptions import InvalidFlexUrlError, PullsheetImportError  # noqa: E402
from etl.flex_parser import parse_flex_data  # noqa: E402
from etl.validators import validate_parsed_import  # noqa: E402
from services.flex_client import FlexClient, parse_pullsheet_id  # noqa: E402

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def run(locator: str, show_raw: bool) -> int:
    try:
        pullsheet_id = parse_pullsheet_id(locator)
    except InvalidFlexUrlError:
        # Accept a bare pullsheet id as well
        pullsheet_id = locator.strip()

    try:
        raw = await FlexClient().fetch_pullsheet(pullsheet_id)
        parsed = parse_flex_data(raw)
    except PullsheetImportError as e:
        logger.error(f"Could not parse pullsheet {pullsheet_id}: {e}")
        return 1

    if show_raw and isinstance(raw, list):
        first = raw[0] if raw and isinstance(raw[0], dict) else {}
        print("Raw structure:")
        print(f"  sections: {len(raw)}")
        print(f"  data[0].name: {first.get('name')}")
        print(f"  data[0].children count: {len(first.get('children') or [])}")
        print()

    _, issues = validate_parsed_import(parsed)
    for issue in issues:
        logger.warning(issue)

    print(json.dumps(parsed.model_dump(), indent=2))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Fetch and flatten a Flex pullsheet")
    parser.add_argument("locator", help="Flex pullsheet URL or pullsheet id")
    parser.add_argument("--raw", action="store_true", help="Print a summary of the raw structure first")
    args = parser.parse_args()
    return asyncio.run(run(args.locator, args.raw))


if __name__ == "__main__":
    sys.exit(main())
