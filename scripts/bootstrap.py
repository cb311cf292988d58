# WORKFLOW: Bootstrap script for Pullsheet Import API database setup.
# Used by: Initial setup, deployment
# Functions:
# 1. setup_database() - Create all tables
# 2. validate_setup() - Verify the database accepts connections
#
# Bootstrap flow: Settings -> Create tables -> Connectivity check -> Ready

"""
Bootstrap script for Pullsheet Import API setup.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.config import settings  # noqa: E402
from db.session import check_db_connection, init_db  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)


def setup_database() -> None:
    """
    Create all tables for jobs, rack drawings, catalog and pullsheet items.
    """
    logger.info("Setting up database schema...")
    init_db()


def validate_setup() -> bool:
    """
    Verify the configured database is reachable.

    Returns:
        True if the database accepts connections
    """
    if check_db_connection():
        logger.info("Database connection OK")
        return True
    logger.error("Database connection failed")
    return False


def main() -> int:
    parser = argparse.ArgumentParser(description="Set up the Pullsheet Import API database")
    parser.add_argument("--check-only", action="store_true", help="Only verify connectivity")
    args = parser.parse_args()

    logger.info(f"Using database {settings.database_url.split('@')[-1]}")

    try:
        if not args.check_only:
            setup_database()
    except Exception as e:
        logger.error(f"Bootstrap failed: {e}")
        return 1

    return 0 if validate_setup() else 1


if __name__ == "__main__":
    sys.exit(main())
