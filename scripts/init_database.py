#!/usr/bin/env python3
"""
Database Initialization Script
==============================

Create the custody schema (evidence, custody_logs, identities) and
optionally seed the first superadmin identity.

Usage:
    python scripts/init_database.py
    python scripts/init_database.py --superadmin 0xabc...

Version: 0.1.0
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from custody.logging import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False, service_name="init-db")
logger = get_logger(__name__)


async def init_schema() -> bool:
    """Create all tables and verify the connection."""
    from sqlalchemy import text

    from custody.storage.sql import DatabaseClient

    try:
        await DatabaseClient.create_schema()
        async with DatabaseClient.get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("schema_initialized")
        return True
    except Exception as e:
        logger.error("schema_init_failed", error=str(e))
        return False


async def seed_superadmin(wallet_address: str, display_name: str | None) -> bool:
    """Register the bootstrap superadmin directly in the repository."""
    from custody.models import Identity, Role, default_display_name
    from custody.storage.sql import DatabaseClient, SqlEvidenceRepository

    repository = SqlEvidenceRepository(DatabaseClient.get_session_factory())
    try:
        identity = Identity(wallet_address=wallet_address, role=Role.SUPERADMIN, added_by="init-db")
        identity.display_name = display_name or default_display_name(identity.wallet_address)
        await repository.upsert_identity(identity)
        logger.info("superadmin_seeded", wallet_address=identity.wallet_address)
        return True
    except Exception as e:
        logger.error("superadmin_seed_failed", error=str(e))
        return False


async def main(args: argparse.Namespace) -> int:
    """Main initialization function."""
    from custody.storage.sql import DatabaseClient

    results = {"schema": await init_schema()}
    if args.superadmin and results["schema"]:
        results["superadmin"] = await seed_superadmin(args.superadmin, args.display_name)

    await DatabaseClient.close()

    failed = [name for name, ok in results.items() if not ok]
    if failed:
        logger.error("initialization_failed", failed=failed)
        return 1

    logger.info("initialization_complete", steps=list(results))
    return 0


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Initialize the custody database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--superadmin",
        metavar="WALLET",
        help="Wallet address to register as the first superadmin",
    )
    parser.add_argument(
        "--display-name",
        help="Display name for the seeded superadmin",
    )
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    exit_code = asyncio.run(main(args))
    sys.exit(exit_code)
