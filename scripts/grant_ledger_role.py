#!/usr/bin/env python3
"""
Ledger Role Grant Script
========================

Grant (or revoke) the ledger role that permits judges and investigators
to register evidence. Works against the configured ledger
(``LEDGER_MODE``); only the journal ledger persists grants.

Usage:
    python scripts/grant_ledger_role.py 0xabc... INVESTIGATOR_ROLE
    python scripts/grant_ledger_role.py 0xabc... JUDGE_ROLE --revoke

Version: 0.1.0
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from custody.logging import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False, service_name="grant-role")
logger = get_logger(__name__)


async def main(args: argparse.Namespace) -> int:
    from custody.errors import CustodyError
    from custody.ledger import LedgerRole, get_ledger_client

    role = LedgerRole(args.role)
    ledger = get_ledger_client()

    try:
        await ledger.connect()
        if args.revoke:
            receipt = await ledger.revoke_role(args.account, role)
        else:
            receipt = await ledger.grant_role(args.account, role)
    except CustodyError as e:
        logger.error("ledger_role_update_failed", account=args.account, role=role.value, error=e.message)
        return 1
    finally:
        await ledger.disconnect()

    logger.info(
        "ledger_role_updated",
        account=args.account.lower(),
        role=role.value,
        revoked=args.revoke,
        tx_hash=receipt.tx_hash,
        block_number=receipt.block_number,
    )
    return 0


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Grant or revoke a ledger role")
    parser.add_argument("account", help="Wallet address / account id")
    parser.add_argument(
        "role",
        choices=["INVESTIGATOR_ROLE", "JUDGE_ROLE"],
        help="Ledger role",
    )
    parser.add_argument(
        "--revoke",
        action="store_true",
        help="Revoke instead of grant",
    )
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    exit_code = asyncio.run(main(args))
    sys.exit(exit_code)
