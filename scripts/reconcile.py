#!/usr/bin/env python3
"""Bridge Ledger Reconciliation Script.

Checks that every unit of value that entered the bridge is either still
held, refunded or withdrawn, and that the bridge's token holdings cover
what it owes. Exits non-zero when an issue is found.

Usage:
    python scripts/reconcile.py [--json]

Options:
    --json   Print the report as JSON instead of log lines
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

load_dotenv()

from htlcbridge.bridge.reconcile import reconcile
from htlcbridge.config import get_settings
from htlcbridge.ledger.database import close_db, get_db, init_db

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def main() -> int:
    parser = argparse.ArgumentParser(description="Bridge Ledger Reconciliation")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    args = parser.parse_args()

    await init_db()
    try:
        async with get_db() as session:
            report = await reconcile(session, get_settings().bridge_account)
    finally:
        await close_db()

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        logger.info("=" * 60)
        logger.info("BRIDGE RECONCILIATION")
        logger.info("=" * 60)
        logger.info(f"Initiated:  {report.total_initiated}")
        logger.info(f"Refunded:   {report.total_refunded}")
        logger.info(f"Withdrawn:  {report.total_withdrawn}")
        logger.info(f"Held:       {report.total_balances}")
        logger.info(f"Locked:     {report.total_locked}")
        logger.info(f"Holdings:   {report.token_holdings}")
        logger.info(f"Early:      {sum(report.settled_ahead.values())}")
        logger.info(f"Status:     {'OK' if report.ok else 'DISCREPANCY'}")

    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
