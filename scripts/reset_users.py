#!/usr/bin/env python3
"""
Reset users and all their data.

Empties users, plants, setups, day entries, harvests, help requests and
feedback, then recreates the admin and Jan accounts. Destructive: requires
--yes.

Usage:
    python scripts/reset_users.py --yes
"""

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from services.default_accounts import RESET_TABLES, reset_and_reseed  # noqa: E402
from services.lifecycle_errors import TransactionError  # noqa: E402

logger = logging.getLogger("reset_users")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Reset all user data in the GrowGuide database")
    parser.add_argument("--db-path", help="Primary database (default: from config)")
    parser.add_argument("--yes", action="store_true", help="Confirm the destructive reset")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if not args.yes:
        print(f"This deletes every row in: {', '.join(RESET_TABLES)}")
        print("Re-run with --yes to confirm.")
        return 2

    logger.info("Starting database reset process...")
    try:
        result = reset_and_reseed(args.db_path)
    except TransactionError as e:
        logger.error(f"Reset failed: {e}")
        return 1

    print(json.dumps(result, indent=2))
    print("Created users:")
    print("1. admin (with admin privileges)")
    print("2. Jan (regular user)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
