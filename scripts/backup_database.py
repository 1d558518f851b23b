#!/usr/bin/env python3
"""
Database backup script.

Copies the GrowGuide database into the backup slot. Run before a deploy
replaces the application directory.

Usage:
    python scripts/backup_database.py
    python scripts/backup_database.py --db-path data/cannabis-workshop.db
"""

import argparse
import json
import logging
import sqlite3
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from services.db_lifecycle import STATUS_ERROR, DatabaseLifecycleManager  # noqa: E402

logger = logging.getLogger("backup_database")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Back up the GrowGuide database")
    parser.add_argument("--db-path", help="Primary database (default: from config)")
    parser.add_argument("--backup-path", help="Backup file (default: from config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    logger.info("Starting database backup process...")
    manager = DatabaseLifecycleManager(args.db_path, args.backup_path)

    try:
        result = manager.backup()
    except (OSError, sqlite3.Error) as e:
        logger.error(f"Backup failed: {e}")
        return 1

    print(json.dumps(result, indent=2))

    # Nothing to back up is not a failed deploy step
    if result["status"] == STATUS_ERROR and result.get("error_type") != "not_found":
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
