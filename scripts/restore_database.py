#!/usr/bin/env python3
"""
Database restore script.

Restores the GrowGuide database from the backup slot after a deploy. If no
backup exists, makes sure the default admin and Jan accounts exist instead.

Usage:
    python scripts/restore_database.py
    python scripts/restore_database.py --backup-path /srv/backup/cannabis-workshop.backup.db
"""

import argparse
import json
import logging
import sqlite3
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from services.db_lifecycle import DatabaseLifecycleManager  # noqa: E402

logger = logging.getLogger("restore_database")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Restore the GrowGuide database")
    parser.add_argument("--db-path", help="Primary database (default: from config)")
    parser.add_argument("--backup-path", help="Backup file (default: from config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    logger.info("Starting database restore process...")
    manager = DatabaseLifecycleManager(args.db_path, args.backup_path)

    try:
        result = manager.restore()
    except (OSError, sqlite3.Error) as e:
        logger.error(f"Restore failed: {e}")
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
