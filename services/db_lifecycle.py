"""
Database Lifecycle Service

Copies, validates, backs up, restores and replaces the single SQLite file
that holds all GrowGuide state.

- backup():  primary -> backup slot (one slot, overwritten every time)
- restore(): backup slot -> primary, after a temp snapshot of the primary.
             With no backup, falls back to the default account bootstrap.
- upload():  validated .db payload -> primary, after a temp snapshot
- get_backup_file(): path of the backup slot for downloads

Every operation holds the exclusive database lock, so it never interleaves
with another lifecycle operation or with an open application connection.

After each copy the source and destination sizes are compared. A mismatch
is reported as ``status == "warning"`` with both sizes; it is a heuristic
for a concurrent write, not a corruption check.

Usage:
    from services.db_lifecycle import get_lifecycle_manager

    manager = get_lifecycle_manager()
    result = manager.backup()
    if result["status"] == "warning":
        print(result["original_size"], result["backup_size"])
"""

import logging
import os
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from config.env_config import Config, get_backup_path, get_db_path
from file_lock_manager import get_database_lock
from services.default_accounts import ensure_default_users
from services.lifecycle_errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DB_EXTENSION = ".db"

# Files SQLite keeps beside the main database while a write is in flight
SIDECAR_SUFFIXES = ("-journal", "-wal", "-shm")

STATUS_SUCCESS = "success"
STATUS_WARNING = "warning"
STATUS_ERROR = "error"


def copy_database_file(src: Path, dst: Path) -> None:
    """Byte-for-byte copy; raises OSError on failure."""
    shutil.copyfile(src, dst)


def _result(status: str, message: str, **fields: Any) -> Dict[str, Any]:
    result = {
        "status": status,
        "message": message,
        "timestamp": datetime.now().isoformat(),
    }
    result.update(fields)
    return result


def _sidecar(path: Path, suffix: str) -> Path:
    return path.with_name(path.name + suffix)


def _file_info(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {"path": str(path), "exists": False, "size": None, "modified_at": None}
    stat = path.stat()
    return {
        "path": str(path),
        "exists": True,
        "size": stat.st_size,
        "modified_at": datetime.fromtimestamp(stat.st_mtime).isoformat(),
    }


class DatabaseLifecycleManager:
    """Backup, restore and upload for the primary database file."""

    def __init__(
        self,
        db_path: Union[str, Path, None] = None,
        backup_path: Union[str, Path, None] = None,
        lock_timeout: float = None,
        max_upload_bytes: int = None,
    ):
        self.db_path = Path(db_path) if db_path else get_db_path()
        self.backup_path = Path(backup_path) if backup_path else get_backup_path()
        self.backup_dir = self.backup_path.parent
        # cannabis-workshop.db -> cannabis-workshop.temp.db
        self.temp_path = self.db_path.with_suffix(".temp" + self.db_path.suffix)
        self.max_upload_bytes = max_upload_bytes or Config.MAX_UPLOAD_MB * 1024 * 1024

        if lock_timeout is None:
            lock_timeout = Config.get("DB_LOCK_TIMEOUT")
        self.lock = get_database_lock(self.db_path, lock_timeout)

    # =========================================================================
    # Journal files
    # =========================================================================

    def _leftover_sidecars(self) -> List[Path]:
        return [
            _sidecar(self.db_path, suffix)
            for suffix in SIDECAR_SUFFIXES
            if _sidecar(self.db_path, suffix).exists()
        ]

    def _recover_journal(self) -> None:
        """Let SQLite roll back a hot journal or checkpoint a WAL in place.

        After this the main file alone holds the last committed state.
        """
        leftovers = self._leftover_sidecars()
        if not leftovers:
            return

        logger.warning(
            f"Found {', '.join(p.name for p in leftovers)} beside {self.db_path}, recovering"
        )
        conn = sqlite3.connect(str(self.db_path))
        try:
            conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
            conn.execute("PRAGMA wal_checkpoint(TRUNCATE)").fetchone()
        finally:
            conn.close()

    def _move_sidecars(self, keep_with_snapshot: bool) -> None:
        """Clear journal files before the primary is replaced.

        A journal left beside the new file would be replayed onto it on the
        next open. With a snapshot taken, the files move next to the temp
        copy so the snapshot still opens to the pre-replace state.
        """
        for suffix in SIDECAR_SUFFIXES:
            path = _sidecar(self.db_path, suffix)
            if not path.exists():
                continue
            if keep_with_snapshot:
                target = _sidecar(self.temp_path, suffix)
                logger.info(f"Moving {path.name} to {target}")
                os.replace(path, target)
            else:
                logger.info(f"Removing leftover {path}")
                path.unlink()

    # =========================================================================
    # Backup
    # =========================================================================

    def backup(self) -> Dict[str, Any]:
        """Copy the primary database into the backup slot.

        A hot journal or WAL left by a crashed writer is recovered first, so
        the copy holds only committed data.

        Returns:
            Result dict. ``success`` or ``warning`` carry ``original_size``
            and ``backup_size``. A missing primary gives an ``error`` result
            with ``error_type == "not_found"``.

        Raises:
            OSError: when the copy itself fails
            sqlite3.Error: when a leftover journal cannot be recovered
        """
        with self.lock.exclusive("backup"):
            if not self.db_path.exists():
                logger.warning(f"No database found to backup at: {self.db_path}")
                return _result(
                    STATUS_ERROR,
                    "No database found to backup",
                    error_type="not_found",
                    db_path=str(self.db_path),
                )

            try:
                self._recover_journal()
            except sqlite3.Error as e:
                logger.error(f"Could not recover journal of {self.db_path}: {e}")
                raise

            try:
                if not self.backup_dir.exists():
                    logger.info(f"Creating backup directory {self.backup_dir}")
                    self.backup_dir.mkdir(parents=True, exist_ok=True)

                logger.info(f"Copying database from {self.db_path} to {self.backup_path}")
                copy_database_file(self.db_path, self.backup_path)

                original_size = self.db_path.stat().st_size
                backup_size = self.backup_path.stat().st_size
            except OSError as e:
                logger.error(f"Error backing up database {self.db_path}: {e}")
                raise

        logger.info(f"Original database size: {original_size} bytes")
        logger.info(f"Backup database size: {backup_size} bytes")

        if original_size != backup_size:
            logger.warning(
                f"Backup file size differs from original database "
                f"({backup_size} != {original_size})"
            )
            return _result(
                STATUS_WARNING,
                "Backup file size differs from original database",
                original_size=original_size,
                backup_size=backup_size,
                backup_path=str(self.backup_path),
            )

        logger.info("Database backup completed successfully")
        return _result(
            STATUS_SUCCESS,
            "Database backup completed successfully",
            original_size=original_size,
            backup_size=backup_size,
            backup_path=str(self.backup_path),
        )

    # =========================================================================
    # Restore
    # =========================================================================

    def _snapshot_primary(self) -> bool:
        """Copy the primary to the temp path. Failure is logged, never raised."""
        try:
            # Journals from an older snapshot must not apply to this one
            for suffix in SIDECAR_SUFFIXES:
                _sidecar(self.temp_path, suffix).unlink(missing_ok=True)
            copy_database_file(self.db_path, self.temp_path)
        except OSError as e:
            logger.warning(f"Could not create temporary backup at {self.temp_path}: {e}")
            return False
        logger.info(f"Created temporary backup of current database at {self.temp_path}")
        return True

    def restore(self) -> Dict[str, Any]:
        """Overwrite the primary database with the backup slot.

        With no backup present this ensures the default accounts exist
        instead and reports ``bootstrapped``. Journal files beside the
        primary move with the temp snapshot so they never replay onto the
        restored file.

        Raises:
            OSError: when copying the backup over the primary fails
        """
        with self.lock.exclusive("restore"):
            if not self.backup_path.exists():
                logger.info("No backup found. Ensuring default users exist...")
                accounts = ensure_default_users(self.db_path)
                return _result(
                    STATUS_SUCCESS,
                    "No backup found, default users ensured",
                    bootstrapped=True,
                    created=accounts["created"],
                    existing=accounts["existing"],
                )

            logger.info(f"Found database backup at {self.backup_path}, restoring...")
            snapshot_taken = False
            if self.db_path.exists():
                snapshot_taken = self._snapshot_primary()

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._move_sidecars(snapshot_taken)
                copy_database_file(self.backup_path, self.db_path)

                backup_size = self.backup_path.stat().st_size
                restored_size = self.db_path.stat().st_size
            except OSError as e:
                logger.error(f"Error restoring database from {self.backup_path}: {e}")
                raise

        logger.info(f"Backup database size: {backup_size} bytes")
        logger.info(f"Restored database size: {restored_size} bytes")

        fields = {
            "bootstrapped": False,
            "backup_size": backup_size,
            "restored_size": restored_size,
            "temp_path": str(self.temp_path) if snapshot_taken else None,
        }

        if backup_size != restored_size:
            logger.warning(
                f"Restored file size differs from backup ({restored_size} != {backup_size})"
            )
            return _result(STATUS_WARNING, "Restored file size differs from backup", **fields)

        logger.info("Database restore completed successfully")
        return _result(STATUS_SUCCESS, "Database restore completed successfully", **fields)

    # =========================================================================
    # Upload
    # =========================================================================

    def validate_upload(self, filename: Optional[str], file_bytes: Optional[bytes]) -> None:
        """Reject an upload before anything is written.

        Raises:
            ValidationError: missing payload, wrong extension or too large
        """
        if not filename or not filename.strip():
            raise ValidationError("No file selected")

        if not filename.lower().endswith(DB_EXTENSION):
            raise ValidationError(f"Only {DB_EXTENSION} files can be uploaded, got '{filename}'")

        if file_bytes is None:
            raise ValidationError("No file provided")

        if len(file_bytes) == 0:
            raise ValidationError("File is empty")

        if len(file_bytes) > self.max_upload_bytes:
            max_mb = self.max_upload_bytes / (1024 * 1024)
            raise ValidationError(f"File size exceeds {max_mb:g}MB limit")

    def upload(self, file_bytes: bytes, filename: str) -> Dict[str, Any]:
        """Replace the primary database with an uploaded file.

        The current primary is snapshotted to the temp path first, the same
        way restore() does it. The payload is staged next to the primary and
        moved into place with os.replace.

        Raises:
            ValidationError: before any disk write
            OSError: when writing the payload fails
        """
        self.validate_upload(filename, file_bytes)

        staging_path = self.db_path.with_name(self.db_path.name + ".upload")

        with self.lock.exclusive("upload"):
            snapshot_taken = False
            if self.db_path.exists():
                snapshot_taken = self._snapshot_primary()

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                with open(staging_path, "wb") as f:
                    f.write(file_bytes)
                    f.flush()
                    os.fsync(f.fileno())
                self._move_sidecars(snapshot_taken)
                os.replace(staging_path, self.db_path)
                size = self.db_path.stat().st_size
            except OSError as e:
                logger.error(f"Error installing uploaded database {filename}: {e}")
                if staging_path.exists():
                    staging_path.unlink()
                raise

        logger.info(f"Installed uploaded database {filename} ({size} bytes) at {self.db_path}")
        return _result(
            STATUS_SUCCESS,
            "Database uploaded successfully",
            original_name=filename,
            size=size,
            temp_path=str(self.temp_path) if snapshot_taken else None,
        )

    # =========================================================================
    # Download / status
    # =========================================================================

    def get_backup_file(self) -> Path:
        """Path of the backup slot.

        Raises:
            NotFoundError: when no backup has been taken
        """
        if not self.backup_path.exists():
            raise NotFoundError("No backup found to download")
        return self.backup_path

    def status(self) -> Dict[str, Any]:
        """Current state of the primary, backup and lock."""
        return {
            "database": _file_info(self.db_path),
            "backup": _file_info(self.backup_path),
            "lock_holder": self.lock.get_lock_holder(),
        }


# Singleton getter
_manager_instance = None


def get_lifecycle_manager(
    db_path: Union[str, Path, None] = None, backup_path: Union[str, Path, None] = None
) -> DatabaseLifecycleManager:
    global _manager_instance
    if _manager_instance is None or db_path or backup_path:
        _manager_instance = DatabaseLifecycleManager(db_path, backup_path)
    return _manager_instance
