#!/usr/bin/env python3
"""
Advisory lock for the GrowGuide database file.

Backup, restore, upload and reset take the lock exclusively. Ordinary
application connections take it shared, so a lifecycle operation waits for
in-flight requests and new requests wait for the copy to finish.

The lock is an fcntl.flock on ``<db>.lock``; a JSON ``<db>.lock.info`` file
records who holds it in exclusive mode. Locks are re-entrant per thread: a
thread holding the exclusive lock may open shared scopes freely.

Usage:
    from file_lock_manager import get_database_lock

    lock = get_database_lock(db_path)
    with lock.exclusive("backup"):
        shutil.copyfile(db_path, backup_path)

    with lock.shared():
        conn.execute("SELECT 1")
"""

import fcntl
import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)

LOCK_TIMEOUT = 30.0
POLL_INTERVAL = 0.05


class LockTimeoutError(TimeoutError):
    """Raised when the database lock cannot be acquired in time."""

    pass


class DatabaseLock:
    """Shared/exclusive advisory lock bound to one database path."""

    def __init__(self, db_path: Union[str, Path], timeout: float = None):
        self.db_path = Path(db_path)
        self.lock_path = self.db_path.with_name(self.db_path.name + ".lock")
        self.info_path = self.db_path.with_name(self.db_path.name + ".lock.info")
        self.timeout = LOCK_TIMEOUT if timeout is None else timeout
        self._local = threading.local()

    def _depth(self) -> Dict[str, int]:
        if not hasattr(self._local, "depth"):
            self._local.depth = {"exclusive": 0, "shared": 0}
            self._local.handle = None
        return self._local.depth

    def _open_and_lock(self, mode: int, timeout: float):
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_path, "a")
        start_time = time.time()

        while True:
            try:
                fcntl.flock(handle.fileno(), mode | fcntl.LOCK_NB)
                return handle
            except BlockingIOError:
                if time.time() - start_time >= timeout:
                    handle.close()
                    holder = self.get_lock_holder()
                    owner = holder["owner"] if holder else "unknown"
                    raise LockTimeoutError(
                        f"Could not lock {self.db_path} within {timeout}s (held by {owner})"
                    )
                time.sleep(POLL_INTERVAL)

    def _release(self):
        handle = self._local.handle
        self._local.handle = None
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()

    @contextmanager
    def exclusive(self, owner: str = "lifecycle", timeout: float = None):
        """Hold the lock exclusively for the duration of the block."""
        depth = self._depth()
        if depth["shared"] and not depth["exclusive"]:
            raise RuntimeError("Cannot upgrade a shared database lock to exclusive")

        if depth["exclusive"]:
            depth["exclusive"] += 1
            try:
                yield self
            finally:
                depth["exclusive"] -= 1
            return

        self._local.handle = self._open_and_lock(
            fcntl.LOCK_EX, self.timeout if timeout is None else timeout
        )
        depth["exclusive"] = 1
        self._write_info(owner)
        logger.debug(f"Acquired exclusive lock on {self.db_path} for {owner}")

        try:
            yield self
        finally:
            depth["exclusive"] = 0
            self._clear_info()
            self._release()
            logger.debug(f"Released exclusive lock on {self.db_path}")

    @contextmanager
    def shared(self, timeout: float = None):
        """Hold the lock in shared mode unless this thread already holds it."""
        depth = self._depth()
        if depth["exclusive"] or depth["shared"]:
            depth["shared"] += 1
            try:
                yield self
            finally:
                depth["shared"] -= 1
            return

        self._local.handle = self._open_and_lock(
            fcntl.LOCK_SH, self.timeout if timeout is None else timeout
        )
        depth["shared"] = 1
        try:
            yield self
        finally:
            depth["shared"] = 0
            self._release()

    def _write_info(self, owner: str):
        lock_info = {
            "owner": owner,
            "db_path": str(self.db_path),
            "acquired_at": datetime.now().isoformat(),
            "pid": os.getpid(),
            "hostname": os.uname().nodename,
        }
        try:
            with open(self.info_path, "w") as f:
                json.dump(lock_info, f, indent=2)
        except OSError as e:
            logger.warning(f"Failed to write lock info {self.info_path}: {e}")

    def _clear_info(self):
        try:
            self.info_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove lock info {self.info_path}: {e}")

    def get_lock_holder(self) -> Optional[Dict]:
        """Return info about the exclusive holder, or None."""
        if not self.info_path.exists():
            return None
        try:
            with open(self.info_path) as f:
                lock_info = json.load(f)
        except (OSError, ValueError):
            return None

        # Info left behind by a crashed process
        pid = lock_info.get("pid")
        if pid and not _is_process_alive(pid):
            return None
        return lock_info

    def is_locked(self) -> bool:
        """True while some process holds the exclusive lock."""
        return self.get_lock_holder() is not None


def _is_process_alive(pid: int) -> bool:
    """Check if process is still running."""
    try:
        os.kill(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        return True


_locks: Dict[str, DatabaseLock] = {}
_locks_lock = threading.Lock()


def get_database_lock(db_path: Union[str, Path], timeout: float = None) -> DatabaseLock:
    """Get the process-wide lock object for a database path."""
    key = str(Path(db_path).absolute())
    with _locks_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = DatabaseLock(db_path, timeout)
            _locks[key] = lock
        elif timeout is not None:
            lock.timeout = timeout
        return lock
