"""
Tests for the shared/exclusive database lock.
"""
import json
import threading

import pytest

from file_lock_manager import DatabaseLock, LockTimeoutError, get_database_lock


def _hold_in_thread(lock, mode, **kwargs):
    """Take the lock in another thread; returns (acquired, release) events."""
    acquired = threading.Event()
    release = threading.Event()

    def run():
        scope = lock.exclusive("other") if mode == "exclusive" else lock.shared()
        with scope:
            acquired.set()
            release.wait(5)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    assert acquired.wait(5)
    return release, thread


@pytest.fixture
def lock(db_path):
    return DatabaseLock(db_path, timeout=0.2)


class TestDatabaseLock:
    def test_paths(self, lock, db_path):
        assert lock.lock_path.name == "cannabis-workshop.db.lock"
        assert lock.info_path.name == "cannabis-workshop.db.lock.info"

    def test_exclusive_writes_holder_info(self, lock):
        with lock.exclusive("backup"):
            holder = lock.get_lock_holder()
            assert holder["owner"] == "backup"
            assert lock.is_locked()

        assert lock.get_lock_holder() is None
        assert not lock.info_path.exists()

    def test_exclusive_is_reentrant(self, lock):
        with lock.exclusive("restore"):
            with lock.exclusive("restore"):
                with lock.shared():
                    pass
            assert lock.get_lock_holder()["owner"] == "restore"

    def test_shared_cannot_upgrade(self, lock):
        with lock.shared():
            with pytest.raises(RuntimeError):
                with lock.exclusive("backup"):
                    pass

    def test_exclusive_blocks_other_thread(self, lock):
        release, thread = _hold_in_thread(lock, "exclusive")
        try:
            with pytest.raises(LockTimeoutError, match="other"):
                with lock.exclusive("backup"):
                    pass
        finally:
            release.set()
            thread.join(5)

        with lock.exclusive("backup"):
            pass

    def test_shared_holders_coexist(self, lock):
        release, thread = _hold_in_thread(lock, "shared")
        try:
            with lock.shared():
                pass
            with pytest.raises(LockTimeoutError):
                with lock.exclusive("upload"):
                    pass
        finally:
            release.set()
            thread.join(5)

    def test_stale_info_is_ignored(self, lock):
        lock.info_path.parent.mkdir(parents=True, exist_ok=True)
        lock.info_path.write_text(json.dumps({"owner": "crashed", "pid": 2 ** 22 + 12345}))

        assert lock.get_lock_holder() is None

    def test_registry_returns_same_lock(self, db_path):
        assert get_database_lock(db_path) is get_database_lock(str(db_path))


@pytest.mark.integration
class TestLifecycleLocking:
    def test_backup_waits_for_open_connection(self, seeded_db, backup_path):
        from db import get_connection
        from services.db_lifecycle import DatabaseLifecycleManager

        opened = threading.Event()
        done = threading.Event()

        def reader():
            with get_connection(seeded_db) as conn:
                conn.execute("SELECT COUNT(*) FROM users").fetchone()
                opened.set()
                done.wait(5)

        thread = threading.Thread(target=reader, daemon=True)
        thread.start()
        assert opened.wait(5)

        manager = DatabaseLifecycleManager(seeded_db, backup_path, lock_timeout=0.2)
        try:
            with pytest.raises(LockTimeoutError):
                manager.backup()
            assert not backup_path.exists()
        finally:
            done.set()
            thread.join(5)

        assert manager.backup()["status"] == "success"
