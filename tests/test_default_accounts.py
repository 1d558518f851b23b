"""
Tests for default account bootstrap and the destructive user reset.
"""
import sqlite3
import threading

import pytest

from services.default_accounts import (
    RESET_TABLES,
    ensure_default_users,
    hash_password,
    reset_and_reseed,
    verify_password,
)
from services.lifecycle_errors import TransactionError


def _users(db_path):
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        return {
            row["username"]: dict(row)
            for row in conn.execute("SELECT id, username, password_hash, is_admin FROM users")
        }
    finally:
        conn.close()


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("66292", rounds=4)

        assert hashed != "66292"
        assert hashed.startswith("$2")
        assert verify_password("66292", hashed)
        assert not verify_password("wrong", hashed)

    def test_hash_is_salted(self):
        assert hash_password("drc", rounds=4) != hash_password("drc", rounds=4)

    @pytest.mark.parametrize("stored", [None, "", "plaintext"])
    def test_verify_rejects_non_bcrypt(self, stored):
        assert verify_password("plaintext", stored) is False


@pytest.mark.integration
class TestEnsureDefaultUsers:
    """Idempotent bootstrap."""

    def test_creates_both_accounts(self, db_path):
        result = ensure_default_users(db_path)

        assert result["created"] == ["admin", "Jan"]
        assert result["existing"] == []

        users = _users(db_path)
        assert set(users) == {"admin", "Jan"}
        assert users["admin"]["is_admin"] == 1
        assert users["Jan"]["is_admin"] == 0
        assert verify_password("66292", users["admin"]["password_hash"])
        assert verify_password("drc", users["Jan"]["password_hash"])

    def test_is_idempotent(self, db_path):
        ensure_default_users(db_path)
        before = _users(db_path)

        result = ensure_default_users(db_path)

        assert result["created"] == []
        assert result["existing"] == ["admin", "Jan"]
        assert _users(db_path) == before

    def test_keeps_changed_password(self, db_path):
        ensure_default_users(db_path)
        new_hash = hash_password("changed", rounds=4)
        conn = sqlite3.connect(db_path)
        conn.execute("UPDATE users SET password_hash = ? WHERE username = 'admin'", (new_hash,))
        conn.commit()
        conn.close()

        ensure_default_users(db_path)

        assert _users(db_path)["admin"]["password_hash"] == new_hash

    def test_creates_only_missing_account(self, seeded_db):
        conn = sqlite3.connect(seeded_db)
        conn.execute("INSERT INTO users (username, password_hash, is_admin) VALUES ('Jan', 'x', 0)")
        conn.commit()
        conn.close()

        result = ensure_default_users(seeded_db)

        assert result["created"] == ["admin"]
        assert result["existing"] == ["Jan"]
        assert len(_users(seeded_db)) == 3

    def test_username_match_is_exact(self, db_path):
        conn = sqlite3.connect(db_path)
        conn.execute(
            "CREATE TABLE users (id INTEGER PRIMARY KEY AUTOINCREMENT, "
            "username TEXT UNIQUE NOT NULL, password_hash TEXT, is_admin INTEGER DEFAULT 0, "
            "onboarding_completed INTEGER DEFAULT 0)"
        )
        conn.execute("INSERT INTO users (username, password_hash) VALUES ('ADMIN', 'x')")
        conn.commit()
        conn.close()

        result = ensure_default_users(db_path)

        assert "admin" in result["created"]
        assert set(_users(db_path)) == {"ADMIN", "admin", "Jan"}

    def test_patches_old_users_table(self, db_path):
        conn = sqlite3.connect(db_path)
        conn.execute(
            "CREATE TABLE users (id INTEGER PRIMARY KEY AUTOINCREMENT, "
            "username TEXT UNIQUE NOT NULL, password_hash TEXT)"
        )
        conn.commit()
        conn.close()

        ensure_default_users(db_path)

        conn = sqlite3.connect(db_path)
        columns = [row[1] for row in conn.execute("PRAGMA table_info(users)")]
        conn.close()
        assert "is_admin" in columns
        assert "onboarding_completed" in columns
        assert _users(db_path)["admin"]["is_admin"] == 1

    def test_password_from_environment(self, db_path, monkeypatch):
        from config.env_config import Config

        monkeypatch.setenv("DEFAULT_ADMIN_PASSWORD", "s3cret")
        Config.clear_cache()

        ensure_default_users(db_path)

        assert verify_password("s3cret", _users(db_path)["admin"]["password_hash"])


@pytest.mark.integration
class TestResetAndReseed:
    """Destructive reset."""

    def test_clears_user_data_and_reseeds(self, seeded_db, table_counts):
        result = reset_and_reseed(seeded_db)

        assert result["status"] == "success"
        assert result["cleared_tables"] == RESET_TABLES

        counts = table_counts(seeded_db, RESET_TABLES)
        assert counts.pop("users") == 2
        assert all(count == 0 for count in counts.values())

        users = _users(seeded_db)
        assert users["admin"]["id"] == 1
        assert users["Jan"]["id"] == 2
        assert users["admin"]["is_admin"] == 1

    def test_keeps_reference_tables(self, seeded_db, table_counts):
        reset_and_reseed(seeded_db)
        assert table_counts(seeded_db, ["strains"]) == {"strains": 1}

    def test_restores_default_password(self, db_path):
        ensure_default_users(db_path)
        conn = sqlite3.connect(db_path)
        conn.execute("UPDATE users SET password_hash = 'x' WHERE username = 'admin'")
        conn.commit()
        conn.close()

        reset_and_reseed(db_path)

        assert verify_password("66292", _users(db_path)["admin"]["password_hash"])

    def test_creates_missing_users_table(self, db_path):
        conn = sqlite3.connect(db_path)
        conn.execute("CREATE TABLE feedback (id INTEGER PRIMARY KEY, message TEXT)")
        conn.execute("INSERT INTO feedback (message) VALUES ('hi')")
        conn.commit()
        conn.close()

        result = reset_and_reseed(db_path)

        assert result["cleared_tables"] == ["feedback"]
        assert set(_users(db_path)) == {"admin", "Jan"}

    def test_failure_rolls_back_everything(self, seeded_db, table_counts):
        conn = sqlite3.connect(seeded_db)
        conn.execute(
            "CREATE TRIGGER block_plant_delete BEFORE DELETE ON plants "
            "BEGIN SELECT RAISE(ABORT, 'plants are protected'); END;"
        )
        conn.commit()
        conn.close()
        before = table_counts(seeded_db, RESET_TABLES)

        with pytest.raises(TransactionError):
            reset_and_reseed(seeded_db)

        assert table_counts(seeded_db, RESET_TABLES) == before
        assert set(_users(seeded_db)) == {"grower"}

    def test_foreign_keys_enforced_after_reset(self, seeded_db):
        reset_and_reseed(seeded_db)

        from db import get_connection

        with pytest.raises(sqlite3.IntegrityError):
            with get_connection(seeded_db) as conn:
                conn.execute("INSERT INTO plants (user_id, strain_id, name) VALUES (99, 1, 'x')")

    def test_unreadable_file_raises_transaction_error(self, db_path):
        db_path.write_bytes(b"this is not sqlite" * 100)

        with pytest.raises(TransactionError):
            reset_and_reseed(db_path)

        assert db_path.read_bytes() == b"this is not sqlite" * 100

    def test_lock_timeout_raises_transaction_error(self, seeded_db, monkeypatch, table_counts):
        from config.env_config import Config
        from file_lock_manager import get_database_lock

        monkeypatch.setenv("DB_LOCK_TIMEOUT", "0.2")
        Config.clear_cache()
        before = table_counts(seeded_db, RESET_TABLES)

        acquired = threading.Event()
        release = threading.Event()

        def hold():
            with get_database_lock(seeded_db).exclusive("backup"):
                acquired.set()
                release.wait(5)

        thread = threading.Thread(target=hold, daemon=True)
        thread.start()
        assert acquired.wait(5)
        try:
            with pytest.raises(TransactionError, match="backup"):
                reset_and_reseed(seeded_db)
        finally:
            release.set()
            thread.join(5)

        assert table_counts(seeded_db, RESET_TABLES) == before
