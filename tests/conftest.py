"""
Pytest fixtures for GrowGuide tests
"""
import os
import sqlite3
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.env_config import BACKUP_DIRNAME, BACKUP_FILENAME, DB_FILENAME, Config  # noqa: E402


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: Tests that touch the filesystem and SQLite")


@pytest.fixture(autouse=True)
def test_env(tmp_path, monkeypatch):
    """Point every config path at a temp directory and keep bcrypt cheap."""
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("DB_LOCK_TIMEOUT", "5")
    for name in ("DB_PATH", "BACKUP_PATH", "REQUEST_LOG_FILE", "DEFAULT_ADMIN_PASSWORD"):
        monkeypatch.delenv(name, raising=False)

    Config.clear_cache()
    yield tmp_path
    Config.clear_cache()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / DB_FILENAME


@pytest.fixture
def backup_path(tmp_path):
    return tmp_path / BACKUP_DIRNAME / BACKUP_FILENAME


@pytest.fixture
def seeded_db(db_path):
    """Full schema with one row in every user-related table."""
    from db import init_database

    init_database(db_path)

    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA foreign_keys = ON")
    conn.executescript(
        """
        INSERT INTO users (username, password_hash, is_admin) VALUES ('grower', 'x', 0);
        INSERT INTO strains (id, name, type, thc, cbd) VALUES (1, 'Northern Lights', 'indica', '18%', '0.1%');
        INSERT INTO user_strains (user_id, strain_id) VALUES (1, 1);
        INSERT INTO plants (user_id, strain_id, name) VALUES (1, 1, 'Plant A');
        INSERT INTO plant_days (plant_id, date, day_number, watered, temperature, humidity)
            VALUES (1, '2026-05-01', 1, 1, 24.5, 60);
        INSERT INTO plant_setups (user_id, name) VALUES (1, 'Tent 1');
        INSERT INTO plant_setup_mappings (setup_id, plant_id) VALUES (1, 1);
        INSERT INTO setup_day_entries (setup_id, date, watered) VALUES (1, '2026-05-01', 1);
        INSERT INTO fertilizer_usage (plant_day_id, fertilizer_name, amount) VALUES (1, 'BioGrow', '2ml');
        INSERT INTO harvests (plant_id, consumption_material, consumption_method) VALUES (1, 'flower', 'vaporizer');
        INSERT INTO help_requests (user_id, name, subject, message) VALUES (1, 'grower', 'Yellow leaves', 'Help');
        INSERT INTO feedback (user_id, username, message) VALUES (1, 'grower', 'Nice app');
        """
    )
    conn.commit()
    conn.close()
    return db_path


@pytest.fixture
def manager(db_path, backup_path):
    from services.db_lifecycle import DatabaseLifecycleManager

    return DatabaseLifecycleManager(db_path, backup_path)


@pytest.fixture
def app(db_path, backup_path):
    """Create application for testing with the default accounts present."""
    from app import create_app
    from services.default_accounts import ensure_default_users

    flask_app = create_app(
        {"TESTING": True, "DB_PATH": db_path, "BACKUP_PATH": backup_path}
    )
    ensure_default_users(db_path)
    yield flask_app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def admin_client(client):
    resp = client.post("/login", json={"username": "admin", "password": "66292"})
    assert resp.status_code == 200
    yield client


@pytest.fixture
def user_client(client):
    resp = client.post("/login", json={"username": "Jan", "password": "drc"})
    assert resp.status_code == 200
    yield client


@pytest.fixture
def table_counts():
    """Return a helper giving the row count per table."""

    def _counts(db_path, tables):
        conn = sqlite3.connect(db_path)
        try:
            return {t: conn.execute(f"SELECT COUNT(*) FROM {t}").fetchone()[0] for t in tables}
        finally:
            conn.close()

    return _counts
