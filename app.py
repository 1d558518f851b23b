#!/usr/bin/env python3
"""
GrowGuide web application.

Flask app factory wiring configuration, request logging, session login and
the admin database blueprint.

Usage:
    python app.py                    # serve on HOST:PORT from the environment

    from app import create_app
    app = create_app({"DB_PATH": "/tmp/test.db", "TESTING": True})
"""

import logging
from datetime import datetime
from pathlib import Path

from flask import Flask, jsonify, request, session

from config.env_config import Config, require_production_secret, validate_config
from db import get_connection, init_database
from middleware import init_request_logging
from services.database_routes import database_bp
from services.default_accounts import verify_password

logger = logging.getLogger(__name__)


def create_app(test_config: dict = None) -> Flask:
    """Build the Flask application.

    Args:
        test_config: values that override the environment-derived config
    """
    settings = validate_config()

    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=settings["SECRET_KEY"],
        SESSION_COOKIE_SECURE=settings["SESSION_COOKIE_SECURE"],
        SESSION_COOKIE_HTTPONLY=True,
        DB_PATH=Path(settings["DB_PATH"]),
        BACKUP_PATH=Path(settings["BACKUP_PATH"]),
        MAX_CONTENT_LENGTH=settings["MAX_UPLOAD_MB"] * 1024 * 1024,
    )
    if test_config:
        app.config.update(test_config)
    else:
        require_production_secret()

    init_database(app.config["DB_PATH"])
    init_request_logging(app)
    app.register_blueprint(database_bp)
    _register_auth_routes(app)

    logger.info(f"GrowGuide app created (db={app.config['DB_PATH']})")
    return app


def _register_auth_routes(app: Flask):
    @app.route("/health", methods=["GET"])
    def health():
        return jsonify(
            {
                "status": "ok",
                "database": Path(app.config["DB_PATH"]).exists(),
                "timestamp": datetime.now().isoformat(),
            }
        )

    @app.route("/login", methods=["POST"])
    def login():
        data = request.get_json(silent=True) or request.form
        username = (data.get("username") or "").strip()
        password = data.get("password") or ""

        if not username or not password:
            return jsonify({"error": "username and password are required"}), 400

        with get_connection(app.config["DB_PATH"]) as conn:
            user = conn.execute(
                "SELECT id, username, password_hash, is_admin, onboarding_completed "
                "FROM users WHERE username = ?",
                (username,),
            ).fetchone()

        if user is None or not verify_password(password, user["password_hash"]):
            logger.warning(f"Failed login for {username}")
            return jsonify({"error": "Invalid username or password"}), 401

        session.clear()
        session["user"] = user["username"]
        session["user_id"] = user["id"]
        session["is_admin"] = bool(user["is_admin"])

        logger.info(f"User {username} logged in")
        return jsonify(
            {
                "success": True,
                "user": user["username"],
                "is_admin": bool(user["is_admin"]),
                "onboarding_completed": bool(user["onboarding_completed"]),
            }
        )

    @app.route("/logout", methods=["POST"])
    def logout():
        user = session.get("user")
        session.clear()
        if user:
            logger.info(f"User {user} logged out")
        return jsonify({"success": True})


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.DEBUG if Config.DEBUG else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    application = create_app()
    application.run(host=Config.HOST, port=Config.PORT, debug=Config.DEBUG)
