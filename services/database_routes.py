"""
Admin Database Routes

Flask blueprint for database backup, restore, download and upload.
Only accessible to admin sessions.

Routes:
    GET  /api/admin/database?action=backup    - copy primary into the backup slot
    GET  /api/admin/database?action=restore   - copy backup slot over primary
    GET  /api/admin/database?action=download  - download the backup file
    GET  /api/admin/database?action=status    - primary/backup file info
    POST /api/admin/database/upload           - replace primary with an uploaded .db
"""

import logging
from functools import wraps

from flask import Blueprint, current_app, jsonify, request, send_file, session

from config.env_config import BACKUP_FILENAME

logger = logging.getLogger(__name__)

database_bp = Blueprint("admin_database", __name__, url_prefix="/api/admin/database")


def require_admin(f):
    """Decorator to require an authenticated admin session."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if not session.get("user"):
            logger.info(f"Unauthenticated request to {request.path}")
            return jsonify({"error": "Not authenticated"}), 401

        if not session.get("is_admin", False):
            logger.warning(f"Non-admin user {session.get('user')} attempted {request.path}")
            return jsonify({"error": "Unauthorized - Admin access required"}), 403

        return f(*args, **kwargs)

    return decorated


def get_manager():
    from services.db_lifecycle import get_lifecycle_manager

    return get_lifecycle_manager(
        current_app.config.get("DB_PATH"), current_app.config.get("BACKUP_PATH")
    )


def _json_result(result):
    if result.get("error_type") == "not_found":
        return jsonify(result), 404
    return jsonify(result), 200


def _error(message, code):
    return jsonify({"status": "error", "error": message}), code


@database_bp.route("", methods=["GET"])
@require_admin
def database_action():
    """Dispatch on ?action=backup|restore|download|status."""
    action = request.args.get("action")

    if action == "backup":
        return handle_backup()
    elif action == "restore":
        return handle_restore()
    elif action == "download":
        return handle_download()
    elif action == "status":
        return jsonify(get_manager().status())
    else:
        return _error("Invalid action", 400)


def handle_backup():
    try:
        result = get_manager().backup()
    except Exception as e:
        logger.error(f"Error backing up database: {e}")
        return _error(str(e), 500)

    logger.info(f"Backup requested by {session.get('user')}: {result['status']}")
    return _json_result(result)


def handle_restore():
    try:
        result = get_manager().restore()
    except Exception as e:
        logger.error(f"Error restoring database: {e}")
        return _error(str(e), 500)

    logger.info(f"Restore requested by {session.get('user')}: {result['status']}")
    return _json_result(result)


def handle_download():
    from services.lifecycle_errors import NotFoundError

    try:
        backup_path = get_manager().get_backup_file()
    except NotFoundError as e:
        return _error(str(e), 404)

    return send_file(
        backup_path,
        mimetype="application/octet-stream",
        as_attachment=True,
        download_name=BACKUP_FILENAME,
    )


@database_bp.route("/upload", methods=["POST"])
@require_admin
def upload_database():
    """Replace the primary database with an uploaded file.

    Form data:
        file: The .db file to install

    Returns:
        Upload result with original name and size
    """
    from services.lifecycle_errors import ValidationError

    if "file" not in request.files:
        return _error("No file provided", 400)

    file = request.files["file"]

    try:
        result = get_manager().upload(file.read(), file.filename)
    except ValidationError as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.error(f"Upload failed: {e}")
        return _error(str(e), 500)

    logger.info(f"Database upload by {session.get('user')}: {result['original_name']}")
    return jsonify(result), 200
