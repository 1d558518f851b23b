"""
Request Logging Middleware for Flask

Every request that is not excluded gets:
- an 8-character id, returned as the X-Request-ID response header
- one log line with method, path, status and duration, at a level picked
  from the status code
- an entry in a bounded in-memory history, readable by admins at
  GET /api/debug/requests
- optionally a JSON line in REQUEST_LOG_FILE

Configuration (see config.env_config):
    REQUEST_LOG_ENABLED, REQUEST_LOG_LEVEL, REQUEST_LOG_FILE, REQUEST_LOG_EXCLUDE

Usage:
    from middleware import init_request_logging, get_request_logs

    init_request_logging(app)
    failed = get_request_logs(status=500)
"""

import json
import logging
import threading
import time
import uuid
from collections import Counter, deque
from datetime import datetime
from typing import Dict, List, Optional

from flask import Flask, g, jsonify, request, session

from config.env_config import Config

logger = logging.getLogger(__name__)

HISTORY_SIZE = 500

# Never written to the debug log in clear text
MASKED_HEADERS = {"authorization", "cookie", "x-api-key", "x-auth-token"}


class RequestHistory:
    """Recent request entries plus running totals, shared across threads."""

    def __init__(self, size: int = HISTORY_SIZE):
        self._lock = threading.Lock()
        self._entries = deque(maxlen=size)
        self._statuses = Counter()
        self._total_ms = 0.0

    def record(self, entry: Dict) -> None:
        with self._lock:
            self._entries.append(entry)
            self._statuses[entry["status"]] += 1
            self._total_ms += entry["duration_ms"]

    def recent(self) -> List[Dict]:
        """Entries, newest first."""
        with self._lock:
            return list(reversed(self._entries))

    def stats(self) -> Dict:
        with self._lock:
            total = sum(self._statuses.values())
            errors = sum(n for status, n in self._statuses.items() if status >= 400)
            return {
                "total_requests": total,
                "total_errors": errors,
                "error_rate": round(errors / total * 100, 2) if total else 0.0,
                "avg_duration_ms": round(self._total_ms / total, 2) if total else 0.0,
                "status_counts": {str(status): n for status, n in self._statuses.items()},
            }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._statuses.clear()
            self._total_ms = 0.0


_history = RequestHistory()


def _masked_headers() -> Dict[str, str]:
    return {
        name: "***masked***" if name.lower() in MASKED_HEADERS else value
        for name, value in request.headers.items()
    }


def _append_to_file(entry: Dict, log_file) -> None:
    try:
        with open(log_file, "a") as f:
            f.write(json.dumps(entry) + "\n")
    except OSError as e:
        logger.warning(f"Failed to write request log {log_file}: {e}")


def init_request_logging(app: Flask):
    """Attach request logging hooks and the debug endpoint to ``app``."""
    if not Config.REQUEST_LOG_ENABLED:
        logger.info("Request logging disabled")
        return

    level = Config.REQUEST_LOG_LEVEL
    log_file = Config.REQUEST_LOG_FILE
    excluded = tuple(Config.REQUEST_LOG_EXCLUDE or ())

    logger.info(f"Request logging enabled (level={level}, file={log_file})")

    @app.before_request
    def start_request_timer():
        if request.path.startswith(excluded):
            return
        g.request_id = uuid.uuid4().hex[:8]
        g.request_started = time.monotonic()
        if level == "debug":
            logger.debug(
                f"[{g.request_id}] --> {request.method} {request.path} "
                f"from {request.remote_addr} headers={_masked_headers()}"
            )

    @app.after_request
    def log_response(response):
        request_id = g.get("request_id")
        if request_id is None:
            return response

        entry = {
            "request_id": request_id,
            "timestamp": datetime.now().isoformat(),
            "method": request.method,
            "path": request.path,
            "query": request.query_string.decode() or None,
            "status": response.status_code,
            "duration_ms": round((time.monotonic() - g.request_started) * 1000, 2),
            "ip": request.remote_addr,
            "user": session.get("user"),
            "content_length": request.content_length,
        }

        if entry["status"] >= 500:
            log = logger.error
        elif entry["status"] >= 400:
            log = logger.warning
        elif level == "minimal":
            log = logger.debug
        else:
            log = logger.info
        log(
            f"[{request_id}] {entry['method']} {entry['path']} "
            f"| {entry['status']} | {entry['duration_ms']}ms"
        )

        _history.record(entry)
        if log_file and level != "minimal":
            _append_to_file(entry, log_file)

        response.headers["X-Request-ID"] = request_id
        return response

    @app.route("/api/debug/requests", methods=["GET"])
    def request_log_api():
        if not session.get("user"):
            return jsonify({"error": "Not authenticated"}), 401
        if not session.get("is_admin", False):
            return jsonify({"error": "Unauthorized - Admin access required"}), 403

        logs = get_request_logs(
            limit=request.args.get("limit", 100, type=int),
            status=request.args.get("status", type=int),
            path_contains=request.args.get("path"),
        )
        return jsonify({"logs": logs, "count": len(logs), "stats": get_request_stats()})


def get_request_logs(
    limit: int = 100, status: Optional[int] = None, path_contains: Optional[str] = None
) -> List[Dict]:
    """Recent request entries, newest first, optionally filtered."""
    logs = [
        entry
        for entry in _history.recent()
        if (status is None or entry["status"] == status)
        and (not path_contains or path_contains in entry["path"])
    ]
    return logs[:limit]


def get_request_stats() -> Dict:
    return _history.stats()


def clear_request_logs():
    _history.clear()
