# main.py — LMS final-exam API, BASE_PATH-aware (psycopg3 + pooling)
# Identity comes from a bearer token (or a trusted gateway when AUTH_REQUIRED=0).

import os
from datetime import date, datetime
from typing import Any, Dict

from flask import Flask
from flask.json.provider import DefaultJSONProvider

import db
from auth import attach_identity
from errors import register_error_handlers
from exam_services import build_exam_deps
from final_exam import create_final_exam_blueprint
from jobs import JOB_BACKEND
from legacy_final_exam import create_legacy_final_exam_blueprint
from student_status import create_student_status_blueprint

# =============================================================================
# BASE_PATH
# =============================================================================
BASE_PATH = (os.getenv("BASE_PATH", "") or "").rstrip("/")


def _bp(path: str = "") -> str:
    """Prefix a path with BASE_PATH (if set)."""
    p = path or "/"
    if not p.startswith("/"):
        p = "/" + p
    if BASE_PATH and (p == BASE_PATH or p.startswith(BASE_PATH + "/")):
        return p
    return (BASE_PATH + p) if BASE_PATH else p


class IsoJSONProvider(DefaultJSONProvider):
    """Timestamps leave as ISO-8601 instead of HTTP dates."""

    @staticmethod
    def default(o):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        return DefaultJSONProvider.default(o)


def register_exam_blueprints(app: Flask, base_path: str, deps: Dict[str, Any]):
    app.register_blueprint(create_final_exam_blueprint(base_path, deps))
    app.register_blueprint(create_legacy_final_exam_blueprint(base_path, deps))
    app.register_blueprint(create_student_status_blueprint(base_path, deps))


# =============================================================================
# Flask app
# =============================================================================
app = Flask(__name__)
app.url_map.strict_slashes = False
app.json = IsoJSONProvider(app)
register_error_handlers(app)
app.before_request(attach_identity)


@app.before_request
def _ensure_schema_once():
    try:
        db.ensure_schema()
    except Exception as e:
        print(f"[DB] ensure_schema failed: {e}", flush=True)


@app.get("/healthz")
def healthz():
    try:
        row = db.fetch_one("SELECT 1 AS ok;")
        ok = bool(row and row.get("ok") == 1)
        return ("ok" if ok else "db-fail", 200 if ok else 500)
    except Exception as e:
        return (f"error: {e}", 500)


if BASE_PATH:
    app.add_url_rule(_bp("/healthz"), endpoint="healthz_alias", view_func=healthz)

exam_deps = build_exam_deps()
register_exam_blueprints(app, BASE_PATH, exam_deps)
print(f"[final-exam] routes under {_bp('/student/final-exam')} (jobs: {JOB_BACKEND})", flush=True)

# =============================================================================
# Local dev entry
# =============================================================================
if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=True)
