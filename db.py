# db.py — psycopg3 pool + query helpers shared by the web app and the job worker

import os
from contextlib import contextmanager
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, parse_qs, unquote

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

# =============================================================================
# DB configuration
# =============================================================================
DB_USER = os.getenv("DB_USER")
DB_PASS = os.getenv("DB_PASS") or os.getenv("DB_PASSWORD")  # support either name
DB_NAME = os.getenv("DB_NAME")

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_URL_LOCAL = os.getenv("DATABASE_URL_LOCAL")
DB_HOST_OVERRIDE = os.getenv("DB_HOST")
DB_PORT_OVERRIDE = os.getenv("DB_PORT")
DB_POOL_MAX = int(os.getenv("DB_POOL_MAX") or 6)

def _log_choice(kwargs: dict, origin: str):
    host = kwargs.get("host", "localhost")
    port = kwargs.get("port", 5432)
    print(f"[DB] {origin}: TCP -> {host}:{port}", flush=True)

def parse_database_url(url: str) -> dict:
    if not url:
        raise ValueError("Empty DATABASE_URL")
    # Normalize SA-style scheme to plain postgres for psycopg usage
    SA_PREFIXES = (
        "postgresql+psycopg://",
        "postgres+psycopg://",
        "postgresql+psycopg2://",
        "postgres+psycopg2://",
    )
    for pref in SA_PREFIXES:
        if url.startswith(pref):
            url = "postgresql://" + url.split("://", 1)[1]
            break

    p = urlparse(url)
    if p.scheme not in ("postgresql", "postgres"):
        raise ValueError(f"Unsupported scheme '{p.scheme}'")
    dbname = (p.path or "").lstrip("/")
    qs = parse_qs(p.query or "", keep_blank_values=True)
    host = p.hostname
    if "host" in qs and qs["host"]:
        host = qs["host"][0]
    if not dbname:
        if "dbname" in qs and qs["dbname"]:
            dbname = qs["dbname"][0]
        else:
            raise ValueError("DATABASE_URL missing dbname")
    kwargs = {
        "dbname": dbname,
        "user": unquote(p.username or ""),
        "password": unquote(p.password or ""),
        "connect_timeout": 10,
        "options": "-c search_path=public",
    }
    if host:
        kwargs["host"] = host
    if p.port and not (isinstance(host, str) and host.startswith("/")):
        kwargs["port"] = p.port
    if "sslmode" in qs and qs["sslmode"]:
        kwargs["sslmode"] = qs["sslmode"][0]
    return kwargs

def _tcp_kwargs() -> dict:
    if not all([DB_NAME, DB_USER, DB_PASS]):
        raise RuntimeError("DATABASE_URL or DB_NAME, DB_USER, DB_PASS must be set.")
    return {
        "host": DB_HOST_OVERRIDE or "127.0.0.1",
        "port": int(DB_PORT_OVERRIDE or "5432"),
        "dbname": DB_NAME,
        "user": DB_USER,
        "password": DB_PASS,
        "sslmode": "prefer",
        "connect_timeout": 10,
        "options": "-c search_path=public",
    }

def connection_kwargs() -> dict:
    for origin, url in (("DATABASE_URL_LOCAL", DATABASE_URL_LOCAL), ("DATABASE_URL", DATABASE_URL)):
        if not url:
            continue
        try:
            kwargs = parse_database_url(url)
            _log_choice(kwargs, f"Using {origin} (parsed)")
            return kwargs
        except ValueError as e:
            print(f"[DB] Ignoring {origin}: {e}", flush=True)
    kwargs = _tcp_kwargs(); _log_choice(kwargs, "DB_* variables"); return kwargs

# =============================================================================
# psycopg3 Connection Pool + helpers
# =============================================================================
_pg_pool: Optional[ConnectionPool] = None

def to_conninfo(kwargs: dict) -> str:
    # Build libpq conninfo string from kwargs dict
    parts = []
    for k, v in kwargs.items():
        if v is None:
            continue
        s = str(v)
        if any(ch.isspace() for ch in s) or "'" in s or '"' in s:
            s = "'" + s.replace("'", r"\'") + "'"
        parts.append(f"{k}={s}")
    return " ".join(parts)

def init_pool():
    global _pg_pool
    if _pg_pool is not None:
        return
    conninfo = to_conninfo(connection_kwargs())
    _pg_pool = ConnectionPool(conninfo=conninfo, min_size=1, max_size=DB_POOL_MAX, open=True)

def close_pool():
    global _pg_pool
    if _pg_pool is not None:
        _pg_pool.close()
        _pg_pool = None

@contextmanager
def get_conn():
    if _pg_pool is None:
        init_pool()
    with _pg_pool.connection() as conn:
        yield conn

def fetch_all(q, params=None) -> List[Dict[str, Any]]:
    with get_conn() as conn:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(q, params or ())
            return cur.fetchall()

def fetch_one(q, params=None) -> Optional[Dict[str, Any]]:
    rows = fetch_all(q, params)
    return rows[0] if rows else None

def execute(q, params=None):
    with get_conn() as conn:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(q, params or ())
        conn.commit()

def execute_returning(q, params=None) -> List[Dict[str, Any]]:
    with get_conn() as conn:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(q, params or ())
            rows = cur.fetchall()
        conn.commit()
        return rows

# =============================================================================
# Final-exam tables (collaborator tables are owned elsewhere)
# =============================================================================
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS public.course_finalexams (
    id          BIGSERIAL PRIMARY KEY,
    course_id   TEXT NOT NULL UNIQUE,
    questions   JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS public.student_finalexam_status (
    student_id  TEXT NOT NULL,
    course_id   TEXT NOT NULL,
    status      TEXT NOT NULL CHECK (status IN ('generating', 'done', 'failed')),
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (student_id, course_id)
);

CREATE TABLE IF NOT EXISTS public.student_finalexams (
    id          BIGSERIAL PRIMARY KEY,
    student_id  TEXT NOT NULL,
    course_id   TEXT NOT NULL,
    questions   JSONB NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    UNIQUE (student_id, course_id)
);

CREATE TABLE IF NOT EXISTS public.student_finalexam_results (
    id           BIGSERIAL PRIMARY KEY,
    student_id   TEXT NOT NULL,
    course_id    TEXT NOT NULL,
    correct      INTEGER NOT NULL,
    total        INTEGER NOT NULL,
    score        INTEGER NOT NULL CHECK (score BETWEEN 0 AND 100),
    submitted_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    UNIQUE (student_id, course_id)
);

CREATE INDEX IF NOT EXISTS student_finalexam_results_course_idx
    ON public.student_finalexam_results (course_id, score DESC, submitted_at ASC);
"""

_schema_ready = False

def ensure_schema(execute_fn=None):
    """Create the final-exam tables once per process."""
    global _schema_ready
    if _schema_ready:
        return
    run = execute_fn or execute
    for statement in SCHEMA_SQL.split(";"):
        if statement.strip():
            run(statement.strip() + ";")
    _schema_ready = True
