"""
Budget Tracker — Database Layer
File-based JSON document store with PostgreSQL upgrade path.

Collections hold plain dict records keyed by a short string "id".
Read-modify-write goes through transaction(), which serializes writers
inside the process with a re-entrant lock.
"""
import json
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime

from budget_tracker.config import DB_PATH, PERSIST_DATA, DATABASE_URL

logger = logging.getLogger(__name__)

# ============================================================
# EMPTY DB SCHEMA
# ============================================================
EMPTY_DB = {
    "users": [], "projects": [], "expenses": [],
    "project_members": [], "notification_log": [],
}

_lock = threading.RLock()


def _fresh_db():
    """Return a fresh empty database."""
    return json.loads(json.dumps(EMPTY_DB))


def _ensure_collections(db: dict) -> dict:
    for k, v in EMPTY_DB.items():
        if k not in db:
            db[k] = type(v)()
    return db

# ============================================================
# FILE BACKEND
# ============================================================
_db_cache = None


def _file_load():
    global _db_cache
    if PERSIST_DATA and DB_PATH.exists():
        try:
            with open(DB_PATH) as f:
                _db_cache = _ensure_collections(json.load(f))
        except (json.JSONDecodeError, IOError):
            logger.warning("Unreadable %s, starting from an empty store", DB_PATH)
            _db_cache = _fresh_db()
    else:
        _db_cache = _fresh_db()
    return _db_cache


def _file_save(db):
    global _db_cache
    _db_cache = db
    if PERSIST_DATA:
        with open(DB_PATH, "w") as f:
            json.dump(db, f, indent=2, default=str)


def _file_get():
    if _db_cache is None:
        return _file_load()
    return _db_cache

# ============================================================
# POSTGRES BACKEND (optional)
# ============================================================
_pg_pool = None


def _pg_connect():
    """Initialize PostgreSQL connection pool."""
    global _pg_pool
    if DATABASE_URL and not _pg_pool:
        import psycopg2.pool
        _pg_pool = psycopg2.pool.SimpleConnectionPool(1, 5, DATABASE_URL)
        _pg_init()
        logger.info("Connected to PostgreSQL")


def _pg_init():
    """Create the single-row JSONB state table if it doesn't exist."""
    conn = _pg_pool.getconn()
    try:
        cur = conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS app_state (
                id TEXT PRIMARY KEY DEFAULT 'main',
                data JSONB NOT NULL DEFAULT '{}',
                updated_at TIMESTAMP DEFAULT NOW()
            )
        """)
        cur.execute("INSERT INTO app_state (id, data) VALUES ('main', %s) ON CONFLICT DO NOTHING",
                    (json.dumps(EMPTY_DB),))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _pg_pool.putconn(conn)


def _pg_load():
    conn = _pg_pool.getconn()
    try:
        cur = conn.cursor()
        cur.execute("SELECT data FROM app_state WHERE id='main'")
        row = cur.fetchone()
        return _ensure_collections(row[0]) if row else _fresh_db()
    finally:
        _pg_pool.putconn(conn)


def _pg_save(db):
    conn = _pg_pool.getconn()
    try:
        cur = conn.cursor()
        cur.execute("UPDATE app_state SET data=%s, updated_at=NOW() WHERE id='main'",
                    (json.dumps(db, default=str),))
        conn.commit()
    finally:
        _pg_pool.putconn(conn)

# ============================================================
# BACKEND SELECTION
# ============================================================
if DATABASE_URL:
    logger.info("Using PostgreSQL backend")
    _pg_connect()
    load_db = _pg_load
    save_db = _pg_save
    get_db = _pg_load
else:
    logger.info("Using file backend (%s)", DB_PATH.name)
    load_db = _file_load
    save_db = _file_save
    get_db = _file_get


def reset_db():
    """Wipe every collection. Used by tests and the seed script."""
    with _lock:
        save_db(_fresh_db())


@contextmanager
def transaction():
    """Hold the store lock around a load → mutate → save cycle.

    The yielded dict is saved on clean exit; an exception discards changes
    for the PostgreSQL backend (the file backend mutates its cache in place).
    """
    with _lock:
        db = get_db()
        yield db
        save_db(db)

# ============================================================
# COLLECTION HELPERS
# ============================================================
def new_id() -> str:
    return uuid.uuid4().hex[:12]


def now_iso() -> str:
    return datetime.now().isoformat()


def _matches(doc: dict, filters: dict) -> bool:
    return all(doc.get(k) == v for k, v in filters.items())


def _sort_key(value):
    # missing values sort as the smallest
    return (0, 0) if value is None else (1, value)


def find(collection: str, sort_by: str = None, descending: bool = True, **filters) -> list:
    """Return copies of every document in `collection` matching all filters."""
    with _lock:
        docs = [dict(d) for d in get_db()[collection] if _matches(d, filters)]
    if sort_by:
        docs.sort(key=lambda d: _sort_key(d.get(sort_by)), reverse=descending)
    return docs


def find_one(collection: str, **filters):
    with _lock:
        for d in get_db()[collection]:
            if _matches(d, filters):
                return dict(d)
    return None


def find_by_id(collection: str, doc_id: str):
    return find_one(collection, id=doc_id)


def create(collection: str, doc: dict) -> dict:
    ts = now_iso()
    record = {"id": new_id(), **doc, "created_at": ts, "updated_at": ts}
    with transaction() as db:
        db[collection].append(record)
    return dict(record)


def update(collection: str, doc_id: str, changes: dict):
    """Apply `changes` to the document and bump updated_at. Returns the new copy."""
    with transaction() as db:
        for d in db[collection]:
            if d["id"] == doc_id:
                d.update(changes)
                d["updated_at"] = now_iso()
                return dict(d)
    return None


def delete(collection: str, doc_id: str) -> bool:
    with transaction() as db:
        before = len(db[collection])
        db[collection] = [d for d in db[collection] if d["id"] != doc_id]
        return len(db[collection]) < before
