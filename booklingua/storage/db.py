# storage/db.py
import sqlite3
import os
from pathlib import Path


_DEFAULT_DB_PATH = Path.home() / ".booklingua" / "booklingua.db"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS orders (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    email                TEXT    NOT NULL,
    author_name          TEXT    NOT NULL,
    book_title           TEXT    NOT NULL,
    word_count           INTEGER NOT NULL DEFAULT 0,
    tier                 TEXT    NOT NULL,
    file_format          TEXT    NOT NULL,
    languages            TEXT    NOT NULL,
    genre                TEXT,
    upsells              TEXT    NOT NULL DEFAULT '[]',
    special_instructions TEXT,
    amount_paid          REAL    NOT NULL DEFAULT 0,
    status               TEXT    NOT NULL DEFAULT 'pending',
    created_at           TEXT    NOT NULL,
    completed_at         TEXT
);

CREATE TABLE IF NOT EXISTS files (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id         INTEGER NOT NULL,
    type             TEXT    NOT NULL,
    language         TEXT,
    content          TEXT    NOT NULL,
    original_content TEXT,
    marker_grammar   TEXT,
    created_at       TEXT    NOT NULL,
    FOREIGN KEY (order_id) REFERENCES orders(id) ON DELETE CASCADE
);

-- Un solo original por pedido
CREATE UNIQUE INDEX IF NOT EXISTS ux_files_original
    ON files (order_id) WHERE type = 'original';

-- Clave de idempotencia: una traducción por (pedido, idioma)
CREATE UNIQUE INDEX IF NOT EXISTS ux_files_translated
    ON files (order_id, language) WHERE type = 'translated';

CREATE TABLE IF NOT EXISTS job_runs (
    job_id      TEXT    PRIMARY KEY,
    function_id TEXT    NOT NULL,
    event_name  TEXT    NOT NULL,
    payload     TEXT    NOT NULL,
    status      TEXT    NOT NULL DEFAULT 'queued',
    attempts    INTEGER NOT NULL DEFAULT 0,
    last_error  TEXT,
    created_at  TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS job_steps (
    job_id       TEXT    NOT NULL,
    step_id      TEXT    NOT NULL,
    output_json  TEXT    NOT NULL,
    completed_at TEXT    NOT NULL,
    PRIMARY KEY (job_id, step_id),
    FOREIGN KEY (job_id) REFERENCES job_runs(job_id)
);

CREATE TABLE IF NOT EXISTS quota_usage (
    model       TEXT    NOT NULL,
    date        TEXT    NOT NULL,
    tokens_used INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (model, date)
);
"""


def get_connection(db_path: str | None = None) -> sqlite3.Connection:
    """
    Abre y configura la conexión a SQLite.
    Siempre devuelve rows como dicts (row_factory).
    Activa foreign keys — SQLite las tiene desactivadas por defecto.
    """
    path = db_path or os.environ.get("BOOKLINGUA_DB_PATH") or str(_DEFAULT_DB_PATH)

    if path != ":memory:":
        path = os.path.expanduser(path)
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")   # varios workers leyendo a la vez
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Crea las tablas si no existen. Idempotente."""
    with conn:
        conn.executescript(_SCHEMA)
