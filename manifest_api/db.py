from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Sequence
from urllib.parse import urlparse

from manifest_api.schema import get_schema_sql


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


def detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'."""
    s = (dsn or "").strip()
    if not s:
        return "sqlite"
    try:
        scheme = urlparse(s).scheme.lower()
    except Exception:
        scheme = ""
    if scheme in ("postgres", "postgresql"):
        return "postgres"
    return "sqlite"


def _sqlite_path(dsn: str) -> str:
    # Support sqlite:///path style as well as bare file paths.
    s = (dsn or "").strip()
    if s.lower().startswith("sqlite:///"):
        s = s[len("sqlite:///") :]
    return s or "./manifest.sqlite"


def qmark_to_pyformat(sql: str) -> str:
    """Rewrite `?` placeholders as `%s` for psycopg2.

    Question marks inside quoted literals are left alone. Literal `%` is escaped
    so psycopg2 does not treat it as a placeholder.
    """
    out: List[str] = []
    quote: str | None = None
    for ch in sql:
        if quote is not None:
            if ch == "%":
                out.append("%%")
                continue
            out.append(ch)
            # A doubled quote ('') just closes and reopens, which is equivalent here.
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
            out.append(ch)
        elif ch == "?":
            out.append("%s")
        elif ch == "%":
            out.append("%%")
        else:
            out.append(ch)
    return "".join(out)


class PGCursor:
    def __init__(self, cur: Any):
        self._cur = cur

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> "PGCursor":
        self._cur.execute(qmark_to_pyformat(sql), tuple(params or ()))
        return self

    def fetchone(self) -> Any:
        return self._cur.fetchone()

    def fetchall(self) -> Any:
        return self._cur.fetchall()


class PGConnection:
    """Just enough of the sqlite3.Connection surface on top of psycopg2."""

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> PGCursor:
        return PGCursor(self._conn.cursor()).execute(sql, params)

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


@contextmanager
def connect(db_dsn: str) -> Iterator[Any]:
    """Open a connection for one unit of work.

    Commits when the block exits cleanly, rolls back and re-raises otherwise.

    - SQLite: rows are sqlite3.Row; WAL journal.
    - Postgres: psycopg2 with RealDictCursor so rows behave like dicts.
    """
    dsn = (db_dsn or "").strip()

    if detect_dialect(dsn) == "postgres":
        try:
            import psycopg2
            import psycopg2.extras
        except Exception as e:
            raise RuntimeError(
                "Postgres selected but psycopg2 is not installed. "
                "Install psycopg2-binary and try again."
            ) from e

        conn: Any = PGConnection(psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor))
    else:
        path = _sqlite_path(dsn)
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path, timeout=30, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
        conn.execute("PRAGMA foreign_keys = ON;")

    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_dsn: str) -> None:
    """Create all tables and run lightweight migrations."""
    dialect = detect_dialect(db_dsn)
    _debug(f"Initializing DB ({dialect}) at {db_dsn}")
    with connect(db_dsn) as conn:
        ddl = get_schema_sql(dialect)
        if dialect == "postgres":
            # Naive split is fine: the schema has no semicolons inside statements.
            for stmt in [s.strip() for s in ddl.split(";") if s.strip()]:
                conn.execute(stmt)
        else:
            conn.executescript(ddl)

        _migrate(conn, dialect=dialect)


def _table_columns(conn: Any, table: str, *, dialect: str) -> List[str]:
    if dialect == "postgres":
        rows = conn.execute(
            """
            SELECT column_name
            FROM information_schema.columns
            WHERE table_schema='public' AND table_name=?
            ORDER BY ordinal_position
            """,
            (table,),
        ).fetchall()
        return [str(r["column_name"]) for r in rows]

    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return [str(r["name"]) for r in rows]


def _migrate(conn: Any, *, dialect: str) -> None:
    """Forward-only column additions for DBs created by earlier versions."""
    user_cols = _table_columns(conn, "users", dialect=dialect)
    for col in ("name", "phone", "otp", "otp_expires", "last_login_at"):
        if col not in user_cols:
            _debug(f"Adding users.{col}")
            conn.execute(f"ALTER TABLE users ADD COLUMN {col} TEXT")

    pending_cols = _table_columns(conn, "pending_users", dialect=dialect)
    for col in ("name", "phone"):
        if col not in pending_cols:
            _debug(f"Adding pending_users.{col}")
            conn.execute(f"ALTER TABLE pending_users ADD COLUMN {col} TEXT")
