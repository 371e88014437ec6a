"""Database schema for the Manifest backend.

SQLite is the default engine; Postgres is supported as well.

Timestamps are ISO-8601 TEXT (UTC, with 'Z') for portability. ISO strings sort
lexicographically in time order, so comparisons like `expires < now_iso` and
`created_at >= midnight_iso` behave correctly. Metric days are plain
'YYYY-MM-DD' strings for the same reason.

NOTE: The Postgres schema is generated from the SQLite schema with a small set of
transformations (types + autoincrement).
"""

from __future__ import annotations

import re


ROLES = ("admin", "staff", "user")


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Users / Auth
-- Only verified accounts live here; unverified sign-ups sit in pending_users.
CREATE TABLE IF NOT EXISTS users (
    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL,
    name TEXT,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    phone TEXT,
    role TEXT NOT NULL DEFAULT 'staff' CHECK (role IN ('admin','staff','user')),
    otp TEXT,
    otp_expires TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_login_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_users_role ON users (role);
CREATE INDEX IF NOT EXISTS idx_users_created ON users (created_at);

-- Registrations awaiting OTP confirmation (one row per email, overwritten on retry)
CREATE TABLE IF NOT EXISTS pending_users (
    email TEXT PRIMARY KEY,
    username TEXT NOT NULL,
    name TEXT,
    password_hash TEXT NOT NULL,
    phone TEXT,
    role TEXT NOT NULL DEFAULT 'staff',
    otp TEXT NOT NULL,
    expires TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Per-day dashboard counters (running sums)
CREATE TABLE IF NOT EXISTS metrics (
    date TEXT PRIMARY KEY,
    total_users INTEGER NOT NULL DEFAULT 0,
    total_sales REAL NOT NULL DEFAULT 0,
    total_conversions INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # Types
    out = re.sub(r"\bREAL\b", "DOUBLE PRECISION", out)

    # AUTOINCREMENT primary keys
    out = re.sub(
        r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
        flags=re.IGNORECASE,
    )
    out = re.sub(r"\bAUTOINCREMENT\b", "", out, flags=re.IGNORECASE)

    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
