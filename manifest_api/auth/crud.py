from __future__ import annotations

import re
from datetime import timedelta
from typing import Any, Dict, List, Optional

from manifest_api.config import Config
from manifest_api.db import connect
from manifest_api.schema import ROLES
from manifest_api.util.time import to_iso, utcnow, utcnow_iso

from .security import hash_password, verify_password


DEFAULT_ROLE = "staff"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_PRIVATE_FIELDS = ("password_hash", "otp", "otp_expires")


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str | None) -> bool:
    return bool(_EMAIL_RE.match(normalize_email(email)))


def normalize_role(role: str | None) -> str:
    r = (role or DEFAULT_ROLE).strip().lower()
    if r not in ROLES:
        raise ValueError("invalid_role")
    return r


def public_user(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    for k in _PRIVATE_FIELDS:
        d.pop(k, None)
    return d


def otp_expiry_iso(cfg: Config) -> str:
    return to_iso(utcnow() + timedelta(minutes=max(1, int(cfg.OTP_TTL_MINUTES))))


def is_expired(expires_iso: str | None) -> bool:
    """True when the stored expiry is missing or already in the past."""
    if not expires_iso:
        return True
    return str(expires_iso) < utcnow_iso()


# -----------------------------
# Users
# -----------------------------


def get_user_by_email(conn: Any, email: str) -> Optional[Any]:
    e = normalize_email(email)
    if not e:
        return None
    return conn.execute("SELECT * FROM users WHERE email=?", (e,)).fetchone()


def get_user_by_id(conn: Any, user_id: int) -> Optional[Any]:
    return conn.execute("SELECT * FROM users WHERE user_id=?", (int(user_id),)).fetchone()


def list_users(conn: Any) -> List[Dict[str, Any]]:
    rows = conn.execute("SELECT * FROM users ORDER BY user_id").fetchall()
    return [public_user(r) for r in rows]


def verify_user_credentials(conn: Any, email: str, password: str) -> Optional[Any]:
    row = get_user_by_email(conn, email)
    if row is None:
        return None
    if not verify_password(password, str(row["password_hash"])):
        return None
    return row


def insert_user(
    conn: Any,
    *,
    username: str,
    email: str,
    password_hash: str,
    name: str | None = None,
    phone: str | None = None,
    role: str = DEFAULT_ROLE,
    otp: str | None = None,
    otp_expires: str | None = None,
) -> Any:
    """Insert a user row from an already-hashed password and return it."""
    e = normalize_email(email)
    if not e:
        raise ValueError("email_blank")
    if not is_valid_email(e):
        raise ValueError("invalid_email")
    if get_user_by_email(conn, e) is not None:
        raise ValueError("email_exists")

    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO users (username, name, email, password_hash, phone, role, otp, otp_expires, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?,?,?,?)
        """,
        (username, name, e, password_hash, phone, normalize_role(role), otp, otp_expires, now, now),
    )
    row = get_user_by_email(conn, e)
    assert row is not None
    return row


def create_user(
    conn: Any,
    *,
    username: str,
    email: str,
    password: str,
    name: str | None = None,
    phone: str | None = None,
    role: str = DEFAULT_ROLE,
) -> Dict[str, Any]:
    """Create an already-verified user (admin tooling, bootstrap)."""
    if not (username or "").strip():
        raise ValueError("username_blank")
    row = insert_user(
        conn,
        username=username.strip(),
        email=email,
        password_hash=hash_password(password),
        name=name,
        phone=phone,
        role=role,
    )
    return public_user(row)


def touch_last_login(conn: Any, user_id: int) -> None:
    now = utcnow_iso()
    conn.execute(
        "UPDATE users SET last_login_at=?, updated_at=? WHERE user_id=?",
        (now, now, int(user_id)),
    )


def set_user_otp(conn: Any, user_id: int, *, otp: str, expires: str) -> None:
    conn.execute(
        "UPDATE users SET otp=?, otp_expires=?, updated_at=? WHERE user_id=?",
        (otp, expires, utcnow_iso(), int(user_id)),
    )


def reset_user_password(conn: Any, user_id: int, new_password: str) -> None:
    """Overwrite the password hash and clear any outstanding OTP."""
    conn.execute(
        "UPDATE users SET password_hash=?, otp=NULL, otp_expires=NULL, updated_at=? WHERE user_id=?",
        (hash_password(new_password), utcnow_iso(), int(user_id)),
    )


def count_users(conn: Any, *, created_since: str | None = None) -> int:
    if created_since is None:
        row = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()
    else:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM users WHERE created_at >= ?",
            (created_since,),
        ).fetchone()
    return int(row["n"] or 0)


# -----------------------------
# Pending registrations
# -----------------------------


def get_pending_user(conn: Any, email: str) -> Optional[Any]:
    e = normalize_email(email)
    if not e:
        return None
    return conn.execute("SELECT * FROM pending_users WHERE email=?", (e,)).fetchone()


def upsert_pending_user(
    conn: Any,
    *,
    email: str,
    username: str,
    password_hash: str,
    otp: str,
    expires: str,
    name: str | None = None,
    phone: str | None = None,
    role: str = DEFAULT_ROLE,
) -> None:
    """Store a registration attempt; a later attempt for the same email replaces it."""
    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO pending_users (email, username, name, password_hash, phone, role, otp, expires, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?,?,?,?)
        ON CONFLICT(email) DO UPDATE SET
            username=excluded.username,
            name=excluded.name,
            password_hash=excluded.password_hash,
            phone=excluded.phone,
            role=excluded.role,
            otp=excluded.otp,
            expires=excluded.expires,
            updated_at=excluded.updated_at
        """,
        (normalize_email(email), username, name, password_hash, phone, normalize_role(role), otp, expires, now, now),
    )


def refresh_pending_otp(conn: Any, email: str, *, otp: str, expires: str) -> None:
    conn.execute(
        "UPDATE pending_users SET otp=?, expires=?, updated_at=? WHERE email=?",
        (otp, expires, utcnow_iso(), normalize_email(email)),
    )


def delete_pending_user(conn: Any, email: str) -> None:
    conn.execute("DELETE FROM pending_users WHERE email=?", (normalize_email(email),))


def promote_pending_user(conn: Any, pending: Any) -> Any:
    """Create the real user from a verified pending row (the pending row is left in place)."""
    return insert_user(
        conn,
        username=str(pending["username"]),
        name=pending["name"],
        email=str(pending["email"]),
        password_hash=str(pending["password_hash"]),
        phone=pending["phone"],
        role=str(pending["role"]),
        otp=pending["otp"],
        otp_expires=pending["expires"],
    )


# -----------------------------
# Bootstrap
# -----------------------------


def bootstrap_admin_if_needed(cfg: Config) -> Optional[Dict[str, Any]]:
    """Create the first admin user if the users table is empty.

    Controlled via environment variables so a new deployment has a deterministic way to log in.

    - AUTH_BOOTSTRAP_ADMIN_EMAIL (default: admin@manifest.local)
    - AUTH_BOOTSTRAP_ADMIN_PASSWORD (default: empty -> skip)

    This only runs when there are 0 rows in `users`.
    """

    email = normalize_email(getattr(cfg, "AUTH_BOOTSTRAP_ADMIN_EMAIL", ""))
    password = getattr(cfg, "AUTH_BOOTSTRAP_ADMIN_PASSWORD", None) or ""
    if not email or not password:
        return None

    with connect(cfg.DB_DSN) as conn:
        if count_users(conn) > 0:
            return None
        return create_user(
            conn,
            username=email.split("@", 1)[0] or "admin",
            email=email,
            password=password,
            name="Administrator",
            role="admin",
        )
