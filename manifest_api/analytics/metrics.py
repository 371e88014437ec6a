from __future__ import annotations

from typing import Any, Dict, List

from manifest_api.auth.crud import count_users
from manifest_api.config import Config
from manifest_api.db import connect
from manifest_api.util.time import days_ago_date, start_of_today_iso, today_utc, utcnow_iso


DEFAULT_PERIOD_DAYS = 30
MAX_PERIOD_DAYS = 3650


def _debug(msg: str) -> None:
    print(f"[metrics] {msg}")


def _num(x: Any) -> int | float:
    if x is None:
        return 0
    f = float(x)
    return int(f) if f.is_integer() else f


def parse_period_days(period: str | None) -> int:
    """'30d' -> 30. Unparseable or non-positive falls back to 30; capped at ten years."""
    raw = str(period or "").strip().lower().replace("d", "")
    try:
        days = int(raw)
    except ValueError:
        return DEFAULT_PERIOD_DAYS
    if days <= 0:
        return DEFAULT_PERIOD_DAYS
    return min(days, MAX_PERIOD_DAYS)


def increment_new_users(conn: Any, day: str | None = None, n: int = 1) -> None:
    """Add `n` to the day's total_users, creating the row if needed."""
    d = day or today_utc().isoformat()
    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO metrics (date, total_users, total_sales, total_conversions, updated_at)
        VALUES (?, ?, 0, 0, ?)
        ON CONFLICT(date) DO UPDATE SET
            total_users = metrics.total_users + excluded.total_users,
            updated_at = excluded.updated_at
        """,
        (d, int(n), now),
    )


def record_new_user_safely(cfg: Config) -> bool:
    """Best-effort metric bump after a verified sign-up. Never raises."""
    try:
        with connect(cfg.DB_DSN) as conn:
            increment_new_users(conn)
        return True
    except Exception as e:
        _debug(f"Metric update failed (non-blocking): {e}")
        return False


def time_series(conn: Any, days: int = DEFAULT_PERIOD_DAYS) -> Dict[str, List[Dict[str, Any]]]:
    """Per-day sums since `days` ago, as three parallel point lists for charts."""
    rows = conn.execute(
        """
        SELECT date,
               SUM(total_users) AS total_users,
               SUM(total_sales) AS total_sales,
               SUM(total_conversions) AS total_conversions
        FROM metrics
        WHERE date >= ?
        GROUP BY date
        ORDER BY date ASC
        """,
        (days_ago_date(days),),
    ).fetchall()

    series: Dict[str, List[Dict[str, Any]]] = {"users": [], "sales": [], "conversions": []}
    for r in rows:
        d = str(r["date"])
        series["users"].append({"date": d, "value": _num(r["total_users"])})
        series["sales"].append({"date": d, "value": _num(r["total_sales"])})
        series["conversions"].append({"date": d, "value": _num(r["total_conversions"])})
    return series


def _sums(conn: Any, since_day: str | None = None) -> Dict[str, Any]:
    sql = """
        SELECT SUM(total_users) AS total_users,
               SUM(total_sales) AS sales,
               SUM(total_conversions) AS conversions
        FROM metrics
    """
    params: tuple = ()
    if since_day is not None:
        sql += " WHERE date >= ?"
        params = (since_day,)
    r = conn.execute(sql, params).fetchone()
    return {
        "totalUsers": _num(r["total_users"] if r else None),
        "sales": _num(r["sales"] if r else None),
        "conversions": _num(r["conversions"] if r else None),
    }


def kpis(conn: Any) -> Dict[str, Dict[str, Any]]:
    """All-time and today's sums; user counts come live from the users table."""
    total = _sums(conn)
    total["totalUsers"] = count_users(conn)

    today = _sums(conn, since_day=today_utc().isoformat())
    today["newUsers"] = count_users(conn, created_since=start_of_today_iso())

    return {"total": total, "today": today}
