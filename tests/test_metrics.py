from unittest.mock import patch

import pytest

from manifest_api.analytics import metrics
from manifest_api.analytics.metrics import increment_new_users, kpis, parse_period_days, time_series
from manifest_api.auth.crud import create_user
from manifest_api.db import connect
from manifest_api.util.time import days_ago_date, today_utc


def _set_day(conn, day, users=0, sales=0, conversions=0):
    conn.execute(
        """
        INSERT INTO metrics (date, total_users, total_sales, total_conversions, updated_at)
        VALUES (?,?,?,?, '2000-01-01T00:00:00Z')
        """,
        (day, users, sales, conversions),
    )


@pytest.mark.parametrize(
    "period,days",
    [
        ("30d", 30),
        ("7d", 7),
        ("90", 90),
        (None, 30),
        ("weekly", 30),
        ("0d", 30),
        ("-3d", 30),
        ("5000d", 3650),
        ("99999999999d", 3650),
    ],
)
def test_parse_period_days(period, days):
    assert parse_period_days(period) == days


def test_increment_creates_then_adds(db):
    today = today_utc().isoformat()
    with connect(db) as conn:
        increment_new_users(conn)
        increment_new_users(conn)
        row = conn.execute("SELECT * FROM metrics WHERE date=?", (today,)).fetchone()
    assert row["total_users"] == 2
    assert row["total_sales"] == 0
    assert row["total_conversions"] == 0


def test_time_series_respects_cutoff_and_order(db):
    with connect(db) as conn:
        _set_day(conn, days_ago_date(0), users=2, sales=10.5, conversions=1)
        _set_day(conn, days_ago_date(5), users=1, sales=3, conversions=0)
        _set_day(conn, days_ago_date(40), users=9, sales=99, conversions=9)
        series = time_series(conn, 30)

    assert [p["date"] for p in series["users"]] == [days_ago_date(5), days_ago_date(0)]
    assert [p["value"] for p in series["users"]] == [1, 2]
    assert [p["value"] for p in series["sales"]] == [3, 10.5]
    assert [p["value"] for p in series["conversions"]] == [0, 1]


def test_time_series_empty(db):
    with connect(db) as conn:
        assert time_series(conn, 30) == {"users": [], "sales": [], "conversions": []}


def test_kpis_mix_metric_sums_with_live_user_counts(db):
    with connect(db) as conn:
        create_user(conn, username="a", email="a@x.com", password="pw")
        create_user(conn, username="b", email="b@x.com", password="pw")
        _set_day(conn, days_ago_date(0), users=7, sales=10.5, conversions=3)
        _set_day(conn, days_ago_date(10), users=5, sales=4, conversions=1)
        data = kpis(conn)

    assert data["total"] == {"totalUsers": 2, "sales": 14.5, "conversions": 4}
    assert data["today"] == {"totalUsers": 7, "sales": 10.5, "conversions": 3, "newUsers": 2}


def test_kpis_on_empty_db(db):
    with connect(db) as conn:
        data = kpis(conn)
    assert data["total"] == {"totalUsers": 0, "sales": 0, "conversions": 0}
    assert data["today"]["newUsers"] == 0


def test_record_new_user_safely_swallows_failures(cfg, db):
    with patch.object(metrics, "increment_new_users", side_effect=RuntimeError("boom")):
        assert metrics.record_new_user_safely(cfg) is False
    assert metrics.record_new_user_safely(cfg) is True
