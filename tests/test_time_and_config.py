from datetime import datetime, timezone

import pytest

from manifest_api.config import Config, _env_bool
from manifest_api.util.time import parse_duration_seconds, parse_iso, to_iso


@pytest.mark.parametrize(
    "value,expected",
    [
        ("7d", 7 * 86400),
        ("12h", 12 * 3600),
        ("30m", 1800),
        ("45s", 45),
        ("3600", 3600),
        (900, 900),
        ("", 99),
        ("soon", 99),
        ("0d", 99),
        (None, 99),
    ],
)
def test_parse_duration_seconds(value, expected):
    assert parse_duration_seconds(value, 99) == expected


def test_iso_roundtrip_is_utc_z():
    dt = datetime(2024, 3, 1, 12, 30, 5, 999, tzinfo=timezone.utc)
    s = to_iso(dt)
    assert s == "2024-03-01T12:30:05Z"
    assert parse_iso(s) == dt.replace(microsecond=0)


def test_env_bool(monkeypatch):
    monkeypatch.setenv("MANIFEST_FLAG", "yes")
    assert _env_bool("MANIFEST_FLAG") is True
    monkeypatch.setenv("MANIFEST_FLAG", "off")
    assert _env_bool("MANIFEST_FLAG") is False
    monkeypatch.setenv("MANIFEST_FLAG", "maybe")
    assert _env_bool("MANIFEST_FLAG", None) is None
    monkeypatch.delenv("MANIFEST_FLAG")
    assert _env_bool("MANIFEST_FLAG", True) is True


def test_mail_sender_falls_back_to_smtp_user():
    assert Config(SMTP_FROM=None, SMTP_USER="u@x.com").mail_sender == "u@x.com"
    assert Config(SMTP_FROM="from@x.com", SMTP_USER="u@x.com").mail_sender == "from@x.com"
