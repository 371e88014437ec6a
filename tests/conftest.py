"""Shared fixtures: a throwaway SQLite DB, a recording mailer and a live TestClient."""

import re
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient

from manifest_api.api.server import create_app
from manifest_api.auth.crud import create_user
from manifest_api.config import Config
from manifest_api.db import connect, init_db


_OTP_RE = re.compile(r"\b(\d{6})\b")


class RecordingMailer:
    """Collects outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.sent: List[Tuple[str, str, str]] = []

    def send(self, to: str, subject: str, body: str) -> None:
        self.sent.append((to, subject, body))

    def last_otp(self, to: str | None = None) -> str:
        for rcpt, _subject, body in reversed(self.sent):
            if to is None or rcpt == to:
                m = _OTP_RE.search(body)
                if m:
                    return m.group(1)
        raise AssertionError(f"no OTP mail found for {to!r}")


@pytest.fixture
def cfg(tmp_path):
    return Config(
        DB_DSN=str(tmp_path / "manifest_test.sqlite"),
        JWT_SECRET="test-secret",
        JWT_EXPIRES_IN="1h",
        OTP_TTL_MINUTES=15,
        AUTH_BOOTSTRAP_ADMIN_PASSWORD="",
        SMTP_USER="noreply@manifest.test",
        CORS_ALLOW_ORIGINS="",
    )


@pytest.fixture
def db(cfg):
    init_db(cfg.DB_DSN)
    return cfg.DB_DSN


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def client(cfg, mailer):
    app = create_app(cfg, mailer=mailer)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(cfg, client):
    """Create a verified user directly and return (user, bearer headers)."""

    def _make(email: str, role: str = "staff", password: str = "pw-123456"):
        with connect(cfg.DB_DSN) as conn:
            user = create_user(conn, username=email.split("@")[0], email=email, password=password, role=role)
        r = client.post("/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        return user, {"Authorization": f"Bearer {r.json()['token']}"}

    return _make
