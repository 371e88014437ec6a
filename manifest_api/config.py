import os
from dataclasses import dataclass
from typing import Optional

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    # If python-dotenv isn't installed or .env isn't present, that's fine.
    pass


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide secrets (JWT secret, SMTP password) via environment
    variables or a .env file. Do not hardcode them in source code.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set MANIFEST_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: MANIFEST_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("MANIFEST_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("MANIFEST_DB_PATH", "./manifest.sqlite")
    )

    # -----------------
    # Auth (JWT)
    # -----------------
    # NOTE: In dev, this defaults to a fixed string so you can get started.
    # In production, you MUST set JWT_SECRET to a strong random value.
    JWT_SECRET: str = os.environ.get("JWT_SECRET", "dev_change_me")
    # Accepts "7d", "12h", "30m", "45s" or a plain number of seconds.
    JWT_EXPIRES_IN: str = os.environ.get("JWT_EXPIRES_IN", "7d")

    # Registration / password-reset OTP lifetime.
    OTP_TTL_MINUTES: int = int(os.environ.get("OTP_TTL_MINUTES", "15"))

    # Bootstrap first admin user if users table is empty.
    # Leave the password blank to skip bootstrapping.
    AUTH_BOOTSTRAP_ADMIN_EMAIL: str = os.environ.get("AUTH_BOOTSTRAP_ADMIN_EMAIL", "admin@manifest.local")
    AUTH_BOOTSTRAP_ADMIN_PASSWORD: str = os.environ.get("AUTH_BOOTSTRAP_ADMIN_PASSWORD", "")

    # -----------------
    # Mail (SMTP)
    # -----------------
    SMTP_HOST: str = os.environ.get("SMTP_HOST", "localhost")
    SMTP_PORT: int = int(os.environ.get("SMTP_PORT", "465"))
    SMTP_USER: str | None = os.environ.get("SMTP_USER")
    SMTP_PASS: str | None = os.environ.get("SMTP_PASS")
    # Sender address; falls back to SMTP_USER when unset.
    SMTP_FROM: str | None = os.environ.get("SMTP_FROM")
    # Port 465 is implicit TLS; 587 usually wants STARTTLS instead.
    SMTP_USE_SSL: bool = _env_bool("SMTP_USE_SSL", None) if _env_bool("SMTP_USE_SSL", None) is not None else (
        int(os.environ.get("SMTP_PORT", "465")) == 465
    )
    SMTP_STARTTLS: bool = _env_bool("SMTP_STARTTLS", False) is True
    SMTP_TIMEOUT_SECONDS: float = float(os.environ.get("SMTP_TIMEOUT_SECONDS", "20"))

    # Product name used in email copy.
    MAIL_APP_NAME: str = os.environ.get("MAIL_APP_NAME", "MANIFEST")

    # -----------------
    # CORS (development)
    # -----------------
    CORS_ALLOW_ORIGINS: str = os.environ.get(
        "CORS_ALLOW_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
    )

    @property
    def mail_sender(self) -> str | None:
        return self.SMTP_FROM or self.SMTP_USER


def load_config() -> Config:
    return Config()
