from __future__ import annotations

import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from manifest_api.util.time import parse_duration_seconds


_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
_JWT_ALG = "HS256"

OTP_DIGITS = 6
DEFAULT_TOKEN_TTL_SECONDS = 7 * 86400


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password_blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except (ValueError, TypeError):
        # Unrecognized / corrupt hash
        return False


def generate_otp() -> str:
    """Six-digit numeric code, never with a leading zero."""
    low = 10 ** (OTP_DIGITS - 1)
    return str(low + secrets.randbelow(9 * low))


def otp_matches(expected: str | None, supplied: Any) -> bool:
    if not expected or supplied is None:
        return False
    return hmac.compare_digest(str(expected).strip(), str(supplied).strip())


def token_payload(user: Any) -> Dict[str, Any]:
    """Claims embedded in an access token (and echoed back on login)."""
    return {
        "id": int(user["user_id"]),
        "username": str(user["username"]),
        "role": str(user["role"]),
        "email": str(user["email"]),
    }


def create_access_token(*, secret: str, payload: Dict[str, Any], expires_in: str | int | None) -> str:
    if not secret:
        raise ValueError("jwt_secret_blank")

    now = datetime.now(timezone.utc)
    ttl = parse_duration_seconds(expires_in, DEFAULT_TOKEN_TTL_SECONDS)
    claims: Dict[str, Any] = dict(payload)
    claims["iat"] = int(now.timestamp())
    claims["exp"] = int((now + timedelta(seconds=ttl)).timestamp())
    return jwt.encode(claims, secret, algorithm=_JWT_ALG)


def decode_access_token(*, token: str, secret: str) -> Dict[str, Any]:
    if not token:
        raise ValueError("token_blank")
    if not secret:
        raise ValueError("jwt_secret_blank")
    return jwt.decode(token, secret, algorithms=[_JWT_ALG])
