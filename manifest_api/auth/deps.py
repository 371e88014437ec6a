from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from manifest_api.db import connect

from .crud import get_user_by_id, public_user
from .security import decode_access_token


_bearer = HTTPBearer(auto_error=False)


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    """Authenticate a request from `Authorization: Bearer <jwt>`.

    The token only identifies the account; role and email come from the
    current users row so a role change takes effect immediately.
    """

    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise HTTPException(status_code=500, detail="Server configuration missing")

    if credentials is None or not credentials.credentials:
        raise _unauthorized("Missing or invalid auth header")

    try:
        payload = decode_access_token(token=credentials.credentials, secret=cfg.JWT_SECRET)
        user_id = int(payload["id"])
    except (jwt.InvalidTokenError, KeyError, TypeError, ValueError) as e:
        _debug(f"Rejected token: {e}")
        raise _unauthorized("Invalid or expired token")

    with connect(cfg.DB_DSN) as conn:
        row = get_user_by_id(conn, user_id)
    if row is None:
        raise _unauthorized("Invalid token user")

    user = public_user(row)
    user["is_admin"] = user.get("role") == "admin"
    request.state.user = user
    return user


def require_roles(*roles: str, detail: str = "Access denied") -> Callable[..., Dict[str, Any]]:
    """Build a dependency that admits only users whose role is in `roles`."""
    allowed = frozenset(r.strip().lower() for r in roles)

    def _require(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if str(user.get("role") or "").lower() not in allowed:
            raise HTTPException(status_code=403, detail=detail)
        return user

    return _require


require_admin = require_roles("admin", detail="Admin access only")
require_staff = require_roles("staff", detail="Staff access only")
