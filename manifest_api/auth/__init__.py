"""Authentication / authorization helpers.

Auth is deliberately small:

- `users` table (email + password hash + role), fed by OTP-verified sign-ups
  staged in `pending_users`
- HS256 JWT access tokens carrying id/username/role/email

Clients send `Authorization: Bearer <token>`; routes are gated with
`require_roles(...)` or the `require_admin` / `require_staff` shortcuts.
"""

from .deps import get_current_user, require_admin, require_roles, require_staff
from .crud import bootstrap_admin_if_needed, create_user

__all__ = [
    "get_current_user",
    "require_admin",
    "require_roles",
    "require_staff",
    "bootstrap_admin_if_needed",
    "create_user",
]
