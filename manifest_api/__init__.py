"""Manifest backend - accounts and dashboard analytics.

Scope:
- Registration is two-step: a pending row + emailed OTP, then verification
  promotes it to a real user.
- Login issues HS256 bearer tokens; routes are gated by role.
- A per-day `metrics` table feeds the dashboard endpoints.

See DESIGN.md for the endpoint list and storage layout.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
