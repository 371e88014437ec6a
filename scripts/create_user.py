"""Create an already-verified user (skips the OTP flow).

Usage:
  python scripts/create_user.py --email alice@example.com --username alice --password '...' --role staff

NOTE: This is intended for local/dev and for seeding admin accounts.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from manifest_api.auth.crud import create_user
from manifest_api.config import load_config
from manifest_api.db import connect, init_db
from manifest_api.schema import ROLES


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--email", required=True)
    ap.add_argument("--username", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--name", default=None)
    ap.add_argument("--phone", default=None)
    ap.add_argument("--role", choices=list(ROLES), default="staff")
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        u = create_user(
            conn,
            username=args.username,
            email=args.email,
            password=args.password,
            name=args.name,
            phone=args.phone,
            role=args.role,
        )

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
