#!/usr/bin/env python3
"""Set a user's role (idempotent).

Usage:
  python scripts/set_user_role.py --email writer@example.com --role WRITER
"""

import sys
import argparse
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.blog.models import ROLES, User
from scripts._db_utils import script_database_url, script_session


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="Email of the user to update")
    parser.add_argument("--role", default="ADMIN", choices=ROLES, help="Role to assign")
    args = parser.parse_args()

    with script_session(script_database_url()) as s:
        user = s.query(User).filter(User.email.ilike(args.email)).one_or_none()
        if not user:
            print(f"User not found: {args.email} (the user must sign in once first)")
            return
        if user.role == args.role:
            print(f"User already has role {args.role}: {args.email}")
            return
        user.role = args.role
    print(f"Role {args.role} assigned to {args.email}")


if __name__ == "__main__":
    main()
