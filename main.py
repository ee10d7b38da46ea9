#!/usr/bin/env python3
"""
Planit operator CLI -- account actions that have no HTTP route.

Usage:
  python main.py create-admin --email admin@planit.ng --name "Ada Admin" --password 'S3curePass'
  python main.py deactivate --email someone@example.com
  python main.py activate --email someone@example.com
  python main.py purge

Admins cannot self-register through /api/auth/signup; create-admin is the
only way to mint one. Deactivation blocks login, refresh and every bearer
request, and also revokes the account's refresh tokens.

Environment variables:
  DATABASE_URL  Same store the API uses (default sqlite:///planit_auth.db).
"""

import argparse
import sys
from typing import Optional

from auth.errors import ConflictError
from auth.models import Role, User
from auth.passwords import password_problems
from auth.store import UserStore
from core.config import get_settings


def _create_admin(store: UserStore, args: argparse.Namespace) -> int:
    problems = password_problems(args.password)
    if problems:
        for problem in problems:
            print(f"  [!] {problem}")
        return 2
    if len(args.name.strip()) < 2:
        print("  [!] Name must be at least 2 characters long")
        return 2
    try:
        user_id = store.create_user(
            User(email=args.email, full_name=args.name.strip(), role=Role.admin.value),
            args.password,
        )
    except ConflictError as e:
        print(f"  [!] {e.message}")
        return 1
    # Operator-created accounts skip the email code round-trip.
    store.set_email_verified(user_id)
    print(f"  Admin created: {args.email.lower()} (id {user_id})")
    return 0


def _set_active(store: UserStore, email: str, active: bool) -> int:
    user = store.get_by_email(email)
    if user is None:
        print(f"  [!] No account for '{email}'.")
        return 1
    store.set_active(user.id, active)
    if not active:
        revoked = store.delete_user_refresh_tokens(user.id)
        print(f"  Deactivated {user.email} ({revoked} session(s) revoked).")
    else:
        print(f"  Activated {user.email}.")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="planit",
        description="Planit operator commands.",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL for this invocation",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-admin", help="Create a verified admin account")
    create.add_argument("--email", required=True)
    create.add_argument("--name", required=True, help="Full name")
    create.add_argument("--password", required=True)

    deactivate = sub.add_parser("deactivate", help="Block an account and revoke its sessions")
    deactivate.add_argument("--email", required=True)

    activate = sub.add_parser("activate", help="Re-enable a deactivated account")
    activate.add_argument("--email", required=True)

    sub.add_parser("purge", help="Delete expired refresh tokens and spent codes")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    store = UserStore(args.database_url or get_settings().database_url)
    try:
        if args.command == "create-admin":
            return _create_admin(store, args)
        if args.command == "deactivate":
            return _set_active(store, args.email, active=False)
        if args.command == "activate":
            return _set_active(store, args.email, active=True)
        removed = store.purge_expired()
        print(f"  Purged {removed} expired record(s).")
        return 0
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
