#!/usr/bin/env python3
"""
boxid -- operator commands for The Box account store.

Usage:
  python main.py verify-email artist@example.com
  python main.py revoke-sessions artist@example.com
  python main.py show-account artist@example.com

Reads the same environment (.env) as the API: DATABASE_URL selects the store.
"""

import argparse
from typing import Optional

from auth.errors import NotFoundError
from auth.mailer import build_mailer
from auth.service import AuthService
from auth.store import AccountStore
from core.config import get_settings


def _show_account(service: AuthService, email: str) -> int:
    account = service.store.get_by_email(email)
    if account is None:
        print(f"  [!] No account for '{email}'.")
        return 1
    print(f"  id:             {account.id}")
    print(f"  email:          {account.email}")
    print(f"  box alias:      {account.box_alias}")
    print(f"  role:           {account.role}")
    print(f"  verification:   {account.verification_state.value}")
    print(f"  login methods:  {', '.join(_login_methods(account))}")
    print(f"  active session: {'yes' if account.refresh_token_hash else 'no'}")
    print(f"  last login:     {account.last_login or 'never'}")
    if account.role == "studio":
        print(f"  studio members: {len(service.store.list_studio_members(account.id))}")
    return 0


def _login_methods(account) -> list[str]:
    methods = []
    if account.has_local_password:
        methods.append("password")
    if account.external_id:
        methods.append("google")
    return methods or ["none"]


def run(args: argparse.Namespace, service: AuthService) -> int:
    """Execute one parsed command against service. Returns the exit status."""
    if args.command == "verify-email":
        try:
            account = service.mark_verified(args.email)
        except NotFoundError:
            print(f"  [!] No account for '{args.email}'.")
            return 1
        print(f"  {account.email} marked verified.")
        return 0

    if args.command == "revoke-sessions":
        if service.revoke_sessions(args.email):
            print(f"  Refresh credential cleared for {args.email}.")
            return 0
        print(f"  [!] No account for '{args.email}'.")
        return 1

    return _show_account(service, args.email)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="boxid",
        description="Operator commands for The Box account store.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py verify-email artist@example.com
  python main.py revoke-sessions artist@example.com
  DATABASE_URL=sqlite:///staging.db python main.py show-account artist@example.com
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    verify = sub.add_parser("verify-email", help="Mark an account's email verified without a link")
    verify.add_argument("email", metavar="EMAIL")

    revoke = sub.add_parser("revoke-sessions", help="Clear the stored refresh credential (forces re-login)")
    revoke.add_argument("email", metavar="EMAIL")

    show = sub.add_parser("show-account", help="Print an account's alias, role and verification state")
    show.add_argument("email", metavar="EMAIL")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    store = AccountStore(db_url=settings.database_url)
    try:
        return run(args, AuthService(settings, store, build_mailer(settings)))
    finally:
        store.close()


if __name__ == "__main__":
    raise SystemExit(main())
