#!/usr/bin/env python3
"""
Waypoint Identity -- operator command line.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py provision admin@example.com --role admin --name "Site Admin"
  python main.py list --role seller --status active --page 2

Admin accounts cannot self-register, so the first admin is created here.
provision reads the password from a prompt, or from stdin with
--password-stdin so scripts never put it on the command line.

Environment variables: see core/config.py (SECRET_KEY, DATABASE_URL, ...).
"""

from __future__ import annotations

import argparse
import getpass
import sys
from typing import Optional

from accounts.engine import MAX_PAGE_SIZE, IdentityEngine
from accounts.models import ROLES, STATUSES
from accounts.store import AccountStore
from auth import passwords
from auth.tokens import TokenService
from core.config import Settings, get_settings
from core.errors import IdentityError
from services.blobs import LocalBlobStore
from services.email import Mailer


def _build_engine(settings: Settings) -> IdentityEngine:
    """Assemble an engine for one-shot commands. No mail is ever sent from here."""
    passwords.configure(settings.bcrypt_rounds)
    store = AccountStore(db_url=settings.database_url)
    tokens = TokenService(
        secret_key=settings.secret_key,
        refresh_secret_key=settings.refresh_secret_key or None,
        access_ttl_seconds=settings.access_token_expire_seconds,
        refresh_ttl_days=settings.refresh_token_expire_days,
    )
    return IdentityEngine(
        store,
        tokens,
        Mailer(),
        LocalBlobStore(settings.blob_storage_dir, settings.blob_public_base_url),
        base_url=settings.base_url,
        avatar_max_bytes=settings.avatar_max_bytes,
    )


def _read_password(from_stdin: bool) -> Optional[str]:
    if from_stdin:
        return sys.stdin.readline().rstrip("\n")
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


def _cmd_provision(args: argparse.Namespace, settings: Settings) -> int:
    password = _read_password(args.password_stdin)
    if not password:
        return 1
    engine = _build_engine(settings)
    try:
        account = engine.provision_account(args.email, password, args.role, name=args.name)
    except IdentityError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        engine.close()
        engine.store.close()
    print(f"Created {account.role} account {account.email} (id={account.id}).")
    return 0


def _cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    engine = _build_engine(settings)
    try:
        page = engine.list_accounts(role=args.role, status=args.status, page=args.page, limit=args.limit)
    except IdentityError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        engine.close()
        engine.store.close()

    for account in page.items:
        print(f"  {account.id:>6}  {account.role:<7} {account.status:<21} {account.email}")
    print(f"\nPage {page.page} of {page.total_pages} ({page.total_items} accounts)")
    return 0


def _cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="waypoint-identity",
        description="Accounts, credentials and sessions for users, sellers and admins.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py provision admin@example.com --role admin
  echo 's3cret-pass' | python main.py provision ops@example.com --role admin --password-stdin
  python main.py list --role user --status pending_verification
  python main.py serve --port 8080
        """,
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development)")

    provision = sub.add_parser("provision", help="Create an active account of any role")
    provision.add_argument("email")
    provision.add_argument("--role", choices=list(ROLES), default="admin")
    provision.add_argument("--name", default=None)
    provision.add_argument(
        "--password-stdin",
        action="store_true",
        help="Read the password from the first line of stdin instead of prompting",
    )

    listing = sub.add_parser("list", help="List accounts one page at a time")
    listing.add_argument("--role", choices=list(ROLES), default=None)
    listing.add_argument("--status", choices=list(STATUSES), default=None)
    listing.add_argument("--page", type=int, default=1)
    listing.add_argument("--limit", type=int, default=20, help=f"Page size, 1-{MAX_PAGE_SIZE} (default: 20)")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    settings = get_settings()
    handlers = {"serve": _cmd_serve, "provision": _cmd_provision, "list": _cmd_list}
    return handlers[args.command](args, settings)


if __name__ == "__main__":
    sys.exit(main())
