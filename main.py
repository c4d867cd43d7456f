#!/usr/bin/env python3
"""
userauth -- Management commands for the user authentication service.

Usage:
  python main.py create-user --name Ann --email a@x.com
  python main.py create-user --name Ann --email a@x.com --gender female
  python main.py set-password --email a@x.com
  python main.py tokens --email a@x.com
  python main.py serve --port 8000 --reload

Passwords are always read interactively (getpass), never from argv, so they
do not end up in shell history or process listings.

Environment variables:
  SECRET_KEY     Token signing secret (>= 32 chars). Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL of the user store.
  BCRYPT_ROUNDS  bcrypt work factor (default 10).
"""

import argparse
import getpass
import sys

from auth.errors import DuplicateUserError, PersistenceError, UserNotFoundError, ValidationError
from auth.store import UserStore
from core.config import get_settings


def _read_password() -> str:
    """Prompt twice and return the password. Exits if the two entries differ."""
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Repeat password: ")
    if first != second:
        print("  [!] Passwords don't match.")
        sys.exit(1)
    return first


def _open_store() -> UserStore:
    settings = get_settings()
    return UserStore(settings.database_url, bcrypt_rounds=settings.bcrypt_rounds)


def cmd_create_user(args: argparse.Namespace) -> int:
    password = _read_password()
    store = _open_store()
    try:
        user = store.create_user(args.name, args.email, password, args.gender)
    except ValidationError as e:
        for field in e.fields:
            print(f"  [!] {field.field}: {field.message}")
        return 1
    except DuplicateUserError:
        print(f"  [!] A user with email '{args.email}' already exists.")
        return 1
    finally:
        store.close()
    print(f"  Created user {user.id} ({user.email}).")
    return 0


def cmd_set_password(args: argparse.Namespace) -> int:
    store = _open_store()
    try:
        user = store.get_by_email(args.email)
        if user is None:
            print(f"  [!] No user with email '{args.email}'.")
            return 1
        password = _read_password()
        store.change_password(user.id, password)
    except ValidationError as e:
        for field in e.fields:
            print(f"  [!] {field.field}: {field.message}")
        return 1
    except UserNotFoundError:
        print(f"  [!] No user with email '{args.email}'.")
        return 1
    finally:
        store.close()
    print(f"  Password updated for {args.email}.")
    return 0


def cmd_tokens(args: argparse.Namespace) -> int:
    store = _open_store()
    try:
        user = store.get_by_email(args.email)
    finally:
        store.close()
    if user is None:
        print(f"  [!] No user with email '{args.email}'.")
        return 1
    print(f"  {user.email}: {len(user.tokens)} active token(s).")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="userauth",
        description="Management commands for the user authentication service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user --name Ann --email a@x.com
  python main.py set-password --email a@x.com
  SECRET_KEY=... python main.py serve --port 8000
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_create = sub.add_parser("create-user", help="Register a user (password prompted)")
    p_create.add_argument("--name", required=True, help="Display name")
    p_create.add_argument("--email", required=True, help="Login email, must be unique")
    p_create.add_argument("--gender", default=None, help="Optional gender")
    p_create.set_defaults(func=cmd_create_user)

    p_passwd = sub.add_parser("set-password", help="Replace a user's password (prompted)")
    p_passwd.add_argument("--email", required=True, help="Email of the user to update")
    p_passwd.set_defaults(func=cmd_set_password)

    p_tokens = sub.add_parser("tokens", help="Show how many active tokens a user holds")
    p_tokens.add_argument("--email", required=True)
    p_tokens.set_defaults(func=cmd_tokens)

    p_serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    p_serve.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except PersistenceError as e:
        print(f"  [!] Store error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
