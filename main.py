#!/usr/bin/env python3
"""
UserDesk -- account administration from the command line.

Works directly against the configured database (DATABASE_URL), so it can
bootstrap the first admin before the web server has ever run.

Usage:
  python main.py create-user admin@example.com 'S3cure-pass' --admin
  python main.py create-user jane@example.com 'S3cure-pass' --first-name Jane --last-name Smith
  python main.py seed-demo
  python main.py issue-token admin@example.com

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the user database (default: SQLite next to auth/)
  SECRET_KEY    Required unless DEBUG=true; issue-token signs with it
"""

import argparse
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.accounts import validate_email, validate_password
from auth.errors import ValidationFailed
from auth.models import ROLE_ADMIN, ROLE_USER, AccountStatus, User
from auth.passwords import hash_password
from auth.store import UserStore
from auth.tokens import BearerTokenAuthenticator
from core.config import get_settings

# Demo accounts for local development. The suspended admin exists so the
# disabled-account paths can be tried by hand.
DEMO_USERS = [
    {
        "email": "admin@example.com",
        "first_name": "Admin",
        "last_name": "System",
        "password": "Admin123!@#",
        "roles": [ROLE_ADMIN],
        "account_status": AccountStatus.active,
    },
    {
        "email": "user@example.com",
        "first_name": "John",
        "last_name": "Doe",
        "password": "User123!@#",
        "roles": [ROLE_USER],
        "account_status": AccountStatus.active,
    },
    {
        "email": "jane.smith@example.com",
        "first_name": "Jane",
        "last_name": "Smith",
        "password": "Jane123!@#",
        "roles": [ROLE_USER],
        "account_status": AccountStatus.active,
    },
    {
        "email": "moderator@example.com",
        "first_name": "Mod",
        "last_name": "Erator",
        "password": "Mod123!@#",
        "roles": [ROLE_ADMIN],
        "account_status": AccountStatus.suspended,
    },
]


def create_user(
    store: UserStore,
    email: str,
    password: str,
    admin: bool = False,
    first_name: str = "",
    last_name: str = "",
) -> User:
    """Create an active account. Raises ValidationFailed on bad input or a taken email."""
    email = validate_email(email)
    validate_password(password)
    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        roles=[ROLE_USER, ROLE_ADMIN] if admin else [ROLE_USER],
    )
    try:
        user.id = store.create_user(user)
    except IntegrityError as exc:
        raise ValidationFailed("This email address is already in use.", field="email") from exc
    return user


def seed_demo(store: UserStore) -> list[str]:
    """Insert the demo accounts that do not exist yet. Returns the emails created."""
    created = []
    for demo in DEMO_USERS:
        if store.get_by_email(demo["email"]) is not None:
            continue
        store.create_user(
            User(
                email=demo["email"],
                password_hash=hash_password(demo["password"]),
                first_name=demo["first_name"],
                last_name=demo["last_name"],
                roles=demo["roles"],
                account_status=demo["account_status"],
            )
        )
        created.append(demo["email"])
    return created


def issue_token(store: UserStore, email: str, secret_key: str) -> str:
    """Return a fresh bearer token for an active account."""
    user = store.get_by_email(email)
    if user is None:
        raise ValidationFailed(f"No account for {email}.", field="email")
    if not user.is_active:
        raise ValidationFailed(f"Account {email} is {user.account_status.value}.", field="email")
    return BearerTokenAuthenticator(store, secret_key).issue(user.id)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="userdesk",
        description="Manage UserDesk accounts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user admin@example.com 'S3cure-pass' --admin
  python main.py seed-demo
  python main.py issue-token admin@example.com
        """,
    )
    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create-user", help="Create an active account")
    create.add_argument("email", help="Login email address")
    create.add_argument("password", help="Initial password (8 characters or more)")
    create.add_argument("--admin", action="store_true", help="Grant ROLE_ADMIN")
    create.add_argument("--first-name", default="", metavar="NAME")
    create.add_argument("--last-name", default="", metavar="NAME")

    commands.add_parser("seed-demo", help="Insert the demo accounts (skips existing emails)")

    token = commands.add_parser("issue-token", help="Print a 24h bearer token for an account")
    token.add_argument("email", help="Email of an active account")

    args = parser.parse_args(argv)

    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        if args.command == "create-user":
            user = create_user(store, args.email, args.password, args.admin, args.first_name, args.last_name)
            print(f"Created user {user.id} <{user.email}> roles={','.join(user.roles)}")
        elif args.command == "seed-demo":
            created = seed_demo(store)
            if created:
                for email in created:
                    print(f"  + {email}")
            else:
                print("Demo users already present.")
        elif args.command == "issue-token":
            print(issue_token(store, args.email, settings.secret_key))
    except ValidationFailed as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
