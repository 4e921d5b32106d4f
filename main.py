#!/usr/bin/env python3
"""
Wayfarer -- operator command line.

Creates the bootstrap admin account without starting the API server. Runs
the same AccountService.ensure_initial_admin() as API startup, so it is
idempotent: an existing account with that email is promoted to admin and
nothing else changes.

Usage:
  python main.py init-admin
  python main.py init-admin --email admin@example.com
  python main.py init-admin --email admin@example.com --database-url sqlite:///wayfarer.db

Environment variables:
  INITIAL_ADMIN_EMAIL      Default for --email.
  INITIAL_ADMIN_PASSWORD   Password for a new admin. Prompted for if unset.
  DATABASE_URL, PROVIDER_URL and the other settings in core/config.py apply.
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.accounts import AccountService, RegistrationRejected
from auth.directory import UserDirectory
from auth.provider import InvalidEmail, ProviderError, WeakPassword, build_provider
from auth.throttle import LoginThrottle
from core.config import get_settings
from core.errors import AppError


def init_admin(email: str, password: str, database_url: Optional[str] = None) -> int:
    """Create or promote the admin account. Returns a process exit code."""
    settings = get_settings()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})

    directory = UserDirectory(settings.database_url)
    provider = build_provider(settings)
    accounts = AccountService(provider, directory, LoginThrottle())
    try:
        admin = accounts.ensure_initial_admin(email, password)
    except WeakPassword:
        print("  [!] Password rejected by the identity provider as too weak.")
        return 1
    except InvalidEmail:
        print(f"  [!] '{email}' is not a valid email address.")
        return 1
    except RegistrationRejected:
        print("  [!] The identity provider already has an account for this email, but no profile exists.")
        return 1
    except (ProviderError, AppError) as exc:
        print(f"  [!] Could not create admin: {exc}")
        return 1
    finally:
        provider.close()
        directory.close()

    print("Admin account ready.")
    print(f"  UID:   {admin.uid}")
    print(f"  Email: {admin.email}")
    print(f"  Role:  {admin.role}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="wayfarer",
        description="Wayfarer operator commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-admin
  INITIAL_ADMIN_EMAIL=admin@example.com python main.py init-admin
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    init = sub.add_parser("init-admin", help="Create the admin account, or promote an existing one")
    init.add_argument(
        "--email",
        metavar="EMAIL",
        default=None,
        help="Admin email (default: INITIAL_ADMIN_EMAIL)",
    )
    init.add_argument(
        "--password",
        metavar="PASSWORD",
        default=None,
        help="Admin password (default: INITIAL_ADMIN_PASSWORD, else prompt). "
        "Prefer the environment or the prompt: arguments end up in shell history.",
    )
    init.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="Override DATABASE_URL",
    )
    args = parser.parse_args(argv)

    if args.command != "init-admin":
        parser.print_help()
        return 2

    settings = get_settings()
    email = args.email or settings.initial_admin_email
    if not email:
        print("  [!] No admin email. Pass --email or set INITIAL_ADMIN_EMAIL.")
        return 2
    password = args.password or settings.initial_admin_password
    if not password:
        password = getpass.getpass("Admin password: ")
    return init_admin(email, password, database_url=args.database_url)


if __name__ == "__main__":
    sys.exit(main())
