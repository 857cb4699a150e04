#!/usr/bin/env python3
"""
Exa -- operator command line.

Maintenance tasks that run against the same database and SMTP settings as
the web app, without starting the server.

Usage:
  python main.py init-db
  python main.py purge
  python main.py send-test-email you@example.com

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the platform database (default: sqlite exa.db)
  SMTP_HOST     SMTP relay used by send-test-email. When unset the message is
                rendered and logged but not delivered.
"""

import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from auth.store import UserStore
from business.store import BusinessStore
from core.config import get_settings
from core.db import create_db_engine
from mail.mailer import Mailer


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create any missing tables. Existing tables and rows are left alone."""
    settings = get_settings()
    engine = create_db_engine(settings.database_url)
    engine.dispose()
    print(f"  Schema ready at {engine.url.render_as_string(hide_password=True)}")
    return 0


def cmd_purge(args: argparse.Namespace) -> int:
    """Same work as the server's hourly purge task, run once."""
    settings = get_settings()
    engine = create_db_engine(settings.database_url)
    try:
        tokens = UserStore(engine).purge_expired_tokens()
        invitations = BusinessStore(engine).expire_stale_invitations()
    finally:
        engine.dispose()
    print(f"  Removed {tokens} expired token(s), expired {invitations} invitation(s).")
    return 0


def cmd_send_test_email(args: argparse.Namespace) -> int:
    settings = get_settings()
    if not settings.smtp_host:
        print("  [!] SMTP_HOST is not set; the message will be rendered but not delivered.")
    if Mailer(settings).send_test(args.to):
        print(f"  Test email sent to {args.to}.")
        return 0
    print(f"  [!] Test email to {args.to} was not delivered. See the log above.")
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="exa",
        description="Maintenance commands for the Exa platform.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db
  DATABASE_URL=sqlite:////var/lib/exa/exa.db python main.py purge
  SMTP_HOST=smtp.example.com python main.py send-test-email ops@example.com
        """,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_init = sub.add_parser("init-db", help="Create the database schema")
    p_init.set_defaults(func=cmd_init_db)

    p_purge = sub.add_parser("purge", help="Delete expired one-time tokens and expire stale invitations")
    p_purge.set_defaults(func=cmd_purge)

    p_mail = sub.add_parser("send-test-email", help="Send a test message through the configured SMTP relay")
    p_mail.add_argument("to", metavar="EMAIL", help="Recipient address")
    p_mail.set_defaults(func=cmd_send_test_email)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if not getattr(args, "func", None):
        parser.print_help()
        return 2

    try:
        return args.func(args)
    except SQLAlchemyError as exc:
        print(f"  [!] Database error: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
