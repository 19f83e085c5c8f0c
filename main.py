#!/usr/bin/env python3
"""
SessionKeeper operator CLI -- manage credential records on disk.

Usage:
  python main.py add-user --email u@test.com --password secret
  python main.py show-user --email u@test.com
  python main.py delete-user --email u@test.com

Records are written under USERS_PATH (default ./data/users), one JSON file per
user named after the SHA-256 of the normalized email. This is an operator tool;
the HTTP API offers no self-registration.

Environment variables:
  USERS_PATH   Credential directory shared with the API server.
  SECRET_KEY   Not used by the CLI itself, but Settings validation still runs;
               set DEBUG=true for local use without a key.
"""

import argparse
import getpass
import sys
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from auth.errors import AuthError
from auth.models import Credential
from auth.passwords import MAX_PASSWORD_BYTES, password_too_long
from auth.store import CredentialStore
from core.config import Settings


def _add_user(store: CredentialStore, email: str, password: Optional[str]) -> int:
    try:
        validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        print(f"  [!] '{email}' is not a valid email address: {e}")
        return 2
    if password is None:
        password = getpass.getpass("Password: ")
    if not password.strip():
        print("  [!] Password is required.")
        return 2
    if password_too_long(password.strip()):
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes (UTF-8).")
        return 2
    credential = Credential.create(email, password)
    store.write(credential)
    print(f"  Created {credential.email} ({credential.subject_id[:12]})")
    return 0


def _show_user(store: CredentialStore, email: str) -> int:
    credential = store.read(email)
    print(f"  email:      {credential.email}")
    print(f"  subject_id: {credential.subject_id}")
    print(f"  created_at: {credential.created_at.isoformat()}")
    print(f"  file:       {store.path_for(email)}")
    return 0


def _delete_user(store: CredentialStore, email: str) -> int:
    store.delete(email)
    print(f"  Deleted {email.strip()}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sessionkeeper", description="Manage SessionKeeper credential records.")
    parser.add_argument("--users-path", help="Override USERS_PATH for this invocation.")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add-user", help="Create or replace a credential record.")
    add.add_argument("--email", required=True)
    add.add_argument("--password", help="Omit to be prompted without echo.")

    show = sub.add_parser("show-user", help="Print a credential record (without the hash).")
    show.add_argument("--email", required=True)

    delete = sub.add_parser("delete-user", help="Remove a credential record.")
    delete.add_argument("--email", required=True)
    return parser


def main(argv: Optional[list[str]] = None, settings: Optional[Settings] = None) -> int:
    args = build_parser().parse_args(argv)
    if settings is None:
        settings = Settings()
    store = CredentialStore(args.users_path or settings.users_path)
    try:
        if args.command == "add-user":
            return _add_user(store, args.email, args.password)
        if args.command == "show-user":
            return _show_user(store, args.email)
        return _delete_user(store, args.email)
    except AuthError as e:
        print(f"  [!] {type(e).__name__}: {e.detail}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
