#!/usr/bin/env python3
"""
Promote an existing user to the admin role.

Usage (from backend/):
  export DATABASE_URL="postgresql://..."
  PYTHONPATH=. python scripts/make_admin.py user@example.com

  Dry-run (only report what would change):
  PYTHONPATH=. python scripts/make_admin.py user@example.com --dry-run
"""

from __future__ import annotations

import argparse
import os
import sys

# Run from repo root or backend; ensure backend is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from feedback_tracker.core.dependencies import SessionLocal, session_scope
from feedback_tracker.models.tracker import User


def promote(db, email: str, *, dry_run: bool = False) -> str:
    """Return a one-line report; only mutates the user when not a dry run."""
    user = db.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()
    if user is None:
        raise LookupError(f"No user with email {email}")
    if user.role == "admin":
        return f"{user.email} is already admin."
    if dry_run:
        return f"Dry-run: {user.email} would be promoted from {user.role} to admin."
    user.role = "admin"
    return f"{user.email} promoted to admin."


def main() -> None:
    parser = argparse.ArgumentParser(description="Promote a user to admin by email.")
    parser.add_argument("email", help="Email of the existing user.")
    parser.add_argument("--dry-run", action="store_true", help="Only report what would change.")
    args = parser.parse_args()

    if SessionLocal is None:
        print("Error: DATABASE_URL is not set.", file=sys.stderr)
        sys.exit(1)

    try:
        with session_scope() as db:
            print(promote(db, args.email, dry_run=args.dry_run))
    except LookupError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
