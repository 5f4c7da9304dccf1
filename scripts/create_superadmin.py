#!/usr/bin/env python3
"""
Create or promote a super administrator in the Taskflow SQLite database.

The cron jobs need a super admin as the author of generated tasks and
history entries.  This script creates that account, or promotes an
existing user and sets a new password for them.  Existing passwords are
never read.

Usage:
    python scripts/create_superadmin.py --email admin@example.com --name "Admin"
    python scripts/create_superadmin.py --db ./taskflow.db --email admin@example.com --password "NewStrongPass!234"

If --password is omitted, you will be prompted to enter it securely.
"""

import argparse
import getpass
import os
import sys

from taskflow_api.app.core.config import settings
from taskflow_api.app.core.db import get_connection, init_db
from taskflow_api.app.core.security import ROLE_SUPER_ADMIN, hash_password
from taskflow_api.app.core.timeutils import to_db, utcnow


def main() -> None:
    ap = argparse.ArgumentParser(description="Create or promote a Taskflow super admin (SQLite).")
    ap.add_argument("--db", help="Path to the SQLite DB file (defaults to DATABASE_URL)")
    ap.add_argument("--email", required=True, help="Email of the super admin")
    ap.add_argument("--name", help="Full name, used when the user is created")
    ap.add_argument("--password", help="Password. If omitted, you'll be prompted securely.")
    args = ap.parse_args()

    if args.db:
        settings.database_url = os.path.abspath(args.db)

    new_password = args.password or getpass.getpass("Enter password: ")
    if len(new_password) < 8:
        print("[!] Password must be at least 8 characters.", file=sys.stderr)
        sys.exit(1)

    email = args.email.strip().lower()
    now = to_db(utcnow())
    init_db()
    conn = get_connection()
    try:
        cur = conn.cursor()
        row = cur.execute("SELECT id FROM users WHERE email = ?", (email,)).fetchone()
        if row:
            cur.execute(
                "UPDATE users SET password = ?, role_id = ?, disabled = 0, updated_at = ? WHERE id = ?",
                (hash_password(new_password), ROLE_SUPER_ADMIN, now, row["id"]),
            )
            print(f"[+] User promoted to super admin: {email}")
        else:
            cur.execute(
                "INSERT INTO users (email, full_name, password, role_id, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (email, args.name, hash_password(new_password), ROLE_SUPER_ADMIN, now, now),
            )
            print(f"[+] Super admin created: {email}")
        conn.commit()
    finally:
        conn.close()


if __name__ == "__main__":
    main()
