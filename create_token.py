"""Print a long‑lived access token for a super administrator.

Useful for the external cron trigger.  The email must belong to an
existing user with the super admin role.

Usage:
    python create_token.py admin@example.com [days]
"""
import sys

from taskflow_api.app.core.security import create_access_token

if len(sys.argv) < 2:
    print(__doc__, file=sys.stderr)
    sys.exit(1)

email = sys.argv[1].strip().lower()
# Default lifetime: 365 days, in seconds.
days = int(sys.argv[2]) if len(sys.argv) > 2 else 365
token = create_access_token({"sub": email}, expires_delta=days * 24 * 60 * 60)
print(token)
