"""
Password reset tokens.

A reset request stores only the SHA‑256 digest of a random token; the
token itself travels in the e‑mailed link.  Tokens expire after
``PASSWORD_RESET_TOKEN_MINUTES`` and are single use.  Requesting a new
token invalidates the previous unused ones.
"""

import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Optional

from taskflow_api.app.core.config import settings
from taskflow_api.app.core.db import get_connection, transaction
from taskflow_api.app.core.errors import ValidationError
from taskflow_api.app.core.security import hash_password
from taskflow_api.app.core.timeutils import from_db, to_db, utcnow
from taskflow_api.app.services.mail_service import MailService

logger = logging.getLogger(__name__)


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class PasswordResetService:
    """Issue and redeem password reset tokens."""

    @classmethod
    async def request_reset(cls, email: str) -> Optional[str]:
        """Create a token for ``email`` and mail the reset link.

        Returns the token, or ``None`` when no active account uses the
        email.  The caller answers both cases the same way so the
        endpoint does not reveal which emails are registered.  Mail
        failures propagate.
        """
        now = utcnow()
        conn = get_connection()
        try:
            user = conn.execute(
                "SELECT id FROM users WHERE email = ? AND disabled = 0", (email,)
            ).fetchone()
            if not user:
                logger.info("Password reset requested for unknown email %s", email)
                return None
            token = secrets.token_urlsafe(32)
            with transaction(conn) as cursor:
                cursor.execute(
                    "UPDATE password_reset_tokens SET used_at = ? WHERE user_id = ? AND used_at IS NULL",
                    (to_db(now), user["id"]),
                )
                cursor.execute(
                    "INSERT INTO password_reset_tokens (user_id, token_hash, expires_at, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (
                        user["id"],
                        _digest(token),
                        to_db(now + timedelta(minutes=settings.password_reset_token_minutes)),
                        to_db(now),
                    ),
                )
        finally:
            conn.close()
        reset_url = f"{settings.app_url.rstrip('/')}/reset-password?token={token}"
        await MailService.send_password_reset(email, reset_url)
        return token

    @classmethod
    async def reset_password(cls, token: str, new_password: str) -> int:
        """Set a new password using a reset token; return the user id."""
        now = utcnow()
        conn = get_connection()
        try:
            with transaction(conn) as cursor:
                row = cursor.execute(
                    "SELECT id, user_id, expires_at, used_at FROM password_reset_tokens WHERE token_hash = ?",
                    (_digest(token),),
                ).fetchone()
                if not row or row["used_at"] is not None or from_db(row["expires_at"]) <= now:
                    raise ValidationError("Invalid or expired reset token", field="token")
                cursor.execute(
                    "UPDATE password_reset_tokens SET used_at = ? WHERE id = ?",
                    (to_db(now), row["id"]),
                )
                cursor.execute(
                    "UPDATE users SET password = ?, updated_at = ? WHERE id = ?",
                    (hash_password(new_password), to_db(now), row["user_id"]),
                )
        finally:
            conn.close()
        logger.info("Password reset completed for user %s", row["user_id"])
        return row["user_id"]
