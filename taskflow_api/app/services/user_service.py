"""
Business logic for users.

Users are stored in the ``users`` table with a PBKDF2 password hash.
The first registered user becomes the super administrator, which makes
a fresh installation usable without manual database edits; every later
registration gets the plain ``user`` role.
"""

import logging
import sqlite3
from typing import Optional

from taskflow_api.app.core.db import get_connection
from taskflow_api.app.core.errors import NotFoundError, ValidationError
from taskflow_api.app.core.security import ROLE_SUPER_ADMIN, ROLE_USER, hash_password, verify_password
from taskflow_api.app.core.timeutils import to_db, utcnow
from taskflow_api.app.schemas.user import UserCreate, UserRead

logger = logging.getLogger(__name__)


def _user_from_row(row: sqlite3.Row) -> UserRead:
    return UserRead(
        id=row["id"],
        email=row["email"],
        full_name=row["full_name"],
        role_id=row["role_id"],
        disabled=bool(row["disabled"]),
    )


class UserService:
    """Registration, authentication and lookup of users."""

    @classmethod
    async def create_user(cls, data: UserCreate) -> UserRead:
        """Create a user.

        Raises ``ValidationError`` if the email is already registered.
        """
        logger.info("Registering user %s", data.email)
        now = to_db(utcnow())
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute("SELECT COUNT(*) AS count FROM users").fetchone()
            role_id = ROLE_SUPER_ADMIN if row["count"] == 0 else ROLE_USER
            try:
                cursor.execute(
                    "INSERT INTO users (email, full_name, password, role_id, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (data.email, data.full_name, hash_password(data.password), role_id, now, now),
                )
            except sqlite3.IntegrityError:
                raise ValidationError("Email is already registered", field="email") from None
            user_id = cursor.lastrowid
            conn.commit()
        finally:
            conn.close()
        if role_id == ROLE_SUPER_ADMIN:
            logger.info("User %s is the first user and became super admin", data.email)
        return UserRead(id=user_id, email=data.email, full_name=data.full_name, role_id=role_id, disabled=False)

    @classmethod
    async def authenticate(cls, email: str, password: str) -> Optional[UserRead]:
        """Return the user when the credentials match and the account is active."""
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT id, email, full_name, password, role_id, disabled FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        finally:
            conn.close()
        if not row or row["disabled"] or not verify_password(password, row["password"]):
            return None
        return _user_from_row(row)

    @classmethod
    async def get_user(cls, user_id: int) -> UserRead:
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT id, email, full_name, role_id, disabled FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
        finally:
            conn.close()
        if not row:
            raise NotFoundError(f"User {user_id} not found")
        return _user_from_row(row)

    @classmethod
    async def get_user_by_email(cls, email: str) -> Optional[UserRead]:
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT id, email, full_name, role_id, disabled FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        finally:
            conn.close()
        return _user_from_row(row) if row else None

    @classmethod
    async def set_password(cls, user_id: int, password: str) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE users SET password = ?, updated_at = ? WHERE id = ?",
                (hash_password(password), to_db(utcnow()), user_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"User {user_id} not found")
            conn.commit()
        finally:
            conn.close()

    @classmethod
    async def change_password(cls, user_id: int, current_password: str, new_password: str) -> None:
        """Replace the password after checking the current one."""
        conn = get_connection()
        try:
            row = conn.execute("SELECT password FROM users WHERE id = ?", (user_id,)).fetchone()
        finally:
            conn.close()
        if not row or not row["password"]:
            raise ValidationError("User not found or no password set")
        if not verify_password(current_password, row["password"]):
            raise ValidationError("Current password is incorrect", field="current_password")
        await cls.set_password(user_id, new_password)
        logger.info("User %s changed their password", user_id)
