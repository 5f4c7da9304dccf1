"""
Service layer for workspaces and workspace membership.

Besides CRUD this module hosts the membership checks every other
service relies on: ``fetch_member`` and ``require_member`` run on the
caller's cursor so they can take part in a larger transaction.  Super
administrators pass every membership check; for them the returned
member row may be ``None``.
"""

import logging
import sqlite3
from typing import Dict, List, Optional

from taskflow_api.app.core.db import get_connection
from taskflow_api.app.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from taskflow_api.app.core.security import is_super_admin
from taskflow_api.app.core.timeutils import from_db, to_db, utcnow
from taskflow_api.app.schemas.workspace import (
    MemberCreate,
    MemberRead,
    MemberRole,
    WorkspaceCreate,
    WorkspaceRead,
)

logger = logging.getLogger(__name__)

MEMBER_SELECT = """
    SELECT m.id, m.workspace_id, m.user_id, m.role, m.joined_at,
           COALESCE(u.full_name, u.email) AS name, u.email
    FROM members m
    JOIN users u ON u.id = m.user_id
"""


def _workspace_from_row(row: sqlite3.Row) -> WorkspaceRead:
    data = dict(row)
    data["with_review_stage"] = bool(data["with_review_stage"])
    data["created_at"] = from_db(data.get("created_at"))
    return WorkspaceRead(**data)


def _member_from_row(row: sqlite3.Row) -> MemberRead:
    data = dict(row)
    data["joined_at"] = from_db(data.get("joined_at"))
    return MemberRead(**data)


class WorkspaceService:
    """Create workspaces, manage members and check membership."""

    # ------------------------------------------------------------------
    # Membership helpers (cursor based)
    # ------------------------------------------------------------------
    @staticmethod
    def fetch_member(cursor: sqlite3.Cursor, workspace_id: int, user_id: int) -> Optional[Dict]:
        row = cursor.execute(
            MEMBER_SELECT + " WHERE m.workspace_id = ? AND m.user_id = ?",
            (workspace_id, user_id),
        ).fetchone()
        return dict(row) if row else None

    @staticmethod
    def fetch_members(cursor: sqlite3.Cursor, workspace_id: int) -> List[Dict]:
        rows = cursor.execute(
            MEMBER_SELECT + " WHERE m.workspace_id = ? ORDER BY m.id ASC",
            (workspace_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    @classmethod
    def require_member(
        cls,
        cursor: sqlite3.Cursor,
        workspace_id: int,
        current_user: Dict,
        roles: Optional[tuple] = None,
    ) -> Optional[Dict]:
        """Return the caller's member row or raise.

        Raises ``NotFoundError`` when the workspace does not exist and
        ``PermissionDeniedError`` when the caller is not a member, or is a
        member whose role is not in ``roles``.
        """
        if not cursor.execute("SELECT 1 FROM workspaces WHERE id = ?", (workspace_id,)).fetchone():
            raise NotFoundError("Workspace not found")
        member = cls.fetch_member(cursor, workspace_id, current_user["user_id"])
        if is_super_admin(current_user):
            return member
        if member is None:
            raise PermissionDeniedError("You are not a member of this workspace")
        # MemberRole is a str enum, so plain role strings compare equal.
        if roles is not None and member["role"] not in roles:
            raise PermissionDeniedError("Insufficient workspace permissions")
        return member

    # ------------------------------------------------------------------
    # Workspaces
    # ------------------------------------------------------------------
    @classmethod
    async def create_workspace(cls, data: WorkspaceCreate, current_user: Dict) -> WorkspaceRead:
        """Create a workspace; the creator joins it as ``ADMIN``."""
        now = to_db(utcnow())
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO workspaces (
                    name, created_by, with_review_stage,
                    kpi_completion_weight, kpi_productivity_weight, kpi_sla_weight,
                    kpi_collaboration_weight, kpi_review_weight, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data.name.strip(),
                    current_user["user_id"],
                    int(data.with_review_stage),
                    data.kpi_completion_weight,
                    data.kpi_productivity_weight,
                    data.kpi_sla_weight,
                    data.kpi_collaboration_weight,
                    data.kpi_review_weight,
                    now,
                ),
            )
            workspace_id = cursor.lastrowid
            cursor.execute(
                "INSERT INTO members (workspace_id, user_id, role, joined_at) VALUES (?, ?, ?, ?)",
                (workspace_id, current_user["user_id"], MemberRole.ADMIN.value, now),
            )
            conn.commit()
            row = cursor.execute("SELECT * FROM workspaces WHERE id = ?", (workspace_id,)).fetchone()
        finally:
            conn.close()
        logger.info("Workspace %s created by user %s", workspace_id, current_user["user_id"])
        return _workspace_from_row(row)

    @classmethod
    async def get_workspace(cls, workspace_id: int, current_user: Dict) -> WorkspaceRead:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cls.require_member(cursor, workspace_id, current_user)
            row = cursor.execute("SELECT * FROM workspaces WHERE id = ?", (workspace_id,)).fetchone()
        finally:
            conn.close()
        return _workspace_from_row(row)

    @classmethod
    async def list_workspaces(cls, current_user: Dict) -> List[WorkspaceRead]:
        """Workspaces the caller belongs to (all of them for super admins)."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            if is_super_admin(current_user):
                rows = cursor.execute("SELECT * FROM workspaces ORDER BY id ASC").fetchall()
            else:
                rows = cursor.execute(
                    """
                    SELECT w.* FROM workspaces w
                    JOIN members m ON m.workspace_id = w.id
                    WHERE m.user_id = ?
                    ORDER BY w.id ASC
                    """,
                    (current_user["user_id"],),
                ).fetchall()
        finally:
            conn.close()
        return [_workspace_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------
    @classmethod
    async def add_member(cls, workspace_id: int, data: MemberCreate, current_user: Dict) -> MemberRead:
        """Add an existing user to the workspace.  Workspace admins only."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cls.require_member(cursor, workspace_id, current_user, roles=(MemberRole.ADMIN,))
            if data.user_id is not None:
                user = cursor.execute("SELECT id FROM users WHERE id = ?", (data.user_id,)).fetchone()
            else:
                user = cursor.execute("SELECT id FROM users WHERE email = ?", (data.email,)).fetchone()
            if not user:
                raise NotFoundError("User not found")
            if cls.fetch_member(cursor, workspace_id, user["id"]):
                raise ValidationError("User is already a member of this workspace", field="user_id")
            cursor.execute(
                "INSERT INTO members (workspace_id, user_id, role, joined_at) VALUES (?, ?, ?, ?)",
                (workspace_id, user["id"], data.role.value, to_db(utcnow())),
            )
            member_id = cursor.lastrowid
            conn.commit()
            row = cursor.execute(MEMBER_SELECT + " WHERE m.id = ?", (member_id,)).fetchone()
        finally:
            conn.close()
        logger.info("User %s added to workspace %s as %s", row["user_id"], workspace_id, data.role.value)
        return _member_from_row(row)

    @classmethod
    async def list_members(cls, workspace_id: int, current_user: Dict) -> List[MemberRead]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cls.require_member(cursor, workspace_id, current_user)
            rows = cursor.execute(
                MEMBER_SELECT + " WHERE m.workspace_id = ? ORDER BY m.id ASC",
                (workspace_id,),
            ).fetchall()
        finally:
            conn.close()
        return [_member_from_row(r) for r in rows]

    @classmethod
    async def get_member(cls, workspace_id: int, user_id: int) -> Optional[MemberRead]:
        conn = get_connection()
        try:
            row = conn.execute(
                MEMBER_SELECT + " WHERE m.workspace_id = ? AND m.user_id = ?",
                (workspace_id, user_id),
            ).fetchone()
        finally:
            conn.close()
        return _member_from_row(row) if row else None
