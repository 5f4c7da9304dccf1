"""
Checklist templates attached to services.

A service's checklist is a list of ordered sections, each holding
ordered items.  Tasks do not reference the template: when a task is
created for the service it receives a JSON snapshot of the checklist
(``build_task_checklist``) in which every item starts as ``pending``,
so later template edits never rewrite existing tasks.
"""

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from taskflow_api.app.core.db import get_connection, transaction
from taskflow_api.app.core.errors import NotFoundError
from taskflow_api.app.schemas.service import (
    ChecklistItemRead,
    ChecklistRead,
    ChecklistSectionIn,
    ChecklistSectionRead,
)
from taskflow_api.app.schemas.workspace import MemberRole
from taskflow_api.app.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)


def _load_sections(cursor: sqlite3.Cursor, service_id: int) -> List[ChecklistSectionRead]:
    sections = cursor.execute(
        "SELECT id, name, position FROM checklist_sections WHERE service_id = ? ORDER BY position, id",
        (service_id,),
    ).fetchall()
    result: List[ChecklistSectionRead] = []
    for section in sections:
        items = cursor.execute(
            """
            SELECT id, title, description, position, require_photo, require_remarks
            FROM checklist_items WHERE section_id = ? ORDER BY position, id
            """,
            (section["id"],),
        ).fetchall()
        result.append(
            ChecklistSectionRead(
                id=section["id"],
                name=section["name"],
                order=section["position"],
                items=[
                    ChecklistItemRead(
                        id=item["id"],
                        title=item["title"],
                        description=item["description"],
                        order=item["position"],
                        require_photo=bool(item["require_photo"]),
                        require_remarks=bool(item["require_remarks"]),
                    )
                    for item in items
                ],
            )
        )
    return result


def build_task_checklist(cursor: sqlite3.Cursor, service_id: Optional[int]) -> Optional[Dict[str, Any]]:
    """Snapshot the service's checklist for a new task.

    Returns ``None`` when the service has no checklist sections.
    """
    if service_id is None:
        return None
    sections = _load_sections(cursor, service_id)
    if not sections:
        return None
    return {
        "sections": [
            {
                "id": section.id,
                "name": section.name,
                "order": section.order,
                "items": [
                    {
                        "id": item.id,
                        "title": item.title,
                        "description": item.description,
                        "order": item.order,
                        "require_photo": item.require_photo,
                        "require_remarks": item.require_remarks,
                        "status": "pending",
                        "remarks": None,
                    }
                    for item in section.items
                ],
            }
            for section in sections
        ]
    }


def dump_checklist(checklist: Optional[Dict[str, Any]]) -> Optional[str]:
    return json.dumps(checklist) if checklist else None


class ChecklistService:
    """Read and replace a service's checklist template."""

    @staticmethod
    def _workspace_of(cursor: sqlite3.Cursor, service_id: int) -> int:
        row = cursor.execute("SELECT workspace_id FROM services WHERE id = ?", (service_id,)).fetchone()
        if not row:
            raise NotFoundError("Service not found")
        return row["workspace_id"]

    @classmethod
    async def get_checklist(cls, service_id: int, current_user: Dict) -> ChecklistRead:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            workspace_id = cls._workspace_of(cursor, service_id)
            WorkspaceService.require_member(cursor, workspace_id, current_user)
            sections = _load_sections(cursor, service_id)
        finally:
            conn.close()
        return ChecklistRead(service_id=service_id, sections=sections)

    @classmethod
    async def replace_checklist(
        cls,
        service_id: int,
        sections: List[ChecklistSectionIn],
        current_user: Dict,
    ) -> ChecklistRead:
        """Replace the whole checklist.  Section and item order follow the input."""
        conn = get_connection()
        try:
            with transaction(conn) as cursor:
                workspace_id = cls._workspace_of(cursor, service_id)
                WorkspaceService.require_member(cursor, workspace_id, current_user, roles=(MemberRole.ADMIN,))
                cursor.execute("DELETE FROM checklist_sections WHERE service_id = ?", (service_id,))
                for s_index, section in enumerate(sections):
                    cursor.execute(
                        "INSERT INTO checklist_sections (service_id, name, position) VALUES (?, ?, ?)",
                        (service_id, section.name.strip(), s_index),
                    )
                    section_id = cursor.lastrowid
                    for i_index, item in enumerate(section.items):
                        cursor.execute(
                            """
                            INSERT INTO checklist_items
                                (section_id, title, description, position, require_photo, require_remarks)
                            VALUES (?, ?, ?, ?, ?, ?)
                            """,
                            (
                                section_id,
                                item.title.strip(),
                                item.description,
                                i_index,
                                int(item.require_photo),
                                int(item.require_remarks),
                            ),
                        )
            result = _load_sections(conn.cursor(), service_id)
        finally:
            conn.close()
        logger.info("Checklist of service %s replaced (%d sections)", service_id, len(result))
        return ChecklistRead(service_id=service_id, sections=result)
