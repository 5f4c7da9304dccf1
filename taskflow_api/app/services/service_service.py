"""
Service layer for services (projects) inside a workspace.

Writes are limited to workspace admins.  Routinary settings are kept
consistent here: a routinary service always has a frequency and a next
run date.  When the schedule changes, the next run date is reset to the
start date, or to the start of today when no start date is set, so the
next scheduler run picks the service up.
"""

import logging
import sqlite3
from typing import Dict, List, Optional

from taskflow_api.app.core.db import get_connection
from taskflow_api.app.core.errors import NotFoundError, ValidationError
from taskflow_api.app.core.timeutils import from_db, start_of_local_day, to_db, utcnow
from taskflow_api.app.schemas.service import ServiceCreate, ServiceRead, ServiceUpdate
from taskflow_api.app.schemas.workspace import MemberRole
from taskflow_api.app.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)

ROUTINARY_FIELDS = {"is_routinary", "routinary_frequency", "routinary_start_date"}


def service_from_row(row: sqlite3.Row) -> ServiceRead:
    data = dict(row)
    for key in ("is_public", "include_weekends", "is_routinary"):
        data[key] = bool(data[key])
    for key in ("routinary_start_date", "routinary_next_run_date", "routinary_last_run_date"):
        data[key] = from_db(data.get(key))
    data.pop("created_at", None)
    data.pop("updated_at", None)
    return ServiceRead(**data)


def _initial_next_run(start_date) -> str:
    return to_db(start_date) if start_date else to_db(start_of_local_day(utcnow()))


class ServiceService:
    """CRUD for services."""

    @staticmethod
    def _fetch(cursor: sqlite3.Cursor, service_id: int) -> sqlite3.Row:
        row = cursor.execute("SELECT * FROM services WHERE id = ?", (service_id,)).fetchone()
        if not row:
            raise NotFoundError("Service not found")
        return row

    @classmethod
    async def create_service(cls, data: ServiceCreate, current_user: Dict) -> ServiceRead:
        now = to_db(utcnow())
        next_run: Optional[str] = None
        if data.is_routinary:
            next_run = _initial_next_run(data.routinary_start_date)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            WorkspaceService.require_member(cursor, data.workspace_id, current_user, roles=(MemberRole.ADMIN,))
            cursor.execute(
                """
                INSERT INTO services (
                    workspace_id, name, is_public, sla_days, include_weekends,
                    is_routinary, routinary_frequency, routinary_start_date,
                    routinary_next_run_date, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data.workspace_id,
                    data.name,
                    int(data.is_public),
                    data.sla_days,
                    int(data.include_weekends),
                    int(data.is_routinary),
                    data.routinary_frequency.value if data.routinary_frequency else None,
                    to_db(data.routinary_start_date),
                    next_run,
                    now,
                    now,
                ),
            )
            service_id = cursor.lastrowid
            conn.commit()
            row = cls._fetch(cursor, service_id)
        finally:
            conn.close()
        logger.info("Service %s created in workspace %s", service_id, data.workspace_id)
        return service_from_row(row)

    @classmethod
    async def update_service(cls, service_id: int, data: ServiceUpdate, current_user: Dict) -> ServiceRead:
        changes = data.model_dump(exclude_unset=True)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            existing = cls._fetch(cursor, service_id)
            WorkspaceService.require_member(
                cursor, existing["workspace_id"], current_user, roles=(MemberRole.ADMIN,)
            )
            if not changes:
                return service_from_row(existing)

            merged = dict(existing)
            merged.update(changes)
            if merged.get("is_routinary") and not merged.get("routinary_frequency"):
                raise ValidationError(
                    "routinary_frequency is required for routinary services",
                    field="routinary_frequency",
                )

            values: Dict[str, object] = {}
            for key, value in changes.items():
                if key == "name":
                    if value is None or not value.strip():
                        raise ValidationError("name is required", field="name")
                    value = value.strip()
                elif key in ("is_public", "include_weekends", "is_routinary"):
                    if value is None:
                        raise ValidationError(f"{key} cannot be null", field=key)
                    value = int(value)
                elif key == "routinary_frequency":
                    value = value.value if value is not None else None
                elif key == "routinary_start_date":
                    value = to_db(value)
                values[key] = value

            if ROUTINARY_FIELDS & changes.keys():
                if merged.get("is_routinary"):
                    start = changes.get("routinary_start_date") or from_db(existing["routinary_start_date"])
                    values["routinary_next_run_date"] = _initial_next_run(start)
                else:
                    values["routinary_next_run_date"] = None

            values["updated_at"] = to_db(utcnow())
            assignments = ", ".join(f"{key} = ?" for key in values)
            cursor.execute(
                f"UPDATE services SET {assignments} WHERE id = ?",
                (*values.values(), service_id),
            )
            conn.commit()
            row = cls._fetch(cursor, service_id)
        finally:
            conn.close()
        return service_from_row(row)

    @classmethod
    async def get_service(cls, service_id: int, current_user: Dict) -> ServiceRead:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch(cursor, service_id)
            WorkspaceService.require_member(cursor, row["workspace_id"], current_user)
        finally:
            conn.close()
        return service_from_row(row)

    @classmethod
    async def list_services(cls, workspace_id: int, current_user: Dict) -> List[ServiceRead]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            WorkspaceService.require_member(cursor, workspace_id, current_user)
            rows = cursor.execute(
                "SELECT * FROM services WHERE workspace_id = ? ORDER BY name COLLATE NOCASE ASC",
                (workspace_id,),
            ).fetchall()
        finally:
            conn.close()
        return [service_from_row(r) for r in rows]
