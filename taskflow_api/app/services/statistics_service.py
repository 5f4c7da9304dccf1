"""
Workspace KPI analytics.

Each non‑customer member gets a 0‑100 score combining five ratios with
the workspace's KPI weights (percentages adding up to 100):

* completion rate: assigned tasks that are done;
* productivity: contribution points (1 per assigned task done, 0.5 per
  followed task done, 0.3 per reviewed task done) normalised against
  10 points and capped at 1;
* SLA compliance: tasks with a due date that were finished on time or
  are not overdue yet (1 when no task has a due date);
* collaboration: followed (not assigned) tasks that are done;
* review: reviewed tasks done out of those done or in review; only
  counted when the workspace uses a review stage.

Archived tasks are ignored.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from taskflow_api.app.core.db import get_connection
from taskflow_api.app.core.timeutils import from_db, utcnow
from taskflow_api.app.schemas.task import TaskStatus
from taskflow_api.app.schemas.workspace import MemberKPI, MemberRole, WorkspaceKPI
from taskflow_api.app.services.task_service import load_followers
from taskflow_api.app.services.workspace_service import WorkspaceService

logger = logging.getLogger(__name__)

ASSIGNED_POINTS = 1.0
FOLLOWER_POINTS = 0.5
REVIEWER_POINTS = 0.3
PRODUCTIVITY_NORMALISER = 10


def _ratio(part: int, whole: int, default: float = 0.0) -> float:
    return part / whole if whole else default


def compute_member_kpi(
    member: Dict[str, Any],
    tasks: List[Dict[str, Any]],
    workspace: Dict[str, Any],
    now: Optional[datetime] = None,
) -> MemberKPI:
    """Score one member against the workspace's (non‑archived) tasks."""
    now = now or utcnow()
    member_id = member["id"]
    done = TaskStatus.DONE.value

    assigned = [t for t in tasks if t["assignee_id"] == member_id]
    assigned_done = [t for t in assigned if t["status"] == done]
    following = [t for t in tasks if t["assignee_id"] != member_id and member_id in t["followers"]]
    following_done = [t for t in following if t["status"] == done]
    reviewed_done = sum(1 for t in tasks if t["reviewer_id"] == member_id and t["status"] == done)
    reviewed_pending = sum(
        1 for t in tasks if t["reviewer_id"] == member_id and t["status"] == TaskStatus.IN_REVIEW.value
    )

    completion_rate = _ratio(len(assigned_done), len(assigned))
    contribution = (
        len(assigned_done) * ASSIGNED_POINTS
        + len(following_done) * FOLLOWER_POINTS
        + reviewed_done * REVIEWER_POINTS
    )
    productivity = min(contribution / PRODUCTIVITY_NORMALISER, 1.0)

    with_due = [t for t in assigned if t["due_date"] is not None]
    within_sla = 0
    for task in with_due:
        if task["status"] == done:
            # updated_at approximates the completion time.
            within_sla += int(task["updated_at"] is not None and task["updated_at"] <= task["due_date"])
        else:
            within_sla += int(task["due_date"] >= now)
    sla_compliance = _ratio(within_sla, len(with_due), default=1.0)

    collaboration = _ratio(len(following_done), len(following))
    with_review = bool(workspace["with_review_stage"])
    review = _ratio(reviewed_done, reviewed_done + reviewed_pending) if with_review else 0.0

    score = (
        completion_rate * workspace["kpi_completion_weight"] / 100
        + productivity * workspace["kpi_productivity_weight"] / 100
        + sla_compliance * workspace["kpi_sla_weight"] / 100
        + collaboration * workspace["kpi_collaboration_weight"] / 100
        + (review * workspace["kpi_review_weight"] / 100 if with_review else 0)
    )
    return MemberKPI(
        member_id=member_id,
        user_id=member["user_id"],
        name=member.get("name"),
        kpi_score=round(score * 100),
        tasks_assigned=len(assigned),
        tasks_completed=len(assigned_done),
        completion_rate=round(completion_rate, 4),
        sla_compliance=round(sla_compliance, 4),
        collaboration_score=round(collaboration, 4),
        review_score=round(review, 4),
    )


class StatisticsService:
    """Aggregated metrics for workspace administrators."""

    @classmethod
    async def workspace_kpi(cls, workspace_id: int, current_user: Dict) -> WorkspaceKPI:
        """KPI of every non‑customer member, best score first.

        Only workspace admins and super administrators may read it.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            WorkspaceService.require_member(cursor, workspace_id, current_user, roles=(MemberRole.ADMIN,))
            workspace = dict(cursor.execute("SELECT * FROM workspaces WHERE id = ?", (workspace_id,)).fetchone())
            members = WorkspaceService.fetch_members(cursor, workspace_id)
            rows = cursor.execute(
                """
                SELECT id, status, assignee_id, reviewer_id, followed_ids, due_date, updated_at
                FROM tasks WHERE workspace_id = ? AND status != ?
                """,
                (workspace_id, TaskStatus.ARCHIVED.value),
            ).fetchall()
        finally:
            conn.close()

        tasks = [
            {
                "id": r["id"],
                "status": r["status"],
                "assignee_id": r["assignee_id"],
                "reviewer_id": r["reviewer_id"],
                "followers": load_followers(r["followed_ids"]),
                "due_date": from_db(r["due_date"]),
                "updated_at": from_db(r["updated_at"]),
            }
            for r in rows
        ]
        now = utcnow()
        scores = [
            compute_member_kpi(member, tasks, workspace, now)
            for member in members
            if member["role"] != MemberRole.CUSTOMER
        ]
        scores.sort(key=lambda kpi: kpi.kpi_score, reverse=True)
        return WorkspaceKPI(workspace_id=workspace_id, members=scores)
