"""
Pydantic schemas for workspaces and their members.

A workspace is the tenant boundary: services, tasks and notifications
all belong to exactly one workspace, and every read or write checks
that the caller is a member of it.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class MemberRole(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VISITOR = "VISITOR"
    CUSTOMER = "CUSTOMER"


class WorkspaceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    with_review_stage: bool = True
    kpi_completion_weight: int = Field(30, ge=0, le=100)
    kpi_productivity_weight: int = Field(20, ge=0, le=100)
    kpi_sla_weight: int = Field(20, ge=0, le=100)
    kpi_collaboration_weight: int = Field(15, ge=0, le=100)
    kpi_review_weight: int = Field(15, ge=0, le=100)

    @model_validator(mode="after")
    def check_weights(self) -> "WorkspaceCreate":
        total = (
            self.kpi_completion_weight
            + self.kpi_productivity_weight
            + self.kpi_sla_weight
            + self.kpi_collaboration_weight
            + self.kpi_review_weight
        )
        if total != 100:
            raise ValueError(f"KPI weights must add up to 100 (got {total})")
        return self


class WorkspaceRead(BaseModel):
    id: int
    name: str
    created_by: Optional[int] = None
    with_review_stage: bool
    kpi_completion_weight: int
    kpi_productivity_weight: int
    kpi_sla_weight: int
    kpi_collaboration_weight: int
    kpi_review_weight: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MemberCreate(BaseModel):
    """Add an existing user to a workspace, by id or by email."""

    user_id: Optional[int] = None
    email: Optional[str] = None
    role: MemberRole = MemberRole.MEMBER

    @model_validator(mode="after")
    def check_identity(self) -> "MemberCreate":
        if self.user_id is None and not self.email:
            raise ValueError("Either user_id or email is required")
        if self.email:
            self.email = self.email.strip().lower()
        return self


class MemberRead(BaseModel):
    id: int
    workspace_id: int
    user_id: int
    name: Optional[str] = None
    email: str
    role: MemberRole
    joined_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MemberKPI(BaseModel):
    member_id: int
    user_id: int
    name: Optional[str] = None
    kpi_score: int
    tasks_assigned: int
    tasks_completed: int
    completion_rate: float
    sla_compliance: float
    collaboration_score: float
    review_score: float


class WorkspaceKPI(BaseModel):
    workspace_id: int
    members: List[MemberKPI]
