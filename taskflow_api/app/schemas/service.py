"""
Pydantic schemas for services (projects inside a workspace).

A service may be *routinary*: the scheduler then creates a task for it
on every cadence boundary (see ``RoutinaryTaskService``).  Services can
also carry a checklist template that is copied into each new task.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class RoutinaryFrequency(str, Enum):
    BIDAILY = "BIDAILY"  # two tasks per day, one run per day
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    BIYEARLY = "BIYEARLY"  # twice a year
    YEARLY = "YEARLY"


class ServiceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    workspace_id: int
    is_public: bool = False
    sla_days: Optional[int] = Field(None, ge=1, le=365)
    include_weekends: bool = False
    is_routinary: bool = False
    routinary_frequency: Optional[RoutinaryFrequency] = None
    routinary_start_date: Optional[datetime] = None

    @model_validator(mode="after")
    def check_routinary(self) -> "ServiceCreate":
        self.name = self.name.strip()
        if not self.name:
            raise ValueError("name is required")
        if self.is_routinary and self.routinary_frequency is None:
            raise ValueError("routinary_frequency is required for routinary services")
        return self


class ServiceUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    is_public: Optional[bool] = None
    sla_days: Optional[int] = Field(None, ge=1, le=365)
    include_weekends: Optional[bool] = None
    is_routinary: Optional[bool] = None
    routinary_frequency: Optional[RoutinaryFrequency] = None
    routinary_start_date: Optional[datetime] = None


class ServiceRead(BaseModel):
    id: int
    workspace_id: int
    name: str
    is_public: bool
    sla_days: Optional[int] = None
    include_weekends: bool
    is_routinary: bool
    routinary_frequency: Optional[RoutinaryFrequency] = None
    routinary_start_date: Optional[datetime] = None
    routinary_next_run_date: Optional[datetime] = None
    routinary_last_run_date: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ChecklistItemIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None
    require_photo: bool = False
    require_remarks: bool = False


class ChecklistSectionIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    items: List[ChecklistItemIn] = Field(default_factory=list)


class ChecklistReplace(BaseModel):
    sections: List[ChecklistSectionIn] = Field(default_factory=list)


class ChecklistItemRead(ChecklistItemIn):
    id: int
    order: int


class ChecklistSectionRead(BaseModel):
    id: int
    name: str
    order: int
    items: List[ChecklistItemRead] = Field(default_factory=list)


class ChecklistRead(BaseModel):
    service_id: int
    sections: List[ChecklistSectionRead] = Field(default_factory=list)
