from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from cmms.models.enums import JobPriority, JobType


class JobCreate(BaseModel):
    asset_id: int
    title: str = Field(min_length=1)
    description: Optional[str] = None
    type: JobType = JobType.CORRECTIVE
    priority: JobPriority = JobPriority.MEDIUM
    failure_type_id: Optional[int] = None
    safety_photo_required: bool = False


class JobTransitionRequest(BaseModel):
    action: str
    assigned_to_id: Optional[int] = None
    safety_photo_url: Optional[str] = None
    closure_notes: Optional[str] = None


class JobCloseRequest(BaseModel):
    safety_photo_url: Optional[str] = None
    closure_notes: Optional[str] = None


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    asset_id: int
    failure_type_id: Optional[int]
    pm_schedule_id: Optional[int]
    title: str
    description: Optional[str]
    status: str
    priority: str
    type: str
    created_by_id: Optional[int]
    assigned_to_id: Optional[int]
    created_at: datetime
    started_at: Optional[datetime]
    paused_at: Optional[datetime]
    completed_at: Optional[datetime]
    closed_at: Optional[datetime]
    total_pause_seconds: int
    material_cost_cents: int
    labor_cost_cents: int
    fuel_cost_cents: int
    service_cost_cents: int
    other_cost_cents: int
    total_cost_cents: int
    safety_photo_required: bool
    safety_photo_url: Optional[str]
    closure_notes: Optional[str]


class JobEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    from_status: Optional[str]
    to_status: str
    actor_id: Optional[int]
    occurred_at: datetime


class CloseCheckResponse(BaseModel):
    job_id: int
    can_close: bool
    reasons: List[str]


class SnapshotVerifyResponse(BaseModel):
    job_id: int
    valid: bool
    data_hash: str
    total_cost_cents: int
    hash_generated_at: datetime
