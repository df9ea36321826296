from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from cmms.models.enums import IntervalType, JobPriority


class PMScheduleCreate(BaseModel):
    asset_id: int
    interval_type: IntervalType
    interval_value: float = Field(gt=0)
    job_title_template: str = Field(min_length=1)
    job_description: Optional[str] = None
    estimated_duration: Optional[float] = None
    priority: JobPriority = JobPriority.MEDIUM


class PMScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    asset_id: int
    interval_type: str
    interval_value: float
    last_service_meter: float
    last_service_date: Optional[datetime]
    next_due_meter: float
    job_title_template: str
    priority: str
    is_active: bool


class PMStatusEntry(BaseModel):
    schedule_id: int
    asset_id: int
    asset_code: str
    asset_description: str
    interval_type: str
    is_due: bool
    is_overdue: bool
    current_meter: float
    next_due_meter: float
    hours_overdue: Optional[float]
    days_overdue: Optional[float]


class PMCheckRequest(BaseModel):
    asset_id: Optional[int] = None


class PMCheckResponse(BaseModel):
    generated_jobs: List[int]


class MeterReadingCreate(BaseModel):
    asset_id: int
    reading: float = Field(ge=0)
    effective_date: Optional[datetime] = None
    override_token: Optional[str] = None
    photo_url: Optional[str] = None
    notes: Optional[str] = None
    job_id: Optional[int] = None


class MeterReadingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    asset_id: int
    reading: float
    previous_reading: Optional[float]
    reading_date: datetime
    effective_date: datetime
    is_late_entry: bool
    is_rollback: bool
    rollback_handled: bool
    override_by: Optional[int]


class MeterReadingResult(BaseModel):
    reading: MeterReadingResponse
    rollback_detected: bool
    override_applied: bool
    generated_jobs: List[int]


class OverrideTokenRequest(BaseModel):
    asset_id: int


class OverrideTokenResponse(BaseModel):
    override_token: str
    asset_id: int
    expires_in_minutes: int
