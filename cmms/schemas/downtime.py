from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from cmms.models.enums import DowntimeCategory


class DowntimeStart(BaseModel):
    asset_id: int
    category: DowntimeCategory = DowntimeCategory.BREAKDOWN
    opportunity_cost_per_hour_cents: Optional[int] = Field(default=None, ge=0)
    job_id: Optional[int] = None
    sub_category: Optional[str] = None
    notes: Optional[str] = None


class DowntimeEnd(BaseModel):
    notes: Optional[str] = None


class DowntimeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    asset_id: int
    job_id: Optional[int]
    category: str
    sub_category: Optional[str]
    notes: Optional[str]
    started_at: datetime
    ended_at: Optional[datetime]
    duration_minutes: Optional[int]
    opportunity_cost_per_hour_cents: Optional[int]
    lost_opportunity_cost_cents: Optional[int]
    resolved_by: Optional[int]
