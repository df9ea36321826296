from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EmployeeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: Optional[str] = Field(default=None, max_length=320)
    role: str = "TECHNICIAN"
    hourly_rate_cents: int = Field(default=0, ge=0)


class EmployeeUpdate(BaseModel):
    role: Optional[str] = None
    hourly_rate_cents: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    name: str
    email: Optional[str]
    role: str
    hourly_rate_cents: int
    is_active: bool
    created_at: datetime
