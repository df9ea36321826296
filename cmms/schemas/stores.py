from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RequestLineCreate(BaseModel):
    item_id: int
    requested_qty: float = Field(gt=0)
    approved_qty: Optional[float] = Field(default=None, ge=0)


class ItemRequestCreate(BaseModel):
    job_id: int
    lines: List[RequestLineCreate] = Field(min_length=1)


class RequestLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    request_id: int
    item_id: int
    requested_qty: float
    approved_qty: float
    issued_qty: float
    returned_qty: float
    unit_cost_cents: Optional[int]
    total_cost_cents: Optional[int]


class ItemRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: int
    status: str
    lines: List[RequestLineResponse]


class QuantityRequest(BaseModel):
    quantity: Optional[float] = Field(default=None, gt=0)


class FuelIssueCreate(BaseModel):
    asset_id: int
    meter_reading: float = Field(ge=0)
    quantity_liters: float = Field(gt=0)
    unit_price_cents: Optional[int] = Field(default=None, ge=0)
    job_id: Optional[int] = None
    operator_id: Optional[int] = None
    meter_broken: bool = False
    fuel_type: str = "DIESEL"
    override_token: Optional[str] = None


class FuelIssueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    asset_id: int
    job_id: Optional[int]
    meter_reading: Optional[float]
    previous_reading: Optional[float]
    meter_validated: bool
    meter_broken: bool
    quantity_liters: float
    unit_price_cents: Optional[int]
    total_cost_cents: Optional[int]
    distance_hours: Optional[float]
    consumption_rate: Optional[float]
    variance_percent: Optional[float]
    is_abnormal: bool
    created_at: datetime
