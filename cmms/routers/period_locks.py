from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from cmms.core.authorization import Role, require_role
from cmms.core.clock import Clock
from cmms.deps.auth import actor_id, company_scope
from cmms.deps.clock import get_clock
from cmms.services import period_lock_service

router = APIRouter(prefix="/period-locks", tags=["Period Locks"])


class PeriodRequest(BaseModel):
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)


class PeriodLockResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    year: int
    month: int
    is_locked: bool
    total_material_cost_cents: int
    total_labor_cost_cents: int
    total_fuel_cost_cents: int
    total_service_cost_cents: int
    total_other_cost_cents: int
    total_cost_cents: int
    jobs_closed: int


@router.post("", response_model=PeriodLockResponse)
def lock_period(
    payload: PeriodRequest,
    request: Request,
    _role=Depends(require_role(Role.MANAGER)),
    clock: Clock = Depends(get_clock),
):
    return period_lock_service.lock_period(
        company_scope(request),
        payload.year,
        payload.month,
        actor_id(request),
        clock=clock,
    )


@router.post("/unlock", response_model=PeriodLockResponse)
def unlock_period(
    payload: PeriodRequest,
    request: Request,
    _role=Depends(require_role(Role.ADMIN)),
):
    return period_lock_service.unlock_period(
        company_scope(request),
        payload.year,
        payload.month,
        actor_id(request),
    )
