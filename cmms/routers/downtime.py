from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from cmms.core.clock import Clock
from cmms.deps.auth import AuthContext, actor_id, company_scope, require_auth
from cmms.deps.clock import get_clock
from cmms.schemas.downtime import DowntimeEnd, DowntimeResponse, DowntimeStart
from cmms.services import downtime_service

router = APIRouter(prefix="/downtime", tags=["Downtime"])


@router.post("/start", response_model=DowntimeResponse)
def start_downtime(
    payload: DowntimeStart,
    request: Request,
    _auth: AuthContext = Depends(require_auth),
    clock: Clock = Depends(get_clock),
):
    return downtime_service.start_downtime(
        payload.asset_id,
        payload.category,
        payload.opportunity_cost_per_hour_cents,
        job_id=payload.job_id,
        company_id=company_scope(request),
        sub_category=payload.sub_category,
        notes=payload.notes,
        clock=clock,
    )


@router.post("/{downtime_log_id}/end", response_model=DowntimeResponse)
def end_downtime(
    downtime_log_id: int,
    request: Request,
    payload: Optional[DowntimeEnd] = None,
    _auth: AuthContext = Depends(require_auth),
    clock: Clock = Depends(get_clock),
):
    return downtime_service.end_downtime(
        downtime_log_id,
        company_id=company_scope(request),
        notes=None if payload is None else payload.notes,
        resolved_by=actor_id(request),
        clock=clock,
    )


@router.get("/availability/{asset_id}")
def asset_availability(
    asset_id: int,
    request: Request,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    _auth: AuthContext = Depends(require_auth),
    clock: Clock = Depends(get_clock),
):
    result = downtime_service.calculate_asset_availability(
        asset_id,
        year,
        month,
        company_id=company_scope(request),
        clock=clock,
    )
    payload = result.to_dict()
    payload["traffic_light"] = downtime_service.classify_availability(result.availability_percent)
    return payload


@router.get("/dashboard")
def dashboard(
    request: Request,
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    _auth: AuthContext = Depends(require_auth),
    clock: Clock = Depends(get_clock),
):
    return downtime_service.availability_dashboard(
        company_scope(request),
        year,
        month,
        clock=clock,
    )


@router.get("/pareto")
def pareto(
    request: Request,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    _auth: AuthContext = Depends(require_auth),
):
    return downtime_service.downtime_pareto(company_scope(request), year, month)
