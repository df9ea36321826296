from typing import List

from fastapi import APIRouter, Depends, Request

from cmms.core.authorization import Role, require_role
from cmms.core.clock import Clock
from cmms.core.errors import NotFoundError
from cmms.database import SessionLocal
from cmms.deps.auth import AuthContext, actor_id, company_scope, require_auth
from cmms.deps.clock import get_clock
from cmms.models.asset import Asset
from cmms.schemas.pm import (
    MeterReadingCreate,
    MeterReadingResult,
    OverrideTokenRequest,
    OverrideTokenResponse,
    PMCheckRequest,
    PMCheckResponse,
    PMScheduleCreate,
    PMScheduleResponse,
    PMStatusEntry,
)
from cmms.services import pm_engine
from cmms.services.auth_service import create_meter_override_token, override_ttl_minutes

router = APIRouter(prefix="/pm", tags=["Preventive Maintenance"])


@router.post("/schedules", response_model=PMScheduleResponse)
def configure_schedule(
    payload: PMScheduleCreate,
    request: Request,
    _role=Depends(require_role(Role.SUPERVISOR)),
    clock: Clock = Depends(get_clock),
):
    return pm_engine.configure_pm_schedule(
        company_scope(request),
        payload.asset_id,
        payload.interval_type,
        payload.interval_value,
        payload.job_title_template,
        job_description=payload.job_description,
        estimated_duration=payload.estimated_duration,
        priority=payload.priority,
        created_by=actor_id(request),
        clock=clock,
    )


@router.get("/status", response_model=List[PMStatusEntry])
def status(
    request: Request,
    _auth: AuthContext = Depends(require_auth),
):
    return pm_engine.pm_status(company_scope(request))


@router.post("/check", response_model=PMCheckResponse)
def check(
    payload: PMCheckRequest,
    request: Request,
    _role=Depends(require_role(Role.SUPERVISOR)),
    clock: Clock = Depends(get_clock),
):
    generated = pm_engine.check_and_generate_pm_jobs(
        company_scope(request),
        payload.asset_id,
        actor_id(request),
        clock=clock,
    )
    return {"generated_jobs": generated}


@router.post("/meter-readings", response_model=MeterReadingResult)
def record_meter_reading(
    payload: MeterReadingCreate,
    request: Request,
    _auth: AuthContext = Depends(require_auth),
    clock: Clock = Depends(get_clock),
):
    result = pm_engine.record_meter_reading(
        payload.asset_id,
        payload.reading,
        payload.effective_date,
        company_id=company_scope(request),
        override_token=payload.override_token,
        photo_url=payload.photo_url,
        notes=payload.notes,
        job_id=payload.job_id,
        actor_id=actor_id(request),
        clock=clock,
    )
    return {
        "reading": result.reading,
        "rollback_detected": result.rollback_detected,
        "override_applied": result.override_applied,
        "generated_jobs": result.generated_jobs,
    }


@router.post("/override-token", response_model=OverrideTokenResponse)
def issue_override_token(
    payload: OverrideTokenRequest,
    request: Request,
    _role=Depends(require_role(Role.SUPERVISOR)),
):
    company_id = company_scope(request)
    db = SessionLocal()
    try:
        asset = (
            db.query(Asset.id)
            .filter(Asset.id == int(payload.asset_id), Asset.company_id == company_id)
            .first()
        )
        if asset is None:
            raise NotFoundError(f"Asset {payload.asset_id} not found")
    finally:
        db.close()

    ttl = override_ttl_minutes()
    token = create_meter_override_token(
        actor_id(request),
        company_id,
        int(payload.asset_id),
        ttl_minutes=ttl,
    )
    return {"override_token": token, "asset_id": int(payload.asset_id), "expires_in_minutes": ttl}
