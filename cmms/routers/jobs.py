from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from cmms.core.authorization import Role, require_role
from cmms.core.clock import Clock
from cmms.database import SessionLocal
from cmms.deps.auth import AuthContext, actor_id, company_scope, require_auth
from cmms.deps.clock import get_clock
from cmms.models.job import Job
from cmms.schemas.job import (
    CloseCheckResponse,
    JobCloseRequest,
    JobCreate,
    JobEventResponse,
    JobResponse,
    JobTransitionRequest,
    SnapshotVerifyResponse,
)
from cmms.services import job_state_machine, snapshot_service

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.post("", response_model=JobResponse)
def create_job(
    payload: JobCreate,
    request: Request,
    _auth: AuthContext = Depends(require_auth),
    clock: Clock = Depends(get_clock),
):
    return job_state_machine.create_job(
        company_scope(request),
        payload.asset_id,
        payload.title,
        job_type=payload.type,
        priority=payload.priority,
        description=payload.description,
        failure_type_id=payload.failure_type_id,
        safety_photo_required=payload.safety_photo_required,
        created_by_id=actor_id(request),
        clock=clock,
    )


@router.get("", response_model=List[JobResponse])
def list_jobs(
    request: Request,
    status: Optional[str] = None,
    asset_id: Optional[int] = None,
    _auth: AuthContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        q = db.query(Job).filter(
            Job.company_id == company_scope(request),
            Job.is_void.is_(False),
        )
        if status is not None:
            q = q.filter(Job.status == status.upper())
        if asset_id is not None:
            q = q.filter(Job.asset_id == int(asset_id))
        return q.order_by(Job.id.asc()).all()
    finally:
        db.close()


@router.get("/{job_id}", response_model=JobResponse)
def get_job(
    job_id: int,
    request: Request,
    _auth: AuthContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        row = (
            db.query(Job)
            .filter(
                Job.id == int(job_id),
                Job.company_id == company_scope(request),
            )
            .first()
        )
        if row is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return row
    finally:
        db.close()


@router.get("/{job_id}/events", response_model=List[JobEventResponse])
def list_job_events(
    job_id: int,
    request: Request,
    _auth: AuthContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        owned = (
            db.query(Job.id)
            .filter(Job.id == int(job_id), Job.company_id == company_scope(request))
            .first()
        )
        if owned is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job_state_machine.job_events(db, job_id)
    finally:
        db.close()


@router.post("/{job_id}/status", response_model=JobResponse)
def transition_job(
    job_id: int,
    payload: JobTransitionRequest,
    request: Request,
    _auth: AuthContext = Depends(require_auth),
    clock: Clock = Depends(get_clock),
):
    return job_state_machine.transition_job(
        job_id,
        payload.action,
        actor_id(request),
        payload.model_dump(exclude={"action"}, exclude_none=True),
        company_id=company_scope(request),
        clock=clock,
    )


@router.get("/{job_id}/close-check", response_model=CloseCheckResponse)
def close_check(
    job_id: int,
    request: Request,
    _auth: AuthContext = Depends(require_auth),
):
    can_close, reasons = job_state_machine.can_close_job(job_id, company_id=company_scope(request))
    return {"job_id": int(job_id), "can_close": can_close, "reasons": reasons}


@router.post("/{job_id}/close", response_model=JobResponse)
def close_job(
    job_id: int,
    payload: JobCloseRequest,
    request: Request,
    _role=Depends(require_role(Role.SUPERVISOR)),
    clock: Clock = Depends(get_clock),
):
    return job_state_machine.close_job(
        job_id,
        actor_id(request),
        safety_photo_url=payload.safety_photo_url,
        closure_notes=payload.closure_notes,
        company_id=company_scope(request),
        clock=clock,
    )


@router.get("/{job_id}/snapshot/verify", response_model=SnapshotVerifyResponse)
def verify_snapshot(
    job_id: int,
    request: Request,
    _role=Depends(require_role(Role.MANAGER)),
):
    snapshot = snapshot_service.verify_cost_snapshot(
        job_id, company_id=company_scope(request)
    )
    return {
        "job_id": snapshot.job_id,
        "valid": True,
        "data_hash": snapshot.data_hash,
        "total_cost_cents": snapshot.total_cost_cents,
        "hash_generated_at": snapshot.hash_generated_at,
    }
