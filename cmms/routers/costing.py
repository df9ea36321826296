from datetime import datetime
from typing import Optional, Any
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from cmms.core.authorization import Role, require_role
from cmms.core.clock import Clock
from cmms.database import SessionLocal
from cmms.deps.auth import actor_id, company_scope
from cmms.deps.clock import get_clock
from cmms.models.enums import CostType
from cmms.models.job import Job
from cmms.models.job_cost_log import JobCostLog
from cmms.services import costing_service
from cmms.services.ledger_reporting_service import job_cost_totals

router = APIRouter(prefix="/costing", tags=["Costing"])


# ---------- Posting Models ----------

class CostCreate(BaseModel):
    cost_type: CostType
    amount_cents: int
    quantity: Optional[float] = None
    unit_cost_cents: Optional[int] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    item_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=500)


# ---------- Ledger Row Models ----------

class LedgerRow(BaseModel):
    id: int
    company_id: int
    job_id: int
    sequence_no: int
    cost_type: str
    description: Optional[str]
    amount_cents: int
    quantity: Optional[float]
    unit_cost_cents: Optional[int]
    running_total_cents: int
    reference_type: Optional[str]
    reference_id: Optional[str]
    item_id: Optional[int]
    created_by: Optional[int]
    created_at: str


class LedgerResponse(BaseModel):
    job_id: int
    cost_type: Optional[str]
    limit: int
    offset: int
    ledger_total_cents: int
    rows: list[LedgerRow]


# ---------- Totals Models ----------

class LedgerTotalsGroup(BaseModel):
    job_id: int
    cost_type: str
    row_count: int
    amount_cents: int


class LedgerTotalsResponse(BaseModel):
    company_id: int
    date_start: str
    date_end: str
    filters: dict[str, Any]
    groups: list[LedgerTotalsGroup]
    total_cents: int


def _row_dict(r: JobCostLog) -> dict:
    return {
        "id": r.id,
        "company_id": r.company_id,
        "job_id": r.job_id,
        "sequence_no": r.sequence_no,
        "cost_type": r.cost_type,
        "description": r.description,
        "amount_cents": r.amount_cents,
        "quantity": r.quantity,
        "unit_cost_cents": r.unit_cost_cents,
        "running_total_cents": r.running_total_cents,
        "reference_type": r.reference_type,
        "reference_id": r.reference_id,
        "item_id": r.item_id,
        "created_by": r.created_by,
        "created_at": r.created_at.isoformat(),
    }


def _ensure_job_visible(db: Session, job_id: int, company_id: int) -> None:
    owned = db.query(Job.id).filter(Job.id == int(job_id), Job.company_id == int(company_id)).first()
    if owned is None:
        raise HTTPException(status_code=404, detail="Job not found")


# ---------- Endpoints ----------

@router.post("/job/{job_id}/costs", response_model=LedgerRow)
def add_cost(
    job_id: int,
    payload: CostCreate,
    request: Request,
    _role=Depends(require_role(Role.SUPERVISOR)),
    clock: Clock = Depends(get_clock),
):
    entry = costing_service.add_cost(
        job_id,
        payload.cost_type,
        payload.amount_cents,
        quantity=payload.quantity,
        unit_cost_cents=payload.unit_cost_cents,
        reference_type=payload.reference_type,
        reference_id=payload.reference_id,
        item_id=payload.item_id,
        description=payload.description,
        actor_id=actor_id(request),
        company_id=company_scope(request),
        clock=clock,
    )
    return _row_dict(entry)


@router.get("/job/{job_id}/ledger", response_model=LedgerResponse)
def get_job_ledger(
    job_id: int,
    request: Request,
    cost_type: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0, le=1_000_000),
    _role=Depends(require_role(Role.MANAGER)),
):
    db = SessionLocal()
    try:
        _ensure_job_visible(db, job_id, company_scope(request))

        q = db.query(JobCostLog).filter(
            JobCostLog.company_id == company_scope(request),
            JobCostLog.job_id == int(job_id),
        )

        if cost_type is not None:
            q = q.filter(JobCostLog.cost_type == cost_type.upper())

        rows = (
            q.order_by(JobCostLog.sequence_no.asc())
            .limit(int(limit))
            .offset(int(offset))
            .all()
        )

        return {
            "job_id": int(job_id),
            "cost_type": cost_type,
            "limit": int(limit),
            "offset": int(offset),
            "ledger_total_cents": costing_service.ledger_sum(db, job_id),
            "rows": [_row_dict(r) for r in rows],
        }
    finally:
        db.close()


@router.get("/ledger/totals", response_model=LedgerTotalsResponse)
def get_ledger_totals(
    request: Request,
    date_start: datetime,
    date_end: datetime,
    job_id: Optional[int] = None,
    cost_type: Optional[str] = None,
    reference_type: Optional[str] = None,
    _role=Depends(require_role(Role.MANAGER)),
):
    db = SessionLocal()
    try:
        return job_cost_totals(
            company_id=company_scope(request),
            date_start=date_start,
            date_end=date_end,
            db=db,
            job_id=job_id,
            cost_type=cost_type,
            reference_type=reference_type,
        )
    finally:
        db.close()
