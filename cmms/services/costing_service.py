from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from cmms.core.clock import Clock, resolve_clock
from cmms.core.errors import NotFoundError, PreconditionError, ValidationError
from cmms.database import SessionLocal
from cmms.models.employee import Employee
from cmms.models.enums import CostType, JobStatus
from cmms.models.job import Job
from cmms.models.job_cost_log import JobCostLog
from cmms.models.stores import Item
from cmms.services import period_lock_service

logger = logging.getLogger(__name__)

TOTAL_FIELDS: Dict[CostType, str] = {
    CostType.MATERIAL: "material_cost_cents",
    CostType.LABOR: "labor_cost_cents",
    CostType.FUEL: "fuel_cost_cents",
    CostType.SERVICE: "service_cost_cents",
    CostType.OTHER: "other_cost_cents",
}

_CLOSED_FOR_POSTING = {JobStatus.CLOSED.value, JobStatus.CANCELLED.value}


def to_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def extended_cost_cents(quantity: float, unit_cost_cents: int) -> int:
    return to_cents(Decimal(str(quantity)) * Decimal(int(unit_cost_cents)))


def _load_job_for_update(db: Session, job_id: int, company_id: Optional[int] = None) -> Job:
    q = db.query(Job).filter(Job.id == int(job_id))
    if company_id is not None:
        q = q.filter(Job.company_id == int(company_id))
    job = q.with_for_update().first()
    if job is None:
        raise NotFoundError(f"Job {job_id} not found")
    return job


def _last_entry(db: Session, job_id: int) -> Optional[JobCostLog]:
    return (
        db.query(JobCostLog)
        .filter(JobCostLog.job_id == int(job_id))
        .order_by(JobCostLog.sequence_no.desc())
        .first()
    )


def refresh_job_totals(db: Session, job: Job, calculated_at) -> Dict[str, int]:
    """
    Rewrite the job's cached cost columns from the full ledger.

    Always a full reduction, never incremental, so the cache cannot drift
    from the entries no matter how they were appended.
    """
    rows = (
        db.query(JobCostLog.cost_type, func.coalesce(func.sum(JobCostLog.amount_cents), 0))
        .filter(JobCostLog.job_id == job.id)
        .group_by(JobCostLog.cost_type)
        .all()
    )
    by_type = {cost_type: int(total) for cost_type, total in rows}

    totals = {field: by_type.get(cost_type.value, 0) for cost_type, field in TOTAL_FIELDS.items()}
    for field, value in totals.items():
        setattr(job, field, value)
    job.total_cost_cents = sum(totals.values())
    job.cost_calculated_at = calculated_at
    db.flush()

    totals["total_cost_cents"] = job.total_cost_cents
    return totals


def _append_entry(
    db: Session,
    job: Job,
    *,
    cost_type: CostType,
    amount_cents: int,
    now,
    quantity: Optional[float] = None,
    unit_cost_cents: Optional[int] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    item_id: Optional[int] = None,
    description: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> JobCostLog:
    if job.status in _CLOSED_FOR_POSTING:
        raise PreconditionError(
            f"Cannot post costs to a {job.status} job",
            code="JOB_NOT_OPEN",
        )

    period_lock_service.assert_period_open(db, company_id=job.company_id, at=now)

    last = _last_entry(db, job.id)
    previous_total = 0 if last is None else int(last.running_total_cents)
    sequence_no = 1 if last is None else int(last.sequence_no) + 1

    entry = JobCostLog(
        company_id=job.company_id,
        job_id=job.id,
        sequence_no=sequence_no,
        cost_type=cost_type.value,
        description=description,
        amount_cents=int(amount_cents),
        quantity=quantity,
        unit_cost_cents=unit_cost_cents,
        running_total_cents=previous_total + int(amount_cents),
        reference_type=reference_type,
        reference_id=None if reference_id is None else str(reference_id),
        item_id=item_id,
        created_by=actor_id,
        created_at=now,
    )
    db.add(entry)
    db.flush()

    refresh_job_totals(db, job, now)

    logger.info(
        "Ledger entry appended",
        extra={
            "job_id": job.id,
            "sequence_no": sequence_no,
            "cost_type": cost_type.value,
            "amount_cents": int(amount_cents),
            "running_total_cents": entry.running_total_cents,
        },
    )
    return entry


def add_cost(
    job_id: int,
    cost_type: CostType,
    amount_cents: int,
    *,
    quantity: Optional[float] = None,
    unit_cost_cents: Optional[int] = None,
    reference_type: Optional[str] = None,
    reference_id: Optional[str] = None,
    item_id: Optional[int] = None,
    description: Optional[str] = None,
    actor_id: Optional[int] = None,
    company_id: Optional[int] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> JobCostLog:
    """
    Append one signed entry to the job's ledger and refresh its cached totals.

    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    If db is None, this function manages its own session + commit.
    """
    try:
        cost_type = CostType(cost_type)
    except ValueError as exc:
        raise ValidationError(f"Unknown cost type: {cost_type}") from exc

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = resolve_clock(clock).now()

    try:
        job = _load_job_for_update(db, job_id, company_id=company_id)

        if item_id is not None:
            item = (
                db.query(Item)
                .filter(Item.id == int(item_id), Item.company_id == job.company_id)
                .first()
            )
            if item is None:
                raise NotFoundError(f"Item {item_id} not found")

        entry = _append_entry(
            db,
            job,
            cost_type=cost_type,
            amount_cents=amount_cents,
            now=now,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            reference_type=reference_type,
            reference_id=reference_id,
            item_id=item_id,
            description=description,
            actor_id=actor_id,
        )

        if owns_db:
            db.commit()

        return entry
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def _item_description(db: Session, item_id: int) -> str:
    item = db.query(Item).filter(Item.id == int(item_id)).first()
    if item is None:
        raise NotFoundError(f"Item {item_id} not found")
    return item.description


def add_material_cost(
    job_id: int,
    item_id: int,
    quantity: float,
    unit_cost_cents: int,
    reference_type: str,
    reference_id: str,
    actor_id: Optional[int],
    *,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> JobCostLog:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        description = _item_description(db, item_id)
        entry = add_cost(
            job_id,
            CostType.MATERIAL,
            extended_cost_cents(quantity, unit_cost_cents),
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            reference_type=reference_type,
            reference_id=reference_id,
            item_id=item_id,
            description=f"Material: {description} ({quantity} @ {unit_cost_cents})",
            actor_id=actor_id,
            db=db,
            clock=clock,
        )
        if owns_db:
            db.commit()
        return entry
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def credit_material_cost(
    job_id: int,
    item_id: int,
    quantity: float,
    unit_cost_cents: int,
    reference_type: str,
    reference_id: str,
    actor_id: Optional[int],
    *,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> JobCostLog:
    """A return is a new negative entry; earlier entries are never touched."""
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        description = _item_description(db, item_id)
        entry = add_cost(
            job_id,
            CostType.MATERIAL,
            -extended_cost_cents(quantity, unit_cost_cents),
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            reference_type=reference_type,
            reference_id=reference_id,
            item_id=item_id,
            description=f"Return: {description} ({quantity} @ {unit_cost_cents})",
            actor_id=actor_id,
            db=db,
            clock=clock,
        )
        if owns_db:
            db.commit()
        return entry
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def add_fuel_cost(
    job_id: int,
    liters: float,
    unit_price_cents: int,
    reference_id: str,
    actor_id: Optional[int],
    *,
    company_id: Optional[int] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> JobCostLog:
    return add_cost(
        job_id,
        CostType.FUEL,
        extended_cost_cents(liters, unit_price_cents),
        quantity=liters,
        unit_cost_cents=unit_price_cents,
        reference_type="FUEL",
        reference_id=reference_id,
        description=f"Fuel: {liters}L @ {unit_price_cents}/L",
        actor_id=actor_id,
        company_id=company_id,
        db=db,
        clock=clock,
    )


def worked_seconds(job: Job, until=None) -> int:
    """Elapsed time from first start to completion, minus accumulated pauses."""
    if job.started_at is None:
        return 0
    end = job.completed_at or until
    if end is None:
        return 0
    elapsed = int((end - job.started_at).total_seconds())
    return max(elapsed - int(job.total_pause_seconds or 0), 0)


def assignee_hourly_rate_cents(db: Session, job: Job) -> int:
    if job.assigned_to_id is None:
        return 0
    employee = db.query(Employee).filter(Employee.id == job.assigned_to_id).first()
    if employee is None:
        return 0
    return int(employee.hourly_rate_cents or 0)


def calculate_labor_cost(db: Session, job: Job, actor_id: Optional[int], now) -> int:
    """
    Post the job's labor once, at completion. Runs inside the transition's
    transaction. Returns the posted amount in cents (0 when nothing posted).
    """
    rate_cents = assignee_hourly_rate_cents(db, job)
    if rate_cents == 0:
        return 0

    seconds = worked_seconds(job, until=now)
    labor_cents = to_cents(Decimal(seconds) / Decimal(3600) * Decimal(rate_cents))
    if labor_cents <= 0:
        return 0

    hours = Decimal(seconds) / Decimal(3600)
    _append_entry(
        db,
        job,
        cost_type=CostType.LABOR,
        amount_cents=labor_cents,
        now=now,
        quantity=float(hours.quantize(Decimal("0.0001"))),
        unit_cost_cents=rate_cents,
        reference_type="LABOR",
        reference_id=str(job.id),
        description=f"Labor: {hours:.2f} hours @ {rate_cents}/hr",
        actor_id=actor_id,
    )
    return labor_cents


def ledger_entries(db: Session, job_id: int) -> List[JobCostLog]:
    return (
        db.query(JobCostLog)
        .filter(JobCostLog.job_id == int(job_id))
        .order_by(JobCostLog.sequence_no.asc())
        .all()
    )


def ledger_sum(db: Session, job_id: int) -> int:
    total = (
        db.query(func.coalesce(func.sum(JobCostLog.amount_cents), 0))
        .filter(JobCostLog.job_id == int(job_id))
        .scalar()
    )
    return int(total)
