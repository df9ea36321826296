from __future__ import annotations

import calendar
import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from cmms.core.clock import Clock, resolve_clock
from cmms.core.errors import NotFoundError, PreconditionError, ValidationError
from cmms.database import SessionLocal
from cmms.models.activity import PeriodLock
from cmms.models.job import Job
from cmms.models.job_cost_log import JobCostLog
from cmms.services.side_effects import write_audit_log

logger = logging.getLogger(__name__)


def month_window(year: int, month: int) -> Tuple[datetime, datetime]:
    """[first instant of month, first instant of next month)"""
    if not 1 <= int(month) <= 12:
        raise ValidationError(f"Invalid month: {month}")
    start = datetime(int(year), int(month), 1)
    if int(month) == 12:
        end = datetime(int(year) + 1, 1, 1)
    else:
        end = datetime(int(year), int(month) + 1, 1)
    return start, end


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(int(year), int(month))[1]


def is_period_locked(db: Session, company_id: int, year: int, month: int) -> bool:
    row = (
        db.query(PeriodLock)
        .filter(
            PeriodLock.company_id == int(company_id),
            PeriodLock.year == int(year),
            PeriodLock.month == int(month),
        )
        .first()
    )
    return bool(row is not None and row.is_locked)


def assert_period_open(db: Session, *, company_id: int, at: datetime) -> None:
    if is_period_locked(db, company_id, at.year, at.month):
        raise PreconditionError(
            f"Accounting period {at.year}-{at.month:02d} is locked",
            code="PERIOD_LOCKED",
        )


def _period_totals(db: Session, company_id: int, start: datetime, end: datetime) -> dict:
    rows = (
        db.query(JobCostLog.cost_type, func.coalesce(func.sum(JobCostLog.amount_cents), 0))
        .filter(
            JobCostLog.company_id == int(company_id),
            JobCostLog.created_at >= start,
            JobCostLog.created_at < end,
        )
        .group_by(JobCostLog.cost_type)
        .all()
    )
    by_type = {cost_type: int(total) for cost_type, total in rows}
    totals = {
        "total_material_cost_cents": by_type.get("MATERIAL", 0),
        "total_labor_cost_cents": by_type.get("LABOR", 0),
        "total_fuel_cost_cents": by_type.get("FUEL", 0),
        "total_service_cost_cents": by_type.get("SERVICE", 0),
        "total_other_cost_cents": by_type.get("OTHER", 0),
    }
    totals["total_cost_cents"] = sum(totals.values())
    return totals


def lock_period(
    company_id: int,
    year: int,
    month: int,
    actor_id: Optional[int],
    *,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> PeriodLock:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = resolve_clock(clock).now()

    try:
        start, end = month_window(year, month)
        totals = _period_totals(db, company_id, start, end)
        jobs_closed = (
            db.query(func.count(Job.id))
            .filter(
                Job.company_id == int(company_id),
                Job.closed_at >= start,
                Job.closed_at < end,
            )
            .scalar()
        )

        lock = (
            db.query(PeriodLock)
            .filter(
                PeriodLock.company_id == int(company_id),
                PeriodLock.year == int(year),
                PeriodLock.month == int(month),
            )
            .with_for_update()
            .first()
        )
        if lock is None:
            lock = PeriodLock(company_id=int(company_id), year=int(year), month=int(month))
            db.add(lock)

        lock.is_locked = True
        lock.locked_at = now
        lock.locked_by_id = actor_id
        lock.jobs_closed = int(jobs_closed or 0)
        for field, value in totals.items():
            setattr(lock, field, value)
        db.flush()

        write_audit_log(
            db,
            company_id=company_id,
            user_id=actor_id,
            action="LOCK",
            entity="PeriodLock",
            entity_id=lock.id,
            new_value={"year": int(year), "month": int(month), "jobs_closed": lock.jobs_closed, **totals},
        )

        logger.info(
            "Accounting period locked",
            extra={"company_id": company_id, "year": year, "month": month, "total_cost_cents": totals["total_cost_cents"]},
        )

        if owns_db:
            db.commit()
        return lock
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def unlock_period(
    company_id: int,
    year: int,
    month: int,
    actor_id: Optional[int],
    *,
    db: Optional[Session] = None,
) -> PeriodLock:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        lock = (
            db.query(PeriodLock)
            .filter(
                PeriodLock.company_id == int(company_id),
                PeriodLock.year == int(year),
                PeriodLock.month == int(month),
            )
            .with_for_update()
            .first()
        )
        if lock is None:
            raise NotFoundError(f"No period lock for {year}-{int(month):02d}")

        lock.is_locked = False
        db.flush()

        write_audit_log(
            db,
            company_id=company_id,
            user_id=actor_id,
            action="UNLOCK",
            entity="PeriodLock",
            entity_id=lock.id,
            new_value={"year": int(year), "month": int(month)},
        )

        logger.info("Accounting period unlocked", extra={"company_id": company_id, "year": year, "month": month})

        if owns_db:
            db.commit()
        return lock
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()
