"""
Preventive maintenance: schedule configuration, meter readings and
meter-driven job generation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from cmms.core.clock import Clock, resolve_clock
from cmms.core.errors import NotFoundError, PreconditionError, ValidationError
from cmms.database import SessionLocal
from cmms.models.asset import Asset
from cmms.models.enums import AlertSeverity, AlertType, IntervalType, JobPriority, JobStatus, JobType
from cmms.models.job import Job
from cmms.models.pm_schedule import MeterReading, PMSchedule
from cmms.services import job_state_machine, side_effects
from cmms.services.auth_service import verify_meter_override_token

logger = logging.getLogger(__name__)

PENDING_STATUSES = (
    JobStatus.CREATED.value,
    JobStatus.ASSIGNED.value,
    JobStatus.IN_PROGRESS.value,
)

OVERDUE_TOLERANCE = 0.1


@dataclass
class MeterReadingResult:
    reading: MeterReading
    rollback_detected: bool
    override_applied: bool = False
    generated_jobs: List[int] = field(default_factory=list)


def is_due(current_meter: float, schedule: PMSchedule) -> bool:
    return float(current_meter or 0) >= float(schedule.next_due_meter)


def is_overdue(current_meter: float, schedule: PMSchedule) -> bool:
    current = float(current_meter or 0)
    threshold = float(schedule.next_due_meter) + float(schedule.interval_value) * OVERDUE_TOLERANCE
    return is_due(current, schedule) and current > threshold


def render_title(template: str, asset: Asset) -> str:
    return template.replace("{asset_code}", asset.code).replace("{asset_description}", asset.description)


def _get_asset(db: Session, asset_id: int, company_id: int, for_update: bool = False) -> Asset:
    q = db.query(Asset).filter(Asset.id == int(asset_id), Asset.company_id == int(company_id))
    if for_update:
        q = q.with_for_update()
    asset = q.first()
    if asset is None:
        raise NotFoundError(f"Asset {asset_id} not found")
    return asset


def configure_pm_schedule(
    company_id: int,
    asset_id: int,
    interval_type: IntervalType,
    interval_value: float,
    job_title_template: str,
    *,
    job_description: Optional[str] = None,
    estimated_duration: Optional[float] = None,
    priority: JobPriority = JobPriority.MEDIUM,
    created_by: Optional[int] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> PMSchedule:
    """
    Create the asset's active schedule, or reconfigure it if one exists.
    The next due meter is always reset to current meter + interval.
    """
    try:
        interval_type = IntervalType(interval_type)
        priority = JobPriority(priority)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if interval_value is None or float(interval_value) <= 0:
        raise ValidationError("interval_value must be greater than 0")
    if not job_title_template:
        raise ValidationError("job_title_template is required")

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = resolve_clock(clock).now()

    try:
        asset = _get_asset(db, asset_id, company_id)
        current_meter = float(asset.current_meter or 0)

        schedule = (
            db.query(PMSchedule)
            .filter(
                PMSchedule.company_id == int(company_id),
                PMSchedule.asset_id == asset.id,
                PMSchedule.is_active.is_(True),
            )
            .with_for_update()
            .first()
        )
        if schedule is None:
            schedule = PMSchedule(
                company_id=int(company_id),
                asset_id=asset.id,
                last_service_meter=current_meter,
                is_active=True,
                created_by=created_by,
                created_at=now,
            )
            db.add(schedule)

        schedule.interval_type = interval_type.value
        schedule.interval_value = float(interval_value)
        schedule.job_title_template = job_title_template
        schedule.job_description = job_description
        schedule.estimated_duration = estimated_duration
        schedule.priority = priority.value
        schedule.next_due_meter = current_meter + float(interval_value)
        db.flush()

        logger.info(
            "PM schedule configured",
            extra={"pm_schedule_id": schedule.id, "asset_id": asset.id, "next_due_meter": schedule.next_due_meter},
        )

        if owns_db:
            db.commit()
        return schedule
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def _has_pending_job(db: Session, schedule: PMSchedule) -> bool:
    row = (
        db.query(Job.id)
        .filter(
            Job.company_id == schedule.company_id,
            Job.asset_id == schedule.asset_id,
            Job.pm_schedule_id == schedule.id,
            Job.status.in_(PENDING_STATUSES),
            Job.is_void.is_(False),
        )
        .first()
    )
    return row is not None


def _generate_due_jobs(
    db: Session,
    company_id: int,
    asset_id: Optional[int],
    actor_id: Optional[int],
    clock: Clock,
) -> List[int]:
    q = db.query(PMSchedule).filter(
        PMSchedule.company_id == int(company_id),
        PMSchedule.is_active.is_(True),
    )
    if asset_id is not None:
        q = q.filter(PMSchedule.asset_id == int(asset_id))
    # Row lock serializes concurrent checks of the same schedule.
    schedules = q.order_by(PMSchedule.id.asc()).with_for_update().all()

    generated = []
    for schedule in schedules:
        asset = db.query(Asset).filter(Asset.id == schedule.asset_id).first()
        current_meter = float(asset.current_meter or 0)
        if not is_due(current_meter, schedule):
            continue
        if _has_pending_job(db, schedule):
            logger.info(
                "PM due but job already pending",
                extra={"pm_schedule_id": schedule.id, "asset_id": asset.id},
            )
            continue

        job = job_state_machine.create_job(
            company_id,
            asset.id,
            render_title(schedule.job_title_template, asset),
            job_type=JobType.PREVENTIVE,
            priority=JobPriority(schedule.priority),
            description=schedule.job_description or f"Preventive maintenance for {asset.description}",
            pm_schedule_id=schedule.id,
            created_by_id=actor_id,
            db=db,
            clock=clock,
        )

        schedule.last_service_meter = current_meter
        schedule.last_service_date = clock.now()
        schedule.next_due_meter = current_meter + float(schedule.interval_value)
        db.flush()

        generated.append(job.id)
        logger.info(
            "PM job generated",
            extra={
                "job_id": job.id,
                "pm_schedule_id": schedule.id,
                "asset_id": asset.id,
                "next_due_meter": schedule.next_due_meter,
            },
        )

    return generated


def check_and_generate_pm_jobs(
    company_id: int,
    asset_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    *,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> List[int]:
    """
    Create a PREVENTIVE job for every active schedule whose asset meter has
    reached next_due_meter, unless one is already pending. Returns job ids.

    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    clock = resolve_clock(clock)

    try:
        generated = _generate_due_jobs(db, company_id, asset_id, actor_id, clock)
        if owns_db:
            db.commit()
        return generated
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def apply_meter_update(db: Session, asset: Asset, reading: float, now: datetime) -> None:
    asset.current_meter = float(reading)
    asset.last_meter_update = now
    db.flush()


def raise_rollback_alert(db: Session, asset: Asset, previous: float, reading: float) -> None:
    logger.warning(
        "Meter rollback detected",
        extra={"asset_id": asset.id, "previous_reading": previous, "reading": reading},
    )
    side_effects.create_alert(
        db,
        company_id=asset.company_id,
        alert_type=AlertType.METER_ROLLBACK,
        severity=AlertSeverity.HIGH,
        title=f"Meter Rollback Detected - {asset.code}",
        message=f"Meter reading decreased from {previous} to {reading} on asset {asset.description}",
        reference_type="ASSET",
        reference_id=asset.id,
    )


def record_rejected_rollback(asset_id: int, previous: float, reading: float) -> None:
    """Write the METER_ROLLBACK alert in its own session.

    Used when the reading itself is rejected, so the alert outlives the
    caller's rollback.
    """
    db = SessionLocal()
    try:
        asset = db.query(Asset).filter(Asset.id == int(asset_id)).first()
        raise_rollback_alert(db, asset, previous, reading)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def verify_override(token: Optional[str], company_id: int, asset_id: int) -> Optional[int]:
    """Supervisor id behind a valid override token, None when no token was given."""
    if not token:
        return None
    try:
        return verify_meter_override_token(token, company_id, asset_id)
    except ValueError as exc:
        raise PreconditionError(str(exc), code="INVALID_OVERRIDE") from exc


def record_meter_reading(
    asset_id: int,
    reading: float,
    effective_date: Optional[datetime] = None,
    *,
    company_id: int,
    override_token: Optional[str] = None,
    photo_url: Optional[str] = None,
    notes: Optional[str] = None,
    job_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> MeterReadingResult:
    """
    Store a reading and, unless it is an unapproved rollback, move the asset
    meter and run the PM check for that asset.

    A reading lower than the current meter is always stored and always raises
    a HIGH METER_ROLLBACK alert. Only a valid supervisor override token lets it
    move the meter.
    """
    if reading is None or float(reading) < 0:
        raise ValidationError("reading must be 0 or greater")

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    clock = resolve_clock(clock)
    now = clock.now()
    effective = effective_date or now
    if effective.tzinfo is not None:
        effective = effective.astimezone(timezone.utc).replace(tzinfo=None)

    try:
        asset = _get_asset(db, asset_id, company_id, for_update=True)
        previous = float(asset.current_meter or 0)
        is_rollback = float(reading) < previous
        override_by = None
        if is_rollback:
            try:
                override_by = verify_override(override_token, company_id, asset.id)
            except PreconditionError:
                record_rejected_rollback(asset.id, previous, float(reading))
                raise

        row = MeterReading(
            company_id=int(company_id),
            asset_id=asset.id,
            job_id=job_id,
            reading=float(reading),
            previous_reading=previous,
            reading_date=now,
            effective_date=effective,
            is_late_entry=effective.date() < now.date(),
            is_rollback=is_rollback,
            rollback_handled=override_by is not None,
            override_by=override_by,
            photo_url=photo_url,
            notes=notes,
            created_by=actor_id,
        )
        db.add(row)
        db.flush()

        result = MeterReadingResult(reading=row, rollback_detected=is_rollback)

        if is_rollback:
            raise_rollback_alert(db, asset, previous, float(reading))

        if not is_rollback or override_by is not None:
            apply_meter_update(db, asset, float(reading), now)
            result.override_applied = override_by is not None
            result.generated_jobs = _generate_due_jobs(db, company_id, asset.id, actor_id, clock)

        logger.info(
            "Meter reading recorded",
            extra={
                "meter_reading_id": row.id,
                "asset_id": asset.id,
                "reading": row.reading,
                "rollback": is_rollback,
                "generated_jobs": result.generated_jobs,
            },
        )

        if owns_db:
            db.commit()
        return result
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def pm_status(
    company_id: int,
    *,
    db: Optional[Session] = None,
) -> List[Dict[str, Any]]:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        rows = (
            db.query(PMSchedule, Asset)
            .join(Asset, Asset.id == PMSchedule.asset_id)
            .filter(PMSchedule.company_id == int(company_id), PMSchedule.is_active.is_(True))
            .order_by(Asset.code.asc(), PMSchedule.id.asc())
            .all()
        )

        results = []
        for schedule, asset in rows:
            current_meter = float(asset.current_meter or 0)
            entry = {
                "schedule_id": schedule.id,
                "asset_id": asset.id,
                "asset_code": asset.code,
                "asset_description": asset.description,
                "interval_type": schedule.interval_type,
                "is_due": is_due(current_meter, schedule),
                "is_overdue": is_overdue(current_meter, schedule),
                "current_meter": current_meter,
                "next_due_meter": float(schedule.next_due_meter),
                "hours_overdue": None,
                "days_overdue": None,
            }
            if entry["is_overdue"]:
                over = current_meter - float(schedule.next_due_meter)
                if schedule.interval_type == IntervalType.HOURS.value:
                    entry["hours_overdue"] = over
                else:
                    entry["days_overdue"] = over
            results.append(entry)
        return results
    finally:
        if owns_db:
            db.close()


def run_nightly_pm_check(
    company_id: Optional[int] = None,
    *,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> List[Dict[str, Any]]:
    """Scheduled sweep over every company with an active schedule."""
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    clock = resolve_clock(clock)

    try:
        if company_id is not None:
            company_ids = [int(company_id)]
        else:
            company_ids = [
                row[0]
                for row in db.query(PMSchedule.company_id)
                .filter(PMSchedule.is_active.is_(True))
                .distinct()
                .order_by(PMSchedule.company_id.asc())
                .all()
            ]

        results = []
        for cid in company_ids:
            jobs = _generate_due_jobs(db, cid, None, None, clock)
            results.append({"company_id": cid, "jobs_generated": jobs})

        logger.info(
            "Nightly PM check finished",
            extra={"companies": len(company_ids), "jobs_generated": sum(len(r["jobs_generated"]) for r in results)},
        )

        if owns_db:
            db.commit()
        return results
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()
