import logging
from typing import Optional

from sqlalchemy.orm import Session

from cmms.core.clock import Clock, resolve_clock
from cmms.core.errors import NotFoundError, PreconditionError, ValidationError
from cmms.database import SessionLocal
from cmms.models.asset import Asset
from cmms.models.enums import AlertSeverity, AlertType, JobPriority, JobStatus, JobType
from cmms.models.job import Job
from cmms.models.stores import FuelIssue
from cmms.services import costing_service, job_state_machine, pm_engine, side_effects

logger = logging.getLogger(__name__)

ABNORMAL_VARIANCE_PERCENT = 20.0

_OPEN_STATUSES = (JobStatus.CREATED.value, JobStatus.ASSIGNED.value, JobStatus.IN_PROGRESS.value)


def _ensure_meter_repair_job(db: Session, asset: Asset, actor_id: Optional[int], clock: Clock) -> Optional[Job]:
    existing = (
        db.query(Job.id)
        .filter(
            Job.asset_id == asset.id,
            Job.title.contains("Repair Meter"),
            Job.status.in_(_OPEN_STATUSES),
        )
        .first()
    )
    if existing is not None:
        return None
    return job_state_machine.create_job(
        asset.company_id,
        asset.id,
        f"Repair Meter for {asset.code}",
        job_type=JobType.CORRECTIVE,
        priority=JobPriority.HIGH,
        description="Meter reported as broken. Requires inspection and repair.",
        created_by_id=actor_id,
        db=db,
        clock=clock,
    )


def record_fuel_issue(
    company_id: int,
    asset_id: int,
    meter_reading: float,
    quantity_liters: float,
    *,
    unit_price_cents: Optional[int] = None,
    job_id: Optional[int] = None,
    operator_id: Optional[int] = None,
    meter_broken: bool = False,
    fuel_type: str = "DIESEL",
    override_token: Optional[str] = None,
    actor_id: Optional[int] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> FuelIssue:
    """
    Record fuel dispensed to an asset.

    The meter reading is validated against the asset meter (a rollback needs a
    supervisor override token), consumption is compared with the asset's
    standard rate, the cost is charged to the linked job and the new meter
    reading feeds the PM check.
    """
    if quantity_liters is None or float(quantity_liters) <= 0:
        raise ValidationError("quantity_liters must be greater than 0")
    if meter_reading is None or float(meter_reading) < 0:
        raise ValidationError("meter_reading must be 0 or greater")

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    clock = resolve_clock(clock)
    now = clock.now()
    liters = float(quantity_liters)
    reading = float(meter_reading)

    try:
        asset = (
            db.query(Asset)
            .filter(Asset.id == int(asset_id), Asset.company_id == int(company_id))
            .with_for_update()
            .first()
        )
        if asset is None:
            raise NotFoundError(f"Asset {asset_id} not found")

        if job_id is not None:
            job = (
                db.query(Job.id)
                .filter(Job.id == int(job_id), Job.company_id == int(company_id))
                .first()
            )
            if job is None:
                raise NotFoundError(f"Job {job_id} not found")

        previous = asset.current_meter
        meter_validated = True

        if not meter_broken and previous is not None and reading < float(previous):
            try:
                override_by = pm_engine.verify_override(override_token, company_id, asset.id)
            except PreconditionError:
                pm_engine.record_rejected_rollback(asset.id, float(previous), reading)
                raise
            if override_by is None:
                pm_engine.record_rejected_rollback(asset.id, float(previous), reading)
                raise PreconditionError(
                    "Meter reading is less than previous reading. Supervisor override required.",
                    code="METER_ROLLBACK",
                )
            pm_engine.raise_rollback_alert(db, asset, float(previous), reading)

        distance_hours = None
        consumption_rate = None
        variance_percent = None
        is_abnormal = False

        if previous is not None and not meter_broken:
            distance_hours = reading - float(previous)
            if distance_hours > 0:
                consumption_rate = distance_hours / liters
                standard = asset.standard_consumption_rate
                if standard and standard > 0:
                    variance_percent = abs((consumption_rate - standard) / standard) * 100
                    if variance_percent > ABNORMAL_VARIANCE_PERCENT:
                        is_abnormal = True
                        logger.warning(
                            "Abnormal fuel consumption",
                            extra={"asset_id": asset.id, "consumption_rate": consumption_rate, "variance_percent": variance_percent},
                        )
                        side_effects.create_alert(
                            db,
                            company_id=company_id,
                            alert_type=AlertType.ABNORMAL_CONSUMPTION,
                            severity=AlertSeverity.MEDIUM,
                            title="Abnormal Fuel Consumption",
                            message=(
                                f"Asset {asset.code}: Consumption rate {consumption_rate:.2f} "
                                f"varies {variance_percent:.1f}% from standard"
                            ),
                            reference_type="FUEL_ISSUE",
                        )
            elif distance_hours == 0:
                is_abnormal = True
                side_effects.create_alert(
                    db,
                    company_id=company_id,
                    alert_type=AlertType.ZERO_CONSUMPTION,
                    severity=AlertSeverity.HIGH,
                    title="Zero Consumption Warning",
                    message=f"Asset {asset.code}: {liters}L issued with no distance/hours recorded",
                    reference_type="FUEL_ISSUE",
                )

        issue = FuelIssue(
            company_id=int(company_id),
            asset_id=asset.id,
            job_id=job_id,
            issued_by=actor_id,
            operator_id=operator_id,
            meter_reading=reading,
            previous_reading=previous,
            meter_validated=meter_validated,
            meter_broken=bool(meter_broken),
            fuel_type=fuel_type or "DIESEL",
            quantity_liters=liters,
            unit_price_cents=unit_price_cents,
            total_cost_cents=(
                costing_service.extended_cost_cents(liters, unit_price_cents) if unit_price_cents else None
            ),
            distance_hours=distance_hours,
            consumption_rate=consumption_rate,
            standard_rate=asset.standard_consumption_rate,
            variance_percent=variance_percent,
            is_abnormal=is_abnormal,
            created_at=now,
        )
        db.add(issue)
        db.flush()

        if meter_broken:
            _ensure_meter_repair_job(db, asset, actor_id, clock)
        else:
            pm_engine.apply_meter_update(db, asset, reading, now)
            pm_engine.check_and_generate_pm_jobs(company_id, asset.id, actor_id, db=db, clock=clock)

        if job_id is not None and unit_price_cents:
            costing_service.add_fuel_cost(
                job_id,
                liters,
                int(unit_price_cents),
                str(issue.id),
                actor_id,
                company_id=company_id,
                db=db,
                clock=clock,
            )

        logger.info(
            "Fuel issue recorded",
            extra={"fuel_issue_id": issue.id, "asset_id": asset.id, "job_id": job_id, "liters": liters, "is_abnormal": is_abnormal},
        )

        if owns_db:
            db.commit()
        return issue
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()
