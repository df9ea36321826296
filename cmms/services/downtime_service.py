from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError as DBIntegrityError
from sqlalchemy.orm import Session

from cmms.core.clock import Clock, resolve_clock
from cmms.core.errors import AlreadyEndedError, ConflictError, NotFoundError, ValidationError
from cmms.database import SessionLocal
from cmms.models.asset import Asset
from cmms.models.downtime import DowntimeLog
from cmms.models.enums import AssetStatus, DowntimeCategory
from cmms.models.job import Job
from cmms.services.costing_service import to_cents
from cmms.services.period_lock_service import days_in_month, month_window

logger = logging.getLogger(__name__)

# Breakdown downtime opportunity cost: 1% of asset value per hour.
OPPORTUNITY_COST_RATE = Decimal("0.01")

GREEN_THRESHOLD = 90.0
YELLOW_THRESHOLD = 70.0

_OTHER_CATEGORIES = {
    DowntimeCategory.WAITING_LABOR.value,
    DowntimeCategory.SUPPLY_CHAIN_DELAY.value,
    DowntimeCategory.WEATHER.value,
    DowntimeCategory.OPERATOR_UNAVAILABLE.value,
    DowntimeCategory.OTHER.value,
}


@dataclass
class AvailabilityResult:
    asset_id: int
    asset_code: str
    asset_description: str
    year: int
    month: int
    total_calendar_hours: float
    available_hours: float
    downtime_hours: float
    availability_percent: float
    breakdown_hours: float
    maintenance_hours: float
    waiting_parts_hours: float
    other_downtime_hours: float
    lost_opportunity_cost_cents: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def classify_availability(availability_percent: float) -> str:
    if availability_percent >= GREEN_THRESHOLD:
        return "green"
    if availability_percent >= YELLOW_THRESHOLD:
        return "yellow"
    return "red"


def _overlap_seconds(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> int:
    start = max(a_start, b_start)
    end = min(a_end, b_end)
    if end <= start:
        return 0
    return int((end - start).total_seconds())


def _elapsed_minutes(started_at: datetime, ended_at: datetime) -> int:
    return int(round((ended_at - started_at).total_seconds() / 60))


def _get_asset(db: Session, asset_id: int, company_id: Optional[int] = None) -> Asset:
    q = db.query(Asset).filter(Asset.id == int(asset_id))
    if company_id is not None:
        q = q.filter(Asset.company_id == int(company_id))
    asset = q.first()
    if asset is None:
        raise NotFoundError(f"Asset {asset_id} not found")
    return asset


def get_open_downtime(db: Session, asset_id: int) -> Optional[DowntimeLog]:
    return (
        db.query(DowntimeLog)
        .filter(DowntimeLog.asset_id == int(asset_id), DowntimeLog.ended_at.is_(None))
        .first()
    )


def opportunity_cost_rate_for(asset: Asset) -> Optional[int]:
    if not asset.value_cents:
        return None
    return to_cents(Decimal(int(asset.value_cents)) * OPPORTUNITY_COST_RATE)


def _open_interval(
    db: Session,
    asset: Asset,
    *,
    category: DowntimeCategory,
    now: datetime,
    opportunity_cost_per_hour_cents: Optional[int],
    job_id: Optional[int],
    sub_category: Optional[str],
    notes: Optional[str],
) -> DowntimeLog:
    if get_open_downtime(db, asset.id) is not None:
        raise ConflictError(
            f"Asset {asset.code} already has an active downtime event",
            code="DOWNTIME_ALREADY_OPEN",
        )

    row = DowntimeLog(
        company_id=asset.company_id,
        asset_id=asset.id,
        job_id=job_id,
        category=category.value,
        sub_category=sub_category,
        notes=notes,
        started_at=now,
        opportunity_cost_per_hour_cents=opportunity_cost_per_hour_cents,
    )
    db.add(row)
    try:
        db.flush()
    except DBIntegrityError as exc:
        # Lost the race to a concurrent start; the partial unique index caught it.
        raise ConflictError(
            f"Asset {asset.code} already has an active downtime event",
            code="DOWNTIME_ALREADY_OPEN",
        ) from exc

    logger.info(
        "Downtime started",
        extra={"downtime_log_id": row.id, "asset_id": asset.id, "job_id": job_id, "category": row.category},
    )
    return row


def start_downtime(
    asset_id: int,
    category: DowntimeCategory = DowntimeCategory.BREAKDOWN,
    opportunity_cost_per_hour_cents: Optional[int] = None,
    *,
    job_id: Optional[int] = None,
    company_id: Optional[int] = None,
    sub_category: Optional[str] = None,
    notes: Optional[str] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> DowntimeLog:
    """
    Open a downtime interval. Fails with ConflictError when the asset already
    has one open.

    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    """
    try:
        category = DowntimeCategory(category)
    except ValueError as exc:
        raise ValidationError(f"Unknown downtime category: {category}") from exc
    if opportunity_cost_per_hour_cents is not None and int(opportunity_cost_per_hour_cents) < 0:
        raise ValidationError("opportunity_cost_per_hour_cents must be 0 or greater")

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = resolve_clock(clock).now()

    try:
        asset = _get_asset(db, asset_id, company_id=company_id)
        row = _open_interval(
            db,
            asset,
            category=category,
            now=now,
            opportunity_cost_per_hour_cents=opportunity_cost_per_hour_cents,
            job_id=job_id,
            sub_category=sub_category,
            notes=notes,
        )

        if owns_db:
            db.commit()
        return row
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def _close_interval(
    db: Session,
    row: DowntimeLog,
    now: datetime,
    notes: Optional[str] = None,
    resolved_by: Optional[int] = None,
) -> DowntimeLog:
    if row.ended_at is not None:
        raise AlreadyEndedError(f"Downtime {row.id} already ended")

    duration_minutes = max(_elapsed_minutes(row.started_at, now), 0)

    row.ended_at = now
    row.duration_minutes = duration_minutes
    if row.opportunity_cost_per_hour_cents:
        row.lost_opportunity_cost_cents = to_cents(
            Decimal(duration_minutes) / Decimal(60) * Decimal(int(row.opportunity_cost_per_hour_cents))
        )
    row.resolved_by = resolved_by
    if notes:
        row.notes = f"{row.notes or ''}\n{notes}".strip()
    db.flush()

    logger.info(
        "Downtime ended",
        extra={
            "downtime_log_id": row.id,
            "asset_id": row.asset_id,
            "duration_minutes": duration_minutes,
            "lost_opportunity_cost_cents": row.lost_opportunity_cost_cents,
        },
    )
    return row


def end_downtime(
    downtime_log_id: int,
    *,
    company_id: Optional[int] = None,
    notes: Optional[str] = None,
    resolved_by: Optional[int] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> DowntimeLog:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = resolve_clock(clock).now()

    try:
        q = db.query(DowntimeLog).filter(DowntimeLog.id == int(downtime_log_id))
        if company_id is not None:
            q = q.filter(DowntimeLog.company_id == int(company_id))
        row = q.with_for_update().first()
        if row is None:
            raise NotFoundError(f"Downtime log {downtime_log_id} not found")

        _close_interval(db, row, now, notes=notes, resolved_by=resolved_by)

        if owns_db:
            db.commit()
        return row
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def start_breakdown_downtime(db: Session, job: Job, now: datetime) -> Optional[DowntimeLog]:
    """Called when a BREAKDOWN job is created. An asset already down stays on its current interval."""
    asset = _get_asset(db, job.asset_id)
    if get_open_downtime(db, asset.id) is not None:
        logger.info(
            "Asset already down; breakdown job joins existing interval",
            extra={"asset_id": asset.id, "job_id": job.id},
        )
        return None
    return _open_interval(
        db,
        asset,
        category=DowntimeCategory.BREAKDOWN,
        now=now,
        opportunity_cost_per_hour_cents=opportunity_cost_rate_for(asset),
        job_id=job.id,
        sub_category=None,
        notes=None,
    )


def end_job_downtime(db: Session, job: Job, now: datetime, resolved_by: Optional[int] = None) -> Optional[DowntimeLog]:
    """Called when the linked job reaches COMPLETED or CLOSED."""
    row = (
        db.query(DowntimeLog)
        .filter(
            DowntimeLog.asset_id == job.asset_id,
            DowntimeLog.job_id == job.id,
            DowntimeLog.ended_at.is_(None),
        )
        .with_for_update()
        .first()
    )
    if row is None:
        return None
    return _close_interval(db, row, now, resolved_by=resolved_by)


def _availability_for_asset(db: Session, asset: Asset, year: int, month: int, now: datetime) -> AvailabilityResult:
    start, end = month_window(year, month)
    total_calendar_hours = float(days_in_month(year, month) * 24)

    rows = (
        db.query(DowntimeLog)
        .filter(
            DowntimeLog.asset_id == asset.id,
            DowntimeLog.started_at < end,
            or_(DowntimeLog.ended_at.is_(None), DowntimeLog.ended_at > start),
        )
        .all()
    )

    category_minutes: Dict[str, int] = {}
    total_minutes = 0
    lost_cents = 0

    for row in rows:
        interval_end = row.ended_at or now
        contained = row.started_at >= start and interval_end <= end
        if row.ended_at is not None and contained and row.duration_minutes is not None:
            minutes = int(row.duration_minutes)
        else:
            minutes = int(round(_overlap_seconds(row.started_at, interval_end, start, end) / 60))
        total_minutes += minutes
        category_minutes[row.category] = category_minutes.get(row.category, 0) + minutes
        if row.lost_opportunity_cost_cents:
            lost_cents += int(row.lost_opportunity_cost_cents)

    downtime_hours = total_minutes / 60
    available_hours = total_calendar_hours - downtime_hours
    other_minutes = sum(m for c, m in category_minutes.items() if c in _OTHER_CATEGORIES)

    return AvailabilityResult(
        asset_id=asset.id,
        asset_code=asset.code,
        asset_description=asset.description,
        year=int(year),
        month=int(month),
        total_calendar_hours=total_calendar_hours,
        available_hours=available_hours,
        downtime_hours=downtime_hours,
        availability_percent=available_hours / total_calendar_hours * 100,
        breakdown_hours=category_minutes.get(DowntimeCategory.BREAKDOWN.value, 0) / 60,
        maintenance_hours=category_minutes.get(DowntimeCategory.SCHEDULED_MAINTENANCE.value, 0) / 60,
        waiting_parts_hours=category_minutes.get(DowntimeCategory.WAITING_PARTS.value, 0) / 60,
        other_downtime_hours=other_minutes / 60,
        lost_opportunity_cost_cents=lost_cents,
    )


def calculate_asset_availability(
    asset_id: int,
    year: int,
    month: int,
    *,
    company_id: Optional[int] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> AvailabilityResult:
    """
    Availability for one asset over a calendar month. Intervals are clipped to
    the month; open intervals run to now.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = resolve_clock(clock).now()

    try:
        asset = _get_asset(db, asset_id, company_id=company_id)
        return _availability_for_asset(db, asset, year, month, now)
    finally:
        if owns_db:
            db.close()


def availability_dashboard(
    company_id: int,
    year: Optional[int] = None,
    month: Optional[int] = None,
    *,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> Dict[str, Any]:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = resolve_clock(clock).now()
    target_year = int(year or now.year)
    target_month = int(month or now.month)

    try:
        assets = (
            db.query(Asset)
            .filter(Asset.company_id == int(company_id), Asset.status == AssetStatus.ACTIVE.value)
            .order_by(Asset.code.asc())
            .all()
        )

        traffic_light: Dict[str, List[Dict[str, Any]]] = {"green": [], "yellow": [], "red": []}
        results = []
        for asset in assets:
            result = _availability_for_asset(db, asset, target_year, target_month, now)
            results.append(result)
            traffic_light[classify_availability(result.availability_percent)].append(
                {
                    "asset_id": asset.id,
                    "asset_code": asset.code,
                    "asset_description": asset.description,
                    "availability_percent": result.availability_percent,
                    "downtime_hours": result.downtime_hours,
                    "lost_opportunity_cost_cents": result.lost_opportunity_cost_cents,
                }
            )

        active = (
            db.query(DowntimeLog)
            .filter(DowntimeLog.company_id == int(company_id), DowntimeLog.ended_at.is_(None))
            .order_by(DowntimeLog.started_at.asc())
            .all()
        )

        avg_availability = (
            sum(r.availability_percent for r in results) / len(results) if results else 100.0
        )

        return {
            "year": target_year,
            "month": target_month,
            "fleet_stats": {
                "total_assets": len(assets),
                "avg_availability": avg_availability,
                "total_downtime_hours": sum(r.downtime_hours for r in results),
                "total_lost_opportunity_cost_cents": sum(r.lost_opportunity_cost_cents for r in results),
            },
            "traffic_light": traffic_light,
            "active_downtimes": [
                {
                    "id": d.id,
                    "asset_id": d.asset_id,
                    "job_id": d.job_id,
                    "category": d.category,
                    "started_at": d.started_at.isoformat(),
                    "duration_minutes": _elapsed_minutes(d.started_at, now),
                    "notes": d.notes,
                }
                for d in active
            ],
        }
    finally:
        if owns_db:
            db.close()


def downtime_pareto(
    company_id: int,
    year: int,
    month: int,
    *,
    db: Optional[Session] = None,
) -> Dict[str, Any]:
    """Closed downtime for the month, by category, largest first."""
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        start, end = month_window(year, month)
        rows = (
            db.query(DowntimeLog, Asset.code)
            .join(Asset, Asset.id == DowntimeLog.asset_id)
            .filter(
                DowntimeLog.company_id == int(company_id),
                DowntimeLog.started_at >= start,
                DowntimeLog.started_at < end,
                DowntimeLog.ended_at.isnot(None),
            )
            .all()
        )

        by_category: Dict[str, Dict[str, Any]] = {}
        for downtime, asset_code in rows:
            bucket = by_category.setdefault(downtime.category, {"minutes": 0, "count": 0, "assets": []})
            bucket["minutes"] += int(downtime.duration_minutes or 0)
            bucket["count"] += 1
            if asset_code not in bucket["assets"]:
                bucket["assets"].append(asset_code)

        pareto = sorted(
            (
                {
                    "category": category,
                    "hours": round(data["minutes"] / 60, 2),
                    "count": data["count"],
                    "assets": data["assets"],
                }
                for category, data in by_category.items()
            ),
            key=lambda item: (-item["hours"], item["category"]),
        )

        total_hours = sum(item["hours"] for item in pareto)
        cumulative = 0.0
        for item in pareto:
            cumulative += item["hours"]
            item["cumulative_percent"] = round(cumulative / total_hours * 100) if total_hours else 0

        return {
            "pareto": pareto,
            "total_hours": total_hours,
            "total_events": len(rows),
        }
    finally:
        if owns_db:
            db.close()
