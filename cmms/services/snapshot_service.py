"""
Closure snapshot of a job's economics, taken once, with a SHA-256 digest kept
in two places: on the snapshot row and in the generic document-hash ledger.
"""
from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from cmms.core.errors import ConflictError, IntegrityError, NotFoundError
from cmms.database import SessionLocal
from cmms.models.enums import AlertSeverity, AlertType
from cmms.models.job import Job
from cmms.models.snapshot import DocumentHash, JobCostSnapshot
from cmms.services.costing_service import assignee_hourly_rate_cents, worked_seconds
from cmms.services.side_effects import create_alert

logger = logging.getLogger(__name__)

SNAPSHOT_DOCUMENT_TYPE = "JOB_COST_SNAPSHOT"

_SNAPSHOT_TOTAL_FIELDS = (
    "material_cost_cents",
    "labor_cost_cents",
    "fuel_cost_cents",
    "service_cost_cents",
    "other_cost_cents",
    "total_cost_cents",
)


def labor_hours(labor_seconds: int) -> Decimal:
    return (Decimal(int(labor_seconds)) / Decimal(3600)).quantize(Decimal("0.0001"))


def canonical_snapshot_json(
    job_id: int,
    totals: dict,
    labor_seconds: int,
    hourly_rate_cents: int,
    timestamp: datetime,
) -> str:
    body = {
        "job_id": int(job_id),
        "labor_hours": str(labor_hours(labor_seconds)),
        "hourly_rate_cents": int(hourly_rate_cents),
        "timestamp": timestamp.isoformat(),
    }
    for field in _SNAPSHOT_TOTAL_FIELDS:
        body[field] = int(totals[field])
    return json.dumps(body, sort_keys=True, separators=(",", ":"))


def compute_digest(canonical_json: str) -> str:
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()


def snapshot_digest(snapshot: JobCostSnapshot) -> str:
    """Recompute the digest from the stored fields and the stored timestamp."""
    totals = {field: getattr(snapshot, field) for field in _SNAPSHOT_TOTAL_FIELDS}
    return compute_digest(
        canonical_snapshot_json(
            snapshot.job_id,
            totals,
            snapshot.labor_seconds,
            snapshot.hourly_rate_cents,
            snapshot.hash_generated_at,
        )
    )


def create_cost_snapshot(db: Session, job: Job, actor_id: Optional[int], now: datetime) -> JobCostSnapshot:
    """Runs inside the closing transition; the caller commits."""
    existing = db.query(JobCostSnapshot.id).filter(JobCostSnapshot.job_id == job.id).first()
    if existing is not None:
        raise ConflictError(f"Cost snapshot already exists for job {job.id}", code="SNAPSHOT_EXISTS")

    totals = {field: int(getattr(job, field) or 0) for field in _SNAPSHOT_TOTAL_FIELDS}
    seconds = worked_seconds(job, until=now)
    rate_cents = assignee_hourly_rate_cents(db, job)

    data_hash = compute_digest(canonical_snapshot_json(job.id, totals, seconds, rate_cents, now))

    snapshot = JobCostSnapshot(
        company_id=job.company_id,
        job_id=job.id,
        labor_seconds=seconds,
        hourly_rate_cents=rate_cents,
        data_hash=data_hash,
        hash_generated_at=now,
        created_by=actor_id,
        created_at=now,
        **totals,
    )
    db.add(snapshot)
    db.add(
        DocumentHash(
            document_type=SNAPSHOT_DOCUMENT_TYPE,
            document_id=str(job.id),
            data_hash=data_hash,
            created_at=now,
        )
    )
    db.flush()

    logger.info(
        "Cost snapshot created",
        extra={"job_id": job.id, "total_cost_cents": totals["total_cost_cents"], "data_hash": data_hash},
    )
    return snapshot


def verify_snapshot_record(snapshot: JobCostSnapshot, document_hash: Optional[DocumentHash]) -> str:
    """
    Compare the recomputed digest against both stores. Returns the digest,
    raises IntegrityError on any disagreement.
    """
    recomputed = snapshot_digest(snapshot)
    problems = []
    if recomputed != snapshot.data_hash:
        problems.append("stored fields do not match snapshot digest")
    if document_hash is None:
        problems.append("document hash ledger entry missing")
    elif document_hash.data_hash != snapshot.data_hash:
        problems.append("document hash ledger disagrees with snapshot")
    elif document_hash.data_hash != recomputed:
        problems.append("document hash ledger does not match recomputed digest")

    if problems:
        raise IntegrityError(
            f"Cost snapshot for job {snapshot.job_id} failed integrity verification",
            reasons=problems,
        )
    return recomputed


def _record_integrity_failure(company_id: int, job_id: int, reasons) -> None:
    # Separate session: the alert must outlive whatever the caller rolls back.
    db = SessionLocal()
    try:
        create_alert(
            db,
            company_id=company_id,
            alert_type=AlertType.SNAPSHOT_INTEGRITY,
            severity=AlertSeverity.CRITICAL,
            title=f"Cost snapshot integrity failure - job {job_id}",
            message="; ".join(reasons),
            reference_type="JOB",
            reference_id=job_id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def verify_cost_snapshot(
    job_id: int,
    *,
    company_id: Optional[int] = None,
    db: Optional[Session] = None,
) -> JobCostSnapshot:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        q = db.query(JobCostSnapshot).filter(JobCostSnapshot.job_id == int(job_id))
        if company_id is not None:
            q = q.filter(JobCostSnapshot.company_id == int(company_id))
        snapshot = q.first()
        if snapshot is None:
            raise NotFoundError(f"No cost snapshot for job {job_id}")

        document_hash = (
            db.query(DocumentHash)
            .filter(
                DocumentHash.document_type == SNAPSHOT_DOCUMENT_TYPE,
                DocumentHash.document_id == str(snapshot.job_id),
            )
            .first()
        )

        try:
            verify_snapshot_record(snapshot, document_hash)
        except IntegrityError as exc:
            logger.error(
                "Cost snapshot integrity failure",
                extra={"job_id": snapshot.job_id, "reasons": exc.reasons},
            )
            _record_integrity_failure(snapshot.company_id, snapshot.job_id, exc.reasons)
            raise

        return snapshot
    finally:
        if owns_db:
            db.close()
