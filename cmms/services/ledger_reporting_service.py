from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from cmms.models.job_cost_log import JobCostLog


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def job_cost_totals(
    *,
    company_id: int,
    date_start: datetime,
    date_end: datetime,
    db: Session,
    job_id: Optional[int] = None,
    cost_type: Optional[str] = None,
    reference_type: Optional[str] = None,
) -> dict[str, Any]:
    """
    Read-only reporting query.

    Semantics:
      created_at >= date_start AND created_at < date_end
    Grouping:
      job_id, cost_type
    Credits are netted into their group, not reported separately.
    """
    date_start = _naive_utc(date_start)
    date_end = _naive_utc(date_end)

    q = (
        db.query(
            JobCostLog.job_id.label("job_id"),
            JobCostLog.cost_type.label("cost_type"),
            func.count(JobCostLog.id).label("row_count"),
            func.coalesce(func.sum(JobCostLog.amount_cents), 0).label("amount_cents"),
        )
        .filter(JobCostLog.company_id == int(company_id))
        .filter(JobCostLog.created_at >= date_start)
        .filter(JobCostLog.created_at < date_end)
    )

    if job_id is not None:
        q = q.filter(JobCostLog.job_id == int(job_id))
    if cost_type is not None:
        q = q.filter(JobCostLog.cost_type == str(cost_type).upper())
    if reference_type is not None:
        q = q.filter(JobCostLog.reference_type == str(reference_type))

    rows = (
        q.group_by(JobCostLog.job_id, JobCostLog.cost_type)
        .order_by(JobCostLog.job_id.asc(), JobCostLog.cost_type.asc())
        .all()
    )

    groups = [
        {
            "job_id": int(r.job_id),
            "cost_type": str(r.cost_type),
            "row_count": int(r.row_count),
            "amount_cents": int(r.amount_cents),
        }
        for r in rows
    ]

    return {
        "company_id": int(company_id),
        "date_start": date_start.isoformat(),
        "date_end": date_end.isoformat(),
        "filters": {
            "job_id": job_id,
            "cost_type": cost_type,
            "reference_type": reference_type,
        },
        "groups": groups,
        "total_cents": sum(g["amount_cents"] for g in groups),
    }
