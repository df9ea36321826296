from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from cmms.database import SessionLocal
from cmms.models.job_cost_log import JobCostLog


def _entry(job_id: int, amount_cents: int) -> JobCostLog:
    return JobCostLog(
        company_id=1,
        job_id=job_id,
        sequence_no=1,
        cost_type="OTHER",
        amount_cents=amount_cents,
        running_total_cents=amount_cents,
        created_at=datetime(2026, 3, 2, 8, 0, 0),
    )


def test_job_cost_log_sequence_is_unique_per_job(job_factory):
    job = job_factory()

    db = SessionLocal()
    try:
        db.add(_entry(job.id, 100))
        db.commit()

        db.add(_entry(job.id, 200))
        with pytest.raises(IntegrityError):
            db.commit()
    finally:
        db.rollback()
        db.close()


def test_same_sequence_allowed_on_different_jobs(job_factory):
    first = job_factory()
    second = job_factory()

    db = SessionLocal()
    try:
        db.add_all([_entry(first.id, 100), _entry(second.id, 100)])
        db.commit()
        assert db.query(JobCostLog).count() == 2
    finally:
        db.close()
