import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from cmms.database import SessionLocal
from cmms.models.enums import CostType
from cmms.models.job_cost_log import JobCostLog
from cmms.models.snapshot import JobCostSnapshot
from cmms.services import costing_service, job_state_machine


def test_job_cost_log_update_is_blocked(job_factory, clock):
    job = job_factory()
    entry = costing_service.add_cost(job.id, CostType.SERVICE, 5000, clock=clock)

    db = SessionLocal()
    try:
        row = db.query(JobCostLog).filter(JobCostLog.id == entry.id).one()
        row.amount_cents = 1
        with pytest.raises(DBAPIError):
            db.commit()
    finally:
        db.rollback()
        db.close()


def test_job_cost_log_delete_is_blocked(job_factory, clock):
    job = job_factory()
    entry = costing_service.add_cost(job.id, CostType.OTHER, 100, clock=clock)

    db = SessionLocal()
    try:
        with pytest.raises(DBAPIError):
            db.execute(text("DELETE FROM job_cost_log WHERE id = :id"), {"id": entry.id})
            db.commit()
    finally:
        db.rollback()
        db.close()

    db = SessionLocal()
    try:
        assert db.query(JobCostLog).filter(JobCostLog.id == entry.id).count() == 1
    finally:
        db.close()


def test_cost_snapshot_update_is_blocked(started_job, clock):
    job = started_job()
    job_state_machine.transition_job(job.id, "complete", 1, clock=clock)
    job_state_machine.close_job(job.id, 1, clock=clock)

    db = SessionLocal()
    try:
        snapshot = db.query(JobCostSnapshot).filter(JobCostSnapshot.job_id == job.id).one()
        snapshot.total_cost_cents = 1
        with pytest.raises(DBAPIError):
            db.commit()
    finally:
        db.rollback()
        db.close()
