from datetime import datetime

import pytest

from cmms.core.errors import ConflictError, IntegrityError, PreconditionError, TransitionError
from cmms.database import SessionLocal
from cmms.models.activity import Alert, Notification
from cmms.models.job import Job
from cmms.models.job_cost_log import JobCostLog
from cmms.models.snapshot import DocumentHash, JobCostSnapshot
from cmms.models.stores import ItemRequestLine
from cmms.services import job_state_machine, snapshot_service, stores_service


def _job(job_id: int) -> Job:
    db = SessionLocal()
    try:
        return db.query(Job).filter(Job.id == job_id).one()
    finally:
        db.close()


def test_labor_cost_excludes_pause_time(started_job, clock):
    job = started_job(hourly_rate_cents=2500)
    clock.advance(hours=1)
    job_state_machine.transition_job(job.id, "pause", 1, clock=clock)
    clock.advance(minutes=30)
    job_state_machine.transition_job(job.id, "resume", 1, clock=clock)
    clock.advance(hours=1)

    completed = job_state_machine.transition_job(job.id, "complete", 1, clock=clock)

    assert completed.status == "COMPLETED"
    assert completed.completed_at == clock.now()
    assert completed.labor_cost_cents == 5000

    db = SessionLocal()
    try:
        labor = db.query(JobCostLog).filter(JobCostLog.job_id == job.id, JobCostLog.cost_type == "LABOR").one()
    finally:
        db.close()
    assert labor.quantity == pytest.approx(2.0)
    assert labor.unit_cost_cents == 2500


def test_complete_blocked_by_unreturned_parts(started_job, item_factory, clock):
    job = started_job()
    item = item_factory(unit_price_cents=800)
    request = stores_service.create_item_request(1, job.id, [(item.id, 2, 2)], clock=clock)

    db = SessionLocal()
    try:
        line_id = db.query(ItemRequestLine.id).filter(ItemRequestLine.request_id == request.id).scalar()
    finally:
        db.close()

    stores_service.issue_request_line(line_id, 2, clock=clock)

    with pytest.raises(PreconditionError) as exc_info:
        job_state_machine.transition_job(job.id, "complete", 1, clock=clock)
    assert exc_info.value.code == "PENDING_RETURNS"
    assert _job(job.id).status == "IN_PROGRESS"

    stores_service.accept_return(line_id, 2, clock=clock)
    job_state_machine.transition_job(job.id, "complete", 1, clock=clock)
    assert _job(job.id).status == "COMPLETED"


def test_safety_critical_asset_requires_photo(started_job, asset_factory, clock):
    asset = asset_factory(safety_critical=True)
    job = started_job(asset=asset)

    with pytest.raises(PreconditionError) as exc_info:
        job_state_machine.transition_job(job.id, "complete", 1, clock=clock)
    assert exc_info.value.code == "SAFETY_PHOTO_REQUIRED"
    assert _job(job.id).status == "IN_PROGRESS"

    job_state_machine.transition_job(
        job.id, "complete", 1, {"safety_photo_url": "https://photos.example/lockout.jpg"}, clock=clock
    )

    refreshed = _job(job.id)
    assert refreshed.status == "COMPLETED"
    assert refreshed.safety_photo_url == "https://photos.example/lockout.jpg"


def test_safety_critical_failure_type_requires_photo(started_job, failure_type_factory, clock):
    failure_type = failure_type_factory(safety_critical=True)
    job = started_job(failure_type_id=failure_type.id)

    with pytest.raises(PreconditionError):
        job_state_machine.transition_job(job.id, "complete", 1, clock=clock)


def test_complete_notifies_supervisory_roles(started_job, employee_factory, clock):
    supervisor = employee_factory(role="SUPERVISOR")
    manager = employee_factory(role="MANAGER")
    other_tech = employee_factory(role="TECHNICIAN")
    job = started_job()

    job_state_machine.transition_job(job.id, "complete", 1, clock=clock)

    db = SessionLocal()
    try:
        recipients = {
            n.user_id for n in db.query(Notification).filter(Notification.type == "JOB_COMPLETED").all()
        }
    finally:
        db.close()
    assert recipients == {supervisor.id, manager.id}
    assert other_tech.id not in recipients


def test_close_happy_path_creates_verifiable_snapshot(started_job, clock):
    job = started_job(hourly_rate_cents=4000, created_by_id=99)
    clock.advance(hours=1, minutes=30)
    job_state_machine.transition_job(job.id, "complete", 1, clock=clock)
    clock.advance(minutes=10)

    closed = job_state_machine.close_job(job.id, 1, closure_notes="Hose replaced", clock=clock)

    assert closed.status == "CLOSED"
    assert closed.closed_at == clock.now()
    assert closed.closure_notes == "Hose replaced"

    db = SessionLocal()
    try:
        snapshot = db.query(JobCostSnapshot).filter(JobCostSnapshot.job_id == job.id).one()
        document_hash = db.query(DocumentHash).filter(DocumentHash.document_id == str(job.id)).one()
        closed_note = db.query(Notification).filter(Notification.type == "JOB_CLOSED").one()
    finally:
        db.close()

    assert snapshot.labor_cost_cents == 6000
    assert snapshot.total_cost_cents == 6000
    assert snapshot.labor_seconds == 5400
    assert snapshot.hourly_rate_cents == 4000
    assert len(snapshot.data_hash) == 64
    assert document_hash.data_hash == snapshot.data_hash
    assert closed_note.user_id == 99

    verified = snapshot_service.verify_cost_snapshot(job.id)
    assert verified.data_hash == snapshot.data_hash


def test_close_requires_completed(started_job, clock):
    job = started_job()

    with pytest.raises(TransitionError):
        job_state_machine.close_job(job.id, 1, clock=clock)

    assert _job(job.id).status == "IN_PROGRESS"


def test_close_blocked_reports_reasons(started_job, clock):
    job = started_job()
    job_state_machine.transition_job(job.id, "complete", 1, clock=clock)

    # Flag raised after completion, as a supervisor would during review.
    db = SessionLocal()
    try:
        db.query(Job).filter(Job.id == job.id).update({Job.safety_photo_required: True})
        db.commit()
    finally:
        db.close()

    can_close, reasons = job_state_machine.can_close_job(job.id)
    assert can_close is False
    assert reasons == ["Safety photo is required"]

    with pytest.raises(PreconditionError) as exc_info:
        job_state_machine.close_job(job.id, 1, clock=clock)
    assert exc_info.value.code == "CLOSE_BLOCKED"
    assert exc_info.value.reasons == ["Safety photo is required"]

    job_state_machine.close_job(job.id, 1, safety_photo_url="https://photos.example/ok.jpg", clock=clock)
    assert _job(job.id).status == "CLOSED"


def test_snapshot_is_created_only_once(started_job, clock):
    job = started_job()
    job_state_machine.transition_job(job.id, "complete", 1, clock=clock)
    job_state_machine.close_job(job.id, 1, clock=clock)

    db = SessionLocal()
    try:
        row = db.query(Job).filter(Job.id == job.id).one()
        with pytest.raises(ConflictError) as exc_info:
            snapshot_service.create_cost_snapshot(db, row, 1, clock.now())
        assert exc_info.value.code == "SNAPSHOT_EXISTS"
        assert db.query(JobCostSnapshot).filter(JobCostSnapshot.job_id == job.id).count() == 1
    finally:
        db.rollback()
        db.close()


def test_closed_job_rejects_further_transitions(started_job, clock):
    job = started_job()
    job_state_machine.transition_job(job.id, "complete", 1, clock=clock)
    job_state_machine.close_job(job.id, 1, clock=clock)

    for action in ("start", "cancel", "close", "complete"):
        with pytest.raises(ConflictError):
            job_state_machine.transition_job(job.id, action, 1, clock=clock)


def test_tampered_document_hash_fails_verification_and_alerts(started_job, clock):
    job = started_job()
    clock.advance(hours=2)
    job_state_machine.transition_job(job.id, "complete", 1, clock=clock)
    job_state_machine.close_job(job.id, 1, clock=clock)

    db = SessionLocal()
    try:
        db.query(DocumentHash).filter(DocumentHash.document_id == str(job.id)).update(
            {DocumentHash.data_hash: "0" * 64}
        )
        db.commit()
    finally:
        db.close()

    with pytest.raises(IntegrityError) as exc_info:
        snapshot_service.verify_cost_snapshot(job.id)
    assert exc_info.value.status_code == 500
    assert exc_info.value.reasons == ["document hash ledger disagrees with snapshot"]

    db = SessionLocal()
    try:
        alert = db.query(Alert).filter(Alert.type == "SNAPSHOT_INTEGRITY").one()
    finally:
        db.close()
    assert alert.severity == "CRITICAL"
    assert alert.reference_id == str(job.id)


def test_tampered_snapshot_fields_fail_verification_and_alert(started_job, clock):
    job = started_job()
    clock.advance(hours=2)
    job_state_machine.transition_job(job.id, "complete", 1, clock=clock)
    job_state_machine.close_job(job.id, 1, clock=clock)

    # Change the loaded row only; the stored one is protected by triggers.
    db = SessionLocal()
    try:
        snapshot = db.query(JobCostSnapshot).filter(JobCostSnapshot.job_id == job.id).one()
        snapshot.total_cost_cents += 1

        with pytest.raises(IntegrityError) as exc_info:
            snapshot_service.verify_cost_snapshot(job.id, db=db)
    finally:
        db.rollback()
        db.close()

    assert exc_info.value.reasons == ["stored fields do not match snapshot digest"]

    db = SessionLocal()
    try:
        alert = db.query(Alert).filter(Alert.type == "SNAPSHOT_INTEGRITY").one()
    finally:
        db.close()
    assert alert.severity == "CRITICAL"
    assert alert.reference_id == str(job.id)
    assert "stored fields do not match snapshot digest" in alert.message

    assert snapshot_service.verify_cost_snapshot(job.id).job_id == job.id


def test_missing_document_hash_fails_verification(started_job, clock):
    job = started_job()
    job_state_machine.transition_job(job.id, "complete", 1, clock=clock)
    job_state_machine.close_job(job.id, 1, clock=clock)

    db = SessionLocal()
    try:
        db.query(DocumentHash).filter(DocumentHash.document_id == str(job.id)).delete()
        db.commit()
    finally:
        db.close()

    with pytest.raises(IntegrityError) as exc_info:
        snapshot_service.verify_cost_snapshot(job.id)
    assert exc_info.value.reasons == ["document hash ledger missing"]


def test_digest_is_deterministic_over_canonical_fields():
    totals = {
        "material_cost_cents": 4500,
        "labor_cost_cents": 6000,
        "fuel_cost_cents": 0,
        "service_cost_cents": 0,
        "other_cost_cents": 0,
        "total_cost_cents": 10500,
    }
    at = datetime(2026, 3, 2, 10, 0, 0)

    first = snapshot_service.canonical_snapshot_json(7, totals, 5400, 4000, at)
    second = snapshot_service.canonical_snapshot_json(7, dict(reversed(list(totals.items()))), 5400, 4000, at)

    assert first == second
    assert '"labor_hours":"1.5000"' in first
    assert snapshot_service.compute_digest(first) == snapshot_service.compute_digest(second)
    assert snapshot_service.compute_digest(first) != snapshot_service.compute_digest(
        snapshot_service.canonical_snapshot_json(7, totals, 5400, 4001, at)
    )
