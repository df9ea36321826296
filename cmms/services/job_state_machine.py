import enum
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from cmms.core.authorization import SUPERVISORY_ROLES
from cmms.core.clock import Clock, resolve_clock
from cmms.core.errors import ConflictError, NotFoundError, PreconditionError, TransitionError, ValidationError
from cmms.database import SessionLocal
from cmms.models.asset import Asset, FailureType
from cmms.models.employee import Employee
from cmms.models.enums import JobPriority, JobStatus, JobType
from cmms.models.job import Job, JobEvent
from cmms.models.stores import ItemRequest, ItemRequestLine
from cmms.services import costing_service, downtime_service, side_effects, snapshot_service

logger = logging.getLogger(__name__)


class JobAction(str, enum.Enum):
    ASSIGN = "assign"
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"
    CLOSE = "close"
    CANCEL = "cancel"


ACTION_TARGET: Dict[JobAction, JobStatus] = {
    JobAction.ASSIGN: JobStatus.ASSIGNED,
    JobAction.START: JobStatus.IN_PROGRESS,
    JobAction.PAUSE: JobStatus.PAUSED,
    JobAction.RESUME: JobStatus.IN_PROGRESS,
    JobAction.COMPLETE: JobStatus.COMPLETED,
    JobAction.CLOSE: JobStatus.CLOSED,
    JobAction.CANCEL: JobStatus.CANCELLED,
}

assert set(ACTION_TARGET) == set(JobAction), "every JobAction needs a target status"

TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.CREATED: frozenset({JobStatus.ASSIGNED, JobStatus.CANCELLED}),
    JobStatus.ASSIGNED: frozenset({JobStatus.IN_PROGRESS, JobStatus.CANCELLED}),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.PAUSED, JobStatus.COMPLETED}),
    JobStatus.PAUSED: frozenset({JobStatus.IN_PROGRESS, JobStatus.CANCELLED}),
    JobStatus.COMPLETED: frozenset({JobStatus.CLOSED}),
    JobStatus.CLOSED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

# A resume only counts as such from PAUSED; IN_PROGRESS -> IN_PROGRESS is not a transition.
_ACTION_SOURCES: Dict[JobAction, frozenset] = {
    JobAction.START: frozenset({JobStatus.ASSIGNED}),
    JobAction.RESUME: frozenset({JobStatus.PAUSED}),
}


def parse_action(value) -> JobAction:
    try:
        return JobAction(str(getattr(value, "value", value)).lower())
    except ValueError as exc:
        raise ValidationError(f"Unknown job action: {value}") from exc


def is_allowed(current: JobStatus, action: JobAction) -> bool:
    target = ACTION_TARGET[action]
    if target not in TRANSITIONS[current]:
        return False
    sources = _ACTION_SOURCES.get(action)
    return sources is None or current in sources


def pending_returns(db: Session, job_id: int) -> bool:
    """True while any part issued to the job has not been returned."""
    row = (
        db.query(ItemRequestLine.id)
        .join(ItemRequest, ItemRequest.id == ItemRequestLine.request_id)
        .filter(
            ItemRequest.job_id == int(job_id),
            ItemRequestLine.issued_qty > ItemRequestLine.returned_qty,
        )
        .first()
    )
    return row is not None


def safety_photo_required(db: Session, job: Job) -> bool:
    if job.safety_photo_required:
        return True
    asset = db.query(Asset).filter(Asset.id == job.asset_id).first()
    if asset is not None and asset.safety_critical:
        return True
    if job.failure_type_id is not None:
        failure_type = db.query(FailureType).filter(FailureType.id == job.failure_type_id).first()
        if failure_type is not None and failure_type.safety_critical:
            return True
    return False


def close_blockers(db: Session, job: Job) -> List[str]:
    reasons = []
    if job.status != JobStatus.COMPLETED.value:
        reasons.append(f"Job status is {job.status}, expected COMPLETED")
    if pending_returns(db, job.id):
        reasons.append("Job has pending item returns")
    if safety_photo_required(db, job) and not job.safety_photo_url:
        reasons.append("Safety photo is required")
    return reasons


def can_close_job(
    job_id: int,
    *,
    company_id: Optional[int] = None,
    db: Optional[Session] = None,
) -> Tuple[bool, List[str]]:
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        job = _load_job(db, job_id, company_id=company_id, for_update=False)
        reasons = close_blockers(db, job)
        return (not reasons, reasons)
    finally:
        if owns_db:
            db.close()


def _load_job(db: Session, job_id: int, *, company_id: Optional[int], for_update: bool) -> Job:
    q = db.query(Job).filter(Job.id == int(job_id))
    if company_id is not None:
        q = q.filter(Job.company_id == int(company_id))
    if for_update:
        q = q.with_for_update()
    job = q.first()
    if job is None:
        raise NotFoundError(f"Job {job_id} not found")
    return job


def _get_employee(db: Session, employee_id: int, company_id: int) -> Employee:
    employee = (
        db.query(Employee)
        .filter(Employee.id == int(employee_id), Employee.company_id == int(company_id))
        .first()
    )
    if employee is None:
        raise NotFoundError(f"Employee {employee_id} not found")
    if not employee.is_active:
        raise PreconditionError(f"Employee {employee_id} is inactive", code="EMPLOYEE_INACTIVE")
    return employee


def _swap_status(db: Session, job: Job, expected: str, target: str) -> None:
    updated = (
        db.query(Job)
        .filter(Job.id == job.id, Job.status == expected)
        .update({Job.status: target}, synchronize_session=False)
    )
    if updated != 1:
        raise ConflictError(
            f"Job {job.id} changed status concurrently",
            code="STALE_STATUS",
        )
    job.status = target


def _apply_complete(db: Session, job: Job, payload: Dict[str, Any], now: datetime) -> None:
    if pending_returns(db, job.id):
        raise PreconditionError(
            "Cannot complete job with pending item returns",
            code="PENDING_RETURNS",
        )

    photo_url = payload.get("safety_photo_url")
    if safety_photo_required(db, job) and not (job.safety_photo_url or photo_url):
        raise PreconditionError(
            "Safety photo is required to complete this job",
            code="SAFETY_PHOTO_REQUIRED",
        )

    if photo_url:
        job.safety_photo_url = photo_url
    if payload.get("closure_notes"):
        job.closure_notes = payload["closure_notes"]
    job.completed_at = now


def _apply_close(db: Session, job: Job, payload: Dict[str, Any], now: datetime) -> None:
    if payload.get("safety_photo_url") and not job.safety_photo_url:
        job.safety_photo_url = payload["safety_photo_url"]
    reasons = close_blockers(db, job)
    if reasons:
        raise PreconditionError("Job cannot be closed", code="CLOSE_BLOCKED", reasons=reasons)
    if payload.get("closure_notes"):
        job.closure_notes = payload["closure_notes"]
    job.closed_at = now


def _apply_resume(job: Job, now: datetime) -> int:
    if job.paused_at is None:
        return 0
    paused_seconds = max(int((now - job.paused_at).total_seconds()), 0)
    job.total_pause_seconds = int(job.total_pause_seconds or 0) + paused_seconds
    job.paused_at = None
    return paused_seconds


def transition_job(
    job_id: int,
    action,
    actor_id: Optional[int],
    payload: Optional[Dict[str, Any]] = None,
    *,
    company_id: Optional[int] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> Job:
    """
    Apply one action to a job: validate against the transition table, run the
    action's preconditions and side effects, record a JobEvent.

    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    If db is None, this function manages its own session + commit.
    """
    action = parse_action(action)
    payload = dict(payload or {})

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = resolve_clock(clock).now()

    try:
        job = _load_job(db, job_id, company_id=company_id, for_update=True)
        current = JobStatus(job.status)
        target = ACTION_TARGET[action]

        if not is_allowed(current, action):
            raise TransitionError(f"Cannot {action.value} a job in status {current.value}")

        if action == JobAction.ASSIGN:
            assignee_id = payload.get("assigned_to_id")
            if assignee_id is not None:
                job.assigned_to_id = _get_employee(db, assignee_id, job.company_id).id
        elif action == JobAction.START:
            if job.started_at is None:
                job.started_at = now
        elif action == JobAction.PAUSE:
            job.paused_at = now
        elif action == JobAction.RESUME:
            _apply_resume(job, now)
        elif action == JobAction.COMPLETE:
            _apply_complete(db, job, payload, now)
        elif action == JobAction.CLOSE:
            _apply_close(db, job, payload, now)

        _swap_status(db, job, current.value, target.value)

        db.add(
            JobEvent(
                company_id=job.company_id,
                job_id=job.id,
                action=action.value,
                from_status=current.value,
                to_status=target.value,
                actor_id=actor_id,
                occurred_at=now,
            )
        )
        db.flush()

        if action == JobAction.ASSIGN and job.assigned_to_id is not None:
            side_effects.notify_users(
                db,
                [job.assigned_to_id],
                title="Job assigned",
                message=f"You have been assigned to job #{job.id}: {job.title}",
                notification_type="JOB_ASSIGNED",
                reference_id=job.id,
            )
        elif action == JobAction.COMPLETE:
            costing_service.calculate_labor_cost(db, job, actor_id, now)
            downtime_service.end_job_downtime(db, job, now, resolved_by=actor_id)
            side_effects.notify_roles(
                db,
                job.company_id,
                [r.value for r in SUPERVISORY_ROLES],
                title="Job completed",
                message=f"Job #{job.id} ({job.title}) is ready for review",
                notification_type="JOB_COMPLETED",
                reference_id=job.id,
            )
        elif action == JobAction.CLOSE:
            snapshot_service.create_cost_snapshot(db, job, actor_id, now)
            downtime_service.end_job_downtime(db, job, now, resolved_by=actor_id)
            if job.created_by_id is not None:
                side_effects.notify_users(
                    db,
                    [job.created_by_id],
                    title="Job closed",
                    message=f"Job #{job.id} ({job.title}) has been closed",
                    notification_type="JOB_CLOSED",
                    reference_id=job.id,
                )

        logger.info(
            "Job transitioned",
            extra={
                "job_id": job.id,
                "action": action.value,
                "from_status": current.value,
                "to_status": target.value,
                "actor_id": actor_id,
            },
        )

        if owns_db:
            db.commit()

        return job
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def close_job(
    job_id: int,
    actor_id: Optional[int],
    *,
    safety_photo_url: Optional[str] = None,
    closure_notes: Optional[str] = None,
    company_id: Optional[int] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> Job:
    payload = {}
    if safety_photo_url:
        payload["safety_photo_url"] = safety_photo_url
    if closure_notes:
        payload["closure_notes"] = closure_notes
    return transition_job(
        job_id,
        JobAction.CLOSE,
        actor_id,
        payload,
        company_id=company_id,
        db=db,
        clock=clock,
    )


def create_job(
    company_id: int,
    asset_id: int,
    title: str,
    *,
    job_type: JobType = JobType.CORRECTIVE,
    priority: JobPriority = JobPriority.MEDIUM,
    description: Optional[str] = None,
    failure_type_id: Optional[int] = None,
    safety_photo_required: bool = False,
    pm_schedule_id: Optional[int] = None,
    created_by_id: Optional[int] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> Job:
    """
    Create a job in CREATED. A BREAKDOWN job puts its asset into downtime.

    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    """
    try:
        job_type = JobType(job_type)
        priority = JobPriority(priority)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if not title or not str(title).strip():
        raise ValidationError("title is required")

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = resolve_clock(clock).now()

    try:
        asset = (
            db.query(Asset)
            .filter(Asset.id == int(asset_id), Asset.company_id == int(company_id))
            .first()
        )
        if asset is None:
            raise NotFoundError(f"Asset {asset_id} not found")

        if failure_type_id is not None:
            failure_type = (
                db.query(FailureType)
                .filter(FailureType.id == int(failure_type_id), FailureType.company_id == int(company_id))
                .first()
            )
            if failure_type is None:
                raise NotFoundError(f"Failure type {failure_type_id} not found")

        job = Job(
            company_id=int(company_id),
            asset_id=asset.id,
            failure_type_id=failure_type_id,
            pm_schedule_id=pm_schedule_id,
            title=str(title).strip(),
            description=description,
            status=JobStatus.CREATED.value,
            priority=priority.value,
            type=job_type.value,
            created_by_id=created_by_id,
            created_at=now,
            total_pause_seconds=0,
            safety_photo_required=bool(safety_photo_required),
            is_void=False,
        )
        db.add(job)
        db.flush()

        db.add(
            JobEvent(
                company_id=job.company_id,
                job_id=job.id,
                action="create",
                from_status=None,
                to_status=JobStatus.CREATED.value,
                actor_id=created_by_id,
                occurred_at=now,
            )
        )
        db.flush()

        if job_type == JobType.BREAKDOWN:
            downtime_service.start_breakdown_downtime(db, job, now)

        logger.info(
            "Job created",
            extra={"job_id": job.id, "asset_id": asset.id, "type": job.type, "pm_schedule_id": pm_schedule_id},
        )

        if owns_db:
            db.commit()

        return job
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def job_events(db: Session, job_id: int) -> List[JobEvent]:
    return (
        db.query(JobEvent)
        .filter(JobEvent.job_id == int(job_id))
        .order_by(JobEvent.occurred_at.asc(), JobEvent.id.asc())
        .all()
    )
