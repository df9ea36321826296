import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cmms.core.authorization import Role, parse_role, require_role
from cmms.database import SessionLocal
from cmms.deps.auth import AuthContext, actor_id, company_scope, require_auth
from cmms.models.employee import Employee
from cmms.schemas.employee import EmployeeCreate, EmployeeResponse, EmployeeUpdate
from cmms.services.side_effects import write_audit_log

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/employees", tags=["Employees"])


def _role_value(raw: str) -> str:
    try:
        return parse_role(raw).value
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Unknown role: {raw}") from exc


def _load_employee(db: Session, employee_id: int, company_id: int) -> Employee:
    row = (
        db.query(Employee)
        .filter(Employee.id == int(employee_id), Employee.company_id == int(company_id))
        .first()
    )
    if row is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return row


@router.post("", response_model=EmployeeResponse)
def create_employee(
    payload: EmployeeCreate,
    request: Request,
    _role=Depends(require_role(Role.MANAGER)),
):
    role = _role_value(payload.role)

    db = SessionLocal()
    try:
        row = Employee(
            company_id=company_scope(request),
            name=payload.name.strip(),
            email=payload.email.strip().lower() if payload.email else None,
            role=role,
            hourly_rate_cents=int(payload.hourly_rate_cents),
            is_active=True,
        )
        db.add(row)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Email already registered") from exc
    finally:
        db.close()

    logger.info(
        "Employee created",
        extra={"employee_id": row.id, "company_id": row.company_id, "role": row.role},
    )
    return row


@router.get("", response_model=List[EmployeeResponse])
def list_employees(
    request: Request,
    role: Optional[str] = Query(default=None),
    active_only: bool = Query(default=False),
    _auth: AuthContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        q = db.query(Employee).filter(Employee.company_id == company_scope(request))
        if role is not None:
            q = q.filter(Employee.role == _role_value(role))
        if active_only:
            q = q.filter(Employee.is_active.is_(True))
        return q.order_by(Employee.name.asc(), Employee.id.asc()).all()
    finally:
        db.close()


@router.get("/{employee_id}", response_model=EmployeeResponse)
def get_employee(
    employee_id: int,
    request: Request,
    _auth: AuthContext = Depends(require_auth),
):
    db = SessionLocal()
    try:
        return _load_employee(db, employee_id, company_scope(request))
    finally:
        db.close()


@router.patch("/{employee_id}", response_model=EmployeeResponse)
def update_employee(
    employee_id: int,
    payload: EmployeeUpdate,
    request: Request,
    _role=Depends(require_role(Role.MANAGER)),
):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "role" in changes:
        changes["role"] = _role_value(changes["role"])

    db = SessionLocal()
    try:
        row = _load_employee(db, employee_id, company_scope(request))
        for field, value in changes.items():
            setattr(row, field, value)

        if changes:
            write_audit_log(
                db,
                company_id=row.company_id,
                user_id=actor_id(request),
                action="UPDATE",
                entity="Employee",
                entity_id=row.id,
                new_value=changes,
            )
        db.commit()
        return row
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
