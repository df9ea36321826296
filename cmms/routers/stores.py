from fastapi import APIRouter, Depends, Request

from cmms.core.authorization import Role, require_role
from cmms.core.clock import Clock
from cmms.database import SessionLocal
from cmms.deps.auth import AuthContext, actor_id, company_scope, require_auth
from cmms.deps.clock import get_clock
from cmms.schemas.stores import (
    FuelIssueCreate,
    FuelIssueResponse,
    ItemRequestCreate,
    ItemRequestResponse,
    QuantityRequest,
    RequestLineResponse,
)
from cmms.services import fuel_service, stores_service

router = APIRouter(tags=["Stores"])


@router.post("/stores/requests", response_model=ItemRequestResponse)
def create_item_request(
    payload: ItemRequestCreate,
    request: Request,
    _role=Depends(require_role(Role.STOREKEEPER)),
    clock: Clock = Depends(get_clock),
):
    db = SessionLocal()
    try:
        row = stores_service.create_item_request(
            company_scope(request),
            payload.job_id,
            [
                (
                    line.item_id,
                    line.requested_qty,
                    line.requested_qty if line.approved_qty is None else line.approved_qty,
                )
                for line in payload.lines
            ],
            actor_id(request),
            db=db,
            clock=clock,
        )
        db.commit()
        return ItemRequestResponse.model_validate(row)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.post("/stores/lines/{line_id}/issue", response_model=RequestLineResponse)
def issue_line(
    line_id: int,
    payload: QuantityRequest,
    request: Request,
    _role=Depends(require_role(Role.STOREKEEPER)),
    clock: Clock = Depends(get_clock),
):
    return stores_service.issue_request_line(
        line_id,
        payload.quantity,
        company_id=company_scope(request),
        actor_id=actor_id(request),
        clock=clock,
    )


@router.post("/stores/lines/{line_id}/return", response_model=RequestLineResponse)
def accept_return(
    line_id: int,
    payload: QuantityRequest,
    request: Request,
    _role=Depends(require_role(Role.STOREKEEPER)),
    clock: Clock = Depends(get_clock),
):
    return stores_service.accept_return(
        line_id,
        payload.quantity,
        company_id=company_scope(request),
        actor_id=actor_id(request),
        clock=clock,
    )


@router.post("/fuel", response_model=FuelIssueResponse)
def record_fuel_issue(
    payload: FuelIssueCreate,
    request: Request,
    _auth: AuthContext = Depends(require_auth),
    clock: Clock = Depends(get_clock),
):
    return fuel_service.record_fuel_issue(
        company_scope(request),
        payload.asset_id,
        payload.meter_reading,
        payload.quantity_liters,
        unit_price_cents=payload.unit_price_cents,
        job_id=payload.job_id,
        operator_id=payload.operator_id,
        meter_broken=payload.meter_broken,
        fuel_type=payload.fuel_type,
        override_token=payload.override_token,
        actor_id=actor_id(request),
        clock=clock,
    )
