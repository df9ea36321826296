import logging
from typing import Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from cmms.core.clock import Clock, resolve_clock
from cmms.core.errors import NotFoundError, PreconditionError, ValidationError
from cmms.database import SessionLocal
from cmms.models.job import Job
from cmms.models.stores import Item, ItemRequest, ItemRequestLine
from cmms.services import costing_service

logger = logging.getLogger(__name__)


def create_item_request(
    company_id: int,
    job_id: int,
    lines: Iterable[Tuple[int, float, float]],
    requested_by: Optional[int] = None,
    *,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> ItemRequest:
    """lines: (item_id, requested_qty, approved_qty)."""
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    now = resolve_clock(clock).now()

    try:
        job = (
            db.query(Job)
            .filter(Job.id == int(job_id), Job.company_id == int(company_id))
            .first()
        )
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")

        request = ItemRequest(
            company_id=int(company_id),
            job_id=job.id,
            status="APPROVED",
            requested_by=requested_by,
            created_at=now,
        )
        db.add(request)
        db.flush()

        for item_id, requested_qty, approved_qty in lines:
            item = (
                db.query(Item)
                .filter(Item.id == int(item_id), Item.company_id == int(company_id))
                .first()
            )
            if item is None:
                raise NotFoundError(f"Item {item_id} not found")
            db.add(
                ItemRequestLine(
                    request_id=request.id,
                    item_id=item.id,
                    requested_qty=float(requested_qty),
                    approved_qty=float(approved_qty),
                    issued_qty=0,
                    returned_qty=0,
                )
            )
        db.flush()

        if owns_db:
            db.commit()
        return request
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def _load_line(db: Session, line_id: int, company_id: Optional[int]) -> Tuple[ItemRequestLine, ItemRequest]:
    line = (
        db.query(ItemRequestLine)
        .filter(ItemRequestLine.id == int(line_id))
        .with_for_update()
        .first()
    )
    if line is None:
        raise NotFoundError(f"Item request line {line_id} not found")
    request = db.query(ItemRequest).filter(ItemRequest.id == line.request_id).first()
    if company_id is not None and request.company_id != int(company_id):
        raise NotFoundError(f"Item request line {line_id} not found")
    return line, request


def unit_cost_for(item: Item) -> int:
    return int(item.weighted_avg_cost_cents or item.unit_price_cents or 0)


def issue_request_line(
    line_id: int,
    quantity: Optional[float] = None,
    *,
    company_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> ItemRequestLine:
    """
    Issue parts against an approved line and charge them to the job.
    Quantity defaults to whatever is still approved but not issued.

    If db is provided, this function will NOT commit/close. Caller owns the transaction.
    """
    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        line, request = _load_line(db, line_id, company_id)

        outstanding = float(line.approved_qty) - float(line.issued_qty or 0)
        qty = outstanding if quantity is None else float(quantity)
        if qty <= 0:
            raise ValidationError("Issue quantity must be greater than 0")
        if float(line.issued_qty or 0) + qty > float(line.approved_qty):
            raise PreconditionError(
                f"Cannot issue {qty}; only {outstanding} approved and not yet issued",
                code="OVER_ISSUE",
            )

        item = db.query(Item).filter(Item.id == line.item_id).first()
        unit_cost = unit_cost_for(item)

        line.issued_qty = float(line.issued_qty or 0) + qty
        line.unit_cost_cents = unit_cost
        line.total_cost_cents = costing_service.extended_cost_cents(line.issued_qty, unit_cost)
        db.flush()

        if unit_cost > 0:
            costing_service.add_material_cost(
                request.job_id,
                item.id,
                qty,
                unit_cost,
                "ITEM_REQUEST",
                str(line.id),
                actor_id,
                db=db,
                clock=clock,
            )

        logger.info(
            "Parts issued",
            extra={"line_id": line.id, "job_id": request.job_id, "quantity": qty, "unit_cost_cents": unit_cost},
        )

        if owns_db:
            db.commit()
        return line
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()


def accept_return(
    line_id: int,
    quantity: float,
    *,
    company_id: Optional[int] = None,
    actor_id: Optional[int] = None,
    db: Optional[Session] = None,
    clock: Optional[Clock] = None,
) -> ItemRequestLine:
    """Accept returned parts and credit the job at the price they were issued at."""
    if quantity is None or float(quantity) <= 0:
        raise ValidationError("Return quantity must be greater than 0")
    qty = float(quantity)

    owns_db = db is None
    if owns_db:
        db = SessionLocal()

    try:
        line, request = _load_line(db, line_id, company_id)

        returnable = float(line.issued_qty or 0) - float(line.returned_qty or 0)
        if qty > returnable:
            raise PreconditionError(
                f"Cannot return {qty}; only {returnable} issued and not yet returned",
                code="OVER_RETURN",
            )

        line.returned_qty = float(line.returned_qty or 0) + qty
        db.flush()

        unit_cost = int(line.unit_cost_cents or 0)
        if unit_cost > 0:
            costing_service.credit_material_cost(
                request.job_id,
                line.item_id,
                qty,
                unit_cost,
                "ITEM_RETURN",
                str(line.id),
                actor_id,
                db=db,
                clock=clock,
            )

        logger.info(
            "Parts returned",
            extra={"line_id": line.id, "job_id": request.job_id, "quantity": qty},
        )

        if owns_db:
            db.commit()
        return line
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()
