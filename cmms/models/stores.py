from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from cmms.database import Base


class Item(Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    code = Column(String, nullable=False)
    description = Column(String, nullable=False)
    unit_price_cents = Column(Integer, nullable=True)
    weighted_avg_cost_cents = Column(Integer, nullable=True)


class ItemRequest(Base):
    __tablename__ = "item_requests"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default="APPROVED")
    requested_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    lines = relationship("ItemRequestLine", back_populates="request", order_by="ItemRequestLine.id")


class ItemRequestLine(Base):
    __tablename__ = "item_request_lines"

    __table_args__ = (
        CheckConstraint(
            "requested_qty >= 0 AND approved_qty >= 0 AND issued_qty >= 0 AND returned_qty >= 0",
            name="ck_item_request_lines_quantities_nonnegative",
        ),
        CheckConstraint("issued_qty <= approved_qty", name="ck_item_request_lines_issued_le_approved"),
        CheckConstraint("returned_qty <= issued_qty", name="ck_item_request_lines_returned_le_issued"),
    )

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("item_requests.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)

    requested_qty = Column(Float, nullable=False, default=0)
    approved_qty = Column(Float, nullable=False, default=0)
    issued_qty = Column(Float, nullable=False, default=0)
    returned_qty = Column(Float, nullable=False, default=0)

    unit_cost_cents = Column(Integer, nullable=True)
    total_cost_cents = Column(Integer, nullable=True)

    request = relationship("ItemRequest", back_populates="lines")
    item = relationship("Item")


class FuelIssue(Base):
    __tablename__ = "fuel_issues"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    issued_by = Column(Integer, nullable=True)
    operator_id = Column(Integer, nullable=True)

    meter_reading = Column(Float, nullable=True)
    previous_reading = Column(Float, nullable=True)
    meter_validated = Column(Boolean, nullable=False, default=True)
    meter_broken = Column(Boolean, nullable=False, default=False)

    fuel_type = Column(String, nullable=False, default="DIESEL")
    quantity_liters = Column(Float, nullable=False)
    unit_price_cents = Column(Integer, nullable=True)
    total_cost_cents = Column(Integer, nullable=True)

    distance_hours = Column(Float, nullable=True)
    consumption_rate = Column(Float, nullable=True)
    standard_rate = Column(Float, nullable=True)
    variance_percent = Column(Float, nullable=True)
    is_abnormal = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
