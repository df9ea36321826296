from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, UniqueConstraint

from cmms.database import Base


class Asset(Base):
    __tablename__ = "assets"

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_assets_company_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    code = Column(String, nullable=False)
    description = Column(String, nullable=False)
    status = Column(String, nullable=False, default="ACTIVE", index=True)

    safety_critical = Column(Boolean, nullable=False, default=False)

    meter_type = Column(String, nullable=False, default="HOURS")
    current_meter = Column(Float, nullable=True)
    last_meter_update = Column(DateTime, nullable=True)

    standard_consumption_rate = Column(Float, nullable=True)  # distance or hours per liter
    value_cents = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class FailureType(Base):
    __tablename__ = "failure_types"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    safety_critical = Column(Boolean, nullable=False, default=False)
