from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, UniqueConstraint

from cmms.database import Base


class Employee(Base):
    """A user who can be assigned jobs, approve overrides or receive notifications.

    ``hourly_rate_cents`` is read at completion time to cost labor, so changing
    it only affects jobs completed afterwards.
    """

    __tablename__ = "employees"

    __table_args__ = (
        CheckConstraint("hourly_rate_cents >= 0", name="ck_employees_hourly_rate_cents_nonnegative"),
        UniqueConstraint("company_id", "email", name="uq_employees_company_email"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    role = Column(String, nullable=False, default="TECHNICIAN", index=True)
    hourly_rate_cents = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
