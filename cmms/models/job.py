from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from cmms.database import Base


class Job(Base):
    __tablename__ = "jobs"

    __table_args__ = (
        Index("ix_jobs_company_status", "company_id", "status"),
        Index("ix_jobs_pm_schedule_status", "pm_schedule_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    failure_type_id = Column(Integer, ForeignKey("failure_types.id"), nullable=True)
    pm_schedule_id = Column(Integer, ForeignKey("pm_schedules.id"), nullable=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    status = Column(String, nullable=False, default="CREATED", index=True)
    priority = Column(String, nullable=False, default="MEDIUM")
    type = Column(String, nullable=False, default="CORRECTIVE")

    created_by_id = Column(Integer, nullable=True)
    assigned_to_id = Column(Integer, ForeignKey("employees.id"), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    paused_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    total_pause_seconds = Column(Integer, nullable=False, default=0)

    # Materialized from job_cost_log on every append; never written directly.
    material_cost_cents = Column(Integer, nullable=False, default=0)
    labor_cost_cents = Column(Integer, nullable=False, default=0)
    fuel_cost_cents = Column(Integer, nullable=False, default=0)
    service_cost_cents = Column(Integer, nullable=False, default=0)
    other_cost_cents = Column(Integer, nullable=False, default=0)
    total_cost_cents = Column(Integer, nullable=False, default=0)
    cost_calculated_at = Column(DateTime, nullable=True)

    safety_photo_required = Column(Boolean, nullable=False, default=False)
    safety_photo_url = Column(String, nullable=True)
    closure_notes = Column(Text, nullable=True)

    is_void = Column(Boolean, nullable=False, default=False)

    asset = relationship("Asset")
    failure_type = relationship("FailureType")
    assigned_to = relationship("Employee")


class JobEvent(Base):
    __tablename__ = "job_events"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    action = Column(String, nullable=False)
    from_status = Column(String, nullable=True)
    to_status = Column(String, nullable=False)
    actor_id = Column(Integer, nullable=True)
    occurred_at = Column(DateTime, nullable=False)
