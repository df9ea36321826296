from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text

from cmms.database import Base


class PMSchedule(Base):
    __tablename__ = "pm_schedules"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)

    interval_type = Column(String, nullable=False)  # HOURS|DAYS|KILOMETERS|MILES
    interval_value = Column(Float, nullable=False)

    last_service_meter = Column(Float, nullable=False, default=0)
    last_service_date = Column(DateTime, nullable=True)
    next_due_meter = Column(Float, nullable=False)

    job_title_template = Column(String, nullable=False)
    job_description = Column(Text, nullable=True)
    estimated_duration = Column(Float, nullable=True)
    priority = Column(String, nullable=False, default="MEDIUM")

    is_active = Column(Boolean, nullable=False, default=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class MeterReading(Base):
    __tablename__ = "meter_readings"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    job_id = Column(Integer, nullable=True)

    reading = Column(Float, nullable=False)
    previous_reading = Column(Float, nullable=True)
    reading_date = Column(DateTime, nullable=False)
    effective_date = Column(DateTime, nullable=False)
    is_late_entry = Column(Boolean, nullable=False, default=False)

    is_rollback = Column(Boolean, nullable=False, default=False)
    rollback_handled = Column(Boolean, nullable=False, default=False)
    override_by = Column(Integer, nullable=True)

    photo_url = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
