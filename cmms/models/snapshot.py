from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from cmms.database import Base


class JobCostSnapshot(Base):
    __tablename__ = "job_cost_snapshots"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, unique=True)

    material_cost_cents = Column(Integer, nullable=False)
    labor_cost_cents = Column(Integer, nullable=False)
    fuel_cost_cents = Column(Integer, nullable=False)
    service_cost_cents = Column(Integer, nullable=False)
    other_cost_cents = Column(Integer, nullable=False)
    total_cost_cents = Column(Integer, nullable=False)

    labor_seconds = Column(Integer, nullable=False)
    hourly_rate_cents = Column(Integer, nullable=False)

    data_hash = Column(String(64), nullable=False)
    hash_generated_at = Column(DateTime, nullable=False)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class DocumentHash(Base):
    __tablename__ = "document_hashes"

    __table_args__ = (
        UniqueConstraint("document_type", "document_id", name="uq_document_hashes_document"),
    )

    id = Column(Integer, primary_key=True)
    document_type = Column(String, nullable=False)
    document_id = Column(String, nullable=False)
    data_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
