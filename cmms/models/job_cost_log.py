from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint

from cmms.database import Base


class JobCostLog(Base):
    __tablename__ = "job_cost_log"

    __table_args__ = (
        # Two concurrent appends that read the same tail collide here.
        UniqueConstraint("job_id", "sequence_no", name="uq_job_cost_log_job_sequence"),
    )

    id = Column(Integer, primary_key=True, index=True)

    company_id = Column(Integer, index=True, nullable=False)
    job_id = Column(Integer, ForeignKey("jobs.id"), index=True, nullable=False)
    sequence_no = Column(Integer, nullable=False)

    cost_type = Column(String, index=True, nullable=False)  # MATERIAL|LABOR|FUEL|SERVICE|OTHER
    description = Column(String, nullable=True)

    amount_cents = Column(Integer, nullable=False)  # negative = credit/return
    quantity = Column(Float, nullable=True)
    unit_cost_cents = Column(Integer, nullable=True)
    running_total_cents = Column(Integer, nullable=False)

    reference_type = Column(String, nullable=True)
    reference_id = Column(String, nullable=True)
    item_id = Column(Integer, nullable=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, index=True, nullable=False, default=datetime.utcnow)
