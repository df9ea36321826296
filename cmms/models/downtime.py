from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, text

from cmms.database import Base


class DowntimeLog(Base):
    __tablename__ = "downtime_logs"

    __table_args__ = (
        # At most one open interval per asset.
        Index(
            "uq_downtime_logs_open_asset",
            "asset_id",
            unique=True,
            postgresql_where=text("ended_at IS NULL"),
            sqlite_where=text("ended_at IS NULL"),
        ),
        Index("ix_downtime_logs_asset_started", "asset_id", "started_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True, index=True)

    category = Column(String, nullable=False, default="BREAKDOWN")
    sub_category = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=True)

    opportunity_cost_per_hour_cents = Column(Integer, nullable=True)
    lost_opportunity_cost_cents = Column(Integer, nullable=True)

    resolved_by = Column(Integer, nullable=True)
