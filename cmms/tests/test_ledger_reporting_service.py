from datetime import datetime, timezone

from cmms.database import SessionLocal
from cmms.models.enums import CostType
from cmms.services import costing_service
from cmms.services.ledger_reporting_service import job_cost_totals


def test_job_cost_totals_groups_and_sums(job_factory, item_factory, clock):
    job_a = job_factory()
    job_b = job_factory()
    item = item_factory(unit_price_cents=1000)

    clock.set(datetime(2026, 1, 2, 9, 0, 0))
    costing_service.add_cost(job_a.id, CostType.SERVICE, 24000, reference_type="VENDOR", clock=clock)
    costing_service.add_material_cost(job_a.id, item.id, 3, 1000, "ITEM_REQUEST", "1", None, clock=clock)
    clock.set(datetime(2026, 1, 3, 9, 0, 0))
    costing_service.add_cost(job_a.id, CostType.SERVICE, 6000, reference_type="VENDOR", clock=clock)
    costing_service.credit_material_cost(job_a.id, item.id, 1, 1000, "ITEM_RETURN", "1", None, clock=clock)
    costing_service.add_cost(job_b.id, CostType.SERVICE, 16000, clock=clock)
    clock.set(datetime(2026, 1, 4, 9, 0, 0))
    costing_service.add_cost(job_b.id, CostType.SERVICE, 99999, clock=clock)

    db = SessionLocal()
    try:
        res = job_cost_totals(
            company_id=1,
            date_start=datetime(2026, 1, 2, tzinfo=timezone.utc),
            date_end=datetime(2026, 1, 4, tzinfo=timezone.utc),
            db=db,
        )

        assert [(g["job_id"], g["cost_type"], g["row_count"], g["amount_cents"]) for g in res["groups"]] == [
            (job_a.id, "MATERIAL", 2, 2000),
            (job_a.id, "SERVICE", 2, 30000),
            (job_b.id, "SERVICE", 1, 16000),
        ]
        assert res["total_cents"] == 48000
        assert res["date_start"] == "2026-01-02T00:00:00"

        vendor_only = job_cost_totals(
            company_id=1,
            date_start=datetime(2026, 1, 1),
            date_end=datetime(2026, 2, 1),
            db=db,
            reference_type="VENDOR",
        )
        assert vendor_only["total_cents"] == 30000

        other_company = job_cost_totals(
            company_id=2,
            date_start=datetime(2026, 1, 1),
            date_end=datetime(2026, 2, 1),
            db=db,
        )
        assert other_company["groups"] == []
        assert other_company["total_cents"] == 0
    finally:
        db.close()
