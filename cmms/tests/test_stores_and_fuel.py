import pytest

from cmms.core.errors import NotFoundError, PreconditionError, ValidationError
from cmms.database import SessionLocal
from cmms.models.activity import Alert
from cmms.models.asset import Asset
from cmms.models.job import Job
from cmms.models.stores import FuelIssue, ItemRequestLine
from cmms.services import fuel_service, pm_engine, stores_service
from cmms.services.auth_service import create_meter_override_token


def _line_for(request_id: int) -> ItemRequestLine:
    db = SessionLocal()
    try:
        return db.query(ItemRequestLine).filter(ItemRequestLine.request_id == request_id).one()
    finally:
        db.close()


def _job(job_id: int) -> Job:
    db = SessionLocal()
    try:
        return db.query(Job).filter(Job.id == job_id).one()
    finally:
        db.close()


def _alerts(alert_type: str):
    db = SessionLocal()
    try:
        return db.query(Alert).filter(Alert.type == alert_type).all()
    finally:
        db.close()


def test_issue_charges_weighted_average_cost(job_factory, item_factory, clock):
    job = job_factory()
    item = item_factory(unit_price_cents=1200, weighted_avg_cost_cents=1000)
    request = stores_service.create_item_request(1, job.id, [(item.id, 5, 4)], requested_by=2, clock=clock)
    line = _line_for(request.id)

    issued = stores_service.issue_request_line(line.id, clock=clock)

    assert issued.issued_qty == 4
    assert issued.unit_cost_cents == 1000
    assert issued.total_cost_cents == 4000
    assert _job(job.id).material_cost_cents == 4000


def test_partial_issue_then_over_issue(job_factory, item_factory, clock):
    job = job_factory()
    item = item_factory(unit_price_cents=250)
    request = stores_service.create_item_request(1, job.id, [(item.id, 3, 3)], clock=clock)
    line = _line_for(request.id)

    stores_service.issue_request_line(line.id, 2, clock=clock)

    with pytest.raises(PreconditionError) as exc_info:
        stores_service.issue_request_line(line.id, 2, clock=clock)
    assert exc_info.value.code == "OVER_ISSUE"

    assert _line_for(request.id).issued_qty == 2
    assert _job(job.id).material_cost_cents == 500


def test_return_credits_at_issued_price(job_factory, item_factory, clock):
    job = job_factory()
    item = item_factory(unit_price_cents=900)
    request = stores_service.create_item_request(1, job.id, [(item.id, 3, 3)], clock=clock)
    line = _line_for(request.id)
    stores_service.issue_request_line(line.id, 3, clock=clock)

    returned = stores_service.accept_return(line.id, 1, clock=clock)

    assert returned.returned_qty == 1
    assert _job(job.id).material_cost_cents == 1800

    with pytest.raises(PreconditionError) as exc_info:
        stores_service.accept_return(line.id, 5, clock=clock)
    assert exc_info.value.code == "OVER_RETURN"

    with pytest.raises(ValidationError):
        stores_service.accept_return(line.id, 0, clock=clock)


def test_zero_cost_item_issues_without_ledger_entry(job_factory, item_factory, clock):
    job = job_factory()
    item = item_factory()
    request = stores_service.create_item_request(1, job.id, [(item.id, 1, 1)], clock=clock)

    stores_service.issue_request_line(_line_for(request.id).id, clock=clock)

    assert _job(job.id).material_cost_cents == 0


def test_request_lines_are_company_scoped(job_factory, item_factory, clock):
    job = job_factory()
    item = item_factory(unit_price_cents=100)
    request = stores_service.create_item_request(1, job.id, [(item.id, 1, 1)], clock=clock)

    with pytest.raises(NotFoundError):
        stores_service.issue_request_line(_line_for(request.id).id, company_id=2, clock=clock)
    with pytest.raises(NotFoundError):
        stores_service.create_item_request(2, job.id, [(item.id, 1, 1)], clock=clock)


def test_request_rejects_item_of_another_company(job_factory, item_factory, clock):
    job = job_factory()
    foreign = item_factory(company_id=2, unit_price_cents=100)

    with pytest.raises(NotFoundError):
        stores_service.create_item_request(1, job.id, [(foreign.id, 1, 1)], clock=clock)

    db = SessionLocal()
    try:
        assert db.query(ItemRequestLine).count() == 0
    finally:
        db.close()


def test_fuel_issue_within_standard_rate(asset_factory, job_factory, clock):
    asset = asset_factory(current_meter=1000, standard_consumption_rate=5)
    job = job_factory(asset=asset)

    issue = fuel_service.record_fuel_issue(
        1, asset.id, 1200, 40, unit_price_cents=180, job_id=job.id, operator_id=8, clock=clock
    )

    assert issue.distance_hours == 200
    assert issue.consumption_rate == 5
    assert issue.variance_percent == 0
    assert issue.is_abnormal is False
    assert issue.total_cost_cents == 7200
    assert _job(job.id).fuel_cost_cents == 7200
    assert _alerts("ABNORMAL_CONSUMPTION") == []

    db = SessionLocal()
    try:
        assert db.query(Asset).filter(Asset.id == asset.id).one().current_meter == 1200
    finally:
        db.close()


def test_fuel_issue_flags_abnormal_consumption(asset_factory, clock):
    asset = asset_factory(current_meter=1000, standard_consumption_rate=5)

    issue = fuel_service.record_fuel_issue(1, asset.id, 1300, 40, clock=clock)

    assert issue.consumption_rate == 7.5
    assert issue.variance_percent == 50
    assert issue.is_abnormal is True
    [alert] = _alerts("ABNORMAL_CONSUMPTION")
    assert alert.severity == "MEDIUM"


def test_fuel_issue_with_no_movement_warns(asset_factory, clock):
    asset = asset_factory(current_meter=1000, standard_consumption_rate=5)

    issue = fuel_service.record_fuel_issue(1, asset.id, 1000, 25, clock=clock)

    assert issue.distance_hours == 0
    assert issue.is_abnormal is True
    [alert] = _alerts("ZERO_CONSUMPTION")
    assert alert.severity == "HIGH"


def test_fuel_rollback_needs_override_and_still_alerts(asset_factory, clock):
    asset = asset_factory(current_meter=1000)

    with pytest.raises(PreconditionError) as exc_info:
        fuel_service.record_fuel_issue(1, asset.id, 900, 30, clock=clock)
    assert exc_info.value.code == "METER_ROLLBACK"

    db = SessionLocal()
    try:
        assert db.query(FuelIssue).count() == 0
        assert db.query(Asset).filter(Asset.id == asset.id).one().current_meter == 1000
    finally:
        db.close()
    assert len(_alerts("METER_ROLLBACK")) == 1


def test_fuel_rollback_with_bad_override_still_alerts(asset_factory, clock):
    asset = asset_factory(current_meter=1000)

    with pytest.raises(PreconditionError) as exc_info:
        fuel_service.record_fuel_issue(1, asset.id, 900, 30, override_token="garbage", clock=clock)
    assert exc_info.value.code == "INVALID_OVERRIDE"

    db = SessionLocal()
    try:
        assert db.query(FuelIssue).count() == 0
    finally:
        db.close()
    [alert] = _alerts("METER_ROLLBACK")
    assert alert.reference_id == str(asset.id)


def test_fuel_cannot_be_charged_to_another_companys_job(asset_factory, job_factory, clock):
    asset = asset_factory(current_meter=1000, standard_consumption_rate=5)
    foreign_job = job_factory(company_id=2)

    with pytest.raises(NotFoundError):
        fuel_service.record_fuel_issue(
            1, asset.id, 1200, 40, unit_price_cents=180, job_id=foreign_job.id, clock=clock
        )

    assert _job(foreign_job.id).fuel_cost_cents == 0
    db = SessionLocal()
    try:
        assert db.query(FuelIssue).count() == 0
        assert db.query(Asset).filter(Asset.id == asset.id).one().current_meter == 1000
    finally:
        db.close()


def test_fuel_rollback_with_override_is_accepted(asset_factory, clock):
    asset = asset_factory(current_meter=1000)
    token = create_meter_override_token(supervisor_id=4, company_id=1, asset_id=asset.id)

    issue = fuel_service.record_fuel_issue(1, asset.id, 900, 30, override_token=token, clock=clock)

    assert issue.previous_reading == 1000
    assert issue.consumption_rate is None
    assert len(_alerts("METER_ROLLBACK")) == 1


def test_broken_meter_opens_one_repair_job(asset_factory, clock):
    asset = asset_factory(code="TRK-9", current_meter=1000)

    fuel_service.record_fuel_issue(1, asset.id, 0, 50, meter_broken=True, clock=clock)
    fuel_service.record_fuel_issue(1, asset.id, 0, 50, meter_broken=True, clock=clock)

    db = SessionLocal()
    try:
        jobs = db.query(Job).filter(Job.asset_id == asset.id).all()
        meter = db.query(Asset).filter(Asset.id == asset.id).one().current_meter
    finally:
        db.close()
    assert [(j.title, j.priority) for j in jobs] == [("Repair Meter for TRK-9", "HIGH")]
    assert meter == 1000


def test_fuel_meter_reading_feeds_pm_check(asset_factory, clock):
    asset = asset_factory(current_meter=4800)
    pm_engine.configure_pm_schedule(1, asset.id, "KILOMETERS", 5000, "5000km service", clock=clock)

    fuel_service.record_fuel_issue(1, asset.id, 9850, 400, clock=clock)

    db = SessionLocal()
    try:
        titles = [j.title for j in db.query(Job).filter(Job.asset_id == asset.id).all()]
    finally:
        db.close()
    assert titles == ["5000km service"]


def test_fuel_issue_validates_quantity(asset_factory, clock):
    asset = asset_factory()

    with pytest.raises(ValidationError):
        fuel_service.record_fuel_issue(1, asset.id, 100, 0, clock=clock)
    with pytest.raises(NotFoundError):
        fuel_service.record_fuel_issue(2, asset.id, 100, 10, clock=clock)
