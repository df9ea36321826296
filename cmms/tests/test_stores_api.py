def test_request_issue_return_and_fuel(client, auth_headers, job_factory, item_factory, asset_factory):
    job = job_factory()
    item = item_factory(unit_price_cents=350)
    storekeeper = auth_headers(1, user_id=4, role="STOREKEEPER")

    created = client.post(
        "/stores/requests",
        headers=storekeeper,
        json={"job_id": job.id, "lines": [{"item_id": item.id, "requested_qty": 4, "approved_qty": 3}]},
    )
    assert created.status_code == 200
    [line] = created.json()["lines"]
    assert line["approved_qty"] == 3

    issued = client.post(f"/stores/lines/{line['id']}/issue", headers=storekeeper, json={})
    assert issued.status_code == 200
    assert issued.json()["issued_qty"] == 3
    assert issued.json()["total_cost_cents"] == 1050

    over = client.post(f"/stores/lines/{line['id']}/issue", headers=storekeeper, json={"quantity": 1})
    assert over.status_code == 400
    assert over.json()["code"] == "OVER_ISSUE"

    returned = client.post(f"/stores/lines/{line['id']}/return", headers=storekeeper, json={"quantity": 3})
    assert returned.status_code == 200
    assert returned.json()["returned_qty"] == 3

    job_body = client.get(f"/jobs/{job.id}", headers=storekeeper).json()
    assert job_body["material_cost_cents"] == 0

    asset = asset_factory(current_meter=100, standard_consumption_rate=2)
    fuel = client.post(
        "/fuel",
        headers=auth_headers(1, role="OPERATOR"),
        json={"asset_id": asset.id, "meter_reading": 140, "quantity_liters": 20, "unit_price_cents": 150},
    )
    assert fuel.status_code == 200
    assert fuel.json()["consumption_rate"] == 2
    assert fuel.json()["total_cost_cents"] == 3000


def test_stores_endpoints_require_storekeeper(client, auth_headers, job_factory, item_factory):
    job = job_factory()
    item = item_factory()

    resp = client.post(
        "/stores/requests",
        headers=auth_headers(1, role="TECHNICIAN"),
        json={"job_id": job.id, "lines": [{"item_id": item.id, "requested_qty": 1}]},
    )

    assert resp.status_code == 403


def test_fuel_rollback_is_rejected_over_http(client, auth_headers, asset_factory):
    asset = asset_factory(current_meter=1000)

    resp = client.post(
        "/fuel",
        headers=auth_headers(1, role="OPERATOR"),
        json={"asset_id": asset.id, "meter_reading": 990, "quantity_liters": 10},
    )

    assert resp.status_code == 400
    assert resp.json()["code"] == "METER_ROLLBACK"


def test_stores_and_fuel_stay_inside_the_token_company(client, auth_headers, job_factory, item_factory, asset_factory):
    own_job = job_factory(company_id=1)
    foreign_job = job_factory(company_id=2)
    foreign_item = item_factory(company_id=2, unit_price_cents=500)
    asset = asset_factory(company_id=1, current_meter=100, standard_consumption_rate=2)

    request = client.post(
        "/stores/requests",
        headers=auth_headers(1, role="STOREKEEPER"),
        json={"job_id": own_job.id, "lines": [{"item_id": foreign_item.id, "requested_qty": 1}]},
    )
    assert request.status_code == 404

    fuel = client.post(
        "/fuel",
        headers=auth_headers(1, role="OPERATOR"),
        json={
            "asset_id": asset.id,
            "meter_reading": 140,
            "quantity_liters": 20,
            "unit_price_cents": 150,
            "job_id": foreign_job.id,
        },
    )
    assert fuel.status_code == 404

    other_side = client.get(f"/jobs/{foreign_job.id}", headers=auth_headers(2))
    assert other_side.json()["fuel_cost_cents"] == 0
