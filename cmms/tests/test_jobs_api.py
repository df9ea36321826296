def test_jobs_create_list_get_and_cross_company_isolation(client, auth_headers, asset_factory):
    asset = asset_factory(company_id=1)

    create = client.post(
        "/jobs",
        headers=auth_headers(1, user_id=5),
        json={"asset_id": asset.id, "title": "Replace track roller", "priority": "HIGH"},
    )
    assert create.status_code == 200
    created = create.json()
    job_id = created["id"]
    assert created["company_id"] == 1
    assert created["title"] == "Replace track roller"
    assert created["status"] == "CREATED"
    assert created["priority"] == "HIGH"
    assert created["created_by_id"] == 5
    assert created["total_cost_cents"] == 0

    listing = client.get("/jobs", headers=auth_headers(1))
    assert listing.status_code == 200
    assert [row["id"] for row in listing.json()] == [job_id]

    filtered = client.get("/jobs", params={"status": "closed"}, headers=auth_headers(1))
    assert filtered.json() == []

    get_own = client.get(f"/jobs/{job_id}", headers=auth_headers(1))
    assert get_own.status_code == 200
    assert get_own.json()["id"] == job_id

    get_other = client.get(f"/jobs/{job_id}", headers=auth_headers(2))
    assert get_other.status_code == 404

    assert client.get("/jobs", headers=auth_headers(2)).json() == []


def test_create_job_for_unknown_asset_is_404(client, auth_headers):
    resp = client.post("/jobs", headers=auth_headers(1), json={"asset_id": 4040, "title": "x"})

    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


def test_full_lifecycle_over_http(client, auth_headers, asset_factory, employee_factory, clock):
    asset = asset_factory()
    tech = employee_factory(hourly_rate_cents=3600)
    headers = auth_headers(1, user_id=2, role="SUPERVISOR")

    job_id = client.post("/jobs", headers=headers, json={"asset_id": asset.id, "title": "Grease pins"}).json()["id"]

    resp = client.post(f"/jobs/{job_id}/status", headers=headers, json={"action": "assign", "assigned_to_id": tech.id})
    assert resp.status_code == 200
    assert resp.json()["assigned_to_id"] == tech.id

    assert client.post(f"/jobs/{job_id}/status", headers=headers, json={"action": "start"}).status_code == 200
    clock.advance(minutes=45)
    resp = client.post(f"/jobs/{job_id}/status", headers=headers, json={"action": "complete"})
    assert resp.status_code == 200
    assert resp.json()["labor_cost_cents"] == 2700

    check = client.get(f"/jobs/{job_id}/close-check", headers=headers)
    assert check.json() == {"job_id": job_id, "can_close": True, "reasons": []}

    closed = client.post(f"/jobs/{job_id}/close", headers=headers, json={"closure_notes": "Done"})
    assert closed.status_code == 200
    assert closed.json()["status"] == "CLOSED"

    events = client.get(f"/jobs/{job_id}/events", headers=headers).json()
    assert [e["action"] for e in events] == ["create", "assign", "start", "complete", "close"]

    verify = client.get(f"/jobs/{job_id}/snapshot/verify", headers=auth_headers(1, role="MANAGER"))
    assert verify.status_code == 200
    body = verify.json()
    assert body["valid"] is True
    assert body["total_cost_cents"] == 2700
    assert len(body["data_hash"]) == 64


def test_invalid_transition_is_409(client, auth_headers, job_factory):
    job = job_factory()

    resp = client.post(f"/jobs/{job.id}/status", headers=auth_headers(1), json={"action": "complete"})

    assert resp.status_code == 409
    assert resp.json()["code"] == "INVALID_TRANSITION"


def test_unknown_action_is_400(client, auth_headers, job_factory):
    job = job_factory()

    resp = client.post(f"/jobs/{job.id}/status", headers=auth_headers(1), json={"action": "explode"})

    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


def test_close_is_supervisor_only(client, auth_headers, started_job, asset_factory, clock):
    job = started_job(asset=asset_factory(safety_critical=True))
    headers = auth_headers(1, role="SUPERVISOR")
    client.post(
        f"/jobs/{job.id}/status",
        headers=headers,
        json={"action": "complete", "safety_photo_url": "https://photos.example/a.jpg"},
    )

    ok = client.get(f"/jobs/{job.id}/close-check", headers=headers)
    assert ok.json()["can_close"] is True

    technician = client.post(f"/jobs/{job.id}/close", headers=auth_headers(1, role="TECHNICIAN"), json={})
    assert technician.status_code == 403


def test_close_requires_completed_status_via_check(client, auth_headers, started_job):
    job = started_job()

    resp = client.get(f"/jobs/{job.id}/close-check", headers=auth_headers(1))

    assert resp.json()["can_close"] is False
    assert resp.json()["reasons"] == ["Job status is IN_PROGRESS, expected COMPLETED"]


def test_snapshot_verify_for_open_job_is_404(client, auth_headers, job_factory):
    job = job_factory()

    resp = client.get(f"/jobs/{job.id}/snapshot/verify", headers=auth_headers(1))

    assert resp.status_code == 404
