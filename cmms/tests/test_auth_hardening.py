from cmms.services.auth_service import create_meter_override_token


def _headers(token: str, company_id=1) -> dict:
    return {"Authorization": f"Bearer {token}", "X-Company-Id": str(company_id)}


def test_missing_authorization_header_401(client):
    r = client.get("/jobs", headers={"X-Company-Id": "1"})
    assert r.status_code == 401


def test_wrong_scheme_401(client, access_token):
    token = access_token(1)
    r = client.get("/jobs", headers={"Authorization": f"Basic {token}", "X-Company-Id": "1"})
    assert r.status_code == 401


def test_garbled_bearer_token_401(client):
    r = client.get("/jobs", headers={"Authorization": "Bearer not-a-real-token", "X-Company-Id": "1"})
    assert r.status_code == 401


def test_missing_company_header_403(client, access_token):
    token = access_token(1)
    r = client.get("/jobs", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 403
    assert "X-Company-Id" in r.text


def test_company_mismatch_403(client, access_token):
    token = access_token(1)
    r = client.get("/jobs", headers=_headers(token, company_id=2))
    assert r.status_code == 403
    assert "Company mismatch" in r.text


def test_meter_override_token_is_not_a_session_token(client, asset_factory):
    asset = asset_factory()
    token = create_meter_override_token(supervisor_id=1, company_id=1, asset_id=asset.id)

    r = client.get("/jobs", headers=_headers(token))

    assert r.status_code == 401


def test_role_below_requirement_403(client, access_token):
    token = access_token(1, role="TECHNICIAN")
    r = client.post("/period-locks", headers=_headers(token), json={"year": 2026, "month": 2})
    assert r.status_code == 403
    assert "Insufficient role" in r.text


def test_unknown_role_claim_403(client, access_token):
    token = access_token(1, role="WIZARD")
    r = client.post("/period-locks", headers=_headers(token), json={"year": 2026, "month": 2})
    assert r.status_code == 403


def test_token_endpoint_reports_lifetime(client):
    r = client.post("/auth/token", json={"user_id": 3, "company_id": 1, "role": "supervisor"})
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"
    assert r.json()["expires_in"] == 8 * 3600


def test_token_endpoint_rejects_non_positive_ids(client):
    r = client.post("/auth/token", json={"user_id": 0, "company_id": 1})
    assert r.status_code == 422


def test_token_endpoint_hidden_outside_dev(client, monkeypatch):
    monkeypatch.setenv("ENV", "production")
    r = client.post("/auth/token", json={"user_id": 1, "company_id": 1})
    assert r.status_code == 404
