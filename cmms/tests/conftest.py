import os
_default_test_secret = "test-jwt-secret-for-pytest-only-0000000000000000"
if len(os.environ.get("JWT_SECRET", "")) < 32:
    os.environ["JWT_SECRET"] = _default_test_secret
os.environ.setdefault("ENV", "test")

import subprocess
import tempfile
from datetime import datetime
from itertools import count
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url

_default_sqlite_path = Path(tempfile.gettempdir()) / f"cmms_test_{os.getpid()}.db"
TEST_DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{_default_sqlite_path}")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from cmms import database
from cmms import models  # noqa: F401
from cmms.core.clock import FrozenClock
from cmms.models.asset import Asset, FailureType
from cmms.models.employee import Employee
from cmms.models.stores import Item
from cmms.services import job_state_machine
from cmms.services.ledger_immutability import install_ledger_immutability

_is_postgres = make_url(TEST_DATABASE_URL).drivername.startswith("postgresql")
_sequence = count(1)


def _get_access_token(client, company_id: int, user_id: int = 1, role: str = "MANAGER") -> str:
    resp = client.post("/auth/token", json={"user_id": user_id, "company_id": company_id, "role": role})
    assert resp.status_code == 200, f"token request failed: {resp.status_code} {resp.text}"
    data = resp.json()
    assert isinstance(data, dict), f"token response not a JSON object: {data}"
    assert "access_token" in data, f"token response missing access_token: {data}"
    return data["access_token"]


def _ensure_database_exists(database_url: str) -> None:
    url = make_url(database_url)

    if not url.drivername.startswith("postgresql"):
        return

    db_name = url.database
    admin_url = url.set(database="postgres")
    admin_engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")

    try:
        with admin_engine.connect() as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": db_name},
            ).scalar()
            if not exists:
                safe_db_name = db_name.replace('"', '""')
                conn.execute(text(f'CREATE DATABASE "{safe_db_name}"'))
    finally:
        admin_engine.dispose()


def _rebuild_sqlite_schema() -> None:
    # Immutability triggers also block DELETE, so SQLite is rebuilt instead of emptied.
    database.Base.metadata.drop_all(database.engine)
    database.Base.metadata.create_all(database.engine)
    install_ledger_immutability(database.engine)


def _truncate_postgres_tables() -> None:
    with database.engine.begin() as conn:
        rows = conn.execute(
            text(
                """
                SELECT tablename
                FROM pg_tables
                WHERE schemaname = 'public'
                  AND tablename <> 'alembic_version'
                """
            )
        ).fetchall()

        table_names = [row[0] for row in rows]
        if table_names:
            quoted = ", ".join([f'"public"."{name}"' for name in table_names])
            conn.execute(text(f"TRUNCATE TABLE {quoted} RESTART IDENTITY CASCADE"))


@pytest.fixture(scope="session", autouse=True)
def _prepare_test_database() -> None:
    _ensure_database_exists(TEST_DATABASE_URL)

    if _is_postgres:
        env = os.environ.copy()
        env["DATABASE_URL"] = TEST_DATABASE_URL

        subprocess.run(
            ["alembic", "upgrade", "head"],
            check=True,
            cwd=Path(__file__).resolve().parents[2],
            env=env,
        )

    database.configure_database(TEST_DATABASE_URL)
    yield

    if not _is_postgres:
        database.engine.dispose()
        _default_sqlite_path.unlink(missing_ok=True)


@pytest.fixture(scope="function", autouse=True)
def _reset_tables_between_tests():
    if _is_postgres:
        _truncate_postgres_tables()
    else:
        _rebuild_sqlite_schema()

    yield


@pytest.fixture
def requires_postgres():
    if not _is_postgres:
        pytest.skip("requires PostgreSQL row locking")


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 2, 8, 0, 0))


@pytest.fixture
def client(clock):
    from fastapi.testclient import TestClient

    from cmms.deps.clock import get_clock
    from cmms.main import app

    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_clock, None)


@pytest.fixture
def db():
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def _persist(row):
    session = database.SessionLocal()
    try:
        session.add(row)
        session.commit()
        return row
    finally:
        session.close()


@pytest.fixture
def employee_factory():
    def make(
        company_id: int = 1,
        role: str = "TECHNICIAN",
        hourly_rate_cents: int = 0,
        name: str = None,
        is_active: bool = True,
    ):
        return _persist(
            Employee(
                company_id=company_id,
                name=name or f"Employee {next(_sequence)}",
                role=role,
                hourly_rate_cents=hourly_rate_cents,
                is_active=is_active,
            )
        )

    return make


@pytest.fixture
def asset_factory():
    def make(
        company_id: int = 1,
        code: str = None,
        description: str = "Wheel loader",
        safety_critical: bool = False,
        current_meter: float = None,
        value_cents: int = None,
        standard_consumption_rate: float = None,
        status: str = "ACTIVE",
    ):
        return _persist(
            Asset(
                company_id=company_id,
                code=code or f"AST-{next(_sequence):04d}",
                description=description,
                status=status,
                safety_critical=safety_critical,
                current_meter=current_meter,
                value_cents=value_cents,
                standard_consumption_rate=standard_consumption_rate,
            )
        )

    return make


@pytest.fixture
def failure_type_factory():
    def make(company_id: int = 1, name: str = "Hydraulic leak", safety_critical: bool = False):
        return _persist(FailureType(company_id=company_id, name=name, safety_critical=safety_critical))

    return make


@pytest.fixture
def item_factory():
    def make(company_id: int = 1, unit_price_cents: int = None, weighted_avg_cost_cents: int = None):
        n = next(_sequence)
        return _persist(
            Item(
                company_id=company_id,
                code=f"ITM-{n:04d}",
                description=f"Filter {n}",
                unit_price_cents=unit_price_cents,
                weighted_avg_cost_cents=weighted_avg_cost_cents,
            )
        )

    return make


@pytest.fixture
def job_factory(asset_factory, clock):
    def make(company_id: int = 1, asset=None, title: str = "Replace hydraulic hose", **kwargs):
        if asset is None:
            asset = asset_factory(company_id=company_id)
        kwargs.setdefault("clock", clock)
        return job_state_machine.create_job(company_id, asset.id, title, **kwargs)

    return make


@pytest.fixture
def started_job(job_factory, employee_factory, clock):
    """A job assigned to a 30.00/hr technician and started at the clock's current time."""

    def make(company_id: int = 1, hourly_rate_cents: int = 3000, **kwargs):
        tech = employee_factory(company_id=company_id, hourly_rate_cents=hourly_rate_cents)
        job = job_factory(company_id=company_id, **kwargs)
        job_state_machine.transition_job(
            job.id, "assign", 1, {"assigned_to_id": tech.id}, company_id=company_id, clock=clock
        )
        return job_state_machine.transition_job(job.id, "start", tech.id, company_id=company_id, clock=clock)

    return make


@pytest.fixture
def access_token(client):
    def make(company_id: int = 1, user_id: int = 1, role: str = "MANAGER") -> str:
        return _get_access_token(client, company_id, user_id=user_id, role=role)

    return make


@pytest.fixture
def auth_headers(access_token):
    def make(company_id: int = 1, user_id: int = 1, role: str = "MANAGER") -> dict:
        token = access_token(company_id, user_id=user_id, role=role)
        return {"X-Company-Id": str(company_id), "Authorization": f"Bearer {token}"}

    return make
