"""
Pytest fixtures for the ECDC budget dashboard tests.

Provides a temporary SQLite database with the schema and seeded locations,
a TestClient bound to it, and a small factory for creating records through
the API.  API fixtures use fiscal year 2020-10-01 .. 2021-09-30 so every
month is in the past and year-to-date figures cover the whole year.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

FY_START = "2020-10-01"
FY_END = "2021-09-30"


@pytest.fixture()
def db_path(tmp_path):
    """A fresh database file with schema and the VA/NC locations."""
    from api.database import init_database

    path = tmp_path / "ecdc_test.sqlite"
    init_database(path)
    return path


@pytest.fixture()
def client(db_path):
    """TestClient for an app bound to the temporary database."""
    pytest.importorskip("fastapi")
    pytest.importorskip("httpx")
    from fastapi.testclient import TestClient
    from api.app import create_app

    app = create_app(db_path=db_path)
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


class ApiFactory:
    """Creates records through the API and returns the response JSON."""

    def __init__(self, client):
        self.client = client
        self._locations = None

    def location_id(self, code: str) -> int:
        if self._locations is None:
            self._locations = {
                loc["code"]: loc["id"] for loc in self.client.get("/api/locations").json()
            }
        return self._locations[code]

    def _post(self, path: str, payload: dict) -> dict:
        resp = self.client.post(path, json=payload)
        assert resp.status_code == 201, resp.text
        return resp.json()

    def funder(self, **overrides) -> dict:
        payload = {"code": "ORR", "name": "Office of Refugee Resettlement"}
        payload.update(overrides)
        return self._post("/api/funders", payload)

    def budget(self, **overrides) -> dict:
        payload = {
            "budget_number": "ORR-2021-30",
            "name": "Refugee Resettlement",
            "location_id": self.location_id("VA"),
            "fiscal_year_start": FY_START,
            "fiscal_year_end": FY_END,
            "total_budget": 120000,
        }
        payload.update(overrides)
        return self._post("/api/budgets", payload)

    def employee(self, **overrides) -> dict:
        payload = {
            "first_name": "Ana",
            "last_name": "Lopez",
            "location_id": self.location_id("VA"),
            "annual_salary": 52000,
            "hourly_rate": 25,
        }
        payload.update(overrides)
        return self._post("/api/employees", payload)

    def allocation(self, employee_id: int, budget_id: int, **overrides) -> dict:
        payload = {
            "employee_id": employee_id,
            "budget_id": budget_id,
            "allocated_amount": 24000,
        }
        payload.update(overrides)
        return self._post("/api/allocations", payload)

    def expense(self, budget_id: int, **overrides) -> dict:
        payload = {"budget_id": budget_id, "category": "RENT", "amount": 6000}
        payload.update(overrides)
        return self._post("/api/expenses", payload)


@pytest.fixture()
def factory(client):
    return ApiFactory(client)
