"""
Rollup endpoint tests: /api/overview/*

Fixture data (fiscal year 2020-10-01 .. 2021-09-30, entirely in the past,
so YTD covers all twelve months):

    ORR-2021-30  total 120,000  funder ORR
        allocation   24,000   (2,000 in Oct and Nov)
        fringe       12,000
        indirect      6,000
        RENT          6,000   (500 in Oct)
        DIRECT CASH   1,500   (300 in Dec, DCA)
        -> allocated 49,500, remaining 70,500, YTD 22,800
    B-30         total 200,000  no funder, no records
"""
import sqlite3
from datetime import date

import pytest

from api.routes.budgets import resolve_fiscal_year
from budget.fiscal import current_fiscal_year_start


@pytest.fixture()
def data(factory):
    funder = factory.funder()
    b1 = factory.budget(funder_id=funder["id"], fringe_benefits_amount=12000,
                        indirect_cost=6000)
    b2 = factory.budget(budget_number="B-30", name="Bridge", total_budget=200000)
    emp = factory.employee()
    factory.allocation(emp["id"], b1["id"],
                       monthly_allocations={"2020-10": 2000, "2020-11": 2000})
    factory.expense(b1["id"], monthly_allocations={"2020-10": 500})
    factory.expense(b1["id"], category="DIRECT CASH", amount=1500,
                    monthly_allocations={"2020-12": 300})
    return {"b1": b1, "b2": b2, "employee": emp, "funder": funder}


class TestOverviewBudgets:
    def test_summary_figures(self, client, data):
        rows = {r["budget_id"]: r for r in client.get("/api/overview/budgets").json()}
        s = rows[data["b1"]["id"]]
        assert s["personnel"] == 24000
        assert s["fringe"] == 12000
        assert s["indirect"] == 6000
        assert s["other_total"] == 6000
        assert s["dca_total"] == 1500
        assert s["allocated"] == 49500
        assert s["remaining"] == 70500
        assert s["is_overspent"] is False
        assert s["ytd"] == 22800
        assert s["balance"] == 120000 - 22800
        assert rows[data["b2"]["id"]]["remaining"] == 200000

    def test_fiscal_year_filter(self, client, factory, data):
        factory.budget(budget_number="N-30", fiscal_year_start="2021-10-01",
                       fiscal_year_end="2022-09-30")
        assert len(client.get("/api/overview/budgets").json()) == 3
        resp = client.get("/api/overview/budgets", params={"fiscal_year": "2020-10-01"})
        assert len(resp.json()) == 2

    def test_overspent(self, client, factory):
        b = factory.budget(total_budget=1000)
        e = factory.employee()
        factory.allocation(e["id"], b["id"], allocated_amount=1500)
        row = client.get("/api/overview/budgets").json()[0]
        assert row["remaining"] == -500
        assert row["is_overspent"] is True


class TestOverviewFunders:
    def test_grouped(self, client, data):
        rollup = client.get("/api/overview/funders").json()
        assert [r["name"] for r in rollup] == ["Office of Refugee Resettlement", "Unassigned"]
        assert rollup[0]["allocated"] == 49500
        assert rollup[0]["remaining"] == 70500
        assert rollup[1]["total_budget"] == 200000
        assert rollup[1]["funder_id"] is None

    def test_dv2_excluded(self, client, factory):
        dv = factory.funder(code="DV2", name="Domestic Violence")
        factory.budget(funder_id=dv["id"])
        assert client.get("/api/overview/funders").json() == []


class TestProgramCost:
    def test_months(self, client, data):
        resp = client.get("/api/overview/program-cost", params={"budget_id": data["b1"]["id"]})
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["months"]) == 12
        oct_row = body["months"][0]
        assert oct_row["month"] == "2020-10"
        assert oct_row["employee"] == 2000
        assert oct_row["fringe"] == 1000
        assert oct_row["personnel"] == 3000
        assert oct_row["other"] == 500
        assert body["months"][2]["dca"] == 300
        assert body["totals"]["total"] == 22800
        assert body["ytd"] == 22800
        assert body["balance"] == 97200
        assert body["current_month"] == "2021-09"

    def test_budget_id_required(self, client):
        resp = client.get("/api/overview/program-cost")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Budget ID is required"

    def test_unknown_budget(self, client):
        resp = client.get("/api/overview/program-cost", params={"budget_id": 99})
        assert resp.status_code == 404
        assert resp.json()["error"] == "Budget not found"


class TestUtilizationTbhSummary:
    def test_employee_utilization(self, client, data):
        rows = client.get("/api/overview/employees").json()
        assert len(rows) == 1
        assert rows[0]["name"] == "Ana Lopez"
        assert rows[0]["total_allocated"] == 24000
        assert rows[0]["utilization"] == pytest.approx(24000 / 52000 * 100)
        assert rows[0]["deficit"] == 28000

    def test_tbh_candidates(self, client, data):
        rows = client.get("/api/overview/tbh").json()
        assert [r["budget_number"] for r in rows] == ["B-30", "ORR-2021-30"]
        assert rows[1]["remaining"] == 70500

    def test_summary_cards(self, client, factory, data):
        factory.employee(first_name="Open", last_name="Role", status="tbh",
                         tbh_budget_id=data["b2"]["id"])
        factory.employee(first_name="Unfunded", last_name="Role", status="tbh")
        cards = client.get("/api/overview/summary").json()
        assert cards == {
            "budget_count": 2,
            "total_budget": 320000,
            "active_employees": 1,
            "tbh_positions": 1,
            "total_positions": 2,
        }


class TestRollupCache:
    def test_writes_invalidate(self, client, factory, data):
        assert client.get("/api/overview/summary").json()["budget_count"] == 2
        factory.budget(budget_number="C-30")
        assert client.get("/api/overview/summary").json()["budget_count"] == 3

    def test_updates_invalidate(self, client, data):
        before = client.get("/api/overview/budgets").json()
        client.put("/api/budgets", json={"id": data["b2"]["id"], "total_budget": 1000})
        after = {r["budget_id"]: r for r in client.get("/api/overview/budgets").json()}
        assert len(before) == 2
        assert after[data["b2"]["id"]]["remaining"] == 1000


class TestNonFiniteAmounts:
    @pytest.mark.parametrize("value", ["inf", "-Infinity", "nan", "1e999"])
    def test_rejected_and_rollups_still_served(self, client, data, value):
        b1 = data["b1"]["id"]
        emp = data["employee"]["id"]
        attempts = [
            ("/api/budgets", {"budget_number": "X-30", "name": "X",
                              "location_id": data["b1"]["location_id"],
                              "fiscal_year_start": "2020-10-01",
                              "fiscal_year_end": "2021-09-30", "total_budget": value},
             "Total budget must be a positive number"),
            ("/api/expenses", {"budget_id": b1, "category": "RENT", "amount": value},
             "Amount must be greater than 0"),
            ("/api/allocations", {"employee_id": emp, "budget_id": b1,
                                  "allocated_amount": value},
             "Allocated amount must be a positive number"),
            ("/api/time-entries", {"employee_id": emp, "pay_period_start": "2020-10-01",
                                   "pay_period_end": "2020-10-14", "hours_worked": value},
             "Hours worked must be a positive number"),
        ]
        for url, payload, message in attempts:
            resp = client.post(url, json=payload)
            assert resp.status_code == 400, url
            assert resp.json()["error"] == message

        for path in ("/api/overview/budgets", "/api/overview/funders",
                     "/api/overview/tbh", "/"):
            assert client.get(path).status_code == 200, path

    def test_update_rejected(self, client, data):
        resp = client.put("/api/budgets", json={"id": data["b1"]["id"], "total_budget": "inf"})
        assert resp.status_code == 400
        assert client.get("/api/overview/budgets").status_code == 200

    def test_monthly_infinity_rejected(self, client, data):
        body = ('{"budget_id": %d, "category": "RENT", "amount": 10, '
                '"monthly_allocations": {"2020-10": Infinity}}' % data["b1"]["id"])
        resp = client.post("/api/expenses", content=body,
                           headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Monthly amounts must be valid numbers"


class TestFiscalYearDefault:
    @pytest.fixture()
    def current(self, factory):
        start = current_fiscal_year_start()
        return factory.budget(budget_number="CUR-30", name="Current Year",
                              fiscal_year_start=start.isoformat(),
                              fiscal_year_end=date(start.year + 1, 9, 30).isoformat())

    def test_every_year_without_current_budgets(self, client, data):
        assert len(client.get("/api/overview/budgets").json()) == 2
        assert client.get("/api/overview/summary").json()["budget_count"] == 2

    def test_current_year_selected(self, client, data, current):
        rows = client.get("/api/overview/budgets").json()
        assert [r["budget_id"] for r in rows] == [current["id"]]
        assert client.get("/api/overview/summary").json()["budget_count"] == 1
        assert client.get("/api/overview/funders").json()[0]["funder_id"] is None
        for value in ("all", ""):
            resp = client.get("/api/overview/budgets", params={"fiscal_year": value})
            assert len(resp.json()) == 3
        resp = client.get("/api/overview/budgets", params={"fiscal_year": "2020-10-01"})
        assert len(resp.json()) == 2

    def test_resolve_with_fixed_today(self, db_path, data):
        conn = sqlite3.connect(db_path)
        try:
            assert resolve_fiscal_year(conn, None, today=date(2021, 3, 1)) == "2020-10-01"
            assert resolve_fiscal_year(conn, None, today=date(2022, 3, 1)) is None
            assert resolve_fiscal_year(conn, "ALL") is None
            assert resolve_fiscal_year(conn, "2020-10-01") == "2020-10-01"
        finally:
            conn.close()
