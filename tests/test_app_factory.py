"""
Tests for api/app.py create_app() factory

Verifies routers are registered, the health check reflects database state,
middleware adds its headers, and every error comes back as JSON.
"""
import sqlite3

import pytest

pytest.importorskip("fastapi")
pytest.importorskip("httpx")

from fastapi.testclient import TestClient  # noqa: E402

from api.app import create_app  # noqa: E402
from utils.database import CORE_TABLES  # noqa: E402


# ── Health ────────────────────────────────────────────────────────────────────

class TestHealth:
    def test_ok_with_counts(self, client, db_path):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["database"] == str(db_path)
        assert set(body["tables"]) == set(CORE_TABLES)
        assert body["tables"]["locations"] == 2
        assert body["tables"]["budgets"] == 0

    def test_counts_follow_writes(self, client, factory):
        factory.budget()
        assert client.get("/health").json()["tables"]["budgets"] == 1

    def test_no_database(self, tmp_path):
        missing = tmp_path / "missing.sqlite"
        app = create_app(db_path=missing)
        resp = TestClient(app).get("/health")
        assert resp.status_code == 503
        assert resp.json() == {"status": "no_database", "database": str(missing)}

    def test_missing_tables(self, tmp_path):
        path = tmp_path / "partial.sqlite"
        conn = sqlite3.connect(str(path))
        conn.execute("CREATE TABLE locations (id INTEGER PRIMARY KEY, code TEXT, name TEXT)")
        conn.commit()
        conn.close()
        resp = TestClient(create_app(db_path=path)).get("/health")
        assert resp.status_code == 503
        body = resp.json()
        assert body["status"] == "degraded"
        assert "budgets" in body["missing_tables"]
        assert "locations" not in body["missing_tables"]

    def test_startup_creates_database(self, tmp_path):
        path = tmp_path / "fresh" / "ecdc.sqlite"
        with TestClient(create_app(db_path=path)) as c:
            assert c.get("/health").json()["status"] == "ok"
        assert path.exists()


# ── Routing ───────────────────────────────────────────────────────────────────

class TestRoutes:
    @pytest.mark.parametrize("path", [
        "/api/budgets", "/api/employees", "/api/allocations", "/api/expenses",
        "/api/program-budget-line-items", "/api/time-entries", "/api/funders",
        "/api/locations", "/api/fiscal-years", "/api/expense-categories",
        "/api/overview/summary",
    ])
    def test_list_endpoints_registered(self, client, path):
        assert client.get(path).status_code == 200

    def test_openapi(self, client):
        schema = client.get("/openapi.json").json()
        assert schema["info"]["title"] == "ECDC Budget API"
        assert "/api/budgets" in schema["paths"]
        assert "ErrorResponse" in schema["components"]["schemas"]

    def test_unknown_route(self, client):
        resp = client.get("/api/nothing-here")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not Found", "status_code": 404}


# ── Middleware ────────────────────────────────────────────────────────────────

class TestMiddleware:
    def test_request_id(self, client):
        resp = client.get("/health")
        assert len(resp.headers["X-Request-ID"]) == 8
        assert resp.headers["X-Request-ID"] != client.get("/health").headers["X-Request-ID"]

    def test_security_headers(self, client):
        resp = client.get("/api/budgets")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert "default-src 'self'" in resp.headers["Content-Security-Policy"]

    def test_headers_on_errors(self, client):
        resp = client.get("/api/nothing-here")
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert "X-Request-ID" in resp.headers


# ── Error format ──────────────────────────────────────────────────────────────

class TestErrorFormat:
    def test_not_found_detail(self, client):
        resp = client.put("/api/budgets", json={"id": 404, "name": "x"})
        assert resp.status_code == 404
        assert resp.json() == {"error": "Budget not found", "status_code": 404}

    def test_validation_error(self, client):
        resp = client.get("/api/overview/program-cost", params={"budget_id": "abc"})
        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "Invalid request"
        assert body["status_code"] == 422
        assert isinstance(body["detail"], list)

    def test_value_error_is_400(self, db_path):
        app = create_app(db_path=db_path)

        @app.get("/boom-value")
        def boom_value():
            raise ValueError("bad input")

        resp = TestClient(app).get("/boom-value")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Bad request"
        assert resp.json()["detail"] == "bad input"

    def test_unhandled_error_is_json_500(self, db_path):
        app = create_app(db_path=db_path)

        @app.get("/boom")
        def boom():
            raise RuntimeError("kaput")

        resp = TestClient(app, raise_server_exceptions=False).get("/boom")
        assert resp.status_code == 500
        assert resp.json()["error"] == "Internal server error"
