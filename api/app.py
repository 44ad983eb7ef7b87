"""
FastAPI application factory for the ECDC budget dashboard.

Usage:
    python -m api.app                              # Dev server on port 8000
    APP_DB_PATH=/data/ecdc.sqlite python -m api.app

OpenAPI docs available at http://localhost:8000/docs after starting.

Layout:
    /api/...                JSON CRUD + rollup endpoints (api/routes/)
    /                       Jinja2 dashboard (api/routes/frontend.py)
    /budgets/{id}/print     printable budget page
    /health                 database + table-count check

Errors are always JSON of the form {"error": ..., "status_code": ...};
APP_LOG_FORMAT=json switches request logging to newline-delimited JSON.
"""

import json
import logging
import sqlite3
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.database import get_db_path, init_database
from api.models import ErrorResponse
from api.records import rollup_cache
from api.routes import (
    allocations, budgets, employees, expenses, export_excel, funders, locations,
    overview, program_budget_line_items, reference, time_entries,
)
from api.routes import frontend as frontend_routes
from utils.config import AppConfig
from utils.database import CORE_TABLES, get_table_count, table_exists
from utils.formatting import format_count, format_currency, format_percent

# ── Configuration ─────────────────────────────────────────────────────────────
_cfg = AppConfig.from_env()

# ── Structured JSON logging ───────────────────────────────────────────────────


class _JsonFormatter(logging.Formatter):
    """Emit log records as newline-delimited JSON."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Merge extra fields added via logger.info("...", extra={...})
        for key in ("method", "path", "status", "duration_ms", "client_ip",
                    "request_id"):
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data)


_logger = logging.getLogger("ecdc_budget_api")
_handler = logging.StreamHandler()
if _cfg.log_format == "json":
    _handler.setFormatter(_JsonFormatter())
else:
    _handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
logging.basicConfig(handlers=[_handler], level=logging.INFO, force=True)

_SLOW_REQUEST_MS = 500

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    404: {"model": ErrorResponse, "description": "Record not found"},
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the schema and seed locations on startup."""
    init_database(get_db_path())
    rollup_cache.clear()
    yield


def _error_response(status_code: int, error: str, detail=None, headers=None) -> JSONResponse:
    content = {"error": error, "status_code": status_code}
    if detail is not None:
        content["detail"] = detail
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def create_app(db_path: Path | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_path: Override the database path (useful for testing).

    Returns:
        Configured FastAPI application instance.
    """
    if db_path is not None:
        import api.database as _db_mod
        _db_mod._DB_PATH = Path(db_path)

    app = FastAPI(
        title="ECDC Budget API",
        summary="Budgets, staff allocations and expenses for ECDC programs.",
        description=(
            "## ECDC Budget Dashboard API\n\n"
            "Tracks program budgets, the employees and expenses charged to them, "
            "and month-by-month spending.\n\n"
            "### Key concepts\n"
            "- **Fiscal year** runs October 1 to September 30 "
            "(FY25-26 = Oct 2025 to Sep 2026).\n"
            "- **Monthly maps** are JSON objects keyed `YYYY-MM`; a missing "
            "month counts as zero.\n"
            "- **DCA** (Direct Client Assistance) expenses are reported "
            "separately from other expenses.\n"
            "- **Allocated** = employee allocations + fringe + expenses + indirect; "
            "**remaining** = total budget - allocated.\n"
        ),
        version="1.0.0",
        lifespan=lifespan,
        responses=_ERROR_RESPONSES,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "budgets", "description": "Program budgets with location and funder."},
            {"name": "employees", "description": "Staff and to-be-hired positions."},
            {"name": "allocations", "description": "Salary allocations of employees to budgets."},
            {"name": "expenses", "description": "Non-personnel expenses, Other vs. DCA."},
            {"name": "line-items", "description": "Program budget line items by month."},
            {"name": "time-entries", "description": "Hours and wages per pay period."},
            {"name": "funders", "description": "Funding sources."},
            {"name": "locations", "description": "Office locations."},
            {"name": "reference", "description": "Fiscal years and expense categories."},
            {"name": "overview", "description": "Computed rollups for the dashboard."},
            {"name": "export", "description": "Excel export."},
            {"name": "meta", "description": "Health check."},
        ],
    )

    # ── CORS middleware ────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cfg.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # ── Request logging middleware ────────────────────────────────────────────

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log each request with a short request id and its duration."""
        request_id = str(uuid.uuid4())[:8]
        start = time.monotonic()
        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path

        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        if _cfg.log_format == "json":
            _logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 1),
                    "client_ip": client_ip,
                    "request_id": request_id,
                },
            )
        else:
            _logger.info(
                "method=%s path=%s status=%d duration_ms=%.1f ip=%s rid=%s",
                request.method, path, response.status_code, duration_ms,
                client_ip, request_id,
            )
        if duration_ms > _SLOW_REQUEST_MS:
            _logger.warning(
                "slow_request method=%s path=%s duration_ms=%.1f",
                request.method, path, duration_ms,
            )
        return response

    # ── Security headers ──────────────────────────────────────────────────────

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        """Add Content-Security-Policy, X-Content-Type-Options, and X-Frame-Options."""
        response = await call_next(request)
        # 'unsafe-inline' covers the dashboard's inline editing script.
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline'; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data:; "
            "connect-src 'self';"
        )
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    # ── Error handling ────────────────────────────────────────────────────────

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail),
                               headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error_response(422, "Invalid request", jsonable_encoder(exc.errors()))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error_response(400, "Bad request", str(exc))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch unhandled exceptions and return JSON instead of HTML traceback."""
        _logger.exception("unhandled error path=%s", request.url.path)
        return _error_response(500, "Internal server error", str(exc))

    # ── Health check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["meta"], summary="Health check")
    def health():
        """Return 200 OK with row counts if every core table is reachable."""
        db_path = get_db_path()
        if not db_path.exists():
            return JSONResponse(
                status_code=503,
                content={"status": "no_database", "database": str(db_path)},
            )
        conn = sqlite3.connect(str(db_path))
        try:
            missing = [t for t in CORE_TABLES if not table_exists(conn, t)]
            if missing:
                return JSONResponse(
                    status_code=503,
                    content={"status": "degraded", "missing_tables": missing},
                )
            counts = {table: get_table_count(conn, table) for table in CORE_TABLES}
        except sqlite3.Error as e:
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "error": str(e)},
            )
        finally:
            conn.close()
        return {"status": "ok", "database": str(db_path), "tables": counts}

    # ── Register routers ──────────────────────────────────────────────────────

    prefix = "/api"
    app.include_router(budgets.router,                   prefix=prefix)
    app.include_router(employees.router,                 prefix=prefix)
    app.include_router(allocations.router,               prefix=prefix)
    app.include_router(expenses.router,                  prefix=prefix)
    app.include_router(program_budget_line_items.router, prefix=prefix)
    app.include_router(time_entries.router,              prefix=prefix)
    app.include_router(funders.router,                   prefix=prefix)
    app.include_router(locations.router,                 prefix=prefix)
    app.include_router(reference.router,                 prefix=prefix)
    app.include_router(overview.router,                  prefix=prefix)
    app.include_router(export_excel.router,              prefix=prefix)

    # ── Jinja2 templates ──────────────────────────────────────────────────────
    templates_dir = Path(__file__).parent.parent / "templates"
    if templates_dir.exists():
        templates = Jinja2Templates(directory=str(templates_dir))
        templates.env.filters["fmt_currency"] = format_currency
        templates.env.filters["fmt_percent"] = format_percent
        templates.env.filters["fmt_count"] = format_count

        frontend_routes.set_templates(templates)
        app.include_router(frontend_routes.router)

    return app


# Singleton instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.app:app", host=_cfg.api_host, port=_cfg.api_port, reload=False)
