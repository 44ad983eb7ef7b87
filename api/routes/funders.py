"""
Funder endpoints.

GET    /api/funders        list (ordered by name)
POST   /api/funders        create (code + name required, code unique)
PUT    /api/funders        partial update (id in body)
DELETE /api/funders?id=    delete; refused while budgets reference it
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, Query

from api.database import get_db
from api.models import DeleteResult, FunderIn, FunderOut, FunderUpdate
from api.records import bad_request, fetch_or_404, record_changed, require_id
from utils.config import KnownValues
from utils.query import build_update_clause

router = APIRouter(prefix="/funders", tags=["funders"])

_UPDATABLE = {"code", "name", "description", "color_code"}


def _code_taken(conn: sqlite3.Connection, code: str, exclude_id: int = -1) -> bool:
    return conn.execute(
        "SELECT 1 FROM funders WHERE lower(code) = lower(?) AND id != ?",
        (code, exclude_id),
    ).fetchone() is not None


@router.get("", response_model=list[FunderOut], summary="List funders")
def list_funders(conn: sqlite3.Connection = Depends(get_db)) -> list[dict[str, Any]]:
    rows = conn.execute(
        "SELECT id, code, name, description, color_code FROM funders ORDER BY name"
    ).fetchall()
    return [dict(r) for r in rows]


@router.post("", response_model=FunderOut, status_code=201, summary="Create a funder")
def create_funder(body: FunderIn, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    if not body.code:
        raise bad_request("Funder code is required")
    if not body.name:
        raise bad_request("Funder name is required")
    if _code_taken(conn, body.code):
        raise bad_request(f'Funder code "{body.code}" already exists')
    cur = conn.execute(
        "INSERT INTO funders (code, name, description, color_code) VALUES (?, ?, ?, ?)",
        (body.code, body.name, body.description,
         body.color_code or KnownValues.DEFAULT_FUNDER_COLOR),
    )
    conn.commit()
    record_changed("funders", "create", cur.lastrowid)
    return dict(fetch_or_404(conn, "funders", cur.lastrowid, "Funder"))


@router.put("", response_model=FunderOut, summary="Update a funder")
def update_funder(body: FunderUpdate, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    changes = body.model_dump(exclude_unset=True)
    funder_id = require_id(changes.pop("id", None))
    fetch_or_404(conn, "funders", funder_id, "Funder")
    if "code" in changes:
        if not changes["code"]:
            raise bad_request("Funder code cannot be empty")
        if _code_taken(conn, changes["code"], funder_id):
            raise bad_request(f'Funder code "{changes["code"]}" already exists')
    if "name" in changes and not changes["name"]:
        raise bad_request("Funder name cannot be empty")
    if "color_code" in changes and not changes["color_code"]:
        changes["color_code"] = KnownValues.DEFAULT_FUNDER_COLOR

    set_clause, params = build_update_clause(changes, _UPDATABLE, touch_updated_at=False)
    if set_clause:
        conn.execute(f"UPDATE funders {set_clause} WHERE id = ?", params + [funder_id])
        conn.commit()
        record_changed("funders", "update", funder_id)
    return dict(fetch_or_404(conn, "funders", funder_id, "Funder"))


@router.delete("", response_model=DeleteResult, summary="Delete a funder")
def delete_funder(
    id: int | None = Query(None, description="Funder id"),
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    funder_id = require_id(id)
    existing = fetch_or_404(conn, "funders", funder_id, "Funder")
    in_use = conn.execute(
        "SELECT COUNT(*) FROM budgets WHERE funder_id = ?", (funder_id,)
    ).fetchone()[0]
    if in_use:
        raise bad_request(
            f"Cannot delete funder because {in_use} budget(s) still reference it"
        )
    conn.execute("DELETE FROM funders WHERE id = ?", (funder_id,))
    conn.commit()
    record_changed("funders", "delete", funder_id)
    return {"success": True, "message": f'Funder "{existing["name"]}" deleted successfully'}
