"""
Location endpoints.

GET  /api/locations   list (ordered by code)
POST /api/locations   create
"""

import sqlite3

from fastapi import APIRouter, Depends

from api.database import get_db
from api.models import LocationIn, LocationOut
from api.records import bad_request, record_changed

router = APIRouter(prefix="/locations", tags=["reference"])


@router.get("", response_model=list[LocationOut], summary="List locations")
def list_locations(conn: sqlite3.Connection = Depends(get_db)) -> list[dict]:
    rows = conn.execute("SELECT id, code, name FROM locations ORDER BY code").fetchall()
    return [dict(r) for r in rows]


@router.post("", response_model=LocationOut, status_code=201, summary="Create a location")
def create_location(body: LocationIn, conn: sqlite3.Connection = Depends(get_db)) -> dict:
    code = body.code.upper()
    if conn.execute("SELECT 1 FROM locations WHERE code = ?", (code,)).fetchone():
        raise bad_request(f'Location "{code}" already exists')
    cur = conn.execute("INSERT INTO locations (code, name) VALUES (?, ?)", (code, body.name))
    conn.commit()
    record_changed("locations", "create", cur.lastrowid)
    return {"id": cur.lastrowid, "code": code, "name": body.name}
