"""Vehicles repository - loaner fleet records.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor

from loaners.infra.db import fetchall, fetchone, for_update

_VEHICLE_COLUMNS = """
    vehicle_id, make, model, year, license_plate,
    current_odometer, current_fuel_level, status, created_at, updated_at
"""


def _row_to_dict(row: tuple) -> dict:
    return {
        "vehicle_id": row[0],
        "make": row[1],
        "model": row[2],
        "year": row[3],
        "license_plate": row[4],
        "current_odometer": row[5],
        "current_fuel_level": row[6],
        "status": row[7],
        "created_at": row[8].isoformat() if row[8] else None,
        "updated_at": row[9].isoformat() if row[9] else None,
    }


def get_vehicle(cur: PgCursor, vehicle_id: str) -> dict | None:
    row = fetchone(
        cur,
        f"SELECT {_VEHICLE_COLUMNS} FROM vehicles WHERE vehicle_id = %s",
        (vehicle_id,),
    )
    return _row_to_dict(row) if row else None


def lock_vehicle(cur: PgCursor, vehicle_id: str) -> bool:
    """Lock the vehicle row until the transaction ends.

    Bookings of one vehicle queue behind this lock, so each one runs its
    availability check after the previous booking committed.

    Returns:
        True if the vehicle exists.
    """
    row = for_update(cur, "SELECT vehicle_id FROM vehicles WHERE vehicle_id = %s", (vehicle_id,))
    return row is not None


def list_vehicles(cur: PgCursor, *, status: str | None = None) -> list[dict]:
    query = f"SELECT {_VEHICLE_COLUMNS} FROM vehicles"
    params: list = []
    if status:
        query += " WHERE status = %s"
        params.append(status)
    query += " ORDER BY created_at DESC"
    return [_row_to_dict(row) for row in fetchall(cur, query, params)]


def set_vehicle_condition(
    cur: PgCursor,
    *,
    vehicle_id: str,
    status: str,
    odometer: int,
    fuel_level: str,
) -> bool:
    """Overwrite vehicle status, odometer and fuel level.

    Called only from checkout (-> in-use) and check-in (-> available).

    Returns:
        True if the vehicle row exists and was updated.
    """
    row = fetchone(
        cur,
        """
        UPDATE vehicles
        SET status = %s,
            current_odometer = %s,
            current_fuel_level = %s,
            updated_at = now()
        WHERE vehicle_id = %s
        RETURNING vehicle_id
        """,
        (status, odometer, fuel_level, vehicle_id),
    )
    return row is not None
