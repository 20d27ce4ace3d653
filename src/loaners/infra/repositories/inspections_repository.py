"""Inspections repository - pre-check / post-check condition records.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor

from loaners.infra.db import fetchall, fetchone

INSPECTION_COLUMNS = """
    inspection_id, reservation_id, inspection_type, odometer,
    fuel_level, notes, inspected_by, inspected_at
"""


def inspection_row_to_dict(row: tuple) -> dict:
    """Map an INSPECTION_COLUMNS row to its API shape."""
    return {
        "inspection_id": row[0],
        "reservation_id": row[1],
        "inspection_type": row[2],
        "odometer": row[3],
        "fuel_level": row[4],
        "notes": row[5],
        "inspected_by": row[6],
        "inspected_at": row[7].isoformat() if row[7] else None,
    }


def has_inspection(cur: PgCursor, reservation_id: str, inspection_type: str) -> bool:
    """Return True if the reservation already has an inspection of this type."""
    row = fetchone(
        cur,
        """
        SELECT 1 FROM inspections
        WHERE reservation_id = %s AND inspection_type = %s
        """,
        (reservation_id, inspection_type),
    )
    return row is not None


def insert_inspection(
    cur: PgCursor,
    *,
    reservation_id: str,
    inspection_type: str,
    odometer: int,
    fuel_level: str,
    notes: str | None,
    inspected_by: str | None,
) -> int:
    """Insert an inspection row.

    Args:
        cur: Database cursor (within transaction).
        reservation_id: Reservation the inspection belongs to.
        inspection_type: 'pre-check' or 'post-check'.
        odometer: Odometer reading.
        fuel_level: One of full, 3/4, half, 1/4, empty.
        notes: Free-text condition notes.
        inspected_by: Advisor ID.

    Returns:
        The generated inspection ID.
    """
    row = fetchone(
        cur,
        """
        INSERT INTO inspections (
            reservation_id, inspection_type, odometer,
            fuel_level, notes, inspected_by
        )
        VALUES (%s, %s, %s, %s, %s, %s)
        RETURNING inspection_id
        """,
        (reservation_id, inspection_type, odometer, fuel_level, notes, inspected_by),
    )
    return row[0]


def list_inspections(cur: PgCursor, reservation_ids: list[str]) -> dict[str, list[dict]]:
    """Fetch inspections for several reservations, newest first.

    Returns:
        Mapping reservation_id -> list of inspection dicts. Reservations
        without inspections map to an empty list.
    """
    grouped: dict[str, list[dict]] = {rid: [] for rid in reservation_ids}
    if not reservation_ids:
        return grouped

    rows = fetchall(
        cur,
        f"""
        SELECT {INSPECTION_COLUMNS}
        FROM inspections
        WHERE reservation_id = ANY(%s)
        ORDER BY inspected_at DESC, inspection_id DESC
        """,
        (list(reservation_ids),),
    )
    for row in rows:
        grouped.setdefault(row[1], []).append(inspection_row_to_dict(row))
    return grouped


def list_for_reservation(cur: PgCursor, reservation_id: str) -> list[dict]:
    """Inspections of one reservation, newest first."""
    return list_inspections(cur, [reservation_id])[reservation_id]
