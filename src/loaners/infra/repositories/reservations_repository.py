"""Reservations repository - persistence for reservation records.

Uses raw SQL with psycopg2 (no ORM).

Reads return the joined reservation view: the reservation row with nested
customer, vehicle, advisor and eligibility objects plus its inspections.
"""

from datetime import date, datetime

from psycopg2.extensions import cursor as PgCursor

from loaners.infra.db import fetchall, fetchone, for_update
from loaners.infra.repositories import inspections_repository

_VIEW_SELECT = """
    SELECT
        r.reservation_id, r.customer_id, r.vehicle_id, r.assigned_advisor_id,
        r.start_date, r.end_date, r.status,
        r.check_out_timestamp, r.check_in_timestamp,
        r.created_at, r.updated_at,
        c.customer_id, c.first_name, c.last_name, c.date_of_birth,
        c.drivers_license_number, c.insurance_provider, c.phone, c.email,
        v.vehicle_id, v.make, v.model, v.year, v.license_plate,
        v.current_odometer, v.current_fuel_level, v.status,
        sa.advisor_id, sa.first_name, sa.last_name, sa.email,
        COALESCE(ev.age_verified, false),
        COALESCE(ev.license_verified, false),
        COALESCE(ev.insurance_verified, false),
        COALESCE(ev.waiver_signed, false)
    FROM reservations r
    LEFT JOIN customers c ON r.customer_id = c.customer_id
    LEFT JOIN vehicles v ON r.vehicle_id = v.vehicle_id
    LEFT JOIN service_advisors sa ON r.assigned_advisor_id = sa.advisor_id
    LEFT JOIN eligibility_verification ev ON r.reservation_id = ev.reservation_id
"""


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _row_to_view(row: tuple) -> dict:
    """Map a _VIEW_SELECT row to the joined reservation view (no inspections)."""
    customer = None
    if row[11] is not None:
        customer = {
            "customer_id": row[11],
            "first_name": row[12],
            "last_name": row[13],
            "date_of_birth": _iso(row[14]),
            "drivers_license_number": row[15],
            "insurance_provider": row[16],
            "phone": row[17],
            "email": row[18],
        }

    vehicle = None
    if row[19] is not None:
        vehicle = {
            "vehicle_id": row[19],
            "make": row[20],
            "model": row[21],
            "year": row[22],
            "license_plate": row[23],
            "current_odometer": row[24],
            "current_fuel_level": row[25],
            "status": row[26],
        }

    advisor = None
    if row[27] is not None:
        advisor = {
            "advisor_id": row[27],
            "first_name": row[28],
            "last_name": row[29],
            "email": row[30],
        }

    return {
        "reservation_id": row[0],
        "customer_id": row[1],
        "vehicle_id": row[2],
        "assigned_advisor_id": row[3],
        "start_date": _iso(row[4]),
        "end_date": _iso(row[5]),
        "status": row[6],
        "check_out_timestamp": _iso(row[7]),
        "check_in_timestamp": _iso(row[8]),
        "created_at": _iso(row[9]),
        "updated_at": _iso(row[10]),
        "customer": customer,
        "vehicle": vehicle,
        "advisor": advisor,
        "eligibility": {
            "age_verified": row[31],
            "license_verified": row[32],
            "insurance_verified": row[33],
            "waiver_signed": row[34],
        },
    }


def fetch_reservation_view(cur: PgCursor, reservation_id: str) -> dict | None:
    """Fetch one reservation as a joined view, including inspections.

    Returns:
        View dict, or None if the reservation does not exist.
    """
    row = fetchone(
        cur,
        f"{_VIEW_SELECT} WHERE r.reservation_id = %s",
        (reservation_id,),
    )
    if row is None:
        return None

    view = _row_to_view(row)
    view["inspections"] = inspections_repository.list_for_reservation(cur, reservation_id)
    return view


def list_reservation_views(cur: PgCursor, *, status: str | None = None) -> list[dict]:
    """List reservations as joined views, ordered by start then end date."""
    query = _VIEW_SELECT
    params: list = []
    if status:
        query += " WHERE r.status = %s"
        params.append(status)
    query += " ORDER BY r.start_date ASC, r.end_date ASC"

    views = [_row_to_view(row) for row in fetchall(cur, query, params)]

    by_reservation = inspections_repository.list_inspections(
        cur, [view["reservation_id"] for view in views]
    )
    for view in views:
        view["inspections"] = by_reservation.get(view["reservation_id"], [])
    return views


def lock_reservation(cur: PgCursor, reservation_id: str) -> dict | None:
    """Lock a reservation row FOR UPDATE and return its scheduling fields.

    Returns:
        Dict with vehicle_id, assigned_advisor_id, start_date, end_date,
        status (dates as date objects), or None if absent.
    """
    row = for_update(
        cur,
        """
        SELECT reservation_id, vehicle_id, assigned_advisor_id,
               start_date, end_date, status
        FROM reservations
        WHERE reservation_id = %s
        """,
        (reservation_id,),
    )
    if row is None:
        return None

    return {
        "reservation_id": row[0],
        "vehicle_id": row[1],
        "assigned_advisor_id": row[2],
        "start_date": row[3],
        "end_date": row[4],
        "status": row[5],
    }


def insert_reservation(
    cur: PgCursor,
    *,
    reservation_id: str,
    customer_id: str,
    vehicle_id: str,
    assigned_advisor_id: str,
    start_date: date,
    end_date: date,
    status: str,
) -> None:
    """Insert a reservation row.

    Args:
        cur: Database cursor (within transaction).
        reservation_id: Pre-generated reservation ID.
        customer_id: Customer reference (must exist).
        vehicle_id: Vehicle reference.
        assigned_advisor_id: Service advisor reference.
        start_date: First day of the loan.
        end_date: Last day of the loan.
        status: Initial status.
    """
    cur.execute(
        """
        INSERT INTO reservations (
            reservation_id, customer_id, vehicle_id, assigned_advisor_id,
            start_date, end_date, status
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        """,
        (
            reservation_id,
            customer_id,
            vehicle_id,
            assigned_advisor_id,
            start_date,
            end_date,
            status,
        ),
    )


def update_reservation(
    cur: PgCursor,
    *,
    reservation_id: str,
    vehicle_id: str,
    assigned_advisor_id: str,
    start_date: date,
    end_date: date,
    status: str,
) -> None:
    """Overwrite the scheduling fields of a reservation."""
    cur.execute(
        """
        UPDATE reservations
        SET vehicle_id = %s,
            assigned_advisor_id = %s,
            start_date = %s,
            end_date = %s,
            status = %s,
            updated_at = now()
        WHERE reservation_id = %s
        """,
        (vehicle_id, assigned_advisor_id, start_date, end_date, status, reservation_id),
    )


def set_status(cur: PgCursor, reservation_id: str, status: str) -> bool:
    """Set reservation status unconditionally.

    Returns:
        True if a row was updated, False if the reservation does not exist.
    """
    row = fetchone(
        cur,
        """
        UPDATE reservations
        SET status = %s, updated_at = now()
        WHERE reservation_id = %s
        RETURNING reservation_id
        """,
        (status, reservation_id),
    )
    return row is not None


def mark_checked_out(cur: PgCursor, reservation_id: str, at: datetime) -> None:
    """Reservation -> in-use with its checkout timestamp."""
    cur.execute(
        """
        UPDATE reservations
        SET status = 'in-use', check_out_timestamp = %s, updated_at = now()
        WHERE reservation_id = %s
        """,
        (at, reservation_id),
    )


def mark_checked_in(cur: PgCursor, reservation_id: str, at: datetime) -> None:
    """Reservation -> returned with its check-in timestamp."""
    cur.execute(
        """
        UPDATE reservations
        SET status = 'returned', check_in_timestamp = %s, updated_at = now()
        WHERE reservation_id = %s
        """,
        (at, reservation_id),
    )


def delete_reservation(cur: PgCursor, reservation_id: str) -> bool:
    """Delete the reservation row. Inspections and eligibility rows stay.

    Returns:
        True if a row was deleted.
    """
    cur.execute(
        "DELETE FROM reservations WHERE reservation_id = %s",
        (reservation_id,),
    )
    return cur.rowcount > 0


def insert_eligibility_verification(
    cur: PgCursor,
    *,
    reservation_id: str,
    age_verified: bool,
    license_verified: bool,
    insurance_verified: bool,
    waiver_signed: bool,
    verified_by: str | None,
) -> None:
    """Attach the eligibility checklist to a reservation."""
    cur.execute(
        """
        INSERT INTO eligibility_verification (
            reservation_id, age_verified, license_verified,
            insurance_verified, waiver_signed, verified_by
        )
        VALUES (%s, %s, %s, %s, %s, %s)
        """,
        (
            reservation_id,
            age_verified,
            license_verified,
            insurance_verified,
            waiver_signed,
            verified_by,
        ),
    )
