"""Vehicle availability - date-range conflict detection.

Overlap formula:  (existing.start_date < new.end_date) AND (existing.end_date > new.start_date)
Strict inequality: a reservation ending on the day another starts does not conflict.

Every reservation row counts, whatever its status: a cancelled booking still
blocks its range until it is deleted or moved.
"""

from __future__ import annotations

from datetime import date

from psycopg2.extensions import cursor as PgCursor

from loaners.domain.errors import InvalidArgumentError
from loaners.infra.db import fetchall
from loaners.observability.logging import get_logger

logger = get_logger(__name__)


def check_availability(
    cur: PgCursor,
    *,
    vehicle_id: str | None,
    start_date: date | None,
    end_date: date | None,
    exclude_reservation_id: str | None = None,
) -> list[dict]:
    """Return reservations of vehicle_id overlapping [start_date, end_date).

    Args:
        cur: Database cursor. Pass the cursor of the transaction that will
             write the reservation, after it locked the vehicle row.
        vehicle_id: Vehicle to check.
        start_date: Requested start date.
        end_date: Requested end date.
        exclude_reservation_id: Reservation to ignore (its own row on update).

    Returns:
        Conflicting reservations ordered by start_date; empty when available.

    Raises:
        InvalidArgumentError: If vehicle_id, start_date or end_date is missing,
            or start_date is after end_date.
    """
    if not vehicle_id or start_date is None or end_date is None:
        raise InvalidArgumentError(
            "vehicle_id, start_date, and end_date are required to check availability"
        )
    if start_date > end_date:
        raise InvalidArgumentError("start_date must be on or before end_date")

    conditions = [
        "vehicle_id = %s",
        "start_date < %s",  # existing start < new end
        "end_date > %s",  # existing end > new start
    ]
    params: list = [vehicle_id, end_date, start_date]

    if exclude_reservation_id is not None:
        conditions.append("reservation_id <> %s")
        params.append(exclude_reservation_id)

    where = " AND ".join(conditions)
    rows = fetchall(
        cur,
        f"""
        SELECT reservation_id, customer_id, start_date, end_date, status
        FROM reservations
        WHERE {where}
        ORDER BY start_date ASC
        """,
        params,
    )

    conflicts = [
        {
            "reservation_id": row[0],
            "customer_id": row[1],
            "start_date": row[2].isoformat(),
            "end_date": row[3].isoformat(),
            "status": row[4],
        }
        for row in rows
    ]

    if conflicts:
        logger.warning(
            "vehicle availability conflict detected",
            extra={
                "extra_fields": {
                    "vehicle_id": vehicle_id,
                    "requested_start_date": start_date.isoformat(),
                    "requested_end_date": end_date.isoformat(),
                    "exclude_reservation_id": exclude_reservation_id,
                    "conflicting_reservation_ids": [c["reservation_id"] for c in conflicts],
                },
            },
        )

    return conflicts
