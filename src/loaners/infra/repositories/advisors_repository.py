"""Service advisors repository (read-only).

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor

from loaners.infra.db import fetchall, fetchone

_ADVISOR_COLUMNS = "advisor_id, first_name, last_name, email, phone"


def _row_to_dict(row: tuple) -> dict:
    return {
        "advisor_id": row[0],
        "first_name": row[1],
        "last_name": row[2],
        "email": row[3],
        "phone": row[4],
    }


def get_advisor(cur: PgCursor, advisor_id: str) -> dict | None:
    row = fetchone(
        cur,
        f"SELECT {_ADVISOR_COLUMNS} FROM service_advisors WHERE advisor_id = %s",
        (advisor_id,),
    )
    return _row_to_dict(row) if row else None


def list_advisors(cur: PgCursor) -> list[dict]:
    rows = fetchall(
        cur,
        f"SELECT {_ADVISOR_COLUMNS} FROM service_advisors ORDER BY first_name",
    )
    return [_row_to_dict(row) for row in rows]
