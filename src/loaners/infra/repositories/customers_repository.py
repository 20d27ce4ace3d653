"""Customers repository - lookup and lazy creation of customer records.

Uses raw SQL with psycopg2 (no ORM).
"""

from datetime import date

from psycopg2.extensions import cursor as PgCursor

from loaners.infra.db import fetchall, fetchone

_CUSTOMER_COLUMNS = """
    customer_id, first_name, last_name, date_of_birth,
    drivers_license_number, insurance_provider, phone, email, created_at
"""


def _row_to_dict(row: tuple) -> dict:
    return {
        "customer_id": row[0],
        "first_name": row[1],
        "last_name": row[2],
        "date_of_birth": row[3].isoformat() if row[3] else None,
        "drivers_license_number": row[4],
        "insurance_provider": row[5],
        "phone": row[6],
        "email": row[7],
        "created_at": row[8].isoformat() if row[8] else None,
    }


def customer_exists(cur: PgCursor, customer_id: str) -> bool:
    """Return True if a customer with this ID exists."""
    row = fetchone(
        cur,
        "SELECT 1 FROM customers WHERE customer_id = %s",
        (customer_id,),
    )
    return row is not None


def insert_customer(
    cur: PgCursor,
    *,
    customer_id: str,
    first_name: str,
    last_name: str,
    date_of_birth: date,
    drivers_license_number: str,
    insurance_provider: str,
    phone: str,
    email: str,
) -> None:
    """Insert a customer row.

    Args:
        cur: Database cursor (within transaction).
        customer_id: Pre-generated or caller-supplied customer ID.
        first_name: Given name.
        last_name: Family name.
        date_of_birth: Date of birth.
        drivers_license_number: License number (unique).
        insurance_provider: Insurer name.
        phone: Contact phone.
        email: Contact email.
    """
    cur.execute(
        """
        INSERT INTO customers (
            customer_id, first_name, last_name, date_of_birth,
            drivers_license_number, insurance_provider, phone, email
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        """,
        (
            customer_id,
            first_name,
            last_name,
            date_of_birth,
            drivers_license_number,
            insurance_provider,
            phone,
            email,
        ),
    )


def get_customer(cur: PgCursor, customer_id: str) -> dict | None:
    row = fetchone(
        cur,
        f"SELECT {_CUSTOMER_COLUMNS} FROM customers WHERE customer_id = %s",
        (customer_id,),
    )
    return _row_to_dict(row) if row else None


def list_customers(cur: PgCursor) -> list[dict]:
    rows = fetchall(
        cur,
        f"SELECT {_CUSTOMER_COLUMNS} FROM customers ORDER BY created_at DESC",
    )
    return [_row_to_dict(row) for row in rows]


def search_customers(cur: PgCursor, term: str) -> list[dict]:
    """Case-insensitive substring search over name, email and phone."""
    pattern = f"%{term}%"
    rows = fetchall(
        cur,
        f"""
        SELECT {_CUSTOMER_COLUMNS}
        FROM customers
        WHERE first_name ILIKE %s
           OR last_name ILIKE %s
           OR email ILIKE %s
           OR phone LIKE %s
        ORDER BY last_name, first_name
        """,
        (pattern, pattern, pattern, pattern),
    )
    return [_row_to_dict(row) for row in rows]
