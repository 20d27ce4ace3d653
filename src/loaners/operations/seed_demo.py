"""Seed a demo data set: advisors, customers, loaner vehicles, one reservation.

Idempotent: re-running leaves existing rows untouched.

Usage:
    DATABASE_URL=... python -m loaners.operations.seed_demo
"""

import sys
from datetime import date, timedelta

from psycopg2.extensions import cursor as PgCursor

from loaners.infra.db import txn
from loaners.infra.time import utc_today
from loaners.observability.logging import get_logger

logger = get_logger(__name__)

ADVISORS = [
    ("SA001", "John", "Smith", "john.smith@dealer.example", "555-0101"),
    ("SA002", "Sarah", "Johnson", "sarah.johnson@dealer.example", "555-0102"),
    ("SA003", "Michael", "Williams", "michael.williams@dealer.example", "555-0103"),
]

CUSTOMERS = [
    ("CUST001", "Emily", "Davis", date(1985, 3, 15), "DL123456789", "State Farm", "555-1001", "emily.davis@mail.example"),
    ("CUST002", "Robert", "Martinez", date(1990, 7, 22), "DL987654321", "Geico", "555-1002", "robert.martinez@mail.example"),
    ("CUST003", "Jennifer", "Garcia", date(1988, 11, 30), "DL456789123", "Progressive", "555-1003", "jennifer.garcia@mail.example"),
    ("CUST004", "David", "Rodriguez", date(1982, 5, 18), "DL321654987", "Allstate", "555-1004", "david.rodriguez@mail.example"),
]

VEHICLES = [
    ("VEH001", "Mercedes-Benz", "C-Class", 2023, "MB-C001", 5420, "full"),
    ("VEH002", "Mercedes-Benz", "E-Class", 2024, "MB-E001", 3200, "full"),
    ("VEH003", "Mercedes-Benz", "GLE", 2023, "MB-G001", 8150, "3/4"),
    ("VEH004", "Mercedes-Benz", "A-Class", 2024, "MB-A001", 2100, "full"),
    ("VEH005", "Mercedes-Benz", "GLC", 2023, "MB-G002", 6800, "half"),
]

DEMO_RESERVATION_ID = "RES001"


def seed(cur: PgCursor, *, today: date | None = None) -> None:
    """Insert the demo rows on an open transaction cursor."""
    today = today or utc_today()

    cur.executemany(
        """
        INSERT INTO service_advisors (advisor_id, first_name, last_name, email, phone)
        VALUES (%s, %s, %s, %s, %s)
        ON CONFLICT (advisor_id) DO NOTHING
        """,
        ADVISORS,
    )
    cur.executemany(
        """
        INSERT INTO customers (
            customer_id, first_name, last_name, date_of_birth,
            drivers_license_number, insurance_provider, phone, email
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (customer_id) DO NOTHING
        """,
        CUSTOMERS,
    )
    cur.executemany(
        """
        INSERT INTO vehicles (
            vehicle_id, make, model, year, license_plate,
            current_odometer, current_fuel_level
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (vehicle_id) DO NOTHING
        """,
        VEHICLES,
    )

    cur.execute(
        """
        INSERT INTO reservations (
            reservation_id, customer_id, vehicle_id, assigned_advisor_id,
            start_date, end_date, status
        )
        VALUES (%s, 'CUST001', 'VEH001', 'SA001', %s, %s, 'reserved')
        ON CONFLICT (reservation_id) DO NOTHING
        RETURNING reservation_id
        """,
        (DEMO_RESERVATION_ID, today, today + timedelta(days=3)),
    )
    if cur.fetchone() is not None:
        cur.execute(
            """
            INSERT INTO eligibility_verification (
                reservation_id, age_verified, license_verified,
                insurance_verified, waiver_signed, verified_by
            )
            VALUES (%s, true, true, true, true, 'SA001')
            """,
            (DEMO_RESERVATION_ID,),
        )


def main() -> int:
    with txn() as cur:
        seed(cur)

    logger.info(
        "demo data seeded",
        extra={
            "extra_fields": {
                "advisors": len(ADVISORS),
                "customers": len(CUSTOMERS),
                "vehicles": len(VEHICLES),
            }
        },
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
