"""Shared test helpers for loaner reservation tests.

This module contains helpers that can be imported by both conftest.py and
individual test files. These are NOT fixtures - they are regular functions.
"""

from __future__ import annotations

from datetime import date, datetime
from unittest.mock import MagicMock


class RecordingNotifier:
    """Notifier stub that keeps every (action, reservation) it receives."""

    def __init__(self, *, fail: bool = False) -> None:
        self.events: list[tuple[str, dict]] = []
        self.fail = fail

    def notify(self, action: str, reservation: dict) -> None:
        if self.fail:
            raise RuntimeError("broadcast unavailable")
        self.events.append((action, reservation))


def fake_connection() -> tuple[MagicMock, MagicMock]:
    """Build a mocked psycopg2 connection whose cursor() is a context manager."""
    conn = MagicMock()
    cur = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cur
    return conn, cur


def reservation_view(
    reservation_id: str = "RES001",
    *,
    vehicle_id: str = "V001",
    customer_id: str = "CUST001",
    status: str = "reserved",
    start_date: str = "2024-06-01",
    end_date: str = "2024-06-05",
    **overrides,
) -> dict:
    """Joined reservation view as returned by the repository."""
    view = {
        "reservation_id": reservation_id,
        "customer_id": customer_id,
        "vehicle_id": vehicle_id,
        "assigned_advisor_id": "SA001",
        "start_date": start_date,
        "end_date": end_date,
        "status": status,
        "check_out_timestamp": None,
        "check_in_timestamp": None,
        "customer": None,
        "vehicle": None,
        "advisor": None,
        "eligibility": {
            "age_verified": False,
            "license_verified": False,
            "insurance_verified": False,
            "waiver_signed": False,
        },
        "inspections": [],
    }
    view.update(overrides)
    return view


def conflict_row(
    reservation_id: str = "RES001",
    *,
    customer_id: str = "CUST001",
    start: date = date(2024, 6, 1),
    end: date = date(2024, 6, 5),
    status: str = "reserved",
) -> tuple:
    """Row shape returned by the availability query."""
    return (reservation_id, customer_id, start, end, status)


def vehicle_row(vehicle_id: str = "V001", status: str = "available") -> tuple:
    """Row shape returned by the vehicles repository."""
    created = datetime(2024, 1, 1, 9, 0, 0)
    return (vehicle_id, "Toyota", "Camry", 2023, "ABC-123", 12000, "full", status, created, created)
