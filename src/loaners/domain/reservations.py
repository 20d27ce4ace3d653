"""Reservation lifecycle - create, update, status patch, checkout, check-in, delete.

State machine:

    reserved --checkout--> in-use --checkin--> returned
    reserved --status patch--> cancelled

The status patch can move a reservation to any status; checkout and check-in
are the only operations with side effects on the vehicle.

Every mutation runs in a single database transaction and publishes its
change to the injected notifier only after that transaction committed.
Create and full update lock the vehicle row before the availability check,
so bookings of one vehicle run one after another while bookings of different
vehicles proceed in parallel. The reservations_no_vehicle_overlap exclusion
constraint backs the check in the database.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Callable, Iterator

from psycopg2 import errors as pg_errors
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

from loaners.domain import availability
from loaners.domain.errors import (
    ConflictError,
    CustomerNotFoundError,
    InvalidArgumentError,
    NotFoundError,
)
from loaners.infra import db
from loaners.infra.ids import CUSTOMER_PREFIX, RESERVATION_PREFIX, new_id
from loaners.infra.repositories import (
    customers_repository,
    inspections_repository,
    reservations_repository,
    vehicles_repository,
)
from loaners.infra.time import utc_now
from loaners.observability.logging import get_logger
from loaners.observability.redaction import safe_log_context
from loaners.realtime.broadcast import Notifier

logger = get_logger(__name__)

RESERVATION_STATUSES = ("reserved", "in-use", "returned", "cancelled")
FUEL_LEVELS = ("full", "3/4", "half", "1/4", "empty")
DEFAULT_STATUS = "reserved"

OVERLAP_MESSAGE = "Vehicle is already reserved for the selected time range"

PRE_CHECK = "pre-check"
POST_CHECK = "post-check"

_REQUIRED_CUSTOMER_FIELDS = (
    "first_name",
    "last_name",
    "date_of_birth",
    "drivers_license_number",
    "insurance_provider",
    "phone",
    "email",
)


def _validate_schedule(
    *,
    vehicle_id: str | None,
    start_date: date | None,
    end_date: date | None,
    assigned_advisor_id: str | None,
    status: str,
) -> None:
    if not vehicle_id or start_date is None or end_date is None or not assigned_advisor_id:
        raise InvalidArgumentError(
            "vehicle_id, start_date, end_date, and assigned_advisor_id are required"
        )
    if start_date > end_date:
        raise InvalidArgumentError("start_date must be on or before end_date")
    _validate_status(status)


def _validate_status(status: str) -> None:
    if status not in RESERVATION_STATUSES:
        raise InvalidArgumentError(
            f"status must be one of {', '.join(RESERVATION_STATUSES)}"
        )


def _validate_reading(reading: dict) -> None:
    odometer = reading.get("odometer")
    if not isinstance(odometer, int) or isinstance(odometer, bool) or odometer < 0:
        raise InvalidArgumentError("odometer must be a non-negative integer")
    if reading.get("fuel_level") not in FUEL_LEVELS:
        raise InvalidArgumentError(f"fuel_level must be one of {', '.join(FUEL_LEVELS)}")


class ReservationLifecycle:
    """Owns reservation state transitions and their multi-table writes.

    Args:
        notifier: Receives (action, reservation view) after each commit.
        connect: Connection factory; defaults to loaners.infra.db.get_conn.
    """

    def __init__(
        self,
        notifier: Notifier,
        *,
        connect: Callable[[], PgConnection] | None = None,
    ) -> None:
        self._notifier = notifier
        self._connect = connect

    # ── plumbing ───────────────────────────────────────────────────────

    def _open(self) -> PgConnection:
        return (self._connect or db.get_conn)()

    @contextmanager
    def _transaction(self) -> Iterator[PgCursor]:
        conn = self._open()
        try:
            with db.txn(conn) as cur:
                yield cur
        finally:
            conn.close()

    def _book(self, work: Callable[[PgCursor], dict]) -> dict:
        try:
            with self._transaction() as cur:
                return work(cur)
        except pg_errors.ExclusionViolation:
            raise ConflictError(OVERLAP_MESSAGE)

    def _publish(self, action: str, view: dict) -> None:
        try:
            self._notifier.notify(action, view)
        except Exception:
            # The transaction is committed; a broadcast failure must not undo it.
            logger.exception(
                "reservation broadcast failed",
                extra={
                    "extra_fields": safe_log_context(
                        action=action,
                        reservation_id=view.get("reservation_id"),
                    )
                },
            )

    def _log_committed(self, message: str, view: dict) -> None:
        logger.info(
            message,
            extra={
                "extra_fields": safe_log_context(
                    reservation_id=view["reservation_id"],
                    vehicle_id=view["vehicle_id"],
                    status=view["status"],
                    start_date=view["start_date"],
                    end_date=view["end_date"],
                )
            },
        )

    # ── reads ──────────────────────────────────────────────────────────

    def get(self, reservation_id: str) -> dict | None:
        """Joined view of one reservation, or None if it does not exist."""
        with self._transaction() as cur:
            return reservations_repository.fetch_reservation_view(cur, reservation_id)

    def list_reservations(self, *, status: str | None = None) -> list[dict]:
        """Joined views ordered by start_date, end_date; optional status filter."""
        with self._transaction() as cur:
            return reservations_repository.list_reservation_views(cur, status=status)

    def list_inspections(self, reservation_id: str) -> list[dict]:
        """Inspections recorded for a reservation id, newest first.

        Works for deleted reservations too (their orphaned rows are not
        linked any more, so the list is empty).
        """
        with self._transaction() as cur:
            return inspections_repository.list_for_reservation(cur, reservation_id)

    # ── create ─────────────────────────────────────────────────────────

    def create_with_new_customer(
        self,
        customer: dict,
        *,
        vehicle_id: str | None,
        start_date: date | None,
        end_date: date | None,
        assigned_advisor_id: str | None,
        status: str = DEFAULT_STATUS,
        eligibility: dict | None = None,
    ) -> dict:
        """Create a reservation for an inline customer record.

        The customer is inserted unless a row with its customer_id already
        exists; a missing customer_id is generated.

        Raises:
            InvalidArgumentError: Missing fields, bad dates, unknown vehicle or
                incomplete customer data.
            ConflictError: The vehicle is booked in the requested range.
        """
        _validate_schedule(
            vehicle_id=vehicle_id,
            start_date=start_date,
            end_date=end_date,
            assigned_advisor_id=assigned_advisor_id,
            status=status,
        )

        def work(cur: PgCursor) -> dict:
            self._assert_available(cur, vehicle_id, start_date, end_date)
            customer_id = self._ensure_customer(cur, customer)
            return self._insert(
                cur,
                customer_id=customer_id,
                vehicle_id=vehicle_id,
                start_date=start_date,
                end_date=end_date,
                assigned_advisor_id=assigned_advisor_id,
                status=status,
                eligibility=eligibility,
            )

        view = self._book(work)
        self._log_committed("reservation created", view)
        self._publish("create", view)
        return view

    def create_with_existing_customer(
        self,
        customer_id: str,
        *,
        vehicle_id: str | None,
        start_date: date | None,
        end_date: date | None,
        assigned_advisor_id: str | None,
        status: str = DEFAULT_STATUS,
        eligibility: dict | None = None,
    ) -> dict:
        """Create a reservation for a customer that must already exist.

        Raises:
            InvalidArgumentError: Missing fields, bad dates or unknown vehicle.
            ConflictError: The vehicle is booked in the requested range.
            CustomerNotFoundError: customer_id does not exist.
        """
        _validate_schedule(
            vehicle_id=vehicle_id,
            start_date=start_date,
            end_date=end_date,
            assigned_advisor_id=assigned_advisor_id,
            status=status,
        )

        def work(cur: PgCursor) -> dict:
            self._assert_available(cur, vehicle_id, start_date, end_date)
            if not customers_repository.customer_exists(cur, customer_id):
                raise CustomerNotFoundError(f"Customer {customer_id} does not exist")
            return self._insert(
                cur,
                customer_id=customer_id,
                vehicle_id=vehicle_id,
                start_date=start_date,
                end_date=end_date,
                assigned_advisor_id=assigned_advisor_id,
                status=status,
                eligibility=eligibility,
            )

        view = self._book(work)
        self._log_committed("reservation created", view)
        self._publish("create", view)
        return view

    def _assert_available(
        self,
        cur: PgCursor,
        vehicle_id: str,
        start_date: date,
        end_date: date,
        exclude_reservation_id: str | None = None,
    ) -> None:
        """Lock the vehicle row, then fail if the range collides with a booking."""
        if not vehicles_repository.lock_vehicle(cur, vehicle_id):
            raise InvalidArgumentError(f"Vehicle {vehicle_id} does not exist")

        conflicts = availability.check_availability(
            cur,
            vehicle_id=vehicle_id,
            start_date=start_date,
            end_date=end_date,
            exclude_reservation_id=exclude_reservation_id,
        )
        if conflicts:
            raise ConflictError(OVERLAP_MESSAGE, conflicts)

    def _ensure_customer(self, cur: PgCursor, customer: dict) -> str:
        customer_id = customer.get("customer_id") or new_id(CUSTOMER_PREFIX)
        if customers_repository.customer_exists(cur, customer_id):
            return customer_id

        missing = [f for f in _REQUIRED_CUSTOMER_FIELDS if not customer.get(f)]
        if missing:
            raise InvalidArgumentError(
                f"customer is missing required fields: {', '.join(missing)}"
            )

        customers_repository.insert_customer(
            cur,
            customer_id=customer_id,
            **{f: customer[f] for f in _REQUIRED_CUSTOMER_FIELDS},
        )
        return customer_id

    def _insert(
        self,
        cur: PgCursor,
        *,
        customer_id: str,
        vehicle_id: str,
        start_date: date,
        end_date: date,
        assigned_advisor_id: str,
        status: str,
        eligibility: dict | None,
    ) -> dict:
        reservation_id = new_id(RESERVATION_PREFIX)
        reservations_repository.insert_reservation(
            cur,
            reservation_id=reservation_id,
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            assigned_advisor_id=assigned_advisor_id,
            start_date=start_date,
            end_date=end_date,
            status=status,
        )

        if eligibility is not None:
            reservations_repository.insert_eligibility_verification(
                cur,
                reservation_id=reservation_id,
                age_verified=bool(eligibility.get("age_verified")),
                license_verified=bool(eligibility.get("license_verified")),
                insurance_verified=bool(eligibility.get("insurance_verified")),
                waiver_signed=bool(eligibility.get("waiver_signed")),
                verified_by=assigned_advisor_id,
            )

        return reservations_repository.fetch_reservation_view(cur, reservation_id)

    # ── update ─────────────────────────────────────────────────────────

    def update(
        self,
        reservation_id: str,
        *,
        vehicle_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        assigned_advisor_id: str | None = None,
        status: str | None = None,
    ) -> dict:
        """Replace the scheduling fields of a reservation.

        Omitted fields keep their stored values. The merged result is
        validated and availability-checked like a new reservation, ignoring
        the reservation's own row.

        Raises:
            NotFoundError: The reservation does not exist.
            InvalidArgumentError: Bad dates, status or unknown vehicle.
            ConflictError: The merged range collides with another booking.
        """

        def work(cur: PgCursor) -> dict:
            existing = reservations_repository.lock_reservation(cur, reservation_id)
            if existing is None:
                raise NotFoundError(f"Reservation {reservation_id} not found")

            merged = {
                "vehicle_id": vehicle_id or existing["vehicle_id"],
                "assigned_advisor_id": assigned_advisor_id or existing["assigned_advisor_id"],
                "start_date": start_date or existing["start_date"],
                "end_date": end_date or existing["end_date"],
                "status": status or existing["status"],
            }
            _validate_schedule(**merged)
            self._assert_available(
                cur,
                merged["vehicle_id"],
                merged["start_date"],
                merged["end_date"],
                exclude_reservation_id=reservation_id,
            )
            reservations_repository.update_reservation(
                cur, reservation_id=reservation_id, **merged
            )
            return reservations_repository.fetch_reservation_view(cur, reservation_id)

        view = self._book(work)
        self._log_committed("reservation updated", view)
        self._publish("update", view)
        return view

    def patch_status(self, reservation_id: str, status: str) -> dict:
        """Set the status without state-machine or availability checks.

        Raises:
            InvalidArgumentError: Unknown status value.
            NotFoundError: The reservation does not exist.
        """
        _validate_status(status)

        with self._transaction() as cur:
            if not reservations_repository.set_status(cur, reservation_id, status):
                raise NotFoundError(f"Reservation {reservation_id} not found")
            view = reservations_repository.fetch_reservation_view(cur, reservation_id)

        self._log_committed("reservation status changed", view)
        self._publish("update", view)
        return view

    # ── checkout / check-in ────────────────────────────────────────────

    def checkout(
        self,
        reservation_id: str,
        *,
        pre_check: dict,
        inspected_by: str | None = None,
    ) -> dict:
        """Hand the vehicle to the customer.

        Reservation -> in-use with checkout timestamp, vehicle -> in-use with
        the pre-check odometer and fuel level, pre-check inspection recorded.
        """
        with self._transaction() as cur:
            view = self._hand_over(
                cur,
                reservation_id,
                inspection_type=PRE_CHECK,
                vehicle_status="in-use",
                reading=pre_check,
                inspected_by=inspected_by,
                mark=reservations_repository.mark_checked_out,
            )

        self._log_committed("vehicle checked out", view)
        self._publish("update", view)
        return view

    def checkin(
        self,
        reservation_id: str,
        *,
        post_check: dict,
        inspected_by: str | None = None,
    ) -> dict:
        """Take the vehicle back.

        Reservation -> returned with check-in timestamp, vehicle -> available
        with the post-check odometer and fuel level, post-check inspection
        recorded.
        """
        with self._transaction() as cur:
            view = self._hand_over(
                cur,
                reservation_id,
                inspection_type=POST_CHECK,
                vehicle_status="available",
                reading=post_check,
                inspected_by=inspected_by,
                mark=reservations_repository.mark_checked_in,
            )

        self._log_committed("vehicle checked in", view)
        self._publish("update", view)
        return view

    def _hand_over(
        self,
        cur: PgCursor,
        reservation_id: str,
        *,
        inspection_type: str,
        vehicle_status: str,
        reading: dict,
        inspected_by: str | None,
        mark: Callable[..., None],
    ) -> dict:
        _validate_reading(reading)

        reservation = reservations_repository.lock_reservation(cur, reservation_id)
        if reservation is None:
            raise NotFoundError(f"Reservation {reservation_id} not found")

        if inspections_repository.has_inspection(cur, reservation_id, inspection_type):
            raise ConflictError(
                f"Reservation {reservation_id} already has a {inspection_type} inspection"
            )

        mark(cur, reservation_id, utc_now())

        updated = vehicles_repository.set_vehicle_condition(
            cur,
            vehicle_id=reservation["vehicle_id"],
            status=vehicle_status,
            odometer=reading["odometer"],
            fuel_level=reading["fuel_level"],
        )
        if not updated:
            raise NotFoundError(f"Vehicle {reservation['vehicle_id']} not found")

        inspections_repository.insert_inspection(
            cur,
            reservation_id=reservation_id,
            inspection_type=inspection_type,
            odometer=reading["odometer"],
            fuel_level=reading["fuel_level"],
            notes=reading.get("notes"),
            inspected_by=inspected_by,
        )

        return reservations_repository.fetch_reservation_view(cur, reservation_id)

    # ── delete ─────────────────────────────────────────────────────────

    def delete(self, reservation_id: str) -> dict:
        """Delete a reservation and return the view it had before deletion.

        Inspections and eligibility rows are kept (unlinked).

        Raises:
            NotFoundError: The reservation does not exist.
        """
        with self._transaction() as cur:
            view = reservations_repository.fetch_reservation_view(cur, reservation_id)
            if view is None:
                raise NotFoundError(f"Reservation {reservation_id} not found")
            reservations_repository.delete_reservation(cur, reservation_id)

        self._log_committed("reservation deleted", view)
        self._publish("delete", view)
        return view
