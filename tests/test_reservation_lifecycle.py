"""Unit tests for ReservationLifecycle.

Repositories and the availability checker are patched; the connection is a
MagicMock so commit/rollback behaviour can be asserted without Postgres.
"""

from __future__ import annotations

from contextlib import ExitStack
from datetime import date, datetime, timezone
from unittest.mock import MagicMock, patch

import psycopg2.errors
import pytest

from loaners.domain.errors import (
    ConflictError,
    CustomerNotFoundError,
    InvalidArgumentError,
    NotFoundError,
)
from loaners.domain.reservations import ReservationLifecycle
from tests.helpers import RecordingNotifier, fake_connection, reservation_view

REPO = "loaners.infra.repositories.reservations_repository"
CUSTOMERS = "loaners.infra.repositories.customers_repository"
INSPECTIONS = "loaners.infra.repositories.inspections_repository"
VEHICLES = "loaners.infra.repositories.vehicles_repository"
AVAILABILITY = "loaners.domain.availability.check_availability"

SCHEDULE = {
    "vehicle_id": "V001",
    "start_date": date(2024, 6, 6),
    "end_date": date(2024, 6, 8),
    "assigned_advisor_id": "SA001",
}

NEW_CUSTOMER = {
    "first_name": "Emily",
    "last_name": "Davis",
    "date_of_birth": date(1985, 3, 15),
    "drivers_license_number": "DL123456789",
    "insurance_provider": "State Farm",
    "phone": "555-1001",
    "email": "emily.davis@mail.example",
}


@pytest.fixture
def conn():
    connection, _ = fake_connection()
    return connection


@pytest.fixture
def lifecycle(notifier, conn):
    return ReservationLifecycle(notifier, connect=MagicMock(return_value=conn))


@pytest.fixture
def repos():
    """Patch every repository function the lifecycle touches."""
    view = reservation_view("RES100", start_date="2024-06-06", end_date="2024-06-08")
    with ExitStack() as stack:
        mocks = {
            "check_availability": stack.enter_context(patch(AVAILABILITY, return_value=[])),
            "customer_exists": stack.enter_context(
                patch(f"{CUSTOMERS}.customer_exists", return_value=True)
            ),
            "insert_customer": stack.enter_context(patch(f"{CUSTOMERS}.insert_customer")),
            "insert_reservation": stack.enter_context(patch(f"{REPO}.insert_reservation")),
            "insert_eligibility": stack.enter_context(
                patch(f"{REPO}.insert_eligibility_verification")
            ),
            "fetch_view": stack.enter_context(
                patch(f"{REPO}.fetch_reservation_view", return_value=view)
            ),
            "lock": stack.enter_context(
                patch(
                    f"{REPO}.lock_reservation",
                    return_value={
                        "reservation_id": "RES100",
                        "vehicle_id": "V001",
                        "assigned_advisor_id": "SA001",
                        "start_date": date(2024, 6, 6),
                        "end_date": date(2024, 6, 8),
                        "status": "reserved",
                    },
                )
            ),
            "update_reservation": stack.enter_context(patch(f"{REPO}.update_reservation")),
            "set_status": stack.enter_context(patch(f"{REPO}.set_status", return_value=True)),
            "mark_checked_out": stack.enter_context(patch(f"{REPO}.mark_checked_out")),
            "mark_checked_in": stack.enter_context(patch(f"{REPO}.mark_checked_in")),
            "delete_reservation": stack.enter_context(
                patch(f"{REPO}.delete_reservation", return_value=True)
            ),
            "has_inspection": stack.enter_context(
                patch(f"{INSPECTIONS}.has_inspection", return_value=False)
            ),
            "insert_inspection": stack.enter_context(
                patch(f"{INSPECTIONS}.insert_inspection", return_value=1)
            ),
            "set_vehicle_condition": stack.enter_context(
                patch(f"{VEHICLES}.set_vehicle_condition", return_value=True)
            ),
            "lock_vehicle": stack.enter_context(
                patch(f"{VEHICLES}.lock_vehicle", return_value=True)
            ),
        }
        mocks["view"] = view
        yield mocks


# ── create ─────────────────────────────────────────────────────────────


class TestCreateWithExistingCustomer:
    def test_happy_path_commits_and_publishes(self, lifecycle, notifier, conn, repos):
        result = lifecycle.create_with_existing_customer("CUST001", **SCHEDULE)

        assert result == repos["view"]
        kwargs = repos["insert_reservation"].call_args.kwargs
        assert kwargs["customer_id"] == "CUST001"
        assert kwargs["vehicle_id"] == "V001"
        assert kwargs["status"] == "reserved"
        assert kwargs["reservation_id"].startswith("RES")
        repos["lock_vehicle"].assert_called_once()
        conn.commit.assert_called_once()
        assert notifier.events == [("create", repos["view"])]

    def test_availability_checked_in_same_transaction(self, lifecycle, repos):
        lifecycle.create_with_existing_customer("CUST001", **SCHEDULE)

        kwargs = repos["check_availability"].call_args.kwargs
        assert kwargs["vehicle_id"] == "V001"
        assert kwargs["start_date"] == date(2024, 6, 6)
        assert kwargs["end_date"] == date(2024, 6, 8)
        assert kwargs["exclude_reservation_id"] is None

    def test_conflict_rolls_back_without_notifying(self, lifecycle, notifier, conn, repos):
        colliding = [
            {
                "reservation_id": "RES001",
                "customer_id": "CUST009",
                "start_date": "2024-06-01",
                "end_date": "2024-06-05",
                "status": "reserved",
            }
        ]
        repos["check_availability"].return_value = colliding

        with pytest.raises(ConflictError) as exc_info:
            lifecycle.create_with_existing_customer("CUST001", **SCHEDULE)

        assert exc_info.value.conflicts == colliding
        repos["insert_reservation"].assert_not_called()
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        assert notifier.events == []

    def test_unknown_customer(self, lifecycle, notifier, conn, repos):
        repos["customer_exists"].return_value = False

        with pytest.raises(CustomerNotFoundError):
            lifecycle.create_with_existing_customer("CUST404", **SCHEDULE)

        repos["insert_reservation"].assert_not_called()
        conn.rollback.assert_called_once()
        assert notifier.events == []

    def test_custom_status_is_stored(self, lifecycle, repos):
        lifecycle.create_with_existing_customer("CUST001", **SCHEDULE, status="cancelled")

        assert repos["insert_reservation"].call_args.kwargs["status"] == "cancelled"

    def test_eligibility_verified_by_advisor(self, lifecycle, repos):
        lifecycle.create_with_existing_customer(
            "CUST001",
            **SCHEDULE,
            eligibility={"age_verified": True, "license_verified": True},
        )

        kwargs = repos["insert_eligibility"].call_args.kwargs
        assert kwargs["age_verified"] is True
        assert kwargs["license_verified"] is True
        assert kwargs["insurance_verified"] is False
        assert kwargs["waiver_signed"] is False
        assert kwargs["verified_by"] == "SA001"

    def test_no_eligibility_row_when_absent(self, lifecycle, repos):
        lifecycle.create_with_existing_customer("CUST001", **SCHEDULE)

        repos["insert_eligibility"].assert_not_called()


class TestCreateValidation:
    @pytest.mark.parametrize(
        "missing", ["vehicle_id", "start_date", "end_date", "assigned_advisor_id"]
    )
    def test_missing_field_rejected_before_connecting(self, notifier, missing):
        connect = MagicMock()
        lifecycle = ReservationLifecycle(notifier, connect=connect)
        schedule = {**SCHEDULE, missing: None}

        with pytest.raises(InvalidArgumentError):
            lifecycle.create_with_existing_customer("CUST001", **schedule)

        connect.assert_not_called()

    def test_start_after_end_rejected(self, lifecycle, repos):
        schedule = {**SCHEDULE, "start_date": date(2024, 6, 9), "end_date": date(2024, 6, 8)}

        with pytest.raises(InvalidArgumentError, match="start_date"):
            lifecycle.create_with_existing_customer("CUST001", **schedule)

        repos["insert_reservation"].assert_not_called()

    def test_same_day_allowed(self, lifecycle, repos):
        schedule = {**SCHEDULE, "start_date": date(2024, 6, 8), "end_date": date(2024, 6, 8)}

        lifecycle.create_with_existing_customer("CUST001", **schedule)

        repos["insert_reservation"].assert_called_once()

    def test_unknown_status_rejected(self, lifecycle, repos):
        with pytest.raises(InvalidArgumentError, match="status"):
            lifecycle.create_with_existing_customer("CUST001", **SCHEDULE, status="lost")


class TestCreateWithNewCustomer:
    def test_generates_customer_id_and_inserts(self, lifecycle, notifier, repos):
        repos["customer_exists"].return_value = False

        lifecycle.create_with_new_customer(dict(NEW_CUSTOMER), **SCHEDULE)

        customer_kwargs = repos["insert_customer"].call_args.kwargs
        assert customer_kwargs["customer_id"].startswith("CUST")
        assert customer_kwargs["first_name"] == "Emily"
        assert customer_kwargs["email"] == "emily.davis@mail.example"
        reservation_kwargs = repos["insert_reservation"].call_args.kwargs
        assert reservation_kwargs["customer_id"] == customer_kwargs["customer_id"]
        assert notifier.events[0][0] == "create"

    def test_supplied_id_for_new_customer(self, lifecycle, repos):
        repos["customer_exists"].return_value = False

        lifecycle.create_with_new_customer(
            {**NEW_CUSTOMER, "customer_id": "CUST777"}, **SCHEDULE
        )

        assert repos["insert_customer"].call_args.kwargs["customer_id"] == "CUST777"
        assert repos["insert_reservation"].call_args.kwargs["customer_id"] == "CUST777"

    def test_existing_customer_not_reinserted(self, lifecycle, repos):
        repos["customer_exists"].return_value = True

        lifecycle.create_with_new_customer({"customer_id": "CUST001"}, **SCHEDULE)

        repos["insert_customer"].assert_not_called()
        assert repos["insert_reservation"].call_args.kwargs["customer_id"] == "CUST001"

    def test_incomplete_new_customer_rolls_back(self, lifecycle, notifier, conn, repos):
        repos["customer_exists"].return_value = False

        with pytest.raises(InvalidArgumentError, match="drivers_license_number"):
            lifecycle.create_with_new_customer(
                {"first_name": "Emily", "last_name": "Davis"}, **SCHEDULE
            )

        repos["insert_customer"].assert_not_called()
        repos["insert_reservation"].assert_not_called()
        conn.rollback.assert_called_once()
        assert notifier.events == []

    def test_conflict_checked_before_customer_insert(self, lifecycle, repos):
        repos["customer_exists"].return_value = False
        repos["check_availability"].return_value = [{"reservation_id": "RES001"}]

        with pytest.raises(ConflictError):
            lifecycle.create_with_new_customer(dict(NEW_CUSTOMER), **SCHEDULE)

        repos["insert_customer"].assert_not_called()


class TestCreateVehicleLock:
    def test_vehicle_locked_before_availability_check(self, lifecycle, repos):
        calls = []
        repos["lock_vehicle"].side_effect = lambda cur, vid: calls.append(("lock", vid)) or True
        repos["check_availability"].side_effect = (
            lambda cur, **kw: calls.append(("check", kw["vehicle_id"])) or []
        )

        lifecycle.create_with_existing_customer("CUST001", **SCHEDULE)

        assert calls == [("lock", "V001"), ("check", "V001")]

    def test_lock_and_insert_share_one_transaction(self, notifier, repos):
        conn, cur = fake_connection()
        connect = MagicMock(return_value=conn)
        lifecycle = ReservationLifecycle(notifier, connect=connect)

        lifecycle.create_with_existing_customer("CUST001", **SCHEDULE)

        connect.assert_called_once()
        assert repos["lock_vehicle"].call_args.args == (cur, "V001")
        assert repos["insert_reservation"].call_args.args == (cur,)
        conn.commit.assert_called_once()

    def test_unknown_vehicle_is_invalid(self, lifecycle, notifier, conn, repos):
        repos["lock_vehicle"].return_value = False

        with pytest.raises(InvalidArgumentError, match="V001"):
            lifecycle.create_with_existing_customer("CUST001", **SCHEDULE)

        repos["check_availability"].assert_not_called()
        repos["insert_reservation"].assert_not_called()
        conn.rollback.assert_called_once()
        assert notifier.events == []


class TestExclusionViolation:
    def test_create_maps_to_conflict(self, lifecycle, notifier, conn, repos):
        repos["insert_reservation"].side_effect = psycopg2.errors.ExclusionViolation(
            "conflicting key value violates exclusion constraint"
        )

        with pytest.raises(ConflictError) as exc_info:
            lifecycle.create_with_existing_customer("CUST001", **SCHEDULE)

        assert "already reserved" in str(exc_info.value)
        assert exc_info.value.conflicts == []
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        conn.close.assert_called_once()
        assert notifier.events == []

    def test_update_maps_to_conflict(self, lifecycle, notifier, conn, repos):
        repos["update_reservation"].side_effect = psycopg2.errors.ExclusionViolation(
            "conflicting key value violates exclusion constraint"
        )

        with pytest.raises(ConflictError):
            lifecycle.update("RES100", end_date=date(2024, 6, 10))

        conn.rollback.assert_called_once()
        assert notifier.events == []

    def test_other_integrity_errors_propagate(self, lifecycle, notifier, repos):
        repos["insert_reservation"].side_effect = psycopg2.errors.ForeignKeyViolation(
            "insert or update violates foreign key constraint"
        )

        with pytest.raises(psycopg2.errors.ForeignKeyViolation):
            lifecycle.create_with_existing_customer("CUST001", **SCHEDULE)

        assert notifier.events == []


class TestNotifierFailure:
    def test_broadcast_failure_does_not_undo_commit(self, conn, repos):
        notifier = RecordingNotifier(fail=True)
        lifecycle = ReservationLifecycle(notifier, connect=MagicMock(return_value=conn))

        result = lifecycle.create_with_existing_customer("CUST001", **SCHEDULE)

        assert result == repos["view"]
        conn.commit.assert_called_once()


# ── update / status patch ──────────────────────────────────────────────


class TestUpdate:
    def test_merges_and_excludes_own_row(self, lifecycle, notifier, repos):
        result = lifecycle.update("RES100", end_date=date(2024, 6, 10))

        availability_kwargs = repos["check_availability"].call_args.kwargs
        assert availability_kwargs["exclude_reservation_id"] == "RES100"
        assert availability_kwargs["start_date"] == date(2024, 6, 6)
        assert availability_kwargs["end_date"] == date(2024, 6, 10)
        repos["update_reservation"].assert_called_once()
        update_kwargs = repos["update_reservation"].call_args.kwargs
        assert update_kwargs == {
            "reservation_id": "RES100",
            "vehicle_id": "V001",
            "assigned_advisor_id": "SA001",
            "start_date": date(2024, 6, 6),
            "end_date": date(2024, 6, 10),
            "status": "reserved",
        }
        assert result == repos["view"]
        assert notifier.events == [("update", repos["view"])]

    def test_not_found(self, lifecycle, notifier, repos):
        repos["lock"].return_value = None

        with pytest.raises(NotFoundError):
            lifecycle.update("RES404", status="cancelled")

        repos["update_reservation"].assert_not_called()
        assert notifier.events == []

    def test_conflict(self, lifecycle, notifier, conn, repos):
        repos["check_availability"].return_value = [{"reservation_id": "RES200"}]

        with pytest.raises(ConflictError) as exc_info:
            lifecycle.update("RES100", vehicle_id="V002")

        assert exc_info.value.conflicts == [{"reservation_id": "RES200"}]
        repos["update_reservation"].assert_not_called()
        conn.rollback.assert_called_once()
        assert notifier.events == []

    def test_merged_dates_validated(self, lifecycle, repos):
        with pytest.raises(InvalidArgumentError):
            lifecycle.update("RES100", start_date=date(2024, 6, 20))

        repos["update_reservation"].assert_not_called()


class TestPatchStatus:
    def test_sets_status_and_publishes(self, lifecycle, notifier, conn, repos):
        result = lifecycle.patch_status("RES100", "cancelled")

        args = repos["set_status"].call_args.args
        assert args[1:] == ("RES100", "cancelled")
        repos["check_availability"].assert_not_called()
        conn.commit.assert_called_once()
        assert result == repos["view"]
        assert notifier.events == [("update", repos["view"])]

    def test_not_found(self, lifecycle, notifier, repos):
        repos["set_status"].return_value = False

        with pytest.raises(NotFoundError):
            lifecycle.patch_status("RES404", "cancelled")

        assert notifier.events == []

    def test_invalid_status(self, lifecycle, repos):
        with pytest.raises(InvalidArgumentError):
            lifecycle.patch_status("RES100", "archived")

        repos["set_status"].assert_not_called()


# ── checkout / check-in ────────────────────────────────────────────────


FIXED_NOW = datetime(2024, 6, 6, 9, 30, tzinfo=timezone.utc)


class TestCheckout:
    def test_happy_path(self, lifecycle, notifier, conn, repos):
        with patch("loaners.domain.reservations.utc_now", return_value=FIXED_NOW):
            lifecycle.checkout(
                "RES100",
                pre_check={"odometer": 12500, "fuel_level": "full", "notes": "clean"},
                inspected_by="SA002",
            )

        mark_args = repos["mark_checked_out"].call_args.args
        assert mark_args[1:] == ("RES100", FIXED_NOW)
        repos["mark_checked_in"].assert_not_called()
        repos["set_vehicle_condition"].assert_called_once()
        assert repos["set_vehicle_condition"].call_args.kwargs == {
            "vehicle_id": "V001",
            "status": "in-use",
            "odometer": 12500,
            "fuel_level": "full",
        }
        assert repos["insert_inspection"].call_args.kwargs == {
            "reservation_id": "RES100",
            "inspection_type": "pre-check",
            "odometer": 12500,
            "fuel_level": "full",
            "notes": "clean",
            "inspected_by": "SA002",
        }
        conn.commit.assert_called_once()
        assert notifier.events == [("update", repos["view"])]

    def test_not_found(self, lifecycle, notifier, repos):
        repos["lock"].return_value = None

        with pytest.raises(NotFoundError):
            lifecycle.checkout("RES404", pre_check={"odometer": 1, "fuel_level": "full"})

        repos["mark_checked_out"].assert_not_called()
        assert notifier.events == []

    def test_second_checkout_conflicts(self, lifecycle, notifier, conn, repos):
        repos["has_inspection"].return_value = True

        with pytest.raises(ConflictError):
            lifecycle.checkout("RES100", pre_check={"odometer": 1, "fuel_level": "full"})

        repos["mark_checked_out"].assert_not_called()
        repos["insert_inspection"].assert_not_called()
        conn.rollback.assert_called_once()
        assert notifier.events == []

    def test_missing_vehicle_rolls_back(self, lifecycle, conn, repos):
        repos["set_vehicle_condition"].return_value = False

        with pytest.raises(NotFoundError, match="Vehicle"):
            lifecycle.checkout("RES100", pre_check={"odometer": 1, "fuel_level": "full"})

        repos["insert_inspection"].assert_not_called()
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    @pytest.mark.parametrize(
        "reading",
        [
            {"odometer": -1, "fuel_level": "full"},
            {"odometer": "12000", "fuel_level": "full"},
            {"fuel_level": "full"},
            {"odometer": 100, "fuel_level": "2/3"},
        ],
    )
    def test_bad_reading_rejected(self, lifecycle, repos, reading):
        with pytest.raises(InvalidArgumentError):
            lifecycle.checkout("RES100", pre_check=reading)

        repos["lock"].assert_not_called()


class TestCheckin:
    def test_happy_path(self, lifecycle, notifier, repos):
        with patch("loaners.domain.reservations.utc_now", return_value=FIXED_NOW):
            lifecycle.checkin(
                "RES100",
                post_check={"odometer": 12740, "fuel_level": "3/4"},
            )

        mark_args = repos["mark_checked_in"].call_args.args
        assert mark_args[1:] == ("RES100", FIXED_NOW)
        repos["mark_checked_out"].assert_not_called()
        assert repos["set_vehicle_condition"].call_args.kwargs == {
            "vehicle_id": "V001",
            "status": "available",
            "odometer": 12740,
            "fuel_level": "3/4",
        }
        inspection = repos["insert_inspection"].call_args.kwargs
        assert inspection["inspection_type"] == "post-check"
        assert inspection["notes"] is None
        assert inspection["inspected_by"] is None
        assert notifier.events == [("update", repos["view"])]

    def test_second_checkin_conflicts(self, lifecycle, repos):
        repos["has_inspection"].return_value = True

        with pytest.raises(ConflictError):
            lifecycle.checkin("RES100", post_check={"odometer": 1, "fuel_level": "empty"})

        assert repos["has_inspection"].call_args.args[1:] == ("RES100", "post-check")


# ── delete / reads ─────────────────────────────────────────────────────


class TestDelete:
    def test_deletes_and_publishes_prior_view(self, lifecycle, notifier, conn, repos):
        result = lifecycle.delete("RES100")

        assert repos["delete_reservation"].call_args.args[1] == "RES100"
        conn.commit.assert_called_once()
        assert result == repos["view"]
        assert notifier.events == [("delete", repos["view"])]

    def test_not_found(self, lifecycle, notifier, repos):
        repos["fetch_view"].return_value = None

        with pytest.raises(NotFoundError):
            lifecycle.delete("RES404")

        repos["delete_reservation"].assert_not_called()
        assert notifier.events == []


class TestReads:
    def test_get_missing_returns_none(self, lifecycle, conn, repos):
        repos["fetch_view"].return_value = None

        assert lifecycle.get("RES404") is None
        conn.close.assert_called_once()

    def test_list_passes_status_filter(self, lifecycle):
        with patch(f"{REPO}.list_reservation_views", return_value=[]) as mock_list:
            assert lifecycle.list_reservations(status="in-use") == []

        assert mock_list.call_args.kwargs == {"status": "in-use"}

    def test_reads_do_not_publish(self, lifecycle, notifier, repos):
        lifecycle.get("RES100")
        with patch(f"{INSPECTIONS}.list_for_reservation", return_value=[]):
            lifecycle.list_inspections("RES100")

        assert notifier.events == []
