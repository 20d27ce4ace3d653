"""Reservation endpoints.

CRUD over reservations plus the checkout / check-in actions. All writes go
through ReservationLifecycle, which also broadcasts the change to
/ws/reservations subscribers after commit.
"""

from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from pydantic import BaseModel, Field

from loaners.api.dependencies import get_reservation_lifecycle
from loaners.domain.errors import (
    ConflictError,
    CustomerNotFoundError,
    InvalidArgumentError,
    NotFoundError,
)
from loaners.domain.reservations import ReservationLifecycle
from loaners.observability.correlation import get_correlation_id
from loaners.observability.logging import get_logger
from loaners.observability.redaction import safe_log_context

ReservationStatus = Literal["reserved", "in-use", "returned", "cancelled"]
FuelLevel = Literal["full", "3/4", "half", "1/4", "empty"]


class CustomerIn(BaseModel):
    """Inline customer; created on the fly if customer_id is unknown or absent."""

    customer_id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    date_of_birth: date | None = None
    drivers_license_number: str | None = None
    insurance_provider: str | None = None
    phone: str | None = None
    email: str | None = None


class EligibilityIn(BaseModel):
    age_verified: bool = False
    license_verified: bool = False
    insurance_verified: bool = False
    waiver_signed: bool = False


class CreateReservationRequest(BaseModel):
    """Request body for reservation creation.

    Either customer (inline record) or customer_id (existing record) must be
    given. Scheduling fields are validated by the lifecycle so that missing
    values produce 400, not 422.
    """

    vehicle_id: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    assigned_advisor_id: str | None = None
    status: ReservationStatus = "reserved"
    customer: CustomerIn | None = None
    customer_id: str | None = None
    eligibility_verification: EligibilityIn | None = None


class UpdateReservationRequest(BaseModel):
    """Request body for full update. Omitted fields keep their stored value."""

    vehicle_id: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    assigned_advisor_id: str | None = None
    status: ReservationStatus | None = None


class StatusPatchRequest(BaseModel):
    status: ReservationStatus


class InspectionReading(BaseModel):
    odometer: int = Field(..., ge=0, description="Odometer reading")
    fuel_level: FuelLevel
    notes: str | None = None


class CheckoutRequest(BaseModel):
    inspected_by: str | None = None
    pre_check: InspectionReading


class CheckinRequest(BaseModel):
    inspected_by: str | None = None
    post_check: InspectionReading


router = APIRouter(prefix="/reservations", tags=["reservations"])

logger = get_logger(__name__)


def _conflict(exc: ConflictError) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={"message": str(exc), "conflicts": exc.conflicts},
    )


@router.get("")
def list_reservations(
    status: ReservationStatus | None = Query(None, description="Filter by status"),
    lifecycle: ReservationLifecycle = Depends(get_reservation_lifecycle),
) -> list[dict]:
    """List reservations with customer, vehicle, advisor and inspections."""
    return lifecycle.list_reservations(status=status)


@router.get("/{reservation_id}")
def get_reservation(
    reservation_id: str = Path(..., description="Reservation ID"),
    lifecycle: ReservationLifecycle = Depends(get_reservation_lifecycle),
) -> dict:
    """Get single reservation by ID."""
    reservation = lifecycle.get(reservation_id)
    if reservation is None:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return reservation


@router.get("/{reservation_id}/inspections")
def list_reservation_inspections(
    reservation_id: str = Path(..., description="Reservation ID"),
    lifecycle: ReservationLifecycle = Depends(get_reservation_lifecycle),
) -> list[dict]:
    """Inspections recorded for a reservation, newest first."""
    return lifecycle.list_inspections(reservation_id)


@router.post("", status_code=201)
def create_reservation(
    body: CreateReservationRequest,
    lifecycle: ReservationLifecycle = Depends(get_reservation_lifecycle),
) -> dict:
    """Create a reservation.

    400 on missing fields, bad dates or unknown customer_id;
    409 with the colliding reservations when the vehicle is booked.
    """
    schedule = {
        "vehicle_id": body.vehicle_id,
        "start_date": body.start_date,
        "end_date": body.end_date,
        "assigned_advisor_id": body.assigned_advisor_id,
        "status": body.status,
        "eligibility": (
            body.eligibility_verification.model_dump()
            if body.eligibility_verification
            else None
        ),
    }

    try:
        if body.customer is not None:
            reservation = lifecycle.create_with_new_customer(
                body.customer.model_dump(), **schedule
            )
        elif body.customer_id:
            reservation = lifecycle.create_with_existing_customer(
                body.customer_id, **schedule
            )
        else:
            raise HTTPException(status_code=400, detail="Customer information is required")
    except CustomerNotFoundError:
        raise HTTPException(status_code=400, detail="Customer does not exist")
    except InvalidArgumentError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConflictError as exc:
        logger.info(
            "reservation create rejected by conflict",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=get_correlation_id(),
                    vehicle_id=body.vehicle_id,
                    conflicts=exc.conflicts,
                )
            },
        )
        raise _conflict(exc)

    return reservation


@router.put("/{reservation_id}")
def update_reservation(
    body: UpdateReservationRequest,
    reservation_id: str = Path(..., description="Reservation ID"),
    lifecycle: ReservationLifecycle = Depends(get_reservation_lifecycle),
) -> dict:
    """Update vehicle, advisor, dates and status of a reservation."""
    try:
        return lifecycle.update(
            reservation_id,
            vehicle_id=body.vehicle_id,
            start_date=body.start_date,
            end_date=body.end_date,
            assigned_advisor_id=body.assigned_advisor_id,
            status=body.status,
        )
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Reservation not found")
    except InvalidArgumentError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConflictError as exc:
        raise _conflict(exc)


@router.patch("/{reservation_id}/status")
def patch_reservation_status(
    body: StatusPatchRequest,
    reservation_id: str = Path(..., description="Reservation ID"),
    lifecycle: ReservationLifecycle = Depends(get_reservation_lifecycle),
) -> dict:
    """Set reservation status without transition checks."""
    try:
        return lifecycle.patch_status(reservation_id, body.status)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Reservation not found")


@router.post("/{reservation_id}/checkout")
def checkout_vehicle(
    body: CheckoutRequest,
    reservation_id: str = Path(..., description="Reservation ID"),
    lifecycle: ReservationLifecycle = Depends(get_reservation_lifecycle),
) -> dict:
    """Check the vehicle out with a pre-check inspection."""
    try:
        lifecycle.checkout(
            reservation_id,
            pre_check=body.pre_check.model_dump(),
            inspected_by=body.inspected_by,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidArgumentError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    return {"message": "Vehicle checked out successfully", "reservation_id": reservation_id}


@router.post("/{reservation_id}/checkin")
def checkin_vehicle(
    body: CheckinRequest,
    reservation_id: str = Path(..., description="Reservation ID"),
    lifecycle: ReservationLifecycle = Depends(get_reservation_lifecycle),
) -> dict:
    """Check the vehicle in with a post-check inspection."""
    try:
        lifecycle.checkin(
            reservation_id,
            post_check=body.post_check.model_dump(),
            inspected_by=body.inspected_by,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidArgumentError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    return {"message": "Vehicle checked in successfully", "reservation_id": reservation_id}


@router.delete("/{reservation_id}")
def delete_reservation(
    reservation_id: str = Path(..., description="Reservation ID"),
    lifecycle: ReservationLifecycle = Depends(get_reservation_lifecycle),
) -> dict:
    """Delete a reservation. Its inspections are kept."""
    try:
        lifecycle.delete(reservation_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Reservation not found")

    return {"message": "Reservation deleted successfully", "reservation_id": reservation_id}
