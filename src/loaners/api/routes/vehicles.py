"""Vehicle endpoints: fleet listing and availability probe."""

from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, HTTPException, Path, Query

from loaners.domain.availability import check_availability
from loaners.domain.errors import InvalidArgumentError
from loaners.infra.repositories import vehicles_repository

VehicleStatus = Literal["available", "in-use", "maintenance"]

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


@router.get("")
def list_vehicles(
    status: VehicleStatus | None = Query(None, description="Filter by status"),
) -> list[dict]:
    """List loaner vehicles, newest first."""
    from loaners.infra.db import txn

    with txn() as cur:
        return vehicles_repository.list_vehicles(cur, status=status)


@router.get("/{vehicle_id}")
def get_vehicle(
    vehicle_id: str = Path(..., description="Vehicle ID"),
) -> dict:
    from loaners.infra.db import txn

    with txn() as cur:
        vehicle = vehicles_repository.get_vehicle(cur, vehicle_id)

    if vehicle is None:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return vehicle


@router.get("/{vehicle_id}/availability")
def vehicle_availability(
    vehicle_id: str = Path(..., description="Vehicle ID"),
    start_date: date | None = Query(None, description="Requested start date"),
    end_date: date | None = Query(None, description="Requested end date"),
    exclude_reservation_id: str | None = Query(
        None, description="Reservation to ignore (when editing it)"
    ),
) -> dict:
    """Report whether the vehicle is free for [start_date, end_date).

    Read-only; a later create can still lose a race for the same range.
    """
    from loaners.infra.db import txn

    with txn() as cur:
        if vehicles_repository.get_vehicle(cur, vehicle_id) is None:
            raise HTTPException(status_code=404, detail="Vehicle not found")
        try:
            conflicts = check_availability(
                cur,
                vehicle_id=vehicle_id,
                start_date=start_date,
                end_date=end_date,
                exclude_reservation_id=exclude_reservation_id,
            )
        except InvalidArgumentError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    return {"available": not conflicts, "conflicts": conflicts}
