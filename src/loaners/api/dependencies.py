"""FastAPI dependencies shared by routes."""

from fastapi import Request

from loaners.domain.reservations import ReservationLifecycle


def get_reservation_lifecycle(request: Request) -> ReservationLifecycle:
    """Lifecycle bound to this app (override in tests via dependency_overrides)."""
    return request.app.state.reservation_lifecycle
