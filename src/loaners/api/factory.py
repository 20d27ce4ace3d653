"""FastAPI application factory."""

from fastapi import FastAPI, Request, Response

from loaners.domain.reservations import ReservationLifecycle
from loaners.observability.correlation import CORRELATION_ID_HEADER, correlation_scope
from loaners.realtime.broadcast import BroadcastHub

from .routers import public
from .routes import advisors, customers, realtime, reservations, vehicles


def create_app(
    *,
    hub: BroadcastHub | None = None,
    lifecycle: ReservationLifecycle | None = None,
) -> FastAPI:
    """Create the FastAPI app with all routes mounted.

    Args:
        hub: Broadcast hub serving /ws/reservations. A new one is created
             if None.
        lifecycle: Reservation lifecycle used by the routes. If None, one is
                   built that publishes to the hub and connects via
                   DATABASE_URL.

    Returns:
        Configured FastAPI application.
    """
    hub = hub or BroadcastHub()

    app = FastAPI(
        title="Loaner Reservations",
        docs_url=None,
        redoc_url=None,
    )
    app.state.broadcast_hub = hub
    app.state.reservation_lifecycle = lifecycle or ReservationLifecycle(notifier=hub)

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response

    app.include_router(public.router)
    app.include_router(reservations.router)
    app.include_router(vehicles.router)
    app.include_router(customers.router)
    app.include_router(advisors.router)
    app.include_router(realtime.router)

    return app
