"""Domain errors raised by the reservation core.

API routes translate these into HTTP responses; anything else that escapes
a domain call is an internal error.
"""


class ReservationError(Exception):
    """Base class for reservation domain errors."""

    pass


class InvalidArgumentError(ReservationError):
    """Raised when a required field is missing or malformed."""

    pass


class NotFoundError(ReservationError):
    """Raised when a referenced entity does not exist."""

    pass


class CustomerNotFoundError(NotFoundError):
    """Raised when a reservation references a customer ID that does not exist."""

    pass


class ConflictError(ReservationError):
    """Raised when a request collides with existing reservations or records."""

    def __init__(self, message: str, conflicts: list[dict] | None = None) -> None:
        self.conflicts = conflicts or []
        super().__init__(message)
