class BookingError(Exception):
    """Base class for errors raised by the booking core."""


class NotFound(BookingError):
    def __init__(self, kind: str, ident: str):
        super().__init__(f"{kind} {ident} not found.")
        self.kind = kind
        self.ident = ident


class SlotUnavailable(BookingError):
    """The requested slot failed re-validation; the caller should re-fetch availability."""

    def __init__(self, message: str = "The requested time slot is not available."):
        super().__init__(message)


class BookingAlreadyCancelled(BookingError):
    def __init__(self, booking_id: str):
        super().__init__(f"Booking {booking_id} is already cancelled.")
        self.booking_id = booking_id


class DeliveryFailure(BookingError):
    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel} delivery failed: {message}")
        self.channel = channel


class RepositoryFailure(BookingError):
    pass
