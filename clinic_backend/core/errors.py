"""Typed failures raised by the booking engine.

Every error carries the HTTP status the API answers with and a short machine
readable ``code`` so clients can tell a taken slot apart from a bad request.
"""


class BookingError(Exception):
    status_code = 400
    code = 'booking_error'
    default_detail = 'Booking request failed.'

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(BookingError):
    """Malformed input, unknown doctor or a clinic/doctor mismatch."""
    status_code = 400
    code = 'validation_error'
    default_detail = 'Invalid booking request.'


class NotFoundError(BookingError):
    status_code = 404
    code = 'not_found'
    default_detail = 'Resource not found.'


class AvailabilityError(BookingError):
    """The requested slot is outside every window or inside time off."""
    status_code = 422
    code = 'unavailable'
    default_detail = 'The doctor is not available at the requested time.'


class ConflictError(BookingError):
    """Another active appointment already holds an overlapping slot."""
    status_code = 409
    code = 'slot_already_booked'
    default_detail = 'This time slot has already been booked. Please pick another time.'


class AuthorizationError(BookingError):
    status_code = 403
    code = 'forbidden'
    default_detail = 'You are not allowed to modify this appointment.'


class InvalidTransitionError(BookingError):
    status_code = 409
    code = 'invalid_transition'
    default_detail = 'This status change is not allowed.'


class InvalidStateError(BookingError):
    status_code = 409
    code = 'invalid_state'
    default_detail = 'The appointment is not in a state that allows this change.'


class RateLimitError(BookingError):
    status_code = 429
    code = 'rate_limited'
    default_detail = 'Too many requests. Please try again later.'

    def __init__(self, retry_after: int, detail: str | None = None):
        self.retry_after = retry_after
        super().__init__(detail)
