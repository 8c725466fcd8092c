class BookingError(Exception):
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BookingError):
    """Missing or malformed input; nothing was touched."""

    status_code = 400


class NotFoundError(BookingError):
    status_code = 404


class ConflictError(BookingError):
    """The resource is taken for the interval, or the state transition is not allowed."""

    status_code = 409


class InternalError(BookingError):
    """Persistence failed; the transaction was rolled back."""

    status_code = 500
