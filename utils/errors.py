class ApiError(Exception):
    """Error with an HTTP status and a stable machine-readable code."""

    status = 400
    code = "BAD_REQUEST"

    def __init__(self, message, status=None, code=None, **extra):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        if code is not None:
            self.code = code
        self.extra = extra

    def to_dict(self):
        body = {"error": self.message, "code": self.code}
        body.update(self.extra)
        return body


class NotFoundError(ApiError):
    status = 404
    code = "NOT_FOUND"


class ForbiddenError(ApiError):
    status = 403
    code = "FORBIDDEN"


class BookingRuleError(ApiError):
    """A booking request broke one of the configured booking rules."""


class BookingConflictError(ApiError):
    status = 409
    code = "BOOKING_CONFLICT"


class PaymentProviderError(ApiError):
    status = 500
    code = "PAYMENT_PROVIDER_UNAVAILABLE"
