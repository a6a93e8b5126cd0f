"""
Error taxonomy for the reservation engine.

Every error carries an HTTP status code and optional details; app.py
renders them as ``{"error": message, **details}``.
"""


class BookingError(Exception):
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        body = {"error": self.message}
        body.update({k: v for k, v in self.details.items() if v is not None})
        return body


class ValidationError(BookingError):
    status_code = 400


class InvalidTransitionError(ValidationError):
    def __init__(self, current: str, new: str):
        super().__init__(f"Cannot move booking from {current} to {new}", current=current, requested=new)


class CancellationWindowClosedError(ValidationError):
    status_code = 403


class NotFoundError(BookingError):
    status_code = 404


class ConflictError(BookingError):
    status_code = 409

    def __init__(self, message: str, window=None, **details):
        super().__init__(message, window=window, **details)
        self.window = window


class DuplicateRequestError(BookingError):
    status_code = 409


class AlreadyCompletedError(BookingError):
    status_code = 409


class AlreadyProcessedError(BookingError):
    status_code = 410


class PromotionError(BookingError):
    status_code = 422

    NOT_FOUND = "not_found"
    SHOP_MISMATCH = "shop_mismatch"
    DISABLED = "disabled"
    NOT_YET_ACTIVE = "not_yet_active"
    EXPIRED = "expired"
    BELOW_MINIMUM_ORDER = "below_minimum_order"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    CUSTOMER_USAGE_LIMIT_REACHED = "customer_usage_limit_reached"

    def __init__(self, reason: str, message: str):
        super().__init__(message, reason=reason)
        self.reason = reason


class StorageUnavailableError(BookingError):
    status_code = 503
