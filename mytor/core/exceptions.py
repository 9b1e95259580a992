from typing import Optional


class BookingEngineError(Exception):
    """Base class for every error the scheduling engine reports to callers.

    `reason` is a short user-facing sentence; `kind` is the stable machine
    name used in API error bodies.
    """

    kind = "error"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationError(BookingEngineError):
    """Malformed time, phone, date or an empty required field."""

    kind = "validation_error"


class VerificationRequiredError(ValidationError):
    """A booking was submitted for a phone that has no fresh verification."""

    kind = "verification_required"


class NotFoundError(BookingEngineError):
    """Unknown business, service or booking."""

    kind = "not_found"


class ConflictError(BookingEngineError):
    """The requested slot overlaps an active booking."""

    kind = "conflict"

    def __init__(self, reason: str, conflicting_start: Optional[str] = None, conflicting_booking_id: Optional[str] = None):
        super().__init__(reason)
        self.conflicting_start = conflicting_start
        self.conflicting_booking_id = conflicting_booking_id


class ExpiredCodeError(BookingEngineError):
    kind = "expired_code"


class CodeMismatchError(BookingEngineError):
    kind = "code_mismatch"


class RateLimitError(BookingEngineError):
    """A resend was requested before the cooldown elapsed."""

    kind = "rate_limited"

    def __init__(self, reason: str, retry_after: int):
        super().__init__(reason)
        self.retry_after = retry_after


class TransientError(BookingEngineError):
    """Retryable failure of an external collaborator (storage, SMS gateway)."""

    kind = "transient_error"
