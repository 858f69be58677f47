"""
Error taxonomy for the assignment engine.

Every failure a caller can see is an EngineError carrying a stable ``kind``
string and the HTTP status the API answers with. Client errors are never
retried, contention errors mean "this slot is gone / try later", and
InvariantViolation is an internal-consistency fault.
"""


class EngineError(Exception):
    kind = "ENGINE_ERROR"
    status_code = 400
    message = "Request could not be processed"

    def __init__(self, message=None, **details):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.details = details

    def to_dict(self):
        body = {"success": False, "error": self.message, "kind": self.kind}
        body.update(self.details)
        return body


# ---------- client input errors ----------
class ValidationError(EngineError):
    kind = "VALIDATION_ERROR"
    status_code = 400
    message = "Invalid request"


class TokenNotFound(EngineError):
    kind = "TOKEN_NOT_FOUND"
    status_code = 404
    message = "Invitation not found"


class TokenExpired(EngineError):
    kind = "TOKEN_EXPIRED"
    status_code = 410
    message = "This invitation has expired"


class TokenAlreadyUsed(EngineError):
    kind = "TOKEN_ALREADY_USED"
    status_code = 409
    message = "This invitation has already been used"


class Forbidden(EngineError):
    kind = "FORBIDDEN"
    status_code = 403
    message = "This invitation was sent to a different worker"


class BookingNotFound(EngineError):
    kind = "BOOKING_NOT_FOUND"
    status_code = 404
    message = "Booking not found"


class WorkerNotFound(EngineError):
    kind = "WORKER_NOT_FOUND"
    status_code = 404
    message = "Worker not found or inactive"


class AssignmentNotFound(EngineError):
    kind = "ASSIGNMENT_NOT_FOUND"
    status_code = 404
    message = "Assignment not found"


class InvalidBookingState(EngineError):
    kind = "INVALID_BOOKING_STATE"
    status_code = 409
    message = "Booking is not accepting invitations"


class AssignmentNotPending(EngineError):
    kind = "ASSIGNMENT_NOT_PENDING"
    status_code = 409
    message = "This invitation has already been resolved"


# ---------- contention ----------
class CapacityExceeded(EngineError):
    kind = "CAPACITY_EXCEEDED"
    status_code = 409
    message = "All spots for this booking have been filled"


class Busy(EngineError):
    kind = "BUSY"
    status_code = 503
    message = "Booking is busy, try again shortly"


# ---------- internal ----------
class InvariantViolation(EngineError):
    kind = "INVARIANT_VIOLATION"
    status_code = 500
    message = "Internal consistency error"
