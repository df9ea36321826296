from typing import Optional, Sequence


class EngineError(ValueError):
    """Base for business-rule failures raised by the services.

    Subclasses ValueError so callers that already translate ValueError into a
    400 keep working; the app-level handler uses status_code/code instead.
    """

    status_code = 400
    code = "ENGINE_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, reasons: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.reasons = list(reasons or [])

    def to_dict(self) -> dict:
        payload = {"detail": self.message, "code": self.code}
        if self.reasons:
            payload["reasons"] = self.reasons
        return payload


class ValidationError(EngineError):
    code = "VALIDATION_ERROR"


class PreconditionError(EngineError):
    code = "PRECONDITION_FAILED"


class NotFoundError(EngineError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(EngineError):
    status_code = 409
    code = "CONFLICT"


class TransitionError(ConflictError):
    code = "INVALID_TRANSITION"


class AlreadyEndedError(ConflictError):
    code = "DOWNTIME_ALREADY_ENDED"


class IntegrityError(EngineError):
    # Never swallowed: the snapshot service alerts before raising this.
    status_code = 500
    code = "SNAPSHOT_INTEGRITY"
