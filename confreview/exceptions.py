"""
Exception classes shared by the assignment engine, the review lifecycle and the
HTTP service.

Every error carries a stable `name` and an HTTP `status_code` so that callers can
tell "you can't do this" apart from "bad input".
"""


class ReviewEngineError(Exception):
    """Base class for all errors raised by confreview."""

    name = "ReviewEngineError"
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"name": self.name, "message": self.message}


class NotFoundError(ReviewEngineError):
    name = "NotFoundError"
    status_code = 404


class ConflictError(ReviewEngineError):
    """The request collides with the current state of a record."""

    name = "ConflictError"
    status_code = 409


class AlreadyExistsError(ConflictError):
    name = "AlreadyExistsError"


class ForbiddenError(ReviewEngineError):
    name = "ForbiddenError"
    status_code = 403


class DeadlinePassedError(ForbiddenError):
    """Raised when a non-admin submits a review after its due date."""

    name = "DeadlinePassedError"


class ValidationError(ReviewEngineError):
    name = "ValidationError"
    status_code = 400


class AuthenticationError(ReviewEngineError):
    name = "AuthenticationError"
    status_code = 401


class LastChairError(ForbiddenError):
    """A conference must always keep at least one CHAIR membership."""

    name = "LastChairError"
