"""Error taxonomy shared by the quiz engine and the API layer.

Each error carries a short machine readable ``code`` which the exception
handler in :mod:`grasp.main` returns alongside the message, mirroring the
``{"code": ..., "message": ...}`` bodies used by the auth routes.
"""


class QuizEngineError(Exception):
    """Base class for expected, user-visible engine failures."""

    code = "quiz_engine_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(QuizEngineError):
    """The quiz or one of its questions does not exist."""

    code = "not_found"
    status_code = 404


class UnavailableError(QuizEngineError):
    """The quiz is unpublished or has no approved questions."""

    code = "unavailable"
    status_code = 409


class InvalidSubmissionError(QuizEngineError):
    """Malformed answer payload, rejected before any state changes."""

    code = "validation"
    status_code = 422


class TransientError(QuizEngineError):
    """I/O failure while fetching or persisting; safe to retry."""

    code = "transient"
    status_code = 503


class InvalidTransitionError(QuizEngineError):
    """The requested action is not allowed in the session's current state."""

    code = "invalid_transition"
    status_code = 409
