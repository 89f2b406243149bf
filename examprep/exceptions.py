"""Error taxonomy for the submission and scoring path.

Every error carries a human readable `message` and the HTTP status the
API answers with. The same classes are raised by the client-side session
code so callers handle one hierarchy.
"""

from typing import Iterable


class BaseAppError(Exception):
    """Base class for application errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(BaseAppError):
    """Malformed or missing submission fields (422)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=422)


class QuestionResolutionError(BaseAppError):
    """Referenced question ids were not found in the question store (404)."""

    def __init__(self, missing_ids: Iterable[int]):
        self.missing_ids = sorted(missing_ids)
        ids = ", ".join(str(i) for i in self.missing_ids)
        super().__init__(f"questions not found: {ids}", status_code=404)


class EmptySubmissionError(BaseAppError):
    """The submission resolved to zero questions (400)."""

    def __init__(self, message: str = "submission contains no questions"):
        super().__init__(message, status_code=400)


class SubjectNotFoundError(BaseAppError):
    def __init__(self, subject_id: int):
        super().__init__(f"subject not found: {subject_id}", status_code=404)


class ResultNotFoundError(BaseAppError):
    def __init__(self, result_id: int):
        super().__init__(f"result not found: {result_id}", status_code=404)


class NoQuestionsAvailable(BaseAppError):
    """A question query matched nothing; the caller must go back to setup."""

    def __init__(self, message: str = "no questions found for the selected criteria"):
        super().__init__(message, status_code=404)


class TransientIOError(BaseAppError):
    """Question or result store (or the network) is unavailable (503).

    Never retried automatically; the human decides whether to try again.
    """

    def __init__(self, message: str = "service temporarily unavailable"):
        super().__init__(message, status_code=503)


class ApiError(BaseAppError):
    """A non-retryable error response received by the HTTP client."""


class SessionStateError(BaseAppError):
    """An operation was attempted in a session state that does not allow it."""

    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class InvalidNavigation(SessionStateError, IndexError):
    """Navigation or answer index outside `0 <= index < total`."""
