"""Error taxonomy for the exam attempt lifecycle.

Each error carries the HTTP status the API answers with, so routers can
let service exceptions propagate and the application handler renders them.
"""


class CBTError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(CBTError):
    """An attempt, subject, exam or question id does not resolve."""

    status_code = 404


class AlreadyAttempted(CBTError):
    """The user already has a submitted attempt for this subject."""

    status_code = 409


class InsufficientQuestions(CBTError):
    """The subject's question pool is smaller than the per-attempt quota."""

    status_code = 422

    def __init__(self, subject_id: int, available: int, required: int):
        super().__init__(
            f"Subject {subject_id} has {available} questions; {required} are required"
        )
        self.subject_id = subject_id
        self.available = available
        self.required = required


class InvalidOption(CBTError):
    """An answer value outside A-D."""

    status_code = 422


class AttemptAlreadySubmitted(CBTError):
    """A write was made against a finalized attempt."""

    status_code = 409


class PersistenceTransientFailure(CBTError):
    """A background write (timer flush, answer save) failed.

    Never surfaced to the student; delivered to diagnostics hooks instead.
    """

    status_code = 503

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


class InUse(CBTError):
    """A bank record is still referenced by attempts and cannot be removed."""

    status_code = 409
