"""Error kinds raised by the service layer.

Services raise these instead of ``HTTPException`` so they stay usable outside a
request; ``main.py`` maps each one to its ``status_code``.
"""

from typing import Optional


class ServiceError(ValueError):
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


# --- entity missing ---


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class ExamNotFound(NotFound):
    default_message = "Exam not found"


class SubmissionNotFound(NotFound):
    default_message = "Exam submission not found"


class AnswerNotFound(NotFound):
    default_message = "Answer not found"


class CourseNotFound(NotFound):
    default_message = "Course not found"


class GradeNotFound(NotFound):
    default_message = "Grade not found"


# --- temporal preconditions ---


class ExamNotStarted(ServiceError):
    default_message = "Exam has not started yet"


class ExamEnded(ServiceError):
    default_message = "Exam has ended"


class ExamClosed(ServiceError):
    default_message = "Exam is closed, answers can no longer be changed"


# --- authorization ---


class NotEnrolled(ServiceError):
    status_code = 403
    default_message = "You are not enrolled in this course"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Forbidden"


# --- state preconditions ---


class AlreadySubmitted(ServiceError):
    default_message = "Exam already submitted"


class ExamInUse(ServiceError):
    default_message = "Students have already taken this exam, it cannot be deleted"


class ValidationFailed(ServiceError):
    default_message = "Invalid input"


class ConflictDuplicate(ServiceError):
    status_code = 409
    default_message = "Submission already exists"
