"""Exam lifecycle: status derivation, start/resume, answering and submission.

A submission is a student's single attempt at an exam. It moves
``ongoing -> submitted -> graded`` and never goes back. The time limit is
enforced lazily: whenever a read touches an ongoing submission whose deadline
has passed, it is submitted on the spot. There is no background sweep.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from school_lms.exceptions import (
    AlreadySubmitted,
    AnswerNotFound,
    ConflictDuplicate,
    CourseNotFound,
    ExamClosed,
    ExamEnded,
    ExamInUse,
    ExamNotFound,
    ExamNotStarted,
    Forbidden,
    NotEnrolled,
    SubmissionNotFound,
    ValidationFailed,
)
from school_lms.models import (
    CHOICE_QUESTION_TYPES,
    QUESTION_TYPES,
    SUBMISSION_ONGOING,
    SUBMISSION_SUBMITTED,
    Course,
    Exam,
    ExamAnswer,
    ExamQuestion,
    ExamSubmission,
    User,
)
from school_lms.services.course_service import enrolled_course_ids, is_enrolled
from school_lms.utils import as_utc, paginate, sanitize_question_text, utcnow

logger = logging.getLogger(__name__)

# Derived, student-facing exam status
STATUS_NOT_STARTED = "not_started"
STATUS_ONGOING = "ongoing"
STATUS_ENDED = "ended"
EXAM_STATUSES = (STATUS_NOT_STARTED, STATUS_ONGOING, STATUS_ENDED)

# Window filters for the teacher-side exam list
WINDOW_FILTERS = ("upcoming", "ongoing", "ended")


# ---------------------------------------------------------------------------
# Pure timing rules
# ---------------------------------------------------------------------------


def derive_exam_status(exam: Exam, submission: Optional[ExamSubmission], now: datetime) -> str:
    """Status shown to a student for ``exam`` at ``now``.

    A submission takes precedence over the exam window: an ongoing submission
    is ``ongoing``, a submitted or graded one is ``ended``.
    """
    if submission is not None:
        if submission.status == SUBMISSION_ONGOING:
            return STATUS_ONGOING
        return STATUS_ENDED
    now = as_utc(now)
    if now < as_utc(exam.start_time):
        return STATUS_NOT_STARTED
    if now <= as_utc(exam.end_time):
        return STATUS_ONGOING
    return STATUS_ENDED


def submission_deadline(exam: Exam, submission: ExamSubmission) -> datetime:
    """The submission's own start plus the exam duration, capped by the exam end."""
    own_deadline = as_utc(submission.start_time) + timedelta(minutes=exam.duration)
    return min(own_deadline, as_utc(exam.end_time))


def remaining_seconds(exam: Exam, submission: ExamSubmission, now: datetime) -> int:
    remaining = (submission_deadline(exam, submission) - as_utc(now)).total_seconds()
    remaining = min(remaining, exam.duration * 60)
    return max(0, math.ceil(remaining))


def expire_if_overdue(
    session: Session, exam: Exam, submission: ExamSubmission, now: datetime
) -> bool:
    """Submit an ongoing submission whose deadline has passed. Returns True if it did."""
    if submission.status != SUBMISSION_ONGOING:
        return False
    if remaining_seconds(exam, submission, now) > 0:
        return False

    submission.status = SUBMISSION_SUBMITTED
    submission.submit_time = now
    session.add(submission)
    session.commit()
    session.refresh(submission)
    logger.info(
        "Auto-submitted submission %s (exam=%s, student=%s) after time ran out",
        submission.id,
        exam.id,
        submission.student_id,
    )
    return True


# ---------------------------------------------------------------------------
# Student operations
# ---------------------------------------------------------------------------


def get_submission(session: Session, exam_id: int, student_id: int) -> Optional[ExamSubmission]:
    stmt = select(ExamSubmission).where(
        (ExamSubmission.exam_id == exam_id) & (ExamSubmission.student_id == student_id)
    )
    return session.exec(stmt).first()


def list_questions(session: Session, exam_id: int) -> List[ExamQuestion]:
    stmt = select(ExamQuestion).where(ExamQuestion.exam_id == exam_id).order_by(ExamQuestion.order)
    return list(session.exec(stmt).all())


def _is_unique_violation(exc: IntegrityError) -> bool:
    return "unique" in str(getattr(exc, "orig", exc)).lower()


def _create_submission(
    session: Session, exam_id: int, student_id: int, now: datetime
) -> ExamSubmission:
    """Insert the submission and one blank answer per question in one transaction.

    A concurrent start for the same student loses on the (exam_id, student_id)
    unique constraint; the loser rolls back and reuses the winner's row.
    Any other integrity error propagates unchanged.
    """
    questions = list_questions(session, exam_id)
    submission = ExamSubmission(
        exam_id=exam_id,
        student_id=student_id,
        start_time=now,
        status=SUBMISSION_ONGOING,
    )
    try:
        session.add(submission)
        session.flush()
        session.add_all(
            [ExamAnswer(submission_id=submission.id, question_id=q.id) for q in questions]
        )
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        existing = get_submission(session, exam_id, student_id)
        if existing is not None:
            logger.warning(
                "Duplicate submission insert for exam=%s student=%s, reusing existing row",
                exam_id,
                student_id,
            )
            return existing
        if _is_unique_violation(exc):
            raise ConflictDuplicate() from exc
        raise

    session.refresh(submission)
    logger.info(
        "Created submission %s for exam=%s student=%s with %d answers",
        submission.id,
        exam_id,
        student_id,
        len(questions),
    )
    return submission


def questions_with_answers(session: Session, submission_id: int) -> List[dict]:
    """The submission's questions in display order, each joined with the stored answer."""
    stmt = (
        select(ExamAnswer, ExamQuestion)
        .join(ExamQuestion, ExamAnswer.question_id == ExamQuestion.id)
        .where(ExamAnswer.submission_id == submission_id)
        .order_by(ExamQuestion.order)
    )
    return [
        {
            "id": question.id,
            "type": question.type,
            "content": question.content,
            "options": question.options,
            "score": question.score,
            "order": question.order,
            "answer_id": answer.id,
            "answer": answer.answer,
        }
        for answer, question in session.exec(stmt).all()
    ]


def start_or_resume_exam(
    session: Session, exam_id: int, student_id: int, now: Optional[datetime] = None
) -> dict:
    """Start the exam for a student, or resume the existing submission.

    Returns:
        Dict with ``exam``, ``submission``, ``deadline``, ``remaining_seconds``
        and ``questions`` (ordered, joined with the student's answers)

    Raises:
        ExamNotFound, ExamNotStarted, ExamEnded, NotEnrolled
    """
    now = as_utc(now) if now else utcnow()

    exam = session.get(Exam, exam_id)
    if not exam:
        raise ExamNotFound()
    if now < as_utc(exam.start_time):
        raise ExamNotStarted()
    if now > as_utc(exam.end_time):
        # The read still closes a submission left ongoing past its deadline
        submission = get_submission(session, exam_id, student_id)
        if submission is not None:
            expire_if_overdue(session, exam, submission, now)
        raise ExamEnded()
    if not is_enrolled(session, student_id, exam.course_id):
        raise NotEnrolled()

    submission = get_submission(session, exam_id, student_id)
    if submission is None:
        submission = _create_submission(session, exam_id, student_id, now)

    remaining = remaining_seconds(exam, submission, now)
    expire_if_overdue(session, exam, submission, now)

    return {
        "exam": exam,
        "submission": submission,
        "deadline": submission_deadline(exam, submission),
        "remaining_seconds": remaining,
        "questions": questions_with_answers(session, submission.id),
    }


def save_answer(
    session: Session,
    answer_id: int,
    student_id: int,
    new_answer: Optional[str],
    now: Optional[datetime] = None,
) -> ExamAnswer:
    """Overwrite the student's answer text; score and correctness are left alone.

    Raises:
        AnswerNotFound, Forbidden, ExamClosed
    """
    now = as_utc(now) if now else utcnow()

    answer = session.get(ExamAnswer, answer_id)
    if not answer:
        raise AnswerNotFound()

    submission = session.get(ExamSubmission, answer.submission_id)
    if submission.student_id != student_id:
        raise Forbidden("You cannot modify this answer")

    exam = session.get(Exam, submission.exam_id)
    expire_if_overdue(session, exam, submission, now)
    if submission.status != SUBMISSION_ONGOING:
        raise ExamClosed()

    answer.answer = new_answer
    session.add(answer)
    session.commit()
    session.refresh(answer)
    return answer


def submit_exam(
    session: Session, exam_id: int, student_id: int, now: Optional[datetime] = None
) -> ExamSubmission:
    """Submit the student's ongoing submission.

    Raises:
        SubmissionNotFound, AlreadySubmitted
    """
    now = as_utc(now) if now else utcnow()

    submission = get_submission(session, exam_id, student_id)
    if not submission:
        raise SubmissionNotFound()
    if submission.status != SUBMISSION_ONGOING:
        raise AlreadySubmitted()

    submission.status = SUBMISSION_SUBMITTED
    submission.submit_time = now
    session.add(submission)
    session.commit()
    session.refresh(submission)
    logger.info("Submission %s submitted (exam=%s, student=%s)", submission.id, exam_id, student_id)
    return submission


def list_student_exams(
    session: Session,
    student_id: int,
    course_id: Optional[int] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    now: Optional[datetime] = None,
) -> dict:
    """Exams of the student's courses, newest first, with derived status.

    ``status`` filters on the derived status; paging is applied after filtering.
    """
    now = as_utc(now) if now else utcnow()
    if status is not None and status not in EXAM_STATUSES:
        raise ValidationFailed(f"Unknown exam status '{status}'")

    course_ids = enrolled_course_ids(session, student_id)
    if course_id is not None:
        course_ids = [c for c in course_ids if c == course_id]
    if not course_ids:
        return paginate([], page, limit)

    exams = session.exec(
        select(Exam).where(Exam.course_id.in_(course_ids)).order_by(Exam.start_time.desc())
    ).all()
    exam_ids = [e.id for e in exams]
    submissions = {
        s.exam_id: s
        for s in session.exec(
            select(ExamSubmission).where(
                (ExamSubmission.student_id == student_id) & (ExamSubmission.exam_id.in_(exam_ids))
            )
        ).all()
    }
    courses = {c.id: c for c in session.exec(select(Course).where(Course.id.in_(course_ids))).all()}

    items = []
    for exam in exams:
        submission = submissions.get(exam.id)
        if submission is not None:
            expire_if_overdue(session, exam, submission, now)

        exam_status = derive_exam_status(exam, submission, now)
        if status and status != exam_status:
            continue

        course = courses.get(exam.course_id)
        items.append(
            {
                "id": exam.id,
                "title": exam.title,
                "description": exam.description,
                "exam_time": exam.start_time,
                "end_time": exam.end_time,
                "duration": exam.duration,
                "total_score": exam.total_score,
                "status": exam_status,
                "submission_id": submission.id if submission else None,
                "start_time": submission.start_time if submission else None,
                "submit_time": submission.submit_time if submission else None,
                "score": submission.total_score if submission else None,
                "course_id": exam.course_id,
                "course_name": course.title if course else None,
            }
        )

    return paginate(items, page, limit)


# ---------------------------------------------------------------------------
# Teacher operations
# ---------------------------------------------------------------------------


def _build_question(exam_id: int, order: int, data: dict) -> ExamQuestion:
    qtype = data.get("type")
    if qtype not in QUESTION_TYPES:
        raise ValidationFailed(f"Question {order}: type must be one of {', '.join(QUESTION_TYPES)}")

    content = sanitize_question_text(data.get("content") or "")
    if not content:
        raise ValidationFailed(f"Question {order}: content cannot be empty")

    score = data.get("score")
    if score is None or score <= 0:
        raise ValidationFailed(f"Question {order}: score must be positive")

    options = data.get("options")
    if qtype in CHOICE_QUESTION_TYPES and not options:
        raise ValidationFailed(f"Question {order}: {qtype} questions need options")
    if qtype == "essay":
        options = options or None

    return ExamQuestion(
        exam_id=exam_id,
        type=qtype,
        content=content,
        options=list(options) if options else None,
        correct_answer=data.get("correct_answer"),
        score=score,
        order=order,
    )


def _check_exam_fields(title: str, duration: int, total_score: int) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationFailed("Title is required")
    if duration < 1:
        raise ValidationFailed("Duration must be at least 1 minute")
    if total_score <= 0:
        raise ValidationFailed("Total score must be positive")
    return title


def create_exam(
    session: Session,
    course_id: int,
    title: str,
    start_time: datetime,
    duration: int,
    total_score: int = 100,
    description: Optional[str] = None,
    questions: Optional[List[dict]] = None,
) -> Exam:
    """Create an exam and its questions; ``end_time`` is derived from the duration.

    Questions are numbered 1..N in the order given.

    Raises:
        CourseNotFound, ValidationFailed
    """
    if not session.get(Course, course_id):
        raise CourseNotFound()

    title = _check_exam_fields(title, duration, total_score)
    start_time = as_utc(start_time)
    exam = Exam(
        course_id=course_id,
        title=title,
        description=description,
        start_time=start_time,
        end_time=start_time + timedelta(minutes=duration),
        duration=duration,
        total_score=total_score,
    )
    session.add(exam)
    session.flush()

    # Validate every question before anything is committed
    try:
        built = [_build_question(exam.id, i, q) for i, q in enumerate(questions or [], start=1)]
    except ValidationFailed:
        session.rollback()
        raise
    session.add_all(built)
    session.commit()
    session.refresh(exam)
    logger.info("Created exam %s for course %s with %d questions", exam.id, course_id, len(built))
    return exam


def update_exam(
    session: Session,
    exam_id: int,
    title: str,
    start_time: datetime,
    duration: int,
    total_score: int = 100,
    description: Optional[str] = None,
    questions: Optional[List[dict]] = None,
) -> Exam:
    """Update an exam that no student has started yet.

    ``end_time`` is recomputed from the new start and duration. A non-empty
    ``questions`` list replaces every existing question, renumbered 1..N;
    an empty or missing list keeps the current ones.

    Raises:
        ExamNotFound, ExamInUse, ValidationFailed
    """
    exam = session.get(Exam, exam_id)
    if not exam:
        raise ExamNotFound()
    if get_any_submission(session, exam_id) is not None:
        raise ExamInUse("Students have already taken this exam; it can no longer be edited")

    title = _check_exam_fields(title, duration, total_score)
    start_time = as_utc(start_time)
    try:
        built = [_build_question(exam.id, i, q) for i, q in enumerate(questions or [], start=1)]
    except ValidationFailed:
        session.rollback()
        raise

    exam.title = title
    exam.description = description
    exam.start_time = start_time
    exam.end_time = start_time + timedelta(minutes=duration)
    exam.duration = duration
    exam.total_score = total_score
    exam.updated_at = utcnow()
    session.add(exam)

    if built:
        for question in list_questions(session, exam_id):
            session.delete(question)
        # Old rows must be gone before new ones reuse their order numbers
        session.flush()
        session.add_all(built)

    session.commit()
    session.refresh(exam)
    logger.info("Updated exam %s (%d new questions)", exam.id, len(built))
    return exam


def get_exam_detail(session: Session, exam_id: int) -> dict:
    exam = session.get(Exam, exam_id)
    if not exam:
        raise ExamNotFound()
    return {"exam": exam, "questions": list_questions(session, exam_id)}


def list_exams(
    session: Session,
    course_id: Optional[int] = None,
    status: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Exam]:
    """All exams, newest first; ``status`` filters on the exam window."""
    now = as_utc(now) if now else utcnow()
    stmt = select(Exam)
    if course_id is not None:
        stmt = stmt.where(Exam.course_id == course_id)
    if status == "upcoming":
        stmt = stmt.where(Exam.start_time > now)
    elif status == "ongoing":
        stmt = stmt.where((Exam.start_time <= now) & (Exam.end_time >= now))
    elif status == "ended":
        stmt = stmt.where(Exam.end_time < now)
    elif status is not None:
        raise ValidationFailed(f"status must be one of {', '.join(WINDOW_FILTERS)}")
    return list(session.exec(stmt.order_by(Exam.start_time.desc())).all())


def delete_exam(session: Session, exam_id: int) -> None:
    """Delete an exam and its questions.

    Raises:
        ExamNotFound, ExamInUse: if any student has started it
    """
    exam = session.get(Exam, exam_id)
    if not exam:
        raise ExamNotFound()

    if get_any_submission(session, exam_id) is not None:
        raise ExamInUse()

    for question in list_questions(session, exam_id):
        session.delete(question)
    session.delete(exam)
    session.commit()
    logger.info("Deleted exam %s", exam_id)


def get_any_submission(session: Session, exam_id: int) -> Optional[ExamSubmission]:
    return session.exec(select(ExamSubmission).where(ExamSubmission.exam_id == exam_id)).first()


def list_exam_results(session: Session, exam_id: int) -> List[dict]:
    """Submissions for an exam, highest score first and ungraded ones last."""
    if not session.get(Exam, exam_id):
        raise ExamNotFound()

    rows = session.exec(
        select(ExamSubmission, User)
        .join(User, ExamSubmission.student_id == User.id)
        .where(ExamSubmission.exam_id == exam_id)
    ).all()
    rows = sorted(rows, key=lambda r: (r[0].total_score is None, -(r[0].total_score or 0)))
    return [
        {
            "submission_id": submission.id,
            "student_id": student.id,
            "student_name": student.name,
            "status": submission.status,
            "start_time": submission.start_time,
            "submit_time": submission.submit_time,
            "total_score": submission.total_score,
        }
        for submission, student in rows
    ]
