"""Course grade breakdowns, per-student overviews and teacher grade entry."""

import logging
from typing import Iterable, List, Optional

from sqlmodel import Session, select

from school_lms.exceptions import CourseNotFound, GradeNotFound, NotEnrolled, NotFound, ValidationFailed
from school_lms.models import Course, Grade, User
from school_lms.services.course_service import is_enrolled
from school_lms.utils import round_half_up, sanitize_comment, utcnow, validate_score

logger = logging.getLogger(__name__)

# Scoring channels and their weight (percent) in the final grade
COMPOSITION_WEIGHTS = (
    ("class", 30),
    ("rain", 20),
    ("exam", 50),
)


def compute_course_grade(grade: Optional[Grade]) -> dict:
    """Weighted breakdown of a course grade.

    ``final_score`` is the stored total, which is authoritative; it is not
    recomputed from the weights. A missing grade is a valid all-zero state.
    """
    if grade is None:
        scores = {"class": 0, "rain": 0, "exam": 0}
        return {
            "course_id": None,
            "semester": None,
            "composition": [
                {"name": name, "percentage": pct, "score": scores[name]}
                for name, pct in COMPOSITION_WEIGHTS
            ],
            "final_score": 0,
            "comment": None,
        }

    scores = {
        "class": grade.class_score or 0,
        "rain": grade.rain_score or 0,
        "exam": grade.exam_score or 0,
    }
    return {
        "course_id": grade.course_id,
        "semester": grade.semester,
        "composition": [
            {"name": name, "percentage": pct, "score": scores[name]}
            for name, pct in COMPOSITION_WEIGHTS
        ],
        "final_score": grade.total_score or 0,
        "comment": grade.comment,
    }


def compute_overview(grades: Iterable[Grade]) -> dict:
    """Average (one decimal, half-up), highest and lowest total score."""
    grades = list(grades)
    scores = [g.total_score for g in grades if g.total_score is not None]
    if not scores:
        return {
            "average": 0,
            "highest": 0,
            "lowest": 0,
            "total_courses": len(grades),
        }

    return {
        "average": round_half_up(sum(scores) / len(scores), 1),
        "highest": max(scores),
        "lowest": min(scores),
        "total_courses": len(grades),
    }


def _student_grades(session: Session, student_id: int, semester: Optional[str] = None) -> List[Grade]:
    stmt = select(Grade).where(Grade.student_id == student_id)
    if semester:
        stmt = stmt.where(Grade.semester == semester)
    return list(session.exec(stmt.order_by(Grade.semester.desc())).all())


def get_grade_overview(session: Session, student_id: int) -> dict:
    return compute_overview(_student_grades(session, student_id))


def list_grade_details(session: Session, student_id: int, semester: Optional[str] = None) -> List[dict]:
    """Breakdown for each of the student's grades, newest semester first."""
    grades = _student_grades(session, student_id, semester)
    course_ids = {g.course_id for g in grades}
    courses = {}
    if course_ids:
        courses = {c.id: c for c in session.exec(select(Course).where(Course.id.in_(course_ids))).all()}

    details = []
    for grade in grades:
        breakdown = compute_course_grade(grade)
        course = courses.get(grade.course_id)
        breakdown["course_name"] = course.title if course else None
        details.append(breakdown)
    return details


def get_course_grade(session: Session, student_id: int, course_id: int) -> dict:
    """Breakdown of the student's latest-semester grade for one course.

    Raises:
        NotEnrolled: if the student is not in the course
    """
    if not is_enrolled(session, student_id, course_id):
        raise NotEnrolled("You are not enrolled in this course and cannot view its grade")

    grade = session.exec(
        select(Grade)
        .where((Grade.student_id == student_id) & (Grade.course_id == course_id))
        .order_by(Grade.semester.desc())
    ).first()

    course = session.get(Course, course_id)
    teacher = session.get(User, course.teacher_id) if course and course.teacher_id else None

    breakdown = compute_course_grade(grade)
    breakdown["course_id"] = course_id
    breakdown["course_name"] = course.title if course else None
    breakdown["teacher_name"] = teacher.name if teacher else None
    return breakdown


# --- teacher grade entry ---


def upsert_grade(
    session: Session,
    student_id: int,
    course_id: int,
    semester: str,
    class_score: Optional[float] = None,
    rain_score: Optional[float] = None,
    exam_score: Optional[float] = None,
    total_score: Optional[float] = None,
    comment: Optional[str] = None,
) -> tuple[Grade, bool]:
    """Create or update the grade for (student, course, semester).

    Returns:
        ``(grade, created)``

    Raises:
        CourseNotFound, NotFound, ValidationFailed
    """
    if not session.get(Course, course_id):
        raise CourseNotFound()
    student = session.get(User, student_id)
    if not student or student.role != "student":
        raise NotFound(f"Student with id={student_id} does not exist")

    semester = (semester or "").strip()
    if not semester:
        raise ValidationFailed("Semester is required")

    scores = {
        "class_score": class_score,
        "rain_score": rain_score,
        "exam_score": exam_score,
        "total_score": total_score,
    }
    for field, value in scores.items():
        if value is None:
            continue
        try:
            validate_score(value)
        except ValueError as e:
            raise ValidationFailed(f"{field}: {e}")

    grade = session.exec(
        select(Grade).where(
            (Grade.student_id == student_id)
            & (Grade.course_id == course_id)
            & (Grade.semester == semester)
        )
    ).first()
    created = grade is None
    if created:
        grade = Grade(student_id=student_id, course_id=course_id, semester=semester)

    for field, value in scores.items():
        setattr(grade, field, value)
    grade.comment = sanitize_comment(comment) if comment else None
    grade.updated_at = utcnow()

    session.add(grade)
    session.commit()
    session.refresh(grade)
    logger.info(
        "%s grade %s (student=%s, course=%s, semester=%s)",
        "Created" if created else "Updated",
        grade.id,
        student_id,
        course_id,
        semester,
    )
    return grade, created


def list_grades(
    session: Session, course_id: Optional[int] = None, student_id: Optional[int] = None
) -> List[Grade]:
    stmt = select(Grade)
    if course_id is not None:
        stmt = stmt.where(Grade.course_id == course_id)
    if student_id is not None:
        stmt = stmt.where(Grade.student_id == student_id)
    return list(session.exec(stmt.order_by(Grade.created_at.desc())).all())


def delete_grade(session: Session, grade_id: int) -> None:
    grade = session.get(Grade, grade_id)
    if not grade:
        raise GradeNotFound()
    session.delete(grade)
    session.commit()
