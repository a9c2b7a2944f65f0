"""Courses and the enrollment lookup used by the exam and grade services."""

import logging
from typing import List, Optional

from sqlmodel import Session, select

from school_lms.exceptions import CourseNotFound, Forbidden, NotFound, ValidationFailed
from school_lms.models import Course, Enrollment, User
from school_lms.utils import paginate

logger = logging.getLogger(__name__)


def is_enrolled(session: Session, student_id: int, course_id: int) -> bool:
    stmt = select(Enrollment.id).where(
        (Enrollment.course_id == course_id) & (Enrollment.student_id == student_id)
    )
    return session.exec(stmt).first() is not None


def enrolled_course_ids(session: Session, student_id: int) -> List[int]:
    stmt = select(Enrollment.course_id).where(Enrollment.student_id == student_id)
    return list(session.exec(stmt).all())


def create_course(
    session: Session,
    code: str,
    title: str,
    teacher_id: Optional[int] = None,
    description: Optional[str] = None,
) -> Course:
    code = (code or "").strip().upper()
    title = (title or "").strip()
    if not code or not title:
        raise ValidationFailed("Course code and title are required")
    if session.exec(select(Course).where(Course.code == code)).first():
        raise ValidationFailed(f"Course code '{code}' already exists")

    course = Course(code=code, title=title, teacher_id=teacher_id, description=description)
    session.add(course)
    session.commit()
    session.refresh(course)
    logger.info("Created course %s (%s)", course.id, code)
    return course


def enroll_student(session: Session, student_id: int, course_id: int) -> Enrollment:
    """Enroll a student in a course; enrolling twice returns the existing row."""
    if not session.get(Course, course_id):
        raise CourseNotFound()
    student = session.get(User, student_id)
    if not student or student.role != "student":
        raise NotFound(f"Student with id={student_id} does not exist")

    existing = session.exec(
        select(Enrollment).where(
            (Enrollment.course_id == course_id) & (Enrollment.student_id == student_id)
        )
    ).first()
    if existing:
        return existing

    enrollment = Enrollment(course_id=course_id, student_id=student_id)
    session.add(enrollment)
    session.commit()
    session.refresh(enrollment)
    return enrollment


def list_course_students(session: Session, course_id: int) -> List[User]:
    if not session.get(Course, course_id):
        raise CourseNotFound()
    stmt = (
        select(User)
        .join(Enrollment, Enrollment.student_id == User.id)
        .where(Enrollment.course_id == course_id)
        .order_by(User.name)
    )
    return list(session.exec(stmt).all())


def unenroll_student(session: Session, student_id: int, course_id: int) -> None:
    """Remove a student from a course.

    Raises:
        CourseNotFound, NotFound: unknown student, ValidationFailed: not enrolled
    """
    if not session.get(Course, course_id):
        raise CourseNotFound()
    student = session.get(User, student_id)
    if not student or student.role != "student":
        raise NotFound(f"Student with id={student_id} does not exist")

    enrollment = session.exec(
        select(Enrollment).where(
            (Enrollment.course_id == course_id) & (Enrollment.student_id == student_id)
        )
    ).first()
    if not enrollment:
        raise ValidationFailed("Student is not enrolled in this course")

    session.delete(enrollment)
    session.commit()
    logger.info("Removed student %s from course %s", student_id, course_id)


def course_to_dict(course: Course, teacher: Optional[User] = None) -> dict:
    return {
        "id": course.id,
        "code": course.code,
        "title": course.title,
        "description": course.description,
        "teacher_id": course.teacher_id,
        "teacher_name": teacher.name if teacher else None,
    }


def list_courses(session: Session, user: User, page: int = 1, limit: int = 10) -> dict:
    """Courses visible to ``user``: a teacher's own, a student's enrolled, or all for an admin."""
    stmt = select(Course, User).join(User, Course.teacher_id == User.id, isouter=True)
    if user.role == "teacher":
        stmt = stmt.where(Course.teacher_id == user.id)
    elif user.role == "student":
        stmt = stmt.where(Course.id.in_(enrolled_course_ids(session, user.id)))

    rows = session.exec(stmt.order_by(Course.code)).all()
    return paginate([course_to_dict(course, teacher) for course, teacher in rows], page, limit)


def get_course(session: Session, course_id: int, user: User) -> dict:
    """Course detail for its teacher, an enrolled student or an admin.

    Raises:
        CourseNotFound, Forbidden
    """
    course = session.get(Course, course_id)
    if not course:
        raise CourseNotFound()

    if user.role == "student":
        allowed = is_enrolled(session, user.id, course_id)
    elif user.role == "teacher":
        allowed = course.teacher_id == user.id
    else:
        allowed = True
    if not allowed:
        raise Forbidden("You do not have access to this course")

    teacher = session.get(User, course.teacher_id) if course.teacher_id else None
    data = course_to_dict(course, teacher)
    data["student_count"] = len(
        session.exec(select(Enrollment.id).where(Enrollment.course_id == course_id)).all()
    )
    return data
