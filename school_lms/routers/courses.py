"""Course routes: listing and detail for any role, admin actions for teachers."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel
from sqlmodel import Session

from school_lms.config import settings
from school_lms.database import get_session
from school_lms.deps import require_login, require_teacher
from school_lms.models import User
from school_lms.services.course_service import (
    course_to_dict,
    create_course,
    enroll_student,
    get_course,
    list_course_students,
    list_courses,
    unenroll_student,
)

router = APIRouter()


class CourseIn(BaseModel):
    code: str
    title: str
    description: Optional[str] = None


class EnrollIn(BaseModel):
    student_id: int


@router.get("")
def api_list_courses(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    return list_courses(session, current_user, page=page, limit=limit or settings.items_per_page)


@router.post("", status_code=status.HTTP_201_CREATED)
def api_create_course(
    payload: CourseIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    course = create_course(
        session,
        code=payload.code,
        title=payload.title,
        teacher_id=current_user.id,
        description=payload.description,
    )
    return course_to_dict(course, current_user)


@router.get("/{course_id}")
def api_get_course(
    course_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    return get_course(session, course_id, current_user)


@router.post("/{course_id}/students", status_code=status.HTTP_201_CREATED)
def api_enroll_student(
    course_id: int,
    payload: EnrollIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    enrollment = enroll_student(session, payload.student_id, course_id)
    return {"course_id": enrollment.course_id, "student_id": enrollment.student_id}


@router.get("/{course_id}/students")
def api_list_students(
    course_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    return [
        {"id": s.id, "name": s.name, "email": s.email}
        for s in list_course_students(session, course_id)
    ]


@router.delete("/{course_id}/students/{student_id}")
def api_remove_student(
    course_id: int,
    student_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    unenroll_student(session, student_id, course_id)
    return {"status": "success"}
