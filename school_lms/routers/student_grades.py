"""Student-facing grade routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from school_lms.database import get_session
from school_lms.deps import require_student
from school_lms.models import User
from school_lms.services.grade_service import (
    get_course_grade,
    get_grade_overview,
    list_grade_details,
)

router = APIRouter()


@router.get("/grades/overview")
def api_grade_overview(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_student),
):
    return get_grade_overview(session, current_user.id)


@router.get("/grades")
def api_grade_details(
    semester: Optional[str] = Query(None),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_student),
):
    return list_grade_details(session, current_user.id, semester=semester)


@router.get("/grades/courses/{course_id}")
def api_course_grade(
    course_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_student),
):
    return get_course_grade(session, current_user.id, course_id)
