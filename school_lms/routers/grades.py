"""Teacher routes for entering and managing course grades."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status
from pydantic import BaseModel
from sqlmodel import Session

from school_lms.database import get_session
from school_lms.deps import require_teacher
from school_lms.models import Grade, User
from school_lms.services.grade_service import delete_grade, list_grades, upsert_grade

router = APIRouter()


class GradeIn(BaseModel):
    student_id: int
    course_id: int
    semester: str
    class_score: Optional[float] = None
    rain_score: Optional[float] = None
    exam_score: Optional[float] = None
    total_score: Optional[float] = None
    comment: Optional[str] = None


def grade_to_dict(grade: Grade) -> dict:
    return {
        "id": grade.id,
        "student_id": grade.student_id,
        "course_id": grade.course_id,
        "semester": grade.semester,
        "class_score": grade.class_score,
        "rain_score": grade.rain_score,
        "exam_score": grade.exam_score,
        "total_score": grade.total_score,
        "comment": grade.comment,
    }


@router.get("")
def api_list_grades(
    course_id: Optional[int] = Query(None),
    student_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    return [grade_to_dict(g) for g in list_grades(session, course_id=course_id, student_id=student_id)]


@router.post("")
def api_upsert_grade(
    response: Response,
    payload: GradeIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    grade, created = upsert_grade(session, **payload.model_dump())
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return grade_to_dict(grade)


@router.delete("/{grade_id}")
def api_delete_grade(
    grade_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    delete_grade(session, grade_id)
    return {"status": "success"}
