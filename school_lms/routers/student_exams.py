"""Student-facing exam routes: list, start/resume, save answer, submit."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session

from school_lms.config import settings
from school_lms.database import get_session
from school_lms.deps import require_student
from school_lms.models import User
from school_lms.services.exam_service import (
    list_student_exams,
    save_answer,
    start_or_resume_exam,
    submit_exam,
)

router = APIRouter()


class AnswerIn(BaseModel):
    answer: Optional[str] = None


@router.get("/exams")
def api_list_exams(
    course_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, pattern="^(not_started|ongoing|ended)$"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_student),
):
    return list_student_exams(
        session,
        current_user.id,
        course_id=course_id,
        status=status,
        page=page,
        limit=limit or settings.items_per_page,
    )


@router.post("/exams/{exam_id}/start")
def api_start_exam(
    exam_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_student),
):
    result = start_or_resume_exam(session, exam_id, current_user.id)
    exam = result["exam"]
    submission = result["submission"]
    return {
        "id": exam.id,
        "title": exam.title,
        "description": exam.description,
        "duration": exam.duration,
        "total_score": exam.total_score,
        "submission_id": submission.id,
        "status": submission.status,
        "start_time": submission.start_time,
        "end_time": result["deadline"],
        "remaining_time": result["remaining_seconds"],
        "questions": result["questions"],
    }


@router.put("/exams/answers/{answer_id}")
def api_save_answer(
    answer_id: int,
    payload: AnswerIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_student),
):
    answer = save_answer(session, answer_id, current_user.id, payload.answer)
    return {"id": answer.id, "answer": answer.answer}


@router.post("/exams/{exam_id}/submit")
def api_submit_exam(
    exam_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_student),
):
    submission = submit_exam(session, exam_id, current_user.id)
    return {
        "id": submission.id,
        "exam_id": exam_id,
        "submit_time": submission.submit_time,
        "status": submission.status,
    }
