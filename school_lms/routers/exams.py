"""Teacher routes for creating, inspecting, updating and deleting exams."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel, Field
from sqlmodel import Session

from school_lms.database import get_session
from school_lms.deps import require_teacher
from school_lms.models import Exam, ExamQuestion, User
from school_lms.services.exam_service import (
    create_exam,
    delete_exam,
    get_exam_detail,
    list_exam_results,
    list_exams,
    update_exam,
)

router = APIRouter()


class QuestionIn(BaseModel):
    type: str
    content: str
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    score: float


class CreateExamIn(BaseModel):
    course_id: int
    title: str
    description: Optional[str] = None
    start_time: datetime
    duration: int
    total_score: int = 100
    questions: List[QuestionIn] = Field(default_factory=list)


class UpdateExamIn(BaseModel):
    title: str
    description: Optional[str] = None
    start_time: datetime
    duration: int
    total_score: int = 100
    questions: Optional[List[QuestionIn]] = None


def exam_to_dict(exam: Exam) -> dict:
    return {
        "id": exam.id,
        "course_id": exam.course_id,
        "title": exam.title,
        "description": exam.description,
        "start_time": exam.start_time,
        "end_time": exam.end_time,
        "duration": exam.duration,
        "total_score": exam.total_score,
    }


def question_to_dict(q: ExamQuestion) -> dict:
    return {
        "id": q.id,
        "type": q.type,
        "content": q.content,
        "options": q.options,
        "correct_answer": q.correct_answer,
        "score": q.score,
        "order": q.order,
    }


@router.get("")
def api_list_exams(
    course_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, pattern="^(upcoming|ongoing|ended)$"),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    return [exam_to_dict(e) for e in list_exams(session, course_id=course_id, status=status)]


@router.post("", status_code=status.HTTP_201_CREATED)
def api_create_exam(
    payload: CreateExamIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    exam = create_exam(
        session,
        course_id=payload.course_id,
        title=payload.title,
        start_time=payload.start_time,
        duration=payload.duration,
        total_score=payload.total_score,
        description=payload.description,
        questions=[q.model_dump() for q in payload.questions],
    )
    return exam_to_dict(exam)


@router.get("/{exam_id}")
def api_get_exam(
    exam_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    detail = get_exam_detail(session, exam_id)
    data = exam_to_dict(detail["exam"])
    data["questions"] = [question_to_dict(q) for q in detail["questions"]]
    return data


@router.put("/{exam_id}")
def api_update_exam(
    exam_id: int,
    payload: UpdateExamIn = Body(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    exam = update_exam(
        session,
        exam_id,
        title=payload.title,
        start_time=payload.start_time,
        duration=payload.duration,
        total_score=payload.total_score,
        description=payload.description,
        questions=[q.model_dump() for q in payload.questions or []],
    )
    return exam_to_dict(exam)


@router.delete("/{exam_id}")
def api_delete_exam(
    exam_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    delete_exam(session, exam_id)
    return {"status": "success"}


@router.get("/{exam_id}/results")
def api_exam_results(
    exam_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_teacher),
):
    return list_exam_results(session, exam_id)
