"""SQLModel models for the school LMS exam & grade backend."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel

from school_lms.utils import as_utc, utcnow

# Submission states
SUBMISSION_ONGOING = "ongoing"
SUBMISSION_SUBMITTED = "submitted"
SUBMISSION_GRADED = "graded"

QUESTION_TYPES = ("single", "multiple", "boolean", "essay")
CHOICE_QUESTION_TYPES = ("single", "multiple")


class UTCDateTime(TypeDecorator):
    """Stores UTC without an offset and always hands back aware UTC datetimes.

    Naive values written to it are taken to be UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            value = as_utc(value).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        return as_utc(value)


class User(SQLModel, table=True):
    """Application user that can log in and own a role (admin / teacher / student)."""

    __table_args__ = (UniqueConstraint("email", name="uq_user_email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str
    password_hash: str
    role: str = Field(default="student")  # "admin", "teacher", "student"
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Course(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("code", name="uq_course_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str
    title: str
    description: Optional[str] = None
    teacher_id: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Enrollment(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("course_id", "student_id", name="uq_course_student"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id")
    student_id: int = Field(foreign_key="user.id")
    enrolled_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Exam(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id")
    title: str
    description: Optional[str] = None
    start_time: datetime = Field(sa_type=UTCDateTime)
    end_time: datetime = Field(sa_type=UTCDateTime)
    duration: int  # minutes
    total_score: int = Field(default=100)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class ExamQuestion(SQLModel, table=True):
    """A question belonging to an exam; ``order`` defines display sequence."""

    __table_args__ = (
        UniqueConstraint("exam_id", "order", name="uq_exam_question_order"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id")
    type: str  # single | multiple | boolean | essay
    content: str
    options: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    correct_answer: Optional[str] = None
    score: float
    order: int


class ExamSubmission(SQLModel, table=True):
    """A student's single attempt at an exam."""

    __table_args__ = (
        UniqueConstraint("exam_id", "student_id", name="uq_exam_submission_student"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id")
    student_id: int = Field(foreign_key="user.id")
    start_time: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    submit_time: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    total_score: Optional[float] = None
    status: str = Field(default=SUBMISSION_ONGOING)  # ongoing | submitted | graded


class ExamAnswer(SQLModel, table=True):
    """Response to one question within a submission."""

    id: Optional[int] = Field(default=None, primary_key=True)
    submission_id: int = Field(foreign_key="examsubmission.id")
    question_id: int = Field(foreign_key="examquestion.id")
    answer: Optional[str] = None
    score: Optional[float] = None
    is_correct: Optional[bool] = None


class Grade(SQLModel, table=True):
    """Course grade for a student in one semester."""

    __table_args__ = (
        UniqueConstraint(
            "student_id", "course_id", "semester", name="uq_grade_student_course_semester"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="user.id")
    course_id: int = Field(foreign_key="course.id")
    semester: str
    class_score: Optional[float] = None
    rain_score: Optional[float] = None  # classroom-engagement channel
    exam_score: Optional[float] = None
    total_score: Optional[float] = None
    comment: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
