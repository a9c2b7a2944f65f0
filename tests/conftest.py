import os
from datetime import timedelta

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, text

# Keep the app from touching a file database or seeding during tests
os.environ.setdefault("LMS_DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LMS_SEED_ADMIN", "false")

from fastapi.testclient import TestClient  # noqa: E402

from school_lms.auth_utils import hash_password  # noqa: E402
from school_lms.database import get_session  # noqa: E402
from school_lms.main import app  # noqa: E402
from school_lms.models import (  # noqa: E402
    Course,
    Enrollment,
    Exam,
    ExamQuestion,
    Grade,
    User,
)
from school_lms.utils import utcnow  # noqa: E402

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

# StaticPool: every connection shares the same in-memory database
test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

PASSWORD = "testpass123"


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create all tables in the test database once per session."""
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(autouse=True)
def cleanup_db_between_tests():
    """Clean up test data after each test."""
    yield
    # Children before parents
    with Session(test_engine) as session:
        for table in reversed(SQLModel.metadata.sorted_tables):
            session.exec(text(f'DELETE FROM "{table.name}"'))
        session.commit()


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================


@pytest.fixture
def client():
    def override_get_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def session():
    """Provide a database session for tests."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def engine_session_factory():
    """Open extra sessions on the test database, e.g. to simulate a concurrent request."""
    return lambda: Session(test_engine)


@pytest.fixture
def login_as(client):
    """Log the test client in as ``user``."""

    def _login(user: User, password: str = PASSWORD):
        response = client.post("/auth/login", json={"email": user.email, "password": password})
        assert response.status_code == 200, response.text
        return response

    return _login


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


def _create(model):
    with Session(test_engine) as session:
        session.add(model)
        session.commit()
        session.refresh(model)
        model_id = model.id
    with Session(test_engine) as session:
        return session.get(type(model), model_id)


@pytest.fixture(scope="session")
def password_hash():
    # Hashing is slow; share one hash for every fixture user
    return hash_password(PASSWORD)


@pytest.fixture
def teacher_user(password_hash):
    return _create(
        User(name="Dr. Wang Teacher", email="teacher@example.com", password_hash=password_hash, role="teacher")
    )


@pytest.fixture
def student_user(password_hash):
    return _create(
        User(name="Alice Student", email="alice@example.com", password_hash=password_hash, role="student")
    )


@pytest.fixture
def other_student(password_hash):
    return _create(
        User(name="Bob Student", email="bob@example.com", password_hash=password_hash, role="student")
    )


@pytest.fixture
def course(teacher_user):
    return _create(
        Course(
            code="CS101",
            title="Introduction to Programming",
            description="Basics of programming",
            teacher_id=teacher_user.id,
        )
    )


@pytest.fixture
def enrolled_student(student_user, course):
    _create(Enrollment(course_id=course.id, student_id=student_user.id))
    return student_user


@pytest.fixture
def enrolled_other_student(other_student, course):
    _create(Enrollment(course_id=course.id, student_id=other_student.id))
    return other_student


def make_exam(course_id: int, start_time, duration: int = 60, end_time=None, n_questions: int = 3) -> Exam:
    """Create an exam with ``n_questions`` questions stored out of display order."""
    exam = _create(
        Exam(
            course_id=course_id,
            title="Midterm",
            description="Chapters 1-4",
            start_time=start_time,
            end_time=end_time or start_time + timedelta(minutes=duration),
            duration=duration,
            total_score=100,
        )
    )
    # Insert in reverse so display order has to come from ``order``
    for order in range(n_questions, 0, -1):
        _create(
            ExamQuestion(
                exam_id=exam.id,
                type="single",
                content=f"Question {order}",
                options=["A", "B", "C", "D"],
                correct_answer="A",
                score=10,
                order=order,
            )
        )
    return exam


@pytest.fixture
def open_exam(course):
    """An exam whose window is open right now."""
    return make_exam(course.id, start_time=utcnow() - timedelta(minutes=10), duration=60)


@pytest.fixture
def upcoming_exam(course):
    return make_exam(course.id, start_time=utcnow() + timedelta(days=1), duration=60)


@pytest.fixture
def finished_exam(course):
    return make_exam(course.id, start_time=utcnow() - timedelta(days=1), duration=60)


@pytest.fixture
def make_grade():
    def _make(student_id: int, course_id: int, semester: str = "2025-2026-1", **scores) -> Grade:
        return _create(Grade(student_id=student_id, course_id=course_id, semester=semester, **scores))

    return _make


@pytest.fixture
def exam_factory(course):
    """Build exams in ``course`` with explicit timing."""

    def _factory(**kwargs) -> Exam:
        return make_exam(course.id, **kwargs)

    return _factory
