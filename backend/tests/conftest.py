"""
Pytest configuration and shared fixtures for testing.
"""
import os
from pathlib import Path

# Use SQLite for tests. The path is relative to this file so the .db lands
# inside tests/ regardless of the working directory. Must be set before
# examhall.models.base reads DATABASE_URL at import time.
_TEST_DB = Path(__file__).parent / "test.db"
SQLALCHEMY_DATABASE_URL = f"sqlite:///{_TEST_DB}"
os.environ["DATABASE_URL"] = SQLALCHEMY_DATABASE_URL
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-examhall-tests")
os.environ["SENTRY_DSN"] = ""

from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from examhall.core.security import create_access_token  # noqa: E402
from examhall.main import app  # noqa: E402
from examhall.models import (  # noqa: E402
    AttemptAnswer,
    AttemptStatus,
    Base,
    Chapter,
    Course,
    Enrollment,
    Question,
    QuestionOption,
    QuestionType,
    Student,
    Test,
    TestAttempt,
    get_db,
)

engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed instant for service-level tests that pass ``now`` explicitly
FIXED_NOW = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    """Factory for extra sessions on the test database (for interleaving)."""
    sessions = []

    def _make():
        session = TestingSessionLocal()
        sessions.append(session)
        return session

    yield _make
    for session in sessions:
        session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """
    Create a test client with database dependency override.

    Each request gets its own session on the same test.db file where
    db_session creates data.
    """

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def now():
    return FIXED_NOW


def make_student(db, email: str = "student@example.com", is_active: bool = True):
    student = Student(name="Test Student", email=email, is_active=is_active)
    db.add(student)
    db.commit()
    db.refresh(student)
    return student


def make_test_with_questions(
    db,
    chapter,
    question_count: int = 4,
    duration_minutes: int = 10,
    max_questions: Optional[int] = None,
    title: str = "Chapter 1 Quiz",
):
    """
    Create a test with ``question_count`` MCQ questions.

    Each question has four options; the option at index 1 ("B") is correct.
    """
    test = Test(
        chapter_id=chapter.id,
        title=title,
        duration_minutes=duration_minutes,
        total_marks=question_count,
        max_questions=question_count if max_questions is None else max_questions,
    )
    db.add(test)
    db.flush()

    for q_index in range(question_count):
        question = Question(
            test_id=test.id,
            question_text=f"Question {q_index + 1}?",
            question_type=QuestionType.MCQ,
            order_index=q_index,
        )
        db.add(question)
        db.flush()
        for o_index in range(4):
            db.add(
                QuestionOption(
                    question_id=question.id,
                    option_text=f"Option {chr(65 + o_index)}",
                    order_index=o_index,
                    is_correct=o_index == 1,
                )
            )

    db.commit()
    db.refresh(test)
    return test


def make_attempt(
    db,
    student,
    test,
    started_at: datetime,
    expires_at: Optional[datetime] = None,
):
    """Insert an IN_PROGRESS attempt directly, bypassing the start scan."""
    attempt = TestAttempt(
        student_id=student.id,
        test_id=test.id,
        status=AttemptStatus.IN_PROGRESS,
        started_at=started_at,
        expires_at=expires_at
        or started_at + timedelta(minutes=test.duration_minutes),
    )
    db.add(attempt)
    db.commit()
    db.refresh(attempt)
    return attempt


def answer_question(db, attempt, question, option):
    """Insert an answer row directly."""
    answer = AttemptAnswer(
        attempt_id=attempt.id,
        question_id=question.id,
        selected_option_id=option.id if option is not None else None,
    )
    db.add(answer)
    db.commit()
    return answer


def correct_option(question):
    return next(o for o in question.options if o.is_correct)


def wrong_option(question):
    return next(o for o in question.options if not o.is_correct)


@pytest.fixture
def student(db_session):
    """
    Create an active student in the database.
    """
    return make_student(db_session)


@pytest.fixture
def course(db_session):
    course = Course(title="Physics 101")
    db_session.add(course)
    db_session.commit()
    db_session.refresh(course)
    return course


@pytest.fixture
def chapter(db_session, course):
    chapter = Chapter(course_id=course.id, code="PHY-1", title="Kinematics")
    db_session.add(chapter)
    db_session.commit()
    db_session.refresh(chapter)
    return chapter


@pytest.fixture
def enrollment(db_session, student, course):
    enrollment = Enrollment(student_id=student.id, course_id=course.id)
    db_session.add(enrollment)
    db_session.commit()
    return enrollment


@pytest.fixture
def exam(db_session, chapter, enrollment):
    """
    A 4-question, 10-minute MCQ test the student is enrolled for.
    """
    return make_test_with_questions(db_session, chapter)


@pytest.fixture
def questions(db_session, exam):
    """Questions of ``exam`` in order."""
    return (
        db_session.query(Question)
        .filter(Question.test_id == exam.id)
        .order_by(Question.order_index)
        .all()
    )


@pytest.fixture
def auth_headers(student):
    """
    Create authentication headers for the test student.
    """
    access_token = create_access_token({"user_id": student.id, "role": "student"})
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
def admin_headers():
    access_token = create_access_token({"user_id": "admin-1", "role": "admin"})
    return {"Authorization": f"Bearer {access_token}"}
