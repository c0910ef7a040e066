"""
Database models for the exam hall service.

Students, courses, chapters, tests, questions and options are owned by the
authoring subsystem and are read-only here. Test attempts and attempt
answers are the only rows this service writes.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum
import uuid

from .base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuestionType(str, enum.Enum):
    """Question type enumeration."""

    MCQ = "MCQ"
    TRUE_FALSE = "TRUE_FALSE"
    SHORT_ANSWER = "SHORT_ANSWER"
    LONG_ANSWER = "LONG_ANSWER"
    CODE = "CODE"


# Only these types take part in automatic scoring
AUTO_SCORED_QUESTION_TYPES = (QuestionType.MCQ, QuestionType.TRUE_FALSE)


class AttemptStatus(str, enum.Enum):
    """Test attempt status enumeration."""

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class Student(Base):
    """Student account as provisioned by the administration."""

    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=_new_id)
    provisional_no = Column(String(50), unique=True, nullable=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    # Relationships
    enrollments = relationship(
        "Enrollment", back_populates="student", cascade="all, delete-orphan"
    )
    attempts = relationship("TestAttempt", back_populates="student")


class Course(Base):
    """Course a student can be enrolled in."""

    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    chapters = relationship("Chapter", back_populates="course")
    enrollments = relationship("Enrollment", back_populates="course")


class Enrollment(Base):
    """Junction table linking students to the courses they may take tests in."""

    __tablename__ = "enrollments"

    id = Column(String(36), primary_key=True, default=_new_id)
    student_id = Column(
        String(36), ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    course_id = Column(
        String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    enrolled_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    student = relationship("Student", back_populates="enrollments")
    course = relationship("Course", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="uq_enrollment_student_course"),
    )


class Chapter(Base):
    """Chapter of a course; tests hang off chapters."""

    __tablename__ = "chapters"

    id = Column(String(36), primary_key=True, default=_new_id)
    course_id = Column(
        String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    code = Column(String(50), nullable=True)
    title = Column(String(255), nullable=False)

    course = relationship("Course", back_populates="chapters")
    tests = relationship("Test", back_populates="chapter")


class Test(Base):
    """A timed test. Authoring-owned; read-only to the attempt lifecycle."""

    # Keeps pytest from collecting the model as a test class
    __test__ = False

    __tablename__ = "tests"

    id = Column(String(36), primary_key=True, default=_new_id)
    chapter_id = Column(
        String(36), ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False
    )
    title = Column(String(255), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    total_marks = Column(Integer, nullable=False, default=0)
    # Authoritative question count for completion and percentage math
    max_questions = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    chapter = relationship("Chapter", back_populates="tests")
    questions = relationship(
        "Question",
        back_populates="test",
        order_by="Question.order_index",
    )
    attempts = relationship("TestAttempt", back_populates="test")

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_tests_duration_positive"),
        CheckConstraint("max_questions >= 0", name="ck_tests_max_questions_non_negative"),
    )


class Question(Base):
    """Question belonging to a test."""

    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=_new_id)
    test_id = Column(
        String(36),
        ForeignKey("tests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_text = Column(Text, nullable=False)
    question_type = Column(Enum(QuestionType), nullable=False, default=QuestionType.MCQ)
    order_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    test = relationship("Test", back_populates="questions")
    options = relationship(
        "QuestionOption",
        back_populates="question",
        order_by="QuestionOption.order_index",
        cascade="all, delete-orphan",
    )


class QuestionOption(Base):
    """Answer option for a question; exactly one is correct for MCQ/TRUE_FALSE."""

    __tablename__ = "question_options"

    id = Column(String(36), primary_key=True, default=_new_id)
    question_id = Column(
        String(36),
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    option_text = Column(Text, nullable=False)
    order_index = Column(Integer, nullable=False, default=0)
    is_correct = Column(Boolean, nullable=False, default=False)

    question = relationship("Question", back_populates="options")


class TestAttempt(Base):
    """A single student's timed attempt at a test."""

    __test__ = False

    __tablename__ = "test_attempts"

    id = Column(String(36), primary_key=True, default=_new_id)
    student_id = Column(
        String(36), ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    test_id = Column(
        String(36), ForeignKey("tests.id", ondelete="CASCADE"), nullable=False
    )
    status = Column(
        Enum(AttemptStatus),
        default=AttemptStatus.IN_PROGRESS,
        nullable=False,
        index=True,
    )
    started_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    # Fixed at creation: started_at + test.duration_minutes, never extended
    expires_at = Column(DateTime(timezone=True), nullable=False)
    # NULL until finalized; the conditional finalize UPDATE keys on this column
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    # Percentage (0-100), NULL until finalized
    score = Column(Integer, nullable=True)

    student = relationship("Student", back_populates="attempts")
    test = relationship("Test", back_populates="attempts")
    answers = relationship(
        "AttemptAnswer", back_populates="attempt", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index(
            "ix_test_attempts_student_test_status", "student_id", "test_id", "status"
        ),
        Index("ix_test_attempts_status_expires", "status", "expires_at"),
        CheckConstraint(
            "score IS NULL OR (score >= 0 AND score <= 100)",
            name="ck_test_attempts_score_range",
        ),
    )


class AttemptAnswer(Base):
    """A student's current selection for one question of an attempt."""

    __tablename__ = "attempt_answers"

    id = Column(String(36), primary_key=True, default=_new_id)
    attempt_id = Column(
        String(36),
        ForeignKey("test_attempts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = Column(
        String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    # NULL means visited but explicitly cleared
    selected_option_id = Column(
        String(36), ForeignKey("question_options.id", ondelete="SET NULL"), nullable=True
    )
    # Written only by finalize
    is_correct = Column(Boolean, nullable=True)
    answered_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    attempt = relationship("TestAttempt", back_populates="answers")
    question = relationship("Question")
    selected_option = relationship("QuestionOption")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_attempt_answer_question"),
    )
