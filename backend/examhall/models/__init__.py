"""
Models package for the exam hall backend.
"""
from .base import Base, engine, SessionLocal, get_db
from .models import (
    Student,
    Course,
    Enrollment,
    Chapter,
    Test,
    Question,
    QuestionOption,
    TestAttempt,
    AttemptAnswer,
    QuestionType,
    AttemptStatus,
    AUTO_SCORED_QUESTION_TYPES,
)

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "Student",
    "Course",
    "Enrollment",
    "Chapter",
    "Test",
    "Question",
    "QuestionOption",
    "TestAttempt",
    "AttemptAnswer",
    "QuestionType",
    "AttemptStatus",
    "AUTO_SCORED_QUESTION_TYPES",
]
