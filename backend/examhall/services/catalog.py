"""
Read-only access to authoring-owned data: students, enrollments, tests,
questions and their options.

Nothing here writes. Question order is the authoritative order used for
index navigation and for scoring.
"""
from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from examhall.models import Chapter, Enrollment, Question, Test


class QuestionCatalog:
    """Lookups against the authoring tables."""

    def __init__(self, db: Session):
        self.db = db

    def get_test(self, test_id: str) -> Optional[Test]:
        return self.db.query(Test).filter(Test.id == test_id).first()

    def is_enrolled(self, student_id: str, test: Test) -> bool:
        """Whether the student is enrolled in the course that owns the test."""
        return (
            self.db.query(Enrollment.id)
            .join(Chapter, Chapter.course_id == Enrollment.course_id)
            .filter(Enrollment.student_id == student_id, Chapter.id == test.chapter_id)
            .first()
            is not None
        )

    def list_questions(self, test_id: str) -> List[Question]:
        """Questions of a test in order, with options eagerly loaded."""
        return (
            self.db.query(Question)
            .options(selectinload(Question.options))
            .filter(Question.test_id == test_id)
            .order_by(Question.order_index.asc(), Question.id.asc())
            .all()
        )

    def get_question_in_test(
        self, test_id: str, question_id: str
    ) -> Optional[Question]:
        """The question, only if it belongs to the given test."""
        return (
            self.db.query(Question)
            .options(selectinload(Question.options))
            .filter(Question.id == question_id, Question.test_id == test_id)
            .first()
        )

