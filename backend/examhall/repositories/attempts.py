"""
Persistence boundary for test attempts and their answers.

The repository never commits. Callers own the transaction and wrap writes
in handle_db_error, so finalize's attempt update and the per-answer
correctness writes land together or not at all.
"""
import logging
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from examhall.core.clock import compute_expires_at
from examhall.core.error_responses import ErrorMessages
from examhall.core.exceptions import AlreadySubmitted
from examhall.models import (
    AttemptAnswer,
    AttemptStatus,
    Chapter,
    Course,
    Enrollment,
    Student,
    Test,
    TestAttempt,
)

logger = logging.getLogger(__name__)


class AttemptRepository:
    """Query and update helpers for TestAttempt rows."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, attempt_id: str) -> Optional[TestAttempt]:
        return self.db.query(TestAttempt).filter(TestAttempt.id == attempt_id).first()

    def get_owned(self, attempt_id: str, student_id: str) -> Optional[TestAttempt]:
        """Fetch an attempt only if it belongs to the student."""
        return (
            self.db.query(TestAttempt)
            .filter(TestAttempt.id == attempt_id, TestAttempt.student_id == student_id)
            .first()
        )

    def find_active_attempt(
        self, student_id: str, test_id: str
    ) -> Optional[TestAttempt]:
        """Most recently started IN_PROGRESS attempt for (student, test), if any."""
        return (
            self._in_progress_query(student_id, test_id)
            .order_by(TestAttempt.started_at.desc())
            .first()
        )

    def list_stale_or_completable(
        self, student_id: str, test_id: str
    ) -> List[TestAttempt]:
        """
        All IN_PROGRESS attempts for (student, test), most recent first.

        Under normal operation this holds at most one row; anything beyond
        the first live attempt is a leftover the start scan finalizes.
        """
        return (
            self._in_progress_query(student_id, test_id)
            .order_by(TestAttempt.started_at.desc(), TestAttempt.id.desc())
            .all()
        )

    def list_expired_in_progress(
        self, now: datetime, limit: Optional[int] = None
    ) -> List[TestAttempt]:
        """IN_PROGRESS, unsubmitted attempts whose expiry has passed, oldest first."""
        query = (
            self.db.query(TestAttempt)
            .filter(
                TestAttempt.status == AttemptStatus.IN_PROGRESS,
                TestAttempt.submitted_at.is_(None),
                TestAttempt.expires_at <= now,
            )
            .order_by(TestAttempt.expires_at.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def list_completed_for_student(
        self,
        student_id: str,
        test_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[TestAttempt]:
        """COMPLETED attempts for a student, most recently submitted first."""
        query = self._completed_query(student_id, test_id).order_by(
            TestAttempt.submitted_at.desc()
        )
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count_completed_for_student(
        self, student_id: str, test_id: Optional[str] = None
    ) -> int:
        return self._completed_query(student_id, test_id).count()

    def average_score_for_student(self, student_id: str) -> Optional[float]:
        """Mean score across all of a student's completed attempts."""
        return (
            self.db.query(func.avg(TestAttempt.score))
            .filter(
                TestAttempt.student_id == student_id,
                TestAttempt.status == AttemptStatus.COMPLETED,
            )
            .scalar()
        )

    def course_score_totals(
        self, student_id: str
    ) -> List[Tuple[str, str, int, Optional[float]]]:
        """
        (course_id, course_title, completed_count, average_score) for every
        course the student is enrolled in, ordered by course title.
        """
        completed = (
            self.db.query(
                Chapter.course_id.label("course_id"),
                func.count(TestAttempt.id).label("completed"),
                func.avg(TestAttempt.score).label("average"),
            )
            .join(Test, Test.chapter_id == Chapter.id)
            .join(TestAttempt, TestAttempt.test_id == Test.id)
            .filter(
                TestAttempt.student_id == student_id,
                TestAttempt.status == AttemptStatus.COMPLETED,
            )
            .group_by(Chapter.course_id)
            .subquery()
        )
        rows = (
            self.db.query(
                Course.id,
                Course.title,
                func.coalesce(completed.c.completed, 0),
                completed.c.average,
            )
            .join(Enrollment, Enrollment.course_id == Course.id)
            .outerjoin(completed, completed.c.course_id == Course.id)
            .filter(Enrollment.student_id == student_id)
            .order_by(Course.title)
            .all()
        )
        return [tuple(row) for row in rows]

    def count_answered(self, attempt_id: str) -> int:
        """Number of questions with a current (non-cleared) selection."""
        return (
            self.db.query(func.count(AttemptAnswer.id))
            .filter(
                AttemptAnswer.attempt_id == attempt_id,
                AttemptAnswer.selected_option_id.isnot(None),
            )
            .scalar()
            or 0
        )

    def count_answered_by_attempt(self, attempt_ids: List[str]) -> Dict[str, int]:
        """Answered counts for several attempts in one query."""
        if not attempt_ids:
            return {}
        rows = (
            self.db.query(AttemptAnswer.attempt_id, func.count(AttemptAnswer.id))
            .filter(
                AttemptAnswer.attempt_id.in_(attempt_ids),
                AttemptAnswer.selected_option_id.isnot(None),
            )
            .group_by(AttemptAnswer.attempt_id)
            .all()
        )
        return {attempt_id: count for attempt_id, count in rows}

    def count_correct_by_attempt(self, attempt_ids: List[str]) -> Dict[str, int]:
        """Correct-answer counts (as written by finalize) for several attempts."""
        if not attempt_ids:
            return {}
        rows = (
            self.db.query(AttemptAnswer.attempt_id, func.count(AttemptAnswer.id))
            .filter(
                AttemptAnswer.attempt_id.in_(attempt_ids),
                AttemptAnswer.is_correct.is_(True),
            )
            .group_by(AttemptAnswer.attempt_id)
            .all()
        )
        return {attempt_id: count for attempt_id, count in rows}

    def list_answers(self, attempt_id: str) -> List[AttemptAnswer]:
        return (
            self.db.query(AttemptAnswer)
            .filter(AttemptAnswer.attempt_id == attempt_id)
            .all()
        )

    def get_answer(self, attempt_id: str, question_id: str) -> Optional[AttemptAnswer]:
        return (
            self.db.query(AttemptAnswer)
            .filter(
                AttemptAnswer.attempt_id == attempt_id,
                AttemptAnswer.question_id == question_id,
            )
            .first()
        )

    def answer_map(self, attempt_id: str) -> Dict[str, Optional[str]]:
        """question_id -> selected option id for every stored answer row."""
        return {a.question_id: a.selected_option_id for a in self.list_answers(attempt_id)}

    # ------------------------------------------------------------------
    # Writes (caller commits)
    # ------------------------------------------------------------------

    def lock_student(self, student_id: str) -> Optional[Student]:
        """
        Load the student row with a row lock for the rest of the transaction.

        Concurrent starts for the same student serialize on this lock on
        databases that support SELECT ... FOR UPDATE; SQLite ignores it.
        """
        return (
            self.db.query(Student)
            .filter(Student.id == student_id)
            .with_for_update()
            .first()
        )

    def lock_attempt(self, attempt_id: str) -> None:
        """Row-lock an attempt so answer writes wait for the finalize in progress."""
        self.db.query(TestAttempt.id).filter(
            TestAttempt.id == attempt_id
        ).with_for_update().first()

    def claim_open_attempt(self, attempt_id: str) -> bool:
        """
        Take the attempt row for an answer write if it is still unsubmitted.

        The no-op UPDATE is conditional on ``submitted_at IS NULL`` and holds
        the row lock until commit, so a finalize either sees this write or
        commits first and makes this return False.
        """
        result = self.db.execute(
            update(TestAttempt)
            .where(TestAttempt.id == attempt_id, TestAttempt.submitted_at.is_(None))
            .values(id=TestAttempt.id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def create_attempt(
        self,
        student_id: str,
        test_id: str,
        duration_minutes: int,
        now: datetime,
    ) -> TestAttempt:
        """Add a new IN_PROGRESS attempt with its expiry fixed at creation."""
        attempt = TestAttempt(
            student_id=student_id,
            test_id=test_id,
            status=AttemptStatus.IN_PROGRESS,
            started_at=now,
            expires_at=compute_expires_at(now, duration_minutes),
        )
        self.db.add(attempt)
        self.db.flush()
        return attempt

    def mark_completed(
        self,
        attempt_id: str,
        score: int,
        correctness: Mapping[str, bool],
        now: datetime,
    ) -> None:
        """
        Transition an attempt to COMPLETED exactly once.

        The UPDATE is conditional on ``submitted_at IS NULL``; the affected
        row count decides whether this caller won. The loser gets
        AlreadySubmitted and must roll back.

        Args:
            attempt_id: Attempt to finalize
            score: Percentage computed by the scoring engine
            correctness: question_id -> is_correct for stored answer rows
            now: Submission instant

        Raises:
            AlreadySubmitted: If the attempt was already finalized
        """
        result = self.db.execute(
            update(TestAttempt)
            .where(TestAttempt.id == attempt_id, TestAttempt.submitted_at.is_(None))
            .values(status=AttemptStatus.COMPLETED, submitted_at=now, score=score)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(f"Finalize lost for attempt {attempt_id}: already submitted")
            raise AlreadySubmitted(ErrorMessages.ATTEMPT_ALREADY_SUBMITTED, attempt_id)

        # Loaded instances still hold the pre-update state
        self.db.expire_all()

        for answer in self.list_answers(attempt_id):
            answer.is_correct = bool(correctness.get(answer.question_id, False))
        self.db.flush()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _in_progress_query(self, student_id: str, test_id: str):
        return self.db.query(TestAttempt).filter(
            TestAttempt.student_id == student_id,
            TestAttempt.test_id == test_id,
            TestAttempt.status == AttemptStatus.IN_PROGRESS,
            TestAttempt.submitted_at.is_(None),
        )

    def _completed_query(self, student_id: str, test_id: Optional[str]):
        query = self.db.query(TestAttempt).filter(
            TestAttempt.student_id == student_id,
            TestAttempt.status == AttemptStatus.COMPLETED,
        )
        if test_id is not None:
            query = query.filter(TestAttempt.test_id == test_id)
        return query
