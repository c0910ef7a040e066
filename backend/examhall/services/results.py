"""
Read models over a student's completed attempts.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from examhall.core.clock import ensure_timezone_aware, utc_now
from examhall.core.error_responses import ErrorMessages
from examhall.core.exceptions import NotFound
from examhall.core.scoring import round_half_up_div, round_half_up_percent
from examhall.models import Test, TestAttempt
from examhall.repositories.attempts import AttemptRepository
from examhall.services.catalog import QuestionCatalog
from examhall.services.lifecycle import AttemptLifecycleManager

logger = logging.getLogger(__name__)


@dataclass
class AttemptResult:
    attempt: TestAttempt
    test: Test
    answered_questions: int
    correct_answers: int
    accuracy: int


@dataclass
class CourseResults:
    course_id: str
    course_title: str
    total_tests: int
    average_score: int


@dataclass
class ResultsPage:
    """One page of completed attempts plus totals across all of them."""

    items: List[AttemptResult]
    total_results: int
    average_score: int
    limit: int
    offset: int
    courses: List[CourseResults] = field(default_factory=list)

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total_results


@dataclass
class TestStatistics:
    """Aggregates over a student's completed attempts at one test."""

    # Keeps pytest from collecting the dataclass as a test class
    __test__ = False

    total_attempts: int
    average_score: int
    best_score: int
    latest_score: Optional[int]
    latest_accuracy: int
    time_taken_minutes: Optional[int]


@dataclass
class TestResults:
    __test__ = False

    test: Test
    statistics: Optional[TestStatistics]
    attempts: List[AttemptResult]


def _time_taken_minutes(
    started_at: datetime, submitted_at: Optional[datetime]
) -> Optional[int]:
    """Whole minutes between start and submission, rounded up."""
    if submitted_at is None:
        return None
    delta = ensure_timezone_aware(submitted_at) - ensure_timezone_aware(started_at)
    return max(0, math.ceil(delta.total_seconds() / 60))


def _rounded_average(average) -> int:
    # Decimal from Postgres, float from SQLite
    return math.floor(float(average) + 0.5) if average is not None else 0


def _build_attempt_results(
    repo: AttemptRepository, attempts: List[TestAttempt]
) -> List[AttemptResult]:
    ids = [a.id for a in attempts]
    answered = repo.count_answered_by_attempt(ids)
    correct = repo.count_correct_by_attempt(ids)

    results = []
    for attempt in attempts:
        answered_count = answered.get(attempt.id, 0)
        correct_count = correct.get(attempt.id, 0)
        results.append(
            AttemptResult(
                attempt=attempt,
                test=attempt.test,
                answered_questions=answered_count,
                correct_answers=correct_count,
                accuracy=round_half_up_percent(correct_count, answered_count),
            )
        )
    return results


def list_results(
    db: Session, student_id: str, limit: int, offset: int = 0
) -> ResultsPage:
    """
    A page of the student's completed attempts, most recently submitted first.

    The average is taken over every completed attempt, not just the page.
    Per-course totals cover every enrolled course, including ones with no
    completed attempt yet.
    """
    repo = AttemptRepository(db)
    attempts = repo.list_completed_for_student(student_id, limit=limit, offset=offset)
    total = repo.count_completed_for_student(student_id)
    average = repo.average_score_for_student(student_id)
    courses = [
        CourseResults(
            course_id=course_id,
            course_title=title,
            total_tests=completed,
            average_score=_rounded_average(course_average),
        )
        for course_id, title, completed, course_average in repo.course_score_totals(
            student_id
        )
    ]

    return ResultsPage(
        items=_build_attempt_results(repo, attempts),
        total_results=total,
        average_score=_rounded_average(average),
        limit=limit,
        offset=offset,
        courses=courses,
    )


def get_test_results(
    db: Session, student_id: str, test_id: str, now: Optional[datetime] = None
) -> TestResults:
    """
    The student's results for one test.

    Expired attempts still open for this test are finalized first, so a
    student who let the timer run out sees the authoritative score.

    Raises:
        NotFound: Test missing or the student is not enrolled in its course
    """
    catalog = QuestionCatalog(db)
    test = catalog.get_test(test_id)
    if test is None or not catalog.is_enrolled(student_id, test):
        raise NotFound(ErrorMessages.TEST_NOT_FOUND)

    AttemptLifecycleManager(db).finalize_expired_for_test(
        student_id, test_id, now=now or utc_now()
    )

    repo = AttemptRepository(db)
    attempts = _build_attempt_results(
        repo, repo.list_completed_for_student(student_id, test_id=test_id)
    )
    if not attempts:
        return TestResults(test=test, statistics=None, attempts=[])

    scores = [r.attempt.score or 0 for r in attempts]
    latest = attempts[0]
    statistics = TestStatistics(
        total_attempts=len(attempts),
        average_score=round_half_up_div(sum(scores), len(scores)),
        best_score=max(scores),
        latest_score=latest.attempt.score,
        latest_accuracy=latest.accuracy,
        time_taken_minutes=_time_taken_minutes(
            latest.attempt.started_at, latest.attempt.submitted_at
        ),
    )
    return TestResults(test=test, statistics=statistics, attempts=attempts)
