"""
Attempt lifecycle: start-vs-resume, lazy expiry, finalize and review.

State machine
=============
NONE -> IN_PROGRESS -> COMPLETED (terminal)

Every transition to COMPLETED goes through one primitive, finalize, whatever
triggered it: a manual submit, a read of an expired attempt, the cleanup
scan run on start, or the operator sweep. Finalize is exactly-once: its
UPDATE only matches while ``submitted_at`` is NULL and the affected row count
decides the winner. Losers get AlreadySubmitted, which every caller here
treats as success by reading back the stored result.

Start Scan
==========
Starting a test locks the student row, then walks the student's IN_PROGRESS
attempts for the test most-recent-first:

- expired: finalize, keep scanning
- every question answered: finalize (implicit submit), keep scanning
- otherwise: resume it unchanged

If nothing is resumable a new attempt is created with its expiry fixed at
``now + duration``. Repeated or concurrent start calls therefore converge on
one live attempt.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from examhall.core.analytics import AnalyticsTracker, FinalizeTrigger
from examhall.core.clock import (
    ensure_timezone_aware,
    is_expired,
    remaining_seconds,
    utc_now,
)
from examhall.core.config import settings
from examhall.core.db_error_handling import handle_db_error
from examhall.core.error_responses import ErrorMessages
from examhall.core.exceptions import (
    AlreadySubmitted,
    InvalidState,
    NotFound,
    ValidationError,
)
from examhall.core.graceful_failure import graceful_failure
from examhall.core.scoring import answer_key_from_questions, score_attempt
from examhall.models import AttemptStatus, Question, Test, TestAttempt
from examhall.repositories.attempts import AttemptRepository
from examhall.services.catalog import QuestionCatalog

logger = logging.getLogger(__name__)


@dataclass
class StartResult:
    """Attempt handed back by start, either freshly created or resumed."""

    attempt: TestAttempt
    test: Test
    resumed: bool
    remaining_seconds: int
    finalized_attempt_ids: List[str] = field(default_factory=list)


@dataclass
class FinalizeResult:
    """Authoritative outcome of a finalized attempt."""

    attempt_id: str
    student_id: str
    test_id: str
    score: int
    correct_answers: int
    max_questions: int
    submitted_at: datetime
    already_submitted: bool = False

    def as_error_extra(self) -> Dict[str, object]:
        """Fields attached to an InvalidState body when a read hits an expired attempt."""
        return {
            "attemptId": self.attempt_id,
            "score": self.score,
            "correctAnswers": self.correct_answers,
            "maxQuestions": self.max_questions,
        }


@dataclass
class QuestionView:
    """One question of a live attempt, as navigated by index."""

    attempt: TestAttempt
    question: Question
    index: int
    total_questions: int
    selected_option_id: Optional[str]
    answered_count: int
    max_questions: int
    remaining_seconds: int


@dataclass
class AttemptQuestionsView:
    """Every question of a live attempt with the student's current selections."""

    attempt: TestAttempt
    questions: List[Question]
    previous_answers: Dict[str, Optional[str]]
    answered_count: int
    max_questions: int
    remaining_seconds: int


@dataclass
class ReviewItem:
    question: Question
    selected_option_id: Optional[str]
    correct_option_id: Optional[str]
    is_correct: bool
    skipped: bool


@dataclass
class AttemptReview:
    attempt: TestAttempt
    test: Test
    correct_answers: int
    items: List[ReviewItem]


@dataclass
class SweepResult:
    """Outcome of one sweep run over expired attempts."""

    examined: int = 0
    finalized: int = 0
    already_submitted: int = 0
    attempt_ids: List[str] = field(default_factory=list)


class AttemptLifecycleManager:
    """Drives an attempt through its states on behalf of one student request."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AttemptRepository(db)
        self.catalog = QuestionCatalog(db)

    # ------------------------------------------------------------------
    # Start / resume
    # ------------------------------------------------------------------

    def start_attempt(
        self, student_id: str, test_id: str, now: Optional[datetime] = None
    ) -> StartResult:
        """
        Start a test, or resume the student's live attempt at it.

        Args:
            student_id: Authenticated student
            test_id: Test to start
            now: Current instant (defaults to utc_now())

        Returns:
            StartResult; ``resumed`` is True when an existing attempt was
            returned unchanged

        Raises:
            NotFound: Student missing or blocked, test missing, or the
                student is not enrolled in the test's course
            StoreUnavailable: The store failed; nothing was changed
        """
        now = now or utc_now()
        finalized: List[FinalizeResult] = []

        with handle_db_error(self.db, "start attempt"):
            student = self.repo.lock_student(student_id)
            if student is None or not student.is_active:
                raise NotFound(ErrorMessages.STUDENT_NOT_FOUND)

            test = self.catalog.get_test(test_id)
            # Unenrolled students get the same answer as a missing test
            if test is None or not self.catalog.is_enrolled(student_id, test):
                raise NotFound(ErrorMessages.TEST_NOT_FOUND)

            resumable: Optional[TestAttempt] = None
            for candidate in self.repo.list_stale_or_completable(student_id, test_id):
                if is_expired(candidate.expires_at, now):
                    reason = "expired"
                elif self._is_fully_answered(candidate, test):
                    reason = "fully answered"
                else:
                    resumable = candidate
                    break

                try:
                    finalized.append(self._finalize_staged(candidate, test, now))
                except AlreadySubmitted:
                    # A concurrent finalize won; the UPDATE changed nothing here
                    continue
                logger.info(
                    f"Finalized leftover attempt {candidate.id} on start "
                    f"({reason})"
                )

            if resumable is not None:
                attempt = resumable
                resumed = True
            else:
                attempt = self.repo.create_attempt(
                    student_id=student_id,
                    test_id=test_id,
                    duration_minutes=test.duration_minutes,
                    now=now,
                )
                resumed = False

            attempt_id = attempt.id
            self.db.commit()

        self.db.refresh(attempt)
        remaining = remaining_seconds(attempt.expires_at, now)

        for result in finalized:
            self._track_finalized(result, FinalizeTrigger.CLEANUP_ON_START)

        with graceful_failure(
            "track attempt start", logger, context={"attempt_id": attempt_id}
        ):
            if resumed:
                AnalyticsTracker.track_attempt_resumed(
                    student_id=student_id,
                    attempt_id=attempt_id,
                    remaining_seconds=remaining,
                )
            else:
                AnalyticsTracker.track_attempt_started(
                    student_id=student_id,
                    attempt_id=attempt_id,
                    test_id=test_id,
                    max_questions=test.max_questions,
                )

        return StartResult(
            attempt=attempt,
            test=test,
            resumed=resumed,
            remaining_seconds=remaining,
            finalized_attempt_ids=[r.attempt_id for r in finalized],
        )

    def _is_fully_answered(self, attempt: TestAttempt, test: Test) -> bool:
        # A test with no authoritative count is never implicitly complete
        if test.max_questions <= 0:
            return False
        return self.repo.count_answered(attempt.id) >= test.max_questions

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    def finalize(
        self,
        attempt_id: str,
        trigger: FinalizeTrigger,
        student_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> FinalizeResult:
        """
        Score and close an attempt in a single transaction.

        Args:
            attempt_id: Attempt to finalize
            trigger: What caused the finalize (for event tracking)
            student_id: When given, the attempt must belong to this student
            now: Submission instant (defaults to utc_now())

        Returns:
            FinalizeResult with ``already_submitted=False``

        Raises:
            NotFound: Attempt missing or not owned by student_id
            AlreadySubmitted: The attempt was already finalized, possibly by
                a concurrent request
            StoreUnavailable: The store failed; nothing was changed
        """
        now = now or utc_now()

        with handle_db_error(self.db, "finalize attempt"):
            attempt = self._get_attempt(attempt_id, student_id)
            result = self._finalize_staged(attempt, attempt.test, now)
            self.db.commit()

        self._track_finalized(result, trigger)
        return result

    def _finalize_staged(
        self, attempt: TestAttempt, test: Test, now: datetime
    ) -> FinalizeResult:
        """Score the attempt and stage the COMPLETED update. Caller commits."""
        if attempt.submitted_at is not None:
            raise AlreadySubmitted(ErrorMessages.ATTEMPT_ALREADY_SUBMITTED, attempt.id)

        # Plain values first; mark_completed expires loaded instances
        attempt_id = attempt.id
        student_id = attempt.student_id
        test_id = test.id
        max_questions = test.max_questions

        self.repo.lock_attempt(attempt_id)
        keys = answer_key_from_questions(self.catalog.list_questions(test_id))
        answers = self.repo.answer_map(attempt_id)
        scored = score_attempt(keys, answers, max_questions)

        self.repo.mark_completed(
            attempt_id=attempt_id,
            score=scored.score_percent,
            correctness={q.question_id: q.is_correct for q in scored.per_question},
            now=now,
        )

        return FinalizeResult(
            attempt_id=attempt_id,
            student_id=student_id,
            test_id=test_id,
            score=scored.score_percent,
            correct_answers=scored.correct_count,
            max_questions=max_questions,
            submitted_at=now,
        )

    def read_back(self, attempt_id: str) -> FinalizeResult:
        """The stored outcome of an attempt that is already finalized."""
        attempt = self.repo.get_by_id(attempt_id)
        if attempt is None:
            raise NotFound(ErrorMessages.ATTEMPT_NOT_FOUND)
        correct = self.repo.count_correct_by_attempt([attempt_id]).get(attempt_id, 0)
        return FinalizeResult(
            attempt_id=attempt.id,
            student_id=attempt.student_id,
            test_id=attempt.test_id,
            score=attempt.score or 0,
            correct_answers=correct,
            max_questions=attempt.test.max_questions,
            submitted_at=ensure_timezone_aware(attempt.submitted_at),
            already_submitted=True,
        )

    def finalize_or_read_back(
        self,
        attempt_id: str,
        trigger: FinalizeTrigger,
        student_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> FinalizeResult:
        """Finalize, treating a lost race as success and returning the stored score."""
        try:
            return self.finalize(attempt_id, trigger, student_id=student_id, now=now)
        except AlreadySubmitted:
            return self.read_back(attempt_id)

    def submit(
        self, student_id: str, attempt_id: str, now: Optional[datetime] = None
    ) -> FinalizeResult:
        """
        Submit an attempt. Idempotent.

        A second submit, or one racing the expiry path, returns the stored
        score with ``already_submitted=True`` instead of an error.
        """
        return self.finalize_or_read_back(
            attempt_id, FinalizeTrigger.MANUAL_SUBMIT, student_id=student_id, now=now
        )

    def finalize_expired_for_test(
        self, student_id: str, test_id: str, now: Optional[datetime] = None
    ) -> List[FinalizeResult]:
        """Finalize the student's expired, still-open attempts at one test."""
        now = now or utc_now()
        expired_ids = [
            a.id
            for a in self.repo.list_stale_or_completable(student_id, test_id)
            if is_expired(a.expires_at, now)
        ]
        return [
            self.finalize_or_read_back(
                attempt_id, FinalizeTrigger.EXPIRED_ON_READ, student_id=student_id, now=now
            )
            for attempt_id in expired_ids
        ]

    # ------------------------------------------------------------------
    # Reads with lazy expiry
    # ------------------------------------------------------------------

    def get_question_view(
        self,
        student_id: str,
        attempt_id: str,
        index: int = 0,
        now: Optional[datetime] = None,
    ) -> QuestionView:
        """
        The question at ``index`` of a live attempt.

        Raises:
            NotFound: Attempt missing or not owned, or the test has no questions
            InvalidState: Attempt already submitted, or expired (it is
                finalized first and the score is attached to the error)
            ValidationError: Index outside the question list
        """
        now = now or utc_now()
        attempt = self._get_open_attempt(student_id, attempt_id, now)

        questions = self.catalog.list_questions(attempt.test_id)
        if not questions:
            raise NotFound(ErrorMessages.NO_QUESTIONS_IN_TEST)
        if index < 0 or index >= len(questions):
            raise ValidationError(
                ErrorMessages.question_index_out_of_range(index, len(questions))
            )

        question = questions[index]
        answer = self.repo.get_answer(attempt.id, question.id)

        return QuestionView(
            attempt=attempt,
            question=question,
            index=index,
            total_questions=len(questions),
            selected_option_id=answer.selected_option_id if answer else None,
            answered_count=self.repo.count_answered(attempt.id),
            max_questions=attempt.test.max_questions,
            remaining_seconds=remaining_seconds(attempt.expires_at, now),
        )

    def get_attempt_questions(
        self, student_id: str, attempt_id: str, now: Optional[datetime] = None
    ) -> AttemptQuestionsView:
        """Every question of a live attempt plus the student's previous answers."""
        now = now or utc_now()
        attempt = self._get_open_attempt(student_id, attempt_id, now)

        questions = self.catalog.list_questions(attempt.test_id)
        if not questions:
            raise NotFound(ErrorMessages.NO_QUESTIONS_IN_TEST)

        previous = self.repo.answer_map(attempt.id)
        return AttemptQuestionsView(
            attempt=attempt,
            questions=questions,
            previous_answers=previous,
            answered_count=sum(1 for v in previous.values() if v is not None),
            max_questions=attempt.test.max_questions,
            remaining_seconds=remaining_seconds(attempt.expires_at, now),
        )

    def review(self, student_id: str, attempt_id: str) -> AttemptReview:
        """
        Per-question review of a submitted attempt.

        Raises:
            NotFound: Attempt missing or not owned
            InvalidState: Attempt not yet submitted
        """
        attempt = self._get_attempt(attempt_id, student_id)
        if attempt.status != AttemptStatus.COMPLETED:
            raise InvalidState(ErrorMessages.REVIEW_NOT_AVAILABLE)

        answers = {a.question_id: a for a in self.repo.list_answers(attempt.id)}
        items = []
        for question in self.catalog.list_questions(attempt.test_id):
            answer = answers.get(question.id)
            selected = answer.selected_option_id if answer else None
            correct_option = next((o for o in question.options if o.is_correct), None)
            items.append(
                ReviewItem(
                    question=question,
                    selected_option_id=selected,
                    correct_option_id=correct_option.id if correct_option else None,
                    is_correct=bool(answer and answer.is_correct),
                    skipped=selected is None,
                )
            )

        return AttemptReview(
            attempt=attempt,
            test=attempt.test,
            correct_answers=sum(1 for item in items if item.is_correct),
            items=items,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_attempt(
        self, attempt_id: str, student_id: Optional[str] = None
    ) -> TestAttempt:
        if student_id is None:
            attempt = self.repo.get_by_id(attempt_id)
        else:
            attempt = self.repo.get_owned(attempt_id, student_id)
        if attempt is None:
            raise NotFound(ErrorMessages.ATTEMPT_NOT_FOUND)
        return attempt

    def _get_open_attempt(
        self, student_id: str, attempt_id: str, now: datetime
    ) -> TestAttempt:
        """Owned IN_PROGRESS attempt; expired ones are finalized before refusing."""
        attempt = self._get_attempt(attempt_id, student_id)

        if attempt.submitted_at is not None:
            stored = self.read_back(attempt.id)
            raise InvalidState(
                ErrorMessages.ATTEMPT_ALREADY_SUBMITTED, extra=stored.as_error_extra()
            )

        if is_expired(attempt.expires_at, now):
            result = self.finalize_or_read_back(
                attempt.id,
                FinalizeTrigger.EXPIRED_ON_READ,
                student_id=student_id,
                now=now,
            )
            raise InvalidState(ErrorMessages.ATTEMPT_TIME_UP, extra=result.as_error_extra())

        return attempt

    def _track_finalized(self, result: FinalizeResult, trigger: FinalizeTrigger) -> None:
        with graceful_failure(
            "track attempt finalized", logger, context={"attempt_id": result.attempt_id}
        ):
            AnalyticsTracker.track_attempt_finalized(
                student_id=result.student_id,
                attempt_id=result.attempt_id,
                score=result.score,
                correct_answers=result.correct_answers,
                trigger=trigger,
            )


def sweep_expired_attempts(
    db: Session,
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
    dry_run: bool = False,
) -> SweepResult:
    """
    Finalize IN_PROGRESS attempts whose time has run out.

    Lazy triggers already finalize an expired attempt the next time anyone
    touches it. This bounds how long an abandoned attempt stays open when
    nobody does. Each attempt is finalized in its own transaction, so one
    failure does not undo the rest of the batch.

    Args:
        db: Database session
        now: Cut-off instant (defaults to utc_now())
        batch_size: Maximum attempts per run
            (defaults to settings.STALE_ATTEMPT_SWEEP_BATCH_SIZE)
        dry_run: Only count what would be finalized

    Returns:
        SweepResult with counts and the ids examined
    """
    now = now or utc_now()
    batch_size = batch_size or settings.STALE_ATTEMPT_SWEEP_BATCH_SIZE
    manager = AttemptLifecycleManager(db)
    result = SweepResult()

    with handle_db_error(db, "list expired attempts"):
        expired_ids = [
            a.id for a in manager.repo.list_expired_in_progress(now, batch_size)
        ]
    result.examined = len(expired_ids)
    result.attempt_ids = expired_ids

    if dry_run:
        logger.info(f"Sweep dry run: {len(expired_ids)} expired attempts found")
        return result

    for attempt_id in expired_ids:
        try:
            manager.finalize(attempt_id, FinalizeTrigger.SWEEP, now=now)
            result.finalized += 1
        except AlreadySubmitted:
            result.already_submitted += 1

    logger.info(
        f"Sweep finished: examined={result.examined} finalized={result.finalized} "
        f"already_submitted={result.already_submitted}"
    )
    return result
