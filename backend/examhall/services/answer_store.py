"""
Answer store: per-(attempt, question) upsert of a student's current selection.

Writes are gated on the attempt still being open. An attempt whose expiry
has passed but which nobody has finalized yet is treated as closed; the
student is told time is up and the attempt is left for finalize to score.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from examhall.core.analytics import AnalyticsTracker
from examhall.core.clock import is_expired, utc_now
from examhall.core.db_error_handling import handle_db_error
from examhall.core.error_responses import ErrorMessages
from examhall.core.exceptions import InvalidState, NotFound, ValidationError
from examhall.core.graceful_failure import graceful_failure
from examhall.models import AttemptAnswer, AttemptStatus
from examhall.repositories.attempts import AttemptRepository
from examhall.services.catalog import QuestionCatalog

logger = logging.getLogger(__name__)

# A concurrent first save of the same question can hit the unique
# constraint once; the retry then finds the row and updates it.
_UPSERT_ATTEMPTS = 2


@dataclass
class SavedAnswer:
    """Outcome of a successful save."""

    attempt_id: str
    question_id: str
    selected_option_id: Optional[str]
    answered_at: datetime


def _upsert(
    db: Session,
    student_id: str,
    attempt_id: str,
    question_id: str,
    selected_option_id: Optional[str],
    now: datetime,
) -> AttemptAnswer:
    """Validate and stage the upsert. Caller commits."""
    repo = AttemptRepository(db)
    catalog = QuestionCatalog(db)

    attempt = repo.get_owned(attempt_id, student_id)
    if attempt is None:
        raise NotFound(ErrorMessages.ATTEMPT_NOT_FOUND)

    if attempt.status != AttemptStatus.IN_PROGRESS or attempt.submitted_at is not None:
        raise InvalidState(ErrorMessages.ATTEMPT_ALREADY_SUBMITTED)

    if is_expired(attempt.expires_at, now):
        raise InvalidState(ErrorMessages.ATTEMPT_TIME_UP)

    question = catalog.get_question_in_test(attempt.test_id, question_id)
    if question is None:
        raise NotFound(ErrorMessages.QUESTION_NOT_IN_TEST)

    if selected_option_id is not None and selected_option_id not in {
        option.id for option in question.options
    }:
        raise ValidationError(ErrorMessages.OPTION_NOT_IN_QUESTION)

    # Serializes with finalize on the attempt row
    if not repo.claim_open_attempt(attempt_id):
        raise InvalidState(ErrorMessages.ATTEMPT_ALREADY_SUBMITTED)

    answer = repo.get_answer(attempt_id, question_id)
    if answer is None:
        answer = AttemptAnswer(attempt_id=attempt_id, question_id=question_id)
        db.add(answer)
    answer.selected_option_id = selected_option_id
    answer.answered_at = now
    db.flush()
    return answer


def save_answer(
    db: Session,
    student_id: str,
    attempt_id: str,
    question_id: str,
    selected_option_id: Optional[str],
    now: Optional[datetime] = None,
) -> SavedAnswer:
    """
    Record the student's current selection for one question.

    A second save for the same question overwrites the first. Passing
    ``selected_option_id=None`` clears the selection but keeps the row.
    ``is_correct`` is never touched here.

    Args:
        db: Database session
        student_id: Authenticated student
        attempt_id: Attempt being answered
        question_id: Question within the attempt's test
        selected_option_id: Chosen option, or None to clear
        now: Current instant (defaults to utc_now())

    Returns:
        SavedAnswer describing the stored row

    Raises:
        NotFound: Attempt missing or not owned, or question not in the test
        InvalidState: Attempt submitted, or its time is up
        ValidationError: Option does not belong to the question
        StoreUnavailable: The store failed; nothing was written
    """
    now = now or utc_now()

    for attempt_number in range(1, _UPSERT_ATTEMPTS + 1):
        with handle_db_error(db, "save answer"):
            try:
                _upsert(db, student_id, attempt_id, question_id, selected_option_id, now)
                db.commit()
            except IntegrityError:
                db.rollback()
                if attempt_number == _UPSERT_ATTEMPTS:
                    raise
                logger.info(
                    f"Concurrent first save for attempt {attempt_id} "
                    f"question {question_id}; retrying as update"
                )
                continue
        break

    with graceful_failure("track answer saved", logger):
        AnalyticsTracker.track_answer_saved(
            student_id=student_id,
            attempt_id=attempt_id,
            question_id=question_id,
            cleared=selected_option_id is None,
        )

    return SavedAnswer(
        attempt_id=attempt_id,
        question_id=question_id,
        selected_option_id=selected_option_id,
        answered_at=now,
    )
