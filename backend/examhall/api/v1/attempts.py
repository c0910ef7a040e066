"""
Test attempt endpoints: start, answer, navigate, submit and review.
"""
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from examhall.core.auth import CallerIdentity, require_student
from examhall.core.clock import ensure_timezone_aware
from examhall.core.question_utils import (
    question_to_response,
    review_options_to_response,
)
from examhall.models import get_db
from examhall.schemas.attempts import (
    AttemptQuestionResponse,
    AttemptQuestionsResponse,
    AttemptReviewResponse,
    ReviewItemResponse,
    SaveAnswerRequest,
    SaveAnswerResponse,
    StartAttemptResponse,
    SubmitAttemptResponse,
)
from examhall.services.answer_store import save_answer
from examhall.services.lifecycle import AttemptLifecycleManager, FinalizeResult

router = APIRouter()


def build_submit_response(result: FinalizeResult) -> SubmitAttemptResponse:
    return SubmitAttemptResponse(
        attempt_id=result.attempt_id,
        test_id=result.test_id,
        score=result.score,
        correct_answers=result.correct_answers,
        max_questions=result.max_questions,
        submitted_at=result.submitted_at,
        already_submitted=result.already_submitted,
    )


@router.post(
    "/tests/{test_id}/start",
    response_model=StartAttemptResponse,
    status_code=status.HTTP_201_CREATED,
    responses={200: {"description": "An in-progress attempt was resumed"}},
)
def start_attempt(
    test_id: str,
    response: Response,
    student: CallerIdentity = Depends(require_student),
    db: Session = Depends(get_db),
):
    """
    Start a test, or resume the student's live attempt at it.

    Leftover attempts that expired, or were fully answered but never
    submitted, are finalized before the decision is made. Returns 201 when
    a new attempt is created and 200 when an existing one is resumed.
    """
    result = AttemptLifecycleManager(db).start_attempt(student.user_id, test_id)
    if result.resumed:
        response.status_code = status.HTTP_200_OK

    attempt = result.attempt
    return StartAttemptResponse(
        attempt_id=attempt.id,
        test_id=attempt.test_id,
        started_at=ensure_timezone_aware(attempt.started_at),
        expires_at=ensure_timezone_aware(attempt.expires_at),
        remaining_seconds=result.remaining_seconds,
        resumed=result.resumed,
        max_questions=result.test.max_questions,
        duration_minutes=result.test.duration_minutes,
    )


@router.post("/attempts/{attempt_id}/answers", response_model=SaveAnswerResponse)
def save_attempt_answer(
    attempt_id: str,
    payload: SaveAnswerRequest,
    student: CallerIdentity = Depends(require_student),
    db: Session = Depends(get_db),
):
    """
    Save (or clear) the selection for one question of an in-progress attempt.

    A later save for the same question overwrites the earlier one.
    """
    saved = save_answer(
        db,
        student_id=student.user_id,
        attempt_id=attempt_id,
        question_id=payload.question_id,
        selected_option_id=payload.selected_option_id,
    )
    return SaveAnswerResponse(
        saved=True,
        question_id=saved.question_id,
        selected_option_id=saved.selected_option_id,
        answered_at=saved.answered_at,
    )


@router.get("/attempts/{attempt_id}", response_model=AttemptQuestionResponse)
def get_attempt_question(
    attempt_id: str,
    index: int = Query(default=0, ge=0, description="Zero-based question index"),
    student: CallerIdentity = Depends(require_student),
    db: Session = Depends(get_db),
):
    """
    Get one question of an in-progress attempt with the remaining time.

    Reading an expired attempt finalizes it and answers 409 with the score.
    """
    view = AttemptLifecycleManager(db).get_question_view(
        student.user_id, attempt_id, index=index
    )
    return AttemptQuestionResponse(
        attempt_id=view.attempt.id,
        test_id=view.attempt.test_id,
        index=view.index,
        total_questions=view.total_questions,
        question=question_to_response(view.question),
        selected_option_id=view.selected_option_id,
        answered_count=view.answered_count,
        max_questions=view.max_questions,
        remaining_seconds=view.remaining_seconds,
        expires_at=ensure_timezone_aware(view.attempt.expires_at),
    )


@router.get(
    "/attempts/{attempt_id}/questions", response_model=AttemptQuestionsResponse
)
def get_attempt_questions(
    attempt_id: str,
    student: CallerIdentity = Depends(require_student),
    db: Session = Depends(get_db),
):
    """Get every question of an in-progress attempt with previous selections."""
    view = AttemptLifecycleManager(db).get_attempt_questions(
        student.user_id, attempt_id
    )
    return AttemptQuestionsResponse(
        attempt_id=view.attempt.id,
        test_id=view.attempt.test_id,
        questions=[question_to_response(q) for q in view.questions],
        previous_answers=view.previous_answers,
        answered_count=view.answered_count,
        total_questions=len(view.questions),
        max_questions=view.max_questions,
        remaining_seconds=view.remaining_seconds,
        started_at=ensure_timezone_aware(view.attempt.started_at),
        expires_at=ensure_timezone_aware(view.attempt.expires_at),
    )


@router.put("/attempts/{attempt_id}/submit", response_model=SubmitAttemptResponse)
def submit_attempt(
    attempt_id: str,
    student: CallerIdentity = Depends(require_student),
    db: Session = Depends(get_db),
):
    """
    Submit an attempt and return its score.

    Idempotent: submitting again, or after the attempt was closed on expiry,
    returns the stored score with ``alreadySubmitted: true``.
    """
    result = AttemptLifecycleManager(db).submit(student.user_id, attempt_id)
    return build_submit_response(result)


@router.get("/attempts/{attempt_id}/review", response_model=AttemptReviewResponse)
def review_attempt(
    attempt_id: str,
    student: CallerIdentity = Depends(require_student),
    db: Session = Depends(get_db),
):
    """Per-question review of a submitted attempt, including correct options."""
    review = AttemptLifecycleManager(db).review(student.user_id, attempt_id)
    return AttemptReviewResponse(
        attempt_id=review.attempt.id,
        test_id=review.test.id,
        test_title=review.test.title,
        score=review.attempt.score or 0,
        correct_answers=review.correct_answers,
        max_questions=review.test.max_questions,
        submitted_at=ensure_timezone_aware(review.attempt.submitted_at),
        items=[
            ReviewItemResponse(
                question_id=item.question.id,
                question_text=item.question.question_text,
                type=item.question.question_type.value,
                options=review_options_to_response(item.question.options),
                selected_option_id=item.selected_option_id,
                correct_option_id=item.correct_option_id,
                is_correct=item.is_correct,
                skipped=item.skipped,
            )
            for item in review.items
        ],
    )
