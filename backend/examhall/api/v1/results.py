"""
Result endpoints over a student's completed attempts.
"""
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from examhall.core.auth import CallerIdentity, require_student
from examhall.core.clock import ensure_timezone_aware
from examhall.core.config import settings
from examhall.models import get_db
from examhall.schemas.results import (
    AttemptResultResponse,
    CourseResultsResponse,
    PaginatedResultsResponse,
    ResultsSummary,
    TestInfoResponse,
    TestResultsResponse,
    TestStatisticsResponse,
)
from examhall.services.results import AttemptResult, get_test_results, list_results

router = APIRouter()


def build_attempt_result_response(result: AttemptResult) -> AttemptResultResponse:
    attempt = result.attempt
    test = result.test
    chapter = test.chapter
    return AttemptResultResponse(
        id=attempt.id,
        test_id=test.id,
        test_title=test.title,
        chapter_title=chapter.title if chapter else None,
        course_title=chapter.course.title if chapter and chapter.course else None,
        started_at=ensure_timezone_aware(attempt.started_at),
        submitted_at=(
            ensure_timezone_aware(attempt.submitted_at)
            if attempt.submitted_at
            else None
        ),
        score=attempt.score,
        max_questions=test.max_questions,
        answered_questions=result.answered_questions,
        correct_answers=result.correct_answers,
        accuracy=result.accuracy,
    )


def _build_results(results: List[AttemptResult]) -> List[AttemptResultResponse]:
    return [build_attempt_result_response(r) for r in results]


@router.get("/results", response_model=PaginatedResultsResponse)
def get_results(
    limit: int = Query(
        default=settings.DEFAULT_RESULTS_PAGE_SIZE,
        ge=1,
        le=settings.MAX_RESULTS_PAGE_SIZE,
        description=f"Number of results per page (max {settings.MAX_RESULTS_PAGE_SIZE})",
    ),
    offset: int = Query(default=0, ge=0, description="Number of results to skip"),
    student: CallerIdentity = Depends(require_student),
    db: Session = Depends(get_db),
):
    """
    Get the student's completed attempts, most recently submitted first.

    The summary covers every completed attempt, not only the current page.
    """
    page = list_results(db, student.user_id, limit=limit, offset=offset)
    return PaginatedResultsResponse(
        summary=ResultsSummary(
            total_results=page.total_results, average_score=page.average_score
        ),
        results=_build_results(page.items),
        course_results=[
            CourseResultsResponse(
                course_id=c.course_id,
                course_title=c.course_title,
                total_tests=c.total_tests,
                average_score=c.average_score,
            )
            for c in page.courses
        ],
        limit=page.limit,
        offset=page.offset,
        has_more=page.has_more,
    )


@router.get("/results/tests/{test_id}", response_model=TestResultsResponse)
def get_results_for_test(
    test_id: str,
    student: CallerIdentity = Depends(require_student),
    db: Session = Depends(get_db),
):
    """
    Get the student's statistics and attempts for one test.

    Expired attempts still open for this test are finalized first.
    """
    results = get_test_results(db, student.user_id, test_id)
    test = results.test
    chapter = test.chapter

    statistics = None
    if results.statistics is not None:
        s = results.statistics
        statistics = TestStatisticsResponse(
            total_attempts=s.total_attempts,
            average_score=s.average_score,
            best_score=s.best_score,
            latest_score=s.latest_score,
            latest_accuracy=s.latest_accuracy,
            time_taken_minutes=s.time_taken_minutes,
        )

    return TestResultsResponse(
        test=TestInfoResponse(
            id=test.id,
            title=test.title,
            max_questions=test.max_questions,
            duration_minutes=test.duration_minutes,
            chapter_title=chapter.title if chapter else None,
            course_title=chapter.course.title if chapter and chapter.course else None,
        ),
        statistics=statistics,
        attempts=_build_results(results.attempts),
    )
