"""
Pydantic schemas for result endpoints.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from examhall.schemas.attempts import CamelModel


class AttemptResultResponse(CamelModel):
    """A single completed attempt."""

    id: str = Field(..., description="Attempt ID")
    test_id: str = Field(..., description="Test ID")
    test_title: str = Field(..., description="Test title")
    chapter_title: Optional[str] = Field(None, description="Chapter the test belongs to")
    course_title: Optional[str] = Field(None, description="Course the test belongs to")
    started_at: datetime = Field(..., description="When the attempt was created")
    submitted_at: Optional[datetime] = Field(None, description="When it was finalized")
    score: Optional[int] = Field(None, description="Score as a percentage")
    max_questions: int = Field(..., description="Authoritative question count")
    answered_questions: int = Field(..., description="Questions with a selection")
    correct_answers: int = Field(..., description="Correctly answered questions")
    accuracy: int = Field(
        ..., description="Correct answers as a percentage of answered questions"
    )


class ResultsSummary(CamelModel):
    total_results: int = Field(..., description="Completed attempts in total")
    average_score: int = Field(..., description="Mean score across all of them")


class CourseResultsResponse(CamelModel):
    course_id: str
    course_title: str
    total_tests: int = Field(..., description="Completed attempts in this course")
    average_score: int = Field(..., description="Mean score in this course, 0 if none")


class PaginatedResultsResponse(CamelModel):
    """Schema for paginated results."""

    summary: ResultsSummary
    course_results: List[CourseResultsResponse] = Field(
        default_factory=list, description="Totals per enrolled course"
    )
    results: List[AttemptResultResponse] = Field(
        ..., description="Completed attempts, most recently submitted first"
    )
    limit: int = Field(..., description="Page size used")
    offset: int = Field(..., description="Offset used")
    has_more: bool = Field(..., description="Whether more results exist after this page")


class TestInfoResponse(CamelModel):
    id: str
    title: str
    max_questions: int
    duration_minutes: int
    chapter_title: Optional[str] = None
    course_title: Optional[str] = None


class TestStatisticsResponse(CamelModel):
    """Aggregates over a student's completed attempts at one test."""

    total_attempts: int
    average_score: int
    best_score: int
    latest_score: Optional[int] = None
    latest_accuracy: int
    time_taken_minutes: Optional[int] = Field(
        None, description="Minutes taken by the latest attempt, rounded up"
    )


class TestResultsResponse(CamelModel):
    """Schema for a student's results at one test."""

    test: TestInfoResponse
    statistics: Optional[TestStatisticsResponse] = Field(
        None, description="Absent when there are no completed attempts"
    )
    attempts: List[AttemptResultResponse]
