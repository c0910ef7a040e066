"""
Pydantic schemas for request/response validation.
"""
from .attempts import (
    StartAttemptResponse,
    SaveAnswerRequest,
    SaveAnswerResponse,
    AttemptQuestionResponse,
    AttemptQuestionsResponse,
    SubmitAttemptResponse,
    AttemptReviewResponse,
)
from .results import (
    PaginatedResultsResponse,
    TestResultsResponse,
)

__all__ = [
    "StartAttemptResponse",
    "SaveAnswerRequest",
    "SaveAnswerResponse",
    "AttemptQuestionResponse",
    "AttemptQuestionsResponse",
    "SubmitAttemptResponse",
    "AttemptReviewResponse",
    "PaginatedResultsResponse",
    "TestResultsResponse",
]
