"""
Pydantic schemas for attempt endpoints.

Fields are snake_case in Python and camelCase on the wire.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class OptionResponse(CamelModel):
    """Answer option as shown to a student. Correctness is never exposed."""

    id: str = Field(..., description="Option ID")
    text: str = Field(..., description="Option text")
    key: str = Field(..., description="Display letter (A, B, C, ...)")


class QuestionResponse(CamelModel):
    """Question as shown during an attempt."""

    id: str = Field(..., description="Question ID")
    type: str = Field(..., description="Question type (MCQ, TRUE_FALSE, ...)")
    question_text: str = Field(..., description="Question text")
    options: List[OptionResponse] = Field(
        default_factory=list, description="Options in display order"
    )


class StartAttemptResponse(CamelModel):
    """Schema for starting or resuming an attempt."""

    attempt_id: str = Field(..., description="Attempt ID")
    test_id: str = Field(..., description="Test ID")
    started_at: datetime = Field(..., description="When the attempt was created")
    expires_at: datetime = Field(..., description="Fixed expiry instant")
    remaining_seconds: int = Field(..., ge=0, description="Whole seconds left")
    resumed: bool = Field(
        ..., description="True if an existing in-progress attempt was returned"
    )
    max_questions: int = Field(..., description="Authoritative question count")
    duration_minutes: int = Field(..., description="Test duration in minutes")


class SaveAnswerRequest(CamelModel):
    """Schema for saving the current selection for one question."""

    question_id: str = Field(..., min_length=1, description="Question ID")
    selected_option_id: Optional[str] = Field(
        None, description="Selected option ID, or null to clear the selection"
    )

    @field_validator("question_id")
    @classmethod
    def strip_question_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Question ID cannot be blank")
        return v

    @field_validator("selected_option_id")
    @classmethod
    def blank_option_clears(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class SaveAnswerResponse(CamelModel):
    """Schema returned after an answer is stored."""

    saved: bool = Field(True, description="Always true on success")
    question_id: str = Field(..., description="Question ID")
    selected_option_id: Optional[str] = Field(
        None, description="Stored selection (null if cleared)"
    )
    answered_at: datetime = Field(..., description="When the selection was stored")


class AttemptQuestionResponse(CamelModel):
    """One question of a live attempt, navigated by index."""

    attempt_id: str = Field(..., description="Attempt ID")
    test_id: str = Field(..., description="Test ID")
    index: int = Field(..., ge=0, description="Zero-based question index")
    total_questions: int = Field(..., description="Number of questions in the test")
    question: QuestionResponse = Field(..., description="Question at this index")
    selected_option_id: Optional[str] = Field(
        None, description="Current selection for this question"
    )
    answered_count: int = Field(..., description="Questions with a selection")
    max_questions: int = Field(..., description="Authoritative question count")
    remaining_seconds: int = Field(..., ge=0, description="Whole seconds left")
    expires_at: datetime = Field(..., description="Fixed expiry instant")


class AttemptQuestionsResponse(CamelModel):
    """Every question of a live attempt with previous selections."""

    attempt_id: str = Field(..., description="Attempt ID")
    test_id: str = Field(..., description="Test ID")
    questions: List[QuestionResponse] = Field(..., description="Questions in order")
    previous_answers: Dict[str, Optional[str]] = Field(
        default_factory=dict, description="question ID -> selected option ID"
    )
    answered_count: int = Field(..., description="Questions with a selection")
    total_questions: int = Field(..., description="Number of questions in the test")
    max_questions: int = Field(..., description="Authoritative question count")
    remaining_seconds: int = Field(..., ge=0, description="Whole seconds left")
    started_at: datetime = Field(..., description="When the attempt was created")
    expires_at: datetime = Field(..., description="Fixed expiry instant")


class SubmitAttemptResponse(CamelModel):
    """Schema for a finalized attempt."""

    attempt_id: str = Field(..., description="Attempt ID")
    test_id: str = Field(..., description="Test ID")
    score: int = Field(..., ge=0, le=100, description="Score as a percentage")
    correct_answers: int = Field(..., ge=0, description="Correctly answered questions")
    max_questions: int = Field(..., description="Authoritative question count")
    submitted_at: datetime = Field(..., description="When the attempt was finalized")
    already_submitted: bool = Field(
        ..., description="True if the attempt had been finalized before this call"
    )


class ReviewOptionResponse(OptionResponse):
    is_correct: bool = Field(..., description="Whether this is the correct option")


class ReviewItemResponse(CamelModel):
    question_id: str
    question_text: str
    type: str
    options: List[ReviewOptionResponse]
    selected_option_id: Optional[str] = None
    correct_option_id: Optional[str] = None
    is_correct: bool
    skipped: bool


class AttemptReviewResponse(CamelModel):
    """Per-question review of a submitted attempt."""

    attempt_id: str = Field(..., description="Attempt ID")
    test_id: str = Field(..., description="Test ID")
    test_title: str = Field(..., description="Test title")
    score: int = Field(..., description="Score as a percentage")
    correct_answers: int = Field(..., description="Correctly answered questions")
    max_questions: int = Field(..., description="Authoritative question count")
    submitted_at: datetime = Field(..., description="When the attempt was finalized")
    items: List[ReviewItemResponse] = Field(..., description="Questions in order")
