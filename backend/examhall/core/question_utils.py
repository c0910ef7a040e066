"""
Utility functions for turning Question models into response schemas.
"""
from typing import List

from examhall.models.models import Question, QuestionOption
from examhall.schemas.attempts import (
    OptionResponse,
    QuestionResponse,
    ReviewOptionResponse,
)


def option_key(index: int) -> str:
    """Display letter for the option at ``index`` (0 -> "A")."""
    return chr(ord("A") + index)


def options_to_response(options: List[QuestionOption]) -> List[OptionResponse]:
    return [
        OptionResponse(id=option.id, text=option.option_text, key=option_key(i))
        for i, option in enumerate(options)
    ]


def question_to_response(question: Question) -> QuestionResponse:
    """
    Convert a Question model to the schema shown during an attempt.

    Options keep their authored order; which one is correct is left out.

    Args:
        question: Question with its options loaded

    Returns:
        QuestionResponse schema
    """
    return QuestionResponse(
        id=question.id,
        type=question.question_type.value,
        question_text=question.question_text,
        options=options_to_response(question.options),
    )


def review_options_to_response(
    options: List[QuestionOption],
) -> List[ReviewOptionResponse]:
    """Options with correctness markers, only for submitted attempts."""
    return [
        ReviewOptionResponse(
            id=option.id,
            text=option.option_text,
            key=option_key(i),
            is_correct=option.is_correct,
        )
        for i, option in enumerate(options)
    ]
