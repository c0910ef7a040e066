"""
Attempt scoring.

Turns a test's authoritative question list and the answers collected for an
attempt into per-question outcomes and an overall percentage. This is the
only code that computes an attempt's ``score``; finalize persists whatever
it returns.

Rules
=====
- A question is correct iff an answer exists and its selected option is
  flagged correct. Unanswered (or cleared) questions are skipped, not wrong.
- Percentage = round-half-up(100 * correct / total), 0 when total is 0.
- Total is the test's ``max_questions`` when given, otherwise the number of
  questions passed in.

Everything here is pure and deterministic: no I/O, no clock.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
)

if TYPE_CHECKING:
    from examhall.models.models import Question

logger = logging.getLogger(__name__)


class QuestionOutcome(str, Enum):
    """Outcome of a single question after scoring."""

    CORRECT = "correct"
    WRONG = "wrong"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class QuestionKey:
    """Answer key for one question, detached from the ORM."""

    question_id: str
    correct_option_ids: FrozenSet[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ScoredQuestion:
    """Scoring outcome for one question."""

    question_id: str
    selected_option_id: Optional[str]
    outcome: QuestionOutcome

    @property
    def is_correct(self) -> bool:
        return self.outcome is QuestionOutcome.CORRECT


@dataclass
class ScoreResult:
    """Result of scoring an attempt."""

    correct_count: int
    total_questions: int
    score_percent: int
    per_question: List[ScoredQuestion]

    @property
    def skipped_count(self) -> int:
        return sum(1 for q in self.per_question if q.outcome is QuestionOutcome.SKIPPED)

    @property
    def wrong_count(self) -> int:
        return sum(1 for q in self.per_question if q.outcome is QuestionOutcome.WRONG)


def round_half_up_div(numerator: int, denominator: int) -> int:
    """
    numerator / denominator rounded to the nearest integer, halves up.

    Returns 0 when the denominator is 0.
    """
    if denominator <= 0:
        return 0
    if numerator < 0:
        raise ValueError("numerator cannot be negative")
    return (2 * numerator + denominator) // (2 * denominator)


def round_half_up_percent(numerator: int, denominator: int) -> int:
    """
    Integer percentage of numerator/denominator, halves rounded up.

    Integer arithmetic keeps 12.5 -> 13 exact, where ``round()`` would
    apply banker's rounding and floats could drift.

    Example:
        >>> round_half_up_percent(1, 8)
        13
        >>> round_half_up_percent(2, 3)
        67
        >>> round_half_up_percent(0, 0)
        0
    """
    return round_half_up_div(100 * numerator, denominator)


def answer_key_from_questions(questions: Iterable["Question"]) -> List[QuestionKey]:
    """
    Build answer keys from ORM questions (with options loaded).

    Question types outside the auto-scored set still get a key, with no
    correct options, so they count towards the total but never score.
    """
    from examhall.models.models import AUTO_SCORED_QUESTION_TYPES

    keys = []
    for question in questions:
        if question.question_type in AUTO_SCORED_QUESTION_TYPES:
            correct = frozenset(o.id for o in question.options if o.is_correct)
        else:
            correct = frozenset()
        keys.append(QuestionKey(question_id=question.id, correct_option_ids=correct))
    return keys


class ScoringStrategy(Protocol):
    """Protocol for attempt scoring strategies."""

    def score(
        self,
        questions: Sequence[QuestionKey],
        answers: Mapping[str, Optional[str]],
        max_questions: Optional[int] = None,
    ) -> ScoreResult:
        ...


class PercentCorrectScoring:
    """
    Unweighted percent-correct scoring.

    Every question is worth the same; there is no negative marking.
    """

    def score(
        self,
        questions: Sequence[QuestionKey],
        answers: Mapping[str, Optional[str]],
        max_questions: Optional[int] = None,
    ) -> ScoreResult:
        """
        Score an attempt.

        Args:
            questions: Authoritative ordered answer keys for the test
            answers: question_id -> selected option id (None if cleared)
            max_questions: The test's authoritative question count, if set

        Returns:
            ScoreResult with per-question outcomes in question order
        """
        per_question: List[ScoredQuestion] = []
        correct_count = 0

        for key in questions:
            selected = answers.get(key.question_id)
            if selected is None:
                outcome = QuestionOutcome.SKIPPED
            elif selected in key.correct_option_ids:
                outcome = QuestionOutcome.CORRECT
                correct_count += 1
            else:
                outcome = QuestionOutcome.WRONG
            per_question.append(
                ScoredQuestion(
                    question_id=key.question_id,
                    selected_option_id=selected,
                    outcome=outcome,
                )
            )

        total = max_questions if max_questions else len(questions)
        if correct_count > total:
            # max_questions below the real question count is an authoring error
            logger.warning(
                f"Correct answers ({correct_count}) exceed question total ({total}); "
                "capping score at 100"
            )
        score_percent = min(100, round_half_up_percent(correct_count, total))

        return ScoreResult(
            correct_count=correct_count,
            total_questions=total,
            score_percent=score_percent,
            per_question=per_question,
        )


# Default scoring strategy
_default_strategy: ScoringStrategy = PercentCorrectScoring()


def set_scoring_strategy(strategy: ScoringStrategy) -> None:
    """Replace the global scoring strategy."""
    global _default_strategy
    _default_strategy = strategy


def score_attempt(
    questions: Sequence[QuestionKey],
    answers: Mapping[str, Optional[str]],
    max_questions: Optional[int] = None,
) -> ScoreResult:
    """
    Score an attempt with the configured strategy.

    Example:
        >>> keys = [QuestionKey("q1", frozenset({"a"})), QuestionKey("q2", frozenset({"c"}))]
        >>> score_attempt(keys, {"q1": "a", "q2": "d"}).score_percent
        50
    """
    return _default_strategy.score(questions, answers, max_questions)
