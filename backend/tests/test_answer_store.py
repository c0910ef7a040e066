"""
Tests for saving answers to an in-progress attempt.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from examhall.core.exceptions import (
    InvalidState,
    NotFound,
    StoreUnavailable,
    ValidationError,
)
from examhall.models import AttemptAnswer, AttemptStatus, TestAttempt
from examhall.repositories import AttemptRepository
from examhall.services.answer_store import save_answer
from examhall.services.catalog import QuestionCatalog
from examhall.services.lifecycle import AttemptLifecycleManager
from tests.conftest import (
    FIXED_NOW,
    correct_option,
    make_attempt,
    make_student,
    make_test_with_questions,
    wrong_option,
)


@pytest.fixture
def attempt(db_session, student, exam):
    return make_attempt(db_session, student, exam, started_at=FIXED_NOW)


def _answers(db_session, attempt_id):
    db_session.expire_all()
    return db_session.query(AttemptAnswer).filter_by(attempt_id=attempt_id).all()


class TestSaveAnswer:
    def test_first_save_creates_row(self, db_session, student, attempt, questions):
        option = correct_option(questions[0])

        saved = save_answer(
            db_session,
            student.id,
            attempt.id,
            questions[0].id,
            option.id,
            now=FIXED_NOW + timedelta(minutes=1),
        )

        assert saved.question_id == questions[0].id
        assert saved.selected_option_id == option.id
        rows = _answers(db_session, attempt.id)
        assert len(rows) == 1
        assert rows[0].selected_option_id == option.id
        assert rows[0].is_correct is None

    def test_second_save_overwrites(self, db_session, student, attempt, questions):
        question = questions[0]
        save_answer(
            db_session, student.id, attempt.id, question.id,
            wrong_option(question).id, now=FIXED_NOW,
        )
        save_answer(
            db_session, student.id, attempt.id, question.id,
            correct_option(question).id, now=FIXED_NOW + timedelta(seconds=30),
        )

        rows = _answers(db_session, attempt.id)
        assert len(rows) == 1
        assert rows[0].selected_option_id == correct_option(question).id

    def test_clear_keeps_row_with_null_selection(
        self, db_session, student, attempt, questions
    ):
        question = questions[0]
        save_answer(
            db_session, student.id, attempt.id, question.id,
            correct_option(question).id, now=FIXED_NOW,
        )
        saved = save_answer(
            db_session, student.id, attempt.id, question.id, None, now=FIXED_NOW
        )

        assert saved.selected_option_id is None
        rows = _answers(db_session, attempt.id)
        assert len(rows) == 1
        assert rows[0].selected_option_id is None
        assert AttemptRepository(db_session).count_answered(attempt.id) == 0

    def test_save_just_before_expiry_accepted(
        self, db_session, student, attempt, questions
    ):
        just_before = FIXED_NOW + timedelta(minutes=10) - timedelta(milliseconds=1)
        save_answer(
            db_session, student.id, attempt.id, questions[0].id,
            correct_option(questions[0]).id, now=just_before,
        )
        assert len(_answers(db_session, attempt.id)) == 1


class TestSaveAnswerRejections:
    def test_unknown_attempt(self, db_session, student, exam, questions):
        with pytest.raises(NotFound):
            save_answer(
                db_session, student.id, "missing", questions[0].id, None, now=FIXED_NOW
            )

    def test_attempt_of_another_student(self, db_session, attempt, questions):
        other = make_student(db_session, email="other@example.com")

        with pytest.raises(NotFound):
            save_answer(
                db_session, other.id, attempt.id, questions[0].id,
                correct_option(questions[0]).id, now=FIXED_NOW,
            )
        assert _answers(db_session, attempt.id) == []

    def test_expired_attempt(self, db_session, student, attempt, questions):
        at_expiry = FIXED_NOW + timedelta(minutes=10)

        with pytest.raises(InvalidState) as exc_info:
            save_answer(
                db_session, student.id, attempt.id, questions[0].id,
                correct_option(questions[0]).id, now=at_expiry,
            )

        assert "Time is up" in exc_info.value.detail
        assert _answers(db_session, attempt.id) == []

    def test_submitted_attempt(self, db_session, student, attempt, questions):
        AttemptRepository(db_session).mark_completed(
            attempt.id, score=0, correctness={}, now=FIXED_NOW
        )
        db_session.commit()

        with pytest.raises(InvalidState) as exc_info:
            save_answer(
                db_session, student.id, attempt.id, questions[0].id,
                correct_option(questions[0]).id, now=FIXED_NOW,
            )

        assert exc_info.value.detail == "Attempt already submitted."

    def test_question_from_another_test(
        self, db_session, student, chapter, attempt
    ):
        other_test = make_test_with_questions(db_session, chapter, title="Other")
        foreign_question = other_test.questions[0]

        with pytest.raises(NotFound):
            save_answer(
                db_session, student.id, attempt.id, foreign_question.id,
                correct_option(foreign_question).id, now=FIXED_NOW,
            )

    def test_option_from_another_question(
        self, db_session, student, attempt, questions
    ):
        with pytest.raises(ValidationError):
            save_answer(
                db_session, student.id, attempt.id, questions[0].id,
                correct_option(questions[1]).id, now=FIXED_NOW,
            )
        assert _answers(db_session, attempt.id) == []


class TestSaveAnswerStoreFailures:
    def test_store_failure_raises_store_unavailable(
        self, db_session, student, attempt, questions
    ):
        failure = OperationalError("COMMIT", {}, Exception("disk I/O error"))
        with patch.object(db_session, "commit", side_effect=failure):
            with pytest.raises(StoreUnavailable):
                save_answer(
                    db_session, student.id, attempt.id, questions[0].id,
                    correct_option(questions[0]).id, now=FIXED_NOW,
                )

        assert _answers(db_session, attempt.id) == []

    def test_tracking_failure_does_not_fail_save(
        self, db_session, student, attempt, questions
    ):
        with patch(
            "examhall.services.answer_store.AnalyticsTracker.track_answer_saved",
            side_effect=RuntimeError("tracker down"),
        ):
            saved = save_answer(
                db_session, student.id, attempt.id, questions[0].id,
                correct_option(questions[0]).id, now=FIXED_NOW,
            )

        assert saved.selected_option_id == correct_option(questions[0]).id
        assert len(_answers(db_session, attempt.id)) == 1


class TestSaveAnswerRacingFinalize:
    def test_submit_landing_mid_save_rejects_the_save(
        self, db_session, session_factory, student, attempt, questions
    ):
        """A submit that commits after the open check still blocks the write."""
        real_lookup = QuestionCatalog.get_question_in_test
        other = session_factory()

        def submit_then_lookup(catalog, test_id, question_id):
            AttemptLifecycleManager(other).submit(
                student.id, attempt.id, now=FIXED_NOW + timedelta(minutes=1)
            )
            return real_lookup(catalog, test_id, question_id)

        with patch.object(
            QuestionCatalog, "get_question_in_test", autospec=True,
            side_effect=submit_then_lookup,
        ):
            with pytest.raises(InvalidState) as exc_info:
                save_answer(
                    db_session, student.id, attempt.id, questions[0].id,
                    correct_option(questions[0]).id, now=FIXED_NOW,
                )

        assert exc_info.value.detail == "Attempt already submitted."
        assert _answers(db_session, attempt.id) == []
        stored = db_session.get(TestAttempt, attempt.id)
        assert stored.status == AttemptStatus.COMPLETED
        assert stored.score == 0

    def test_finalize_after_save_scores_the_saved_answer(
        self, db_session, session_factory, student, attempt, questions
    ):
        other = session_factory()
        # Loaded before the save commits
        assert other.get(TestAttempt, attempt.id).submitted_at is None

        save_answer(
            db_session, student.id, attempt.id, questions[0].id,
            correct_option(questions[0]).id, now=FIXED_NOW,
        )
        result = AttemptLifecycleManager(other).submit(
            student.id, attempt.id, now=FIXED_NOW + timedelta(minutes=1)
        )

        assert result.score == 25
        assert result.correct_answers == 1
        answers = _answers(db_session, attempt.id)
        assert [a.is_correct for a in answers] == [True]
