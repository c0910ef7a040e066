"""
Tests for the attempt endpoints.
"""
from datetime import timedelta

import pytest

from examhall.core.clock import utc_now
from examhall.core.security import create_access_token
from examhall.models import AttemptStatus, TestAttempt
from tests.conftest import (
    answer_question,
    correct_option,
    make_attempt,
    make_student,
    wrong_option,
)


def _headers_for(student):
    token = create_access_token({"user_id": student.id, "role": "student"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def started(client, auth_headers, exam):
    """Start the exam through the API and return the response body."""
    response = client.post(f"/v1/tests/{exam.id}/start", headers=auth_headers)
    assert response.status_code == 201
    return response.json()


class TestStartEndpoint:
    """Tests for POST /v1/tests/{test_id}/start."""

    def test_start_creates_attempt(self, client, auth_headers, exam):
        response = client.post(f"/v1/tests/{exam.id}/start", headers=auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["testId"] == exam.id
        assert data["resumed"] is False
        assert data["maxQuestions"] == 4
        assert data["durationMinutes"] == 10
        assert 590 <= data["remainingSeconds"] <= 600
        assert "attemptId" in data
        assert "expiresAt" in data

    def test_second_start_resumes(self, client, auth_headers, exam, started):
        response = client.post(f"/v1/tests/{exam.id}/start", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["resumed"] is True
        assert data["attemptId"] == started["attemptId"]
        assert data["expiresAt"] == started["expiresAt"]

    def test_start_after_expiry_creates_new_attempt(
        self, client, auth_headers, db_session, student, exam
    ):
        stale = make_attempt(
            db_session, student, exam, started_at=utc_now() - timedelta(hours=1)
        )

        response = client.post(f"/v1/tests/{exam.id}/start", headers=auth_headers)

        assert response.status_code == 201
        assert response.json()["attemptId"] != stale.id
        db_session.expire_all()
        assert db_session.get(TestAttempt, stale.id).status == AttemptStatus.COMPLETED

    def test_unknown_test(self, client, auth_headers, enrollment):
        response = client.post("/v1/tests/missing/start", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["kind"] == "NotFound"

    def test_not_enrolled(self, client, db_session, exam):
        outsider = make_student(db_session, email="outsider@example.com")

        response = client.post(
            f"/v1/tests/{exam.id}/start", headers=_headers_for(outsider)
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "Test not found."


class TestAccessGuard:
    def test_missing_token(self, client, exam):
        response = client.post(f"/v1/tests/{exam.id}/start")

        assert response.status_code == 401
        assert response.json()["kind"] == "Unauthorized"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, client, exam):
        response = client.post(
            f"/v1/tests/{exam.id}/start",
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid authentication token."

    def test_expired_token(self, client, student, exam):
        token = create_access_token(
            {"user_id": student.id, "role": "student"},
            expires_delta=timedelta(minutes=-1),
        )

        response = client.post(
            f"/v1/tests/{exam.id}/start", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401

    def test_admin_cannot_take_tests(self, client, admin_headers, exam):
        response = client.post(f"/v1/tests/{exam.id}/start", headers=admin_headers)

        assert response.status_code == 401
        assert response.json()["detail"] == "Only students can take tests."

    def test_token_without_role(self, client, student, exam):
        token = create_access_token({"user_id": student.id})

        response = client.post(
            f"/v1/tests/{exam.id}/start", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token payload."


class TestSaveAnswerEndpoint:
    """Tests for POST /v1/attempts/{attempt_id}/answers."""

    def test_save_answer(self, client, auth_headers, started, questions):
        option = correct_option(questions[0])

        response = client.post(
            f"/v1/attempts/{started['attemptId']}/answers",
            json={"questionId": questions[0].id, "selectedOptionId": option.id},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["saved"] is True
        assert data["questionId"] == questions[0].id
        assert data["selectedOptionId"] == option.id

    def test_blank_option_clears_selection(self, client, auth_headers, started, questions):
        response = client.post(
            f"/v1/attempts/{started['attemptId']}/answers",
            json={"questionId": questions[0].id, "selectedOptionId": "  "},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["selectedOptionId"] is None

    def test_missing_question_id(self, client, auth_headers, started):
        response = client.post(
            f"/v1/attempts/{started['attemptId']}/answers",
            json={"selectedOptionId": "x"},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["kind"] == "ValidationError"

    def test_option_of_other_question(self, client, auth_headers, started, questions):
        response = client.post(
            f"/v1/attempts/{started['attemptId']}/answers",
            json={
                "questionId": questions[0].id,
                "selectedOptionId": correct_option(questions[1]).id,
            },
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["kind"] == "ValidationError"

    def test_unknown_question(self, client, auth_headers, started):
        response = client.post(
            f"/v1/attempts/{started['attemptId']}/answers",
            json={"questionId": "missing", "selectedOptionId": None},
            headers=auth_headers,
        )

        assert response.status_code == 404

    def test_expired_attempt(self, client, auth_headers, db_session, student, exam, questions):
        attempt = make_attempt(
            db_session, student, exam, started_at=utc_now() - timedelta(hours=1)
        )

        response = client.post(
            f"/v1/attempts/{attempt.id}/answers",
            json={
                "questionId": questions[0].id,
                "selectedOptionId": correct_option(questions[0]).id,
            },
            headers=auth_headers,
        )

        assert response.status_code == 409
        assert response.json()["kind"] == "InvalidState"

    def test_someone_elses_attempt(self, client, db_session, started, questions):
        other = make_student(db_session, email="other@example.com")

        response = client.post(
            f"/v1/attempts/{started['attemptId']}/answers",
            json={"questionId": questions[0].id, "selectedOptionId": None},
            headers=_headers_for(other),
        )

        assert response.status_code == 404


class TestGetAttemptEndpoint:
    """Tests for GET /v1/attempts/{attempt_id}."""

    def test_first_question_by_default(self, client, auth_headers, started, questions):
        response = client.get(f"/v1/attempts/{started['attemptId']}", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["index"] == 0
        assert data["totalQuestions"] == 4
        assert data["question"]["id"] == questions[0].id
        assert [o["key"] for o in data["question"]["options"]] == ["A", "B", "C", "D"]
        for option in data["question"]["options"]:
            assert "isCorrect" not in option
        assert data["selectedOptionId"] is None
        assert data["answeredCount"] == 0

    def test_navigate_by_index(self, client, auth_headers, started, questions):
        client.post(
            f"/v1/attempts/{started['attemptId']}/answers",
            json={
                "questionId": questions[2].id,
                "selectedOptionId": wrong_option(questions[2]).id,
            },
            headers=auth_headers,
        )

        response = client.get(
            f"/v1/attempts/{started['attemptId']}?index=2", headers=auth_headers
        )

        data = response.json()
        assert data["question"]["id"] == questions[2].id
        assert data["selectedOptionId"] == wrong_option(questions[2]).id
        assert data["answeredCount"] == 1

    @pytest.mark.parametrize("index", ["-1", "4"])
    def test_index_out_of_range(self, client, auth_headers, started, index):
        response = client.get(
            f"/v1/attempts/{started['attemptId']}?index={index}", headers=auth_headers
        )

        assert response.status_code == 422
        assert response.json()["kind"] == "ValidationError"

    def test_expired_attempt_returns_score(
        self, client, auth_headers, db_session, student, exam, questions
    ):
        attempt = make_attempt(
            db_session, student, exam, started_at=utc_now() - timedelta(hours=1)
        )
        answer_question(db_session, attempt, questions[0], correct_option(questions[0]))

        response = client.get(f"/v1/attempts/{attempt.id}", headers=auth_headers)

        assert response.status_code == 409
        data = response.json()
        assert data["kind"] == "InvalidState"
        assert data["attemptId"] == attempt.id
        assert data["score"] == 25
        assert data["correctAnswers"] == 1
        assert data["maxQuestions"] == 4
        db_session.expire_all()
        assert db_session.get(TestAttempt, attempt.id).status == AttemptStatus.COMPLETED

    def test_unknown_attempt(self, client, auth_headers, student):
        response = client.get("/v1/attempts/missing", headers=auth_headers)

        assert response.status_code == 404


class TestAttemptQuestionsEndpoint:
    def test_lists_questions_and_previous_answers(
        self, client, auth_headers, started, questions
    ):
        option = correct_option(questions[1])
        client.post(
            f"/v1/attempts/{started['attemptId']}/answers",
            json={"questionId": questions[1].id, "selectedOptionId": option.id},
            headers=auth_headers,
        )

        response = client.get(
            f"/v1/attempts/{started['attemptId']}/questions", headers=auth_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert [q["id"] for q in data["questions"]] == [q.id for q in questions]
        assert data["previousAnswers"] == {questions[1].id: option.id}
        assert data["answeredCount"] == 1
        assert data["totalQuestions"] == 4


class TestSubmitEndpoint:
    """Tests for PUT /v1/attempts/{attempt_id}/submit."""

    def _answer(self, client, auth_headers, attempt_id, question, option):
        response = client.post(
            f"/v1/attempts/{attempt_id}/answers",
            json={"questionId": question.id, "selectedOptionId": option.id},
            headers=auth_headers,
        )
        assert response.status_code == 200

    def test_submit_scores_attempt(self, client, auth_headers, started, questions):
        attempt_id = started["attemptId"]
        self._answer(client, auth_headers, attempt_id, questions[0], correct_option(questions[0]))
        self._answer(client, auth_headers, attempt_id, questions[1], correct_option(questions[1]))
        self._answer(client, auth_headers, attempt_id, questions[2], wrong_option(questions[2]))

        response = client.put(f"/v1/attempts/{attempt_id}/submit", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["score"] == 50
        assert data["correctAnswers"] == 2
        assert data["maxQuestions"] == 4
        assert data["alreadySubmitted"] is False

    def test_second_submit_returns_stored_score(
        self, client, auth_headers, started, questions
    ):
        attempt_id = started["attemptId"]
        self._answer(client, auth_headers, attempt_id, questions[0], correct_option(questions[0]))
        first = client.put(f"/v1/attempts/{attempt_id}/submit", headers=auth_headers)

        second = client.put(f"/v1/attempts/{attempt_id}/submit", headers=auth_headers)

        assert second.status_code == 200
        assert second.json()["alreadySubmitted"] is True
        assert second.json()["score"] == first.json()["score"] == 25
        assert second.json()["submittedAt"] == first.json()["submittedAt"]

    def test_submit_expired_attempt(self, client, auth_headers, db_session, student, exam):
        attempt = make_attempt(
            db_session, student, exam, started_at=utc_now() - timedelta(hours=1)
        )

        response = client.put(f"/v1/attempts/{attempt.id}/submit", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["score"] == 0

    def test_answer_after_submit_refused(self, client, auth_headers, started, questions):
        attempt_id = started["attemptId"]
        client.put(f"/v1/attempts/{attempt_id}/submit", headers=auth_headers)

        response = client.post(
            f"/v1/attempts/{attempt_id}/answers",
            json={
                "questionId": questions[0].id,
                "selectedOptionId": correct_option(questions[0]).id,
            },
            headers=auth_headers,
        )

        assert response.status_code == 409
        assert response.json()["detail"] == "Attempt already submitted."

    def test_read_after_submit_refused(self, client, auth_headers, started):
        attempt_id = started["attemptId"]
        client.put(f"/v1/attempts/{attempt_id}/submit", headers=auth_headers)

        response = client.get(f"/v1/attempts/{attempt_id}", headers=auth_headers)

        assert response.status_code == 409
        assert response.json()["score"] == 0

    def test_submit_someone_elses_attempt(self, client, db_session, started):
        other = make_student(db_session, email="other@example.com")

        response = client.put(
            f"/v1/attempts/{started['attemptId']}/submit", headers=_headers_for(other)
        )

        assert response.status_code == 404


class TestReviewEndpoint:
    def test_review_before_submit(self, client, auth_headers, started):
        response = client.get(
            f"/v1/attempts/{started['attemptId']}/review", headers=auth_headers
        )

        assert response.status_code == 409

    def test_review_after_submit(self, client, auth_headers, started, questions):
        attempt_id = started["attemptId"]
        client.post(
            f"/v1/attempts/{attempt_id}/answers",
            json={
                "questionId": questions[0].id,
                "selectedOptionId": correct_option(questions[0]).id,
            },
            headers=auth_headers,
        )
        client.put(f"/v1/attempts/{attempt_id}/submit", headers=auth_headers)

        response = client.get(f"/v1/attempts/{attempt_id}/review", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["score"] == 25
        assert data["correctAnswers"] == 1
        assert len(data["items"]) == 4
        first = data["items"][0]
        assert first["isCorrect"] is True
        assert first["correctOptionId"] == correct_option(questions[0]).id
        assert [o["isCorrect"] for o in first["options"]] == [False, True, False, False]
        assert data["items"][1]["skipped"] is True
