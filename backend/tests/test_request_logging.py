"""
Tests for the request logging middleware.
"""
import uuid
from unittest.mock import patch

from examhall.core.security import create_access_token
from examhall.middleware.request_logging import identify_caller


class TestIdentifyCaller:
    def test_anonymous(self):
        assert identify_caller("") == "anonymous"
        assert identify_caller("Basic abc") == "anonymous"

    def test_invalid_token(self):
        assert identify_caller("Bearer nope") == "invalid-token"

    def test_valid_token(self):
        token = create_access_token({"user_id": "s-1", "role": "student"})

        assert identify_caller(f"Bearer {token}") == "student:s-1"


class TestRequestLoggingMiddleware:
    def test_generates_request_id(self, client):
        response = client.get("/v1/ping")

        assert response.status_code == 200
        uuid.UUID(response.headers["X-Request-ID"])

    def test_echoes_incoming_request_id(self, client):
        response = client.get("/v1/ping", headers={"X-Request-ID": "trace-abc"})

        assert response.headers["X-Request-ID"] == "trace-abc"

    def test_client_errors_logged_as_warning(self, client):
        with patch("examhall.middleware.request_logging.logger") as mock_logger:
            response = client.get("/v1/results")

        assert response.status_code == 401
        mock_logger.warning.assert_called_once()
        extra = mock_logger.warning.call_args.kwargs["extra"]
        assert extra["status_code"] == 401
        assert extra["path"] == "/v1/results"
        assert extra["user_identifier"] == "anonymous"

    def test_success_logged_as_info(self, client):
        with patch("examhall.middleware.request_logging.logger") as mock_logger:
            client.get("/v1/ping")

        messages = [call.args[0] for call in mock_logger.info.call_args_list]
        assert messages == ["Incoming request", "Request completed"]
