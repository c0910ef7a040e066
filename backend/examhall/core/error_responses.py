"""
Standardized user-facing error messages.

All messages raised through examhall.core.exceptions are defined here so
wording stays consistent across endpoints.

Error Message Format Guidelines:
- Use sentence case (capitalize first letter only)
- End with a period for complete sentences
- Include relevant IDs in parentheses when helpful for debugging: "(ID: 123)"
- Use "Please try again later." for transient server errors

Usage:
    from examhall.core.error_responses import ErrorMessages
    from examhall.core.exceptions import NotFound

    if attempt is None:
        raise NotFound(ErrorMessages.ATTEMPT_NOT_FOUND)
"""


class ErrorMessages:
    """Centralized error message constants and templates.

    Naming Convention:
    - Constants: SCREAMING_SNAKE_CASE for static messages
    - Methods: snake_case for templates that accept parameters
    """

    # ==========================================================================
    # Authentication Errors (401)
    # ==========================================================================
    MISSING_CREDENTIALS = "Authentication credentials were not provided."
    INVALID_TOKEN = "Invalid authentication token."
    INVALID_TOKEN_PAYLOAD = "Invalid token payload."
    STUDENT_ROLE_REQUIRED = "Only students can take tests."

    # ==========================================================================
    # Not Found Errors (404)
    # ==========================================================================
    STUDENT_NOT_FOUND = "Student not found or blocked."
    TEST_NOT_FOUND = "Test not found."
    ATTEMPT_NOT_FOUND = "Test attempt not found."
    QUESTION_NOT_IN_TEST = "Question not found for this test."
    NO_QUESTIONS_IN_TEST = "No questions found for this test."

    # ==========================================================================
    # State Errors (409)
    # ==========================================================================
    ATTEMPT_ALREADY_SUBMITTED = "Attempt already submitted."
    ATTEMPT_TIME_UP = "Time is up for this attempt."
    REVIEW_NOT_AVAILABLE = "Review is only available after the attempt is submitted."

    # ==========================================================================
    # Validation Errors (422)
    # ==========================================================================
    OPTION_NOT_IN_QUESTION = "Selected option does not belong to this question."

    # ==========================================================================
    # Server Errors (5xx)
    # ==========================================================================
    INTERNAL_ERROR = "Internal server error"

    # ==========================================================================
    # Template Methods for Dynamic Messages
    # ==========================================================================
    @staticmethod
    def question_index_out_of_range(index: int, total: int) -> str:
        """Message when the requested question index is outside the test."""
        return f"Question index {index} is out of range (0-{max(total - 1, 0)})."

    @staticmethod
    def database_operation_failed(operation: str) -> str:
        """Generic message for database operation failures."""
        return f"Failed to {operation}. Please try again later."
