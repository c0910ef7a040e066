"""
Event tracking for attempt lifecycle actions.

Events are emitted as structured log records. Callers wrap tracking in
graceful_failure so a tracking problem never fails a request.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from examhall.core.config import settings

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Analytics event types."""

    ATTEMPT_STARTED = "attempt.started"
    ATTEMPT_RESUMED = "attempt.resumed"
    ATTEMPT_FINALIZED = "attempt.finalized"
    ANSWER_SAVED = "attempt.answer_saved"

    API_ERROR = "api.error"


class FinalizeTrigger(str, Enum):
    """What caused an attempt to be finalized."""

    MANUAL_SUBMIT = "manual_submit"
    EXPIRED_ON_READ = "expired_on_read"
    CLEANUP_ON_START = "cleanup_on_start"
    SWEEP = "sweep"


class AnalyticsTracker:
    """Emits lifecycle events as structured log entries."""

    @staticmethod
    def track_event(
        event_type: EventType,
        student_id: Optional[str] = None,
        properties: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Track an analytics event.

        Args:
            event_type: Type of event being tracked
            student_id: Optional student the event concerns
            properties: Optional dictionary of event properties
        """
        properties = properties or {}
        logger.info(
            f"Analytics Event: {event_type.value}",
            extra={
                "event": event_type.value,
                "student_id": student_id,
                "attempt_id": properties.get("attempt_id"),
                "properties": {
                    **properties,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "environment": settings.ENV,
                },
            },
        )

    @staticmethod
    def track_attempt_started(
        student_id: str, attempt_id: str, test_id: str, max_questions: int
    ) -> None:
        """Track creation of a new attempt."""
        AnalyticsTracker.track_event(
            EventType.ATTEMPT_STARTED,
            student_id=student_id,
            properties={
                "attempt_id": attempt_id,
                "test_id": test_id,
                "max_questions": max_questions,
            },
        )

    @staticmethod
    def track_attempt_resumed(
        student_id: str, attempt_id: str, remaining_seconds: int
    ) -> None:
        """Track an idempotent start that returned a live attempt."""
        AnalyticsTracker.track_event(
            EventType.ATTEMPT_RESUMED,
            student_id=student_id,
            properties={
                "attempt_id": attempt_id,
                "remaining_seconds": remaining_seconds,
            },
        )

    @staticmethod
    def track_attempt_finalized(
        student_id: str,
        attempt_id: str,
        score: int,
        correct_answers: int,
        trigger: FinalizeTrigger,
    ) -> None:
        """Track the single transition of an attempt to COMPLETED."""
        AnalyticsTracker.track_event(
            EventType.ATTEMPT_FINALIZED,
            student_id=student_id,
            properties={
                "attempt_id": attempt_id,
                "score": score,
                "correct_answers": correct_answers,
                "trigger": trigger.value,
            },
        )

    @staticmethod
    def track_answer_saved(
        student_id: str, attempt_id: str, question_id: str, cleared: bool
    ) -> None:
        """Track an answer upsert."""
        AnalyticsTracker.track_event(
            EventType.ANSWER_SAVED,
            student_id=student_id,
            properties={
                "attempt_id": attempt_id,
                "question_id": question_id,
                "cleared": cleared,
            },
        )

    @staticmethod
    def track_api_error(
        method: str,
        path: str,
        error_kind: str,
        error_message: str,
        student_id: Optional[str] = None,
    ) -> None:
        """Track an error response returned by the API."""
        AnalyticsTracker.track_event(
            EventType.API_ERROR,
            student_id=student_id,
            properties={
                "method": method,
                "path": path,
                "error_kind": error_kind,
                "error_message": error_message,
            },
        )
