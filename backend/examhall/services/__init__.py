"""
Services package for attempt lifecycle business logic.
"""
from .answer_store import SavedAnswer, save_answer
from .catalog import QuestionCatalog
from .lifecycle import (
    AttemptLifecycleManager,
    FinalizeResult,
    StartResult,
    SweepResult,
    sweep_expired_attempts,
)

__all__ = [
    "SavedAnswer",
    "save_answer",
    "QuestionCatalog",
    "AttemptLifecycleManager",
    "FinalizeResult",
    "StartResult",
    "SweepResult",
    "sweep_expired_attempts",
]
