"""
Database error handling utilities.

Write paths of the attempt lifecycle must be all-or-nothing. This module
centralizes the pattern of:
1. Rolling back the session when the store fails
2. Logging the failure with the operation name
3. Raising StoreUnavailable so the request fails with no partial state

Domain errors (AttemptError subclasses) pass through untouched, after the
session has been rolled back, so a lost finalize race never leaves a
half-written transaction behind.

Usage:
    from examhall.core.db_error_handling import handle_db_error

    with handle_db_error(db, "finalize attempt"):
        repository.mark_completed(...)
        db.commit()
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from examhall.core.error_responses import ErrorMessages
from examhall.core.exceptions import AttemptError, StoreUnavailable


logger = logging.getLogger(__name__)


@contextmanager
def handle_db_error(
    db: Session,
    operation_name: str,
    *,
    log_level: int = logging.ERROR,
) -> Generator[None, None, None]:
    """Context manager for all-or-nothing database operations.

    Args:
        db: The SQLAlchemy session to roll back on error.
        operation_name: Human-readable name of the operation for error
            messages and logging (e.g., "finalize attempt", "save answer").
        log_level: Logging level for store failures. Defaults to ERROR.

    Raises:
        AttemptError: Re-raised unchanged after rollback.
        StoreUnavailable: When SQLAlchemy reports a failure.
    """
    try:
        yield
    except AttemptError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.log(
            log_level,
            f"Database error during {operation_name}: {e}",
            exc_info=True,
        )
        raise StoreUnavailable(
            ErrorMessages.database_operation_failed(operation_name)
        ) from e

