"""
Graceful failure utilities.

Context manager for non-critical work that must never break the main flow,
such as event tracking after an attempt has been committed. Failures are
logged and swallowed.

This is distinct from `db_error_handling.py`, which handles critical
errors that require rollback and an error response.

Usage:
    from examhall.core.graceful_failure import graceful_failure

    with graceful_failure("track attempt finalized", logger):
        AnalyticsTracker.track_attempt_finalized(...)
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator, Optional


@contextmanager
def graceful_failure(
    operation_name: str,
    logger: logging.Logger,
    *,
    log_level: int = logging.WARNING,
    exc_info: bool = False,
    context: Optional[dict[str, Any]] = None,
) -> Generator[None, None, None]:
    """Run the wrapped block, logging instead of raising on failure.

    Args:
        operation_name: Human-readable name of the operation for logging.
        logger: The logger instance to use for logging errors.
        log_level: Logging level for error messages. Defaults to WARNING.
        exc_info: Whether to include exception traceback in log.
        context: Optional extra key/values appended to the log message
            (e.g., {"attempt_id": "..."}).
    """
    try:
        yield
    except Exception as e:
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            message = f"Failed to {operation_name} ({context_str}): {e}"
        else:
            message = f"Failed to {operation_name}: {e}"

        logger.log(log_level, message, exc_info=exc_info)
