"""
Sentry error tracking.

Initialization is a no-op when SENTRY_DSN is empty, so development and
tests run without a Sentry project.
"""
import logging
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from examhall.core.config import settings

logger = logging.getLogger(__name__)


def init_sentry() -> bool:
    """
    Initialize the Sentry SDK from settings.

    Returns:
        True if Sentry was initialized, False if it is disabled
    """
    if not settings.SENTRY_DSN:
        logger.info("Sentry disabled (SENTRY_DSN not set)")
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        release=settings.APP_VERSION,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
        integrations=[StarletteIntegration(), FastApiIntegration()],
    )
    logger.info(f"Sentry initialized (environment={settings.ENV})")
    return True


def capture_exception(
    exc: BaseException, context: Optional[Dict[str, Any]] = None
) -> None:
    """Send an exception to Sentry with request context attached."""
    with sentry_sdk.new_scope() as scope:
        if context:
            scope.set_context("request", context)
        sentry_sdk.capture_exception(exc)
