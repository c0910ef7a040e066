#!/usr/bin/env python3
"""
Finalize expired test attempts that nobody has touched since they ran out.

Expired attempts are normally finalized lazily, the next time the student
reads the attempt, starts the test again or opens their results. A student
who closes the tab and never comes back leaves the attempt IN_PROGRESS
until then. Run this from cron to bound that window.

Usage:
    # Finalize up to STALE_ATTEMPT_SWEEP_BATCH_SIZE expired attempts
    DATABASE_URL="postgresql://..." python scripts/sweep_expired_attempts.py

    # Show what would be finalized without making changes
    python scripts/sweep_expired_attempts.py --dry-run

    # Override the batch size
    python scripts/sweep_expired_attempts.py --batch-size 500

Exit codes:
    0 - sweep completed (including "nothing to do")
    1 - the database was unavailable
    2 - invalid arguments (bad --batch-size or an unknown option)
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from examhall.core.config import settings  # noqa: E402
from examhall.core.error_tracking import capture_exception, init_sentry  # noqa: E402
from examhall.core.exceptions import StoreUnavailable  # noqa: E402
from examhall.core.logging_config import setup_logging  # noqa: E402
from examhall.models.base import SessionLocal  # noqa: E402
from examhall.services.lifecycle import sweep_expired_attempts  # noqa: E402

logger = logging.getLogger("examhall.scripts.sweep_expired_attempts")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Finalize IN_PROGRESS test attempts whose time has run out"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report how many attempts would be finalized",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.STALE_ATTEMPT_SWEEP_BATCH_SIZE,
        help=(
            "Maximum attempts to finalize in this run "
            f"(default: {settings.STALE_ATTEMPT_SWEEP_BATCH_SIZE})"
        ),
    )
    return parser


def main(argv: Optional[List[str]] = None, session_factory=SessionLocal) -> int:
    args = build_parser().parse_args(argv)
    if args.batch_size < 1:
        logger.error("--batch-size must be at least 1")
        return 2

    setup_logging()
    init_sentry()

    db = session_factory()
    try:
        result = sweep_expired_attempts(
            db, batch_size=args.batch_size, dry_run=args.dry_run
        )
    except StoreUnavailable as exc:
        logger.error(f"Sweep aborted: {exc.detail}")
        capture_exception(exc.__cause__ or exc)
        return 1
    finally:
        db.close()

    prefix = "[DRY RUN] " if args.dry_run else ""
    logger.info(
        f"{prefix}Expired attempts examined={result.examined} "
        f"finalized={result.finalized} already_submitted={result.already_submitted}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
