"""
Affiliate Tracker Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema, loads the incentive rules, and runs one
evaluation pass over every account for the configured window.

Usage::

    python main.py [--days N] [--persist]
"""

from __future__ import annotations

import argparse
import atexit
import sys
import traceback
from datetime import date

from tracker.config import get_config
from tracker.database import DatabaseManager
from tracker.logger import StructuredLogger, get_logger
from tracker.models.evaluation import EvaluationResult
from tracker.schema import initialize_schema
from tracker.services import create_services
from tracker.services.aggregation import resolve_window


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Evaluate affiliate incentives.")
    parser.add_argument("--days", type=int, default=None, help="window length ending today")
    parser.add_argument(
        "--persist", action="store_true", help="append results to evaluation_results",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Wire dependencies and run one evaluation pass.  Returns an exit code."""
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting affiliate tracker...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager (offline-first: Supabase optional, SQLite always)
    # ------------------------------------------------------------------
    db = DatabaseManager.from_config(config, StructuredLogger(name="database"))
    atexit.register(db.close)

    try:
        # --------------------------------------------------------------
        # 3. SQLite schema (idempotent, versioned)
        # --------------------------------------------------------------
        initialize_schema(db.sqlite, StructuredLogger(name="schema"))

        # --------------------------------------------------------------
        # 4. Services and rule set
        # --------------------------------------------------------------
        services = create_services(db=db, config=config)
        services["sync_service"].flush()
        loaded = services["incentive_rule_service"].load_rules()
        if not loaded.success:
            logger.error("Could not load incentive rules: %s", loaded.error)
            return 1

        # --------------------------------------------------------------
        # 5. Evaluation pass
        # --------------------------------------------------------------
        start, end = resolve_window(date.today(), preset_days=args.days or config.DEFAULT_WINDOW_DAYS)
        outcome = services["evaluation_service"].evaluate_all(start, end, persist=args.persist)
        if not outcome.success:
            logger.error("Evaluation failed (%d): %s", outcome.status_code, outcome.error)
            return 1

        results: list[EvaluationResult] = outcome.data or []
        for result in results:
            logger.info(
                "%s: %s, incentive %d %s",
                result.account_id,
                result.reason.value,
                result.incentive_amount,
                config.CURRENCY,
            )
        logger.info(
            "Total incentive for %s..%s: %d %s (%d pending sync)",
            start,
            end,
            sum(result.incentive_amount for result in results),
            config.CURRENCY,
            db.get_pending_sync_count(),
        )
        return 0
    finally:
        db.close()
        logger.info("Affiliate tracker shut down.")


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")
        sys.exit(1)
