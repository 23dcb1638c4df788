"""
Scheduled reconciliation job.

Runs one reconciliation pass and purges expired idempotency records. Meant to be
invoked by cron or a scheduler:

    python -m settlement.jobs.reconcile --reason "nightly" --output /var/reports/recon.csv
"""

import argparse
import asyncio
import logging
import sys

from settlement.config import settings
from settlement.core.idempotency import idempotency_guard
from settlement.database import engine
from settlement.services.reconciliation_service import ReconciliationEngine

logger = logging.getLogger("settlement.jobs.reconcile")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a reconciliation pass over recent transfers")
    parser.add_argument("--reason", type=str, default="scheduled", help="Reason recorded on the run")
    parser.add_argument("--output", type=str, default=None, help="Also write the CSV report to this path")
    parser.add_argument("--lookback-days", type=int, default=None, help="Override the lookback window")
    parser.add_argument("--page-size", type=int, default=None, help="Override the scan page size")
    parser.add_argument("--skip-purge", action="store_true", help="Do not purge expired idempotency records")
    return parser


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    reconciler = ReconciliationEngine(lookback_days=args.lookback_days, page_size=args.page_size)
    try:
        result = await reconciler.run_once(
            reason=args.reason,
            triggered_by="scheduler",
            output_path=args.output,
        )
        print(f"Run {result.run_id}: {result.issue_count} issues")
        if not args.output:
            sys.stdout.write(result.csv)

        if not args.skip_purge:
            purged = await idempotency_guard.purge_expired()
            logger.info(f"Purged {purged} expired idempotency records")
    finally:
        await engine.dispose()

    return 1 if result.issue_count else 0


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    sys.exit(asyncio.run(main()))
