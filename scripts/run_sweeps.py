"""
Scheduled maintenance: expiry warnings, auto-renewals and notification delivery.
Run daily from cron: python -m scripts.run_sweeps [--skip-renewals]
"""
import argparse
import asyncio
import logging
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from marketplace.core import config
from marketplace.core.logging_config import setup_logging
from marketplace.db.session import SessionLocal
from marketplace.services import notification_service, payment_service

logger = logging.getLogger(__name__)


def run_sweeps(db, skip_renewals: bool = False, gateway=None, sender=None) -> dict:
    results = {"expiring": payment_service.check_expiring_subscriptions(db)}
    if not skip_renewals:
        results["renewals"] = payment_service.process_auto_renewals(db, gateway=gateway)
    results["notifications"] = asyncio.run(
        notification_service.dispatch_pending_notifications(db, sender=sender)
    )
    return results


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the subscription and notification sweeps")
    parser.add_argument("--skip-renewals", action="store_true")
    args = parser.parse_args(argv)

    setup_logging(config.LOG_LEVEL, config.LOG_DIR)
    db = SessionLocal()
    try:
        results = run_sweeps(db, skip_renewals=args.skip_renewals)
    except Exception:
        logger.exception("Sweep run failed")
        return 1
    finally:
        db.close()

    logger.info(
        f"Sweeps done: expiring={results['expiring']['processed']}, "
        f"renewals={results.get('renewals', {}).get('processed', 0)}, "
        f"notifications_sent={results['notifications']['sent']}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
