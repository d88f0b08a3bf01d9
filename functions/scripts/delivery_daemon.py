"""
Daemon that delivers queued and scheduled SIFs, expires overdue ones and
dispatches due notifications.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.dependencies import (
    get_delivery_service,
    get_notification_service,
    get_queue_client,
)
from backend.worker import drain_queue, run_housekeeping

logger = logging.getLogger(__name__)


def run_once(max_deliveries: int) -> int:
    delivery = get_delivery_service()
    notifications = get_notification_service()
    queue = get_queue_client()

    run_housekeeping(delivery=delivery, notifications=notifications)
    return drain_queue(max_deliveries, delivery=delivery, queue=queue)


def main() -> int:
    parser = argparse.ArgumentParser(description="iSIF delivery daemon")
    parser.add_argument(
        "-m",
        "--max-deliveries",
        type=int,
        default=100,
        help="Up to how many SIFs to deliver per loop",
    )
    parser.add_argument(
        "--interval-seconds",
        type=int,
        default=60,
        help="Seconds between delivery runs",
    )
    parser.add_argument(
        "--jitter-seconds",
        type=int,
        default=5,
        help="Max random jitter added to sleep",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single delivery pass and exit",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    while True:
        try:
            processed = run_once(args.max_deliveries)
            logger.info("Delivery pass complete, processed %d SIFs", processed)
        except Exception as exc:
            logger.exception("Delivery pass failed: %s", exc)

        if args.once:
            return 0

        sleep_for = args.interval_seconds + random.uniform(0, args.jitter_seconds)
        logger.info("Sleeping for %.1fs", sleep_for)
        time.sleep(sleep_for)


if __name__ == "__main__":
    raise SystemExit(main())
