"""
Delivery worker: pulls SIF ids off the queue and delivers them.

Each loop iteration also expires overdue SIFs and dispatches notifications
whose delivery time has come.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from backend.delivery import DeliveryError, DeliveryErrorKind, SIFDeliveryService
from backend.dependencies import (
    get_delivery_service,
    get_notification_service,
    get_queue_client,
)
from backend.notifications import NotificationService
from backend.queue import JobQueue
from shared.types import SIFDeliveryStatus

logger = logging.getLogger(__name__)


def process_next(
    *,
    delivery: Optional[SIFDeliveryService] = None,
    queue: Optional[JobQueue] = None,
    block: bool = True,
    timeout: Optional[int] = None,
    now: Optional[float] = None,
) -> bool:
    """
    Deliver one SIF from the queue (or fall back to polling due SIFs).
    Returns True if something was delivered or attempted.
    """
    delivery = delivery or get_delivery_service()
    queue = queue or get_queue_client()

    sif_id = queue.dequeue(block=block, timeout=timeout)
    if not sif_id:
        # SIFs that never made it onto the queue.
        return delivery.process_scheduled_sifs(now=now) > 0
    return process_job(sif_id, delivery=delivery, queue=queue, now=now)


def process_job(
    sif_id: str,
    *,
    delivery: SIFDeliveryService,
    queue: JobQueue,
    now: Optional[float] = None,
) -> bool:
    """Delivers one dequeued SIF. Returns False for stale or early entries."""
    now = now if now is not None else time.time()
    try:
        sif = delivery.load_sif(sif_id)
    except DeliveryError:
        logger.warning("Received sif_id %s from queue but no SIF found", sif_id)
        return False

    if (
        sif.delivery_status == SIFDeliveryStatus.SCHEDULED
        and sif.scheduled_date is not None
        and sif.scheduled_date > now
    ):
        # Rescheduled after it was queued; wait for the new date.
        queue.enqueue_at(sif_id, sif.scheduled_date)
        return False

    try:
        delivery.deliver_sif(sif_id, now=now)
    except DeliveryError as e:
        if e.kind != DeliveryErrorKind.INVALID_STATE:
            raise
        logger.info("[%s] Skipped: %s", sif_id, e)
        return False
    return True


def drain_queue(
    max_jobs: int,
    *,
    delivery: Optional[SIFDeliveryService] = None,
    queue: Optional[JobQueue] = None,
    now: Optional[float] = None,
) -> int:
    """
    Works through up to `max_jobs` queued entries without blocking, then polls
    for due SIFs the queue missed. Stale entries are skipped, not treated as
    the end of the queue. Returns how many deliveries were attempted.
    """
    delivery = delivery or get_delivery_service()
    queue = queue or get_queue_client()
    processed = 0
    for _ in range(max_jobs):
        sif_id = queue.dequeue(block=False)
        if not sif_id:
            break
        try:
            if process_job(sif_id, delivery=delivery, queue=queue, now=now):
                processed += 1
        except Exception:
            logger.exception("[%s] Delivery failed", sif_id)
    return processed + delivery.process_scheduled_sifs(now=now)


def run_housekeeping(
    *,
    delivery: Optional[SIFDeliveryService] = None,
    notifications: Optional[NotificationService] = None,
    now: Optional[float] = None,
) -> None:
    delivery = delivery or get_delivery_service()
    notifications = notifications or get_notification_service()
    expired = delivery.expire_sifs(now=now)
    dispatched = notifications.dispatch_due_notifications(now=now)
    if expired or dispatched:
        logger.info(
            "Housekeeping: %d SIFs expired, %d notifications dispatched",
            expired,
            dispatched,
        )


def run_loop(
    poll_interval_seconds: float = 2.0,
    *,
    delivery: Optional[SIFDeliveryService] = None,
    notifications: Optional[NotificationService] = None,
    queue: Optional[JobQueue] = None,
    max_iterations: Optional[int] = None,
) -> None:
    """
    Simple polling loop that blocks on the queue. Intended to be run under systemd/supervisor.

    Errors from a single iteration are logged and the loop carries on.
    """
    delivery = delivery or get_delivery_service()
    notifications = notifications or get_notification_service()
    queue = queue or get_queue_client()
    iterations = 0
    while max_iterations is None or iterations < max_iterations:
        iterations += 1
        try:
            run_housekeeping(delivery=delivery, notifications=notifications)
        except Exception:
            logger.exception("Housekeeping failed")
        try:
            processed = process_next(
                delivery=delivery,
                queue=queue,
                block=True,
                timeout=int(poll_interval_seconds),
            )
        except Exception:
            logger.exception("Delivery worker iteration failed")
            processed = False
        if not processed:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_loop()
