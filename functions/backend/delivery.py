"""
SIF delivery: scheduling, delivering, retrying, cancelling and expiring SIFs.

A delivery is claimed by atomically moving the SIF from a deliverable status
to processing, so two workers that dequeue the same id cannot both deliver
it. Failures are retried `max_retry_attempts` times, `retry_delay_seconds`
apart, through the delayed lane of the job queue.
"""

from __future__ import annotations

import logging
import time
from enum import StrEnum
from typing import Optional

from backend.db import DbClient, FieldFilter
from backend.notifications import NotificationService
from backend.queue import JobQueue
from backend.storage import StorageClient
from shared import constants
from shared.delivery_status import (
    DELIVERABLE_STATUSES,
    DeliveryTrigger,
    InvalidTransitionError,
    can_transition,
    next_status,
)
from shared.doc_convert import from_document
from shared.firebase_constants import SIFS_COLLECTION, USERS_COLLECTION
from shared.sif import SIFItem
from shared.types import SIFDeliveryStatus

logger = logging.getLogger(__name__)


class DeliveryErrorKind(StrEnum):
    SIF_NOT_FOUND = "sif_not_found"
    PERMISSION_DENIED = "permission_denied"
    INVALID_STATE = "invalid_state"
    INVALID_ARGUMENT = "invalid_argument"


class DeliveryError(Exception):
    def __init__(self, kind: DeliveryErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class AttachmentMissingError(Exception):
    pass


class SIFDeliveryService:
    def __init__(
        self,
        db: DbClient,
        storage: StorageClient,
        queue: JobQueue,
        notifications: NotificationService,
        *,
        max_retry_attempts: int = constants.MAX_RETRY_ATTEMPTS,
        retry_delay_seconds: float = constants.RETRY_DELAY_SECONDS,
        share_base_url: str = constants.SHARE_BASE_URL,
    ):
        self.db = db
        self.storage = storage
        self.queue = queue
        self.notifications = notifications
        self.max_retry_attempts = max_retry_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self.share_base_url = share_base_url.rstrip("/")

    def load_sif(self, sif_id: str) -> SIFItem:
        data = self.db.get(SIFS_COLLECTION, sif_id)
        if data is None:
            raise DeliveryError(DeliveryErrorKind.SIF_NOT_FOUND, "SIF not found")
        return from_document(SIFItem, sif_id, data)

    def _load_authored(self, user_uid: str, sif_id: str) -> SIFItem:
        sif = self.load_sif(sif_id)
        if sif.author_uid != user_uid:
            raise DeliveryError(
                DeliveryErrorKind.PERMISSION_DENIED,
                "Only the author can change a SIF's delivery",
            )
        return sif

    def _transition(
        self, sif: SIFItem, trigger: DeliveryTrigger, updates: Optional[dict] = None
    ) -> SIFDeliveryStatus:
        try:
            status = next_status(sif.delivery_status, trigger)
        except InvalidTransitionError as e:
            raise DeliveryError(DeliveryErrorKind.INVALID_STATE, str(e)) from e
        payload = {"deliveryStatus": status.value, **(updates or {})}
        self.db.update(SIFS_COLLECTION, sif.id, payload)
        sif.delivery_status = status
        return status

    # --- Requests ------------------------------------------------------

    def request_delivery(
        self,
        user_uid: str,
        sif_id: str,
        now: Optional[float] = None,
        *,
        enqueue: bool = True,
    ) -> SIFItem:
        """
        Queues a SIF for delivery now, or schedules it if its date is ahead.

        With `enqueue=False` a due SIF is only checked, for callers that go on
        to deliver it themselves.
        """
        now = now if now is not None else time.time()
        sif = self._load_authored(user_uid, sif_id)
        if sif.scheduled_date is not None and sif.scheduled_date > now:
            return self.schedule_sif(user_uid, sif_id, sif.scheduled_date, now=now)
        if sif.delivery_status not in DELIVERABLE_STATUSES:
            raise DeliveryError(
                DeliveryErrorKind.INVALID_STATE,
                f"Cannot deliver a SIF that is {sif.delivery_status.value}",
            )
        if enqueue:
            self.queue.enqueue(sif.id)
            logger.info("[%s] Queued for delivery", sif.id)
        return sif

    def schedule_sif(
        self,
        user_uid: str,
        sif_id: str,
        scheduled_date: float,
        now: Optional[float] = None,
    ) -> SIFItem:
        now = now if now is not None else time.time()
        sif = self._load_authored(user_uid, sif_id)
        if sif.expiration_date is not None and scheduled_date >= sif.expiration_date:
            raise DeliveryError(
                DeliveryErrorKind.INVALID_ARGUMENT,
                "Scheduled date must be before the expiration date",
            )
        self._transition(
            sif, DeliveryTrigger.SCHEDULE, {"scheduledDate": scheduled_date}
        )
        sif.scheduled_date = scheduled_date
        if scheduled_date <= now:
            self.queue.enqueue(sif.id)
        else:
            self.queue.enqueue_at(sif.id, scheduled_date)
        self.notifications.schedule_scheduled_delivery_reminder(sif, now=now)
        self.notifications.schedule_expiration_warning(sif, now=now)
        logger.info("[%s] Scheduled for %s", sif.id, scheduled_date)
        return sif

    def cancel_sif(
        self, user_uid: str, sif_id: str, now: Optional[float] = None
    ) -> SIFItem:
        now = now if now is not None else time.time()
        sif = self._load_authored(user_uid, sif_id)
        self._transition(
            sif,
            DeliveryTrigger.CANCEL,
            {"isCancelled": True, "cancelledDate": now},
        )
        sif.is_cancelled = True
        sif.cancelled_date = now
        self.notifications.cancel_notifications_for_sif(sif.author_uid, sif.id)
        logger.info("[%s] Cancelled", sif.id)
        return sif

    def extend_expiration(
        self,
        user_uid: str,
        sif_id: str,
        new_expiration_date: float,
        now: Optional[float] = None,
    ) -> SIFItem:
        now = now if now is not None else time.time()
        sif = self._load_authored(user_uid, sif_id)
        if not sif.can_extend_expiration:
            raise DeliveryError(
                DeliveryErrorKind.INVALID_STATE, "This SIF's expiration cannot be extended"
            )
        if sif.delivery_status in (SIFDeliveryStatus.CANCELLED, SIFDeliveryStatus.EXPIRED):
            raise DeliveryError(
                DeliveryErrorKind.INVALID_STATE,
                f"Cannot extend a SIF that is {sif.delivery_status.value}",
            )
        if new_expiration_date <= now or (
            sif.expiration_date is not None and new_expiration_date <= sif.expiration_date
        ):
            raise DeliveryError(
                DeliveryErrorKind.INVALID_ARGUMENT,
                "New expiration date must be later than the current one",
            )
        self.db.update(SIFS_COLLECTION, sif.id, {"expirationDate": new_expiration_date})
        sif.expiration_date = new_expiration_date
        self.notifications.cancel_sif_reminders(sif)
        self.notifications.schedule_expiration_warning(sif, now=now)
        if sif.delivery_status == SIFDeliveryStatus.SCHEDULED:
            self.notifications.schedule_scheduled_delivery_reminder(sif, now=now)
        return sif

    def get_progress(self, sif_id: str) -> dict:
        sif = self.load_sif(sif_id)
        return {
            "sif_id": sif.id,
            "status": sif.delivery_status.value,
            "progress_percentage": sif.progress_percentage,
            "retry_count": sif.retry_count,
            "failure_reason": sif.failure_reason,
        }

    # --- Delivery ------------------------------------------------------

    def deliver_sif(self, sif_id: str, now: Optional[float] = None) -> SIFItem:
        """
        Delivers one SIF end to end. Returns the SIF in its resulting state,
        which is delivered, scheduled (retry pending), failed or expired.
        """
        now = now if now is not None else time.time()
        sif = self.load_sif(sif_id)

        if sif.expiration_date is not None and sif.expiration_date <= now:
            if can_transition(sif.delivery_status, DeliveryTrigger.EXPIRE):
                self._transition(sif, DeliveryTrigger.EXPIRE)
            logger.info("[%s] Expired before delivery", sif.id)
            return sif

        claimed = None
        if can_transition(sif.delivery_status, DeliveryTrigger.DELIVER):
            # Compare-and-set on the status we read; a concurrent claim wins.
            claimed = self.db.update_if(
                SIFS_COLLECTION,
                sif_id,
                "deliveryStatus",
                [sif.delivery_status.value],
                {
                    "deliveryStatus": next_status(
                        sif.delivery_status, DeliveryTrigger.DELIVER
                    ).value,
                    "progressPercentage": 0.0,
                },
            )
        if claimed is None:
            raise DeliveryError(
                DeliveryErrorKind.INVALID_STATE,
                f"SIF {sif_id} is not awaiting delivery",
            )
        sif = from_document(SIFItem, sif_id, claimed)
        logger.info("[%s] Delivery started (attempt %d)", sif.id, sif.retry_count + 1)

        try:
            if sif.attachment_paths:
                self._verify_attachments(sif)
            self._complete(sif, now)
        except Exception as e:
            logger.exception("[%s] Delivery failed", sif.id)
            self._handle_failure(sif, str(e) or type(e).__name__, now)
        return sif

    def _verify_attachments(self, sif: SIFItem) -> None:
        self._transition(sif, DeliveryTrigger.UPLOAD)
        total = len(sif.attachment_paths)
        for index, path in enumerate(sif.attachment_paths):
            if not self.storage.exists(path):
                raise AttachmentMissingError(f"Attachment {path} is missing")
            progress = constants.ATTACHMENT_UPLOAD_PROGRESS_SHARE * (index + 1) / total
            self.db.update(SIFS_COLLECTION, sif.id, {"progressPercentage": progress})
            sif.progress_percentage = progress

    def _complete(self, sif: SIFItem, now: float) -> None:
        qr_code_data = f"{self.share_base_url}/sif/{sif.id}"
        shareable_link = f"{self.share_base_url}/share/{sif.id}"
        self._transition(
            sif,
            DeliveryTrigger.COMPLETE,
            {
                "deliveredDate": now,
                "progressPercentage": 100.0,
                "qrCodeData": qr_code_data,
                "shareableLink": shareable_link,
                "failureReason": None,
            },
        )
        sif.delivered_date = now
        sif.progress_percentage = 100.0
        sif.qr_code_data = qr_code_data
        sif.shareable_link = shareable_link
        sif.failure_reason = None
        logger.info("[%s] Delivered to %d recipients", sif.id, len(sif.recipients))

        # The SIF is delivered from here on; notification errors must not retry it.
        try:
            self._notify_delivered(sif, now)
        except Exception:
            logger.exception("[%s] Delivered, but notifying failed", sif.id)

    def _notify_delivered(self, sif: SIFItem, now: float) -> None:
        if sif.notify_on_delivery:
            self.notifications.schedule_delivery_notification(sif, now=now)
            self.db.update(SIFS_COLLECTION, sif.id, {"deliveryNotificationSent": True})
            sif.delivery_notification_sent = True
        for recipient in sif.recipients:
            if self.db.get(USERS_COLLECTION, recipient) is not None:
                self.notifications.schedule_new_sif_notification(sif, recipient, now=now)

    def _handle_failure(self, sif: SIFItem, reason: str, now: float) -> None:
        sif.retry_count += 1
        if sif.retry_count <= self.max_retry_attempts:
            retry_at = now + self.retry_delay_seconds
            self._transition(
                sif,
                DeliveryTrigger.RETRY,
                {
                    "retryCount": sif.retry_count,
                    "lastRetryDate": now,
                    "scheduledDate": retry_at,
                    "failureReason": reason,
                },
            )
            sif.last_retry_date = now
            sif.scheduled_date = retry_at
            sif.failure_reason = reason
            self.queue.enqueue_at(sif.id, retry_at)
            logger.warning(
                "[%s] Retry %d/%d scheduled: %s",
                sif.id,
                sif.retry_count,
                self.max_retry_attempts,
                reason,
            )
            return

        self._transition(
            sif,
            DeliveryTrigger.FAIL,
            {"retryCount": sif.retry_count, "failureReason": reason},
        )
        sif.failure_reason = reason
        self.notifications.schedule_delivery_failure_notification(sif, reason, now=now)
        logger.error("[%s] Delivery failed permanently: %s", sif.id, reason)

    # --- Periodic processing ------------------------------------------

    def process_scheduled_sifs(self, now: Optional[float] = None) -> int:
        """
        Delivers every SIF that is due: scheduled ones whose date has come and
        pending ones that were never picked up from the queue. Returns how many
        were delivered.
        """
        now = now if now is not None else time.time()
        scheduled = self.db.query(
            SIFS_COLLECTION,
            [
                FieldFilter("deliveryStatus", "==", SIFDeliveryStatus.SCHEDULED.value),
                FieldFilter("scheduledDate", "<=", now),
            ],
        )
        pending = [
            doc
            for doc in self.db.query(
                SIFS_COLLECTION,
                [FieldFilter("deliveryStatus", "==", SIFDeliveryStatus.PENDING.value)],
            )
            if (doc.data.get("scheduledDate") or 0.0) <= now
        ]
        delivered = 0
        for doc in scheduled + pending:
            try:
                sif = self.deliver_sif(doc.id, now=now)
            except DeliveryError as e:
                if e.kind == DeliveryErrorKind.INVALID_STATE:
                    logger.info("[%s] Skipped, another worker claimed it: %s", doc.id, e)
                else:
                    logger.warning("[%s] Skipped: %s", doc.id, e)
                continue
            if sif.delivery_status == SIFDeliveryStatus.DELIVERED:
                delivered += 1
        return delivered

    def expire_sifs(self, now: Optional[float] = None) -> int:
        """Moves SIFs whose expiration date has passed to expired."""
        now = now if now is not None else time.time()
        candidates = self.db.query(
            SIFS_COLLECTION, [FieldFilter("expirationDate", "<=", now)]
        )
        expirable = [
            s.value
            for s in SIFDeliveryStatus
            if can_transition(s, DeliveryTrigger.EXPIRE)
        ]
        expired = 0
        for doc in candidates:
            updated = self.db.update_if(
                SIFS_COLLECTION,
                doc.id,
                "deliveryStatus",
                expirable,
                {"deliveryStatus": SIFDeliveryStatus.EXPIRED.value},
            )
            if updated is not None:
                expired += 1
                logger.info("[%s] Expired", doc.id)
        return expired
