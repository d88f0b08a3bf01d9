"""
User-facing notifications about SIF lifecycle events.

Notifications are documents in the top-level notifications collection,
keyed by a deterministic id and carrying the owning `userUid` and a
`deliverAt` time. Immediate ones are due right away; reminders and expiration
warnings become due later and are pushed by `dispatch_due_notifications`,
which the worker and the scheduled Cloud Function call periodically. Push goes
through Firebase Cloud Messaging when enabled and the user has registered a
device token.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from backend.db import DbClient, DocumentNotFoundError, FieldFilter
from shared.constants import (
    DELIVERY_REMINDER_LEAD_SECONDS,
    EXPIRATION_WARNING_LEAD_SECONDS,
)
from shared.doc_convert import from_document, to_document
from shared.firebase_constants import (
    NOTIFICATION_PREFERENCES_COLLECTION,
    NOTIFICATIONS_COLLECTION,
    USERS_COLLECTION,
)
from shared.sif import NotificationRecord, SIFItem
from shared.types import NotificationType

logger = logging.getLogger(__name__)


@dataclass
class NotificationPreferences:
    id: str
    push_enabled: bool = True
    disabled_types: List[str] = field(default_factory=list)

    def allows(self, notification_type: NotificationType) -> bool:
        return notification_type.value not in self.disabled_types


class NotificationService:
    def __init__(self, db: DbClient, *, push_enabled: bool = False):
        self.db = db
        self.push_enabled = push_enabled

    def _save(
        self,
        *,
        notification_id: str,
        user_uid: str,
        notification_type: NotificationType,
        title: str,
        body: str,
        sif_id: Optional[str],
        deliver_at: float,
        data: Optional[dict] = None,
        now: Optional[float] = None,
    ) -> Optional[NotificationRecord]:
        if not self.get_preferences(user_uid).allows(notification_type):
            logger.info(
                "[%s] %s disabled by user %s", sif_id, notification_type, user_uid
            )
            return None
        record = NotificationRecord(
            id=notification_id,
            user_uid=user_uid,
            type=notification_type,
            title=title,
            body=body,
            sif_id=sif_id,
            created_date=now if now is not None else time.time(),
            deliver_at=deliver_at,
            data={"type": notification_type.value, **(data or {})},
        )
        self.db.set(NOTIFICATIONS_COLLECTION, record.id, to_document(record))
        return record

    # --- SIF lifecycle -------------------------------------------------

    def schedule_delivery_notification(
        self, sif: SIFItem, now: Optional[float] = None
    ) -> Optional[NotificationRecord]:
        now = now if now is not None else time.time()
        return self._save(
            notification_id=f"delivery-{sif.id}",
            user_uid=sif.author_uid,
            notification_type=NotificationType.DELIVERY_SUCCESS,
            title="SIF Delivered Successfully",
            body=(
                f"Your SIF '{sif.subject}' has been delivered to "
                f"{', '.join(sif.recipients)}"
            ),
            sif_id=sif.id,
            deliver_at=now,
            data={"sif_id": sif.id},
            now=now,
        )

    def schedule_delivery_failure_notification(
        self, sif: SIFItem, reason: str, now: Optional[float] = None
    ) -> Optional[NotificationRecord]:
        now = now if now is not None else time.time()
        return self._save(
            notification_id=f"delivery-failure-{sif.id}",
            user_uid=sif.author_uid,
            notification_type=NotificationType.DELIVERY_FAILURE,
            title="SIF Delivery Failed",
            body=f"Failed to deliver '{sif.subject}': {reason}",
            sif_id=sif.id,
            deliver_at=now,
            data={"sif_id": sif.id, "reason": reason},
            now=now,
        )

    def schedule_scheduled_delivery_reminder(
        self, sif: SIFItem, now: Optional[float] = None
    ) -> Optional[NotificationRecord]:
        """Reminds the author 5 minutes before a scheduled send, if that is still ahead."""
        now = now if now is not None else time.time()
        if sif.scheduled_date is None:
            return None
        remind_at = sif.scheduled_date - DELIVERY_REMINDER_LEAD_SECONDS
        if remind_at <= now:
            return None
        return self._save(
            notification_id=f"reminder-{sif.id}",
            user_uid=sif.author_uid,
            notification_type=NotificationType.DELIVERY_REMINDER,
            title="Scheduled SIF Reminder",
            body=f"Your SIF '{sif.subject}' will be delivered in 5 minutes",
            sif_id=sif.id,
            deliver_at=remind_at,
            data={"sif_id": sif.id},
            now=now,
        )

    def schedule_expiration_warning(
        self, sif: SIFItem, now: Optional[float] = None
    ) -> Optional[NotificationRecord]:
        now = now if now is not None else time.time()
        if sif.expiration_date is None:
            return None
        warn_at = sif.expiration_date - EXPIRATION_WARNING_LEAD_SECONDS
        if warn_at <= now:
            return None
        return self._save(
            notification_id=f"expiration-{sif.id}",
            user_uid=sif.author_uid,
            notification_type=NotificationType.EXPIRATION_WARNING,
            title="SIF Expiring Soon",
            body=f"Your SIF '{sif.subject}' will expire in 24 hours",
            sif_id=sif.id,
            deliver_at=warn_at,
            data={"sif_id": sif.id},
            now=now,
        )

    def schedule_new_sif_notification(
        self, sif: SIFItem, recipient_uid: str, now: Optional[float] = None
    ) -> Optional[NotificationRecord]:
        if recipient_uid not in sif.recipients:
            return None
        now = now if now is not None else time.time()
        return self._save(
            notification_id=f"new-sif-{sif.id}-{recipient_uid}",
            user_uid=recipient_uid,
            notification_type=NotificationType.NEW_SIF,
            title="New SIF Received",
            body=f"You received a new SIF: '{sif.subject}'",
            sif_id=sif.id,
            deliver_at=now,
            data={"sif_id": sif.id, "author_uid": sif.author_uid},
            now=now,
        )

    def schedule_sif_scanned_notification(
        self, sif: SIFItem, scanner_uid: Optional[str], now: Optional[float] = None
    ) -> Optional[NotificationRecord]:
        if scanner_uid == sif.author_uid:
            return None
        now = now if now is not None else time.time()
        return self._save(
            notification_id=f"qr-scan-{sif.id}-{int(now)}",
            user_uid=sif.author_uid,
            notification_type=NotificationType.QR_SCANNED,
            title="SIF QR Code Scanned",
            body=f"Your SIF '{sif.subject}' was accessed via QR code",
            sif_id=sif.id,
            deliver_at=now,
            data={"sif_id": sif.id},
            now=now,
        )

    # --- Management ----------------------------------------------------

    def _owned(self, user_uid: str, notification_id: str) -> dict:
        data = self.db.get(NOTIFICATIONS_COLLECTION, notification_id)
        if data is None or data.get("userUid") != user_uid:
            raise DocumentNotFoundError(NOTIFICATIONS_COLLECTION, notification_id)
        return data

    def list_notifications(
        self, user_uid: str, *, include_future: bool = False, now: Optional[float] = None
    ) -> List[NotificationRecord]:
        now = now if now is not None else time.time()
        docs = self.db.query(
            NOTIFICATIONS_COLLECTION,
            [FieldFilter("userUid", "==", user_uid)],
            order_by="deliverAt",
            descending=True,
        )
        records = [from_document(NotificationRecord, d.id, d.data) for d in docs]
        if not include_future:
            records = [r for r in records if r.deliver_at <= now]
        return records

    def get_pending_notifications(self, user_uid: str) -> List[NotificationRecord]:
        """Notifications that have not been pushed yet, soonest first."""
        docs = self.db.query(
            NOTIFICATIONS_COLLECTION,
            [
                FieldFilter("userUid", "==", user_uid),
                FieldFilter("isSent", "==", False),
            ],
            order_by="deliverAt",
        )
        return [from_document(NotificationRecord, d.id, d.data) for d in docs]

    def unread_count(self, user_uid: str, now: Optional[float] = None) -> int:
        return sum(
            1 for record in self.list_notifications(user_uid, now=now) if not record.is_read
        )

    def mark_read(self, user_uid: str, notification_id: str) -> None:
        self._owned(user_uid, notification_id)
        self.db.update(NOTIFICATIONS_COLLECTION, notification_id, {"isRead": True})

    def mark_all_read(self, user_uid: str) -> int:
        unread = self.db.query(
            NOTIFICATIONS_COLLECTION,
            [
                FieldFilter("userUid", "==", user_uid),
                FieldFilter("isRead", "==", False),
            ],
        )
        if unread:
            self.db.batch_update(
                NOTIFICATIONS_COLLECTION, {d.id: {"isRead": True} for d in unread}
            )
        return len(unread)

    def delete_notification(self, user_uid: str, notification_id: str) -> None:
        self._owned(user_uid, notification_id)
        self.db.delete(NOTIFICATIONS_COLLECTION, notification_id)

    def cancel_notifications_for_sif(self, user_uid: str, sif_id: str) -> int:
        """Removes notifications for `sif_id` that have not been pushed yet."""
        pending = self.db.query(
            NOTIFICATIONS_COLLECTION,
            [
                FieldFilter("userUid", "==", user_uid),
                FieldFilter("sifId", "==", sif_id),
                FieldFilter("isSent", "==", False),
            ],
        )
        self.db.batch_delete(NOTIFICATIONS_COLLECTION, [d.id for d in pending])
        return len(pending)

    def cancel_sif_reminders(self, sif: SIFItem) -> int:
        """Removes the unsent reminder and expiration warning for `sif`."""
        cancelled = 0
        for notification_id in (f"reminder-{sif.id}", f"expiration-{sif.id}"):
            data = self.db.get(NOTIFICATIONS_COLLECTION, notification_id)
            if data is None or data.get("isSent"):
                continue
            self.db.delete(NOTIFICATIONS_COLLECTION, notification_id)
            cancelled += 1
        return cancelled

    def clear_all_notifications(self, user_uid: str) -> int:
        docs = self.db.query(
            NOTIFICATIONS_COLLECTION, [FieldFilter("userUid", "==", user_uid)]
        )
        self.db.batch_delete(NOTIFICATIONS_COLLECTION, [d.id for d in docs])
        return len(docs)

    # --- Preferences and push -----------------------------------------

    def get_preferences(self, user_uid: str) -> NotificationPreferences:
        data = self.db.get(NOTIFICATION_PREFERENCES_COLLECTION, user_uid)
        if data is None:
            return NotificationPreferences(id=user_uid)
        return from_document(NotificationPreferences, user_uid, data)

    def update_preferences(self, preferences: NotificationPreferences) -> None:
        self.db.set(
            NOTIFICATION_PREFERENCES_COLLECTION,
            preferences.id,
            to_document(preferences),
        )

    def register_device_token(self, user_uid: str, token: str) -> None:
        self.db.set(
            USERS_COLLECTION,
            user_uid,
            {"fcmToken": token, "tokenUpdatedAt": time.time()},
            merge=True,
        )

    def dispatch_due_notifications(self, now: Optional[float] = None) -> int:
        """
        Marks every due, unsent notification as sent, pushing it through FCM
        when push is enabled for the deployment and the user. Returns the
        number dispatched.
        """
        now = now if now is not None else time.time()
        docs = self.db.query(
            NOTIFICATIONS_COLLECTION,
            [FieldFilter("isSent", "==", False), FieldFilter("deliverAt", "<=", now)],
        )
        if not docs:
            return 0
        for doc in docs:
            record = from_document(NotificationRecord, doc.id, doc.data)
            if self.push_enabled:
                self._push(record)
        self.db.batch_update(
            NOTIFICATIONS_COLLECTION, {d.id: {"isSent": True} for d in docs}
        )
        logger.info("Dispatched %d notifications", len(docs))
        return len(docs)

    def _push(self, record: NotificationRecord) -> None:
        if not self.get_preferences(record.user_uid).push_enabled:
            return
        token = (self.db.get(USERS_COLLECTION, record.user_uid) or {}).get("fcmToken")
        if not token:
            return
        message = messaging.Message(
            notification=messaging.Notification(title=record.title, body=record.body),
            data={k: str(v) for k, v in record.data.items()},
            token=token,
        )
        try:
            messaging.send(message)
        except firebase_exceptions.FirebaseError:
            logger.exception(
                "[%s] Failed to push notification %s", record.sif_id, record.id
            )
