import unittest
from unittest.mock import patch

from backend.db import DocumentNotFoundError, InMemoryDbClient
from backend.notifications import NotificationPreferences, NotificationService
from shared.firebase_constants import NOTIFICATIONS_COLLECTION
from shared.sif import SIFItem
from shared.types import NotificationType

NOW = 1_700_000_000.0


def _sif(**overrides) -> SIFItem:
    fields = dict(
        id="sif-1",
        author_uid="alice",
        recipients=["bob", "carol"],
        subject="Thanks",
        message="Thank you for everything",
        created_date=NOW - 60,
    )
    fields.update(overrides)
    return SIFItem(**fields)


class NotificationSchedulingTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.service = NotificationService(self.db)

    def test_delivery_notification(self):
        record = self.service.schedule_delivery_notification(_sif(), now=NOW)

        self.assertEqual(record.id, "delivery-sif-1")
        self.assertEqual(record.user_uid, "alice")
        self.assertEqual(record.type, NotificationType.DELIVERY_SUCCESS)
        self.assertEqual(record.body, "Your SIF 'Thanks' has been delivered to bob, carol")
        self.assertEqual(record.deliver_at, NOW)
        self.assertIsNotNone(self.db.get(NOTIFICATIONS_COLLECTION, "delivery-sif-1"))

    def test_failure_notification(self):
        record = self.service.schedule_delivery_failure_notification(
            _sif(), "Network error", now=NOW
        )
        self.assertEqual(record.id, "delivery-failure-sif-1")
        self.assertEqual(record.body, "Failed to deliver 'Thanks': Network error")
        self.assertEqual(record.data["reason"], "Network error")

    def test_reminder_is_five_minutes_before_schedule(self):
        record = self.service.schedule_scheduled_delivery_reminder(
            _sif(scheduled_date=NOW + 3600), now=NOW
        )
        self.assertEqual(record.id, "reminder-sif-1")
        self.assertEqual(record.deliver_at, NOW + 3600 - 300)

        self.assertIsNone(
            self.service.schedule_scheduled_delivery_reminder(
                _sif(scheduled_date=NOW + 200), now=NOW
            )
        )
        self.assertIsNone(self.service.schedule_scheduled_delivery_reminder(_sif(), now=NOW))

    def test_expiration_warning_is_a_day_ahead(self):
        record = self.service.schedule_expiration_warning(
            _sif(expiration_date=NOW + 3 * 86400), now=NOW
        )
        self.assertEqual(record.id, "expiration-sif-1")
        self.assertEqual(record.deliver_at, NOW + 2 * 86400)
        self.assertIsNone(
            self.service.schedule_expiration_warning(
                _sif(expiration_date=NOW + 3600), now=NOW
            )
        )

    def test_new_sif_notification_only_for_recipients(self):
        record = self.service.schedule_new_sif_notification(_sif(), "bob", now=NOW)
        self.assertEqual(record.id, "new-sif-sif-1-bob")
        self.assertEqual(record.user_uid, "bob")
        self.assertIsNone(self.service.schedule_new_sif_notification(_sif(), "mallory", now=NOW))

    def test_scan_notification_skips_author(self):
        record = self.service.schedule_sif_scanned_notification(_sif(), "bob", now=NOW)
        self.assertEqual(record.id, f"qr-scan-sif-1-{int(NOW)}")
        self.assertEqual(record.user_uid, "alice")
        self.assertIsNone(self.service.schedule_sif_scanned_notification(_sif(), "alice", now=NOW))

    def test_disabled_type_is_not_saved(self):
        self.service.update_preferences(
            NotificationPreferences(id="alice", disabled_types=["delivery_success"])
        )
        self.assertIsNone(self.service.schedule_delivery_notification(_sif(), now=NOW))
        self.assertIsNotNone(
            self.service.schedule_delivery_failure_notification(_sif(), "x", now=NOW)
        )
        self.assertEqual(
            self.service.get_preferences("alice").disabled_types, ["delivery_success"]
        )


class NotificationManagementTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.service = NotificationService(self.db)
        sif = _sif(scheduled_date=NOW + 3600, expiration_date=NOW + 3 * 86400)
        self.service.schedule_delivery_notification(sif, now=NOW)
        self.service.schedule_scheduled_delivery_reminder(sif, now=NOW)
        self.service.schedule_expiration_warning(sif, now=NOW)
        self.service.schedule_delivery_notification(_sif(id="sif-2"), now=NOW - 10)

    def test_list_hides_future_notifications(self):
        listed = self.service.list_notifications("alice", now=NOW)
        self.assertEqual([r.id for r in listed], ["delivery-sif-1", "delivery-sif-2"])

        everything = self.service.list_notifications("alice", include_future=True, now=NOW)
        self.assertEqual(everything[0].id, "expiration-sif-1")
        self.assertEqual(len(everything), 4)
        self.assertEqual(self.service.list_notifications("bob", now=NOW), [])

    def test_unread_and_mark_read(self):
        self.assertEqual(self.service.unread_count("alice", now=NOW), 2)
        self.service.mark_read("alice", "delivery-sif-1")
        self.assertEqual(self.service.unread_count("alice", now=NOW), 1)
        self.assertEqual(self.service.mark_all_read("alice"), 3)
        self.assertEqual(self.service.unread_count("alice", now=NOW), 0)

    def test_other_users_notifications_are_hidden(self):
        with self.assertRaises(DocumentNotFoundError):
            self.service.mark_read("bob", "delivery-sif-1")
        with self.assertRaises(DocumentNotFoundError):
            self.service.delete_notification("bob", "delivery-sif-1")
        self.service.delete_notification("alice", "delivery-sif-1")
        self.assertIsNone(self.db.get(NOTIFICATIONS_COLLECTION, "delivery-sif-1"))

    def test_dispatch_due_notifications(self):
        self.assertEqual(self.service.dispatch_due_notifications(now=NOW), 2)
        self.assertEqual(self.service.dispatch_due_notifications(now=NOW), 0)
        pending = self.service.get_pending_notifications("alice")
        self.assertEqual([r.id for r in pending], ["reminder-sif-1", "expiration-sif-1"])

        self.assertEqual(self.service.dispatch_due_notifications(now=NOW + 3600), 1)

    def test_cancel_notifications_for_sif_keeps_sent_ones(self):
        self.service.dispatch_due_notifications(now=NOW)

        self.assertEqual(self.service.cancel_notifications_for_sif("alice", "sif-1"), 2)
        remaining = self.service.list_notifications("alice", include_future=True, now=NOW)
        self.assertEqual({r.id for r in remaining}, {"delivery-sif-1", "delivery-sif-2"})

    def test_clear_all(self):
        self.assertEqual(self.service.clear_all_notifications("alice"), 4)
        self.assertEqual(self.service.list_notifications("alice", include_future=True), [])


class NotificationPushTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.service = NotificationService(self.db, push_enabled=True)
        self.service.schedule_delivery_notification(_sif(), now=NOW)

    @patch("backend.notifications.messaging.send")
    def test_push_requires_device_token(self, mock_send):
        self.service.dispatch_due_notifications(now=NOW)
        mock_send.assert_not_called()

    @patch("backend.notifications.messaging.send")
    def test_push_sends_to_registered_token(self, mock_send):
        self.service.register_device_token("alice", "token-123")

        self.assertEqual(self.service.dispatch_due_notifications(now=NOW), 1)

        mock_send.assert_called_once()
        message = mock_send.call_args.args[0]
        self.assertEqual(message.token, "token-123")
        self.assertEqual(message.notification.title, "SIF Delivered Successfully")

    @patch("backend.notifications.messaging.send")
    def test_push_respects_preferences(self, mock_send):
        self.service.register_device_token("alice", "token-123")
        self.service.update_preferences(NotificationPreferences(id="alice", push_enabled=False))

        self.assertEqual(self.service.dispatch_due_notifications(now=NOW), 1)
        mock_send.assert_not_called()


if __name__ == "__main__":
    unittest.main()
