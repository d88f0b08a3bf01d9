import unittest

from shared.delivery_status import (
    DELIVERABLE_STATUSES,
    DeliveryTrigger,
    InvalidTransitionError,
    can_transition,
    is_terminal,
    next_status,
)
from shared.types import SIFDeliveryStatus


class DeliveryStatusTests(unittest.TestCase):
    def test_happy_path_with_attachments(self):
        status = SIFDeliveryStatus.PENDING
        for trigger in (
            DeliveryTrigger.DELIVER,
            DeliveryTrigger.UPLOAD,
            DeliveryTrigger.COMPLETE,
        ):
            status = next_status(status, trigger)
        self.assertEqual(status, SIFDeliveryStatus.DELIVERED)

    def test_retry_returns_to_scheduled(self):
        self.assertEqual(
            next_status(SIFDeliveryStatus.PROCESSING, DeliveryTrigger.RETRY),
            SIFDeliveryStatus.SCHEDULED,
        )
        self.assertEqual(
            next_status(SIFDeliveryStatus.FAILED, DeliveryTrigger.RETRY),
            SIFDeliveryStatus.SCHEDULED,
        )

    def test_cancelled_sif_cannot_be_delivered(self):
        with self.assertRaises(InvalidTransitionError) as ctx:
            next_status(SIFDeliveryStatus.CANCELLED, DeliveryTrigger.DELIVER)
        self.assertEqual(ctx.exception.current, SIFDeliveryStatus.CANCELLED)
        self.assertIn("deliver", str(ctx.exception))

    def test_delivered_sif_can_only_expire(self):
        allowed = [
            t for t in DeliveryTrigger if can_transition(SIFDeliveryStatus.DELIVERED, t)
        ]
        self.assertEqual(allowed, [DeliveryTrigger.EXPIRE])

    def test_accepts_raw_status_strings(self):
        self.assertTrue(can_transition("pending", DeliveryTrigger.SCHEDULE))
        self.assertEqual(
            next_status("scheduled", DeliveryTrigger.CANCEL), SIFDeliveryStatus.CANCELLED
        )

    def test_terminal_statuses(self):
        self.assertTrue(is_terminal(SIFDeliveryStatus.EXPIRED))
        self.assertTrue(is_terminal(SIFDeliveryStatus.CANCELLED))
        self.assertFalse(is_terminal(SIFDeliveryStatus.FAILED))
        self.assertNotIn(SIFDeliveryStatus.PROCESSING, DELIVERABLE_STATUSES)


if __name__ == "__main__":
    unittest.main()
