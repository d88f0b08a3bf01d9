import unittest

from backend.blocking import BlockingError, BlockingErrorKind, BlockingService
from backend.db import InMemoryDbClient
from backend.sif_manager import SIFDraft, SIFManagerService
from shared.firebase_constants import BLOCKED_USERS_COLLECTION, USERS_COLLECTION
from shared.types import BlockReason


class BlockingServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.blocking = BlockingService(self.db)

    def test_block_and_unblock(self):
        block = self.blocking.block_user("alice", "bob", BlockReason.SPAM, now=10.0)

        self.assertEqual(block.blocker_id, "alice")
        self.assertEqual(block.blocked_user_id, "bob")
        self.assertEqual(block.reason, BlockReason.SPAM)
        self.assertTrue(self.blocking.is_user_blocked("alice", "bob"))
        self.assertFalse(self.blocking.is_user_blocked("bob", "alice"))
        stored = self.db.get(BLOCKED_USERS_COLLECTION, block.id)
        self.assertEqual(stored["reason"], "spam")

        self.blocking.unblock_user("alice", "bob")
        self.assertFalse(self.blocking.is_user_blocked("alice", "bob"))

    def test_block_errors(self):
        cases = [
            ("", "bob", BlockingErrorKind.AUTHENTICATION_REQUIRED),
            ("alice", "alice", BlockingErrorKind.CANNOT_BLOCK_SELF),
        ]
        for blocker, blocked, kind in cases:
            with self.assertRaises(BlockingError) as ctx:
                self.blocking.block_user(blocker, blocked)
            self.assertEqual(ctx.exception.kind, kind)

        self.blocking.block_user("alice", "bob")
        with self.assertRaises(BlockingError) as ctx:
            self.blocking.block_user("alice", "bob")
        self.assertEqual(ctx.exception.kind, BlockingErrorKind.ALREADY_BLOCKED)
        self.assertEqual(len(self.db.query(BLOCKED_USERS_COLLECTION)), 1)

    def test_unblock_without_block(self):
        with self.assertRaises(BlockingError) as ctx:
            self.blocking.unblock_user("alice", "bob")
        self.assertEqual(ctx.exception.kind, BlockingErrorKind.BLOCK_NOT_FOUND)

    def test_blocked_users_with_details(self):
        self.db.set(USERS_COLLECTION, "bob", {"name": "Bob", "email": "bob@example.com"})
        self.blocking.block_user("alice", "bob", now=1.0)
        self.blocking.block_user("alice", "carol", now=2.0)

        details = self.blocking.list_blocked_users_with_details("alice")

        self.assertEqual([d.block.blocked_user_id for d in details], ["carol", "bob"])
        self.assertEqual((details[0].user_name, details[0].user_email), ("Unknown User", ""))
        self.assertEqual((details[1].user_name, details[1].user_email), ("Bob", "bob@example.com"))

    def test_blocking_info_covers_both_directions(self):
        self.blocking.block_user("alice", "bob")
        self.blocking.block_user("carol", "alice")

        info = self.blocking.get_blocking_info("alice")

        self.assertEqual(info.blocked_users, {"bob"})
        self.assertEqual(info.blocked_by_users, {"carol"})
        self.assertTrue(info.has_blocking_relationship("carol"))
        self.assertFalse(info.has_blocking_relationship("dave"))
        self.assertTrue(self.blocking.should_prevent_interaction("alice", "carol"))
        self.assertTrue(self.blocking.should_prevent_interaction("bob", "alice"))
        self.assertFalse(self.blocking.should_prevent_interaction("bob", "carol"))

    def test_filter_blocked_content(self):
        manager = SIFManagerService(self.db)
        from_bob = manager.create_sif(
            "bob", SIFDraft(recipients=["alice"], subject="Hi", message="")
        )
        from_carol = manager.create_sif(
            "carol", SIFDraft(recipients=["alice"], subject="Hey", message="")
        )
        self.blocking.block_user("alice", "bob")

        visible = self.blocking.filter_blocked_content("alice", [from_bob, from_carol])

        self.assertEqual([s.id for s in visible], [from_carol.id])


if __name__ == "__main__":
    unittest.main()
