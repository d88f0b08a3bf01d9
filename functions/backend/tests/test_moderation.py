import unittest

from backend.db import InMemoryDbClient
from backend.moderation import ModerationError, ModerationErrorKind, ModerationService
from backend.sif_manager import SIFDraft, SIFManagerService
from shared import constants
from shared.firebase_constants import (
    SIFS_COLLECTION,
    USER_SUSPENSIONS_COLLECTION,
    USER_WARNINGS_COLLECTION,
    USERS_COLLECTION,
)
from shared.types import ModerationAction, ReportReason, ReportStatus


class ModerationServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.moderation = ModerationService(self.db)
        manager = SIFManagerService(self.db)
        self.sif = manager.create_sif(
            "alice", SIFDraft(recipients=["bob", "carol"], subject="Hi", message="")
        )
        self.other = manager.create_sif(
            "alice", SIFDraft(recipients=["bob"], subject="Again", message="")
        )

    def test_report_content(self):
        report = self.moderation.report_content(
            "bob", self.sif.id, ReportReason.SPAM, "  Ads  ", now=10.0
        )

        self.assertEqual(report.reported_user_id, "alice")
        self.assertEqual(report.status, ReportStatus.PENDING)
        self.assertEqual(report.description, "Ads")
        self.assertEqual(self.moderation.get_report(report.id), report)

    def test_report_errors(self):
        cases = [
            ("", self.sif.id, ModerationErrorKind.AUTHENTICATION_REQUIRED),
            ("bob", "missing", ModerationErrorKind.CONTENT_NOT_FOUND),
            ("alice", self.sif.id, ModerationErrorKind.CANNOT_REPORT_OWN_CONTENT),
        ]
        for reporter, content_id, kind in cases:
            with self.assertRaises(ModerationError) as ctx:
                self.moderation.report_content(reporter, content_id, ReportReason.SPAM)
            self.assertEqual(ctx.exception.kind, kind)

        self.moderation.report_content("bob", self.sif.id, ReportReason.SPAM)
        with self.assertRaises(ModerationError) as ctx:
            self.moderation.report_content("bob", self.sif.id, ReportReason.HARASSMENT)
        self.assertEqual(ctx.exception.kind, ModerationErrorKind.ALREADY_REPORTED)

    def test_report_queues(self):
        first = self.moderation.report_content("bob", self.sif.id, ReportReason.SPAM, now=1.0)
        second = self.moderation.report_content(
            "carol", self.sif.id, ReportReason.HATE_SPEECH, now=2.0
        )
        third = self.moderation.report_content("bob", self.other.id, ReportReason.OTHER, now=3.0)
        self.moderation.update_report_status(
            third.id, ReportStatus.DISMISSED, "mod", now=4.0
        )

        self.assertEqual(
            [r.id for r in self.moderation.get_pending_reports()], [first.id, second.id]
        )
        self.assertEqual(
            [r.id for r in self.moderation.get_reports_for_content(self.sif.id)],
            [second.id, first.id],
        )
        self.assertEqual(
            [r.id for r in self.moderation.get_reports_by_status(ReportStatus.DISMISSED)],
            [third.id],
        )

    def test_update_report_status(self):
        report = self.moderation.report_content("bob", self.sif.id, ReportReason.SPAM)

        updated = self.moderation.update_report_status(
            report.id,
            ReportStatus.UNDER_REVIEW,
            "mod",
            action=ModerationAction.NO_ACTION,
            notes="Looking",
            now=50.0,
        )

        self.assertEqual(updated.status, ReportStatus.UNDER_REVIEW)
        self.assertEqual(updated.moderator_id, "mod")
        self.assertEqual(updated.moderator_notes, "Looking")
        self.assertEqual(updated.action_taken, ModerationAction.NO_ACTION)
        self.assertEqual(updated.resolved_date, 50.0)
        self.assertEqual(updated.reporter_id, "bob")

        with self.assertRaises(ModerationError) as ctx:
            self.moderation.update_report_status("missing", ReportStatus.RESOLVED, "mod")
        self.assertEqual(ctx.exception.kind, ModerationErrorKind.REPORT_NOT_FOUND)

    def test_moderate_report_removes_content(self):
        report = self.moderation.report_content("bob", self.sif.id, ReportReason.VIOLENCE)

        resolved = self.moderation.moderate_report(
            report.id, ModerationAction.CONTENT_REMOVED, "mod", now=100.0
        )

        self.assertEqual(resolved.status, ReportStatus.RESOLVED)
        self.assertEqual(resolved.action_taken, ModerationAction.CONTENT_REMOVED)
        stored = self.db.get(SIFS_COLLECTION, self.sif.id)
        self.assertTrue(stored["isRemoved"])
        self.assertEqual(stored["removedBy"], "mod")
        self.assertEqual(stored["removedDate"], 100.0)
        self.assertTrue(self.moderation.should_hide_content(self.sif.id, "carol"))

    def test_moderate_report_user_actions(self):
        warned = self.moderation.report_content("bob", self.sif.id, ReportReason.HARASSMENT)
        self.moderation.moderate_report(warned.id, ModerationAction.USER_WARNED, "mod", now=1.0)
        warnings = self.db.query(USER_WARNINGS_COLLECTION)
        self.assertEqual(len(warnings), 1)
        self.assertEqual(warnings[0].data["userId"], "alice")
        self.assertEqual(warnings[0].data["reason"], "harassment")

        suspended = self.moderation.report_content("carol", self.sif.id, ReportReason.SPAM)
        self.moderation.moderate_report(
            suspended.id, ModerationAction.USER_SUSPENDED, "mod", now=1.0
        )
        self.assertEqual(len(self.db.query(USER_SUSPENSIONS_COLLECTION)), 1)
        profile = self.db.get(USERS_COLLECTION, "alice")
        self.assertTrue(profile["isSuspended"])
        self.assertEqual(
            profile["suspensionEndDate"], 1.0 + constants.SUSPENSION_DURATION_SECONDS
        )

        banned = self.moderation.report_content("bob", self.other.id, ReportReason.SPAM)
        self.moderation.moderate_report(banned.id, ModerationAction.USER_BANNED, "mod", now=2.0)
        profile = self.db.get(USERS_COLLECTION, "alice")
        self.assertTrue(profile["isBanned"])
        self.assertEqual(profile["bannedBy"], "mod")
        self.assertTrue(profile["isSuspended"])

    def test_remove_missing_content(self):
        with self.assertRaises(ModerationError) as ctx:
            self.moderation.remove_content("missing", "mod")
        self.assertEqual(ctx.exception.kind, ModerationErrorKind.CONTENT_NOT_FOUND)

    def test_hidden_content(self):
        self.assertFalse(self.moderation.should_hide_content(self.sif.id, "bob"))
        self.moderation.report_content("bob", self.sif.id, ReportReason.SPAM)

        self.assertTrue(self.moderation.should_hide_content(self.sif.id, "bob"))
        self.assertFalse(self.moderation.should_hide_content(self.sif.id, "carol"))
        self.assertEqual(
            [s.id for s in self.moderation.filter_hidden_content("bob", [self.sif, self.other])],
            [self.other.id],
        )
        self.assertEqual(
            len(self.moderation.filter_hidden_content("alice", [self.sif, self.other])), 2
        )

    def test_statistics(self):
        spam = self.moderation.report_content("bob", self.sif.id, ReportReason.SPAM, now=1.0)
        self.moderation.report_content("carol", self.sif.id, ReportReason.SPAM, now=5.0)
        self.moderation.report_content("bob", self.other.id, ReportReason.HATE_SPEECH, now=3.0)
        self.moderation.moderate_report(spam.id, ModerationAction.USER_WARNED, "mod")

        content = self.moderation.get_content_report_stats(self.sif.id)
        self.assertEqual(content.total_reports, 2)
        self.assertEqual(content.pending_reports, 1)
        self.assertEqual(content.reason_breakdown, {"spam": 2})
        self.assertEqual(content.most_recent_report, 5.0)

        stats = self.moderation.get_moderation_stats()
        self.assertEqual(stats.total_reports, 3)
        self.assertEqual(stats.pending_reports, 2)
        self.assertEqual(stats.resolved_reports, 1)
        self.assertEqual(stats.reports_by_reason, {"spam": 2, "hate_speech": 1})
        self.assertEqual(stats.actions_taken, {"user_warned": 1})

        self.assertEqual(
            self.moderation.get_content_report_stats("nothing").most_recent_report, None
        )


if __name__ == "__main__":
    unittest.main()
