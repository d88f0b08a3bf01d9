"""
Content reports and the moderation queue.

Users report SIFs into the `reports` collection. Moderators work the queue:
they change a report's status, or resolve it with an action (remove the SIF,
warn, suspend or ban its author).
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import Counter
from enum import StrEnum
from typing import Iterable, List, Optional, Set

from backend.db import DbClient, FieldFilter, text_document_id
from shared import constants
from shared.doc_convert import from_document, to_document
from shared.firebase_constants import (
    REPORTS_COLLECTION,
    SIFS_COLLECTION,
    USER_SUSPENSIONS_COLLECTION,
    USER_WARNINGS_COLLECTION,
    USERS_COLLECTION,
)
from shared.safety import (
    ContentReportStats,
    ModerationStats,
    ReportItem,
    UserSuspension,
    UserWarning,
)
from shared.sif import SIFItem
from shared.types import ModerationAction, ReportReason, ReportStatus

logger = logging.getLogger(__name__)


class ModerationErrorKind(StrEnum):
    AUTHENTICATION_REQUIRED = "authentication_required"
    CANNOT_REPORT_OWN_CONTENT = "cannot_report_own_content"
    ALREADY_REPORTED = "already_reported"
    CONTENT_NOT_FOUND = "content_not_found"
    REPORT_NOT_FOUND = "report_not_found"


_DEFAULT_MESSAGES = {
    ModerationErrorKind.AUTHENTICATION_REQUIRED: "You must be signed in to report content.",
    ModerationErrorKind.CANNOT_REPORT_OWN_CONTENT: "You cannot report your own content.",
    ModerationErrorKind.ALREADY_REPORTED: "You have already reported this content.",
    ModerationErrorKind.CONTENT_NOT_FOUND: "The reported content could not be found.",
    ModerationErrorKind.REPORT_NOT_FOUND: "Report not found.",
}


class ModerationError(Exception):
    def __init__(self, kind: ModerationErrorKind, message: Optional[str] = None):
        super().__init__(message or _DEFAULT_MESSAGES[kind])
        self.kind = kind


def report_document_id(reporter_uid: str, content_id: str) -> str:
    return text_document_id(f"{reporter_uid}\n{content_id}")


class ModerationService:
    def __init__(self, db: DbClient):
        self.db = db

    # --- reporting ----------------------------------------------------------

    def report_content(
        self,
        reporter_uid: str,
        content_id: str,
        reason: ReportReason,
        description: Optional[str] = None,
        now: Optional[float] = None,
    ) -> ReportItem:
        if not reporter_uid:
            raise ModerationError(ModerationErrorKind.AUTHENTICATION_REQUIRED)
        data = self.db.get(SIFS_COLLECTION, content_id)
        if data is None:
            raise ModerationError(ModerationErrorKind.CONTENT_NOT_FOUND)
        author_uid = data.get("authorUid", "")
        if author_uid == reporter_uid:
            raise ModerationError(ModerationErrorKind.CANNOT_REPORT_OWN_CONTENT)

        # One report per reporter and SIF.
        report_id = report_document_id(reporter_uid, content_id)
        if self.db.get(REPORTS_COLLECTION, report_id) is not None:
            raise ModerationError(ModerationErrorKind.ALREADY_REPORTED)

        report = ReportItem(
            id=report_id,
            reporter_id=reporter_uid,
            reported_content_id=content_id,
            reported_user_id=author_uid,
            reason=reason,
            timestamp=now if now is not None else time.time(),
            description=(description or "").strip() or None,
        )
        self.db.set(REPORTS_COLLECTION, report_id, to_document(report))
        logger.info("[%s] Reported %s for %s", reporter_uid, content_id, reason)
        return report

    def get_report(self, report_id: str) -> ReportItem:
        data = self.db.get(REPORTS_COLLECTION, report_id)
        if data is None:
            raise ModerationError(ModerationErrorKind.REPORT_NOT_FOUND)
        return from_document(ReportItem, report_id, data)

    def get_reports_for_content(self, content_id: str) -> List[ReportItem]:
        """Newest first."""
        docs = self.db.query(
            REPORTS_COLLECTION,
            [FieldFilter("reportedContentId", "==", content_id)],
            order_by="timestamp",
            descending=True,
        )
        return [from_document(ReportItem, d.id, d.data) for d in docs]

    def get_pending_reports(self) -> List[ReportItem]:
        """The moderation queue, oldest first."""
        docs = self.db.query(
            REPORTS_COLLECTION,
            [FieldFilter("status", "==", ReportStatus.PENDING.value)],
            order_by="timestamp",
        )
        return [from_document(ReportItem, d.id, d.data) for d in docs]

    def get_reports_by_status(self, status: ReportStatus) -> List[ReportItem]:
        if status == ReportStatus.PENDING:
            return self.get_pending_reports()
        docs = self.db.query(
            REPORTS_COLLECTION,
            [FieldFilter("status", "==", status.value)],
            order_by="timestamp",
            descending=True,
        )
        return [from_document(ReportItem, d.id, d.data) for d in docs]

    # --- moderation ---------------------------------------------------------

    def update_report_status(
        self,
        report_id: str,
        status: ReportStatus,
        moderator_uid: str,
        *,
        action: Optional[ModerationAction] = None,
        notes: Optional[str] = None,
        now: Optional[float] = None,
    ) -> ReportItem:
        updates = {
            "status": status.value,
            "moderatorId": moderator_uid,
            "resolvedDate": now if now is not None else time.time(),
        }
        if action is not None:
            updates["actionTaken"] = action.value
        if notes:
            updates["moderatorNotes"] = notes
        updated = self.db.update_with(REPORTS_COLLECTION, report_id, lambda _: updates)
        if updated is None:
            raise ModerationError(ModerationErrorKind.REPORT_NOT_FOUND)
        logger.info("[%s] Report %s is now %s", moderator_uid, report_id, status)
        return from_document(ReportItem, report_id, updated)

    def moderate_report(
        self,
        report_id: str,
        action: ModerationAction,
        moderator_uid: str,
        notes: Optional[str] = None,
        now: Optional[float] = None,
    ) -> ReportItem:
        """Resolves the report and carries out `action` against its subject."""
        now = now if now is not None else time.time()
        report = self.update_report_status(
            report_id,
            ReportStatus.RESOLVED,
            moderator_uid,
            action=action,
            notes=notes,
            now=now,
        )
        if action == ModerationAction.CONTENT_REMOVED:
            self.remove_content(report.reported_content_id, moderator_uid, now=now)
        elif action == ModerationAction.USER_WARNED:
            self._warn_user(report, moderator_uid, now)
        elif action == ModerationAction.USER_SUSPENDED:
            self._suspend_user(report.reported_user_id, moderator_uid, now)
        elif action == ModerationAction.USER_BANNED:
            self.db.set(
                USERS_COLLECTION,
                report.reported_user_id,
                {"isBanned": True, "bannedDate": now, "bannedBy": moderator_uid},
                merge=True,
            )
        logger.info(
            "[%s] Resolved report %s with %s", moderator_uid, report_id, action
        )
        return report

    def _warn_user(self, report: ReportItem, moderator_uid: str, now: float) -> None:
        warning = UserWarning(
            id=uuid.uuid4().hex,
            user_id=report.reported_user_id,
            reason=report.reason,
            timestamp=now,
            issued_by=moderator_uid,
        )
        self.db.set(USER_WARNINGS_COLLECTION, warning.id, to_document(warning))

    def _suspend_user(self, user_uid: str, moderator_uid: str, now: float) -> None:
        suspension = UserSuspension(
            id=uuid.uuid4().hex,
            user_id=user_uid,
            start_date=now,
            end_date=now + constants.SUSPENSION_DURATION_SECONDS,
            issued_by=moderator_uid,
        )
        self.db.set(USER_SUSPENSIONS_COLLECTION, suspension.id, to_document(suspension))
        self.db.set(
            USERS_COLLECTION,
            user_uid,
            {"isSuspended": True, "suspensionEndDate": suspension.end_date},
            merge=True,
        )

    def remove_content(
        self, content_id: str, moderator_uid: str, now: Optional[float] = None
    ) -> None:
        removed = self.db.update_with(
            SIFS_COLLECTION,
            content_id,
            lambda _: {
                "isRemoved": True,
                "removedDate": now if now is not None else time.time(),
                "removedBy": moderator_uid,
            },
        )
        if removed is None:
            raise ModerationError(ModerationErrorKind.CONTENT_NOT_FOUND)
        logger.info("[%s] Removed SIF %s", moderator_uid, content_id)

    # --- visibility ---------------------------------------------------------

    def should_hide_content(self, content_id: str, user_uid: str) -> bool:
        """True when the SIF was removed or `user_uid` has reported it."""
        data = self.db.get(SIFS_COLLECTION, content_id)
        if data is not None and data.get("isRemoved"):
            return True
        return (
            self.db.get(REPORTS_COLLECTION, report_document_id(user_uid, content_id))
            is not None
        )

    def reported_content_ids(self, user_uid: str) -> Set[str]:
        docs = self.db.query(
            REPORTS_COLLECTION, [FieldFilter("reporterId", "==", user_uid)]
        )
        return {d.data["reportedContentId"] for d in docs}

    def filter_hidden_content(
        self, user_uid: str, sifs: Iterable[SIFItem]
    ) -> List[SIFItem]:
        """Same rule as `should_hide_content`, over a list with one query.

        Authors always see their own SIFs.
        """
        reported = self.reported_content_ids(user_uid)
        return [
            s
            for s in sifs
            if s.author_uid == user_uid or not (s.is_removed or s.id in reported)
        ]

    # --- statistics ---------------------------------------------------------

    def get_content_report_stats(self, content_id: str) -> ContentReportStats:
        reports = self.get_reports_for_content(content_id)
        return ContentReportStats(
            total_reports=len(reports),
            pending_reports=sum(1 for r in reports if r.status == ReportStatus.PENDING),
            reason_breakdown=dict(Counter(r.reason.value for r in reports)),
            most_recent_report=reports[0].timestamp if reports else None,
        )

    def get_moderation_stats(self) -> ModerationStats:
        stats = ModerationStats()
        reasons: Counter = Counter()
        actions: Counter = Counter()
        for doc in self.db.query(REPORTS_COLLECTION):
            report = from_document(ReportItem, doc.id, doc.data)
            stats.total_reports += 1
            if report.status == ReportStatus.PENDING:
                stats.pending_reports += 1
            elif report.status == ReportStatus.UNDER_REVIEW:
                stats.under_review_reports += 1
            elif report.status == ReportStatus.RESOLVED:
                stats.resolved_reports += 1
            elif report.status == ReportStatus.DISMISSED:
                stats.dismissed_reports += 1
            reasons[report.reason.value] += 1
            if report.action_taken is not None:
                actions[report.action_taken.value] += 1
        stats.reports_by_reason = dict(reasons)
        stats.actions_taken = dict(actions)
        return stats
