"""
User blocking stored in the top-level `blocked_users` collection.

One document per (blocker, blocked) pair. Its id is derived from the pair, so
blocking the same user twice can never create a second record.
"""

from __future__ import annotations

import logging
import time
from enum import StrEnum
from typing import Iterable, List, Optional

from backend.db import DbClient, FieldFilter, text_document_id
from shared.doc_convert import from_document, to_document
from shared.firebase_constants import BLOCKED_USERS_COLLECTION, USERS_COLLECTION
from shared.safety import BlockedUser, BlockedUserDetail, BlockingInfo
from shared.sif import SIFItem
from shared.types import BlockReason

logger = logging.getLogger(__name__)


class BlockingErrorKind(StrEnum):
    AUTHENTICATION_REQUIRED = "authentication_required"
    CANNOT_BLOCK_SELF = "cannot_block_self"
    ALREADY_BLOCKED = "already_blocked"
    BLOCK_NOT_FOUND = "block_not_found"


_DEFAULT_MESSAGES = {
    BlockingErrorKind.AUTHENTICATION_REQUIRED: "You must be signed in to perform this action.",
    BlockingErrorKind.CANNOT_BLOCK_SELF: "You cannot block yourself.",
    BlockingErrorKind.ALREADY_BLOCKED: "This user is already blocked.",
    BlockingErrorKind.BLOCK_NOT_FOUND: "Block record not found.",
}


class BlockingError(Exception):
    def __init__(self, kind: BlockingErrorKind, message: Optional[str] = None):
        super().__init__(message or _DEFAULT_MESSAGES[kind])
        self.kind = kind


def block_document_id(blocker_uid: str, blocked_uid: str) -> str:
    return text_document_id(f"{blocker_uid}\n{blocked_uid}")


class BlockingService:
    def __init__(self, db: DbClient):
        self.db = db

    def block_user(
        self,
        blocker_uid: str,
        blocked_uid: str,
        reason: Optional[BlockReason] = None,
        now: Optional[float] = None,
    ) -> BlockedUser:
        if not blocker_uid:
            raise BlockingError(BlockingErrorKind.AUTHENTICATION_REQUIRED)
        if blocker_uid == blocked_uid:
            raise BlockingError(BlockingErrorKind.CANNOT_BLOCK_SELF)
        doc_id = block_document_id(blocker_uid, blocked_uid)
        if self.db.get(BLOCKED_USERS_COLLECTION, doc_id) is not None:
            raise BlockingError(BlockingErrorKind.ALREADY_BLOCKED)

        block = BlockedUser(
            id=doc_id,
            blocker_id=blocker_uid,
            blocked_user_id=blocked_uid,
            timestamp=now if now is not None else time.time(),
            reason=reason,
        )
        self.db.set(BLOCKED_USERS_COLLECTION, doc_id, to_document(block))
        logger.info("[%s] Blocked %s", blocker_uid, blocked_uid)
        return block

    def unblock_user(self, blocker_uid: str, blocked_uid: str) -> None:
        if not blocker_uid:
            raise BlockingError(BlockingErrorKind.AUTHENTICATION_REQUIRED)
        doc_id = block_document_id(blocker_uid, blocked_uid)
        if self.db.get(BLOCKED_USERS_COLLECTION, doc_id) is None:
            raise BlockingError(BlockingErrorKind.BLOCK_NOT_FOUND)
        self.db.delete(BLOCKED_USERS_COLLECTION, doc_id)
        logger.info("[%s] Unblocked %s", blocker_uid, blocked_uid)

    def is_user_blocked(self, blocker_uid: str, blocked_uid: str) -> bool:
        doc_id = block_document_id(blocker_uid, blocked_uid)
        return self.db.get(BLOCKED_USERS_COLLECTION, doc_id) is not None

    def list_blocked_users(self, blocker_uid: str) -> List[BlockedUser]:
        """Most recent blocks first."""
        docs = self.db.query(
            BLOCKED_USERS_COLLECTION,
            [FieldFilter("blockerId", "==", blocker_uid)],
            order_by="timestamp",
            descending=True,
        )
        return [from_document(BlockedUser, d.id, d.data) for d in docs]

    def list_blocked_users_with_details(self, blocker_uid: str) -> List[BlockedUserDetail]:
        details = []
        for block in self.list_blocked_users(blocker_uid):
            profile = self.db.get(USERS_COLLECTION, block.blocked_user_id) or {}
            details.append(
                BlockedUserDetail(
                    block=block,
                    user_name=profile.get("name") or "Unknown User",
                    user_email=profile.get("email") or "",
                )
            )
        return details

    def get_blocking_info(self, user_uid: str) -> BlockingInfo:
        blocked = self.db.query(
            BLOCKED_USERS_COLLECTION, [FieldFilter("blockerId", "==", user_uid)]
        )
        blocked_by = self.db.query(
            BLOCKED_USERS_COLLECTION, [FieldFilter("blockedUserId", "==", user_uid)]
        )
        return BlockingInfo(
            user_id=user_uid,
            blocked_users={d.data["blockedUserId"] for d in blocked},
            blocked_by_users={d.data["blockerId"] for d in blocked_by},
        )

    def filter_blocked_content(
        self, user_uid: str, sifs: Iterable[SIFItem]
    ) -> List[SIFItem]:
        """Drops SIFs written by users that `user_uid` has blocked."""
        blocked = self.get_blocking_info(user_uid).blocked_users
        return [s for s in sifs if s.author_uid not in blocked]

    def should_prevent_interaction(self, user_uid: str, other_uid: str) -> bool:
        """True when either user has blocked the other."""
        return self.is_user_blocked(user_uid, other_uid) or self.is_user_blocked(
            other_uid, user_uid
        )
