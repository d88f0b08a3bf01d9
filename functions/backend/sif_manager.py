"""
SIF organisation: creation, folders, favourites, archive, tags, search and
batch operations over a user's sent and received SIFs.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Iterable, List, Optional

from backend.db import DbClient, FieldFilter
from shared import constants
from shared.doc_convert import from_document, to_document
from shared.firebase_constants import (
    FOLDERS_COLLECTION,
    SIFS_COLLECTION,
    user_subcollection,
)
from shared.sif import DEFAULT_FOLDER_IDS, DEFAULT_FOLDERS, SIFFolder, SIFItem
from shared.types import SIFBatchOperation, SIFDeliveryStatus, SIFSortOption

logger = logging.getLogger(__name__)


class SIFManagerErrorKind(StrEnum):
    AUTHENTICATION_REQUIRED = "authentication_required"
    FOLDER_NOT_FOUND = "folder_not_found"
    INVALID_OPERATION = "invalid_operation"
    SIF_NOT_FOUND = "sif_not_found"
    PERMISSION_DENIED = "permission_denied"
    INVALID_ARGUMENT = "invalid_argument"


_DEFAULT_MESSAGES = {
    SIFManagerErrorKind.AUTHENTICATION_REQUIRED: "User authentication required",
    SIFManagerErrorKind.FOLDER_NOT_FOUND: "Folder not found",
    SIFManagerErrorKind.INVALID_OPERATION: "Invalid operation",
    SIFManagerErrorKind.SIF_NOT_FOUND: "SIF not found",
    SIFManagerErrorKind.PERMISSION_DENIED: "You do not have access to this SIF",
    SIFManagerErrorKind.INVALID_ARGUMENT: "Invalid argument",
}


class SIFManagerError(Exception):
    def __init__(self, kind: SIFManagerErrorKind, message: Optional[str] = None):
        super().__init__(message or _DEFAULT_MESSAGES[kind])
        self.kind = kind


@dataclass
class SIFDraft:
    recipients: List[str]
    subject: str
    message: str
    scheduled_date: Optional[float] = None
    expiration_date: Optional[float] = None
    template_name: Optional[str] = None
    category_name: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    notify_on_delivery: bool = True
    notify_on_open: bool = False


@dataclass
class SIFCollections:
    sent: List[SIFItem] = field(default_factory=list)
    received: List[SIFItem] = field(default_factory=list)
    favorites: List[SIFItem] = field(default_factory=list)
    archived: List[SIFItem] = field(default_factory=list)


@dataclass
class SIFSearchFilters:
    statuses: List[SIFDeliveryStatus] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    date_from: Optional[float] = None
    date_to: Optional[float] = None
    has_attachments_only: bool = False


def _merge_tags(existing: Iterable[str], new: Iterable[str]) -> List[str]:
    merged: List[str] = []
    for tag in list(existing) + list(new):
        tag = tag.strip()
        if tag and tag not in merged:
            merged.append(tag)
    return merged


def validate_draft(draft: SIFDraft) -> None:
    if not draft.subject.strip():
        raise SIFManagerError(
            SIFManagerErrorKind.INVALID_ARGUMENT, "Subject is required"
        )
    if len(draft.subject) > constants.MAX_SUBJECT_LENGTH:
        raise SIFManagerError(
            SIFManagerErrorKind.INVALID_ARGUMENT, "Subject is too long"
        )
    if len(draft.message) > constants.MAX_MESSAGE_LENGTH:
        raise SIFManagerError(
            SIFManagerErrorKind.INVALID_ARGUMENT, "Message is too long"
        )
    recipients = [r for r in draft.recipients if r.strip()]
    if not recipients:
        raise SIFManagerError(
            SIFManagerErrorKind.INVALID_ARGUMENT, "At least one recipient is required"
        )
    if len(recipients) > constants.MAX_RECIPIENTS:
        raise SIFManagerError(
            SIFManagerErrorKind.INVALID_ARGUMENT, "Too many recipients"
        )
    if any(len(tag) > constants.MAX_TAG_LENGTH for tag in draft.tags):
        raise SIFManagerError(SIFManagerErrorKind.INVALID_ARGUMENT, "Tag is too long")
    if (
        draft.scheduled_date is not None
        and draft.expiration_date is not None
        and draft.scheduled_date >= draft.expiration_date
    ):
        raise SIFManagerError(
            SIFManagerErrorKind.INVALID_ARGUMENT,
            "Scheduled date must be before the expiration date",
        )


def sort_sifs(sifs: List[SIFItem], option: SIFSortOption) -> List[SIFItem]:
    if option == SIFSortOption.DATE_CREATED:
        return sorted(sifs, key=lambda s: s.created_date, reverse=True)
    if option == SIFSortOption.DATE_SCHEDULED:
        return sorted(sifs, key=lambda s: s.scheduled_date or 0.0, reverse=True)
    if option == SIFSortOption.SUBJECT:
        return sorted(sifs, key=lambda s: s.subject.lower())
    if option == SIFSortOption.STATUS:
        return sorted(sifs, key=lambda s: s.delivery_status.value)
    if option == SIFSortOption.SIZE:
        return sorted(sifs, key=lambda s: s.total_attachment_size, reverse=True)
    if option == SIFSortOption.RECIPIENTS:
        return sorted(sifs, key=lambda s: len(s.recipients), reverse=True)
    raise SIFManagerError(SIFManagerErrorKind.INVALID_OPERATION)


def matches_search(
    sif: SIFItem, query: str, filters: Optional[SIFSearchFilters] = None
) -> bool:
    text = query.strip().lower()
    haystacks = (
        sif.subject.lower(),
        sif.message.lower(),
        " ".join(sif.recipients).lower(),
        " ".join(sif.tags).lower(),
    )
    if not any(text in h for h in haystacks):
        return False
    if not filters:
        return True
    if filters.statuses and sif.delivery_status not in filters.statuses:
        return False
    if filters.tags and not set(filters.tags) & set(sif.tags):
        return False
    if filters.date_from is not None and sif.created_date < filters.date_from:
        return False
    if filters.date_to is not None and sif.created_date > filters.date_to:
        return False
    if filters.has_attachments_only and not sif.has_attachments:
        return False
    return True


class SIFManagerService:
    def __init__(self, db: DbClient):
        self.db = db

    # --- SIFs ----------------------------------------------------------

    def create_sif(
        self, author_uid: str, draft: SIFDraft, now: Optional[float] = None
    ) -> SIFItem:
        if not author_uid:
            raise SIFManagerError(SIFManagerErrorKind.AUTHENTICATION_REQUIRED)
        validate_draft(draft)
        sif = SIFItem(
            id=uuid.uuid4().hex,
            author_uid=author_uid,
            recipients=[r.strip() for r in draft.recipients if r.strip()],
            subject=draft.subject.strip(),
            message=draft.message,
            created_date=now if now is not None else time.time(),
            scheduled_date=draft.scheduled_date,
            expiration_date=draft.expiration_date,
            template_name=draft.template_name,
            category_name=draft.category_name,
            tags=_merge_tags([], draft.tags),
            notify_on_delivery=draft.notify_on_delivery,
            notify_on_open=draft.notify_on_open,
        )
        self.db.set(SIFS_COLLECTION, sif.id, to_document(sif))
        logger.info("[%s] Created SIF for %s", sif.id, author_uid)
        return sif

    def load_sif(self, sif_id: str) -> SIFItem:
        data = self.db.get(SIFS_COLLECTION, sif_id)
        if data is None:
            raise SIFManagerError(SIFManagerErrorKind.SIF_NOT_FOUND)
        return from_document(SIFItem, sif_id, data)

    def get_sif(self, user_uid: str, sif_id: str) -> SIFItem:
        """Loads a SIF the user authored or received."""
        sif = self.load_sif(sif_id)
        if user_uid != sif.author_uid and user_uid not in sif.recipients:
            raise SIFManagerError(SIFManagerErrorKind.PERMISSION_DENIED)
        return sif

    def delete_sif(self, user_uid: str, sif_id: str) -> None:
        sif = self.load_sif(sif_id)
        if sif.author_uid != user_uid:
            raise SIFManagerError(SIFManagerErrorKind.PERMISSION_DENIED)
        self.db.delete(SIFS_COLLECTION, sif_id)

    def fetch_sifs(self, user_uid: str) -> SIFCollections:
        if not user_uid:
            raise SIFManagerError(SIFManagerErrorKind.AUTHENTICATION_REQUIRED)
        sent_docs = self.db.query(
            SIFS_COLLECTION,
            [FieldFilter("authorUid", "==", user_uid)],
            order_by="createdDate",
            descending=True,
        )
        received_docs = self.db.query(
            SIFS_COLLECTION,
            [FieldFilter("recipients", "array_contains", user_uid)],
            order_by="createdDate",
            descending=True,
        )
        sent = [from_document(SIFItem, d.id, d.data) for d in sent_docs]
        received = [from_document(SIFItem, d.id, d.data) for d in received_docs]
        everything = sent + [s for s in received if s.id not in {x.id for x in sent}]
        return SIFCollections(
            sent=sent,
            received=received,
            favorites=[s for s in everything if s.is_favorite],
            archived=[s for s in everything if s.is_archived],
        )

    def get_sifs_in_folder(self, user_uid: str, folder_id: str) -> List[SIFItem]:
        collections = self.fetch_sifs(user_uid)
        if folder_id == "sent":
            return [s for s in collections.sent if not s.is_archived]
        if folder_id == "received":
            return [s for s in collections.received if not s.is_archived]
        if folder_id == "favorites":
            return collections.favorites
        if folder_id == "archived":
            return collections.archived
        if folder_id == "scheduled":
            return [
                s
                for s in collections.sent
                if s.delivery_status == SIFDeliveryStatus.SCHEDULED
            ]
        if folder_id == "drafts":
            return [
                s
                for s in collections.sent
                if s.delivery_status == SIFDeliveryStatus.PENDING
            ]
        self._require_custom_folder(user_uid, folder_id)
        seen: set[str] = set()
        results = []
        for sif in collections.sent + collections.received:
            if sif.folder_path == folder_id and sif.id not in seen:
                seen.add(sif.id)
                results.append(sif)
        return results

    # --- Folders -------------------------------------------------------

    def list_folders(self, user_uid: str) -> List[SIFFolder]:
        docs = self.db.query(
            user_subcollection(user_uid, FOLDERS_COLLECTION), order_by="createdDate"
        )
        custom = [from_document(SIFFolder, d.id, d.data) for d in docs]
        return list(DEFAULT_FOLDERS) + custom

    def create_custom_folder(
        self,
        user_uid: str,
        name: str,
        icon: str = "folder",
        color: str = "blue",
        now: Optional[float] = None,
    ) -> SIFFolder:
        if not user_uid:
            raise SIFManagerError(SIFManagerErrorKind.AUTHENTICATION_REQUIRED)
        if not name.strip():
            raise SIFManagerError(
                SIFManagerErrorKind.INVALID_ARGUMENT, "Folder name is required"
            )
        folder = SIFFolder(
            id=uuid.uuid4().hex,
            name=name.strip(),
            icon=icon,
            color=color,
            is_custom=True,
            created_date=now if now is not None else time.time(),
        )
        self.db.set(
            user_subcollection(user_uid, FOLDERS_COLLECTION),
            folder.id,
            to_document(folder),
        )
        return folder

    def _require_custom_folder(self, user_uid: str, folder_id: str) -> None:
        if folder_id in DEFAULT_FOLDER_IDS:
            return
        data = self.db.get(user_subcollection(user_uid, FOLDERS_COLLECTION), folder_id)
        if data is None:
            raise SIFManagerError(SIFManagerErrorKind.FOLDER_NOT_FOUND)

    def delete_custom_folder(self, user_uid: str, folder_id: str) -> int:
        """Deletes a custom folder, moving its SIFs back to "sent". Returns how many moved."""
        if folder_id in DEFAULT_FOLDER_IDS:
            raise SIFManagerError(
                SIFManagerErrorKind.INVALID_OPERATION, "Default folders cannot be deleted"
            )
        self._require_custom_folder(user_uid, folder_id)
        moved = self._move_sifs_from_folder(user_uid, folder_id, "sent")
        self.db.delete(user_subcollection(user_uid, FOLDERS_COLLECTION), folder_id)
        return moved

    def _move_sifs_from_folder(self, user_uid: str, from_folder: str, to_folder: str) -> int:
        docs = self.db.query(
            SIFS_COLLECTION,
            [
                FieldFilter("authorUid", "==", user_uid),
                FieldFilter("folderPath", "==", from_folder),
            ],
        )
        if docs:
            self.db.batch_update(
                SIFS_COLLECTION, {d.id: {"folderPath": to_folder} for d in docs}
            )
        return len(docs)

    # --- Single SIF organisation --------------------------------------

    def _participant_sif(self, user_uid: str, sif_id: str) -> SIFItem:
        if not user_uid:
            raise SIFManagerError(SIFManagerErrorKind.AUTHENTICATION_REQUIRED)
        return self.get_sif(user_uid, sif_id)

    def move_sif_to_folder(self, user_uid: str, sif_id: str, folder_id: str) -> None:
        self._participant_sif(user_uid, sif_id)
        self._require_custom_folder(user_uid, folder_id)
        self.db.update(SIFS_COLLECTION, sif_id, {"folderPath": folder_id})

    def toggle_favorite(self, user_uid: str, sif_id: str) -> bool:
        sif = self._participant_sif(user_uid, sif_id)
        self.db.update(SIFS_COLLECTION, sif_id, {"isFavorite": not sif.is_favorite})
        return not sif.is_favorite

    def toggle_archive(self, user_uid: str, sif_id: str) -> bool:
        sif = self._participant_sif(user_uid, sif_id)
        self.db.update(SIFS_COLLECTION, sif_id, {"isArchived": not sif.is_archived})
        return not sif.is_archived

    def add_tags(self, user_uid: str, sif_id: str, tags: List[str]) -> List[str]:
        sif = self._participant_sif(user_uid, sif_id)
        merged = _merge_tags(sif.tags, tags)
        self.db.update(SIFS_COLLECTION, sif_id, {"tags": merged})
        return merged

    def remove_tag(self, user_uid: str, sif_id: str, tag: str) -> List[str]:
        sif = self._participant_sif(user_uid, sif_id)
        remaining = [t for t in sif.tags if t != tag]
        self.db.update(SIFS_COLLECTION, sif_id, {"tags": remaining})
        return remaining

    # --- Search --------------------------------------------------------

    def search_sifs(
        self,
        user_uid: str,
        query: str,
        filters: Optional[SIFSearchFilters] = None,
    ) -> List[SIFItem]:
        if not query.strip():
            return []
        collections = self.fetch_sifs(user_uid)
        seen: set[str] = set()
        results = []
        for sif in collections.sent + collections.received:
            if sif.id in seen:
                continue
            seen.add(sif.id)
            if matches_search(sif, query, filters):
                results.append(sif)
        return results

    # --- Batch ---------------------------------------------------------

    def perform_batch_operation(
        self,
        user_uid: str,
        operation: SIFBatchOperation,
        sif_ids: List[str],
        *,
        folder_id: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> int:
        """
        Applies `operation` to every SIF in `sif_ids` in one batch.

        Every operation is limited to SIFs the user authored. Nothing is
        written if any SIF fails the access check.
        """
        if not user_uid:
            raise SIFManagerError(SIFManagerErrorKind.AUTHENTICATION_REQUIRED)
        sifs = [self.get_sif(user_uid, sif_id) for sif_id in dict.fromkeys(sif_ids)]
        if any(s.author_uid != user_uid for s in sifs):
            raise SIFManagerError(SIFManagerErrorKind.PERMISSION_DENIED)

        if operation == SIFBatchOperation.DELETE:
            self.db.batch_delete(SIFS_COLLECTION, [s.id for s in sifs])
            return len(sifs)

        if operation == SIFBatchOperation.MOVE_TO_FOLDER:
            if not folder_id:
                raise SIFManagerError(
                    SIFManagerErrorKind.INVALID_ARGUMENT, "folder_id is required"
                )
            self._require_custom_folder(user_uid, folder_id)
            updates = {s.id: {"folderPath": folder_id} for s in sifs}
        elif operation in (SIFBatchOperation.ADD_TAGS, SIFBatchOperation.REMOVE_TAGS):
            if not tags:
                raise SIFManagerError(
                    SIFManagerErrorKind.INVALID_ARGUMENT, "tags are required"
                )
            if operation == SIFBatchOperation.ADD_TAGS:
                updates = {s.id: {"tags": _merge_tags(s.tags, tags)} for s in sifs}
            else:
                updates = {
                    s.id: {"tags": [t for t in s.tags if t not in tags]} for s in sifs
                }
        else:
            flags = {
                SIFBatchOperation.ARCHIVE: {"isArchived": True},
                SIFBatchOperation.UNARCHIVE: {"isArchived": False},
                SIFBatchOperation.FAVORITE: {"isFavorite": True},
                SIFBatchOperation.UNFAVORITE: {"isFavorite": False},
            }
            if operation not in flags:
                raise SIFManagerError(SIFManagerErrorKind.INVALID_OPERATION)
            updates = {s.id: dict(flags[operation]) for s in sifs}

        self.db.batch_update(SIFS_COLLECTION, updates)
        return len(updates)
