"""
Attachment uploads for SIFs.

Files are stored at `sifs/{sif_id}/attachments/{file_id}_{name}`; their metadata
lives in `users/{uid}/files` and the SIF document carries the attachment
urls, types, sizes and paths.
"""

from __future__ import annotations

import io
import logging
import mimetypes
import posixpath
import time
import uuid
from enum import StrEnum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from PIL import Image, UnidentifiedImageError

from backend.db import DbClient, FieldFilter
from backend.storage import StorageClient
from shared import constants
from shared.doc_convert import from_document, to_document
from shared.firebase_constants import (
    FILES_COLLECTION,
    SIFS_COLLECTION,
    user_subcollection,
)
from shared.sif import SIFItem, UploadedFile
from shared.types import FileType

logger = logging.getLogger(__name__)

_EXTENSIONS_BY_TYPE = {
    FileType.IMAGE: ("jpg", "jpeg", "png", "gif", "bmp", "tiff", "webp", "heic", "heif"),
    FileType.DOCUMENT: ("pdf", "doc", "docx", "txt", "rtf", "pages"),
    FileType.SPREADSHEET: ("xls", "xlsx", "csv", "numbers"),
    FileType.PRESENTATION: ("ppt", "pptx", "key"),
    FileType.AUDIO: ("mp3", "wav", "aac", "flac", "m4a", "ogg"),
    FileType.VIDEO: ("mp4", "mov", "avi", "mkv", "wmv", "flv", "webm"),
    FileType.ARCHIVE: ("zip", "rar", "7z", "tar", "gz"),
    FileType.OTHER: ("json", "xml", "html", "css", "js"),
}

FILE_TYPES: Dict[str, FileType] = {
    ext: file_type
    for file_type, extensions in _EXTENSIONS_BY_TYPE.items()
    for ext in extensions
}
SUPPORTED_EXTENSIONS: Set[str] = set(FILE_TYPES)

DEFAULT_THUMBNAIL_SIZE = (200, 200)


class ContentManagementErrorKind(StrEnum):
    FILE_NOT_FOUND = "file_not_found"
    FILE_TOO_LARGE = "file_too_large"
    UNSUPPORTED_FILE_TYPE = "unsupported_file_type"
    UPLOAD_FAILED = "upload_failed"
    UPLOAD_CANCELLED = "upload_cancelled"
    SIF_NOT_FOUND = "sif_not_found"
    PERMISSION_DENIED = "permission_denied"


_DEFAULT_MESSAGES = {
    ContentManagementErrorKind.FILE_NOT_FOUND: "File not found",
    ContentManagementErrorKind.FILE_TOO_LARGE: "File is too large (max 100MB)",
    ContentManagementErrorKind.UNSUPPORTED_FILE_TYPE: "Unsupported file type",
    ContentManagementErrorKind.UPLOAD_FAILED: "Upload failed",
    ContentManagementErrorKind.UPLOAD_CANCELLED: "Upload cancelled",
    ContentManagementErrorKind.SIF_NOT_FOUND: "SIF not found",
    ContentManagementErrorKind.PERMISSION_DENIED: "You do not have access to this SIF",
}


class ContentManagementError(Exception):
    def __init__(
        self, kind: ContentManagementErrorKind, message: Optional[str] = None
    ):
        super().__init__(message or _DEFAULT_MESSAGES[kind])
        self.kind = kind


def _extension(name: str) -> str:
    return posixpath.splitext(name)[1].lstrip(".").lower()


def file_type_for(extension: str) -> FileType:
    return FILE_TYPES.get(extension.lower().lstrip("."), FileType.OTHER)


def mime_type_for(extension: str) -> str:
    guessed, _ = mimetypes.guess_type(f"file.{extension.lower().lstrip('.')}")
    return guessed or "application/octet-stream"


def validate_file(name: str, size: int, max_size: int = constants.MAX_FILE_SIZE_BYTES) -> None:
    if size <= 0:
        raise ContentManagementError(ContentManagementErrorKind.FILE_NOT_FOUND)
    if size > max_size:
        raise ContentManagementError(ContentManagementErrorKind.FILE_TOO_LARGE)
    if _extension(name) not in SUPPORTED_EXTENSIONS:
        raise ContentManagementError(ContentManagementErrorKind.UNSUPPORTED_FILE_TYPE)


class ContentManagementService:
    def __init__(
        self,
        db: DbClient,
        storage: StorageClient,
        *,
        max_file_size: int = constants.MAX_FILE_SIZE_BYTES,
        chunk_size: int = constants.UPLOAD_CHUNK_SIZE_BYTES,
    ):
        self.db = db
        self.storage = storage
        self.max_file_size = max_file_size
        self.chunk_size = chunk_size
        self.upload_progress: Dict[str, float] = {}
        self.cancelled: Set[str] = set()

    def _files(self, owner_uid: str) -> str:
        return user_subcollection(owner_uid, FILES_COLLECTION)

    def _load_owned_sif(self, owner_uid: str, sif_id: str) -> SIFItem:
        data = self.db.get(SIFS_COLLECTION, sif_id)
        if data is None:
            raise ContentManagementError(ContentManagementErrorKind.SIF_NOT_FOUND)
        sif = from_document(SIFItem, sif_id, data)
        if sif.author_uid != owner_uid:
            raise ContentManagementError(ContentManagementErrorKind.PERMISSION_DENIED)
        return sif

    def upload_file(
        self,
        owner_uid: str,
        sif_id: str,
        name: str,
        data: bytes,
        path: Optional[str] = None,
        *,
        file_id: Optional[str] = None,
        now: Optional[float] = None,
    ) -> UploadedFile:
        """Upload one attachment and attach it to the SIF.

        Pass `file_id` to be able to cancel the upload or poll its progress
        while it runs.
        """
        validate_file(name, len(data), self.max_file_size)
        self._load_owned_sif(owner_uid, sif_id)
        file_id = file_id or uuid.uuid4().hex
        if file_id in self.cancelled:
            self.cancelled.discard(file_id)
            raise ContentManagementError(ContentManagementErrorKind.UPLOAD_CANCELLED)

        extension = _extension(name)
        storage_path = path or f"sifs/{sif_id}/attachments/{file_id}_{name}"
        content_type = mime_type_for(extension)
        self.upload_progress[file_id] = 0.0

        def _on_progress(sent: int, total: int) -> None:
            if file_id in self.cancelled:
                raise ContentManagementError(ContentManagementErrorKind.UPLOAD_CANCELLED)
            self.upload_progress[file_id] = sent / total if total else 1.0

        if len(data) > self.chunk_size:
            logger.info(
                "[%s] Resumable upload of %s (%d bytes)", sif_id, name, len(data)
            )
        try:
            url = self.storage.upload_bytes(
                storage_path, data, content_type, progress_callback=_on_progress
            )
        except ContentManagementError:
            self.upload_progress.pop(file_id, None)
            self.cancelled.discard(file_id)
            self.storage.delete(storage_path)
            logger.info("[%s] Upload of %s cancelled", sif_id, name)
            raise
        except Exception as e:
            self.upload_progress.pop(file_id, None)
            self.cancelled.discard(file_id)
            logger.error("[%s] Upload of %s failed: %s", sif_id, name, e)
            raise ContentManagementError(
                ContentManagementErrorKind.UPLOAD_FAILED, f"Upload failed: {e}"
            ) from e

        self.upload_progress[file_id] = 1.0
        self.cancelled.discard(file_id)
        uploaded = UploadedFile(
            id=file_id,
            name=name,
            url=url,
            storage_path=storage_path,
            size=len(data),
            type=file_type_for(extension),
            mime_type=content_type,
            upload_date=now if now is not None else time.time(),
            owner_uid=owner_uid,
            sif_id=sif_id,
        )
        self.db.set(self._files(owner_uid), file_id, to_document(uploaded))

        def _attach(current: dict) -> dict:
            return {
                "attachmentUrls": current.get("attachmentUrls", []) + [url],
                "attachmentTypes": current.get("attachmentTypes", [])
                + [str(uploaded.type)],
                "attachmentSizes": current.get("attachmentSizes", []) + [uploaded.size],
                "attachmentPaths": current.get("attachmentPaths", []) + [storage_path],
                "totalAttachmentSize": current.get("totalAttachmentSize", 0)
                + uploaded.size,
            }

        if self.db.update_with(SIFS_COLLECTION, sif_id, _attach) is None:
            # The SIF was deleted while the bytes were uploading.
            self.storage.delete(storage_path)
            self.db.delete(self._files(owner_uid), file_id)
            raise ContentManagementError(ContentManagementErrorKind.SIF_NOT_FOUND)
        logger.info("[%s] Uploaded %s to %s", sif_id, name, storage_path)
        return uploaded

    def upload_files(
        self,
        owner_uid: str,
        sif_id: str,
        files: Iterable[Tuple[str, bytes]],
        now: Optional[float] = None,
    ) -> List[UploadedFile]:
        return [
            self.upload_file(owner_uid, sif_id, name, data, now=now)
            for name, data in files
        ]

    def cancel_upload(self, file_id: str) -> None:
        self.cancelled.add(file_id)
        self.upload_progress.pop(file_id, None)

    def get_upload_progress(self, file_id: str) -> float:
        return self.upload_progress.get(file_id, 0.0)

    def get_file(self, owner_uid: str, file_id: str) -> UploadedFile:
        data = self.db.get(self._files(owner_uid), file_id)
        if data is None:
            raise ContentManagementError(ContentManagementErrorKind.FILE_NOT_FOUND)
        return from_document(UploadedFile, file_id, data)

    def get_files_for_sif(self, owner_uid: str, sif_id: str) -> List[UploadedFile]:
        docs = self.db.query(
            self._files(owner_uid),
            [FieldFilter("sifId", "==", sif_id)],
            order_by="uploadDate",
        )
        return [from_document(UploadedFile, d.id, d.data) for d in docs]

    def delete_file(self, owner_uid: str, file_id: str) -> None:
        uploaded = self.get_file(owner_uid, file_id)
        self.storage.delete(uploaded.storage_path)
        self.db.delete(self._files(owner_uid), file_id)
        self.upload_progress.pop(file_id, None)
        if uploaded.sif_id:
            self._detach(uploaded)

    def _detach(self, uploaded: UploadedFile) -> None:
        def _remove(current: dict) -> Optional[dict]:
            paths = current.get("attachmentPaths", [])
            if uploaded.storage_path not in paths:
                return None
            index = paths.index(uploaded.storage_path)

            def _without(key: str) -> list:
                values = current.get(key, [])
                return values[:index] + values[index + 1 :] if index < len(values) else values

            return {
                "attachmentUrls": _without("attachmentUrls"),
                "attachmentTypes": _without("attachmentTypes"),
                "attachmentSizes": _without("attachmentSizes"),
                "attachmentPaths": _without("attachmentPaths"),
                "totalAttachmentSize": max(
                    current.get("totalAttachmentSize", 0) - uploaded.size, 0
                ),
            }

        self.db.update_with(SIFS_COLLECTION, uploaded.sif_id, _remove)

    def generate_thumbnail(
        self, uploaded: UploadedFile, size: Tuple[int, int] = DEFAULT_THUMBNAIL_SIZE
    ) -> Optional[bytes]:
        """PNG thumbnail for image attachments; None for anything else."""
        if uploaded.type != FileType.IMAGE:
            return None
        try:
            data = self.storage.get_bytes(uploaded.storage_path)
            with Image.open(io.BytesIO(data)) as image:
                image.thumbnail(size)
                out = io.BytesIO()
                image.save(out, format="PNG")
        except (UnidentifiedImageError, OSError) as e:
            logger.warning("Error generating thumbnail for %s: %s", uploaded.id, e)
            return None
        return out.getvalue()

    def cleanup_orphaned_files(self, owner_uid: str) -> int:
        """Delete files whose SIF no longer exists. Returns the number removed."""
        removed = 0
        for doc in self.db.query(self._files(owner_uid)):
            uploaded = from_document(UploadedFile, doc.id, doc.data)
            if uploaded.sif_id and self.db.get(SIFS_COLLECTION, uploaded.sif_id):
                continue
            self.storage.delete(uploaded.storage_path)
            self.db.delete(self._files(owner_uid), uploaded.id)
            removed += 1
        if removed:
            logger.info("[%s] Removed %d orphaned files", owner_uid, removed)
        return removed
