"""
Dependency wiring for the FastAPI app and the delivery worker.
"""

from __future__ import annotations

from functools import lru_cache

import firebase_admin

from backend.address_book import AddressBookManager
from backend.blocking import BlockingService
from backend.config import get_settings
from backend.content import ContentManagementService
from backend.db import DbClient, FirestoreDbClient, InMemoryDbClient, SqlDbClient
from backend.delivery import SIFDeliveryService
from backend.impact import ImpactTracker
from backend.moderation import ModerationService
from backend.notifications import NotificationService
from backend.qr_codes import QRCodeService
from backend.queue import InMemoryJobQueue, JobQueue, RedisJobQueue
from backend.search import SearchService
from backend.search_history import SearchHistoryService
from backend.sif_manager import SIFManagerService
from backend.storage import (
    FirebaseStorageClient,
    InMemoryStorageClient,
    S3StorageClient,
    StorageClient,
)
from backend.suggestions import SearchSuggestionEngine

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_queue_client: JobQueue | None = None


def ensure_firebase_app() -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        settings = get_settings()
        options = (
            {"storageBucket": settings.firebase_storage_bucket}
            if settings.firebase_storage_bucket
            else None
        )
        return firebase_admin.initialize_app(options=options)


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so SIF state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _db_client = InMemoryDbClient()
    elif settings.use_firestore:
        ensure_firebase_app()
        _db_client = FirestoreDbClient()
    elif settings.database_url:
        _db_client = SqlDbClient(settings.database_url)
    else:
        _db_client = InMemoryDbClient()
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _storage_client = InMemoryStorageClient(
            chunk_size=settings.upload_chunk_size_bytes
        )
    elif settings.firebase_storage_bucket:
        ensure_firebase_app()
        _storage_client = FirebaseStorageClient(
            bucket_name=settings.firebase_storage_bucket,
            chunk_size=settings.upload_chunk_size_bytes,
        )
    elif settings.s3_bucket:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            chunk_size=settings.upload_chunk_size_bytes,
        )
    else:
        _storage_client = InMemoryStorageClient(
            chunk_size=settings.upload_chunk_size_bytes
        )
    return _storage_client


def get_queue_client() -> JobQueue:
    """
    Return a singleton queue client for handing SIF ids to delivery workers.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _queue_client = RedisJobQueue(
            url=settings.redis_url,
            queue_key=settings.redis_queue_key,
        )
    else:
        _queue_client = InMemoryJobQueue()
    return _queue_client


@lru_cache(maxsize=1)
def get_notification_service() -> NotificationService:
    return NotificationService(
        get_db_client(), push_enabled=get_settings().push_enabled
    )


@lru_cache(maxsize=1)
def get_sif_manager() -> SIFManagerService:
    return SIFManagerService(get_db_client())


@lru_cache(maxsize=1)
def get_delivery_service() -> SIFDeliveryService:
    settings = get_settings()
    return SIFDeliveryService(
        get_db_client(),
        get_storage_client(),
        get_queue_client(),
        get_notification_service(),
        max_retry_attempts=settings.max_retry_attempts,
        retry_delay_seconds=settings.retry_delay_seconds,
        share_base_url=settings.share_base_url,
    )


@lru_cache(maxsize=1)
def get_search_history_service() -> SearchHistoryService:
    return SearchHistoryService(get_db_client())


@lru_cache(maxsize=1)
def get_search_service() -> SearchService:
    return SearchService(get_db_client(), history=get_search_history_service())


@lru_cache(maxsize=1)
def get_suggestion_engine() -> SearchSuggestionEngine:
    return SearchSuggestionEngine(get_db_client())


@lru_cache(maxsize=1)
def get_impact_tracker() -> ImpactTracker:
    return ImpactTracker(get_db_client())


@lru_cache(maxsize=1)
def get_content_service() -> ContentManagementService:
    settings = get_settings()
    return ContentManagementService(
        get_db_client(),
        get_storage_client(),
        max_file_size=settings.max_file_size_bytes,
        chunk_size=settings.upload_chunk_size_bytes,
    )


@lru_cache(maxsize=1)
def get_qr_code_service() -> QRCodeService:
    return QRCodeService(
        get_db_client(),
        get_storage_client(),
        get_notification_service(),
        share_base_url=get_settings().share_base_url,
    )


@lru_cache(maxsize=1)
def get_address_book() -> AddressBookManager:
    return AddressBookManager(get_db_client())


@lru_cache(maxsize=1)
def get_blocking_service() -> BlockingService:
    return BlockingService(get_db_client())


@lru_cache(maxsize=1)
def get_moderation_service() -> ModerationService:
    return ModerationService(get_db_client())


_SERVICE_GETTERS = (
    get_notification_service,
    get_sif_manager,
    get_delivery_service,
    get_search_history_service,
    get_search_service,
    get_suggestion_engine,
    get_impact_tracker,
    get_content_service,
    get_qr_code_service,
    get_address_book,
    get_blocking_service,
    get_moderation_service,
)


def reset_dependencies() -> None:
    """Drop every singleton so the next request rebuilds from settings."""
    global _db_client, _storage_client, _queue_client
    _db_client = None
    _storage_client = None
    _queue_client = None
    for getter in _SERVICE_GETTERS:
        getter.cache_clear()
