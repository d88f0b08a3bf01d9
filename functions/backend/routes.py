"""
HTTP routes for the iSIF backend API.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import asdict
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import Response

from backend.address_book import AddressBookError, AddressBookManager, ContactNotFoundError
from backend.auth import get_current_moderator, get_current_user
from backend.blocking import BlockingError, BlockingErrorKind, BlockingService
from backend.content import ContentManagementError, ContentManagementErrorKind, ContentManagementService
from backend.db import DocumentNotFoundError
from backend.delivery import DeliveryError, DeliveryErrorKind, SIFDeliveryService
from backend.dependencies import (
    get_address_book,
    get_blocking_service,
    get_content_service,
    get_delivery_service,
    get_impact_tracker,
    get_moderation_service,
    get_notification_service,
    get_qr_code_service,
    get_search_history_service,
    get_search_service,
    get_sif_manager,
    get_storage_client,
    get_suggestion_engine,
)
from backend.impact import ImpactError, ImpactTracker, ResponseNotFoundError
from backend.moderation import ModerationError, ModerationErrorKind, ModerationService
from backend.notifications import NotificationPreferences, NotificationService
from backend.qr_codes import QRCodeService
from backend.schemas import (
    BatchOperationRequest,
    BlockedUserListResponse,
    BlockedUserResponse,
    BlockStatusResponse,
    BlockUserRequest,
    ContactListResponse,
    ContactRequest,
    ContactResponse,
    ContentReportStatsResponse,
    CountResponse,
    CreateSIFRequest,
    DeepLinkRequest,
    DeepLinkResponse,
    DeliveryProgressResponse,
    DeviceTokenRequest,
    ExtendExpirationRequest,
    FileListResponse,
    FileResponse,
    FolderListResponse,
    FolderRequest,
    FolderResponse,
    ImpactHistoryResponse,
    ImpactReportResponse,
    ImpactRequest,
    ImportContactsRequest,
    ImportResultsResponse,
    ModerateReportRequest,
    ModerationStatsResponse,
    MoveToFolderRequest,
    NotificationListResponse,
    NotificationPreferencesRequest,
    NotificationPreferencesResponse,
    QRScanRequest,
    QRScanResponse,
    QueriesResponse,
    RecordResponseRequest,
    RecordSignatureRequest,
    ReportContentRequest,
    ReportListResponse,
    ReportResponse,
    ReportStatusRequest,
    ResponseListResponse,
    ResponseRecordResponse,
    ScheduleRequest,
    SearchFeedbackRequest,
    SearchHistoryResponse,
    SearchRequest,
    SearchResponse,
    ShareLinksResponse,
    SignUrlResponse,
    SIFCollectionsResponse,
    SIFListResponse,
    SIFResponse,
    SIFSearchRequest,
    SmartSuggestionsRequest,
    StatusResponse,
    SuggestionSelectionRequest,
    TagsRequest,
    TagsResponse,
    ToggleResponse,
    UploadProgressResponse,
)
from backend.search import SearchFilter, SearchService, apply_preset
from backend.search_history import SearchHistoryService
from backend.sif_manager import (
    SIFDraft,
    SIFManagerError,
    SIFManagerErrorKind,
    SIFManagerService,
    SIFSearchFilters,
    sort_sifs,
)
from backend.storage import StorageClient
from backend.suggestions import SearchSuggestionEngine
from shared.contacts import Contact, DeviceContact
from shared.doc_convert import to_payload
from shared.sif import SIFItem
from shared.templates import MESSAGE_CATEGORIES, TEMPLATES, TemplateCategory, templates_in_category
from shared.types import ReportStatus, SIFDeliveryStatus

logger = logging.getLogger(__name__)

router = APIRouter()

_SIF_ERROR_STATUS = {
    SIFManagerErrorKind.AUTHENTICATION_REQUIRED: 401,
    SIFManagerErrorKind.FOLDER_NOT_FOUND: 404,
    SIFManagerErrorKind.SIF_NOT_FOUND: 404,
    SIFManagerErrorKind.PERMISSION_DENIED: 403,
    SIFManagerErrorKind.INVALID_OPERATION: 400,
    SIFManagerErrorKind.INVALID_ARGUMENT: 400,
}
_DELIVERY_ERROR_STATUS = {
    DeliveryErrorKind.SIF_NOT_FOUND: 404,
    DeliveryErrorKind.PERMISSION_DENIED: 403,
    DeliveryErrorKind.INVALID_STATE: 400,
    DeliveryErrorKind.INVALID_ARGUMENT: 400,
}
_CONTENT_ERROR_STATUS = {
    ContentManagementErrorKind.FILE_NOT_FOUND: 404,
    ContentManagementErrorKind.SIF_NOT_FOUND: 404,
    ContentManagementErrorKind.PERMISSION_DENIED: 403,
}
_BLOCKING_ERROR_STATUS = {
    BlockingErrorKind.AUTHENTICATION_REQUIRED: 401,
    BlockingErrorKind.CANNOT_BLOCK_SELF: 400,
    BlockingErrorKind.ALREADY_BLOCKED: 409,
    BlockingErrorKind.BLOCK_NOT_FOUND: 404,
}
_MODERATION_ERROR_STATUS = {
    ModerationErrorKind.AUTHENTICATION_REQUIRED: 401,
    ModerationErrorKind.CANNOT_REPORT_OWN_CONTENT: 400,
    ModerationErrorKind.ALREADY_REPORTED: 409,
    ModerationErrorKind.CONTENT_NOT_FOUND: 404,
    ModerationErrorKind.REPORT_NOT_FOUND: 404,
}


@contextmanager
def _domain_errors():
    """Translate service exceptions into HTTP errors."""
    try:
        yield
    except SIFManagerError as e:
        raise HTTPException(status_code=_SIF_ERROR_STATUS[e.kind], detail=str(e))
    except DeliveryError as e:
        raise HTTPException(status_code=_DELIVERY_ERROR_STATUS[e.kind], detail=str(e))
    except ContentManagementError as e:
        raise HTTPException(
            status_code=_CONTENT_ERROR_STATUS.get(e.kind, 400), detail=str(e)
        )
    except BlockingError as e:
        raise HTTPException(status_code=_BLOCKING_ERROR_STATUS[e.kind], detail=str(e))
    except ModerationError as e:
        raise HTTPException(status_code=_MODERATION_ERROR_STATUS[e.kind], detail=str(e))
    except ContactNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AddressBookError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ResponseNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ImpactError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Not found")


# --- SIFs -----------------------------------------------------------------


@router.post("/sifs", response_model=SIFResponse, status_code=201)
def create_sif(
    payload: CreateSIFRequest,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
    delivery: SIFDeliveryService = Depends(get_delivery_service),
):
    """Create a SIF and hand it to delivery (now, or at its scheduled date)."""
    with _domain_errors():
        sif = manager.create_sif(user, SIFDraft(**payload.model_dump()))
        try:
            sif = delivery.request_delivery(user, sif.id)
        except DeliveryError:
            manager.delete_sif(user, sif.id)
            raise
    return SIFResponse(sif=to_payload(sif))


def _visible(
    user: str,
    sifs: List[SIFItem],
    blocking: BlockingService,
    moderation: ModerationService,
) -> List[dict]:
    """Hides SIFs by blocked authors and SIFs that moderation hides from `user`."""
    sifs = blocking.filter_blocked_content(user, sifs)
    return [to_payload(s) for s in moderation.filter_hidden_content(user, sifs)]


@router.get("/sifs", response_model=SIFCollectionsResponse)
def list_sifs(
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
    blocking: BlockingService = Depends(get_blocking_service),
    moderation: ModerationService = Depends(get_moderation_service),
):
    with _domain_errors():
        collections = manager.fetch_sifs(user)
    return SIFCollectionsResponse(
        sent=[to_payload(s) for s in collections.sent],
        received=_visible(user, collections.received, blocking, moderation),
        favorites=_visible(user, collections.favorites, blocking, moderation),
        archived=_visible(user, collections.archived, blocking, moderation),
    )


@router.post("/sifs/search", response_model=SIFListResponse)
def search_sifs(
    payload: SIFSearchRequest,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
    blocking: BlockingService = Depends(get_blocking_service),
    moderation: ModerationService = Depends(get_moderation_service),
):
    try:
        statuses = [SIFDeliveryStatus(s) for s in payload.statuses]
    except ValueError:
        raise HTTPException(status_code=400, detail="Unknown delivery status")
    filters = SIFSearchFilters(
        statuses=statuses,
        tags=payload.tags,
        date_from=payload.date_from,
        date_to=payload.date_to,
        has_attachments_only=payload.has_attachments_only,
    )
    with _domain_errors():
        sifs = manager.search_sifs(user, payload.query, filters)
    return SIFListResponse(
        sifs=_visible(user, sort_sifs(sifs, payload.sort_by), blocking, moderation)
    )


@router.post("/sifs/batch", response_model=CountResponse)
def batch_operation(
    payload: BatchOperationRequest,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
):
    with _domain_errors():
        count = manager.perform_batch_operation(
            user,
            payload.operation,
            payload.sif_ids,
            folder_id=payload.folder_id,
            tags=payload.tags,
        )
    return CountResponse(count=count)


@router.get("/sifs/{sif_id}", response_model=SIFResponse)
def get_sif(
    sif_id: str,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
):
    with _domain_errors():
        sif = manager.get_sif(user, sif_id)
    return SIFResponse(sif=to_payload(sif))


@router.delete("/sifs/{sif_id}", response_model=StatusResponse)
def delete_sif(
    sif_id: str,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
    notifications: NotificationService = Depends(get_notification_service),
):
    with _domain_errors():
        manager.delete_sif(user, sif_id)
    notifications.cancel_notifications_for_sif(user, sif_id)
    return StatusResponse()


@router.post("/sifs/{sif_id}/deliver", response_model=SIFResponse, status_code=202)
def request_delivery(
    sif_id: str,
    user: str = Depends(get_current_user),
    delivery: SIFDeliveryService = Depends(get_delivery_service),
):
    with _domain_errors():
        sif = delivery.request_delivery(user, sif_id)
    return SIFResponse(sif=to_payload(sif))


@router.post("/sifs/{sif_id}/schedule", response_model=SIFResponse)
def schedule_sif(
    sif_id: str,
    payload: ScheduleRequest,
    user: str = Depends(get_current_user),
    delivery: SIFDeliveryService = Depends(get_delivery_service),
):
    with _domain_errors():
        sif = delivery.schedule_sif(user, sif_id, payload.scheduled_date)
    return SIFResponse(sif=to_payload(sif))


@router.post("/sifs/{sif_id}/cancel", response_model=SIFResponse)
def cancel_sif(
    sif_id: str,
    user: str = Depends(get_current_user),
    delivery: SIFDeliveryService = Depends(get_delivery_service),
):
    with _domain_errors():
        sif = delivery.cancel_sif(user, sif_id)
    return SIFResponse(sif=to_payload(sif))


@router.post("/sifs/{sif_id}/extend-expiration", response_model=SIFResponse)
def extend_expiration(
    sif_id: str,
    payload: ExtendExpirationRequest,
    user: str = Depends(get_current_user),
    delivery: SIFDeliveryService = Depends(get_delivery_service),
):
    with _domain_errors():
        sif = delivery.extend_expiration(user, sif_id, payload.expiration_date)
    return SIFResponse(sif=to_payload(sif))


@router.get("/sifs/{sif_id}/progress", response_model=DeliveryProgressResponse)
def delivery_progress(
    sif_id: str,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
    delivery: SIFDeliveryService = Depends(get_delivery_service),
):
    with _domain_errors():
        manager.get_sif(user, sif_id)
        progress = delivery.get_progress(sif_id)
    return DeliveryProgressResponse(**progress)


@router.post("/sifs/{sif_id}/favorite", response_model=ToggleResponse)
def toggle_favorite(
    sif_id: str,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
):
    with _domain_errors():
        value = manager.toggle_favorite(user, sif_id)
    return ToggleResponse(value=value)


@router.post("/sifs/{sif_id}/archive", response_model=ToggleResponse)
def toggle_archive(
    sif_id: str,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
):
    with _domain_errors():
        value = manager.toggle_archive(user, sif_id)
    return ToggleResponse(value=value)


@router.post("/sifs/{sif_id}/move", response_model=StatusResponse)
def move_sif(
    sif_id: str,
    payload: MoveToFolderRequest,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
):
    with _domain_errors():
        manager.move_sif_to_folder(user, sif_id, payload.folder_id)
    return StatusResponse()


@router.post("/sifs/{sif_id}/tags", response_model=TagsResponse)
def add_tags(
    sif_id: str,
    payload: TagsRequest,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
):
    with _domain_errors():
        tags = manager.add_tags(user, sif_id, payload.tags)
    return TagsResponse(tags=tags)


@router.delete("/sifs/{sif_id}/tags/{tag}", response_model=TagsResponse)
def remove_tag(
    sif_id: str,
    tag: str,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
):
    with _domain_errors():
        tags = manager.remove_tag(user, sif_id, tag)
    return TagsResponse(tags=tags)


# --- Folders --------------------------------------------------------------


@router.get("/folders", response_model=FolderListResponse)
def list_folders(
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
):
    return FolderListResponse(
        folders=[to_payload(f) for f in manager.list_folders(user)]
    )


@router.post("/folders", response_model=FolderResponse, status_code=201)
def create_folder(
    payload: FolderRequest,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
):
    with _domain_errors():
        folder = manager.create_custom_folder(
            user, payload.name, icon=payload.icon, color=payload.color
        )
    return FolderResponse(folder=to_payload(folder))


@router.get("/folders/{folder_id}/sifs", response_model=SIFListResponse)
def folder_sifs(
    folder_id: str,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
    blocking: BlockingService = Depends(get_blocking_service),
    moderation: ModerationService = Depends(get_moderation_service),
):
    with _domain_errors():
        sifs = manager.get_sifs_in_folder(user, folder_id)
    return SIFListResponse(sifs=_visible(user, sifs, blocking, moderation))


@router.delete("/folders/{folder_id}", response_model=CountResponse)
def delete_folder(
    folder_id: str,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
):
    """Delete a custom folder; its SIFs move back to "sent"."""
    with _domain_errors():
        moved = manager.delete_custom_folder(user, folder_id)
    return CountResponse(count=moved)


# --- Attachments ----------------------------------------------------------


@router.post("/sifs/{sif_id}/attachments", response_model=FileResponse, status_code=201)
async def upload_attachment(
    sif_id: str,
    file: UploadFile = File(...),
    file_id: Optional[str] = Query(None, max_length=64),
    user: str = Depends(get_current_user),
    content: ContentManagementService = Depends(get_content_service),
):
    data = await file.read()
    with _domain_errors():
        uploaded = content.upload_file(
            user, sif_id, file.filename or "attachment", data, file_id=file_id
        )
    return FileResponse(file=to_payload(uploaded))


@router.get("/sifs/{sif_id}/attachments", response_model=FileListResponse)
def list_attachments(
    sif_id: str,
    user: str = Depends(get_current_user),
    content: ContentManagementService = Depends(get_content_service),
):
    files = content.get_files_for_sif(user, sif_id)
    return FileListResponse(files=[to_payload(f) for f in files])


@router.get("/files/{file_id}/progress", response_model=UploadProgressResponse)
def upload_progress(
    file_id: str,
    user: str = Depends(get_current_user),
    content: ContentManagementService = Depends(get_content_service),
):
    return UploadProgressResponse(
        file_id=file_id, progress=content.get_upload_progress(file_id)
    )


@router.post("/files/{file_id}/cancel", response_model=StatusResponse)
def cancel_upload(
    file_id: str,
    user: str = Depends(get_current_user),
    content: ContentManagementService = Depends(get_content_service),
):
    content.cancel_upload(file_id)
    return StatusResponse()


@router.get("/files/{file_id}/thumbnail")
def file_thumbnail(
    file_id: str,
    size: int = Query(200, ge=16, le=1024),
    user: str = Depends(get_current_user),
    content: ContentManagementService = Depends(get_content_service),
):
    with _domain_errors():
        uploaded = content.get_file(user, file_id)
    thumbnail = content.generate_thumbnail(uploaded, (size, size))
    if thumbnail is None:
        raise HTTPException(status_code=404, detail="No thumbnail for this file")
    return Response(content=thumbnail, media_type="image/png")


@router.delete("/files/{file_id}", response_model=StatusResponse)
def delete_file(
    file_id: str,
    user: str = Depends(get_current_user),
    content: ContentManagementService = Depends(get_content_service),
):
    with _domain_errors():
        content.delete_file(user, file_id)
    return StatusResponse()


@router.post("/files/cleanup", response_model=CountResponse)
def cleanup_files(
    user: str = Depends(get_current_user),
    content: ContentManagementService = Depends(get_content_service),
):
    return CountResponse(count=content.cleanup_orphaned_files(user))


def _authorize_object_path(user: str, path: str, op: str, manager: SIFManagerService) -> None:
    """
    Only objects under `sifs/{sif_id}/` can be signed: reads by the SIF's
    author or recipients, writes by its author.
    """
    segments = path.split("/")
    if len(segments) < 3 or segments[0] != "sifs" or any(
        s in ("", ".", "..") for s in segments
    ):
        raise HTTPException(status_code=403, detail="Path is not accessible")
    try:
        sif = manager.get_sif(user, segments[1])
    except SIFManagerError:
        raise HTTPException(status_code=403, detail="Path is not accessible")
    if op == "put" and sif.author_uid != user:
        raise HTTPException(status_code=403, detail="Only the author can upload")


@router.get("/sign-url", response_model=SignUrlResponse)
def sign_url(
    path: str = Query(..., description="Object path in storage"),
    op: str = Query("get", pattern="^(get|put)$"),
    expires_in: int = Query(3600, ge=60, le=86400),
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
    storage: StorageClient = Depends(get_storage_client),
):
    _authorize_object_path(user, path, op, manager)
    if op == "get":
        url = storage.presign_get(path, expires_in=expires_in)
    else:
        url = storage.presign_put(path, expires_in=expires_in)
    return SignUrlResponse(url=url)


# --- QR codes and links ---------------------------------------------------


@router.get("/sifs/{sif_id}/qr-code")
def qr_code(
    sif_id: str,
    styled: bool = Query(False),
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
    qr: QRCodeService = Depends(get_qr_code_service),
):
    with _domain_errors():
        sif = manager.get_sif(user, sif_id)
    png = qr.generate_styled_qr_code(sif) if styled else qr.generate_qr_code(sif)
    return Response(content=png, media_type="image/png")


@router.get("/sifs/{sif_id}/share", response_model=ShareLinksResponse)
def share_links(
    sif_id: str,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
    qr: QRCodeService = Depends(get_qr_code_service),
):
    with _domain_errors():
        sif = manager.get_sif(user, sif_id)
    return ShareLinksResponse(
        sif_id=sif.id,
        shareable_url=qr.generate_shareable_url(sif),
        deep_link_url=qr.generate_deep_link_url(sif),
        qr_code_data=qr.create_qr_code_data(sif),
    )


@router.post("/qr/scan", response_model=QRScanResponse)
def scan_qr_code(
    payload: QRScanRequest,
    user: str = Depends(get_current_user),
    qr: QRCodeService = Depends(get_qr_code_service),
):
    result = qr.process_scanned_code(payload.code, scanner_uid=user)
    return QRScanResponse(
        sif=to_payload(result.sif) if result.sif else None, error=result.error
    )


@router.post("/deep-link", response_model=DeepLinkResponse)
def deep_link(
    payload: DeepLinkRequest,
    user: str = Depends(get_current_user),
    qr: QRCodeService = Depends(get_qr_code_service),
):
    result = qr.handle_deep_link(payload.url)
    return DeepLinkResponse(
        kind=result.kind.value,
        sif=to_payload(result.sif) if result.sif else None,
        error=result.error,
    )


# --- Search ---------------------------------------------------------------


def _search_filter(payload: SearchRequest) -> SearchFilter:
    overrides = {
        name: getattr(payload, name)
        for name in payload.model_fields_set
        if name not in ("query", "preset")
    }
    if overrides.get("result_types") is None:
        overrides.pop("result_types", None)
    if payload.preset:
        try:
            return apply_preset(payload.preset, **overrides)
        except KeyError:
            raise HTTPException(status_code=400, detail="Unknown filter preset")
    return SearchFilter(**overrides)


@router.post("/search", response_model=SearchResponse)
def search(
    payload: SearchRequest,
    user: str = Depends(get_current_user),
    service: SearchService = Depends(get_search_service),
):
    results = service.search(user, payload.query, _search_filter(payload))
    return SearchResponse(results=[to_payload(r) for r in results])


@router.get("/search/suggestions", response_model=QueriesResponse)
def search_suggestions(
    q: str = Query("", max_length=200),
    user: str = Depends(get_current_user),
    engine: SearchSuggestionEngine = Depends(get_suggestion_engine),
):
    return QueriesResponse(queries=engine.get_suggestions(q))


@router.get("/search/autocomplete", response_model=QueriesResponse)
def search_autocomplete(
    q: str = Query(..., min_length=1, max_length=200),
    user: str = Depends(get_current_user),
    engine: SearchSuggestionEngine = Depends(get_suggestion_engine),
):
    return QueriesResponse(queries=engine.get_autocomplete_options(q))


@router.post("/search/smart-suggestions", response_model=QueriesResponse)
def smart_suggestions(
    payload: SmartSuggestionsRequest,
    user: str = Depends(get_current_user),
    engine: SearchSuggestionEngine = Depends(get_suggestion_engine),
    history: SearchHistoryService = Depends(get_search_history_service),
):
    past = payload.history or [e.query for e in history.load_history(user)]
    context = {"category": payload.category} if payload.category else None
    return QueriesResponse(queries=engine.get_smart_suggestions(past, context))


@router.post("/search/feedback", response_model=StatusResponse)
def search_feedback(
    payload: SearchFeedbackRequest,
    user: str = Depends(get_current_user),
    engine: SearchSuggestionEngine = Depends(get_suggestion_engine),
):
    engine.learn_from_search(payload.query, payload.result_count, payload.user_selected)
    return StatusResponse()


@router.post("/search/suggestions/select", response_model=StatusResponse)
def select_suggestion(
    payload: SuggestionSelectionRequest,
    user: str = Depends(get_current_user),
    engine: SearchSuggestionEngine = Depends(get_suggestion_engine),
):
    engine.learn_from_selection(payload.selected, payload.original_query)
    return StatusResponse()


@router.get("/search/history", response_model=SearchHistoryResponse)
def search_history(
    q: str = Query("", max_length=200),
    user: str = Depends(get_current_user),
    history: SearchHistoryService = Depends(get_search_history_service),
):
    entries = history.matching_entries(user, q)
    return SearchHistoryResponse(entries=[to_payload(e) for e in entries])


@router.get("/search/history/recent", response_model=QueriesResponse)
def recent_searches(
    user: str = Depends(get_current_user),
    history: SearchHistoryService = Depends(get_search_history_service),
):
    return QueriesResponse(queries=history.recent_searches(user))


@router.get("/search/history/popular", response_model=QueriesResponse)
def popular_searches(
    user: str = Depends(get_current_user),
    history: SearchHistoryService = Depends(get_search_history_service),
):
    return QueriesResponse(queries=history.popular_searches(user))


@router.delete("/search/history/{entry_id}", response_model=StatusResponse)
def remove_search_history_entry(
    entry_id: str,
    user: str = Depends(get_current_user),
    history: SearchHistoryService = Depends(get_search_history_service),
):
    history.remove_entry(user, entry_id)
    return StatusResponse()


@router.delete("/search/history", response_model=CountResponse)
def clear_search_history(
    user: str = Depends(get_current_user),
    history: SearchHistoryService = Depends(get_search_history_service),
):
    return CountResponse(count=history.clear_history(user))


# --- Templates ------------------------------------------------------------


@router.get("/templates")
def list_templates(category: Optional[TemplateCategory] = Query(None)):
    templates = templates_in_category(category) if category else TEMPLATES
    return {
        "templates": [dict(id=t.id, **to_payload(t)) for t in templates],
        "categories": [to_payload(c) for c in MESSAGE_CATEGORIES],
    }


# --- Impact ---------------------------------------------------------------


@router.post("/impact/report", response_model=ImpactReportResponse)
def impact_report(
    payload: ImpactRequest,
    user: str = Depends(get_current_user),
    tracker: ImpactTracker = Depends(get_impact_tracker),
):
    with _domain_errors():
        metrics = tracker.generate_metrics(
            user, payload.period, payload.start_date, payload.end_date
        )
    report = tracker.generate_report(metrics, tracker.load_historical_metrics(user))
    return ImpactReportResponse(
        metrics=to_payload(report.metrics),
        summary=report.summary,
        recommendations=report.recommendations,
        trends=report.trends,
    )


@router.get("/impact/history", response_model=ImpactHistoryResponse)
def impact_history(
    user: str = Depends(get_current_user),
    tracker: ImpactTracker = Depends(get_impact_tracker),
):
    return ImpactHistoryResponse(
        metrics=[to_payload(m) for m in tracker.load_historical_metrics(user)]
    )


@router.post("/responses", response_model=ResponseRecordResponse, status_code=201)
def record_response(
    payload: RecordResponseRequest,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
    tracker: ImpactTracker = Depends(get_impact_tracker),
    blocking: BlockingService = Depends(get_blocking_service),
):
    with _domain_errors():
        sif = manager.get_sif(user, payload.sif_id)
        if blocking.should_prevent_interaction(user, sif.author_uid):
            raise HTTPException(status_code=403, detail="You cannot respond to this SIF")
        response = tracker.record_response(
            sif, payload.response_text, respondent_uid=user, category=payload.category
        )
    return ResponseRecordResponse(response=to_payload(response))


@router.get("/responses", response_model=ResponseListResponse)
def list_my_responses(
    user: str = Depends(get_current_user),
    tracker: ImpactTracker = Depends(get_impact_tracker),
):
    responses = tracker.list_responses_by_respondent(user)
    return ResponseListResponse(responses=[to_payload(r) for r in responses])


@router.get("/sifs/{sif_id}/responses", response_model=ResponseListResponse)
def list_sif_responses(
    sif_id: str,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
    tracker: ImpactTracker = Depends(get_impact_tracker),
):
    """The author sees every response; a recipient sees only their own."""
    with _domain_errors():
        sif = manager.get_sif(user, sif_id)
    responses = tracker.list_responses_for_sif(sif.id)
    if sif.author_uid != user:
        responses = [r for r in responses if r.respondent_uid == user]
    return ResponseListResponse(responses=[to_payload(r) for r in responses])


@router.delete("/responses/{response_id}", response_model=StatusResponse)
def delete_response(
    response_id: str,
    user: str = Depends(get_current_user),
    tracker: ImpactTracker = Depends(get_impact_tracker),
):
    with _domain_errors():
        tracker.delete_response(user, response_id)
    return StatusResponse()


@router.post("/signatures", response_model=StatusResponse, status_code=201)
def record_signature(
    payload: RecordSignatureRequest,
    user: str = Depends(get_current_user),
    tracker: ImpactTracker = Depends(get_impact_tracker),
):
    tracker.record_signature(user, payload.sif_id)
    return StatusResponse()


# --- Notifications --------------------------------------------------------


@router.get("/notifications", response_model=NotificationListResponse)
def list_notifications(
    pending: bool = Query(False),
    user: str = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    records = (
        notifications.get_pending_notifications(user)
        if pending
        else notifications.list_notifications(user)
    )
    return NotificationListResponse(notifications=[to_payload(r) for r in records])


@router.get("/notifications/unread-count", response_model=CountResponse)
def unread_count(
    user: str = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    return CountResponse(count=notifications.unread_count(user))


@router.post("/notifications/read-all", response_model=CountResponse)
def mark_all_read(
    user: str = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    return CountResponse(count=notifications.mark_all_read(user))


@router.post("/notifications/{notification_id}/read", response_model=StatusResponse)
def mark_read(
    notification_id: str,
    user: str = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    with _domain_errors():
        notifications.mark_read(user, notification_id)
    return StatusResponse()


@router.delete("/notifications/{notification_id}", response_model=StatusResponse)
def delete_notification(
    notification_id: str,
    user: str = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    with _domain_errors():
        notifications.delete_notification(user, notification_id)
    return StatusResponse()


@router.delete("/notifications", response_model=CountResponse)
def clear_notifications(
    user: str = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    return CountResponse(count=notifications.clear_all_notifications(user))


@router.post("/notifications/device-token", response_model=StatusResponse)
def register_device_token(
    payload: DeviceTokenRequest,
    user: str = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    notifications.register_device_token(user, payload.token)
    return StatusResponse()


@router.get("/notifications/preferences", response_model=NotificationPreferencesResponse)
def get_notification_preferences(
    user: str = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    preferences = notifications.get_preferences(user)
    return NotificationPreferencesResponse(
        push_enabled=preferences.push_enabled,
        disabled_types=preferences.disabled_types,
    )


@router.put("/notifications/preferences", response_model=NotificationPreferencesResponse)
def update_notification_preferences(
    payload: NotificationPreferencesRequest,
    user: str = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    preferences = NotificationPreferences(
        id=user,
        push_enabled=payload.push_enabled,
        disabled_types=[t.value for t in payload.disabled_types],
    )
    notifications.update_preferences(preferences)
    return NotificationPreferencesResponse(
        push_enabled=preferences.push_enabled,
        disabled_types=preferences.disabled_types,
    )


# --- Contacts -------------------------------------------------------------


@router.get("/contacts", response_model=ContactListResponse)
def list_contacts(
    q: str = Query("", max_length=200),
    favorites: bool = Query(False),
    user: str = Depends(get_current_user),
    address_book: AddressBookManager = Depends(get_address_book),
):
    if favorites:
        contacts = address_book.favorite_contacts(user)
    else:
        contacts = address_book.search_contacts(user, q)
    return ContactListResponse(contacts=[to_payload(c) for c in contacts])


@router.post("/contacts", response_model=ContactResponse, status_code=201)
def add_contact(
    payload: ContactRequest,
    user: str = Depends(get_current_user),
    address_book: AddressBookManager = Depends(get_address_book),
):
    with _domain_errors():
        contact = address_book.add_contact(
            Contact(id="", owner_uid=user, **payload.model_dump())
        )
    return ContactResponse(contact=to_payload(contact))


@router.put("/contacts/{contact_id}", response_model=ContactResponse)
def update_contact(
    contact_id: str,
    payload: ContactRequest,
    user: str = Depends(get_current_user),
    address_book: AddressBookManager = Depends(get_address_book),
):
    with _domain_errors():
        contact = address_book.update_contact(
            Contact(id=contact_id, owner_uid=user, **payload.model_dump())
        )
    return ContactResponse(contact=to_payload(contact))


@router.delete("/contacts/{contact_id}", response_model=StatusResponse)
def delete_contact(
    contact_id: str,
    user: str = Depends(get_current_user),
    address_book: AddressBookManager = Depends(get_address_book),
):
    with _domain_errors():
        address_book.delete_contact(user, contact_id)
    return StatusResponse()


@router.post("/contacts/{contact_id}/favorite", response_model=ToggleResponse)
def toggle_contact_favorite(
    contact_id: str,
    user: str = Depends(get_current_user),
    address_book: AddressBookManager = Depends(get_address_book),
):
    with _domain_errors():
        value = address_book.toggle_favorite(user, contact_id)
    return ToggleResponse(value=value)


@router.post("/contacts/import", response_model=ImportResultsResponse)
def import_contacts(
    payload: ImportContactsRequest,
    user: str = Depends(get_current_user),
    address_book: AddressBookManager = Depends(get_address_book),
):
    results = address_book.import_device_contacts(
        user, [DeviceContact(**c.model_dump()) for c in payload.contacts]
    )
    return ImportResultsResponse(**asdict(results), total=results.total)


# --- Blocking -------------------------------------------------------------


@router.get("/blocks", response_model=BlockedUserListResponse)
def list_blocked_users(
    user: str = Depends(get_current_user),
    blocking: BlockingService = Depends(get_blocking_service),
):
    details = blocking.list_blocked_users_with_details(user)
    return BlockedUserListResponse(blocked=[to_payload(d) for d in details])


@router.post("/blocks", response_model=BlockedUserResponse, status_code=201)
def block_user(
    payload: BlockUserRequest,
    user: str = Depends(get_current_user),
    blocking: BlockingService = Depends(get_blocking_service),
):
    with _domain_errors():
        block = blocking.block_user(user, payload.user_id, payload.reason)
    return BlockedUserResponse(block=to_payload(block))


@router.get("/blocks/{other_uid}", response_model=BlockStatusResponse)
def block_status(
    other_uid: str,
    user: str = Depends(get_current_user),
    blocking: BlockingService = Depends(get_blocking_service),
):
    info = blocking.get_blocking_info(user)
    return BlockStatusResponse(
        blocked=other_uid in info.blocked_users,
        blocked_by=other_uid in info.blocked_by_users,
        prevent_interaction=info.has_blocking_relationship(other_uid),
    )


@router.delete("/blocks/{other_uid}", response_model=StatusResponse)
def unblock_user(
    other_uid: str,
    user: str = Depends(get_current_user),
    blocking: BlockingService = Depends(get_blocking_service),
):
    with _domain_errors():
        blocking.unblock_user(user, other_uid)
    return StatusResponse()


# --- Reports and moderation -----------------------------------------------


def _stats_payload(stats, **breakdowns: Dict[str, int]) -> dict:
    # Breakdown keys are enum values and keep their spelling.
    payload = to_payload(stats)
    payload.update(breakdowns)
    return payload


@router.post("/reports", response_model=ReportResponse, status_code=201)
def report_content(
    payload: ReportContentRequest,
    user: str = Depends(get_current_user),
    manager: SIFManagerService = Depends(get_sif_manager),
    moderation: ModerationService = Depends(get_moderation_service),
):
    with _domain_errors():
        manager.get_sif(user, payload.content_id)
        report = moderation.report_content(
            user, payload.content_id, payload.reason, payload.description
        )
    return ReportResponse(report=to_payload(report))


@router.get("/moderation/reports", response_model=ReportListResponse)
def moderation_queue(
    status: ReportStatus = Query(ReportStatus.PENDING),
    moderator: str = Depends(get_current_moderator),
    moderation: ModerationService = Depends(get_moderation_service),
):
    reports = moderation.get_reports_by_status(status)
    return ReportListResponse(reports=[to_payload(r) for r in reports])


@router.get("/moderation/content/{content_id}/reports", response_model=ReportListResponse)
def content_reports(
    content_id: str,
    moderator: str = Depends(get_current_moderator),
    moderation: ModerationService = Depends(get_moderation_service),
):
    reports = moderation.get_reports_for_content(content_id)
    return ReportListResponse(reports=[to_payload(r) for r in reports])


@router.get(
    "/moderation/content/{content_id}/stats", response_model=ContentReportStatsResponse
)
def content_report_stats(
    content_id: str,
    moderator: str = Depends(get_current_moderator),
    moderation: ModerationService = Depends(get_moderation_service),
):
    stats = moderation.get_content_report_stats(content_id)
    return ContentReportStatsResponse(
        stats=_stats_payload(stats, reasonBreakdown=stats.reason_breakdown)
    )


@router.post("/moderation/reports/{report_id}/status", response_model=ReportResponse)
def update_report_status(
    report_id: str,
    payload: ReportStatusRequest,
    moderator: str = Depends(get_current_moderator),
    moderation: ModerationService = Depends(get_moderation_service),
):
    with _domain_errors():
        report = moderation.update_report_status(
            report_id,
            payload.status,
            moderator,
            action=payload.action,
            notes=payload.notes,
        )
    return ReportResponse(report=to_payload(report))


@router.post("/moderation/reports/{report_id}/moderate", response_model=ReportResponse)
def moderate_report(
    report_id: str,
    payload: ModerateReportRequest,
    moderator: str = Depends(get_current_moderator),
    moderation: ModerationService = Depends(get_moderation_service),
):
    with _domain_errors():
        report = moderation.moderate_report(
            report_id, payload.action, moderator, notes=payload.notes
        )
    return ReportResponse(report=to_payload(report))


@router.post("/moderation/sifs/{sif_id}/remove", response_model=StatusResponse)
def remove_sif(
    sif_id: str,
    moderator: str = Depends(get_current_moderator),
    moderation: ModerationService = Depends(get_moderation_service),
):
    with _domain_errors():
        moderation.remove_content(sif_id, moderator)
    return StatusResponse()


@router.get("/moderation/stats", response_model=ModerationStatsResponse)
def moderation_stats(
    moderator: str = Depends(get_current_moderator),
    moderation: ModerationService = Depends(get_moderation_service),
):
    stats = moderation.get_moderation_stats()
    return ModerationStatsResponse(
        stats=_stats_payload(
            stats,
            reportsByReason=stats.reports_by_reason,
            actionsTaken=stats.actions_taken,
        )
    )
