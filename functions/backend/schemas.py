"""
Pydantic schemas for the iSIF FastAPI backend.

SIFs, folders, files, contacts and notifications travel as camelCase dicts,
the same shape they have in the document store plus their `id`.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from shared import constants
from shared.types import (
    BlockReason,
    ContactCategory,
    ModerationAction,
    NotificationType,
    ReportReason,
    ReportStatus,
    ResponseCategory,
    SearchResultType,
    SearchSortOption,
    SearchSortOrder,
    SIFBatchOperation,
    SIFSortOption,
    TimePeriod,
)


class StatusResponse(BaseModel):
    status: Literal["ok"] = "ok"


class CountResponse(BaseModel):
    count: int


class ToggleResponse(BaseModel):
    value: bool


class SignUrlResponse(BaseModel):
    url: str


# --- SIFs -----------------------------------------------------------------


class CreateSIFRequest(BaseModel):
    recipients: List[str] = Field(..., min_length=1, max_length=constants.MAX_RECIPIENTS)
    subject: str = Field(..., max_length=constants.MAX_SUBJECT_LENGTH)
    message: str = Field("", max_length=constants.MAX_MESSAGE_LENGTH)
    scheduled_date: Optional[float] = None
    expiration_date: Optional[float] = None
    template_name: Optional[str] = None
    category_name: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    notify_on_delivery: bool = True
    notify_on_open: bool = False


class SIFResponse(BaseModel):
    sif: dict


class SIFListResponse(BaseModel):
    sifs: List[dict]


class SIFCollectionsResponse(BaseModel):
    sent: List[dict]
    received: List[dict]
    favorites: List[dict]
    archived: List[dict]


class ScheduleRequest(BaseModel):
    scheduled_date: float


class ExtendExpirationRequest(BaseModel):
    expiration_date: float


class DeliveryProgressResponse(BaseModel):
    sif_id: str
    status: str
    progress_percentage: float
    retry_count: int
    failure_reason: Optional[str] = None


class SIFSearchRequest(BaseModel):
    query: str = Field("", max_length=constants.MAX_QUERY_LENGTH)
    statuses: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    date_from: Optional[float] = None
    date_to: Optional[float] = None
    has_attachments_only: bool = False
    sort_by: SIFSortOption = SIFSortOption.DATE_CREATED


# --- Folders, tags and batch operations -------------------------------------


class FolderRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    icon: str = "folder"
    color: str = "blue"


class FolderResponse(BaseModel):
    folder: dict


class FolderListResponse(BaseModel):
    folders: List[dict]


class MoveToFolderRequest(BaseModel):
    folder_id: str


class TagsRequest(BaseModel):
    tags: List[str] = Field(..., min_length=1)


class TagsResponse(BaseModel):
    tags: List[str]


class BatchOperationRequest(BaseModel):
    operation: SIFBatchOperation
    sif_ids: List[str] = Field(..., min_length=1)
    folder_id: Optional[str] = None
    tags: Optional[List[str]] = None


# --- Search ---------------------------------------------------------------


class SearchRequest(BaseModel):
    query: str = Field(..., max_length=constants.MAX_QUERY_LENGTH)
    preset: Optional[str] = None
    result_types: Optional[List[SearchResultType]] = None
    date_start: Optional[float] = None
    date_end: Optional[float] = None
    categories: List[str] = Field(default_factory=list)
    min_impact_score: float = Field(0.0, ge=0.0, le=10.0)
    max_impact_score: float = Field(10.0, ge=0.0, le=10.0)
    author_uids: List[str] = Field(default_factory=list)
    exclude_own_content: bool = False
    template_categories: List[str] = Field(default_factory=list)
    has_attachments: Optional[bool] = None
    is_scheduled: Optional[bool] = None
    include_archived: bool = False
    include_drafts: bool = False
    sort_by: SearchSortOption = SearchSortOption.RELEVANCE
    sort_order: SearchSortOrder = SearchSortOrder.DESCENDING


class SearchResponse(BaseModel):
    results: List[dict]


class QueriesResponse(BaseModel):
    queries: List[str]


class SuggestionSelectionRequest(BaseModel):
    selected: str = Field(..., min_length=1)
    original_query: str = ""


class SearchFeedbackRequest(BaseModel):
    query: str = Field(..., min_length=1)
    result_count: int = Field(0, ge=0)
    user_selected: bool = False


class SmartSuggestionsRequest(BaseModel):
    history: List[str] = Field(default_factory=list)
    category: Optional[str] = None


class SearchHistoryResponse(BaseModel):
    entries: List[dict]


# --- Impact ---------------------------------------------------------------


class ImpactRequest(BaseModel):
    period: TimePeriod = TimePeriod.MONTHLY
    start_date: Optional[float] = None
    end_date: Optional[float] = None


class ImpactReportResponse(BaseModel):
    metrics: dict
    summary: str
    recommendations: List[str]
    trends: Dict[str, float]


class ImpactHistoryResponse(BaseModel):
    metrics: List[dict]


class RecordResponseRequest(BaseModel):
    sif_id: str
    response_text: str = Field(..., min_length=1, max_length=constants.MAX_MESSAGE_LENGTH)
    category: Optional[ResponseCategory] = None


class ResponseRecordResponse(BaseModel):
    response: dict


class ResponseListResponse(BaseModel):
    responses: List[dict]


class RecordSignatureRequest(BaseModel):
    sif_id: Optional[str] = None


# --- Files ----------------------------------------------------------------


class FileResponse(BaseModel):
    file: dict


class FileListResponse(BaseModel):
    files: List[dict]


class UploadProgressResponse(BaseModel):
    file_id: str
    progress: float


# --- QR codes and links ----------------------------------------------------


class QRScanRequest(BaseModel):
    code: str = Field(..., min_length=1)


class QRScanResponse(BaseModel):
    sif: Optional[dict] = None
    error: Optional[str] = None


class DeepLinkRequest(BaseModel):
    url: str = Field(..., min_length=1)


class DeepLinkResponse(BaseModel):
    kind: str
    sif: Optional[dict] = None
    error: Optional[str] = None


class ShareLinksResponse(BaseModel):
    sif_id: str
    shareable_url: str
    deep_link_url: str
    qr_code_data: str


# --- Notifications ---------------------------------------------------------


class NotificationListResponse(BaseModel):
    notifications: List[dict]


class DeviceTokenRequest(BaseModel):
    token: str = Field(..., min_length=1)


class NotificationPreferencesRequest(BaseModel):
    push_enabled: bool = True
    disabled_types: List[NotificationType] = Field(default_factory=list)


class NotificationPreferencesResponse(BaseModel):
    push_enabled: bool
    disabled_types: List[str]


# --- Contacts -------------------------------------------------------------


class ContactRequest(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone_number: Optional[str] = None
    category: ContactCategory = ContactCategory.PERSONAL
    is_favorite: bool = False
    notes: Optional[str] = None


class ContactResponse(BaseModel):
    contact: dict


class ContactListResponse(BaseModel):
    contacts: List[dict]


class DeviceContactPayload(BaseModel):
    given_name: str = ""
    family_name: str = ""
    emails: List[str] = Field(default_factory=list)
    phone_numbers: List[str] = Field(default_factory=list)
    organization: Optional[str] = None
    note: Optional[str] = None


class ImportContactsRequest(BaseModel):
    contacts: List[DeviceContactPayload]


class ImportResultsResponse(BaseModel):
    imported: int
    skipped: int
    failed: int
    total: int


# --- Blocking and moderation ----------------------------------------------


class BlockUserRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    reason: Optional[BlockReason] = None


class BlockedUserResponse(BaseModel):
    block: dict


class BlockedUserListResponse(BaseModel):
    blocked: List[dict]


class BlockStatusResponse(BaseModel):
    blocked: bool
    blocked_by: bool
    prevent_interaction: bool


class ReportContentRequest(BaseModel):
    content_id: str = Field(..., min_length=1)
    reason: ReportReason
    description: Optional[str] = Field(
        default=None, max_length=constants.MAX_REPORT_DESCRIPTION_LENGTH
    )


class ReportResponse(BaseModel):
    report: dict


class ReportListResponse(BaseModel):
    reports: List[dict]


class ReportStatusRequest(BaseModel):
    status: ReportStatus
    action: Optional[ModerationAction] = None
    notes: Optional[str] = None


class ModerateReportRequest(BaseModel):
    action: ModerationAction
    notes: Optional[str] = None


class ContentReportStatsResponse(BaseModel):
    stats: dict


class ModerationStatsResponse(BaseModel):
    stats: dict
