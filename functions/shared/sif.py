# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from shared.types import FileType, NotificationType, SIFDeliveryStatus


@dataclass
class SIFItem:
    id: str
    author_uid: str
    recipients: List[str]
    subject: str
    message: str
    created_date: float
    scheduled_date: Optional[float] = None
    delivery_status: SIFDeliveryStatus = SIFDeliveryStatus.PENDING
    delivered_date: Optional[float] = None
    retry_count: int = 0
    last_retry_date: Optional[float] = None
    progress_percentage: float = 0.0
    failure_reason: Optional[str] = None

    attachment_urls: List[str] = field(default_factory=list)
    attachment_types: List[str] = field(default_factory=list)
    attachment_sizes: List[int] = field(default_factory=list)
    attachment_paths: List[str] = field(default_factory=list)
    total_attachment_size: int = 0
    template_name: Optional[str] = None
    category_name: Optional[str] = None

    qr_code_data: Optional[str] = None
    qr_code_image_url: Optional[str] = None
    shareable_link: Optional[str] = None

    folder_path: str = "sent"
    tags: List[str] = field(default_factory=list)
    is_favorite: bool = False
    is_archived: bool = False

    expiration_date: Optional[float] = None
    can_extend_expiration: bool = True
    is_cancelled: bool = False
    cancelled_date: Optional[float] = None

    notify_on_delivery: bool = True
    notify_on_open: bool = False
    delivery_notification_sent: bool = False

    is_removed: bool = False
    removed_date: Optional[float] = None
    removed_by: Optional[str] = None

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachment_urls)

    @property
    def attachment_count(self) -> int:
        return len(self.attachment_urls)


@dataclass
class SIFFolder:
    id: str
    name: str
    icon: str
    color: str
    is_custom: bool = False
    created_date: Optional[float] = None


DEFAULT_FOLDERS: List[SIFFolder] = [
    SIFFolder(id="sent", name="Sent", icon="paperplane", color="blue"),
    SIFFolder(id="received", name="Received", icon="tray", color="green"),
    SIFFolder(id="drafts", name="Drafts", icon="doc.text", color="orange"),
    SIFFolder(id="favorites", name="Favorites", icon="heart.fill", color="red"),
    SIFFolder(id="archived", name="Archived", icon="archivebox", color="gray"),
    SIFFolder(id="scheduled", name="Scheduled", icon="calendar", color="purple"),
]

DEFAULT_FOLDER_IDS = frozenset(folder.id for folder in DEFAULT_FOLDERS)


@dataclass
class UploadedFile:
    id: str
    name: str
    url: str
    storage_path: str
    size: int
    type: FileType
    mime_type: str
    upload_date: float
    owner_uid: str
    sif_id: Optional[str] = None


@dataclass
class QRCodeData:
    sif_id: str
    url: str
    subject: str
    author_uid: str
    created_date: float
    type: str = "sif"
    expiration_date: Optional[float] = None


@dataclass
class NotificationRecord:
    id: str
    user_uid: str
    type: NotificationType
    title: str
    body: str
    created_date: float
    deliver_at: float
    sif_id: Optional[str] = None
    is_read: bool = False
    is_sent: bool = False
    data: Dict[str, Any] = field(default_factory=dict)
