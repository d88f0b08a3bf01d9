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

from enum import StrEnum


class SIFDeliveryStatus(StrEnum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    UPLOADING = "uploading"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class FileType(StrEnum):
    IMAGE = "image"
    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    PRESENTATION = "presentation"
    AUDIO = "audio"
    VIDEO = "video"
    ARCHIVE = "archive"
    OTHER = "other"


class SearchResultType(StrEnum):
    MESSAGE = "message"
    USER = "user"
    CATEGORY = "category"
    TEMPLATE = "template"

    @property
    def display_name(self) -> str:
        return {
            SearchResultType.MESSAGE: "Messages",
            SearchResultType.USER: "Users",
            SearchResultType.CATEGORY: "Categories",
            SearchResultType.TEMPLATE: "Templates",
        }[self]


class SearchSortOption(StrEnum):
    RELEVANCE = "relevance"
    DATE = "date"
    TITLE = "title"
    AUTHOR = "author"
    CATEGORY = "category"
    SCORE = "score"


class SearchSortOrder(StrEnum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


class SIFSortOption(StrEnum):
    DATE_CREATED = "date_created"
    DATE_SCHEDULED = "date_scheduled"
    SUBJECT = "subject"
    STATUS = "status"
    SIZE = "size"
    RECIPIENTS = "recipients"


class SIFBatchOperation(StrEnum):
    DELETE = "delete"
    ARCHIVE = "archive"
    UNARCHIVE = "unarchive"
    FAVORITE = "favorite"
    UNFAVORITE = "unfavorite"
    MOVE_TO_FOLDER = "move_to_folder"
    ADD_TAGS = "add_tags"
    REMOVE_TAGS = "remove_tags"


class TimePeriod(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"

    @property
    def display_name(self) -> str:
        if self is TimePeriod.CUSTOM:
            return "Custom Range"
        return self.value.capitalize()


class EngagementLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXCEPTIONAL = "exceptional"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class SentimentScore(StrEnum):
    VERY_POSITIVE = "very_positive"
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    VERY_NEGATIVE = "very_negative"

    @property
    def numeric_value(self) -> float:
        return {
            SentimentScore.VERY_POSITIVE: 1.0,
            SentimentScore.POSITIVE: 0.5,
            SentimentScore.NEUTRAL: 0.0,
            SentimentScore.NEGATIVE: -0.5,
            SentimentScore.VERY_NEGATIVE: -1.0,
        }[self]


class ResponseCategory(StrEnum):
    GRATITUDE = "gratitude"
    FEEDBACK = "feedback"
    REQUEST = "request"
    ACKNOWLEDGMENT = "acknowledgment"
    QUESTION = "question"
    SUGGESTION = "suggestion"
    COMPLIMENT = "compliment"
    OTHER = "other"


class ContactCategory(StrEnum):
    PERSONAL = "Personal"
    WORK = "Work"
    FAMILY = "Family"
    FRIENDS = "Friends"
    BUSINESS = "Business"
    OTHER = "Other"


class NotificationType(StrEnum):
    DELIVERY_SUCCESS = "delivery_success"
    DELIVERY_FAILURE = "delivery_failure"
    DELIVERY_REMINDER = "delivery_reminder"
    EXPIRATION_WARNING = "expiration_warning"
    NEW_SIF = "new_sif"
    QR_SCANNED = "qr_scanned"


class BlockReason(StrEnum):
    HARASSMENT = "harassment"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    SPAM = "spam"
    PERSONAL_CHOICE = "personal_choice"
    OTHER = "other"


class ReportReason(StrEnum):
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    HARASSMENT = "harassment"
    SPAM = "spam"
    HATE_SPEECH = "hate_speech"
    VIOLENCE = "violence"
    MISINFORMATION = "misinformation"
    COPYRIGHT = "copyright"
    OTHER = "other"


class ReportStatus(StrEnum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ModerationAction(StrEnum):
    NO_ACTION = "no_action"
    CONTENT_REMOVED = "content_removed"
    USER_WARNED = "user_warned"
    USER_SUSPENDED = "user_suspended"
    USER_BANNED = "user_banned"
