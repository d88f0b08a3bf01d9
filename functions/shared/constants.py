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

SHARE_BASE_URL = "https://isayitforward.app"
DEEP_LINK_SCHEME = "isayitforward"
DEEP_LINK_HOST = "isayitforward.app"

# Delivery
MAX_RETRY_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 30
ATTACHMENT_UPLOAD_PROGRESS_SHARE = 80.0

# Content uploads
MAX_FILE_SIZE_BYTES = 100 * 1024 * 1024
UPLOAD_CHUNK_SIZE_BYTES = 1024 * 1024

# Input limits
MAX_SUBJECT_LENGTH = 200
MAX_MESSAGE_LENGTH = 5000
MAX_RECIPIENTS = 100
MAX_TAG_LENGTH = 50
MAX_QUERY_LENGTH = 200
SIF_ID_MAX_LENGTH = 128

# Search
SEARCH_CACHE_MAX_ENTRIES = 50
SEARCH_CACHE_TTL_SECONDS = 300
MIN_SUGGESTION_QUERY_LENGTH = 2
MAX_SUGGESTIONS = 8
MAX_SEARCH_HISTORY = 50
RECENT_SEARCHES_LIMIT = 10
POPULAR_SEARCHES_LIMIT = 5

# Notifications
DELIVERY_REMINDER_LEAD_SECONDS = 5 * 60
EXPIRATION_WARNING_LEAD_SECONDS = 24 * 60 * 60

# QR codes
QR_CODE_SIZE = 300

# Impact
IMPACT_HISTORY_LIMIT = 50

# Moderation
SUSPENSION_DURATION_SECONDS = 7 * 24 * 60 * 60
MAX_REPORT_DESCRIPTION_LENGTH = 1000
