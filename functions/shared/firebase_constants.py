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

SIFS_COLLECTION = "sifs"
USERS_COLLECTION = "users"
CONTACTS_COLLECTION = "contacts"
RESPONSES_COLLECTION = "responses"
SIGNATURES_COLLECTION = "signatures"
IMPACT_METRICS_COLLECTION = "impact_metrics"
NOTIFICATIONS_COLLECTION = "notifications"
NOTIFICATION_PREFERENCES_COLLECTION = "notification_preferences"
BLOCKED_USERS_COLLECTION = "blocked_users"
REPORTS_COLLECTION = "reports"
USER_WARNINGS_COLLECTION = "user_warnings"
USER_SUSPENSIONS_COLLECTION = "user_suspensions"

# Subcollections under users/{uid}
FOLDERS_COLLECTION = "folders"
FILES_COLLECTION = "files"
SEARCH_HISTORY_COLLECTION = "searchHistory"

# Search analytics documents
ANALYTICS_COLLECTION = "analytics"
SEARCHES_DOCUMENT = "searches"
POPULAR_QUERIES_COLLECTION = "popular_queries"
SUGGESTIONS_DOCUMENT = "suggestions"
SUGGESTION_WEIGHTS_COLLECTION = "weights"
SUGGESTION_ASSOCIATIONS_COLLECTION = "associations"


def user_subcollection(user_uid: str, name: str) -> str:
    return f"{USERS_COLLECTION}/{user_uid}/{name}"


POPULAR_QUERIES_PATH = (
    f"{ANALYTICS_COLLECTION}/{SEARCHES_DOCUMENT}/{POPULAR_QUERIES_COLLECTION}"
)
SUGGESTION_WEIGHTS_PATH = (
    f"{ANALYTICS_COLLECTION}/{SUGGESTIONS_DOCUMENT}/{SUGGESTION_WEIGHTS_COLLECTION}"
)
SUGGESTION_ASSOCIATIONS_PATH = f"{ANALYTICS_COLLECTION}/{SUGGESTIONS_DOCUMENT}/{SUGGESTION_ASSOCIATIONS_COLLECTION}"
