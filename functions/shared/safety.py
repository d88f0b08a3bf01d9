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
from typing import Dict, Optional, Set

from shared.types import BlockReason, ModerationAction, ReportReason, ReportStatus


@dataclass
class BlockedUser:
    id: str
    blocker_id: str
    blocked_user_id: str
    timestamp: float
    reason: Optional[BlockReason] = None


@dataclass
class BlockedUserDetail:
    block: BlockedUser
    user_name: str = "Unknown User"
    user_email: str = ""


@dataclass
class BlockingInfo:
    user_id: str
    blocked_users: Set[str] = field(default_factory=set)
    blocked_by_users: Set[str] = field(default_factory=set)

    def has_blocking_relationship(self, other_uid: str) -> bool:
        return other_uid in self.blocked_users or other_uid in self.blocked_by_users


@dataclass
class ReportItem:
    id: str
    reporter_id: str
    reported_content_id: str
    reported_user_id: str
    reason: ReportReason
    timestamp: float
    description: Optional[str] = None
    status: ReportStatus = ReportStatus.PENDING
    moderator_id: Optional[str] = None
    moderator_notes: Optional[str] = None
    action_taken: Optional[ModerationAction] = None
    resolved_date: Optional[float] = None


@dataclass
class UserWarning:
    id: str
    user_id: str
    reason: ReportReason
    timestamp: float
    issued_by: str


@dataclass
class UserSuspension:
    id: str
    user_id: str
    start_date: float
    end_date: float
    issued_by: str


@dataclass
class ContentReportStats:
    total_reports: int = 0
    pending_reports: int = 0
    reason_breakdown: Dict[str, int] = field(default_factory=dict)
    most_recent_report: Optional[float] = None


@dataclass
class ModerationStats:
    total_reports: int = 0
    pending_reports: int = 0
    under_review_reports: int = 0
    resolved_reports: int = 0
    dismissed_reports: int = 0
    reports_by_reason: Dict[str, int] = field(default_factory=dict)
    actions_taken: Dict[str, int] = field(default_factory=dict)
