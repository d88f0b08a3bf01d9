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
from typing import Dict, List, Optional

from shared.types import (
    EngagementLevel,
    ResponseCategory,
    SentimentScore,
    TimePeriod,
)


@dataclass
class ResponseRecord:
    id: str
    author_uid: str
    original_sif_id: str
    response_text: str
    created_date: float
    respondent_uid: Optional[str] = None
    category: ResponseCategory = ResponseCategory.OTHER
    sif_created_date: Optional[float] = None


@dataclass
class SignatureRecord:
    id: str
    user_uid: str
    timestamp: float
    sif_id: Optional[str] = None


@dataclass
class ReachMetrics:
    total_reach: int = 0
    unique_respondents: int = 0


@dataclass
class SentimentAnalysis:
    overall_sentiment: SentimentScore = SentimentScore.NEUTRAL
    positive_ratio: float = 0.0
    neutral_ratio: float = 0.0
    negative_ratio: float = 0.0


@dataclass
class ImpactMetrics:
    id: str
    user_uid: str
    period: TimePeriod
    start_date: float
    end_date: float
    generated_date: float
    total_sifs_sent: int = 0
    total_responses: int = 0
    responses_by_category: Dict[str, int] = field(default_factory=dict)
    average_response_time: float = 0.0
    response_rate: float = 0.0
    reach_metrics: ReachMetrics = field(default_factory=ReachMetrics)
    sentiment_analysis: SentimentAnalysis = field(default_factory=SentimentAnalysis)
    engagement_level: EngagementLevel = EngagementLevel.LOW
    positive_impact_score: float = 0.0
    signatures_used: int = 0


@dataclass
class ImpactReport:
    metrics: ImpactMetrics
    summary: str
    recommendations: List[str] = field(default_factory=list)
    trends: Dict[str, float] = field(default_factory=dict)
