"""
Impact metrics: how the SIFs a user sends are received.

Responses and signature usage are read for a date range and folded into an
`ImpactMetrics` snapshot that is stored in `impact_metrics`. Reports compare a
snapshot with the previous one for the same period.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from backend.db import DbClient, FieldFilter
from shared import constants
from shared.doc_convert import from_document, to_document
from shared.firebase_constants import (
    IMPACT_METRICS_COLLECTION,
    RESPONSES_COLLECTION,
    SIFS_COLLECTION,
    SIGNATURES_COLLECTION,
)
from shared.impact import (
    ImpactMetrics,
    ImpactReport,
    ReachMetrics,
    ResponseRecord,
    SentimentAnalysis,
    SignatureRecord,
)
from shared.sif import SIFItem
from shared.types import (
    EngagementLevel,
    ResponseCategory,
    SentimentScore,
    TimePeriod,
)

logger = logging.getLogger(__name__)

POSITIVE_WORDS = [
    "great",
    "amazing",
    "wonderful",
    "excellent",
    "love",
    "thank",
    "appreciate",
    "fantastic",
    "awesome",
]
NEGATIVE_WORDS = [
    "bad",
    "terrible",
    "awful",
    "hate",
    "disappointed",
    "frustrated",
    "angry",
    "sad",
]

QUALITY_BONUS = {
    ResponseCategory.GRATITUDE: 0.2,
    ResponseCategory.COMPLIMENT: 0.2,
    ResponseCategory.FEEDBACK: 0.1,
    ResponseCategory.SUGGESTION: 0.1,
}

# Checked in order; the first category with a matching keyword wins.
CATEGORY_KEYWORDS = (
    (ResponseCategory.GRATITUDE, ("thank", "grateful", "appreciate")),
    (ResponseCategory.QUESTION, ("?", "how", "what", "why")),
    (ResponseCategory.SUGGESTION, ("suggest", "recommend", "idea")),
    (ResponseCategory.COMPLIMENT, ("great", "amazing", "excellent")),
    (ResponseCategory.FEEDBACK, ("feedback", "comment")),
    (ResponseCategory.REQUEST, ("please", "could you", "need")),
    (ResponseCategory.ACKNOWLEDGMENT, ("received", "understood", "noted")),
)

TREND_FIELDS = (
    "total_sifs_sent",
    "total_responses",
    "response_rate",
    "positive_impact_score",
    "signatures_used",
)


class ImpactError(Exception):
    pass


class ResponseNotFoundError(ImpactError):
    def __init__(self, response_id: str):
        super().__init__(f"Response not found: {response_id}")
        self.response_id = response_id


def suggest_category(response_text: str) -> ResponseCategory:
    lowered = response_text.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return ResponseCategory.OTHER


def calculate_date_range(
    period: TimePeriod,
    start: Optional[float] = None,
    end: Optional[float] = None,
    now: Optional[float] = None,
) -> Tuple[float, float]:
    """Resolve a reporting window in epoch seconds (UTC calendar)."""
    if start is not None and end is not None:
        if start > end:
            raise ImpactError("Start date must be before end date")
        return start, end

    end_ts = end if end is not None else (now if now is not None else time.time())
    end_dt = datetime.fromtimestamp(end_ts, tz=timezone.utc)
    day = end_dt.replace(hour=0, minute=0, second=0, microsecond=0)

    if period == TimePeriod.DAILY:
        start_dt = day
    elif period == TimePeriod.WEEKLY:
        start_dt = day - timedelta(days=day.weekday())
    elif period == TimePeriod.MONTHLY:
        start_dt = day.replace(day=1)
    elif period == TimePeriod.QUARTERLY:
        start_dt = day.replace(month=3 * ((day.month - 1) // 3) + 1, day=1)
    elif period == TimePeriod.YEARLY:
        start_dt = day.replace(month=1, day=1)
    else:
        if start is not None:
            return start, end_ts
        start_dt = _one_month_before(end_dt)
    return start_dt.timestamp(), end_ts


def _one_month_before(moment: datetime) -> datetime:
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    # Clamp to the last day of the shorter month (e.g. Mar 31 -> Feb 28).
    for day in range(moment.day, 27, -1):
        try:
            return moment.replace(year=year, month=month, day=day)
        except ValueError:
            continue
    return moment.replace(year=year, month=month, day=min(moment.day, 28))


def analyze_sentiment(text: str) -> SentimentScore:
    lowered = text.lower()
    positive = sum(1 for word in POSITIVE_WORDS if word in lowered)
    negative = sum(1 for word in NEGATIVE_WORDS if word in lowered)
    if positive > negative:
        return SentimentScore.VERY_POSITIVE if positive > 2 else SentimentScore.POSITIVE
    if negative > positive:
        return SentimentScore.VERY_NEGATIVE if negative > 2 else SentimentScore.NEGATIVE
    return SentimentScore.NEUTRAL


def summarize_sentiment(responses: Sequence[ResponseRecord]) -> SentimentAnalysis:
    if not responses:
        return SentimentAnalysis()
    counts = Counter(analyze_sentiment(r.response_text) for r in responses)
    total = len(responses)
    positive = counts[SentimentScore.VERY_POSITIVE] + counts[SentimentScore.POSITIVE]
    negative = counts[SentimentScore.VERY_NEGATIVE] + counts[SentimentScore.NEGATIVE]
    positive_ratio = positive / total
    if positive_ratio > 0.6:
        overall = SentimentScore.POSITIVE
    elif positive_ratio < 0.3:
        overall = SentimentScore.NEGATIVE
    else:
        overall = SentimentScore.NEUTRAL
    return SentimentAnalysis(
        overall_sentiment=overall,
        positive_ratio=positive_ratio,
        neutral_ratio=counts[SentimentScore.NEUTRAL] / total,
        negative_ratio=negative / total,
    )


def engagement_level(response_rate: float) -> EngagementLevel:
    if response_rate >= 0.8:
        return EngagementLevel.EXCEPTIONAL
    if response_rate >= 0.6:
        return EngagementLevel.HIGH
    if response_rate >= 0.3:
        return EngagementLevel.MEDIUM
    return EngagementLevel.LOW


def positive_impact_score(
    responses: Sequence[ResponseRecord], sentiment: SentimentAnalysis
) -> float:
    if not responses:
        return 0.0
    bonus = sum(QUALITY_BONUS.get(r.category, 0.0) for r in responses) / len(responses)
    return min(sentiment.positive_ratio + bonus, 1.0)


class ImpactTracker:
    def __init__(self, db: DbClient):
        self.db = db

    def record_response(
        self,
        sif: SIFItem,
        response_text: str,
        *,
        respondent_uid: Optional[str] = None,
        category: Optional[ResponseCategory] = None,
        now: Optional[float] = None,
    ) -> ResponseRecord:
        """Stores a response to `sif`. Without a category one is guessed from the text."""
        if not response_text.strip():
            raise ImpactError("Response text is required")
        response = ResponseRecord(
            id=uuid.uuid4().hex,
            author_uid=sif.author_uid,
            original_sif_id=sif.id,
            response_text=response_text.strip(),
            created_date=now if now is not None else time.time(),
            respondent_uid=respondent_uid,
            category=category or suggest_category(response_text),
            sif_created_date=sif.created_date,
        )
        self.db.set(RESPONSES_COLLECTION, response.id, to_document(response))
        return response

    def record_signature(
        self, user_uid: str, sif_id: Optional[str] = None, now: Optional[float] = None
    ) -> SignatureRecord:
        signature = SignatureRecord(
            id=uuid.uuid4().hex,
            user_uid=user_uid,
            timestamp=now if now is not None else time.time(),
            sif_id=sif_id,
        )
        self.db.set(SIGNATURES_COLLECTION, signature.id, to_document(signature))
        return signature

    def list_responses_for_sif(self, sif_id: str) -> List[ResponseRecord]:
        docs = self.db.query(
            RESPONSES_COLLECTION,
            [FieldFilter("originalSifId", "==", sif_id)],
            order_by="createdDate",
            descending=True,
        )
        return [from_document(ResponseRecord, d.id, d.data) for d in docs]

    def list_responses_by_respondent(self, respondent_uid: str) -> List[ResponseRecord]:
        docs = self.db.query(
            RESPONSES_COLLECTION,
            [FieldFilter("respondentUid", "==", respondent_uid)],
            order_by="createdDate",
            descending=True,
        )
        return [from_document(ResponseRecord, d.id, d.data) for d in docs]

    def delete_response(self, respondent_uid: str, response_id: str) -> None:
        """Only the person who wrote a response can delete it."""
        data = self.db.get(RESPONSES_COLLECTION, response_id)
        if data is None or data.get("respondentUid") != respondent_uid:
            raise ResponseNotFoundError(response_id)
        self.db.delete(RESPONSES_COLLECTION, response_id)
        logger.info("[%s] Deleted response %s", respondent_uid, response_id)

    def _in_range(
        self, collection: str, owner_field: str, date_field: str, user_uid: str,
        start: float, end: float,
    ):
        return self.db.query(
            collection,
            [
                FieldFilter(owner_field, "==", user_uid),
                FieldFilter(date_field, ">=", start),
                FieldFilter(date_field, "<=", end),
            ],
        )

    def generate_metrics(
        self,
        user_uid: str,
        period: TimePeriod,
        start: Optional[float] = None,
        end: Optional[float] = None,
        now: Optional[float] = None,
    ) -> ImpactMetrics:
        if not user_uid:
            raise ImpactError("Authentication required to access impact metrics")
        generated = now if now is not None else time.time()
        start_ts, end_ts = calculate_date_range(period, start, end, now=generated)

        responses = [
            from_document(ResponseRecord, d.id, d.data)
            for d in self._in_range(
                RESPONSES_COLLECTION, "authorUid", "createdDate", user_uid, start_ts, end_ts
            )
        ]
        sifs = [
            from_document(SIFItem, d.id, d.data)
            for d in self._in_range(
                SIFS_COLLECTION, "authorUid", "createdDate", user_uid, start_ts, end_ts
            )
        ]
        signatures = self._in_range(
            SIGNATURES_COLLECTION, "userUid", "timestamp", user_uid, start_ts, end_ts
        )

        sentiment = summarize_sentiment(responses)
        response_rate = len(responses) / len(sifs) if sifs else 0.0
        metrics = ImpactMetrics(
            id=uuid.uuid4().hex,
            user_uid=user_uid,
            period=period,
            start_date=start_ts,
            end_date=end_ts,
            generated_date=generated,
            total_sifs_sent=len(sifs),
            total_responses=len(responses),
            responses_by_category=dict(
                Counter(str(r.category) for r in responses)
            ),
            average_response_time=self._average_response_time(responses, sifs),
            response_rate=response_rate,
            reach_metrics=ReachMetrics(
                total_reach=sum(len(s.recipients) for s in sifs),
                unique_respondents=len(
                    {r.respondent_uid or r.id for r in responses}
                ),
            ),
            sentiment_analysis=sentiment,
            engagement_level=engagement_level(response_rate),
            positive_impact_score=positive_impact_score(responses, sentiment),
            signatures_used=len(signatures),
        )
        self.db.set(IMPACT_METRICS_COLLECTION, metrics.id, to_document(metrics))
        logger.info(
            "[%s] Generated %s impact metrics: %d responses, %d SIFs",
            user_uid,
            period,
            metrics.total_responses,
            metrics.total_sifs_sent,
        )
        return metrics

    def _average_response_time(
        self, responses: Sequence[ResponseRecord], sifs: Sequence[SIFItem]
    ) -> float:
        created = {s.id: s.created_date for s in sifs}
        durations = []
        for response in responses:
            sent_at = response.sif_created_date or created.get(response.original_sif_id)
            if sent_at is not None and response.created_date >= sent_at:
                durations.append(response.created_date - sent_at)
        return sum(durations) / len(durations) if durations else 0.0

    def load_historical_metrics(self, user_uid: str) -> List[ImpactMetrics]:
        docs = self.db.query(
            IMPACT_METRICS_COLLECTION,
            [FieldFilter("userUid", "==", user_uid)],
            order_by="generatedDate",
            descending=True,
            limit=constants.IMPACT_HISTORY_LIMIT,
        )
        return [from_document(ImpactMetrics, d.id, d.data) for d in docs]

    def generate_report(
        self, metrics: ImpactMetrics, history: Optional[Sequence[ImpactMetrics]] = None
    ) -> ImpactReport:
        return ImpactReport(
            metrics=metrics,
            summary=self._summary(metrics),
            recommendations=self._recommendations(metrics),
            trends=self._trends(metrics, history or []),
        )

    def _summary(self, metrics: ImpactMetrics) -> str:
        return "\n".join(
            [
                f"Impact Summary for {metrics.period.display_name}:",
                f"- Total Responses: {metrics.total_responses}",
                f"- Engagement Level: {metrics.engagement_level.display_name}",
                f"- Positive Impact Score: {metrics.positive_impact_score * 100:.1f}%",
                f"- Response Rate: {metrics.response_rate * 100:.1f}%",
            ]
        )

    def _recommendations(self, metrics: ImpactMetrics) -> List[str]:
        recommendations = []
        if metrics.response_rate < 0.3:
            recommendations.append(
                "Consider making your SIFs more engaging to improve response rates"
            )
        if metrics.positive_impact_score < 0.5:
            recommendations.append("Focus on creating more positive interactions")
        if metrics.signatures_used == 0:
            recommendations.append(
                "Try using signatures to add authenticity to your responses"
            )
        return recommendations

    def _trends(
        self, metrics: ImpactMetrics, history: Sequence[ImpactMetrics]
    ) -> Dict[str, float]:
        """Change of each headline number since the previous snapshot of the same period."""
        previous = [
            m
            for m in history
            if m.id != metrics.id
            and m.period == metrics.period
            and m.generated_date < metrics.generated_date
        ]
        if not previous:
            return {}
        baseline = max(previous, key=lambda m: m.generated_date)
        return {
            name: float(getattr(metrics, name) - getattr(baseline, name))
            for name in TREND_FIELDS
        }
