"""
Search across messages (SIFs), users, templates and categories.

Matching is case-insensitive substring search over documents pulled from the
store; results carry a relevance score and are filtered, sorted and cached
per user, query and filter combination.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass, field, replace
from typing import Dict, List, Optional

from backend.db import DbClient, FieldFilter, text_document_id
from backend.search_history import SearchHistoryService
from shared import constants
from shared.doc_convert import from_document
from shared.firebase_constants import (
    POPULAR_QUERIES_PATH,
    SIFS_COLLECTION,
    USERS_COLLECTION,
)
from shared.sif import SIFItem
from shared.templates import MESSAGE_CATEGORIES, TEMPLATES, MessageCategory, TemplateItem
from shared.types import (
    SearchResultType,
    SearchSortOption,
    SearchSortOrder,
    SIFDeliveryStatus,
)

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60
RECENCY_WINDOW_DAYS = 30


@dataclass
class SearchResult:
    id: str
    type: SearchResultType
    title: str
    score: float
    last_modified: float
    subtitle: Optional[str] = None
    description: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def author_uid(self) -> Optional[str]:
        return self.metadata.get("author_uid")

    @property
    def category_name(self) -> Optional[str]:
        return self.metadata.get("category_name")


@dataclass
class SearchFilter:
    result_types: List[SearchResultType] = field(
        default_factory=lambda: list(SearchResultType)
    )
    date_start: Optional[float] = None
    date_end: Optional[float] = None
    categories: List[str] = field(default_factory=list)
    min_impact_score: float = 0.0
    max_impact_score: float = 10.0
    author_uids: List[str] = field(default_factory=list)
    exclude_own_content: bool = False
    template_categories: List[str] = field(default_factory=list)
    has_attachments: Optional[bool] = None
    is_scheduled: Optional[bool] = None
    include_archived: bool = False
    include_drafts: bool = False
    sort_by: SearchSortOption = SearchSortOption.RELEVANCE
    sort_order: SearchSortOrder = SearchSortOrder.DESCENDING

    @property
    def date_range_active(self) -> bool:
        return self.date_start is not None or self.date_end is not None

    @property
    def impact_score_active(self) -> bool:
        return self.min_impact_score > 0.0 or self.max_impact_score < 10.0

    @property
    def active_filter_count(self) -> int:
        return sum(
            [
                self.date_range_active,
                bool(self.categories),
                self.impact_score_active,
                bool(self.author_uids),
                self.exclude_own_content,
                bool(self.template_categories),
                self.has_attachments is not None,
                self.is_scheduled is not None,
                not self.include_archived,
                not self.include_drafts,
            ]
        )

    def matches(self, result: SearchResult) -> bool:
        if result.type not in self.result_types:
            return False
        if self.date_start is not None and result.last_modified < self.date_start:
            return False
        if self.date_end is not None and result.last_modified > self.date_end:
            return False
        if self.categories and result.type in (
            SearchResultType.MESSAGE,
            SearchResultType.TEMPLATE,
        ):
            if result.category_name and result.category_name not in self.categories:
                return False
        if self.template_categories and result.type == SearchResultType.TEMPLATE:
            if (
                result.category_name
                and result.category_name not in self.template_categories
            ):
                return False
        if self.author_uids and result.author_uid:
            if result.author_uid not in self.author_uids:
                return False
        if self.impact_score_active and not (
            self.min_impact_score <= result.score <= self.max_impact_score
        ):
            return False
        return True

    def cache_fingerprint(self) -> str:
        payload = json.dumps(asdict(self), sort_keys=True, default=str)
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()

    # Presets

    @classmethod
    def recent_messages(cls, now: Optional[float] = None) -> "SearchFilter":
        now = now if now is not None else time.time()
        return cls(
            result_types=[SearchResultType.MESSAGE],
            date_start=now - 7 * DAY_SECONDS,
            sort_by=SearchSortOption.DATE,
        )

    @classmethod
    def my_content(cls) -> "SearchFilter":
        return cls(exclude_own_content=False, sort_by=SearchSortOption.DATE)

    @classmethod
    def templates(cls) -> "SearchFilter":
        return cls(
            result_types=[SearchResultType.TEMPLATE], sort_by=SearchSortOption.CATEGORY
        )

    @classmethod
    def users(cls) -> "SearchFilter":
        return cls(result_types=[SearchResultType.USER], sort_by=SearchSortOption.TITLE)

    @classmethod
    def scheduled_content(cls) -> "SearchFilter":
        return cls(
            result_types=[SearchResultType.MESSAGE],
            is_scheduled=True,
            sort_by=SearchSortOption.DATE,
        )


FILTER_PRESETS = {
    "recent_messages": SearchFilter.recent_messages,
    "my_content": SearchFilter.my_content,
    "templates": SearchFilter.templates,
    "users": SearchFilter.users,
    "scheduled_content": SearchFilter.scheduled_content,
}


# --- Result factories ------------------------------------------------------


def message_result(sif: SIFItem, score: float) -> SearchResult:
    metadata = {"message_id": sif.id, "author_uid": sif.author_uid}
    if sif.scheduled_date is not None:
        metadata["scheduled_date"] = str(sif.scheduled_date)
    if sif.category_name:
        metadata["category_name"] = sif.category_name
    subtitle = (
        f"Scheduled for {time.strftime('%b %d, %Y', time.gmtime(sif.scheduled_date))}"
        if sif.scheduled_date is not None
        else f"To {', '.join(sif.recipients)}"
    )
    return SearchResult(
        id=sif.id,
        type=SearchResultType.MESSAGE,
        title=sif.subject,
        subtitle=subtitle,
        description=sif.message,
        score=score,
        last_modified=sif.created_date,
        metadata=metadata,
    )


def user_result(uid: str, name: str, email: str, score: float, now: float) -> SearchResult:
    return SearchResult(
        id=uid,
        type=SearchResultType.USER,
        title=name,
        subtitle=email,
        score=score,
        last_modified=now,
        metadata={"user_uid": uid, "email": email},
    )


def category_result(category: MessageCategory, score: float, now: float) -> SearchResult:
    return SearchResult(
        id=category.name,
        type=SearchResultType.CATEGORY,
        title=category.name,
        subtitle="Category",
        description=category.description,
        score=score,
        last_modified=now,
        metadata={"category_name": category.name},
    )


def template_result(template: TemplateItem, score: float, now: float) -> SearchResult:
    return SearchResult(
        id=template.id,
        type=SearchResultType.TEMPLATE,
        title=template.name,
        subtitle=template.category.value,
        description=template.message,
        score=score,
        last_modified=now,
        metadata={"template_id": template.id, "category_name": template.category.value},
    )


# --- Relevance -------------------------------------------------------------


def message_relevance(sif: SIFItem, query: str, now: float) -> float:
    q = query.lower()
    subject = sif.subject.lower()
    score = 0.0
    if q in subject:
        score += 3.0
    if subject == q:
        score += 5.0
    if q in sif.message.lower():
        score += 1.0
    days_since_creation = int(max(0.0, now - sif.created_date) // DAY_SECONDS)
    if days_since_creation <= RECENCY_WINDOW_DAYS:
        score += 1.0 - days_since_creation / RECENCY_WINDOW_DAYS
    return score


def user_relevance(name: str, email: str, query: str) -> float:
    q = query.lower()
    score = 0.0
    if q in name.lower():
        score += 3.0
    if name.lower() == q:
        score += 5.0
    if q in email.lower():
        score += 2.0
    return score


def template_relevance(template: TemplateItem, query: str) -> float:
    q = query.lower()
    score = 0.0
    if q in template.name.lower():
        score += 3.0
    if q in template.message.lower():
        score += 1.0
    if q in template.category.value.lower():
        score += 2.0
    return score


def category_relevance(name: str, query: str) -> float:
    q = query.lower()
    if name.lower() == q:
        return 5.0
    if q in name.lower():
        return 3.0
    return 1.0


def sort_results(
    results: List[SearchResult], sort_by: SearchSortOption, order: SearchSortOrder
) -> List[SearchResult]:
    """
    Each option has a natural direction (scores and dates high to low, text
    A to Z); choosing ascending order inverts it.
    """
    if sort_by in (SearchSortOption.RELEVANCE, SearchSortOption.SCORE):
        key, reverse = (lambda r: r.score), True
    elif sort_by == SearchSortOption.DATE:
        key, reverse = (lambda r: r.last_modified), True
    elif sort_by == SearchSortOption.TITLE:
        key, reverse = (lambda r: r.title.lower()), False
    elif sort_by == SearchSortOption.AUTHOR:
        key, reverse = (lambda r: (r.author_uid or "").lower()), False
    else:
        key, reverse = (lambda r: (r.category_name or "").lower()), False
    if order == SearchSortOrder.ASCENDING:
        reverse = not reverse
    return sorted(results, key=key, reverse=reverse)


# --- Cache -----------------------------------------------------------------


class SearchCache:
    """Bounded TTL cache; when full, the oldest entry makes room."""

    def __init__(
        self,
        max_entries: int = constants.SEARCH_CACHE_MAX_ENTRIES,
        ttl_seconds: float = constants.SEARCH_CACHE_TTL_SECONDS,
    ):
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._entries: "OrderedDict[str, tuple[float, List[SearchResult]]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def make_key(user_uid: str, query: str, filters: SearchFilter) -> str:
        return f"{user_uid}:{query.lower()}_{filters.cache_fingerprint()}"

    def get(self, key: str, now: Optional[float] = None) -> Optional[List[SearchResult]]:
        now = now if now is not None else time.time()
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, results = entry
        if now - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return list(results)

    def put(
        self, key: str, results: List[SearchResult], now: Optional[float] = None
    ) -> None:
        now = now if now is not None else time.time()
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
        self._entries[key] = (now, list(results))

    def clear(self) -> None:
        self._entries.clear()


# --- Service ---------------------------------------------------------------


def _normalize_query(query: str) -> str:
    return query.strip().lower()


class SearchService:
    def __init__(
        self,
        db: DbClient,
        history: Optional[SearchHistoryService] = None,
        cache: Optional[SearchCache] = None,
    ):
        self.db = db
        self.history = history or SearchHistoryService(db)
        self.cache = cache or SearchCache()

    def search(
        self,
        user_uid: str,
        query: str,
        filters: Optional[SearchFilter] = None,
        now: Optional[float] = None,
    ) -> List[SearchResult]:
        query = query.strip()
        if not query:
            return []
        query = query[: constants.MAX_QUERY_LENGTH]
        filters = filters or SearchFilter()
        now = now if now is not None else time.time()

        key = SearchCache.make_key(user_uid, query, filters)
        cached = self.cache.get(key, now=now)
        if cached is not None:
            return cached

        results: List[SearchResult] = []
        if SearchResultType.MESSAGE in filters.result_types:
            results.extend(self._search_messages(user_uid, query, filters, now))
        if SearchResultType.USER in filters.result_types:
            results.extend(self._search_users(query, now))
        if SearchResultType.TEMPLATE in filters.result_types:
            results.extend(self._search_templates(query, filters, now))
        if SearchResultType.CATEGORY in filters.result_types:
            results.extend(self._search_categories(query, now))

        results = [r for r in results if filters.matches(r)]
        results = sort_results(results, filters.sort_by, filters.sort_order)
        self.cache.put(key, results, now=now)
        self._track(user_uid, query, len(results), filters, now)
        return results

    def clear_cache(self) -> None:
        self.cache.clear()

    def _visible_sifs(self, user_uid: str, filters: SearchFilter) -> List[SIFItem]:
        author_filters = [FieldFilter("authorUid", "==", user_uid)]
        if filters.date_start is not None:
            author_filters.append(FieldFilter("createdDate", ">=", filters.date_start))
        if filters.date_end is not None:
            author_filters.append(FieldFilter("createdDate", "<=", filters.date_end))
        docs = [] if filters.exclude_own_content else self.db.query(
            SIFS_COLLECTION, author_filters
        )
        docs += self.db.query(
            SIFS_COLLECTION, [FieldFilter("recipients", "array_contains", user_uid)]
        )
        seen: set[str] = set()
        sifs = []
        for doc in docs:
            if doc.id in seen:
                continue
            seen.add(doc.id)
            sifs.append(from_document(SIFItem, doc.id, doc.data))
        return sifs

    def _search_messages(
        self, user_uid: str, query: str, filters: SearchFilter, now: float
    ) -> List[SearchResult]:
        q = query.lower()
        results = []
        for sif in self._visible_sifs(user_uid, filters):
            if filters.exclude_own_content and sif.author_uid == user_uid:
                continue
            if filters.author_uids and sif.author_uid not in filters.author_uids:
                continue
            if sif.is_archived and not filters.include_archived:
                continue
            if (
                sif.delivery_status == SIFDeliveryStatus.PENDING
                and sif.author_uid == user_uid
                and not filters.include_drafts
            ):
                continue
            if filters.has_attachments is not None and (
                sif.has_attachments != filters.has_attachments
            ):
                continue
            if filters.is_scheduled is not None and (
                (sif.delivery_status == SIFDeliveryStatus.SCHEDULED)
                != filters.is_scheduled
            ):
                continue
            if q not in f"{sif.subject} {sif.message}".lower():
                continue
            results.append(message_result(sif, message_relevance(sif, query, now)))
        return results

    def _search_users(self, query: str, now: float) -> List[SearchResult]:
        q = query.lower()
        results = []
        for doc in self.db.query(USERS_COLLECTION):
            name = doc.data.get("name")
            email = doc.data.get("email")
            if not name or not email:
                continue
            if q not in f"{name} {email}".lower():
                continue
            uid = doc.data.get("uid") or doc.id
            results.append(
                user_result(uid, name, email, user_relevance(name, email, query), now)
            )
        return results

    def _search_templates(
        self, query: str, filters: SearchFilter, now: float
    ) -> List[SearchResult]:
        q = query.lower()
        results = []
        for template in TEMPLATES:
            if q not in f"{template.name} {template.message}".lower():
                continue
            if (
                filters.template_categories
                and template.category.value not in filters.template_categories
            ):
                continue
            results.append(
                template_result(template, template_relevance(template, query), now)
            )
        return results

    def _search_categories(self, query: str, now: float) -> List[SearchResult]:
        q = query.lower()
        return [
            category_result(category, category_relevance(category.name, query), now)
            for category in MESSAGE_CATEGORIES
            if q in f"{category.name} {category.description}".lower()
        ]

    def _track(
        self,
        user_uid: str,
        query: str,
        result_count: int,
        filters: SearchFilter,
        now: float,
    ) -> None:
        self.history.add_entry(
            user_uid,
            query,
            result_count=result_count,
            result_types=[t.value for t in filters.result_types],
            now=now,
        )
        normalized = _normalize_query(query)
        query_id = text_document_id(normalized)
        self.db.set(
            POPULAR_QUERIES_PATH,
            query_id,
            {"query": normalized, "lastSearched": now},
            merge=True,
        )
        self.db.increment(POPULAR_QUERIES_PATH, query_id, "count")
        logger.info("Search %r by %s returned %d results", query, user_uid, result_count)


def apply_preset(name: str, **overrides) -> SearchFilter:
    if name not in FILTER_PRESETS:
        raise KeyError(name)
    return replace(FILTER_PRESETS[name](), **overrides)
