"""
Query suggestions and autocomplete for search.

Suggestions combine a fixed vocabulary of occasions, phrase patterns,
edit-distance matches, popular past queries from analytics and seasonal
hints; learned weights and query-to-suggestion associations are written back
to analytics.
"""

from __future__ import annotations

import logging
import re
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from backend.db import DbClient, FieldFilter, text_document_id
from shared import constants
from shared.firebase_constants import (
    POPULAR_QUERIES_PATH,
    SUGGESTION_ASSOCIATIONS_PATH,
    SUGGESTION_WEIGHTS_PATH,
)

logger = logging.getLogger(__name__)

COMMON_SEARCH_TERMS = [
    "birthday",
    "thank you",
    "congratulations",
    "get well",
    "love",
    "anniversary",
    "graduation",
    "wedding",
    "baby",
    "sympathy",
    "holiday",
    "christmas",
    "new year",
    "valentine",
    "mother's day",
    "father's day",
    "thanksgiving",
    "friendship",
    "support",
    "motivation",
]

SEARCH_PATTERNS = [
    "birthday wishes for",
    "thank you message for",
    "congratulations on",
    "get well soon",
    "happy anniversary",
    "wedding congratulations",
    "new baby wishes",
    "sympathy message",
    "holiday greetings",
    "motivational quotes",
]

POPULAR_SUGGESTIONS = [
    "birthday wishes",
    "thank you",
    "congratulations",
    "get well soon",
    "anniversary",
    "graduation",
    "holiday greetings",
    "sympathy",
]

# (month, query fragments, suggestions)
SEASONAL_SUGGESTIONS = [
    (12, ("hol", "chr"), ["christmas wishes", "holiday greetings", "new year messages"]),
    (2, ("val", "lov"), ["valentine's day", "love messages", "romantic wishes"]),
    (5, ("moth",), ["mother's day wishes", "mom appreciation"]),
    (6, ("fath", "dad"), ["father's day wishes", "dad appreciation"]),
]

# First matching keyword wins.
OCCASION_SUGGESTIONS = [
    ("birth", ["birthday wishes", "birthday party", "birthday celebration"]),
    ("thank", ["thank you note", "appreciation message", "gratitude letter"]),
    ("congrat", ["congratulations message", "achievement recognition", "success celebration"]),
    ("grad", ["graduation wishes", "graduation congratulations", "academic achievement"]),
    ("wedd", ["wedding wishes", "marriage congratulations", "wedding celebration"]),
]

RELATED_TERMS: Dict[str, List[str]] = {
    "birthday": ["birthday wishes", "birthday party", "celebration"],
    "thank": ["thank you", "gratitude", "appreciation"],
    "love": ["love message", "romantic", "valentine"],
    "congratulations": ["achievement", "success", "graduation"],
    "holiday": ["christmas", "new year", "thanksgiving"],
    "wedding": ["marriage", "anniversary", "celebration"],
    "baby": ["newborn", "birth announcement", "congratulations"],
}

CATEGORY_SUGGESTIONS: Dict[str, List[str]] = {
    "celebrations": ["birthday", "anniversary", "graduation", "wedding"],
    "gratitude": ["thank you", "appreciation", "recognition"],
    "sympathy": ["condolences", "sympathy", "support"],
    "love": ["romantic", "valentine", "love message"],
    "holiday": ["christmas", "new year", "thanksgiving", "holiday greetings"],
}

_WORD_SPLIT = re.compile(r"[\W_]+")


def _unique(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))


def levenshtein_distance(lhs: str, rhs: str) -> int:
    if not lhs:
        return len(rhs)
    if not rhs:
        return len(lhs)
    previous = list(range(len(rhs) + 1))
    for i, left in enumerate(lhs, start=1):
        current = [i]
        for j, right in enumerate(rhs, start=1):
            cost = 0 if left == right else 1
            current.append(
                min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost)
            )
        previous = current
    return previous[-1]


class SearchSuggestionEngine:
    def __init__(self, db: DbClient, max_suggestions: int = constants.MAX_SUGGESTIONS):
        self.db = db
        self.max_suggestions = max_suggestions
        self.cache: Dict[str, List[str]] = {}

    def get_suggestions(self, query: str, now: Optional[datetime] = None) -> List[str]:
        if len(query.strip()) < constants.MIN_SUGGESTION_QUERY_LENGTH:
            return []
        return self.generate_suggestions(query, now=now)

    def generate_suggestions(self, query: str, now: Optional[datetime] = None) -> List[str]:
        trimmed = query.strip().lower()
        if not trimmed:
            return list(POPULAR_SUGGESTIONS)
        if trimmed in self.cache:
            return self.cache[trimmed][: self.max_suggestions]
        suggestions = self._build(trimmed, now or datetime.now(timezone.utc))
        self.cache[trimmed] = suggestions
        return suggestions[: self.max_suggestions]

    def _build(self, query: str, now: datetime) -> List[str]:
        suggestions: List[str] = []
        suggestions += [t for t in COMMON_SEARCH_TERMS if t.lower() == query]
        suggestions += [
            t
            for t in COMMON_SEARCH_TERMS
            if t.lower().startswith(query) and t.lower() != query
        ]
        suggestions += [p for p in SEARCH_PATTERNS if query in p.lower()]
        suggestions += self._fuzzy_matches(query)
        suggestions += self._historical_suggestions(query)
        suggestions += self._contextual_suggestions(query, now)
        return _unique(suggestions)

    def _fuzzy_matches(self, query: str) -> List[str]:
        matches = []
        for term in COMMON_SEARCH_TERMS:
            distance = levenshtein_distance(query, term.lower())
            if 0 < distance <= 2 and abs(len(query) - len(term)) <= 3:
                matches.append(term)
        return matches

    def _historical_suggestions(self, query: str) -> List[str]:
        docs = self.db.query(
            POPULAR_QUERIES_PATH,
            [
                FieldFilter("query", ">=", query),
                FieldFilter("query", "<", query + "\uf8ff"),
            ],
            order_by="query",
            limit=5,
        )
        return [d.data["query"] for d in docs if d.data.get("query")]

    def _contextual_suggestions(self, query: str, now: datetime) -> List[str]:
        contextual: List[str] = []
        for month, fragments, suggestions in SEASONAL_SUGGESTIONS:
            if now.month == month and any(f in query for f in fragments):
                contextual += suggestions
        for keyword, suggestions in OCCASION_SUGGESTIONS:
            if keyword in query:
                contextual += suggestions
                break
        return contextual

    def get_autocomplete_options(self, partial: str) -> List[str]:
        query = partial.lower()
        options = [
            t
            for t in COMMON_SEARCH_TERMS
            if t.lower().startswith(query) and t.lower() != query
        ]
        options += [p for p in SEARCH_PATTERNS if query in p.lower()]
        return _unique(options)[:5]

    def get_smart_suggestions(
        self, user_history: List[str], context: Optional[dict] = None
    ) -> List[str]:
        terms = [
            word
            for entry in user_history
            for word in _WORD_SPLIT.split(entry.lower())
            if word
        ]
        suggestions: List[str] = []
        for term, _ in Counter(terms).most_common(5):
            suggestions += RELATED_TERMS.get(term, [])
        category = (context or {}).get("category")
        if isinstance(category, str):
            suggestions += CATEGORY_SUGGESTIONS.get(category.lower(), [])
        return _unique(suggestions)[: self.max_suggestions]

    # --- Learning ------------------------------------------------------

    def learn_from_search(self, query: str, result_count: int, user_selected: bool) -> None:
        if result_count > 0 and user_selected:
            self._update_weight(query, 1.0)

    def learn_from_selection(self, selected: str, original_query: str) -> None:
        self._update_weight(selected, 1.5)
        association_id = text_document_id(f"{original_query}_to_{selected}")
        self.db.set(
            SUGGESTION_ASSOCIATIONS_PATH,
            association_id,
            {
                "originalQuery": original_query,
                "selectedSuggestion": selected,
                "timestamp": time.time(),
            },
            merge=True,
        )
        self.db.increment(SUGGESTION_ASSOCIATIONS_PATH, association_id, "count")

    def _update_weight(self, suggestion: str, weight: float) -> None:
        doc_id = text_document_id(suggestion)
        self.db.set(
            SUGGESTION_WEIGHTS_PATH,
            doc_id,
            {"suggestion": suggestion, "lastUsed": time.time()},
            merge=True,
        )
        self.db.increment(SUGGESTION_WEIGHTS_PATH, doc_id, "weight", weight)
        self.db.increment(SUGGESTION_WEIGHTS_PATH, doc_id, "useCount")

    def preload_popular_suggestions(self) -> List[str]:
        docs = self.db.query(
            SUGGESTION_WEIGHTS_PATH, order_by="weight", descending=True, limit=20
        )
        popular = [d.data["suggestion"] for d in docs if d.data.get("suggestion")]
        for suggestion in popular:
            self.cache.setdefault(suggestion.lower(), [suggestion])
        logger.info("Preloaded %d popular suggestions", len(popular))
        return popular

    def clear_cache(self) -> None:
        self.cache.clear()
