"""
Per-user search history stored under users/{uid}/searchHistory.
"""

from __future__ import annotations

import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional

from backend.db import DbClient
from shared import constants
from shared.doc_convert import from_document, to_document
from shared.firebase_constants import SEARCH_HISTORY_COLLECTION, user_subcollection


@dataclass
class SearchHistoryEntry:
    id: str
    user_uid: str
    query: str
    timestamp: float
    result_count: int = 0
    result_types: List[str] = field(default_factory=list)


class SearchHistoryService:
    def __init__(self, db: DbClient, max_entries: int = constants.MAX_SEARCH_HISTORY):
        self.db = db
        self.max_entries = max_entries

    def _collection(self, user_uid: str) -> str:
        return user_subcollection(user_uid, SEARCH_HISTORY_COLLECTION)

    def add_entry(
        self,
        user_uid: str,
        query: str,
        *,
        result_count: int = 0,
        result_types: Optional[List[str]] = None,
        now: Optional[float] = None,
    ) -> SearchHistoryEntry:
        entry = SearchHistoryEntry(
            id=uuid.uuid4().hex,
            user_uid=user_uid,
            query=query,
            timestamp=now if now is not None else time.time(),
            result_count=result_count,
            result_types=list(result_types or []),
        )
        self.db.set(self._collection(user_uid), entry.id, to_document(entry))
        self._trim(user_uid)
        return entry

    def _trim(self, user_uid: str) -> None:
        docs = self.db.query(
            self._collection(user_uid), order_by="timestamp", descending=True
        )
        overflow = docs[self.max_entries :]
        if overflow:
            self.db.batch_delete(self._collection(user_uid), [d.id for d in overflow])

    def load_history(self, user_uid: str) -> List[SearchHistoryEntry]:
        """Most recent entries first."""
        docs = self.db.query(
            self._collection(user_uid),
            order_by="timestamp",
            descending=True,
            limit=self.max_entries,
        )
        return [from_document(SearchHistoryEntry, d.id, d.data) for d in docs]

    def remove_entry(self, user_uid: str, entry_id: str) -> None:
        self.db.delete(self._collection(user_uid), entry_id)

    def clear_history(self, user_uid: str) -> int:
        docs = self.db.query(self._collection(user_uid))
        self.db.batch_delete(self._collection(user_uid), [d.id for d in docs])
        return len(docs)

    def recent_searches(self, user_uid: str) -> List[str]:
        """Distinct queries among the most recent entries, newest first."""
        entries = self.load_history(user_uid)[: constants.RECENT_SEARCHES_LIMIT]
        return list(dict.fromkeys(entry.query for entry in entries))

    def popular_searches(self, user_uid: str) -> List[str]:
        counts = Counter(entry.query for entry in self.load_history(user_uid))
        return [
            query for query, _ in counts.most_common(constants.POPULAR_SEARCHES_LIMIT)
        ]

    def matching_entries(self, user_uid: str, text: str) -> List[SearchHistoryEntry]:
        entries = self.load_history(user_uid)
        if not text:
            return entries
        needle = text.lower()
        return [e for e in entries if needle in e.query.lower()]

    def suggestions(self, user_uid: str, partial: str) -> List[str]:
        """Previous queries starting with `partial`; recent searches when it is too short."""
        if len(partial) < constants.MIN_SUGGESTION_QUERY_LENGTH:
            return self.recent_searches(user_uid)
        prefix = partial.lower()
        matches = [
            e.query
            for e in self.load_history(user_uid)
            if e.query.lower().startswith(prefix)
        ]
        return list(dict.fromkeys(matches))[:5]

    def average_result_count(self, user_uid: str) -> float:
        entries = self.load_history(user_uid)
        if not entries:
            return 0.0
        return sum(e.result_count for e in entries) / len(entries)
