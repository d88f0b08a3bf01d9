import unittest

from backend.db import InMemoryDbClient, text_document_id
from backend.search import (
    SearchCache,
    SearchFilter,
    SearchResult,
    SearchService,
    apply_preset,
    sort_results,
)
from backend.search_history import SearchHistoryService
from shared.doc_convert import to_document
from shared.firebase_constants import POPULAR_QUERIES_PATH, SIFS_COLLECTION, USERS_COLLECTION
from shared.sif import SIFItem
from shared.types import (
    SearchResultType,
    SearchSortOption,
    SearchSortOrder,
    SIFDeliveryStatus,
)

NOW = 1_700_000_000.0
DAY = 24 * 60 * 60


def _sif(sif_id, author, recipients, subject, message="", **overrides):
    fields = dict(
        id=sif_id,
        author_uid=author,
        recipients=recipients,
        subject=subject,
        message=message,
        created_date=NOW - DAY,
        delivery_status=SIFDeliveryStatus.DELIVERED,
    )
    fields.update(overrides)
    return SIFItem(**fields)


class SearchServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.service = SearchService(self.db)
        for sif in (
            _sif("sent", "alice", ["bob"], "Thank you teacher", "For everything"),
            _sif(
                "draft",
                "alice",
                ["bob"],
                "Thank you draft",
                delivery_status=SIFDeliveryStatus.PENDING,
            ),
            _sif("received", "bob", ["alice"], "Dinner", "thanks for dinner"),
            _sif("archived", "alice", ["bob"], "Old thanks", is_archived=True),
            _sif("hidden", "carol", ["dave"], "thank you"),
        ):
            self.db.set(SIFS_COLLECTION, sif.id, to_document(sif))
        self.messages_only = SearchFilter(result_types=[SearchResultType.MESSAGE])

    def _ids(self, results):
        return {r.id for r in results}

    def test_messages_are_limited_to_visible_sifs(self):
        results = self.service.search("alice", "thank", self.messages_only, now=NOW)
        self.assertEqual(self._ids(results), {"sent", "received"})

    def test_drafts_and_archived_can_be_included(self):
        filters = SearchFilter(
            result_types=[SearchResultType.MESSAGE],
            include_drafts=True,
            include_archived=True,
        )
        results = self.service.search("alice", "thank", filters, now=NOW)
        self.assertEqual(self._ids(results), {"sent", "draft", "received", "archived"})

    def test_exclude_own_content(self):
        filters = SearchFilter(
            result_types=[SearchResultType.MESSAGE], exclude_own_content=True
        )
        results = self.service.search("alice", "thank", filters, now=NOW)
        self.assertEqual(self._ids(results), {"received"})

    def test_subject_matches_rank_first(self):
        results = self.service.search("alice", "thank", self.messages_only, now=NOW)
        self.assertEqual(results[0].id, "sent")
        self.assertEqual(results[0].type, SearchResultType.MESSAGE)
        self.assertEqual(results[0].subtitle, "To bob")
        self.assertEqual(results[0].author_uid, "alice")

    def test_blank_query_returns_nothing(self):
        self.assertEqual(self.service.search("alice", "   ", now=NOW), [])

    def test_users_templates_and_categories(self):
        self.db.set(USERS_COLLECTION, "u1", {"name": "Ada Teacher", "email": "ada@example.com"})
        self.db.set(USERS_COLLECTION, "u2", {"name": "No Email"})

        users = self.service.search(
            "alice", "teacher", SearchFilter(result_types=[SearchResultType.USER]), now=NOW
        )
        self.assertEqual([r.id for r in users], ["u1"])
        self.assertEqual(users[0].subtitle, "ada@example.com")

        templates = self.service.search(
            "alice",
            "teacher",
            SearchFilter(
                result_types=[SearchResultType.TEMPLATE],
                template_categories=["appreciation"],
            ),
            now=NOW,
        )
        self.assertEqual([r.title for r in templates], ["Teacher Appreciation"])

        categories = self.service.search(
            "alice", "birthday", SearchFilter(result_types=[SearchResultType.CATEGORY]), now=NOW
        )
        self.assertEqual([r.id for r in categories], ["Birthday"])
        self.assertEqual(categories[0].score, 5.0)

    def test_results_are_cached_until_cleared(self):
        first = self.service.search("alice", "dinner", self.messages_only, now=NOW)
        self.db.delete(SIFS_COLLECTION, "received")

        cached = self.service.search("alice", "Dinner", self.messages_only, now=NOW + 1)
        self.assertEqual(self._ids(cached), self._ids(first))

        self.service.clear_cache()
        self.assertEqual(
            self.service.search("alice", "dinner", self.messages_only, now=NOW + 2), []
        )

    def test_search_is_tracked(self):
        self.service.search("alice", "Thank", self.messages_only, now=NOW)
        self.service.search("bob", "thank", self.messages_only, now=NOW)

        history = self.service.history.load_history("alice")
        self.assertEqual([e.query for e in history], ["Thank"])
        self.assertEqual(history[0].result_count, 2)
        self.assertEqual(history[0].result_types, ["message"])
        popular = self.db.get(POPULAR_QUERIES_PATH, text_document_id("thank"))
        self.assertEqual(popular["count"], 2)
        self.assertEqual(popular["query"], "thank")

    def test_popular_query_ids_are_safe_document_ids(self):
        for query in (".", "__x__", "a/b"):
            self.service.search("alice", query, self.messages_only, now=NOW)

        docs = self.db.query(POPULAR_QUERIES_PATH)
        self.assertEqual(sorted(d.data["query"] for d in docs), [".", "__x__", "a/b"])
        for doc in docs:
            self.assertRegex(doc.id, r"^[0-9a-f]{40}$")


class SearchFilterTests(unittest.TestCase):
    def test_presets(self):
        recent = SearchFilter.recent_messages(now=NOW)
        self.assertEqual(recent.result_types, [SearchResultType.MESSAGE])
        self.assertEqual(recent.date_start, NOW - 7 * DAY)

        scheduled = apply_preset("scheduled_content", include_archived=True)
        self.assertTrue(scheduled.is_scheduled)
        self.assertTrue(scheduled.include_archived)

        with self.assertRaises(KeyError):
            apply_preset("nope")

    def test_active_filter_count(self):
        self.assertEqual(SearchFilter().active_filter_count, 2)
        filters = SearchFilter(
            include_archived=True,
            include_drafts=True,
            categories=["Birthday"],
            min_impact_score=2.0,
        )
        self.assertEqual(filters.active_filter_count, 2)

    def test_fingerprint_changes_with_filters(self):
        self.assertEqual(SearchFilter().cache_fingerprint(), SearchFilter().cache_fingerprint())
        self.assertNotEqual(
            SearchFilter().cache_fingerprint(),
            SearchFilter(include_drafts=True).cache_fingerprint(),
        )

    def test_matches_category_and_score(self):
        result = SearchResult(
            id="t",
            type=SearchResultType.TEMPLATE,
            title="x",
            score=3.0,
            last_modified=NOW,
            metadata={"category_name": "holiday"},
        )
        self.assertTrue(SearchFilter(categories=["holiday"]).matches(result))
        self.assertFalse(SearchFilter(categories=["school"]).matches(result))
        self.assertFalse(SearchFilter(min_impact_score=4.0).matches(result))
        self.assertFalse(SearchFilter(date_start=NOW + 1).matches(result))


class SortAndCacheTests(unittest.TestCase):
    def _result(self, rid, score, title, modified):
        return SearchResult(
            id=rid, type=SearchResultType.MESSAGE, title=title, score=score, last_modified=modified
        )

    def test_sort_results_and_ascending_inversion(self):
        a = self._result("a", 1.0, "beta", 2.0)
        b = self._result("b", 5.0, "Alpha", 1.0)
        self.assertEqual(
            sort_results([a, b], SearchSortOption.RELEVANCE, SearchSortOrder.DESCENDING), [b, a]
        )
        self.assertEqual(
            sort_results([a, b], SearchSortOption.RELEVANCE, SearchSortOrder.ASCENDING), [a, b]
        )
        self.assertEqual(
            sort_results([a, b], SearchSortOption.TITLE, SearchSortOrder.DESCENDING), [b, a]
        )
        self.assertEqual(
            sort_results([b, a], SearchSortOption.DATE, SearchSortOrder.DESCENDING), [a, b]
        )

    def test_cache_expires_and_evicts_oldest(self):
        cache = SearchCache(max_entries=2, ttl_seconds=10)
        cache.put("a", [], now=0.0)
        cache.put("b", [], now=1.0)
        cache.put("c", [], now=2.0)
        self.assertEqual(len(cache), 2)
        self.assertIsNone(cache.get("a", now=2.0))
        self.assertEqual(cache.get("b", now=5.0), [])
        self.assertIsNone(cache.get("b", now=12.0))


class SearchHistoryServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.history = SearchHistoryService(self.db, max_entries=4)

    def _add(self, *queries):
        for offset, query in enumerate(queries):
            self.history.add_entry("alice", query, result_count=offset, now=NOW + offset)

    def test_history_is_trimmed_to_newest(self):
        self._add("one", "two", "three", "four", "five")
        self.assertEqual(
            [e.query for e in self.history.load_history("alice")],
            ["five", "four", "three", "two"],
        )

    def test_recent_and_popular(self):
        self._add("thanks", "birthday", "thanks")
        self.assertEqual(self.history.recent_searches("alice"), ["thanks", "birthday"])
        self.assertEqual(self.history.popular_searches("alice")[0], "thanks")
        self.assertEqual(self.history.average_result_count("alice"), 1.0)

    def test_suggestions_and_matching(self):
        self._add("thank you", "thanks", "birthday")
        self.assertEqual(self.history.suggestions("alice", "TH"), ["thanks", "thank you"])
        self.assertEqual(self.history.suggestions("alice", "t"), ["birthday", "thanks", "thank you"])
        self.assertEqual(
            [e.query for e in self.history.matching_entries("alice", "day")], ["birthday"]
        )

    def test_remove_and_clear(self):
        entry = self.history.add_entry("alice", "thanks", now=NOW)
        self._add("birthday")
        self.history.remove_entry("alice", entry.id)
        self.assertEqual([e.query for e in self.history.load_history("alice")], ["birthday"])
        self.assertEqual(self.history.clear_history("alice"), 1)
        self.assertEqual(self.history.load_history("alice"), [])
        self.assertEqual(self.history.average_result_count("alice"), 0.0)


if __name__ == "__main__":
    unittest.main()
