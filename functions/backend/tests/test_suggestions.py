import unittest
from datetime import datetime, timezone

from backend.db import InMemoryDbClient, text_document_id
from backend.suggestions import (
    POPULAR_SUGGESTIONS,
    SearchSuggestionEngine,
    levenshtein_distance,
)
from shared.firebase_constants import (
    POPULAR_QUERIES_PATH,
    SUGGESTION_ASSOCIATIONS_PATH,
    SUGGESTION_WEIGHTS_PATH,
)

MARCH = datetime(2026, 3, 1, tzinfo=timezone.utc)
DECEMBER = datetime(2026, 12, 10, tzinfo=timezone.utc)


class LevenshteinTests(unittest.TestCase):
    def test_distances(self):
        self.assertEqual(levenshtein_distance("kitten", "sitting"), 3)
        self.assertEqual(levenshtein_distance("", "abc"), 3)
        self.assertEqual(levenshtein_distance("love", "love"), 0)


class SearchSuggestionEngineTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.engine = SearchSuggestionEngine(self.db)

    def test_short_queries_get_nothing(self):
        self.assertEqual(self.engine.get_suggestions("b", now=MARCH), [])
        self.assertEqual(self.engine.get_suggestions("  ", now=MARCH), [])

    def test_empty_query_falls_back_to_popular(self):
        self.assertEqual(self.engine.generate_suggestions(""), POPULAR_SUGGESTIONS)

    def test_prefix_pattern_and_occasion_suggestions(self):
        self.assertEqual(
            self.engine.get_suggestions("Birth", now=MARCH),
            [
                "birthday",
                "birthday wishes for",
                "birthday wishes",
                "birthday party",
                "birthday celebration",
            ],
        )

    def test_fuzzy_match_for_typo(self):
        self.assertEqual(self.engine.get_suggestions("weding", now=MARCH), ["wedding"])

    def test_seasonal_suggestions_depend_on_month(self):
        december = self.engine.get_suggestions("hol", now=DECEMBER)
        self.assertIn("christmas wishes", december)
        self.engine.clear_cache()
        march = self.engine.get_suggestions("hol", now=MARCH)
        self.assertNotIn("christmas wishes", march)
        self.assertIn("holiday", march)

    def test_historical_queries_are_suggested(self):
        self.db.set(POPULAR_QUERIES_PATH, "thanks a lot", {"query": "thanks a lot", "count": 3})
        self.db.set(POPULAR_QUERIES_PATH, "tomorrow", {"query": "tomorrow", "count": 9})

        suggestions = self.engine.get_suggestions("thanks", now=MARCH)

        self.assertEqual(
            suggestions,
            [
                "thanksgiving",
                "thanks a lot",
                "thank you note",
                "appreciation message",
                "gratitude letter",
            ],
        )

    def test_results_are_cached_and_truncated(self):
        engine = SearchSuggestionEngine(self.db, max_suggestions=2)
        first = engine.get_suggestions("birth", now=MARCH)
        self.assertEqual(first, ["birthday", "birthday wishes for"])
        self.assertEqual(len(engine.cache["birth"]), 5)

        self.db.set(POPULAR_QUERIES_PATH, "birthdays", {"query": "birthdays"})
        engine.max_suggestions = 10
        self.assertNotIn("birthdays", engine.get_suggestions("birth", now=MARCH))
        engine.clear_cache()
        self.assertIn("birthdays", engine.get_suggestions("birth", now=MARCH))

    def test_autocomplete_options(self):
        self.assertEqual(
            self.engine.get_autocomplete_options("th"),
            [
                "thank you",
                "thanksgiving",
                "birthday wishes for",
                "thank you message for",
                "sympathy message",
            ],
        )

    def test_smart_suggestions(self):
        suggestions = self.engine.get_smart_suggestions(
            ["birthday party", "Birthday!", "love"], {"category": "Holiday"}
        )
        self.assertEqual(
            suggestions,
            [
                "birthday wishes",
                "birthday party",
                "celebration",
                "love message",
                "romantic",
                "valentine",
                "christmas",
                "new year",
            ],
        )
        self.assertEqual(self.engine.get_smart_suggestions([]), [])

    def test_learning_updates_weights(self):
        self.engine.learn_from_search("thank you", result_count=0, user_selected=True)
        self.assertIsNone(self.db.get(SUGGESTION_WEIGHTS_PATH, text_document_id("thank you")))

        self.engine.learn_from_search("thank you", result_count=3, user_selected=True)
        self.engine.learn_from_selection("thank you", "thx")
        self.engine.learn_from_selection("thank you", "thx")

        weight = self.db.get(SUGGESTION_WEIGHTS_PATH, text_document_id("thank you"))
        self.assertEqual(weight["suggestion"], "thank you")
        self.assertEqual(weight["weight"], 4.0)
        self.assertEqual(weight["useCount"], 3)
        association = self.db.get(SUGGESTION_ASSOCIATIONS_PATH, text_document_id("thx_to_thank you"))
        self.assertEqual(association["count"], 2)
        self.assertEqual(association["selectedSuggestion"], "thank you")

    def test_preload_popular_suggestions(self):
        self.engine.learn_from_selection("get well soon", "sick")
        self.engine.learn_from_search("birthday", result_count=1, user_selected=True)

        popular = self.engine.preload_popular_suggestions()

        self.assertEqual(popular, ["get well soon", "birthday"])
        self.assertEqual(self.engine.cache["birthday"], ["birthday"])


if __name__ == "__main__":
    unittest.main()
