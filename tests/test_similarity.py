import math
import tempfile
import unittest
from unittest import mock

from fakes import FakeClock, FakeEmbeddingProvider, FakeResponse, FakeSession

from newsrelay.config import Config
from newsrelay.similarity.embeddings import (
    OpenAIEmbeddingProvider,
    VoyageEmbeddingProvider,
    cosine_similarity,
    create_embedding_provider,
)
from newsrelay.similarity.index import SimilarityIndex
from newsrelay.storage.data_store import DataStore

HOUR = 60 * 60


def unit_at_angle(cos_value):
    """2-D unit vector whose cosine with [1, 0] is ``cos_value``."""
    return [cos_value, math.sqrt(1.0 - cos_value ** 2)]


class TestCosineSimilarity(unittest.TestCase):
    def test_identical_and_orthogonal(self):
        self.assertAlmostEqual(cosine_similarity([1.0, 2.0], [1.0, 2.0]), 1.0, places=5)
        self.assertAlmostEqual(cosine_similarity([1.0, 0.0], [0.0, 1.0]), 0.0, places=5)

    def test_degenerate_inputs_score_zero(self):
        self.assertEqual(cosine_similarity(None, [1.0]), 0.0)
        self.assertEqual(cosine_similarity([], []), 0.0)
        self.assertEqual(cosine_similarity([1.0, 0.0], [1.0]), 0.0)
        self.assertEqual(cosine_similarity([0.0, 0.0], [1.0, 0.0]), 0.0)


class TestEmbeddingProviders(unittest.TestCase):
    def test_embed_is_cached(self):
        provider = FakeEmbeddingProvider()
        first = provider.embed("hello world")
        second = provider.embed("hello world")
        self.assertEqual(first, second)
        self.assertEqual(len(provider.calls), 1)

    def test_cache_is_bounded_oldest_first(self):
        provider = FakeEmbeddingProvider()
        provider.cache_size = 2
        for text in ("a", "b", "c"):
            provider.embed(text)
        self.assertEqual(provider.cache_len, 2)
        provider.embed("a")
        self.assertEqual(len(provider.calls), 4)

    def test_failures_return_none(self):
        self.assertIsNone(FakeEmbeddingProvider(fail=True).embed("text"))
        self.assertIsNone(FakeEmbeddingProvider(unavailable=True).embed("text"))
        self.assertEqual(FakeEmbeddingProvider(fail=True).embed_batch(["a", "b"]), [None, None])

    def test_embed_batch_only_requests_uncached(self):
        provider = FakeEmbeddingProvider()
        provider.embed("a")
        provider.embed_batch(["a", "b", "c"])
        self.assertEqual(provider.calls[-1], ["b", "c"])

    def test_voyage_posts_documents_and_orders_by_index(self):
        session = FakeSession({
            "voyageai.com": FakeResponse(200, {"data": [
                {"index": 1, "embedding": [0.0, 1.0]},
                {"index": 0, "embedding": [1.0, 0.0]},
            ]}),
        })
        provider = VoyageEmbeddingProvider("vk", session=session)
        self.assertEqual(provider.embed_batch(["x", "y"]), [[1.0, 0.0], [0.0, 1.0]])
        call = session.calls[0]
        self.assertEqual(call["headers"]["Authorization"], "Bearer vk")
        self.assertEqual(call["json"]["input_type"], "document")

    def test_openai_without_key_is_unavailable(self):
        self.assertIsNone(OpenAIEmbeddingProvider("").embed("text"))

    def test_openai_uses_embeddings_api(self):
        item = mock.Mock(index=0, embedding=[0.5, 0.5])
        client = mock.Mock()
        client.embeddings.create.return_value = mock.Mock(data=[item])
        with mock.patch("newsrelay.similarity.embeddings.openai.OpenAI", return_value=client):
            provider = OpenAIEmbeddingProvider("sk-test")
            self.assertEqual(provider.embed("text"), [0.5, 0.5])
        client.embeddings.create.assert_called_once_with(model="text-embedding-3-small", input=["text"])

    def test_factory_prefers_voyage(self):
        self.assertIsInstance(create_embedding_provider(Config(voyage_api_key="v", openai_api_key="o")), VoyageEmbeddingProvider)
        self.assertIsInstance(create_embedding_provider(Config(openai_api_key="o")), OpenAIEmbeddingProvider)
        self.assertIsNone(create_embedding_provider(Config()))
        self.assertIsNone(create_embedding_provider(Config(openai_api_key="o", vector_embedding=False)))


class TestSimilarityIndex(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.data = DataStore(self.tmp.name)
        self.clock = FakeClock()

    def tearDown(self):
        self.tmp.cleanup()

    def make_index(self, provider, **kwargs):
        return SimilarityIndex("thenewsapi", provider, self.data, clock=self.clock, **kwargs)

    def test_near_duplicate_headline_is_rejected(self):
        provider = FakeEmbeddingProvider({
            "Fed raises interest rates": [1.0, 0.0],
            "Federal Reserve increases rates": unit_at_angle(0.90),
        })
        index = self.make_index(provider, threshold=0.85)
        self.assertFalse(index.is_near_duplicate("Fed raises interest rates").is_duplicate)
        index.record("Fed raises interest rates")

        match = index.is_near_duplicate("Federal Reserve increases rates")
        self.assertTrue(match.is_duplicate)
        self.assertAlmostEqual(match.score, 0.90, places=4)
        self.assertEqual(match.matched_text, "Fed raises interest rates")

    def test_below_threshold_is_not_duplicate(self):
        provider = FakeEmbeddingProvider({"a": [1.0, 0.0], "b": unit_at_angle(0.80)})
        index = self.make_index(provider, threshold=0.85)
        index.record("a")
        match = index.is_near_duplicate("b")
        self.assertFalse(match.is_duplicate)
        self.assertEqual(match.matched_text, "a")

    def test_records_of_another_dimension_are_skipped(self):
        provider = FakeEmbeddingProvider({"old": [1.0, 0.0, 0.0], "near": unit_at_angle(0.95), "query": [1.0, 0.0]})
        index = self.make_index(provider, threshold=0.85)
        index.record("old")
        index.record("near")
        match = index.is_near_duplicate("query")
        self.assertTrue(match.is_duplicate)
        self.assertEqual(match.matched_text, "near")

    def test_best_scoring_record_wins(self):
        provider = FakeEmbeddingProvider({
            "query": [1.0, 0.0],
            "close": unit_at_angle(0.95),
            "closer": unit_at_angle(0.99),
            "far": unit_at_angle(0.86),
        })
        index = self.make_index(provider)
        for text in ("close", "closer", "far"):
            index.record(text)
        match = index.is_near_duplicate("query")
        self.assertEqual(match.matched_text, "closer")
        self.assertAlmostEqual(match.score, 0.99, places=4)

    def test_embedding_failure_fails_open(self):
        provider = FakeEmbeddingProvider({"a": [1.0, 0.0]})
        index = self.make_index(provider)
        index.record("a")
        provider.fail = True
        with self.assertLogs("newsrelay.similarity.index", level="WARNING"):
            match = index.is_near_duplicate("something new")
        self.assertFalse(match.is_duplicate)
        self.assertIsNone(match.matched_text)

    def test_threshold_is_clamped(self):
        index = self.make_index(FakeEmbeddingProvider())
        self.assertEqual(index.update_threshold(1.7), 1.0)
        self.assertEqual(index.update_threshold(-0.2), 0.0)

    def test_prune_enforces_size_bound_oldest_first(self):
        index = self.make_index(FakeEmbeddingProvider(), max_history_size=3)
        for i in range(5):
            index.record(f"headline {i}")
            self.clock.advance(1)
        self.assertEqual(len(index), 3)
        self.assertEqual(index.headlines(), ["headline 2", "headline 3", "headline 4"])

    def test_prune_drops_records_past_retention(self):
        index = self.make_index(FakeEmbeddingProvider(), retention_hours=48)
        index.record("old")
        self.clock.advance(47 * HOUR)
        index.record("recent")
        self.clock.advance(2 * HOUR)
        self.assertEqual(index.prune(), 1)
        self.assertEqual(index.headlines(), ["recent"])

    def test_records_persist_and_reload_within_window(self):
        provider = FakeEmbeddingProvider()
        index = self.make_index(provider, retention_hours=48)
        index.record("Storm hits coast")
        self.clock.advance(HOUR)
        index.record("Markets rally | again")

        self.assertIn("Storm hits coast|||", self.data.read_text("thenewsapi_recent_headlines.csv"))

        self.clock.advance(47.5 * HOUR)
        reloaded = self.make_index(FakeEmbeddingProvider(), retention_hours=48)
        self.assertEqual(reloaded.load(), 1)
        self.assertEqual(reloaded.headlines(), ["Markets rally | again"])

    def test_clear_empties_history(self):
        index = self.make_index(FakeEmbeddingProvider())
        index.record("a")
        index.clear()
        self.assertEqual(len(index), 0)
        self.assertEqual(index.stats()["totalHeadlines"], 0)


if __name__ == "__main__":
    unittest.main()
