import random
import tempfile
import unittest
from datetime import date

from fakes import FakeClock, FakeEmbeddingProvider, FakeSession, RecordingTransport, StaticStrategy, make_candidate

from newsrelay.bot import NewsBot
from newsrelay.config import Config
from newsrelay.ingestion.adapter import SourcePolicy
from newsrelay.sources.reddit import DEFAULT_FEED_URL, RedditSource
from web_app import create_app


class TestControlPanel(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.clock = FakeClock()
        self.transport = RecordingTransport()
        self.static = StaticStrategy(batches=[[make_candidate("a1", "Storm hits coast", self.clock)]])
        self.news = StaticStrategy(name="news", policy=SourcePolicy(target_language=None))
        config = Config(
            data_directory=self.tmp.name,
            enabled_endpoints=["static", "news", "reddit"],
            interval_minutes=1.25,
            max_interval_minutes=60.0,
        )
        self.bot = NewsBot(
            config,
            transport=self.transport,
            strategies={"static": self.static, "news": self.news, "reddit": RedditSource()},
            embedding_provider=FakeEmbeddingProvider(),
            session=FakeSession(),
            rng=random.Random(1),
            clock=self.clock,
            today=lambda: date(2025, 6, 15),
        )
        self.bot.initialize()
        self.addCleanup(self.bot.shutdown, 1)
        # Keep scheduled cycles on the static endpoint
        self.bot.get_endpoint("reddit").set_weight(0)
        self.bot.get_endpoint("news").set_weight(0)
        self.client = create_app(self.bot).test_client()

    def post(self, path, payload=None):
        return self.client.post(path, json=payload or {})

    def test_health_and_status(self):
        self.assertEqual(self.client.get("/api/health").get_json(), {"status": "healthy", "running": True})
        status = self.client.get("/api/status").get_json()
        self.assertTrue(status["success"])
        self.assertEqual(set(status["endpoints"]), {"static", "news", "reddit"})
        self.assertEqual(status["scheduler"]["currentIntervalMinutes"], 1.25)

    def test_unknown_route_is_json_404(self):
        response = self.client.get("/api/nope")
        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.get_json()["success"])

    def test_enable_disable_endpoint(self):
        response = self.post("/api/endpoints/static/disable")
        self.assertTrue(response.get_json()["success"])
        self.assertFalse(self.bot.get_endpoint("static").enabled)
        self.post("/api/endpoints/static/enable")
        self.assertTrue(self.bot.get_endpoint("static").enabled)
        self.assertEqual(self.post("/api/endpoints/missing/enable").status_code, 404)

    def test_weight_validation(self):
        self.assertEqual(self.post("/api/endpoints/static/weight", {"weight": -2}).status_code, 400)
        self.assertEqual(self.post("/api/endpoints/static/weight", {"weight": "heavy"}).status_code, 400)
        response = self.post("/api/endpoints/static/weight", {"weight": 4})
        self.assertEqual(response.get_json()["weight"], 4.0)
        self.assertEqual(self.bot.get_endpoint("static").weight, 4.0)

    def test_similarity_controls(self):
        self.assertEqual(self.post("/api/endpoints/news/similarity-threshold", {"threshold": 1.2}).status_code, 400)
        response = self.post("/api/endpoints/news/similarity-threshold", {"threshold": 0.9})
        self.assertEqual(response.get_json()["threshold"], 0.9)
        self.assertEqual(self.bot.get_endpoint("news").similarity.threshold, 0.9)

        self.assertTrue(self.post("/api/endpoints/news/vector-embedding/clear").get_json()["success"])
        self.post("/api/endpoints/news/vector-embedding/disable")
        self.assertIsNone(self.bot.get_endpoint("news").similarity)
        self.assertEqual(self.post("/api/endpoints/news/vector-embedding/clear").status_code, 400)
        self.assertTrue(self.post("/api/endpoints/news/vector-embedding/enable").get_json()["success"])

    def test_reddit_sources(self):
        feeds = self.client.get("/api/reddit/sources").get_json()["sources"]
        self.assertEqual(feeds, [{"author": "any", "jsonUrl": DEFAULT_FEED_URL}])

        url = "https://www.reddit.com/r/worldnews/new.json"
        response = self.post("/api/reddit/sources", {"author": "someone", "jsonUrl": url})
        self.assertIn({"author": "someone", "jsonUrl": url}, response.get_json()["sources"])
        self.assertEqual(self.post("/api/reddit/sources", {"jsonUrl": "not-a-url"}).status_code, 400)

        response = self.client.delete("/api/reddit/sources", json={"jsonUrl": url})
        self.assertTrue(response.get_json()["success"])
        self.assertEqual(self.client.delete("/api/reddit/sources", json={"jsonUrl": url}).status_code, 404)

    def test_banned_keywords(self):
        response = self.post("/api/banned-keywords", {"keyword": "onlyfans"})
        self.assertEqual(response.get_json()["keywords"], ["onlyfans"])
        self.assertFalse(self.post("/api/banned-keywords", {"keyword": "onlyfans"}).get_json()["added"])
        self.assertEqual(self.post("/api/banned-keywords", {}).status_code, 400)
        self.assertTrue(self.client.delete("/api/banned-keywords", json={"keyword": "onlyfans"}).get_json()["success"])
        self.assertEqual(self.client.get("/api/banned-keywords").get_json()["keywords"], [])

    def test_interval(self):
        response = self.post("/api/interval", {"baseMinutes": 5, "maxMinutes": 30})
        self.assertEqual(response.get_json()["interval"]["currentIntervalMinutes"], 5.0)
        self.assertEqual(self.post("/api/interval", {"baseMinutes": 0}).status_code, 400)
        self.assertEqual(self.post("/api/interval", {}).status_code, 400)

    def test_manual_fetch(self):
        body = self.post("/api/fetch").get_json()
        self.assertTrue(body["success"])
        self.assertEqual(body["source"], "static")
        self.assertEqual(body["item"]["id"], "a1")
        self.assertEqual(len(self.transport.sent), 1)

        body = self.post("/api/fetch/static").get_json()
        self.assertEqual(body["message"], "No new updates from static")
        self.assertEqual(self.post("/api/fetch/missing").status_code, 404)

        events = self.client.get("/api/activity?limit=5").get_json()["events"]
        self.assertEqual([e["type"] for e in events], ["fetched", "sent"])

    def test_commands(self):
        self.assertEqual(self.post("/api/commands/ping").get_json()["message"], "Pong!")
        body = self.post("/api/commands/setchannel", {"channelId": "111"}).get_json()
        self.assertTrue(body["success"])
        self.assertEqual(self.transport.channels, ["111"])
        self.assertEqual(self.post("/api/commands/dance").status_code, 404)

    def test_cors_header_for_local_origin(self):
        response = self.client.get("/api/health", headers={"Origin": "http://localhost:3000"})
        self.assertEqual(response.headers.get("Access-Control-Allow-Origin"), "http://localhost:3000")


if __name__ == "__main__":
    unittest.main()
