import tempfile
import unittest
from datetime import date

from newsrelay.ingestion.quota import DailyRequestQuota
from newsrelay.storage.data_store import DataStore


class FakeToday:
    def __init__(self, day: date):
        self.day = day

    def __call__(self) -> date:
        return self.day


class TestDailyRequestQuota(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.data = DataStore(self.tmp.name)
        self.today = FakeToday(date(2025, 6, 1))

    def tearDown(self):
        self.tmp.cleanup()

    def make_quota(self, limit=3):
        quota = DailyRequestQuota("marketaux", limit, self.data, today=self.today)
        quota.load()
        return quota

    def test_limit_is_enforced(self):
        quota = self.make_quota(limit=2)
        self.assertTrue(quota.can_request())
        quota.record_request()
        quota.record_request()
        self.assertFalse(quota.can_request())
        self.assertEqual(quota.remaining(), 0)

    def test_count_persists_across_restart_same_day(self):
        quota = self.make_quota()
        quota.record_request()
        quota.record_request()
        self.assertEqual(self.data.read_text("marketaux_request_count.csv").splitlines()[-1], "2025-06-01,2")

        restarted = self.make_quota()
        self.assertEqual(restarted.count, 2)

    def test_restart_on_new_day_resets(self):
        quota = self.make_quota()
        quota.record_request()
        self.today.day = date(2025, 6, 2)
        restarted = self.make_quota()
        self.assertEqual(restarted.count, 0)

    def test_rolls_over_at_midnight_while_running(self):
        quota = self.make_quota(limit=1)
        quota.record_request()
        self.assertFalse(quota.can_request())

        self.today.day = date(2025, 6, 2)
        self.assertTrue(quota.can_request())
        self.assertEqual(quota.stats(), {
            "date": "2025-06-02",
            "requestsToday": 0,
            "dailyLimit": 1,
            "remaining": 1,
        })


if __name__ == "__main__":
    unittest.main()
