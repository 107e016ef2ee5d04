import random
import tempfile
import unittest
from collections import Counter
from types import SimpleNamespace

from fakes import FakeClock, RecordingTransport, StaticStrategy, make_candidate

from newsrelay.delivery.gate import ActivityLog, DeliveryGate
from newsrelay.ingestion.adapter import SourceAdapter, SourceState
from newsrelay.ingestion.candidate import FetchBatch
from newsrelay.scheduler import (
    CYCLE_BUSY_MESSAGE,
    CycleState,
    CycleStatus,
    SelectionScheduler,
    select_weighted,
)
from newsrelay.storage.data_store import DataStore
from newsrelay.storage.seen_items import SeenItemStore


def fake_adapter(name, weight, enabled=True):
    return SimpleNamespace(name=name, weight=weight, enabled=enabled)


class TestSelectWeighted(unittest.TestCase):
    def test_respects_weight_ratio(self):
        adapters = [fake_adapter("reddit", 3), fake_adapter("congress", 1)]
        rng = random.Random(1234)
        picks = Counter(select_weighted(adapters, rng).name for _ in range(4000))
        share = picks["reddit"] / 4000
        self.assertGreater(share, 0.70)
        self.assertLess(share, 0.80)

    def test_zero_weight_and_disabled_never_selected(self):
        adapters = [
            fake_adapter("reddit", 0),
            fake_adapter("congress", 5, enabled=False),
            fake_adapter("asteroid", 1),
        ]
        rng = random.Random(7)
        self.assertEqual({select_weighted(adapters, rng).name for _ in range(200)}, {"asteroid"})

    def test_nothing_selectable(self):
        self.assertIsNone(select_weighted([fake_adapter("reddit", 0)], random.Random(1)))
        self.assertIsNone(select_weighted([], random.Random(1)))


class TestCycleState(unittest.TestCase):
    def test_backoff_caps_and_success_resets(self):
        state = CycleState(1.25, 1.25, 2.0, 0.5)
        state.record_empty()
        self.assertEqual(state.current_interval_minutes, 1.75)
        state.record_empty()
        state.record_empty()
        self.assertEqual(state.current_interval_minutes, 2.0)
        state.record_success(100.0)
        self.assertEqual(state.current_interval_minutes, 1.25)
        self.assertEqual(state.last_success_epoch, 100.0)

    def test_set_intervals_validation(self):
        state = CycleState(1.25, 3.0, 60.0, 0.5)
        with self.assertRaises(ValueError):
            state.set_intervals(base=0)
        with self.assertRaises(ValueError):
            state.set_intervals(base=10, maximum=5)
        state.set_intervals(base=2, maximum=30)
        self.assertEqual(state.to_dict()["currentIntervalMinutes"], 2.0)
        self.assertEqual(state.to_dict()["maxIntervalMinutes"], 30.0)


class TestSelectionScheduler(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.data = DataStore(self.tmp.name)
        self.clock = FakeClock()
        self.seen = SeenItemStore(self.data, clock=self.clock)
        self.transport = RecordingTransport()
        self.gate = DeliveryGate(self.transport, ActivityLog(clock=self.clock))
        self.state = CycleState(1.25, 1.25, 2.0, 0.5)

    def tearDown(self):
        self.tmp.cleanup()

    def adapter(self, strategy, weight=1.0):
        adapter = SourceAdapter(strategy, self.seen, self.data, state=SourceState(weight=weight), clock=self.clock)
        adapter.initialize()
        return adapter

    def scheduler(self, *strategies):
        adapters = {s.name: self.adapter(s) for s in strategies}
        return SelectionScheduler(adapters, self.gate, self.state, rng=random.Random(3), clock=self.clock)

    def test_delivers_one_item_and_resets_interval(self):
        self.state.current_interval_minutes = 2.0
        strategy = StaticStrategy(batches=[[
            make_candidate("a1", "Storm hits coast", self.clock),
            make_candidate("a2", "Markets rally", self.clock),
        ]])
        scheduler = self.scheduler(strategy)

        result = scheduler.run_cycle()
        self.assertTrue(result.delivered)
        self.assertEqual(result.message, "Sent update from static")
        self.assertEqual(len(self.transport.sent), 1)
        self.assertEqual(self.state.current_interval_minutes, 1.25)
        self.assertEqual(self.state.last_success_epoch, self.clock.now)
        self.assertEqual(scheduler.status, CycleStatus.SLEEPING)

    def test_empty_cycle_backs_off(self):
        scheduler = self.scheduler(StaticStrategy(batches=[[]]))
        result = scheduler.run_cycle()
        self.assertFalse(result.success)
        self.assertEqual(result.message, "No new updates from static")
        self.assertEqual(result.next_interval_minutes, 1.75)

    def test_failed_delivery_counts_as_empty(self):
        self.transport.accept = False
        scheduler = self.scheduler(StaticStrategy(batches=[[make_candidate("a1", "Storm hits coast", self.clock)]]))
        result = scheduler.run_cycle()
        self.assertFalse(result.delivered)
        self.assertIsNotNone(result.candidate)
        self.assertEqual(self.state.current_interval_minutes, 1.75)

    def test_unexpected_exception_is_an_empty_cycle(self):
        scheduler = self.scheduler(StaticStrategy(batches=[RuntimeError("parser blew up")]))
        with self.assertLogs("newsrelay.scheduler", level="ERROR"):
            result = scheduler.run_cycle()
        self.assertFalse(result.success)
        self.assertEqual(self.state.current_interval_minutes, 1.75)
        self.assertEqual(self.gate.activity.recent(kind="error")[0].source, "static")

    def test_no_enabled_source_leaves_interval(self):
        scheduler = self.scheduler(StaticStrategy(configured=False))
        result = scheduler.run_cycle()
        self.assertEqual(result.message, "No enabled endpoints")
        self.assertEqual(self.state.current_interval_minutes, 1.25)

    def test_manual_fetch_while_cycle_running_is_rejected(self):
        inner = []

        class ReentrantStrategy(StaticStrategy):
            def batches(self, session):
                yield FetchBatch(label="reentry", load=lambda: inner.append(scheduler.try_run_exclusive()) or [])

        scheduler = self.scheduler(ReentrantStrategy())
        self.assertFalse(scheduler.is_busy)
        scheduler.run_cycle()
        self.assertEqual(inner[0].message, CYCLE_BUSY_MESSAGE)
        self.assertFalse(inner[0].success)
        self.assertFalse(scheduler.is_busy)

    def test_named_manual_fetch_keeps_interval(self):
        scheduler = self.scheduler(StaticStrategy(batches=[[]]))
        result = scheduler.try_run_exclusive("static")
        self.assertEqual(result.source, "static")
        self.assertEqual(self.state.current_interval_minutes, 1.25)

    def test_unnamed_manual_fetch_adjusts_interval(self):
        scheduler = self.scheduler(StaticStrategy(batches=[[]]))
        scheduler.try_run_exclusive()
        self.assertEqual(self.state.current_interval_minutes, 1.75)

    def test_manual_fetch_unknown_or_disabled_source(self):
        scheduler = self.scheduler(StaticStrategy(batches=[[]]))
        self.assertEqual(scheduler.try_run_exclusive("nope").message, "Unknown endpoint: nope")
        scheduler.adapters["static"].set_enabled(False)
        self.assertEqual(scheduler.try_run_exclusive("static").message, "Endpoint static is disabled")

    def test_stopped_scheduler_runs_nothing(self):
        strategy = StaticStrategy(batches=[[make_candidate("a1", "Storm hits coast", self.clock)]])
        scheduler = self.scheduler(strategy)
        self.assertTrue(scheduler.stop(timeout=1))
        result = scheduler.run_cycle()
        self.assertFalse(result.success)
        self.assertEqual(strategy.loads, 0)
        self.assertEqual(scheduler.stats()["status"], "stopped")


if __name__ == "__main__":
    unittest.main()
