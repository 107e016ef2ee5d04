import os
import tempfile
import unittest
from types import SimpleNamespace

import schedule

from main import CycleRunner, ProcessLock


class FakeBot:
    def __init__(self, interval=1.25):
        self.current_interval_minutes = interval
        self.cycles = 0

    def run_cycle(self):
        self.cycles += 1
        return SimpleNamespace(success=False)


class TestCycleRunner(unittest.TestCase):
    def test_tick_runs_cycle_and_reschedules_at_current_interval(self):
        bot = FakeBot(interval=1.25)
        runner = CycleRunner(bot, schedule.Scheduler())
        self.assertIs(runner.tick(), schedule.CancelJob)
        self.assertEqual(bot.cycles, 1)
        self.assertEqual(len(runner.scheduler.jobs), 1)
        job = runner.scheduler.jobs[0]
        self.assertEqual(job.interval, 75)
        self.assertEqual(job.unit, "seconds")

    def test_interval_change_applies_to_next_schedule(self):
        bot = FakeBot(interval=1.25)
        runner = CycleRunner(bot, schedule.Scheduler())
        runner.tick()
        bot.current_interval_minutes = 2.0
        runner.scheduler.run_all()
        self.assertEqual(bot.cycles, 2)
        self.assertEqual([job.interval for job in runner.scheduler.jobs], [120])

    def test_no_cycle_after_shutdown_requested(self):
        bot = FakeBot()
        runner = CycleRunner(bot, schedule.Scheduler())
        runner.request_shutdown()
        runner.tick()
        self.assertEqual(bot.cycles, 0)
        self.assertEqual(runner.scheduler.jobs, [])


class TestProcessLock(unittest.TestCase):
    def test_second_lock_is_refused_until_released(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "state", "bot.lock")
            first = ProcessLock(path)
            second = ProcessLock(path)
            self.assertTrue(first.acquire())
            with open(path) as f:
                self.assertEqual(f.read(), str(os.getpid()))
            self.assertFalse(second.acquire())
            first.release()
            self.assertTrue(second.acquire())
            second.release()


if __name__ == "__main__":
    unittest.main()
