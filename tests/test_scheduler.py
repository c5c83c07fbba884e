import asyncio
import os
import sys
import unittest


sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from playshield.scheduler import AsyncioScheduler, SchedulerUnavailable, SimulatedScheduler  # noqa: E402


class SimulatedSchedulerTests(unittest.TestCase):
    def test_timers_fire_in_due_then_scheduling_order(self):
        scheduler = SimulatedScheduler()
        fired = []
        scheduler.call_later(200, lambda: fired.append("b"))
        scheduler.call_later(100, lambda: fired.append("a"))
        scheduler.call_later(200, lambda: fired.append("c"))

        scheduler.advance(199)
        self.assertEqual(fired, ["a"])
        scheduler.advance(1)
        self.assertEqual(fired, ["a", "b", "c"])
        self.assertEqual(scheduler.now_ms(), 200)

    def test_cancelled_timer_never_fires(self):
        scheduler = SimulatedScheduler()
        fired = []
        handle = scheduler.call_later(100, lambda: fired.append("x"))
        handle.cancel()
        scheduler.advance(1000)
        self.assertEqual(fired, [])
        self.assertEqual(scheduler.pending(), 0)

    def test_repeating_timer_until_cancelled(self):
        scheduler = SimulatedScheduler()
        ticks = []
        handle = scheduler.call_every(1000, lambda: ticks.append(scheduler.now_ms()))
        scheduler.advance(3500)
        self.assertEqual(ticks, [1000, 2000, 3000])
        handle.cancel()
        scheduler.advance(5000)
        self.assertEqual(len(ticks), 3)

    def test_callback_sees_its_own_due_time(self):
        scheduler = SimulatedScheduler(start_ms=500)
        seen = []
        scheduler.call_later(250, lambda: seen.append(scheduler.now_ms()))
        scheduler.advance(1000)
        self.assertEqual(seen, [750])
        self.assertEqual(scheduler.now_ms(), 1500)


class AsyncioSchedulerTests(unittest.TestCase):
    def test_call_later_and_cancel_on_loop(self):
        async def scenario():
            scheduler = AsyncioScheduler()
            fired = []
            scheduler.call_later(10, lambda: fired.append("kept"))
            dropped = scheduler.call_later(10, lambda: fired.append("dropped"))
            dropped.cancel()
            ticker = scheduler.call_every(5, lambda: fired.append("tick"))
            await asyncio.sleep(0.05)
            ticker.cancel()
            return fired

        fired = asyncio.run(scenario())
        self.assertIn("kept", fired)
        self.assertNotIn("dropped", fired)
        self.assertIn("tick", fired)

    def test_without_running_loop_arming_fails_clearly(self):
        scheduler = AsyncioScheduler()
        self.assertIsInstance(scheduler.now_ms(), int)
        with self.assertRaises(SchedulerUnavailable):
            scheduler.call_later(10, lambda: None)
        with self.assertRaises(SchedulerUnavailable):
            scheduler.call_every(10, lambda: None)


if __name__ == "__main__":
    unittest.main()
