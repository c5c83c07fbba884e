import os
import sys
import unittest


sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from playshield.telemetry import TelemetryCounter  # noqa: E402


class TelemetryCounterTests(unittest.TestCase):
    def test_starts_empty(self):
        snapshot = TelemetryCounter().current()
        self.assertEqual(snapshot.count, 0)
        self.assertIsNone(snapshot.last_reason)

    def test_increment_tracks_count_and_last_reason(self):
        counter = TelemetryCounter()
        counter.increment("popup")
        counter.increment("interaction")
        counter.increment("popup")
        snapshot = counter.current()
        self.assertEqual(snapshot.count, 3)
        self.assertEqual(snapshot.last_reason, "popup")
        self.assertEqual(counter.by_reason(), {"popup": 2, "interaction": 1})

    def test_reset_clears_everything(self):
        counter = TelemetryCounter()
        counter.increment("dialog")
        counter.reset()
        self.assertEqual(counter.current().count, 0)
        self.assertIsNone(counter.current().last_reason)
        self.assertEqual(counter.by_reason(), {})

    def test_blank_reason_is_recorded_as_unknown(self):
        counter = TelemetryCounter()
        counter.increment("")
        self.assertEqual(counter.current().last_reason, "unknown")


if __name__ == "__main__":
    unittest.main()
