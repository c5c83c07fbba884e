import os
import sys
import unittest


sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from playshield.dom import Window  # noqa: E402
from playshield.interceptor import CAPABILITIES, CapabilityInterceptor, is_guard  # noqa: E402


def _snapshot(host):
    return {name: getattr(host, name) for name in CAPABILITIES}


class _StubbornWindow(Window):
    """Refuses to let confirm be reassigned once locked."""

    locked = False

    def __setattr__(self, name, value):
        if self.locked and name == "confirm":
            raise AttributeError("confirm is read-only")
        super().__setattr__(name, value)


class CapabilityInterceptorTests(unittest.TestCase):
    def setUp(self):
        self.window = Window()
        self.reports = []
        self.interceptor = CapabilityInterceptor(self.window)

    def _report(self, session_id, reason):
        self.reports.append((session_id, reason))

    def test_acquire_installs_guards_and_release_restores_by_reference(self):
        before = _snapshot(self.window)
        self.assertTrue(self.interceptor.acquire(1, self._report))
        for name in ("open", "confirm", "alert", "prompt", "onbeforeunload"):
            self.assertTrue(is_guard(getattr(self.window, name)), name)

        self.assertTrue(self.interceptor.release(1))
        after = _snapshot(self.window)
        for name in CAPABILITIES:
            self.assertIs(after[name], before[name], name)
        self.assertFalse(self.interceptor.active)

    def test_nested_acquire_restores_only_on_last_release(self):
        before = _snapshot(self.window)
        self.interceptor.acquire(1, self._report)
        guarded = _snapshot(self.window)
        self.interceptor.acquire(2, self._report)
        self.assertEqual(self.interceptor.depth, 2)
        self.assertIs(self.window.open, guarded["open"])

        self.interceptor.release(1)
        self.assertEqual(self.interceptor.depth, 1)
        self.assertTrue(is_guard(self.window.open))

        self.interceptor.release(2)
        after = _snapshot(self.window)
        for name in CAPABILITIES:
            self.assertIs(after[name], before[name], name)

    def test_repeat_acquire_by_same_session_needs_matching_releases(self):
        self.interceptor.acquire(7)
        self.assertTrue(self.interceptor.acquire(7))
        self.assertEqual(self.interceptor.depth, 2)
        self.interceptor.release(7)
        self.assertTrue(is_guard(self.window.open))
        self.assertTrue(self.interceptor.holds(7))
        self.interceptor.release(7)
        self.assertFalse(is_guard(self.window.open))
        self.assertEqual(self.interceptor.depth, 0)

    def test_nested_hold_by_same_session_keeps_outer_guarded(self):
        original_open = self.window.open
        with self.interceptor.hold(5, self._report):
            with self.interceptor.hold(5):
                pass
            self.assertTrue(is_guard(self.window.open))
            self.assertEqual(self.interceptor.depth, 1)
            self.window.open("https://ads.example/")
        self.assertIs(self.window.open, original_open)
        self.assertEqual(self.reports, [(5, "popup")])

    def test_leave_handler_assigned_while_guarded_is_suppressed(self):
        self.interceptor.acquire(1, self._report)
        self.window.onbeforeunload = lambda event: "Are you sure you want to leave?"
        self.assertTrue(self.window.navigate("https://elsewhere.example/"))
        self.assertEqual(self.window.leave_warnings, [])
        self.assertEqual(self.reports, [(1, "unload")])

    def test_leave_listener_added_while_guarded_is_suppressed(self):
        def nag(event):
            event.return_value = "Stay for one more episode?"
            event.prevent_default()

        self.interceptor.acquire(1, self._report)
        self.window.add_event_listener("beforeunload", nag, capture=True)
        self.window.navigate("https://elsewhere.example/")
        self.assertEqual(self.window.leave_warnings, [])
        self.assertEqual(self.reports, [(1, "unload")])

    def test_beforeunload_listener_removed_on_restore(self):
        self.interceptor.acquire(1)
        self.assertEqual(self.window.listener_count("beforeunload"), 1)
        self.interceptor.release(1)
        self.assertEqual(self.window.listener_count("beforeunload"), 0)

    def test_release_without_acquire_is_a_no_op(self):
        original = self.window.open
        self.assertFalse(self.interceptor.release(99))
        self.assertIs(self.window.open, original)

    def test_popup_is_suppressed_and_reported(self):
        self.interceptor.acquire(3, self._report)
        self.assertIsNone(self.window.open("https://ads.example/"))
        self.assertEqual(self.window.opened, [])
        self.assertEqual(self.reports, [(3, "popup")])

    def test_reports_go_to_most_recent_holder(self):
        self.interceptor.acquire(1, self._report)
        self.interceptor.acquire(2, self._report)
        self.window.prompt("Enter your card number")
        self.assertEqual(self.reports, [(2, "prompt")])

    def test_confirm_classifier_decides_between_suppress_and_delegate(self):
        self.interceptor.acquire(1, self._report)
        self.assertFalse(self.window.confirm("Update Chrome now?"))
        self.assertTrue(self.window.confirm("Resume where you left off?"))
        self.assertEqual(self.window.dialogs, [("confirm", "Resume where you left off?")])
        self.assertEqual(self.reports, [(1, "dialog")])

    def test_alert_nag_is_dropped_but_plain_alert_delivered(self):
        self.interceptor.acquire(1, self._report)
        self.window.alert("Please disable AdBlock")
        self.window.alert("Subtitles loaded")
        self.assertEqual(self.window.dialogs, [("alert", "Subtitles loaded")])
        self.assertEqual(self.reports, [(1, "dialog")])

    def test_page_leave_warning_is_suppressed(self):
        self.window.onbeforeunload = lambda event: "Sure you want to leave?"
        self.interceptor.acquire(1, self._report)
        self.assertTrue(self.window.navigate("https://elsewhere.example/"))
        self.assertEqual(self.window.leave_warnings, [])
        self.assertEqual(self.reports, [(1, "unload")])

        self.interceptor.release(1)
        self.window.navigate("https://again.example/")
        self.assertEqual(self.window.leave_warnings, ["Sure you want to leave?"])

    def test_two_interceptors_on_one_host_unwind_in_order(self):
        before = _snapshot(self.window)
        outer = self.interceptor
        inner = CapabilityInterceptor(self.window)
        outer.acquire(1)
        inner.acquire(2)
        # Inner guard delegates straight to the page's own confirm.
        self.assertTrue(self.window.confirm("Resume?"))
        self.assertEqual(len(self.window.dialogs), 1)

        inner.release(2)
        self.assertTrue(is_guard(self.window.confirm))
        outer.release(1)
        after = _snapshot(self.window)
        for name in CAPABILITIES:
            self.assertIs(after[name], before[name], name)

    def test_replaced_capability_is_restored_and_noted(self):
        original = self.window.open
        self.interceptor.acquire(1)
        self.window.open = lambda *args: "hijacked"
        self.interceptor.release(1)
        self.assertIs(self.window.open, original)
        self.assertEqual(self.interceptor.drifted, ["open"])

    def test_restore_failure_is_recorded_not_raised(self):
        window = _StubbornWindow()
        interceptor = CapabilityInterceptor(window)
        interceptor.acquire(1)
        window.locked = True
        self.assertTrue(interceptor.release(1))
        self.assertEqual([name for name, _ in interceptor.restore_failures], ["confirm"])
        self.assertFalse(interceptor.active)
        self.assertFalse(is_guard(window.open))

    def test_install_failure_rolls_back_and_degrades(self):
        window = _StubbornWindow()
        window.locked = True
        original_open = window.open
        interceptor = CapabilityInterceptor(window)
        self.assertFalse(interceptor.acquire(1))
        self.assertFalse(interceptor.active)
        self.assertIs(window.open, original_open)

    def test_faulty_report_callback_does_not_break_the_guard(self):
        def explode(session_id, reason):
            raise RuntimeError("boom")

        self.interceptor.acquire(1, explode)
        self.assertIsNone(self.window.open("https://ads.example/"))

    def test_hold_context_releases_on_exit(self):
        with self.interceptor.hold(5, self._report) as acquired:
            self.assertTrue(acquired)
            self.assertTrue(self.interceptor.holds(5))
        self.assertFalse(self.interceptor.active)
        self.assertFalse(is_guard(self.window.prompt))


if __name__ == "__main__":
    unittest.main()
