from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Optional

from .classifiers import MessageClassifier, default_alert_classifier, default_confirm_classifier
from .utils import audit


# Page-wide capabilities guarded while a shield holds the host.
CAPABILITIES = ("open", "confirm", "alert", "prompt", "onbeforeunload")

REASON_POPUP = "popup"
REASON_DIALOG = "dialog"
REASON_PROMPT = "prompt"
REASON_UNLOAD = "unload"

_ORIGINAL_ATTR = "__playshield_original__"
_MISSING = object()

ReportCallback = Callable[[int, str], None]


def _original_of(value):
    """Follows guard chains back to the page's own function."""
    for _ in range(32):
        inner = getattr(value, _ORIGINAL_ATTR, _MISSING)
        if inner is _MISSING:
            return value
        value = inner
    return value


def is_guard(value) -> bool:
    return getattr(value, _ORIGINAL_ATTR, _MISSING) is not _MISSING


def _preview(message, limit=80):
    text = "" if message is None else str(message).replace("\n", " ")
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return repr(text)


@dataclass
class _Hold:
    report: Optional[ReportCallback]
    count: int = 1


class CapabilityInterceptor:
    """
    Scoped override of a host's global capabilities.

    acquire()/release() are reference counted per session: the first acquire
    captures the originals and installs guards, nested acquires (by the same
    session or another) only join, and the release that brings the total back
    to zero restores every original by reference.

    Hosts that dispatch their own events also get a prepended capture-phase
    `beforeunload` listener, so leave warnings registered after the guards
    went up are swallowed too.
    """

    def __init__(
        self,
        host,
        confirm_classifier: Optional[MessageClassifier] = None,
        alert_classifier: Optional[MessageClassifier] = None,
    ):
        self.host = host
        self.confirm_classifier = confirm_classifier or default_confirm_classifier()
        self.alert_classifier = alert_classifier or default_alert_classifier()
        self._holders: "OrderedDict[int, _Hold]" = OrderedDict()
        self._restore_to = {}
        self._guards = {}
        self._unload_listener = None
        self.restore_failures: list[tuple[str, str]] = []
        self.drifted: list[str] = []

    @property
    def depth(self) -> int:
        return sum(hold.count for hold in self._holders.values())

    @property
    def active(self) -> bool:
        return bool(self._holders)

    def holds(self, session_id) -> bool:
        return session_id in self._holders

    def acquire(self, session_id, report: Optional[ReportCallback] = None) -> bool:
        """Returns False when the guards could not be installed (no protection)."""
        hold = self._holders.get(session_id)
        if hold is not None:
            hold.count += 1
            if report is not None:
                hold.report = report
            audit("CAPABILITIES", f"session={session_id} re-acquired the interceptor (count={hold.count})", "INFO")
            return True

        if not self._holders:
            try:
                self._install()
            except Exception as e:
                audit("CAPABILITIES", f"Guard install failed, shield degraded: {e}", "ERROR")
                self._restore()
                return False
            audit("CAPABILITIES", f"Guards installed: {', '.join(self._guards)}", "INFO")

        self._holders[session_id] = _Hold(report)
        return True

    def release(self, session_id) -> bool:
        hold = self._holders.get(session_id)
        if hold is None:
            return False
        hold.count -= 1
        if hold.count > 0:
            return True
        del self._holders[session_id]
        if not self._holders:
            self._restore()
            audit("CAPABILITIES", f"Originals restored (released by session={session_id})", "INFO")
        return True

    @contextmanager
    def hold(self, session_id, report: Optional[ReportCallback] = None):
        acquired = self.acquire(session_id, report)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(session_id)

    # --- internals ---

    def _install(self):
        for name in CAPABILITIES:
            current = getattr(self.host, name, _MISSING)
            if current is _MISSING:
                continue
            guard = self._build_guard(name, _original_of(current))
            setattr(self.host, name, guard)
            self._restore_to[name] = current
            self._guards[name] = guard

        add_listener = getattr(self.host, "add_event_listener", None)
        if callable(add_listener):
            listener = self._build_unload_listener()
            add_listener("beforeunload", listener, capture=True, prepend=True)
            self._unload_listener = listener

    def _restore(self):
        listener, self._unload_listener = self._unload_listener, None
        if listener is not None:
            try:
                self.host.remove_event_listener("beforeunload", listener, capture=True)
            except Exception as e:
                audit("CAPABILITIES", f"Failed to remove beforeunload listener: {e}", "ERROR")
                self.restore_failures.append(("beforeunload", str(e)))

        for name, original in self._restore_to.items():
            try:
                if getattr(self.host, name, None) is not self._guards.get(name):
                    audit("CAPABILITIES", f"{name} was replaced while guarded; restoring original", "WARNING")
                    self.drifted.append(name)
                setattr(self.host, name, original)
            except Exception as e:
                audit("CAPABILITIES", f"Failed to restore {name}: {e}", "ERROR")
                self.restore_failures.append((name, str(e)))
        self._restore_to = {}
        self._guards = {}

    def _report(self, reason, detail):
        if not self._holders:
            return
        session_id, hold = next(reversed(self._holders.items()))
        report = hold.report
        audit("INTERCEPT", f"session={session_id} {reason}: {detail}", "BLOCKED")
        if report is None:
            return
        try:
            report(session_id, reason)
        except Exception as e:
            audit("INTERCEPT", f"Report callback failed: {e}", "ERROR")

    def _delegate(self, name, original, default, *args, **kwargs):
        if not callable(original):
            return default
        try:
            return original(*args, **kwargs)
        except Exception as e:
            audit("INTERCEPT", f"Original {name} raised: {e}", "WARNING")
            return default

    def _build_guard(self, name, original):
        if name == "open":
            def guard(url=None, *args, **kwargs):
                self._report(REASON_POPUP, f"open({_preview(url)})")
                return None

        elif name == "confirm":
            def guard(message=None, *args, **kwargs):
                if self.confirm_classifier.matches(message):
                    self._report(REASON_DIALOG, f"confirm({_preview(message)})")
                    return False
                return self._delegate(name, original, False, message, *args, **kwargs)

        elif name == "alert":
            def guard(message=None, *args, **kwargs):
                if self.alert_classifier.matches(message):
                    self._report(REASON_DIALOG, f"alert({_preview(message)})")
                    return None
                return self._delegate(name, original, None, message, *args, **kwargs)

        elif name == "prompt":
            def guard(message=None, *args, **kwargs):
                self._report(REASON_PROMPT, f"prompt({_preview(message)})")
                return None

        else:
            def guard(*args, **kwargs):
                self._report(REASON_UNLOAD, "page-leave warning suppressed")
                return None

        guard.__name__ = f"playshield_{name}"
        setattr(guard, _ORIGINAL_ATTR, original)
        return guard

    def _build_unload_listener(self):
        def listener(event):
            try:
                event.return_value = None
                event.stop_immediate_propagation()
            except Exception as e:
                audit("INTERCEPT", f"beforeunload listener fault: {e}", "ERROR")
            self._report(REASON_UNLOAD, "beforeunload event swallowed")

        return listener
