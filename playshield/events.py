from contextlib import contextmanager
from typing import Callable, Iterable, Optional

from .utils import audit


# pointer-down, pointer-up/click and touch-start, with the legacy mouse alias.
GUARDED_EVENT_TYPES = ("pointerdown", "mousedown", "pointerup", "click", "touchstart")

REASON_INTERACTION = "interaction"


def _ancestry(node):
    ancestors = getattr(node, "ancestors", None)
    if callable(ancestors):
        yield from ancestors()
        return
    while node is not None:
        yield node
        node = getattr(node, "parent", None)


def _has_any_class(node, names) -> bool:
    has_class = getattr(node, "has_class", None)
    if callable(has_class):
        return any(has_class(name) for name in names)
    classes = getattr(node, "classes", None) or ()
    if isinstance(classes, str):
        classes = classes.split()
    return any(name in classes for name in names)


class SafeZone:
    """Host-owned elements whose input always passes through."""

    def __init__(self, classes: Iterable[str] = ()):
        self.classes = tuple(c for c in classes if c)
        self._elements = []

    def designate(self, element):
        if element is None or any(e is element for e in self._elements):
            return
        self._elements.append(element)

    def undesignate(self, element):
        self._elements = [e for e in self._elements if e is not element]

    def __len__(self):
        return len(self._elements)

    def contains(self, target) -> bool:
        for node in _ancestry(target):
            if any(node is e for e in self._elements):
                return True
            if self.classes and _has_any_class(node, self.classes):
                return True
        return False


class InputEventGuard:
    """
    Capture-phase input filter at the document root.

    The listener is prepended so it runs before every other capture listener.
    While the owning session is live, anything landing outside the safe zone
    is swallowed whole: default prevented, propagation stopped.
    """

    def __init__(
        self,
        document,
        safe_zone: SafeZone,
        is_active: Callable[[int], bool],
        report: Optional[Callable[[int, str], None]] = None,
        event_types: Iterable[str] = GUARDED_EVENT_TYPES,
    ):
        self.document = document
        self.safe_zone = safe_zone
        self.event_types = tuple(event_types)
        self._is_active = is_active
        self._report = report
        self._listener = None
        self._session_id = None

    @property
    def installed(self) -> bool:
        return self._listener is not None

    def install(self, session_id) -> bool:
        if self._listener is not None:
            self.uninstall()

        listener = self._build_listener(session_id)
        added = []
        try:
            for event_type in self.event_types:
                self.document.add_event_listener(event_type, listener, capture=True, prepend=True)
                added.append(event_type)
        except Exception as e:
            audit("INPUT_GUARD", f"Listener install failed, input unguarded: {e}", "ERROR")
            for event_type in added:
                self._remove(event_type, listener)
            return False

        self._listener = listener
        self._session_id = session_id
        return True

    def uninstall(self):
        listener = self._listener
        if listener is None:
            return
        for event_type in self.event_types:
            self._remove(event_type, listener)
        self._listener = None
        self._session_id = None

    @contextmanager
    def hold(self, session_id):
        installed = self.install(session_id)
        try:
            yield installed
        finally:
            if installed:
                self.uninstall()

    def _remove(self, event_type, listener):
        try:
            self.document.remove_event_listener(event_type, listener, capture=True)
        except Exception as e:
            audit("INPUT_GUARD", f"Failed to remove {event_type} listener: {e}", "ERROR")

    def _build_listener(self, session_id):
        def listener(event):
            try:
                if not self._is_active(session_id):
                    return
                target = getattr(event, "target", None)
                if self.safe_zone.contains(target):
                    return
                event.prevent_default()
                event.stop_propagation()
                event.stop_immediate_propagation()
                audit("INPUT_GUARD", f"session={session_id} {event.type} on {target!r}", "BLOCKED")
                if self._report is not None:
                    self._report(session_id, REASON_INTERACTION)
            except Exception as e:
                audit("INPUT_GUARD", f"Listener fault: {e}", "ERROR")

        return listener
