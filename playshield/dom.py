"""
Headless page model.

Just enough of a browser window and document for the shield to act on:
a capability host (Window) with the global dialog/popup functions, and a
Document with capture/bubble listener dispatch. Used by the tests and the
`playshield-policy simulate` command; real hosts pass their own objects with
the same attribute and method names.
"""

from collections import defaultdict
from typing import Callable, Iterable, Optional


class Element:
    def __init__(self, tag="div", classes: Iterable[str] = (), element_id=None, parent=None):
        self.tag = tag
        self.classes = set(classes)
        self.id = element_id
        self.parent: Optional["Element"] = None
        self.children: list["Element"] = []
        self._handlers = defaultdict(list)
        if parent is not None:
            parent.append(self)

    def append(self, child: "Element") -> "Element":
        child.parent = self
        self.children.append(child)
        return child

    def has_class(self, name) -> bool:
        return name in self.classes

    def ancestors(self):
        node = self
        while node is not None:
            yield node
            node = node.parent

    def on(self, event_type, handler: Callable[["Event"], None]):
        self._handlers[event_type].append(handler)

    def _run_handlers(self, event):
        for handler in list(self._handlers.get(event.type, ())):
            handler(event)
            if event.immediate_propagation_stopped:
                return

    def __repr__(self):
        label = f"#{self.id}" if self.id else ""
        if self.classes:
            label += "." + ".".join(sorted(self.classes))
        return f"<{self.tag}{label}>"


class Event:
    def __init__(self, event_type, target: Optional[Element] = None):
        self.type = event_type
        self.target = target
        self.default_prevented = False
        self.propagation_stopped = False
        self.immediate_propagation_stopped = False
        self.return_value = None

    def prevent_default(self):
        self.default_prevented = True

    def stop_propagation(self):
        self.propagation_stopped = True

    def stop_immediate_propagation(self):
        self.propagation_stopped = True
        self.immediate_propagation_stopped = True


class Document:
    def __init__(self):
        self.body = Element("body")
        self._capture = defaultdict(list)
        self._bubble = defaultdict(list)

    def create_element(self, tag="div", classes=(), element_id=None, parent=None) -> Element:
        return Element(tag, classes=classes, element_id=element_id, parent=parent or self.body)

    def add_event_listener(self, event_type, listener, capture=False, prepend=False):
        bucket = self._capture[event_type] if capture else self._bubble[event_type]
        if listener in bucket:
            return
        if prepend:
            bucket.insert(0, listener)
        else:
            bucket.append(listener)

    def remove_event_listener(self, event_type, listener, capture=False):
        bucket = self._capture[event_type] if capture else self._bubble[event_type]
        if listener in bucket:
            bucket.remove(listener)

    def listener_count(self, event_type, capture=True) -> int:
        bucket = self._capture if capture else self._bubble
        return len(bucket.get(event_type, ()))

    def _run_listeners(self, listeners, event):
        for listener in list(listeners):
            listener(event)
            if event.immediate_propagation_stopped:
                return

    def dispatch_event(self, event: Event) -> bool:
        """Capture at the document, then target and bubble. Returns False if default was prevented."""
        self._run_listeners(self._capture.get(event.type, ()), event)
        if not event.propagation_stopped and event.target is not None:
            for node in event.target.ancestors():
                node._run_handlers(event)
                if event.propagation_stopped:
                    break
        if not event.propagation_stopped:
            self._run_listeners(self._bubble.get(event.type, ()), event)
        return not event.default_prevented

    def click(self, target: Element) -> Event:
        event = Event("click", target)
        self.dispatch_event(event)
        return event


class Window:
    """
    Capability host. Records what the page would have shown so tests and
    simulations can tell a suppressed dialog from a delivered one.

    Window events run capture listeners, then the `on<type>` handler, then
    bubble listeners; stop_immediate_propagation() ends the run.
    """

    def __init__(self, document: Optional[Document] = None):
        self.document = document or Document()
        self.location = "about:blank"
        self.opened = []
        self.dialogs = []
        self.leave_warnings = []
        self.confirm_answer = True
        self.prompt_answer = None
        self.leave_answer = True
        self.onbeforeunload = None
        self._capture = defaultdict(list)
        self._bubble = defaultdict(list)
        # Globals live on the instance, like properties of a browser window.
        self.open = self._open
        self.confirm = self._confirm
        self.alert = self._alert
        self.prompt = self._prompt

    def _open(self, url=None, target=None, features=None):
        self.opened.append(url)
        return Window()

    def _confirm(self, message=None):
        self.dialogs.append(("confirm", message))
        return self.confirm_answer

    def _alert(self, message=None):
        self.dialogs.append(("alert", message))

    def _prompt(self, message=None, default=None):
        self.dialogs.append(("prompt", message))
        return self.prompt_answer if self.prompt_answer is not None else default

    def add_event_listener(self, event_type, listener, capture=False, prepend=False):
        bucket = self._capture[event_type] if capture else self._bubble[event_type]
        if listener in bucket:
            return
        if prepend:
            bucket.insert(0, listener)
        else:
            bucket.append(listener)

    def remove_event_listener(self, event_type, listener, capture=False):
        bucket = self._capture[event_type] if capture else self._bubble[event_type]
        if listener in bucket:
            bucket.remove(listener)

    def listener_count(self, event_type, capture=True) -> int:
        bucket = self._capture if capture else self._bubble
        return len(bucket.get(event_type, ()))

    def dispatch_event(self, event: Event):
        """Returns whatever the `on<type>` handler returned, if it ran."""
        result = None
        for listener in list(self._capture.get(event.type, ())):
            listener(event)
            if event.immediate_propagation_stopped:
                return result
        handler = getattr(self, f"on{event.type}", None)
        if callable(handler):
            result = handler(event)
        for listener in list(self._bubble.get(event.type, ())):
            if event.immediate_propagation_stopped:
                break
            listener(event)
        return result

    def navigate(self, url) -> bool:
        """Leaves the page unless a beforeunload handler asks and the user stays."""
        event = Event("beforeunload")
        message = self.dispatch_event(event)
        if message is None:
            message = event.return_value
        if message is not None or event.default_prevented:
            self.leave_warnings.append(message)
            if not self.leave_answer:
                return False
        self.location = url
        return True
