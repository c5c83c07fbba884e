import itertools
import uuid
from contextlib import ExitStack
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional

from .classifiers import KeywordClassifier
from .config import ShieldConfig, load_config
from .events import InputEventGuard, SafeZone
from .interceptor import CapabilityInterceptor
from .policy import ProviderPolicy, ResolvedPolicy
from .scheduler import AsyncioScheduler
from .telemetry import TelemetryCounter
from .utils import audit


COUNTDOWN_TICK_MS = 1000
NATIVE_MEDIA_KINDS = ("m3u8", "mp4")


class Phase(str, Enum):
    INIT = "Init"
    PRIMARY_ACTIVE = "PrimaryActive"
    SECONDARY_ACTIVE = "SecondaryActive"
    INACTIVE = "Inactive"


GUARDING_PHASES = (Phase.PRIMARY_ACTIVE, Phase.SECONDARY_ACTIVE)


@dataclass(frozen=True)
class ContentIdentity:
    provider_id: str
    content_id: str = ""
    season: Optional[int] = None
    episode: Optional[int] = None

    @property
    def key(self) -> str:
        if self.season is None and self.episode is None:
            return str(self.content_id)
        return f"{self.content_id}-s{self.season}e{self.episode}"


@dataclass(frozen=True)
class SourceDescriptor:
    provider_id: str
    url: str
    media_kind: str = "iframe"

    @property
    def is_native(self) -> bool:
        return str(self.media_kind).strip().lower() in NATIVE_MEDIA_KINDS


@dataclass
class ShieldSession:
    session_id: int
    content: ContentIdentity
    policy: ResolvedPolicy
    playback_id: str
    started_at_ms: int = 0
    phase: Phase = Phase.INIT
    countdown_seconds: int = 0
    blocked_attempt_count: int = 0
    manual_override: bool = False
    # (ms since start, phase entered)
    transitions: list = field(default_factory=list)


@dataclass(frozen=True)
class ShieldState:
    session_id: Optional[int]
    content_key: str
    provider_id: str
    phase: Phase
    countdown_seconds: int
    blocked_attempt_count: int
    last_reason: Optional[str]
    manual_override: bool
    show_countdown: bool

    @property
    def shield_up(self) -> bool:
        return self.phase in GUARDING_PHASES


# Process-wide so sessions from different controllers sharing one
# interceptor never collide.
_session_ids = itertools.count(1)

StateCallback = Callable[[ShieldState], None]


class ShieldController:
    """
    Phase state machine for one embedded player.

    Every source selection starts a new session: the previous session's
    timers are cancelled and its guards released before anything new is
    armed. Timer and input callbacks carry the session id they were armed
    for and do nothing once that session has been superseded.
    """

    def __init__(
        self,
        window=None,
        document=None,
        scheduler=None,
        *,
        config: Optional[ShieldConfig] = None,
        policy: Optional[ProviderPolicy] = None,
        interceptor: Optional[CapabilityInterceptor] = None,
        environment: Optional[str] = None,
    ):
        self.config = config if config is not None else load_config()
        self.policy = policy or ProviderPolicy.from_config(self.config)
        self.environment = self.config.environment if environment is None else str(environment).strip().lower()
        self.scheduler = scheduler if scheduler is not None else AsyncioScheduler()
        self.counter = TelemetryCounter()
        self.safe_zone = SafeZone(self.config.safe_zone_classes)

        if interceptor is None and window is not None:
            interceptor = CapabilityInterceptor(
                window,
                confirm_classifier=KeywordClassifier(self.config.confirm_keywords, self.config.confirm_exclusions),
                alert_classifier=KeywordClassifier(self.config.alert_keywords, self.config.alert_exclusions),
            )
        self.interceptor = interceptor

        if document is None and window is not None:
            document = getattr(window, "document", None)
        self.input_guard = None
        if document is not None:
            self.input_guard = InputEventGuard(document, self.safe_zone, self._is_guarding, self._on_blocked)

        self._session: Optional[ShieldSession] = None
        self._stack: Optional[ExitStack] = None
        self._subscribers: list[StateCallback] = []

    # --- read-only surface for the presentation layer ---

    @property
    def session(self) -> Optional[ShieldSession]:
        return self._session

    @property
    def phase(self) -> Phase:
        return self._session.phase if self._session else Phase.INIT

    @property
    def countdown_seconds(self) -> int:
        return self._session.countdown_seconds if self._session else 0

    @property
    def blocked_attempt_count(self) -> int:
        return self._session.blocked_attempt_count if self._session else 0

    def state(self) -> ShieldState:
        session = self._session
        snapshot = self.counter.current()
        if session is None:
            return ShieldState(None, "", "", Phase.INIT, 0, 0, None, False, False)
        return ShieldState(
            session_id=session.session_id,
            content_key=session.content.key,
            provider_id=session.policy.provider_id,
            phase=session.phase,
            countdown_seconds=session.countdown_seconds,
            blocked_attempt_count=session.blocked_attempt_count,
            last_reason=snapshot.last_reason,
            manual_override=session.manual_override,
            show_countdown=session.policy.show_countdown,
        )

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def designate(self, element):
        """Marks a host control as part of the safe zone."""
        self.safe_zone.designate(element)

    def undesignate(self, element):
        self.safe_zone.undesignate(element)

    # --- session lifecycle ---

    def on_source_selected(self, source: SourceDescriptor, content: Optional[ContentIdentity] = None):
        if content is None:
            content = ContentIdentity(source.provider_id, source.url)
        return self.create_session(content, source.provider_id, native=source.is_native)

    def create_session(self, content, provider_id=None, *, native=False) -> ShieldSession:
        """Supersedes any current session and raises a fresh shield."""
        if not isinstance(content, ContentIdentity):
            content = ContentIdentity(str(provider_id or ""), str(content))
        if provider_id is None:
            provider_id = content.provider_id

        self._teardown()

        policy = self.policy.resolve(provider_id, self.environment)
        if native:
            # Native media has no embedded page; the shield lowers on the next turn.
            policy = replace(policy, primary_duration_ms=0, secondary_duration_ms=0)
        session = ShieldSession(
            session_id=next(_session_ids),
            content=content,
            policy=policy,
            playback_id=str(uuid.uuid4()),
            started_at_ms=self.scheduler.now_ms(),
        )
        self._session = session
        self.counter.reset()

        try:
            protected = self._arm(session)
        except Exception as e:
            audit("SHIELD", f"session={session.session_id} setup failed: {e}", "ERROR")
            protected = False

        if session.phase is Phase.INIT:
            session.countdown_seconds = policy.countdown_seconds
            self._transition(session, Phase.PRIMARY_ACTIVE)
        audit(
            "SHIELD",
            (
                f"session={session.session_id} playback={session.playback_id} "
                f"content={content.key} provider={policy.provider_id} "
                f"primary={policy.primary_duration_ms}ms secondary={policy.secondary_duration_ms}ms"
                f"{' (default policy)' if policy.fallback else ''}"
            ),
            "INFO",
        )
        if not protected:
            self._lower(session, "degraded, no protection")
        return session

    def manual_override(self):
        """User lowered the shield. Safe to call any number of times."""
        session = self._session
        if session is None or session.phase not in GUARDING_PHASES:
            return
        session.manual_override = True
        self._lower(session, "manual override")

    def close(self):
        """Host view unmounted."""
        self._teardown()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # --- internals ---

    def _arm(self, session) -> bool:
        sid = session.session_id
        policy = session.policy
        stack = ExitStack()
        self._stack = stack
        protected = True

        if self.interceptor is not None:
            protected &= stack.enter_context(self.interceptor.hold(sid, self._on_blocked))
        if self.input_guard is not None:
            protected &= stack.enter_context(self.input_guard.hold(sid))

        primary = self.scheduler.call_later(policy.primary_duration_ms, lambda: self._on_primary_elapsed(sid))
        stack.callback(primary.cancel)
        secondary = self.scheduler.call_later(policy.total_duration_ms, lambda: self._on_secondary_elapsed(sid))
        stack.callback(secondary.cancel)
        tick = self.scheduler.call_every(COUNTDOWN_TICK_MS, lambda: self._on_tick(sid))
        stack.callback(tick.cancel)
        return bool(protected)

    def _live(self, session_id) -> Optional[ShieldSession]:
        session = self._session
        if session is None or session.session_id != session_id:
            return None
        return session

    def _is_guarding(self, session_id) -> bool:
        session = self._live(session_id)
        return session is not None and session.phase in GUARDING_PHASES

    def _on_primary_elapsed(self, session_id):
        session = self._live(session_id)
        if session is None or session.phase is not Phase.PRIMARY_ACTIVE:
            return
        if session.policy.secondary_duration_ms > 0:
            self._transition(session, Phase.SECONDARY_ACTIVE)
        else:
            self._lower(session, "expired")

    def _on_secondary_elapsed(self, session_id):
        session = self._live(session_id)
        if session is None or session.phase not in GUARDING_PHASES:
            return
        self._lower(session, "expired")

    def _on_tick(self, session_id):
        session = self._live(session_id)
        if session is None or session.phase is Phase.INACTIVE:
            return
        if session.countdown_seconds > 0:
            session.countdown_seconds -= 1
            self._notify()

    def _on_blocked(self, session_id, reason):
        session = self._live(session_id)
        if session is None:
            audit("SHIELD", f"Ignoring {reason} report from stale session={session_id}", "INFO")
            return
        session.blocked_attempt_count += 1
        self.counter.increment(reason)
        self._notify()

    def _transition(self, session, phase):
        previous = session.phase
        session.phase = phase
        session.transitions.append((self.scheduler.now_ms() - session.started_at_ms, phase))
        audit("PHASE", f"session={session.session_id} {session.content.key}: {previous.value} -> {phase.value}", "INFO")
        self._notify()

    def _lower(self, session, why):
        if session.phase is Phase.INACTIVE:
            return
        session.countdown_seconds = 0
        self._release()
        audit("SHIELD", f"session={session.session_id} lowered ({why}), blocked={session.blocked_attempt_count}", "INFO")
        self._transition(session, Phase.INACTIVE)

    def _release(self):
        stack, self._stack = self._stack, None
        if stack is None:
            return
        try:
            stack.close()
        except Exception as e:
            audit("SHIELD", f"Release fault (guards treated as released): {e}", "ERROR")

    def _teardown(self):
        session = self._session
        self._release()
        if session is not None and session.phase is not Phase.INACTIVE:
            audit("SHIELD", f"session={session.session_id} torn down in {session.phase.value}", "INFO")
            session.countdown_seconds = 0
            self._transition(session, Phase.INACTIVE)

    def _notify(self):
        if not self._subscribers:
            return
        state = self.state()
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception as e:
                audit("SHIELD", f"State subscriber failed: {e}", "ERROR")
