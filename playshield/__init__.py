from .classifiers import KeywordClassifier
from .config import ConfigError, ShieldConfig, load_config
from .controller import ContentIdentity, Phase, ShieldController, ShieldSession, ShieldState, SourceDescriptor
from .events import InputEventGuard, SafeZone
from .interceptor import CapabilityInterceptor
from .policy import ProviderPolicy, ProviderPolicyEntry, ResolvedPolicy, resolve
from .scheduler import AsyncioScheduler, SchedulerUnavailable, SimulatedScheduler
from .telemetry import TelemetryCounter, TelemetrySnapshot

__all__ = [
    "AsyncioScheduler",
    "CapabilityInterceptor",
    "ConfigError",
    "ContentIdentity",
    "InputEventGuard",
    "KeywordClassifier",
    "Phase",
    "ProviderPolicy",
    "ProviderPolicyEntry",
    "ResolvedPolicy",
    "SafeZone",
    "SchedulerUnavailable",
    "ShieldConfig",
    "ShieldController",
    "ShieldSession",
    "ShieldState",
    "SimulatedScheduler",
    "SourceDescriptor",
    "TelemetryCounter",
    "TelemetrySnapshot",
    "load_config",
    "resolve",
]
