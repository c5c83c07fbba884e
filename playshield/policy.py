import math
import re
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from .utils import audit


DEFAULT_PROVIDER_ID = "default"


@dataclass(frozen=True)
class ProviderPolicyEntry:
    provider_id: str
    primary_duration_ms: int
    secondary_duration_ms: int
    environment_adjustments_ms: Mapping[str, int] = field(default_factory=dict)
    show_countdown: bool = True

    def adjustment_for(self, environment) -> int:
        env = str(environment or "").strip().lower()
        if not env:
            return 0
        return max(0, int(self.environment_adjustments_ms.get(env, 0)))


@dataclass(frozen=True)
class ResolvedPolicy:
    provider_id: str
    primary_duration_ms: int
    secondary_duration_ms: int
    show_countdown: bool = True
    environment: str = ""
    fallback: bool = False

    @property
    def total_duration_ms(self) -> int:
        return self.primary_duration_ms + self.secondary_duration_ms

    @property
    def countdown_seconds(self) -> int:
        return int(math.ceil(self.primary_duration_ms / 1000.0))


DEFAULT_ENTRY = ProviderPolicyEntry(
    provider_id=DEFAULT_PROVIDER_ID,
    primary_duration_ms=15000,
    secondary_duration_ms=8000,
    environment_adjustments_ms={"firefox": 2000},
)

# Known embed hosts. VidSrc.CC runs unsandboxed and fires its popup on the first
# click anywhere, so it gets the invisible secondary-only shield.
BUILTIN_ENTRIES = (
    DEFAULT_ENTRY,
    ProviderPolicyEntry("vidking", 2000, 0),
    ProviderPolicyEntry(
        "vidsrccc",
        0,
        15000,
        environment_adjustments_ms={"firefox": 3000},
        show_countdown=False,
    ),
    ProviderPolicyEntry("rive", 15000, 8000, environment_adjustments_ms={"firefox": 2000}),
)


def normalize_provider_id(provider_id) -> str:
    """'VidSrc.CC' -> 'vidsrccc'."""
    return re.sub(r"[^a-z0-9]", "", str(provider_id or "").lower())


def _non_negative_ms(value, fallback):
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return fallback


def _entry_from_mapping(provider_id, raw, base: ProviderPolicyEntry) -> ProviderPolicyEntry:
    adjustments = dict(base.environment_adjustments_ms)
    raw_adjustments = raw.get("environment_adjustments_ms")
    if isinstance(raw_adjustments, dict):
        for env, value in raw_adjustments.items():
            adjustments[str(env).strip().lower()] = _non_negative_ms(value, 0)
    return replace(
        base,
        provider_id=provider_id,
        primary_duration_ms=_non_negative_ms(raw.get("primary_duration_ms"), base.primary_duration_ms),
        secondary_duration_ms=_non_negative_ms(raw.get("secondary_duration_ms"), base.secondary_duration_ms),
        environment_adjustments_ms=adjustments,
        show_countdown=bool(raw.get("show_countdown", base.show_countdown)),
    )


class ProviderPolicy:
    """Lookup table from provider identity to shield timings."""

    def __init__(self, entries=BUILTIN_ENTRIES, overrides: Optional[Mapping] = None, environment=""):
        table = {}
        for entry in entries:
            table[normalize_provider_id(entry.provider_id)] = entry
        if DEFAULT_PROVIDER_ID not in table:
            table[DEFAULT_PROVIDER_ID] = DEFAULT_ENTRY

        for provider_id, raw in (overrides or {}).items():
            key = normalize_provider_id(provider_id)
            if not key or not isinstance(raw, Mapping):
                audit("POLICY", f"Ignoring malformed provider override: {provider_id!r}", "WARNING")
                continue
            base = table.get(key, table[DEFAULT_PROVIDER_ID])
            table[key] = _entry_from_mapping(key, raw, base)

        self._table = table
        self.environment = str(environment or "").strip().lower()

    @classmethod
    def from_config(cls, config):
        return cls(overrides=config.providers, environment=config.environment)

    @property
    def default_entry(self) -> ProviderPolicyEntry:
        return self._table[DEFAULT_PROVIDER_ID]

    def entries(self) -> list[ProviderPolicyEntry]:
        return [self._table[k] for k in sorted(self._table)]

    def entry_for(self, provider_id) -> tuple[ProviderPolicyEntry, bool]:
        entry = self._table.get(normalize_provider_id(provider_id))
        if entry is None:
            return self.default_entry, True
        return entry, False

    def resolve(self, provider_id, environment=None) -> ResolvedPolicy:
        """Pure lookup. Unknown providers get the default entry."""
        entry, fallback = self.entry_for(provider_id)
        env = self.environment if environment is None else str(environment).strip().lower()
        return ResolvedPolicy(
            provider_id=entry.provider_id,
            primary_duration_ms=entry.primary_duration_ms + entry.adjustment_for(env),
            secondary_duration_ms=entry.secondary_duration_ms,
            show_countdown=entry.show_countdown,
            environment=env,
            fallback=fallback,
        )


_builtin_policy = ProviderPolicy()


def resolve(provider_id, environment=None) -> ResolvedPolicy:
    return _builtin_policy.resolve(provider_id, environment)
