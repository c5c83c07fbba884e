from collections import Counter
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TelemetrySnapshot:
    count: int
    last_reason: Optional[str]


class TelemetryCounter:
    """
    Counts intercepted hijack attempts for the status badge
    ("N threats blocked"). Observational only: nothing reads it to decide
    a phase transition.
    """

    def __init__(self):
        self._count = 0
        self._last_reason: Optional[str] = None
        self._reasons: Counter = Counter()

    def increment(self, reason: str) -> int:
        reason = str(reason or "unknown").strip().lower() or "unknown"
        self._count += 1
        self._last_reason = reason
        self._reasons[reason] += 1
        return self._count

    def reset(self):
        self._count = 0
        self._last_reason = None
        self._reasons.clear()

    def current(self) -> TelemetrySnapshot:
        return TelemetrySnapshot(count=self._count, last_reason=self._last_reason)

    def by_reason(self) -> dict[str, int]:
        return dict(self._reasons)
