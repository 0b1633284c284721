from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class JourneySnapshot:
    validation: Dict[str, int]
    branch_lookups: Dict[str, int]
    finalizations: Dict[str, int]
    usage_logs: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "validation": dict(self.validation),
            "branch_lookups": dict(self.branch_lookups),
            "finalizations": dict(self.finalizations),
            "usage_logs": dict(self.usage_logs),
        }


class JourneyObservabilityStore:
    """Collect coupon journey telemetry for kiosk diagnostics."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._validation: Dict[str, int] = defaultdict(int)
        self._branch_lookups: Dict[str, int] = defaultdict(int)
        self._finalizations: Dict[str, int] = defaultdict(int)
        self._usage_logs: Dict[str, int] = defaultdict(int)

    def record_validation_attempt(self, attempt: int) -> None:
        with self._lock:
            self._validation["attempts"] += 1
            if attempt > 1:
                self._validation["retries"] += 1

    def record_validation_outcome(self, outcome: str) -> None:
        with self._lock:
            self._validation[f"outcome:{outcome}"] += 1

    def record_validation_failure(self, reason: str) -> None:
        with self._lock:
            self._validation[f"failure:{reason}"] += 1

    def record_branch_lookup(self, outcome: str) -> None:
        with self._lock:
            self._branch_lookups[outcome] += 1

    def record_finalization(self, status: str) -> None:
        with self._lock:
            self._finalizations[status.lower()] += 1

    def record_duplicate_finalization(self) -> None:
        with self._lock:
            self._finalizations["suppressed_duplicates"] += 1

    def record_usage_log(self, *, failed: bool) -> None:
        with self._lock:
            self._usage_logs["dispatched"] += 1
            if failed:
                self._usage_logs["failed"] += 1

    def snapshot(self) -> JourneySnapshot:
        with self._lock:
            return JourneySnapshot(
                validation=dict(self._validation),
                branch_lookups=dict(self._branch_lookups),
                finalizations=dict(self._finalizations),
                usage_logs=dict(self._usage_logs),
            )

    def reset(self) -> None:
        with self._lock:
            self._validation.clear()
            self._branch_lookups.clear()
            self._finalizations.clear()
            self._usage_logs.clear()


_STORE = JourneyObservabilityStore()


def get_journey_store() -> JourneyObservabilityStore:
    return _STORE


__all__ = ["get_journey_store", "JourneyObservabilityStore", "JourneySnapshot"]
