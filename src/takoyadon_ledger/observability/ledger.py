from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class LedgerSnapshot:
    postings: Dict[str, int]
    rejections: Dict[str, int]
    notifications: Dict[str, int]
    alerts: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "postings": dict(self.postings),
            "rejections": dict(self.rejections),
            "notifications": dict(self.notifications),
            "alerts": dict(self.alerts),
        }


class LedgerObservabilityStore:
    """Collect ledger posting telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._postings: Dict[str, int] = defaultdict(int)
        self._rejections: Dict[str, int] = defaultdict(int)
        self._notifications: Dict[str, int] = defaultdict(int)
        self._alerts: Dict[str, int] = defaultdict(int)

    def record_commit(self, event_type: str) -> None:
        with self._lock:
            self._postings["committed"] += 1
            self._postings[f"event:{event_type}"] += 1

    def record_replay(self) -> None:
        with self._lock:
            self._postings["replayed"] += 1

    def record_store_unavailable(self) -> None:
        with self._lock:
            self._postings["store_unavailable"] += 1

    def record_rejection(self, code: str) -> None:
        with self._lock:
            self._rejections[code] += 1

    def record_notification(self, outcome: str) -> None:
        with self._lock:
            self._notifications[outcome] += 1

    def record_alert(self, kind: str) -> None:
        with self._lock:
            self._alerts[kind] += 1

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                postings=dict(self._postings),
                rejections=dict(self._rejections),
                notifications=dict(self._notifications),
                alerts=dict(self._alerts),
            )

    def reset(self) -> None:
        with self._lock:
            self._postings.clear()
            self._rejections.clear()
            self._notifications.clear()
            self._alerts.clear()


_STORE = LedgerObservabilityStore()


def get_ledger_store() -> LedgerObservabilityStore:
    return _STORE


__all__ = ["get_ledger_store", "LedgerObservabilityStore", "LedgerSnapshot"]
