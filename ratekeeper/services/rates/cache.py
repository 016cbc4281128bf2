from __future__ import annotations

"""Process-lifetime rate cache with failure backoff.

Purpose:
    Keep the last known RateSnapshot so polls can be answered without touching
    the provider, and decide when the provider may be called again.

Design:
    - One "latest" CacheEntry plus a short history (most recent first) kept for
      diagnostics only; serving logic never reads history.
    - A success schedules the next fetch one TTL later (24h by default).
    - Consecutive failures back off exponentially from ``backoff_base`` up to
      ``backoff_cap`` (5s, 10s, 20s ... capped at 5 minutes). The previous
      snapshot keeps being served, flagged stale.
    - ``now`` is always passed in; the cache never reads the system clock.
    - The cache records outcomes and computes timing only. Deciding whether a
      provider error counts as a failure is the orchestrator's job.

The instance is created once in ``create_app`` and lives on ``app.state``.
"""
import enum
import threading
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Deque, List, Optional

from ratekeeper.models.rates import RateSnapshot

DEFAULT_TTL = timedelta(hours=24)
DEFAULT_BACKOFF_BASE = timedelta(seconds=5)
DEFAULT_BACKOFF_CAP = timedelta(minutes=5)
DEFAULT_HISTORY_LIMIT = 10


class CacheOutcome(str, enum.Enum):
    OK = "ok"
    ERROR = "error"


@dataclass(frozen=True)
class CacheEntry:
    snapshot: RateSnapshot
    fetched_at: datetime
    failed_attempts: int
    next_eligible_at: datetime
    outcome: CacheOutcome
    last_status_code: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "snapshot": self.snapshot.to_payload(),
            "fetched_at": self.fetched_at.isoformat(),
            "failed_attempts": self.failed_attempts,
            "next_eligible_at": self.next_eligible_at.isoformat(),
            "outcome": self.outcome.value,
            "last_status_code": self.last_status_code,
        }


@dataclass(frozen=True)
class CacheDiagnostics:
    latest: Optional[CacheEntry]
    history: List[CacheEntry]

    def as_dict(self) -> dict:
        return {
            "latest": self.latest.as_dict() if self.latest else None,
            "history": [e.as_dict() for e in self.history],
        }


class RateCache:
    """Latest snapshot + retry bookkeeping, safe to share between requests."""

    def __init__(
        self,
        ttl: timedelta = DEFAULT_TTL,
        backoff_base: timedelta = DEFAULT_BACKOFF_BASE,
        backoff_cap: timedelta = DEFAULT_BACKOFF_CAP,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        if history_limit <= 0:
            raise ValueError("history_limit must be positive")
        self._ttl = ttl
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap
        self._latest: Optional[CacheEntry] = None
        self._history: Deque[CacheEntry] = deque(maxlen=history_limit)
        self._lock = threading.RLock()

    # Internal --------------------------------------------------
    def _push(self, entry: CacheEntry) -> None:
        self._latest = entry
        self._history.appendleft(entry)

    def backoff_for(self, failed_attempts: int) -> timedelta:
        """Wait imposed after the given number of consecutive failures."""
        if failed_attempts <= 0:
            return timedelta(0)
        # cap the exponent; the result is clamped anyway
        exponent = min(failed_attempts - 1, 32)
        return min(self._backoff_base * (2**exponent), self._backoff_cap)

    # Reads ----------------------------------------------------
    def should_fetch(self, now: datetime) -> bool:
        with self._lock:
            if self._latest is None:
                return True
            return now >= self._latest.next_eligible_at

    def get_snapshot(self, force_stale: bool = False) -> Optional[RateSnapshot]:
        with self._lock:
            if self._latest is None:
                return None
            snapshot = self._latest.snapshot
            return snapshot.with_stale(force_stale or snapshot.stale)

    def get_diagnostics(self) -> CacheDiagnostics:
        with self._lock:
            return CacheDiagnostics(latest=self._latest, history=list(self._history))

    # Writes ---------------------------------------------------
    def record_success(self, snapshot: RateSnapshot, now: datetime) -> CacheEntry:
        entry = CacheEntry(
            snapshot=snapshot.with_stale(False),
            fetched_at=now,
            failed_attempts=0,
            next_eligible_at=now + self._ttl,
            outcome=CacheOutcome.OK,
        )
        with self._lock:
            self._push(entry)
        return entry

    def record_failure(
        self, status_code: Optional[int], now: datetime
    ) -> Optional[RateSnapshot]:
        """Record a failed fetch and return the snapshot to fall back on.

        Returns None when nothing has ever been cached; the zero placeholder
        stored in that case is not a usable fallback.
        """
        with self._lock:
            if self._latest is None:
                self._latest = CacheEntry(
                    snapshot=RateSnapshot.placeholder(observed_at=now),
                    fetched_at=now,
                    failed_attempts=1,
                    next_eligible_at=now + self._backoff_base,
                    outcome=CacheOutcome.ERROR,
                    last_status_code=status_code,
                )
                self._history.clear()
                self._history.appendleft(self._latest)
                return None

            attempts = self._latest.failed_attempts + 1
            entry = replace(
                self._latest,
                snapshot=self._latest.snapshot.with_stale(True),
                fetched_at=now,
                failed_attempts=attempts,
                next_eligible_at=now + self.backoff_for(attempts),
                outcome=CacheOutcome.ERROR,
                last_status_code=status_code,
            )
            self._push(entry)
            return entry.snapshot
