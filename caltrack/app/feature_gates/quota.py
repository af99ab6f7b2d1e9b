"""Daily free-scan allowance for users without premium access."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from ..entitlements.store import Clock, KeyValueStore, day_key, local_now, scans_key

DEFAULT_DAILY_SCAN_LIMIT = 5


@dataclass(frozen=True)
class ScanQuotaEvaluation:
    """Represents the outcome of a scan allowance check."""

    day: str
    daily_limit: int
    used: int
    allowed: bool

    @property
    def remaining(self) -> int:
        return max(0, self.daily_limit - self.used)


class DailyScanQuota:
    """Counts scans per calendar day under ``scans_<yyyy-mm-dd>`` keys.

    A new day simply reads an absent key, so counters reset without cleanup.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Optional[Clock] = None,
        daily_limit: int = DEFAULT_DAILY_SCAN_LIMIT,
    ) -> None:
        if daily_limit < 0:
            raise ValueError("daily_limit must be >= 0")
        self._store = store
        self._clock = clock or local_now
        self._daily_limit = daily_limit
        self._lock = threading.Lock()

    @property
    def daily_limit(self) -> int:
        return self._daily_limit

    def used_today(self) -> int:
        return int(self._store.get(scans_key(self._clock()), 0) or 0)

    def remaining(self) -> int:
        return max(0, self._daily_limit - self.used_today())

    def try_consume(self) -> ScanQuotaEvaluation:
        """Count one scan if today's allowance is not exhausted."""

        now = self._clock()
        key = scans_key(now)
        with self._lock:
            updated = self._store.increment(key, limit=self._daily_limit)
            if updated is None:
                used = int(self._store.get(key, 0) or 0)
                return ScanQuotaEvaluation(day=day_key(now), daily_limit=self._daily_limit, used=used, allowed=False)
        return ScanQuotaEvaluation(day=day_key(now), daily_limit=self._daily_limit, used=updated, allowed=True)
