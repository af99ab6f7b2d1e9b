"""Cached entitlement verdicts and premium flags kept in the local store."""
from __future__ import annotations

import threading
from typing import Any, Dict, Optional

from .models import EntitlementRecord, EntitlementStatus
from .store import (
    BETA_VERIFIED_KEY,
    ENTITLEMENT_USER_KEY,
    IS_BETA_TESTER_KEY,
    PREMIUM_ACCESS_KEY,
    PREMIUM_GRANTED_KEY,
    PROFILE_SYNC_PENDING_KEY,
    KeyValueStore,
)

DEFAULT_TTL_MS = 24 * 60 * 60 * 1000


class EntitlementCache:
    """Reads and writes complete entitlement records through a :class:`KeyValueStore`."""

    def __init__(self, store: KeyValueStore, *, ttl_ms: int = DEFAULT_TTL_MS) -> None:
        self._store = store
        self._ttl_ms = ttl_ms
        self._write_lock = threading.Lock()

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    def read(self, user_id: str) -> Optional[EntitlementRecord]:
        """Return the cached record for ``user_id``; records of other users are ignored."""

        cached_user = self._store.get(ENTITLEMENT_USER_KEY)
        verified_at = self._store.get(BETA_VERIFIED_KEY)
        if cached_user != user_id or verified_at is None:
            return None
        is_beta_tester = bool(self._store.get(IS_BETA_TESTER_KEY, False))
        status = EntitlementStatus.CONFIRMED if is_beta_tester else EntitlementStatus.REGULAR
        return EntitlementRecord(user_id=user_id, status=status, verified_at_ms=int(verified_at))

    def is_fresh(self, record: Optional[EntitlementRecord], now_ms: int) -> bool:
        """Only positive verdicts younger than the TTL short-circuit resolution."""

        if record is None or record.status is not EntitlementStatus.CONFIRMED:
            return False
        return now_ms - record.verified_at_ms < self._ttl_ms

    def write(self, user_id: str, status: EntitlementStatus, verified_at_ms: int) -> EntitlementRecord:
        """Store a verdict in one write.

        A confirmed verdict also switches on the local premium flags. Premium
        flags left by a different user are cleared in the same write. The
        verification timestamp never moves backwards for the same user.
        """

        with self._write_lock:
            cached_user = self._store.get(ENTITLEMENT_USER_KEY)
            previous = self.read(user_id)
            if previous is not None:
                verified_at_ms = max(verified_at_ms, previous.verified_at_ms)
            confirmed = status is EntitlementStatus.CONFIRMED
            values: Dict[str, Any] = {
                ENTITLEMENT_USER_KEY: user_id,
                IS_BETA_TESTER_KEY: confirmed,
                BETA_VERIFIED_KEY: verified_at_ms,
            }
            if confirmed:
                values[PREMIUM_ACCESS_KEY] = True
                values[PREMIUM_GRANTED_KEY] = verified_at_ms
            elif cached_user != user_id:
                values[PREMIUM_ACCESS_KEY] = False
                values[PREMIUM_GRANTED_KEY] = None
                values[PROFILE_SYNC_PENDING_KEY] = False
            self._store.set_many(values)
        return EntitlementRecord(user_id=user_id, status=status, verified_at_ms=verified_at_ms)

    def revoke_premium(self) -> None:
        with self._write_lock:
            self._store.set_many({PREMIUM_ACCESS_KEY: False, IS_BETA_TESTER_KEY: False})
            self._store.remove(PREMIUM_GRANTED_KEY, PROFILE_SYNC_PENDING_KEY)

    def has_premium_access(self) -> bool:
        return bool(self._store.get(PREMIUM_ACCESS_KEY, False))

    def is_beta_tester(self) -> bool:
        return bool(self._store.get(IS_BETA_TESTER_KEY, False))

    def mark_profile_sync_pending(self, pending: bool) -> None:
        if pending:
            self._store.set(PROFILE_SYNC_PENDING_KEY, True)
        else:
            self._store.remove(PROFILE_SYNC_PENDING_KEY)

    def profile_sync_pending(self) -> bool:
        return bool(self._store.get(PROFILE_SYNC_PENDING_KEY, False))
