"""Local key-value persistence and clock helpers shared by entitlements and gating."""
from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from .exceptions import PersistenceError

Clock = Callable[[], datetime]

IS_BETA_TESTER_KEY = "is_beta_tester"
BETA_VERIFIED_KEY = "beta_verified_timestamp"
PREMIUM_ACCESS_KEY = "premium_access"
PREMIUM_GRANTED_KEY = "premium_granted_timestamp"
ENTITLEMENT_USER_KEY = "entitlement_user_id"
PROFILE_SYNC_PENDING_KEY = "profile_sync_pending"
SCANS_KEY_PREFIX = "scans_"


def local_now() -> datetime:
    """Current time in the host's local time zone."""

    return datetime.now().astimezone()


def to_epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def day_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d")


def scans_key(moment: datetime) -> str:
    return f"{SCANS_KEY_PREFIX}{day_key(moment)}"


class KeyValueStore(Protocol):
    """Narrow durable store used for cached verdicts and quota counters."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def set_many(self, values: Mapping[str, Any]) -> None:
        ...

    def remove(self, *keys: str) -> None:
        ...

    def clear(self) -> None:
        ...

    def increment(self, key: str, *, limit: Optional[int] = None) -> Optional[int]:
        """Atomically add one to an integer key.

        Returns the new value, or ``None`` without writing when the stored value
        has already reached ``limit``.
        """


class InMemoryKeyValueStore:
    """Process-local store suitable for tests and local development."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = dict(initial or {})
        self._lock = threading.RLock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def set_many(self, values: Mapping[str, Any]) -> None:
        with self._lock:
            self._values.update(values)

    def remove(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._values.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def increment(self, key: str, *, limit: Optional[int] = None) -> Optional[int]:
        with self._lock:
            current = int(self._values.get(key, 0) or 0)
            if limit is not None and current >= limit:
                return None
            self._values[key] = current + 1
            return current + 1

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._values)


class SQLiteKeyValueStore:
    """Durable single-file store; values are JSON encoded."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path.as_posix(), check_same_thread=False)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with self._lock:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key   TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            self._conn.commit()

    def _read(self, key: str) -> Optional[str]:
        row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._read(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, values: Mapping[str, Any]) -> None:
        rows = [(key, json.dumps(value)) for key, value in values.items()]
        with self._lock:
            try:
                with self._conn:
                    self._conn.executemany(
                        "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                        rows,
                    )
            except sqlite3.Error as exc:
                raise PersistenceError("local store", str(exc)) from exc

    def remove(self, *keys: str) -> None:
        if not keys:
            return
        with self._lock:
            with self._conn:
                self._conn.executemany("DELETE FROM kv_store WHERE key = ?", [(key,) for key in keys])

    def clear(self) -> None:
        with self._lock:
            with self._conn:
                self._conn.execute("DELETE FROM kv_store")

    def increment(self, key: str, *, limit: Optional[int] = None) -> Optional[int]:
        with self._lock:
            try:
                with self._conn:
                    raw = self._read(key)
                    current = int(json.loads(raw)) if raw is not None else 0
                    if limit is not None and current >= limit:
                        return None
                    self._conn.execute(
                        "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                        (key, json.dumps(current + 1)),
                    )
                    return current + 1
            except sqlite3.Error as exc:
                raise PersistenceError("local store", str(exc)) from exc

    def close(self) -> None:
        with self._lock:
            self._conn.close()
