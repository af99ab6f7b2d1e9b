from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from caltrack.app.entitlements import InMemoryKeyValueStore, SQLiteKeyValueStore
from caltrack.app.entitlements.store import day_key, scans_key, to_epoch_millis
from caltrack.app.feature_gates import DailyScanQuota


@pytest.fixture
def sqlite_store(tmp_path):
    store = SQLiteKeyValueStore(tmp_path / "state" / "prefs.db")
    yield store
    store.close()


def test_sqlite_store_persists_values_across_instances(tmp_path):
    path = tmp_path / "prefs.db"
    store = SQLiteKeyValueStore(path)
    store.set_many({"premium_access": True, "beta_verified_timestamp": 1_753_617_600_000})
    store.close()

    reopened = SQLiteKeyValueStore(path)
    try:
        assert reopened.get("premium_access") is True
        assert reopened.get("beta_verified_timestamp") == 1_753_617_600_000
        assert reopened.get("missing", 7) == 7
    finally:
        reopened.close()


def test_sqlite_store_remove_and_clear(sqlite_store):
    sqlite_store.set("is_beta_tester", True)
    sqlite_store.set("premium_access", True)

    sqlite_store.remove("is_beta_tester")
    assert sqlite_store.get("is_beta_tester") is None
    assert sqlite_store.get("premium_access") is True

    sqlite_store.clear()
    assert sqlite_store.get("premium_access") is None


@pytest.mark.parametrize("store_factory", ["memory", "sqlite"])
def test_increment_respects_limit(store_factory, tmp_path):
    if store_factory == "memory":
        store = InMemoryKeyValueStore()
    else:
        store = SQLiteKeyValueStore(tmp_path / "prefs.db")

    values = [store.increment("scans_2025-07-27", limit=2) for _ in range(3)]

    assert values == [1, 2, None]
    assert store.get("scans_2025-07-27") == 2


def test_concurrent_scans_never_exceed_daily_limit():
    store = InMemoryKeyValueStore()
    quota = DailyScanQuota(store, clock=lambda: datetime(2025, 7, 27, tzinfo=timezone.utc))
    allowed = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(10):
            evaluation = quota.try_consume()
            with lock:
                allowed.append(evaluation.allowed)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert allowed.count(True) == 5
    assert quota.used_today() == 5
    assert quota.remaining() == 0


def test_key_helpers_use_calendar_day():
    moment = datetime(2025, 12, 31, 23, 59, tzinfo=timezone.utc)

    assert day_key(moment) == "2025-12-31"
    assert scans_key(moment) == "scans_2025-12-31"
    assert to_epoch_millis(datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)) == 1000


def test_quota_rejects_negative_limit():
    with pytest.raises(ValueError):
        DailyScanQuota(InMemoryKeyValueStore(), daily_limit=-1)
