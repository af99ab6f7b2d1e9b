from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import pytest

from caltrack.app.entitlements import (
    EntitlementCache,
    EntitlementResolver,
    EntitlementStatus,
    InMemoryDocumentStore,
    InMemoryKeyValueStore,
    PremiumFeature,
    SourceOutcome,
    UserIdentity,
)
from caltrack.app.entitlements import catalog
from caltrack.app.entitlements.store import PREMIUM_ACCESS_KEY, IS_BETA_TESTER_KEY, to_epoch_millis
from caltrack.app.feature_gates import (
    UNLIMITED_SCANS,
    DailyScanQuota,
    DenialReason,
    FeatureAccessOutcome,
    FeatureGate,
    FeatureGateError,
    require_feature,
)

START = datetime(2025, 7, 27, 9, 30, tzinfo=timezone.utc)
USER = UserIdentity(id="user-1", email="tester@example.com")


class FakeClock:
    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self) -> None:
        self.prompts: List[Tuple[PremiumFeature, Optional[str]]] = []

    def show_prompt(self, feature: PremiumFeature, *, language: Optional[str] = None) -> None:
        self.prompts.append((feature, language))


class ScriptedSource:
    name = "scripted"

    def __init__(self, outcome: SourceOutcome = SourceOutcome.NOT_CONFIRMED, delay: float = 0.0) -> None:
        self.outcome = outcome
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.calls = 0

    async def check(self, identity: UserIdentity) -> SourceOutcome:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        return self.outcome


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def source() -> ScriptedSource:
    return ScriptedSource()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def gate(store, clock, source, notifier) -> FeatureGate:
    resolver = EntitlementResolver([source], InMemoryDocumentStore(), EntitlementCache(store), clock=clock)
    return FeatureGate(
        resolver,
        DailyScanQuota(store, clock=clock),
        identity_provider=lambda: USER,
        prompt_notifier=notifier,
    )


def _make_beta_tester(gate: FeatureGate, clock: FakeClock) -> None:
    gate.resolver.cache.write(USER.id, EntitlementStatus.CONFIRMED, to_epoch_millis(clock()))


def test_regular_user_has_no_premium_features(gate):
    assert gate.has_premium_access() is False
    for feature in PremiumFeature:
        assert gate.has_feature_access(feature) is False


def test_beta_tester_bypasses_feature_policy(gate, clock, monkeypatch):
    _make_beta_tester(gate, clock)
    for feature in PremiumFeature:
        monkeypatch.setitem(catalog.FEATURE_POLICY, feature, False)

    for feature in PremiumFeature:
        assert gate.has_feature_access(feature) is True


def test_subscriber_follows_feature_policy(gate, store, monkeypatch):
    store.set(PREMIUM_ACCESS_KEY, True)
    monkeypatch.setitem(catalog.FEATURE_POLICY, PremiumFeature.PRIORITY_SUPPORT, False)

    assert gate.has_feature_access(PremiumFeature.ADVANCED_COACHING) is True
    assert gate.has_feature_access(PremiumFeature.PRIORITY_SUPPORT) is False


def test_execute_with_feature_invokes_granted_branch(gate, clock, notifier):
    _make_beta_tester(gate, clock)
    calls: List[str] = []

    outcome = gate.execute_with_feature(
        PremiumFeature.ADVANCED_ANALYTICS,
        lambda: calls.append("granted"),
        lambda: calls.append("denied"),
    )

    assert outcome.granted is True
    assert calls == ["granted"]
    assert notifier.prompts == []


def test_execute_with_feature_prefers_denied_callback(gate, notifier):
    calls: List[str] = []

    outcome = gate.execute_with_feature(
        PremiumFeature.ADVANCED_COACHING,
        lambda: calls.append("granted"),
        lambda: calls.append("denied"),
    )

    assert outcome.granted is False
    assert outcome.reason is DenialReason.SUBSCRIPTION_REQUIRED
    assert calls == ["denied"]
    assert notifier.prompts == []


def test_execute_with_feature_falls_back_to_feature_prompt(gate, notifier):
    gate.execute_with_feature(PremiumFeature.MULTI_AI_RECOGNITION, lambda: None)

    assert notifier.prompts == [(PremiumFeature.MULTI_AI_RECOGNITION, None)]


def test_beta_tester_reaching_prompt_is_logged_not_shown(gate, store, notifier, caplog):
    store.set(IS_BETA_TESTER_KEY, True)
    store.set(PREMIUM_ACCESS_KEY, False)

    with caplog.at_level(logging.WARNING, logger="feature_gates"):
        outcome = gate.execute_with_feature(PremiumFeature.VOICE_ASSISTANT, lambda: None)

    assert outcome.granted is False
    assert notifier.prompts == []
    assert "should not happen" in caplog.text


def test_free_user_gets_five_scans_per_day(gate, clock, notifier):
    results: List[str] = []

    outcomes = [
        gate.execute_food_scan(lambda: results.append("scan"), lambda: results.append("limit"))
        for _ in range(6)
    ]

    assert results == ["scan"] * 5 + ["limit"]
    assert [outcome.granted for outcome in outcomes] == [True] * 5 + [False]
    assert outcomes[-1].reason is DenialReason.SCAN_LIMIT_REACHED
    assert gate.get_remaining_scans() == 0
    assert notifier.prompts == []


def test_scan_limit_prompt_when_no_callback(gate, notifier):
    for _ in range(5):
        gate.execute_food_scan(lambda: None)

    gate.execute_food_scan(lambda: None)

    assert notifier.prompts == [(PremiumFeature.UNLIMITED_SCANNING, None)]


def test_scan_counter_resets_on_new_day(gate, clock, store):
    for _ in range(5):
        gate.execute_food_scan(lambda: None, lambda: None)
    assert gate.get_remaining_scans() == 0

    clock.advance(days=1)

    assert gate.get_remaining_scans() == 5
    results: List[str] = []
    gate.execute_food_scan(lambda: results.append("scan"), lambda: results.append("limit"))
    assert results == ["scan"]
    assert store.get("scans_2025-07-27") == 5
    assert store.get("scans_2025-07-28") == 1


def test_unlimited_scanning_skips_quota(gate, clock, store):
    _make_beta_tester(gate, clock)

    for _ in range(10):
        assert gate.execute_food_scan(lambda: None).granted is True

    assert gate.get_remaining_scans() == UNLIMITED_SCANS
    assert store.get("scans_2025-07-27") is None


def test_remaining_scans_counts_down(gate):
    assert gate.get_remaining_scans() == 5
    gate.execute_food_scan(lambda: None)
    gate.execute_food_scan(lambda: None)
    assert gate.get_remaining_scans() == 3


def test_english_voice_logging_is_free(gate, notifier):
    calls: List[str] = []

    english = gate.execute_voice_logging(lambda: calls.append("en"))
    spanish = gate.execute_voice_logging(lambda: calls.append("es"), language="es")

    assert english.granted is True
    assert spanish.granted is False
    assert spanish.reason is DenialReason.LANGUAGE_REQUIRES_SUBSCRIPTION
    assert calls == ["en"]
    assert notifier.prompts == [(PremiumFeature.VOICE_ASSISTANT, "es")]


def test_feature_access_summary(gate, clock):
    summary = gate.get_feature_access_summary()
    assert summary["Premium Access"] is False
    assert len(summary) == len(PremiumFeature) + 1

    _make_beta_tester(gate, clock)
    assert all(gate.get_feature_access_summary().values())


def test_require_feature_raises_for_denied_outcome():
    outcome = FeatureAccessOutcome.deny(PremiumFeature.ADVANCED_ANALYTICS, DenialReason.SUBSCRIPTION_REQUIRED)

    with pytest.raises(FeatureGateError) as exc:
        require_feature(outcome)

    assert exc.value.code == "subscription_required"
    assert exc.value.payload["feature"] == "advanced_analytics"
    require_feature(FeatureAccessOutcome.allow(PremiumFeature.ADVANCED_ANALYTICS))


def test_feature_gate_error_converts_to_http_exception():
    error = FeatureGateError("scan_limit_reached", "limit reached", feature=PremiumFeature.UNLIMITED_SCANNING, remaining=0)
    http_exc = error.to_http_exception()

    assert http_exc.status_code == 403
    assert http_exc.detail["error"] == "scan_limit_reached"
    assert http_exc.detail["remaining"] == 0
    assert http_exc.detail["feature"] == "unlimited_scanning"


def test_initialize_feature_gates_resolves_in_background(gate, source):
    source.outcome = SourceOutcome.CONFIRMED

    async def scenario() -> EntitlementStatus:
        task = gate.initialize_feature_gates()
        assert gate.last_status is EntitlementStatus.PENDING
        return await task

    status = asyncio.run(scenario())

    assert status is EntitlementStatus.CONFIRMED
    assert gate.last_status is EntitlementStatus.CONFIRMED
    assert gate.has_premium_access() is True


def test_refreshes_never_overlap(gate, source):
    source.delay = 0.01

    async def scenario() -> List[EntitlementStatus]:
        tasks = [gate.refresh_feature_access() for _ in range(3)]
        return list(await asyncio.gather(*tasks))

    statuses = asyncio.run(scenario())

    assert statuses == [EntitlementStatus.REGULAR] * 3
    assert source.calls == 3
    assert source.max_active == 1


def test_refresh_without_identity_reports_unauthenticated(store, clock, source):
    resolver = EntitlementResolver([source], InMemoryDocumentStore(), EntitlementCache(store), clock=clock)
    gate = FeatureGate(resolver, DailyScanQuota(store, clock=clock), identity_provider=lambda: None)

    async def scenario() -> EntitlementStatus:
        return await gate.refresh_feature_access()

    assert asyncio.run(scenario()) is EntitlementStatus.UNAUTHENTICATED
    assert source.calls == 0


def test_only_confirmed_status_grants_access():
    assert [status for status in EntitlementStatus if status.grants_access] == [EntitlementStatus.CONFIRMED]
