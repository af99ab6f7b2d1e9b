"""Process-wide access checks for premium features and the metered scan path."""
from __future__ import annotations

import asyncio
import logging
import sys
from typing import Callable, Dict, Optional, Set

from ..entitlements import EntitlementResolver, EntitlementStatus, UserIdentity
from ..entitlements.catalog import PremiumFeature, is_allowed_for_subscriber
from .enforcement import DenialReason, FeatureAccessOutcome
from .prompts import LoggingSubscriptionPromptNotifier, SubscriptionPromptNotifier
from .quota import DailyScanQuota

logger = logging.getLogger("feature_gates")

UNLIMITED_SCANS = sys.maxsize
FREE_VOICE_LANGUAGE = "en"

IdentityProvider = Callable[[], Optional[UserIdentity]]
Continuation = Callable[[], None]


class FeatureGate:
    """Answers "can this feature be used now" from the locally cached verdict.

    Access checks never trigger remote verification; they read the flags the
    resolver last wrote, so they are cheap and may lag by up to the cache TTL.
    ``initialize_feature_gates`` and ``refresh_feature_access`` schedule a
    resolution on the running event loop.
    """

    def __init__(
        self,
        resolver: EntitlementResolver,
        quota: DailyScanQuota,
        *,
        identity_provider: IdentityProvider,
        prompt_notifier: Optional[SubscriptionPromptNotifier] = None,
    ) -> None:
        self._resolver = resolver
        self._cache = resolver.cache
        self._quota = quota
        self._identity_provider = identity_provider
        self._prompt_notifier = prompt_notifier or LoggingSubscriptionPromptNotifier()
        self._last_status = EntitlementStatus.PENDING
        self._refresh_lock: Optional[asyncio.Lock] = None
        self._tasks: Set["asyncio.Task[EntitlementStatus]"] = set()

    @property
    def resolver(self) -> EntitlementResolver:
        return self._resolver

    @property
    def last_status(self) -> EntitlementStatus:
        return self._last_status

    def has_premium_access(self) -> bool:
        return self._cache.has_premium_access()

    def is_beta_tester(self) -> bool:
        return self._cache.is_beta_tester()

    def has_feature_access(self, feature: PremiumFeature) -> bool:
        if not self.has_premium_access():
            return False
        if self.is_beta_tester():
            return True
        return is_allowed_for_subscriber(feature)

    def check_feature(self, feature: PremiumFeature) -> FeatureAccessOutcome:
        if self.has_feature_access(feature):
            return FeatureAccessOutcome.allow(feature)
        return FeatureAccessOutcome.deny(feature, DenialReason.SUBSCRIPTION_REQUIRED)

    def execute_with_feature(
        self,
        feature: PremiumFeature,
        on_granted: Continuation,
        on_denied: Optional[Continuation] = None,
    ) -> FeatureAccessOutcome:
        outcome = self.check_feature(feature)
        if outcome.granted:
            logger.debug("Feature access granted for %s", feature.value)
            on_granted()
            return outcome

        logger.debug("Feature access denied for %s", feature.value)
        if on_denied is not None:
            self._warn_if_beta_tester(feature)
            on_denied()
        else:
            self._show_subscription_prompt(feature)
        return outcome

    def _warn_if_beta_tester(self, feature: PremiumFeature) -> bool:
        if self.is_beta_tester():
            logger.warning("Beta tester denied %s - this should not happen", feature.value)
            return True
        return False

    def _show_subscription_prompt(self, feature: PremiumFeature, *, language: Optional[str] = None) -> None:
        if self._warn_if_beta_tester(feature):
            return
        self._prompt_notifier.show_prompt(feature, language=language)

    def can_use_voice_assistant(self, language: str = FREE_VOICE_LANGUAGE) -> bool:
        if language == FREE_VOICE_LANGUAGE:
            return True
        return self.has_feature_access(PremiumFeature.ALL_LANGUAGES)

    def execute_voice_logging(
        self,
        on_success: Continuation,
        *,
        language: str = FREE_VOICE_LANGUAGE,
        on_subscription_required: Optional[Continuation] = None,
    ) -> FeatureAccessOutcome:
        if self.can_use_voice_assistant(language):
            logger.info("Voice assistant access granted for language=%s", language)
            on_success()
            return FeatureAccessOutcome.allow(PremiumFeature.ALL_LANGUAGES, language=language)

        logger.info("Voice assistant requires subscription for language=%s", language)
        if on_subscription_required is not None:
            on_subscription_required()
        else:
            self._show_subscription_prompt(PremiumFeature.VOICE_ASSISTANT, language=language)
        return FeatureAccessOutcome.deny(
            PremiumFeature.ALL_LANGUAGES,
            DenialReason.LANGUAGE_REQUIRES_SUBSCRIPTION,
            language=language,
        )

    def can_scan_unlimited(self) -> bool:
        return self.has_feature_access(PremiumFeature.UNLIMITED_SCANNING)

    def execute_food_scan(
        self,
        on_success: Continuation,
        on_limit_reached: Optional[Continuation] = None,
    ) -> FeatureAccessOutcome:
        if self.can_scan_unlimited():
            logger.info("Unlimited scanning access granted")
            on_success()
            return FeatureAccessOutcome.allow(PremiumFeature.UNLIMITED_SCANNING, remaining=UNLIMITED_SCANS)

        evaluation = self._quota.try_consume()
        if evaluation.allowed:
            logger.info("Scan allowed within daily limit (%s/%s)", evaluation.used, evaluation.daily_limit)
            on_success()
            return FeatureAccessOutcome.allow(PremiumFeature.UNLIMITED_SCANNING, remaining=evaluation.remaining)

        logger.info("Daily scan limit reached, subscription required")
        if on_limit_reached is not None:
            on_limit_reached()
        else:
            self._show_subscription_prompt(PremiumFeature.UNLIMITED_SCANNING)
        return FeatureAccessOutcome.deny(
            PremiumFeature.UNLIMITED_SCANNING,
            DenialReason.SCAN_LIMIT_REACHED,
            remaining=0,
        )

    def get_remaining_scans(self) -> int:
        if self.can_scan_unlimited():
            return UNLIMITED_SCANS
        return self._quota.remaining()

    def get_feature_access_summary(self) -> Dict[str, bool]:
        summary = {"Premium Access": self.has_premium_access()}
        for feature in PremiumFeature:
            summary[feature.display_name] = self.has_feature_access(feature)
        return summary

    async def resolve_now(self, identity: Optional[UserIdentity] = None) -> EntitlementStatus:
        """Resolve ``identity``, or the provider's current user; runs never overlap."""

        if self._refresh_lock is None:
            self._refresh_lock = asyncio.Lock()
        async with self._refresh_lock:
            if identity is None:
                identity = self._identity_provider()
            self._last_status = EntitlementStatus.PENDING
            status = await self._resolver.resolve(identity)
            self._last_status = status
            if status.grants_access:
                await self._resolver.reconcile_profile(identity)
            return status

    def initialize_feature_gates(self) -> "asyncio.Task[EntitlementStatus]":
        """Schedule the startup resolution on the running event loop."""

        return self._schedule("initialize")

    def refresh_feature_access(self) -> "asyncio.Task[EntitlementStatus]":
        return self._schedule("refresh")

    def _schedule(self, reason: str) -> "asyncio.Task[EntitlementStatus]":
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run_resolution(reason))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_resolution(self, reason: str) -> EntitlementStatus:
        logger.debug("Feature gate %s started", reason)
        try:
            status = await self.resolve_now()
        except Exception:
            logger.exception("Error during feature gate %s", reason)
            return EntitlementStatus.REGULAR
        if status.grants_access:
            logger.info("Beta tester confirmed - all premium features enabled")
        else:
            logger.info("Feature gate %s finished with status %s", reason, status.value)
        return status
