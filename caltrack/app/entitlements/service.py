"""Resolver that decides whether the current user is a confirmed beta tester."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from .cache import EntitlementCache
from .catalog import FeatureFlagSet
from .exceptions import EntitlementError
from .models import (
    BetaTesterDocument,
    BetaTesterInfo,
    EntitlementStatus,
    RevocationResult,
    UserIdentity,
)
from .sources import (
    AllowListClient,
    AllowListSource,
    BetaTesterDocumentSource,
    EntitlementDocumentStore,
    EntitlementSource,
    InstallChannelClassifier,
    InstallChannelSource,
    InstallMetadataProvider,
    ManualGrantSource,
    SourceOutcome,
    INTERNAL_TESTING_PROGRAM,
)
from .store import Clock, local_now, to_epoch_millis

logger = logging.getLogger("entitlements")

BETA_SUBSCRIPTION_STATUS = "beta_premium"


def build_default_sources(
    *,
    metadata_provider: InstallMetadataProvider,
    allow_list_client: AllowListClient,
    document_store: EntitlementDocumentStore,
    classifier: Optional[InstallChannelClassifier] = None,
    program: str = INTERNAL_TESTING_PROGRAM,
    clock: Optional[Clock] = None,
) -> Sequence[EntitlementSource]:
    """Return the verification sources in cascade order."""

    return (
        InstallChannelSource(metadata_provider, classifier),
        AllowListSource(allow_list_client, program=program, clock=clock),
        BetaTesterDocumentSource(document_store, program=program),
        ManualGrantSource(document_store, clock=clock),
    )


class EntitlementResolver:
    """Runs the verification cascade and keeps the local verdict cache current.

    ``resolve`` never raises. Any failure inside the cascade folds into
    :attr:`EntitlementStatus.REGULAR` so errors cannot grant access.
    """

    def __init__(
        self,
        sources: Sequence[EntitlementSource],
        document_store: EntitlementDocumentStore,
        cache: EntitlementCache,
        *,
        clock: Optional[Clock] = None,
        source_timeout: float = 5.0,
    ) -> None:
        self._sources = tuple(sources)
        self._document_store = document_store
        self._cache = cache
        self._clock = clock or local_now
        self._source_timeout = source_timeout

    @property
    def cache(self) -> EntitlementCache:
        return self._cache

    async def resolve(self, identity: Optional[UserIdentity]) -> EntitlementStatus:
        if identity is None:
            logger.warning("No authenticated user found")
            return EntitlementStatus.UNAUTHENTICATED
        try:
            return await self._resolve(identity)
        except Exception:
            logger.exception("Error during beta tester detection for user=%s", identity.id)
            return EntitlementStatus.REGULAR

    async def _resolve(self, identity: UserIdentity) -> EntitlementStatus:
        logger.debug("Starting beta tester detection for user=%s", identity.id)

        record = self._cache.read(identity.id)
        if self._cache.is_fresh(record, to_epoch_millis(self._clock())):
            logger.debug("Using cached beta status for user=%s", identity.id)
            return EntitlementStatus.CONFIRMED

        for source in self._sources:
            outcome = await self._run_source(source, identity)
            if outcome is SourceOutcome.CONFIRMED:
                logger.info("Beta tester confirmed via %s for user=%s", source.name, identity.id)
                await self._confirm(identity)
                return EntitlementStatus.CONFIRMED

        logger.debug("User %s is not a confirmed beta tester", identity.id)
        self._cache.write(identity.id, EntitlementStatus.REGULAR, to_epoch_millis(self._clock()))
        return EntitlementStatus.REGULAR

    async def _run_source(self, source: EntitlementSource, identity: UserIdentity) -> SourceOutcome:
        try:
            return await asyncio.wait_for(source.check(identity), timeout=self._source_timeout)
        except asyncio.TimeoutError:
            logger.warning("Source %s timed out after %.1fs", source.name, self._source_timeout)
        except Exception:
            logger.exception("Source %s failed", source.name)
        return SourceOutcome.UNAVAILABLE

    async def _confirm(self, identity: UserIdentity) -> None:
        now = self._clock()
        self._cache.write(identity.id, EntitlementStatus.CONFIRMED, to_epoch_millis(now))
        synced = await self._sync_profile(identity.id, now)
        self._cache.mark_profile_sync_pending(not synced)

    async def _sync_profile(self, user_id: str, now: datetime) -> bool:
        logger.info("Enabling premium features for user=%s", user_id)
        try:
            await asyncio.wait_for(
                self._document_store.update_user_profile(user_id, self._profile_update(now)),
                timeout=self._source_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Timed out writing premium profile for user=%s", user_id)
            return False
        except Exception:
            logger.exception("Error enabling premium profile for user=%s", user_id)
            return False
        return True

    @staticmethod
    def _profile_update(now: datetime) -> Dict[str, Any]:
        return {
            "isBetaTester": True,
            "premiumAccess": True,
            "premiumFeatures": FeatureFlagSet.all_enabled().to_profile_flags(),
            "subscriptionStatus": BETA_SUBSCRIPTION_STATUS,
            "betaAccessGranted": now,
            "lastUpdated": now,
        }

    async def reconcile_profile(self, identity: Optional[UserIdentity]) -> bool:
        """Retry a profile write that failed after a confirmation.

        Returns ``True`` when nothing is pending afterwards.
        """

        if identity is None or not self._cache.profile_sync_pending():
            return True
        record = self._cache.read(identity.id)
        if record is None or record.status is not EntitlementStatus.CONFIRMED:
            self._cache.mark_profile_sync_pending(False)
            return True
        synced = await self._sync_profile(identity.id, self._clock())
        self._cache.mark_profile_sync_pending(not synced)
        if synced:
            logger.info("Reconciled premium profile for user=%s", identity.id)
        return synced

    async def revoke(self, user_id: str) -> RevocationResult:
        """Deactivate a beta tester remotely and clear this device's premium flags.

        The local flags are cleared even when the remote update fails.
        """

        logger.info("Revoking beta access for user=%s", user_id)
        remote_updated = False
        try:
            await asyncio.wait_for(
                self._document_store.deactivate_beta_tester(user_id, self._clock()),
                timeout=self._source_timeout,
            )
            remote_updated = True
        except asyncio.TimeoutError:
            logger.warning("Timed out deactivating beta tester user=%s", user_id)
        except EntitlementError:
            logger.exception("Error deactivating beta tester user=%s", user_id)
        finally:
            self._cache.revoke_premium()
        logger.info("Beta access revoked for user=%s remote_updated=%s", user_id, remote_updated)
        return RevocationResult(user_id=user_id, remote_updated=remote_updated, local_cleared=True)

    async def get_beta_tester_info(self, identity: Optional[UserIdentity]) -> Optional[BetaTesterInfo]:
        if identity is None:
            return None
        try:
            raw = await asyncio.wait_for(
                self._document_store.get_beta_tester(identity.id),
                timeout=self._source_timeout,
            )
        except (asyncio.TimeoutError, EntitlementError):
            logger.exception("Error getting beta tester info for user=%s", identity.id)
            return None
        if raw is None:
            return None
        try:
            document = BetaTesterDocument.model_validate(raw)
        except ValidationError:
            logger.warning("Malformed beta tester document for user=%s", identity.id)
            return None
        return BetaTesterInfo(
            user_id=identity.id,
            email=identity.email or "",
            invited_date=document.invited_date,
            program=document.program or "",
            is_active=document.is_active,
            feedback_count=document.feedback_count or 0,
        )
