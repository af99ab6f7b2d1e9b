"""Application wiring for the entitlement resolver and the feature gate."""
from __future__ import annotations

import logging
import threading
from typing import Optional

from ... import app_context
from ...config import EntitlementConfig, load_entitlement_config
from ..entitlements import (
    AllowListClient,
    AllowListResponse,
    EntitlementCache,
    EntitlementDocumentStore,
    EntitlementResolver,
    HttpAllowListClient,
    InMemoryDocumentStore,
    InMemoryKeyValueStore,
    InstallMetadata,
    InstallMetadataProvider,
    InternalTestingChannelClassifier,
    KeyValueStore,
    SQLiteKeyValueStore,
    SourceUnavailableError,
    StaticInstallMetadataProvider,
    UserIdentity,
    build_default_sources,
)
from ..entitlements.store import Clock
from ..feature_gates import DailyScanQuota, FeatureGate, SubscriptionPromptNotifier
from ..feature_gates.gate import IdentityProvider

logger = logging.getLogger("entitlements")

_gate_lock = threading.Lock()
_gate: Optional[FeatureGate] = None


class UnconfiguredAllowListClient(AllowListClient):
    """Stands in when no allow-list URL is configured; the source reports unavailable."""

    async def check_beta_tester(self, email: str, timestamp_ms: int) -> AllowListResponse:
        raise SourceUnavailableError("allow_list", "BETA_ALLOW_LIST_URL is not configured")


def current_identity(**credentials: Optional[str]) -> Optional[UserIdentity]:
    """Resolve the caller through the registered identity provider, if any."""

    if not app_context.is_configured():
        return None
    return app_context.get_current_identity(**credentials)


def build_feature_gate(
    config: EntitlementConfig,
    *,
    store: Optional[KeyValueStore] = None,
    document_store: Optional[EntitlementDocumentStore] = None,
    allow_list_client: Optional[AllowListClient] = None,
    metadata_provider: Optional[InstallMetadataProvider] = None,
    identity_provider: Optional[IdentityProvider] = None,
    prompt_notifier: Optional[SubscriptionPromptNotifier] = None,
    clock: Optional[Clock] = None,
) -> FeatureGate:
    """Compose a gate from configuration, filling in local defaults for missing collaborators."""

    if store is None:
        if config.local_store_path:
            store = SQLiteKeyValueStore(config.local_store_path)
        else:
            logger.warning("LOCAL_STORE_PATH not set; entitlement cache will not survive restarts")
            store = InMemoryKeyValueStore()
    if document_store is None:
        logger.warning("No document store configured; using in-memory beta tester records")
        document_store = InMemoryDocumentStore()
    if allow_list_client is None:
        if config.allow_list_url:
            allow_list_client = HttpAllowListClient(config.allow_list_url, timeout=config.source_timeout_seconds)
        else:
            allow_list_client = UnconfiguredAllowListClient()
    if metadata_provider is None:
        metadata_provider = StaticInstallMetadataProvider(
            InstallMetadata(
                installer_package=config.app_installer_package,
                signature_hashes=config.app_signature_hashes,
                build_type=config.app_build_type,
                version_name=config.app_version_name,
            )
        )

    classifier = InternalTestingChannelClassifier(
        canonical_installer=config.installer_package,
        beta_signatures=config.beta_signatures,
        beta_markers=config.beta_build_markers,
    )
    sources = build_default_sources(
        metadata_provider=metadata_provider,
        allow_list_client=allow_list_client,
        document_store=document_store,
        classifier=classifier,
        program=config.beta_program,
        clock=clock,
    )
    resolver = EntitlementResolver(
        sources,
        document_store,
        EntitlementCache(store, ttl_ms=config.cache_ttl_ms),
        clock=clock,
        source_timeout=config.source_timeout_seconds,
    )
    quota = DailyScanQuota(store, clock=clock, daily_limit=config.daily_free_scans)
    return FeatureGate(
        resolver,
        quota,
        identity_provider=identity_provider or current_identity,
        prompt_notifier=prompt_notifier,
    )


def get_feature_gate() -> FeatureGate:
    """Return the process-wide gate, building it from the environment on first use."""

    global _gate

    gate = _gate
    if gate is not None:
        return gate
    with _gate_lock:
        if _gate is None:
            _gate = build_feature_gate(load_entitlement_config())
        return _gate


def configure_feature_gate(gate: FeatureGate) -> FeatureGate:
    """Install an explicitly composed gate; must run before concurrent access begins."""

    global _gate

    with _gate_lock:
        _gate = gate
    return gate


def reset_feature_gate() -> None:
    global _gate

    with _gate_lock:
        _gate = None


__all__ = [
    "UnconfiguredAllowListClient",
    "build_feature_gate",
    "configure_feature_gate",
    "current_identity",
    "get_feature_gate",
    "reset_feature_gate",
]
