"""Entitlement resolution: models, verification sources, cache and resolver."""

from .cache import DEFAULT_TTL_MS, EntitlementCache
from .catalog import FEATURE_POLICY, FeatureFlagSet, PremiumFeature, is_allowed_for_subscriber
from .clients import (
    HttpAllowListClient,
    InMemoryDocumentStore,
    PostgresDocumentStore,
    StaticInstallMetadataProvider,
)
from .exceptions import EntitlementError, PersistenceError, SourceUnavailableError
from .models import (
    AllowListResponse,
    BetaTesterDocument,
    BetaTesterInfo,
    EntitlementRecord,
    EntitlementStatus,
    InstallMetadata,
    ManualGrant,
    RevocationResult,
    UserIdentity,
)
from .service import EntitlementResolver, build_default_sources
from .sources import (
    AllowListClient,
    AllowListSource,
    BetaTesterDocumentSource,
    EntitlementDocumentStore,
    EntitlementSource,
    InstallChannelClassifier,
    InstallChannelSource,
    InstallMetadataProvider,
    InternalTestingChannelClassifier,
    ManualGrantSource,
    SourceOutcome,
)
from .store import Clock, InMemoryKeyValueStore, KeyValueStore, SQLiteKeyValueStore

__all__ = [
    "DEFAULT_TTL_MS",
    "EntitlementCache",
    "FEATURE_POLICY",
    "FeatureFlagSet",
    "PremiumFeature",
    "is_allowed_for_subscriber",
    "HttpAllowListClient",
    "InMemoryDocumentStore",
    "PostgresDocumentStore",
    "StaticInstallMetadataProvider",
    "EntitlementError",
    "PersistenceError",
    "SourceUnavailableError",
    "AllowListResponse",
    "BetaTesterDocument",
    "BetaTesterInfo",
    "EntitlementRecord",
    "EntitlementStatus",
    "InstallMetadata",
    "ManualGrant",
    "RevocationResult",
    "UserIdentity",
    "EntitlementResolver",
    "build_default_sources",
    "AllowListClient",
    "AllowListSource",
    "BetaTesterDocumentSource",
    "EntitlementDocumentStore",
    "EntitlementSource",
    "InstallChannelClassifier",
    "InstallChannelSource",
    "InstallMetadataProvider",
    "InternalTestingChannelClassifier",
    "ManualGrantSource",
    "SourceOutcome",
    "Clock",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SQLiteKeyValueStore",
]
