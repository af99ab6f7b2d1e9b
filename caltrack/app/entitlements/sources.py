"""Independent verification sources consulted by the entitlement cascade.

Each source answers with a :class:`SourceOutcome` and never raises: collaborator
failures become ``UNAVAILABLE`` and malformed or negative data becomes
``NOT_CONFIRMED``. The resolver decides what the combined answer means.
"""
from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Protocol, Tuple

from pydantic import ValidationError

from .exceptions import SourceUnavailableError
from .models import AllowListResponse, BetaTesterDocument, InstallMetadata, ManualGrant, UserIdentity
from .store import Clock, local_now, to_epoch_millis

logger = logging.getLogger("entitlements.sources")

INTERNAL_TESTING_PROGRAM = "internal_testing"
PLAY_STORE_INSTALLER = "com.android.vending"
DEFAULT_BETA_SIGNATURES: Tuple[str, ...] = (
    "beta_signature_hash_1",
    "beta_signature_hash_2",
    "internal_testing_signature",
)
DEFAULT_BETA_MARKERS: Tuple[str, ...] = ("beta", "internal")


class SourceOutcome(str, Enum):
    CONFIRMED = "confirmed"
    NOT_CONFIRMED = "not_confirmed"
    UNAVAILABLE = "unavailable"


class EntitlementSource(Protocol):
    """One step of the verification cascade."""

    name: str

    async def check(self, identity: UserIdentity) -> SourceOutcome:
        ...


class InstallMetadataProvider(Protocol):
    """Platform lookup for the installing package and build signature."""

    def get_install_metadata(self) -> InstallMetadata:
        ...


class InstallChannelClassifier(Protocol):
    """Decides whether an installation came from the internal testing channel."""

    def is_internal_testing(self, metadata: InstallMetadata) -> bool:
        ...


class AllowListClient(Protocol):
    """Remote function that knows which emails belong to the beta program."""

    async def check_beta_tester(self, email: str, timestamp_ms: int) -> AllowListResponse:
        ...


class EntitlementDocumentStore(Protocol):
    """Document collections read and written by the resolver."""

    async def get_beta_tester(self, user_id: str) -> Optional[Mapping[str, Any]]:
        ...

    async def get_manual_grant(self, user_id: str) -> Optional[Mapping[str, Any]]:
        ...

    async def update_user_profile(self, user_id: str, fields: Mapping[str, Any]) -> None:
        ...

    async def deactivate_beta_tester(self, user_id: str, revoked_at: datetime) -> None:
        ...


class InternalTestingChannelClassifier:
    """Heuristic: store installer plus a beta signature or beta build marker."""

    def __init__(
        self,
        *,
        canonical_installer: str = PLAY_STORE_INSTALLER,
        beta_signatures: Iterable[str] = DEFAULT_BETA_SIGNATURES,
        beta_markers: Iterable[str] = DEFAULT_BETA_MARKERS,
    ) -> None:
        self._canonical_installer = canonical_installer
        self._beta_signatures = frozenset(beta_signatures)
        self._beta_markers = tuple(marker.lower() for marker in beta_markers if marker)

    def is_internal_testing(self, metadata: InstallMetadata) -> bool:
        if metadata.installer_package != self._canonical_installer:
            return False
        if any(signature in self._beta_signatures for signature in metadata.signature_hashes):
            return True
        build_type = metadata.build_type.lower()
        version_name = metadata.version_name.lower()
        return any(marker in build_type or marker in version_name for marker in self._beta_markers)


class InstallChannelSource:
    name = "install_channel"

    def __init__(
        self,
        metadata_provider: InstallMetadataProvider,
        classifier: Optional[InstallChannelClassifier] = None,
    ) -> None:
        self._metadata_provider = metadata_provider
        self._classifier = classifier or InternalTestingChannelClassifier()

    async def check(self, identity: UserIdentity) -> SourceOutcome:
        try:
            metadata = self._metadata_provider.get_install_metadata()
        except Exception:
            logger.exception("Error reading install metadata")
            return SourceOutcome.UNAVAILABLE
        logger.debug("Installer package: %s", metadata.installer_package)
        if self._classifier.is_internal_testing(metadata):
            logger.info("Confirmed internal testing installation")
            return SourceOutcome.CONFIRMED
        return SourceOutcome.NOT_CONFIRMED


class AllowListSource:
    name = "allow_list"

    def __init__(
        self,
        client: AllowListClient,
        *,
        program: str = INTERNAL_TESTING_PROGRAM,
        clock: Optional[Clock] = None,
    ) -> None:
        self._client = client
        self._program = program
        self._clock = clock or local_now

    async def check(self, identity: UserIdentity) -> SourceOutcome:
        if not identity.email:
            return SourceOutcome.NOT_CONFIRMED
        try:
            response = await self._client.check_beta_tester(identity.email, to_epoch_millis(self._clock()))
        except SourceUnavailableError as exc:
            logger.warning("Allow-list check unavailable for user=%s: %s", identity.id, exc.reason)
            return SourceOutcome.UNAVAILABLE
        if not isinstance(response, AllowListResponse):
            response = AllowListResponse.from_payload(response)
        if response.is_beta_tester and response.beta_program == self._program:
            logger.info("Allow-list confirmed beta tester user=%s", identity.id)
            return SourceOutcome.CONFIRMED
        return SourceOutcome.NOT_CONFIRMED


class BetaTesterDocumentSource:
    name = "beta_tester_document"

    def __init__(self, store: EntitlementDocumentStore, *, program: str = INTERNAL_TESTING_PROGRAM) -> None:
        self._store = store
        self._program = program

    async def check(self, identity: UserIdentity) -> SourceOutcome:
        try:
            raw = await self._store.get_beta_tester(identity.id)
        except SourceUnavailableError as exc:
            logger.warning("Beta tester document unavailable for user=%s: %s", identity.id, exc.reason)
            return SourceOutcome.UNAVAILABLE
        if raw is None:
            return SourceOutcome.NOT_CONFIRMED
        try:
            document = BetaTesterDocument.model_validate(raw)
        except ValidationError:
            logger.warning("Malformed beta tester document for user=%s", identity.id)
            return SourceOutcome.NOT_CONFIRMED
        if document.confirms(self._program):
            logger.info("Beta tester document confirmed user=%s", identity.id)
            return SourceOutcome.CONFIRMED
        return SourceOutcome.NOT_CONFIRMED


class ManualGrantSource:
    name = "manual_grant"

    def __init__(self, store: EntitlementDocumentStore, *, clock: Optional[Clock] = None) -> None:
        self._store = store
        self._clock = clock or local_now

    async def check(self, identity: UserIdentity) -> SourceOutcome:
        try:
            raw = await self._store.get_manual_grant(identity.id)
        except SourceUnavailableError as exc:
            logger.warning("Manual grant lookup unavailable for user=%s: %s", identity.id, exc.reason)
            return SourceOutcome.UNAVAILABLE
        if raw is None:
            return SourceOutcome.NOT_CONFIRMED
        try:
            grant = ManualGrant.model_validate(raw)
        except ValidationError:
            logger.warning("Malformed manual grant for user=%s", identity.id)
            return SourceOutcome.NOT_CONFIRMED
        if grant.is_valid_at(self._clock()):
            logger.info("Manual grant confirmed user=%s", identity.id)
            return SourceOutcome.CONFIRMED
        return SourceOutcome.NOT_CONFIRMED
