"""Domain models for beta-tester entitlement resolution."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator


class EntitlementStatus(str, Enum):
    """Outcome of a resolution run for the current user."""

    CONFIRMED = "beta_tester_confirmed"
    REGULAR = "regular_user"
    UNAUTHENTICATED = "not_authenticated"
    PENDING = "verification_pending"

    @property
    def grants_access(self) -> bool:
        return self is EntitlementStatus.CONFIRMED


class UserIdentity(BaseModel):
    """Authenticated user as reported by the identity provider."""

    id: str
    email: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: str) -> str:
        if not value:
            raise ValueError("id must be non-empty")
        return value


@dataclass(frozen=True)
class EntitlementRecord:
    """Cached verdict bound to the user it was computed for."""

    user_id: str
    status: EntitlementStatus
    verified_at_ms: int


class ManualGrant(BaseModel):
    """Administrative override read from the manual-grant collection."""

    granted: StrictBool = False
    expiry_date: Optional[datetime] = Field(default=None, alias="expiryDate")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("expiry_date")
    @classmethod
    def _normalize_expiry(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_valid_at(self, now: datetime) -> bool:
        if not self.granted:
            return False
        return self.expiry_date is None or now < self.expiry_date


class BetaTesterDocument(BaseModel):
    """Per-user document maintained by the beta program administrators."""

    is_active: StrictBool = Field(default=False, alias="isActive")
    program: Optional[str] = None
    invited_date: Optional[datetime] = Field(default=None, alias="invitedDate")
    feedback_count: Optional[int] = Field(default=None, alias="feedbackCount")
    revoked_date: Optional[datetime] = Field(default=None, alias="revokedDate")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("feedback_count", mode="before")
    @classmethod
    def _ignore_unusable_feedback_count(cls, value: Any) -> Optional[int]:
        # Display-only field; never affects confirmation.
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return None

    def confirms(self, program: str) -> bool:
        return self.is_active and self.program == program and self.invited_date is not None


class AllowListResponse(BaseModel):
    """Normalized reply from the remote allow-list function."""

    is_beta_tester: bool = False
    beta_program: str = ""

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_payload(cls, payload: Any) -> "AllowListResponse":
        """Build a response leniently; unexpected shapes map to the negative reply."""

        if not isinstance(payload, Mapping):
            return cls()
        body = payload.get("result", payload)
        if not isinstance(body, Mapping):
            return cls()
        is_beta_tester = body.get("isBetaTester")
        beta_program = body.get("betaProgram")
        return cls(
            is_beta_tester=is_beta_tester if isinstance(is_beta_tester, bool) else False,
            beta_program=beta_program if isinstance(beta_program, str) else "",
        )


@dataclass(frozen=True)
class InstallMetadata:
    """Install-source details reported by the platform for this build."""

    installer_package: Optional[str]
    signature_hashes: Tuple[str, ...] = ()
    build_type: str = ""
    version_name: str = ""


class BetaTesterInfo(BaseModel):
    """Display-oriented summary of a user's beta program enrollment."""

    user_id: str = Field(alias="userId")
    email: str = ""
    invited_date: Optional[datetime] = Field(default=None, alias="invitedDate")
    program: str = ""
    is_active: bool = Field(default=False, alias="isActive")
    feedback_count: int = Field(default=0, alias="feedbackCount")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


@dataclass(frozen=True)
class RevocationResult:
    """What a revocation call managed to change."""

    user_id: str
    remote_updated: bool
    local_cleared: bool
