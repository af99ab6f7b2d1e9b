"""API schemas for entitlement endpoints."""
from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements import EntitlementStatus, RevocationResult
from ..feature_gates import FeatureAccessOutcome, FeatureGate


class EntitlementStatusResponse(BaseModel):
    status: EntitlementStatus
    premium_access: bool = Field(alias="premiumAccess")
    beta_tester: bool = Field(alias="betaTester")
    remaining_scans: int = Field(alias="remainingScans")
    unlimited_scans: bool = Field(alias="unlimitedScans")
    features: Dict[str, bool] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_gate(cls, gate: FeatureGate, status: Optional[EntitlementStatus] = None) -> "EntitlementStatusResponse":
        return cls(
            status=status or gate.last_status,
            premium_access=gate.has_premium_access(),
            beta_tester=gate.is_beta_tester(),
            remaining_scans=gate.get_remaining_scans(),
            unlimited_scans=gate.can_scan_unlimited(),
            features=gate.get_feature_access_summary(),
        )


class ScanOutcomeResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    remaining_scans: int = Field(alias="remainingScans")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_outcome(cls, outcome: FeatureAccessOutcome, remaining: int) -> "ScanOutcomeResponse":
        return cls(
            allowed=outcome.granted,
            reason=outcome.reason.value if outcome.reason else None,
            remaining_scans=remaining,
        )


class RevocationResponse(BaseModel):
    user_id: str = Field(alias="userId")
    remote_updated: bool = Field(alias="remoteUpdated")
    local_cleared: bool = Field(alias="localCleared")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: RevocationResult) -> "RevocationResponse":
        return cls(
            user_id=result.user_id,
            remote_updated=result.remote_updated,
            local_cleared=result.local_cleared,
        )
