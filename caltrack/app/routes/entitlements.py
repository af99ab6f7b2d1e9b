"""API routes exposing entitlement status and feature gating."""
from __future__ import annotations

import os
from typing import Callable, Dict, Optional

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, status

from ..entitlements import BetaTesterInfo, EntitlementStatus, PremiumFeature, UserIdentity
from ..feature_gates import FeatureGate, FeatureGateError, require_feature
from ..schemas.entitlements import EntitlementStatusResponse, RevocationResponse, ScanOutcomeResponse
from ..services.entitlements import current_identity, get_feature_gate


_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_identity(
    authorization: Optional[str] = Header(None),
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Optional[UserIdentity]:
    return current_identity(authorization=authorization, session_token=session_token)


def _require_identity(identity: Optional[UserIdentity] = Depends(_get_current_identity)) -> UserIdentity:
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return identity


def _enforce_feature(feature: PremiumFeature) -> FeatureGate:
    gate = get_feature_gate()
    try:
        require_feature(gate.check_feature(feature))
    except FeatureGateError as exc:
        raise exc.to_http_exception() from exc
    return gate


def require_feature_access(feature: PremiumFeature) -> Callable[[], FeatureGate]:
    """Dependency factory refusing the request with 403 unless ``feature`` is unlocked."""

    def dependency() -> FeatureGate:
        return _enforce_feature(feature)

    return dependency


def _require_requested_feature(feature: PremiumFeature) -> FeatureGate:
    return _enforce_feature(feature)


router = APIRouter(prefix="/api/entitlements", tags=["entitlements"])


@router.get("/status", response_model=EntitlementStatusResponse)
def get_status() -> EntitlementStatusResponse:
    return EntitlementStatusResponse.from_gate(get_feature_gate())


@router.post("/refresh", response_model=EntitlementStatusResponse)
async def refresh_status(
    identity: Optional[UserIdentity] = Depends(_get_current_identity),
) -> EntitlementStatusResponse:
    gate = get_feature_gate()
    resolved: EntitlementStatus = await gate.resolve_now(identity)
    return EntitlementStatusResponse.from_gate(gate, resolved)


@router.get("/features/{feature}")
def check_feature(
    feature: PremiumFeature,
    gate: FeatureGate = Depends(_require_requested_feature),
) -> Dict[str, object]:
    return {"feature": feature.value, "granted": True, "betaTester": gate.is_beta_tester()}


@router.post("/scans", response_model=ScanOutcomeResponse)
def consume_scan() -> ScanOutcomeResponse:
    gate = get_feature_gate()
    outcome = gate.execute_food_scan(lambda: None, on_limit_reached=lambda: None)
    return ScanOutcomeResponse.from_outcome(outcome, gate.get_remaining_scans())


@router.get("/beta-info", response_model=BetaTesterInfo)
async def get_beta_info(identity: UserIdentity = Depends(_require_identity)) -> BetaTesterInfo:
    gate = get_feature_gate()
    info = await gate.resolver.get_beta_tester_info(identity)
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not enrolled in the beta program")
    return info


@router.post("/revoke/{user_id}", response_model=RevocationResponse)
async def revoke_beta_access(
    user_id: str,
    identity: UserIdentity = Depends(_require_identity),
) -> RevocationResponse:
    if user_id != identity.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot revoke beta access for another user")
    gate = get_feature_gate()
    result = await gate.resolver.revoke(user_id)
    return RevocationResponse.from_result(result)
