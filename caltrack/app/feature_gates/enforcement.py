"""Access outcomes returned by the feature gate and helpers to enforce them."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ..entitlements.catalog import PremiumFeature
from .exceptions import FeatureGateError


class DenialReason(str, Enum):
    SUBSCRIPTION_REQUIRED = "subscription_required"
    SCAN_LIMIT_REACHED = "scan_limit_reached"
    LANGUAGE_REQUIRES_SUBSCRIPTION = "language_requires_subscription"


@dataclass(frozen=True)
class FeatureAccessOutcome:
    """Either ``granted`` or denied with a reason; callers branch on it explicitly."""

    feature: PremiumFeature
    granted: bool
    reason: Optional[DenialReason] = None
    detail: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(cls, feature: PremiumFeature, **detail: Any) -> "FeatureAccessOutcome":
        return cls(feature=feature, granted=True, detail=dict(detail))

    @classmethod
    def deny(cls, feature: PremiumFeature, reason: DenialReason, **detail: Any) -> "FeatureAccessOutcome":
        return cls(feature=feature, granted=False, reason=reason, detail=dict(detail))

    def __bool__(self) -> bool:
        return self.granted


def require_feature(outcome: FeatureAccessOutcome, *, message: Optional[str] = None) -> None:
    """Raise :class:`FeatureGateError` unless ``outcome`` grants access.

    Parameters
    ----------
    outcome:
        The result of a gate check such as ``FeatureGate.check_feature``.
    message:
        Optional human-friendly message. Defaults to one naming the feature.
    """

    if outcome.granted:
        return
    reason = outcome.reason or DenialReason.SUBSCRIPTION_REQUIRED
    failure_message = message or f"'{outcome.feature.display_name}' requires premium access."
    raise FeatureGateError(reason.value, failure_message, feature=outcome.feature, **outcome.detail)
