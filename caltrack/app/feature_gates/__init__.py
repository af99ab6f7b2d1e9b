"""Feature gating: premium access checks, free scan allowance and prompts."""
from .enforcement import DenialReason, FeatureAccessOutcome, require_feature
from .exceptions import FeatureGateError
from .gate import UNLIMITED_SCANS, FeatureGate
from .prompts import LoggingSubscriptionPromptNotifier, SubscriptionPromptNotifier
from .quota import DEFAULT_DAILY_SCAN_LIMIT, DailyScanQuota, ScanQuotaEvaluation

__all__ = [
    "DEFAULT_DAILY_SCAN_LIMIT",
    "DailyScanQuota",
    "DenialReason",
    "FeatureAccessOutcome",
    "FeatureGate",
    "FeatureGateError",
    "LoggingSubscriptionPromptNotifier",
    "ScanQuotaEvaluation",
    "SubscriptionPromptNotifier",
    "UNLIMITED_SCANS",
    "require_feature",
]
