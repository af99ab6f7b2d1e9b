"""Static catalog of premium features and their subscriber policy."""
from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Dict


class PremiumFeature(str, Enum):
    """Features unlocked by premium access."""

    MULTI_AI_RECOGNITION = "multi_ai_recognition"
    VOICE_ASSISTANT = "voice_assistant"
    ADVANCED_COACHING = "advanced_coaching"
    UNLIMITED_SCANNING = "unlimited_scanning"
    ADVANCED_ANALYTICS = "advanced_analytics"
    PRIORITY_SUPPORT = "priority_support"
    ALL_LANGUAGES = "all_languages"

    @property
    def display_name(self) -> str:
        return FEATURE_DISPLAY_NAMES[self]


FEATURE_DISPLAY_NAMES: Dict[PremiumFeature, str] = {
    PremiumFeature.MULTI_AI_RECOGNITION: "Multi-AI Recognition",
    PremiumFeature.VOICE_ASSISTANT: "Voice Assistant",
    PremiumFeature.ADVANCED_COACHING: "Advanced Coaching",
    PremiumFeature.UNLIMITED_SCANNING: "Unlimited Scanning",
    PremiumFeature.ADVANCED_ANALYTICS: "Advanced Analytics",
    PremiumFeature.PRIORITY_SUPPORT: "Priority Support",
    PremiumFeature.ALL_LANGUAGES: "All Languages",
}

# Subscribed users who are not beta testers. Every feature is currently part of
# the single paid tier.
FEATURE_POLICY: Dict[PremiumFeature, bool] = {feature: True for feature in PremiumFeature}


@dataclass(frozen=True)
class FeatureFlagSet:
    """Per-feature switches written to the user profile."""

    multi_ai_recognition: bool = False
    voice_assistant: bool = False
    advanced_coaching: bool = False
    unlimited_scanning: bool = False
    advanced_analytics: bool = False
    priority_support: bool = False
    all_languages: bool = False

    @classmethod
    def all_enabled(cls) -> "FeatureFlagSet":
        return cls(**{field.name: True for field in fields(cls)})

    def to_profile_flags(self) -> Dict[str, bool]:
        """Serialize to the camelCase keys stored on the user profile."""

        return {
            "multiAIRecognition": self.multi_ai_recognition,
            "voiceAssistant": self.voice_assistant,
            "advancedCoaching": self.advanced_coaching,
            "unlimitedScanning": self.unlimited_scanning,
            "advancedAnalytics": self.advanced_analytics,
            "prioritySupport": self.priority_support,
            "allLanguages": self.all_languages,
        }


def is_allowed_for_subscriber(feature: PremiumFeature) -> bool:
    """Return the subscriber policy for ``feature``; unknown features are denied."""

    return FEATURE_POLICY.get(feature, False)
