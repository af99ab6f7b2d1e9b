"""Subscription prompts shown when a premium feature is refused."""
from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..entitlements.catalog import PremiumFeature

logger = logging.getLogger("feature_gates.prompts")

PROMPT_MESSAGES = {
    PremiumFeature.MULTI_AI_RECOGNITION: "Upgrade to Premium for multi-AI food recognition.",
    PremiumFeature.VOICE_ASSISTANT: "Unlock voice logging in 20+ languages.",
    PremiumFeature.ADVANCED_COACHING: "Get AI coaching that adapts to your lifestyle.",
    PremiumFeature.UNLIMITED_SCANNING: "Upgrade for unlimited food scanning.",
    PremiumFeature.ADVANCED_ANALYTICS: "Unlock detailed nutrition insights and progress tracking.",
    PremiumFeature.PRIORITY_SUPPORT: "Get priority support and direct access to our team.",
    PremiumFeature.ALL_LANGUAGES: "Unlock voice logging in your native language.",
}


class SubscriptionPromptNotifier(Protocol):
    """Presents an upgrade prompt for a refused feature."""

    def show_prompt(self, feature: PremiumFeature, *, language: Optional[str] = None) -> None:
        ...


class LoggingSubscriptionPromptNotifier:
    """Records prompts to the application logger until a UI channel is wired in."""

    def show_prompt(self, feature: PremiumFeature, *, language: Optional[str] = None) -> None:
        if language:
            logger.info("Subscription prompt feature=%s language=%s: %s", feature.value, language, PROMPT_MESSAGES[feature])
        else:
            logger.info("Subscription prompt feature=%s: %s", feature.value, PROMPT_MESSAGES[feature])
