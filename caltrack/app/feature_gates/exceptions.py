"""Errors raised when a gated request is refused."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

from ..entitlements.catalog import PremiumFeature


class FeatureGateError(Exception):
    """A premium feature or the free scan allowance was refused.

    ``code`` is the machine-readable denial reason sent to clients, e.g.
    ``subscription_required`` or ``scan_limit_reached``.
    """

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        code: str,
        message: str,
        *,
        feature: Optional[PremiumFeature] = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.feature = feature
        self.context = context

    @property
    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.feature is not None:
            body["feature"] = self.feature.value
            body["featureName"] = self.feature.display_name
        body.update(self.context)
        return body

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.payload)
