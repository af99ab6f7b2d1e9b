"""Shared application context for reusable dependencies."""
from __future__ import annotations

from typing import Any, Callable, Optional

_get_current_identity: Optional[Callable[..., Any]] = None


def configure(*, get_current_identity: Callable[..., Any]) -> None:
    """Register the identity provider used by the entitlement routes."""

    global _get_current_identity

    _get_current_identity = get_current_identity


def reset() -> None:
    global _get_current_identity

    _get_current_identity = None


def _require(value: Optional[Any], name: str) -> Any:
    if value is None:
        raise RuntimeError(f"Application context has not been configured yet: {name}")
    return value


def is_configured() -> bool:
    return _get_current_identity is not None


def get_current_identity(*args: Any, **kwargs: Any) -> Any:
    dependency = _require(_get_current_identity, "get_current_identity")
    return dependency(*args, **kwargs)
