"""Failure types raised by entitlement collaborators."""
from __future__ import annotations


class EntitlementError(Exception):
    """Base class for entitlement failures."""


class SourceUnavailableError(EntitlementError):
    """A verification source could not produce an answer."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"{source} unavailable: {reason}")


class PersistenceError(EntitlementError):
    """A write to the local store or the document store failed."""

    def __init__(self, target: str, reason: str) -> None:
        self.target = target
        self.reason = reason
        super().__init__(f"Failed to persist to {target}: {reason}")
