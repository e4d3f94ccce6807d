"""
Error types for eatguard.

Every failure inside a call frame is a ``Revert``: it carries a fixed,
stable reason string so off-chain callers can tell causes apart, and it
unwinds every state change made by the enclosing transaction.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .verifier import VerificationResult


class Revert(Exception):
    """Raised when a call frame aborts. The reason is never rewritten."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class AccessDenied(Revert):
    """Raised when an Access Token does not authorize the attempted call."""

    def __init__(self, result: "VerificationResult"):
        self.result = result
        super().__init__(result.reason or "AccessToken: verification failure")


class ValidationError(Exception):
    """Raised when wire-format input is malformed."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")
