"""
Domain errors for the auction core.

Every rejection carries a human-readable reason suitable for showing to
a client, and a machine-readable kind for the wire.
"""

from typing import Optional


class AuctionError(Exception):
    """Base class for auction-specific errors."""

    kind = "error"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.kind, "reason": self.reason}


class NotFoundError(AuctionError):
    """Game, cricketer or participant missing or outside the stated game."""

    kind = "not_found"


class ConflictError(AuctionError):
    """Operation incompatible with the current state."""

    kind = "conflict"


class StaleStateError(ConflictError):
    """AuctionState changed underneath a read-modify-write."""


class AuthorizationError(AuctionError):
    """Caller is not allowed to perform the operation."""

    kind = "forbidden"


class InvalidInputError(AuctionError):
    """Malformed command input."""

    kind = "validation"


class BidRejectedError(AuctionError):
    """A bid failed one of the sequential bid rules."""

    kind = "validation"

    def __init__(self, reason: str, rule: str, limit: Optional[float] = None):
        super().__init__(reason)
        self.rule = rule
        self.limit = limit

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["rule"] = self.rule
        if self.limit is not None:
            data["limit"] = self.limit
        return data
