"""Error taxonomy for the loyalty sync core."""
from __future__ import annotations


class LoyaltyError(Exception):
    """Base class for every error raised by the core."""

    retryable: bool = False


class IdentityError(LoyaltyError):
    """The identity provider rejected the token or the anonymous request."""


class ReadError(LoyaltyError):
    """A point read or collection read could not be served."""

    retryable = True


class SubscriptionError(LoyaltyError):
    """A live subscription failed (for example a revoked permission)."""


class WriteError(LoyaltyError):
    """A create, set, merge or update write was not applied."""

    retryable = True

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class PartialLedgerWriteError(WriteError):
    """The private record was updated but the public mirror write failed.

    The two records diverge until the public record is re-derived from the
    private one (next mirror sync or an explicit reconcile).
    """

    def __init__(self, message: str, *, identity: str, committed_points: int, path: str | None = None) -> None:
        super().__init__(message, path=path)
        self.identity = identity
        self.committed_points = committed_points
