"""Typed exceptions for the order-ledger engine.

Two families live here:

Domain outcomes (``TrackChainError`` subclasses)
    Recoverable, caller-facing results of a lifecycle operation that was
    refused: unknown order, illegal status change, forged or implausible GPS
    fix, or a ledger that no longer verifies.  Every operation that raises one
    of these has left the order and the ledger untouched.

Storage failures (``StoreError`` subclasses)
    Infrastructure faults from a store adapter (SQLite errors, filesystem
    errors).  They carry a :class:`StoreOperationContext` and the underlying
    cause, and are propagated unchanged through the service so callers can map
    them to 5xx-style responses.  Nothing in the engine retries them.
"""

from __future__ import annotations

from dataclasses import dataclass

# =============================================================================
# DOMAIN OUTCOMES
# =============================================================================


class TrackChainError(Exception):
    """Base class for every refused lifecycle operation."""

    code = "error"


class OrderNotFound(TrackChainError):
    """Referenced order does not exist."""

    code = "not_found"

    def __init__(self, order_id: str) -> None:
        self.order_id = order_id
        super().__init__(f"Order {order_id!r} not found.")


class OrderValidationError(TrackChainError, ValueError):
    """Creation input is missing or malformed."""

    code = "invalid_order"


class InvalidTransition(TrackChainError):
    """Requested status change is not permitted from the current state.

    Attributes:
        current: Status the order is in.
        requested: Status the caller asked for.
    """

    code = "invalid_transition"

    def __init__(self, current: str, requested: str) -> None:
        self.current = str(current)
        self.requested = str(requested)
        super().__init__(f"Invalid status transition from {self.current} to {self.requested}.")


class TrackerMismatch(TrackChainError):
    """GPS fix was reported by a tracker other than the order's assigned one."""

    code = "tracker_mismatch"

    def __init__(self, expected: str | None, received: str) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f"GPS tracker ID mismatch: expected {expected!r}, got {received!r}.")


class SignatureInvalid(TrackChainError):
    """GPS fix signature does not verify under the deployment key."""

    code = "signature_invalid"

    def __init__(self, tracker_id: str) -> None:
        self.tracker_id = tracker_id
        super().__init__(f"Signature verification failed for fix from tracker {tracker_id!r}.")


class ImplausibleLocation(TrackChainError):
    """Distance from the previous fix exceeds the configured maximum."""

    code = "implausible_location"

    def __init__(self, distance_km: float, max_km: float) -> None:
        self.distance_km = distance_km
        self.max_km = max_km
        super().__init__(
            f"Location change appears unrealistic: {distance_km:.1f} km "
            f"exceeds the {max_km:.1f} km limit."
        )


class TamperDetected(TrackChainError):
    """A ledger record no longer matches its stored hash or chain link."""

    code = "tamper_detected"

    def __init__(self, order_id: str, transaction_id: str | None, reason: str) -> None:
        self.order_id = order_id
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(
            f"Ledger for order {order_id!r} failed verification at "
            f"{transaction_id!r}: {reason}"
        )


# =============================================================================
# STORAGE FAILURES
# =============================================================================


@dataclass(frozen=True, slots=True)
class StoreOperationContext:
    """Which store call failed, e.g. ``"orders.save_order"``, plus free-form detail."""

    operation: str
    details: str | None = None

    def __str__(self) -> str:
        return f"{self.operation}: {self.details}" if self.details else self.operation


class StoreError(RuntimeError):
    """Root of every failure raised by a store adapter."""


class StoreOperationError(StoreError):
    """A store call failed.

    ``context`` names the call; ``cause`` is the ``sqlite3.Error`` or
    ``OSError`` behind it, when there is one.  The message is ``str(context)``.
    """

    def __init__(
        self,
        *,
        context: StoreOperationContext,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(str(context))
        self.context = context
        self.cause = cause


class StoreReadError(StoreOperationError):
    """Loading or querying failed, or stored data could not be decoded."""


class StoreWriteError(StoreOperationError):
    """Saving or appending failed."""


class ConfigurationError(RuntimeError):
    """Raised at bootstrap when required settings are absent."""
