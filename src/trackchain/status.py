"""
Shipment lifecycle state machine.

A shipment moves through one linear chain with no branching and no rollback:

    pending → packed → dispatched → in-transit → out-for-delivery → delivered

``pending`` is the only initial state and ``delivered`` is terminal.  The
whole lifecycle contract is the :data:`TRANSITIONS` table below; every
caller goes through :func:`is_legal_transition` rather than comparing
statuses ad hoc.

Usage:
    from trackchain.status import OrderStatus, is_legal_transition

    if not is_legal_transition(order.status, OrderStatus.PACKED):
        raise InvalidTransition(order.status.value, OrderStatus.PACKED.value)

The predicate is pure and total: it accepts enum members or raw strings, and
any value it does not recognise is simply illegal (fail closed).  Raising the
error and leaving the order unchanged is the caller's job.
"""

from enum import Enum

# ============================================================================
# STATUS DEFINITIONS
# ============================================================================


class OrderStatus(str, Enum):
    """
    Lifecycle states of a shipment, in lifecycle order.

    Values are the wire/storage strings; they use hyphens to match the
    labels shown to customers and carriers.
    """

    PENDING = "pending"
    PACKED = "packed"
    DISPATCHED = "dispatched"
    IN_TRANSIT = "in-transit"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"


# ============================================================================
# TRANSITION TABLE
# ============================================================================

# Each status maps to its single permitted successor; the terminal status
# maps to None.
TRANSITIONS: dict[OrderStatus, OrderStatus | None] = {
    OrderStatus.PENDING: OrderStatus.PACKED,
    OrderStatus.PACKED: OrderStatus.DISPATCHED,
    OrderStatus.DISPATCHED: OrderStatus.IN_TRANSIT,
    OrderStatus.IN_TRANSIT: OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.OUT_FOR_DELIVERY: OrderStatus.DELIVERED,
    OrderStatus.DELIVERED: None,
}

INITIAL_STATUS = OrderStatus.PENDING


# ============================================================================
# HELPERS
# ============================================================================


def _coerce(value: OrderStatus | str | None) -> OrderStatus | None:
    """Map a status or its string value to an enum member, or None if unknown."""
    if isinstance(value, OrderStatus):
        return value
    if isinstance(value, str):
        try:
            return OrderStatus(value)
        except ValueError:
            return None
    return None


def parse_status(value: OrderStatus | str) -> OrderStatus:
    """
    Convert a status string to :class:`OrderStatus`.

    Raises:
        ValueError: If ``value`` is not a known status.
    """
    status = _coerce(value)
    if status is None:
        raise ValueError(f"Unknown order status: {value!r}")
    return status


def is_legal_transition(current: OrderStatus | str, next_: OrderStatus | str) -> bool:
    """
    Return True iff ``next_`` is the single permitted successor of ``current``.

    Same-state, backwards and skip-ahead pairs are illegal, as is any pair
    where either side is not a known status.

    Args:
        current: The order's present status.
        next_: The requested status.

    Returns:
        bool: True only for the five edges of the lifecycle chain.
    """
    current_status = _coerce(current)
    next_status_ = _coerce(next_)
    if current_status is None or next_status_ is None:
        return False
    return TRANSITIONS.get(current_status) is next_status_


def next_status(current: OrderStatus | str) -> OrderStatus | None:
    """Return the permitted successor of ``current`` (None if terminal or unknown)."""
    status = _coerce(current)
    if status is None:
        return None
    return TRANSITIONS[status]


def is_terminal(status: OrderStatus | str) -> bool:
    """Return True if no transition leaves ``status``."""
    coerced = _coerce(status)
    return coerced is not None and TRANSITIONS[coerced] is None
