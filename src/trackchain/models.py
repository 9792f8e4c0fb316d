"""Immutable value types for orders, GPS fixes and ledger records.

These frozen dataclasses flow between the service, the ledger engine and the
store adapters.  Mutation is always expressed as a new value
(``dataclasses.replace``) so a refused operation can never leave a
half-updated order behind.

Serialisation
-------------
Every type round-trips through ``to_dict`` / ``from_dict`` using plain JSON
types: timestamps become ISO-8601 strings and enums become their values.  The
store adapters rely on this, and ledger hashes are computed over the same
canonical forms, so a record read back from disk re-hashes to the value it
was written with.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from trackchain.status import OrderStatus

if TYPE_CHECKING:
    from trackchain.codec import HashCodec


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(UTC)


def _parse_ts(value: datetime | str | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ── Ledger event types ─────────────────────────────────────────────────────────


class EventType(Enum):
    """Lifecycle events that produce a ledger record (past tense: facts)."""

    CREATED = "created"
    DISPATCHED = "dispatched"
    STATUS_UPDATED = "status_updated"
    LOCATION_UPDATED = "location_updated"
    DELIVERED = "delivered"


# ── GPS fix ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LocationFix:
    """One signed GPS observation reported by a tracker.

    Attributes:
        latitude:       Decimal degrees, ``[-90, 90]``.
        longitude:      Decimal degrees, ``[-180, 180]``.
        gps_tracker_id: Identity of the reporting device.
        timestamp:      Observation time (aware UTC).
        signature:      HMAC over ``lat,lon,timestamp,tracker_id`` under the
                        deployment key.  See :meth:`signing_fields`.

    Raises:
        ValueError: On out-of-range coordinates or an empty tracker id.
    """

    latitude: float
    longitude: float
    gps_tracker_id: str
    timestamp: datetime
    signature: str

    def __post_init__(self) -> None:
        if not -90.0 <= float(self.latitude) <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude!r}")
        if not -180.0 <= float(self.longitude) <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude!r}")
        if not self.gps_tracker_id:
            raise ValueError("gps_tracker_id must be a non-empty string.")

    def signing_fields(self) -> tuple[float, float, datetime, str]:
        """Fields covered by :attr:`signature`, in signing order."""
        return (float(self.latitude), float(self.longitude), self.timestamp, self.gps_tracker_id)

    @classmethod
    def signed(
        cls,
        codec: HashCodec,
        *,
        latitude: float,
        longitude: float,
        gps_tracker_id: str,
        timestamp: datetime | None = None,
    ) -> LocationFix:
        """Build a fix and sign it the way tracker firmware does."""
        ts = timestamp or utc_now()
        signature = codec.sign(float(latitude), float(longitude), ts, gps_tracker_id)
        return cls(
            latitude=float(latitude),
            longitude=float(longitude),
            gps_tracker_id=gps_tracker_id,
            timestamp=ts,
            signature=signature,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "gps_tracker_id": self.gps_tracker_id,
            "timestamp": _iso(self.timestamp),
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LocationFix:
        return cls(
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            gps_tracker_id=data["gps_tracker_id"],
            timestamp=_parse_ts(data["timestamp"]),  # type: ignore[arg-type]
            signature=data["signature"],
        )


# ── Ledger record ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class LedgerRecord:
    """One append-only, hash-stamped entry in the audit trail.

    ``record_hash`` covers :meth:`hash_fields`: the order id, event type,
    payload, timestamp and ``prev_hash``.  Because ``prev_hash`` is the
    ``record_hash`` of the previous record for the same order, the records of
    one order form a hash chain: removing, reordering or editing any record
    breaks either its own hash or the next record's link.

    Attributes:
        transaction_id: ``0x``-prefixed 256-bit random id.
        order_id:       Order this event belongs to (many records per order).
        event_type:     What happened.
        timestamp:      When the ledger stamped it (aware UTC).
        payload:        Event-specific, JSON-compatible mapping.
        record_hash:    SHA-256 hex over :meth:`hash_fields`.
        prev_hash:      ``record_hash`` of the order's previous record, or
                        ``None`` for its first record.
    """

    transaction_id: str
    order_id: str
    event_type: EventType
    timestamp: datetime
    payload: Mapping[str, Any]
    record_hash: str
    prev_hash: str | None = None

    def hash_fields(self) -> dict[str, Any]:
        """The exact structure that :attr:`record_hash` is computed over."""
        return record_hash_fields(
            order_id=self.order_id,
            event_type=self.event_type,
            payload=self.payload,
            timestamp=self.timestamp,
            prev_hash=self.prev_hash,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "order_id": self.order_id,
            "event_type": self.event_type.value,
            "timestamp": _iso(self.timestamp),
            "payload": dict(self.payload),
            "record_hash": self.record_hash,
            "prev_hash": self.prev_hash,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LedgerRecord:
        return cls(
            transaction_id=data["transaction_id"],
            order_id=data["order_id"],
            event_type=EventType(data["event_type"]),
            timestamp=_parse_ts(data["timestamp"]),  # type: ignore[arg-type]
            payload=dict(data.get("payload") or {}),
            record_hash=data["record_hash"],
            prev_hash=data.get("prev_hash"),
        )


def record_hash_fields(
    *,
    order_id: str,
    event_type: EventType,
    payload: Mapping[str, Any],
    timestamp: datetime,
    prev_hash: str | None,
) -> dict[str, Any]:
    """Assemble the hashed body of a ledger record."""
    return {
        "order_id": order_id,
        "event_type": event_type.value,
        "payload": dict(payload),
        "timestamp": timestamp.isoformat(),
        "prev_hash": prev_hash,
    }


# ── QR descriptor ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class QrDescriptor:
    """The data a QR label encodes, plus a hash of it.

    Rendering the image is a presentation concern; only the descriptor is
    produced here.

    Attributes:
        data:         Canonical JSON string to embed in the QR code.
        hash:         Content hash of the descriptor mapping.
        generated_at: When the descriptor was built.
    """

    data: str
    hash: str
    generated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "hash": self.hash, "generated_at": _iso(self.generated_at)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> QrDescriptor:
        return cls(
            data=data["data"],
            hash=data["hash"],
            generated_at=_parse_ts(data["generated_at"]),  # type: ignore[arg-type]
        )


# ── Order ──────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Order:
    """One shipment and its current lifecycle state.

    Only :class:`~trackchain.service.OrderService` produces new ``Order``
    values; stores merely persist and return them.
    """

    order_id: str
    customer_id: str
    product_name: str
    quantity: int
    created_at: datetime
    content_hash: str
    status: OrderStatus = OrderStatus.PENDING
    product_id: str | None = None
    transaction_id: str | None = None
    gps_tracker_id: str | None = None
    qr_code: QrDescriptor | None = None
    locations: tuple[LocationFix, ...] = field(default_factory=tuple)
    delivered_at: datetime | None = None
    delivery_proof: str | None = None

    def identity_fields(self) -> dict[str, Any]:
        """Creation-time fields covered by :attr:`content_hash`."""
        return order_identity_fields(
            order_id=self.order_id,
            customer_id=self.customer_id,
            product_name=self.product_name,
            product_id=self.product_id,
            quantity=self.quantity,
            created_at=self.created_at,
        )

    @property
    def last_location(self) -> LocationFix | None:
        return self.locations[-1] if self.locations else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "customer_id": self.customer_id,
            "product_name": self.product_name,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "content_hash": self.content_hash,
            "transaction_id": self.transaction_id,
            "gps_tracker_id": self.gps_tracker_id,
            "qr_code": self.qr_code.to_dict() if self.qr_code else None,
            "locations": [fix.to_dict() for fix in self.locations],
            "delivered_at": _iso(self.delivered_at),
            "delivery_proof": self.delivery_proof,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Order:
        qr = data.get("qr_code")
        return cls(
            order_id=data["order_id"],
            customer_id=data["customer_id"],
            product_name=data["product_name"],
            product_id=data.get("product_id"),
            quantity=int(data["quantity"]),
            status=OrderStatus(data["status"]),
            created_at=_parse_ts(data["created_at"]),  # type: ignore[arg-type]
            content_hash=data["content_hash"],
            transaction_id=data.get("transaction_id"),
            gps_tracker_id=data.get("gps_tracker_id"),
            qr_code=QrDescriptor.from_dict(qr) if qr else None,
            locations=tuple(LocationFix.from_dict(f) for f in data.get("locations") or ()),
            delivered_at=_parse_ts(data.get("delivered_at")),
            delivery_proof=data.get("delivery_proof"),
        )


def order_identity_fields(
    *,
    order_id: str,
    customer_id: str,
    product_name: str,
    product_id: str | None,
    quantity: int,
    created_at: datetime,
) -> dict[str, Any]:
    """Assemble the identity-defining fields of an order for content hashing."""
    return {
        "order_id": order_id,
        "customer_id": customer_id,
        "product_name": product_name,
        "product_id": product_id,
        "quantity": quantity,
        "created_at": created_at.isoformat(),
    }


# ── Read-side results ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class VerificationSummary:
    """Public authenticity summary returned by ``OrderService.verify``.

    This is the only view of an order that unauthenticated callers get, so it
    carries fingerprints and counts, never customer data.
    """

    order_id: str
    status: OrderStatus
    content_hash: str
    transaction_count: int
    location_count: int
    ledger_intact: bool
    verification_url: str
    content_intact: bool = True

    @property
    def authentic(self) -> bool:
        return self.ledger_intact and self.content_intact

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "status": self.status.value,
            "authentic": self.authentic,
            "content_hash": self.content_hash,
            "transaction_count": self.transaction_count,
            "location_count": self.location_count,
            "ledger_intact": self.ledger_intact,
            "content_intact": self.content_intact,
            "verification_url": self.verification_url,
        }


@dataclass(frozen=True)
class LifecycleResult:
    """Outcome of a successful mutating operation: the new order and its ledger record."""

    order: Order
    record: LedgerRecord


@dataclass(frozen=True)
class OrderDetails:
    """Full internal view of an order: current state, audit trail and GPS index."""

    order: Order
    history: tuple[LedgerRecord, ...]
    locations: tuple[LocationFix, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": self.order.to_dict(),
            "history": [record.to_dict() for record in self.history],
            "locations": [fix.to_dict() for fix in self.locations],
        }
