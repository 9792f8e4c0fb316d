"""Order lifecycle orchestration.

:class:`OrderService` is the single entry point for every lifecycle
operation.  It ties together the status machine, the location validator, the
ledger engine and the order store.

Mutation sequence (every mutating operation):

1. Acquire the per-order lock.
2. Load the order (raises :exc:`OrderNotFound` on miss).
3. Authorise: status transition, and for location updates tracker identity,
   signature and plausibility.  A refusal raises a typed
   :class:`~trackchain.errors.TrackChainError` before anything is written.
4. Append the ledger record.  The ledger is authoritative, so this happens
   first.
5. Save the new order value; for location updates, mirror the fix into the
   location index.
6. Release the lock and return a :class:`LifecycleResult`.

Locking strategy:
    Each order has a :class:`threading.Lock` stored in a dict keyed by
    ``order_id``.  The dict itself is protected by ``_locks_mutex``.  An
    operation only ever touches one order, so there is no lock ordering to
    worry about.

Store failures (:class:`~trackchain.errors.StoreError`) propagate unchanged.
If the ledger append succeeds and the order save then fails, the ledger holds
a record the order store does not reflect; :meth:`OrderService.audit` does
not repair this.
"""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime

from trackchain.codec import HashCodec, canonical_json
from trackchain.errors import (
    InvalidTransition,
    OrderNotFound,
    OrderValidationError,
    TamperDetected,
    TrackChainError,
)
from trackchain.ledger.engine import LedgerEngine
from trackchain.models import (
    EventType,
    LifecycleResult,
    LocationFix,
    Order,
    OrderDetails,
    QrDescriptor,
    VerificationSummary,
    order_identity_fields,
    utc_now,
)
from trackchain.status import OrderStatus, is_legal_transition, parse_status
from trackchain.store.base import OrderStore
from trackchain.tracking import LocationValidator

logger = logging.getLogger(__name__)

DEFAULT_VERIFICATION_BASE_URL = "http://localhost:3000/verify"


def new_order_id(now: datetime) -> str:
    """``ORD-<epoch millis>-<10 random hex chars>``."""
    return f"ORD-{int(now.timestamp() * 1000)}-{secrets.token_hex(5)}"


def new_tracker_id() -> str:
    return f"GPS-{secrets.token_hex(5)}"


class OrderService:
    """Create and advance orders, recording every step in the ledger.

    Args:
        orders:    Order state and location index store.
        ledger:    Ledger engine (owns the ledger store).
        codec:     Codec used for content and QR hashes.
        validator: GPS fix validator.  Defaults to one built from ``codec``
                   with the default distance limit.
        verification_base_url: Prefix for public verification links;
                   the order id is appended as a path segment.
        clock:     Zero-argument callable returning an aware UTC ``datetime``.
    """

    def __init__(
        self,
        *,
        orders: OrderStore,
        ledger: LedgerEngine,
        codec: HashCodec,
        validator: LocationValidator | None = None,
        verification_base_url: str = DEFAULT_VERIFICATION_BASE_URL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._orders = orders
        self._ledger = ledger
        self._codec = codec
        self._validator = validator or LocationValidator(codec)
        self._verification_base_url = verification_base_url.rstrip("/")
        self._clock = clock
        # Per-order lock pool; guards the load-authorise-append-save cycle.
        self._locks: dict[str, threading.Lock] = {}
        self._locks_mutex = threading.Lock()

    @property
    def ledger(self) -> LedgerEngine:
        return self._ledger

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    def create_order(
        self,
        customer_id: str,
        product_name: str,
        quantity: int,
        product_id: str | None = None,
    ) -> LifecycleResult:
        """Mint a new ``pending`` order and record its ``created`` event.

        Raises:
            OrderValidationError: If ``customer_id`` or ``product_name`` is
                blank, or ``quantity`` is not a positive integer.
        """
        _validate_creation(customer_id, product_name, quantity)

        created_at = self._clock()
        order_id = new_order_id(created_at)
        digest = self._codec.content_hash(
            order_identity_fields(
                order_id=order_id,
                customer_id=customer_id,
                product_name=product_name,
                product_id=product_id,
                quantity=quantity,
                created_at=created_at,
            )
        )

        with self._order_lock(order_id):
            record = self._ledger.append(
                order_id,
                EventType.CREATED,
                {
                    "customerId": customer_id,
                    "productName": product_name,
                    "productId": product_id,
                    "quantity": quantity,
                    "contentHash": digest,
                },
            )
            order = Order(
                order_id=order_id,
                customer_id=customer_id,
                product_name=product_name,
                product_id=product_id,
                quantity=quantity,
                created_at=created_at,
                content_hash=digest,
                transaction_id=record.transaction_id,
            )
            self._orders.save_order(order)

        logger.info("Order %s created for customer %s", order_id, customer_id)
        return LifecycleResult(order, record)

    def dispatch(self, order_id: str, gps_tracker_id: str | None = None) -> LifecycleResult:
        """Pack a pending order, assign its tracker and build its QR descriptor.

        Raises:
            OrderNotFound: Unknown order.
            InvalidTransition: Order is not ``pending``.
        """
        with self._order_lock(order_id), self._rejections("dispatch", order_id):
            order = self._load(order_id)
            if order.status is not OrderStatus.PENDING or not is_legal_transition(
                order.status, OrderStatus.PACKED
            ):
                raise InvalidTransition(order.status.value, OrderStatus.PACKED.value)

            tracker_id = gps_tracker_id or new_tracker_id()
            qr_code = self._build_qr(order)
            record = self._ledger.append(
                order_id,
                EventType.DISPATCHED,
                {
                    "gpsTrackerId": tracker_id,
                    "qrCodeHash": qr_code.hash,
                    "status": OrderStatus.PACKED.value,
                },
            )
            updated = replace(
                order, status=OrderStatus.PACKED, gps_tracker_id=tracker_id, qr_code=qr_code
            )
            self._orders.save_order(updated)

        logger.info("Order %s dispatched with tracker %s", order_id, tracker_id)
        return LifecycleResult(updated, record)

    def update_status(self, order_id: str, new_status: OrderStatus | str) -> LifecycleResult:
        """Advance the order to ``new_status`` if it is the permitted successor.

        Raises:
            OrderNotFound: Unknown order.
            InvalidTransition: ``new_status`` is unknown or not the successor.
        """
        with self._order_lock(order_id), self._rejections("update_status", order_id):
            order = self._load(order_id)
            requested = new_status.value if isinstance(new_status, OrderStatus) else new_status
            try:
                target = parse_status(new_status)
            except ValueError:
                raise InvalidTransition(order.status.value, str(requested)) from None
            if not is_legal_transition(order.status, target):
                raise InvalidTransition(order.status.value, str(requested))

            record = self._ledger.append(
                order_id,
                EventType.STATUS_UPDATED,
                {"previousStatus": order.status.value, "newStatus": target.value},
            )
            updated = replace(order, status=target)
            self._orders.save_order(updated)

        logger.info("Order %s moved %s -> %s", order_id, order.status.value, target.value)
        return LifecycleResult(updated, record)

    def update_location(self, order_id: str, fix: LocationFix) -> LifecycleResult:
        """Record an authenticated, plausible GPS fix.

        A ``dispatched`` order advances to ``in-transit`` on its first
        accepted fix.  Other statuses are left as they are.

        Raises:
            OrderNotFound: Unknown order.
            TrackerMismatch: Fix is not from the order's assigned tracker.
            SignatureInvalid: Fix signature does not verify.
            ImplausibleLocation: Jump from the previous fix is too large.
        """
        with self._order_lock(order_id), self._rejections("update_location", order_id):
            order = self._load(order_id)
            self._validator.validate(
                fix,
                expected_tracker_id=order.gps_tracker_id,
                previous=order.last_location,
            )

            status = order.status
            if status is OrderStatus.DISPATCHED and is_legal_transition(
                status, OrderStatus.IN_TRANSIT
            ):
                status = OrderStatus.IN_TRANSIT

            record = self._ledger.append(
                order_id,
                EventType.LOCATION_UPDATED,
                {
                    "latitude": float(fix.latitude),
                    "longitude": float(fix.longitude),
                    "gpsTrackerId": fix.gps_tracker_id,
                    "timestamp": fix.timestamp.isoformat(),
                    "signature": fix.signature,
                    "status": status.value,
                },
            )
            updated = replace(order, status=status, locations=(*order.locations, fix))
            self._orders.save_order(updated)
            self._orders.append_location(order_id, fix)

        logger.debug("Order %s location recorded (%d fixes)", order_id, len(updated.locations))
        return LifecycleResult(updated, record)

    def deliver(self, order_id: str, delivery_proof: str | None = None) -> LifecycleResult:
        """Mark the order delivered and store the delivery proof.

        Raises:
            OrderNotFound: Unknown order.
            InvalidTransition: Order is not ``out-for-delivery``.
        """
        with self._order_lock(order_id), self._rejections("deliver", order_id):
            order = self._load(order_id)
            if not is_legal_transition(order.status, OrderStatus.DELIVERED):
                raise InvalidTransition(order.status.value, OrderStatus.DELIVERED.value)

            delivered_at = self._clock()
            record = self._ledger.append(
                order_id,
                EventType.DELIVERED,
                {"deliveryProof": delivery_proof, "deliveredAt": delivered_at.isoformat()},
            )
            updated = replace(
                order,
                status=OrderStatus.DELIVERED,
                delivered_at=delivered_at,
                delivery_proof=delivery_proof,
            )
            self._orders.save_order(updated)

        logger.info("Order %s delivered", order_id)
        return LifecycleResult(updated, record)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def verify(self, order_id: str) -> VerificationSummary:
        """Public authenticity summary.  Never raises on tamper; see :meth:`audit`."""
        order = self._load(order_id)
        chain = self._ledger.verify_chain(order_id)
        if not chain.ok:
            logger.warning(
                "Ledger for order %s failed verification at %s: %s",
                order_id,
                chain.transaction_id,
                chain.reason,
            )
        return VerificationSummary(
            order_id=order.order_id,
            status=order.status,
            content_hash=order.content_hash,
            transaction_count=sum(1 for _ in self._ledger.history_for(order_id)),
            location_count=len(order.locations),
            ledger_intact=chain.ok,
            verification_url=self.verification_url(order_id),
            content_intact=self._content_intact(order),
        )

    def get_order_details(self, order_id: str) -> OrderDetails:
        order = self._load(order_id)
        return OrderDetails(
            order=order,
            history=tuple(self._ledger.history_for(order_id)),
            locations=tuple(self._orders.query_locations(order_id)),
        )

    def list_orders(self) -> list[Order]:
        return self._orders.list_orders()

    def audit(self, order_id: str) -> int:
        """Verify the order's content hash and ledger chain; return the record count.

        Raises:
            OrderNotFound: Unknown order.
            TamperDetected: Content hash or any ledger record fails to verify.
        """
        order = self._load(order_id)
        if not self._content_intact(order):
            logger.warning("Content hash mismatch for order %s", order_id)
            raise TamperDetected(order_id, order.transaction_id, "content hash mismatch")
        return self._ledger.assert_intact(order_id)

    def verification_url(self, order_id: str) -> str:
        return f"{self._verification_base_url}/{order_id}"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _get_lock(self, order_id: str) -> threading.Lock:
        """Return the per-order lock, creating it on first use."""
        with self._locks_mutex:
            if order_id not in self._locks:
                self._locks[order_id] = threading.Lock()
            return self._locks[order_id]

    @contextmanager
    def _order_lock(self, order_id: str) -> Iterator[None]:
        lock = self._get_lock(order_id)
        with lock:
            yield

    @contextmanager
    def _rejections(self, operation: str, order_id: str) -> Iterator[None]:
        """Log refused operations at INFO and re-raise."""
        try:
            yield
        except TrackChainError as exc:
            logger.info("%s refused for order %s: %s", operation, order_id, exc)
            raise

    def _load(self, order_id: str) -> Order:
        order = self._orders.load_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def _content_intact(self, order: Order) -> bool:
        return self._codec.content_hash(order.identity_fields()) == order.content_hash

    def _build_qr(self, order: Order) -> QrDescriptor:
        generated_at = self._clock()
        qr_data = {
            "orderId": order.order_id,
            "contentHash": order.content_hash,
            "transactionId": order.transaction_id,
            "verificationUrl": self.verification_url(order.order_id),
            "generatedAt": generated_at.isoformat(),
        }
        return QrDescriptor(
            data=canonical_json(qr_data),
            hash=self._codec.content_hash(qr_data),
            generated_at=generated_at,
        )


def _validate_creation(customer_id: object, product_name: object, quantity: object) -> None:
    if not isinstance(customer_id, str) or not customer_id.strip():
        raise OrderValidationError("customer_id is required.")
    if not isinstance(product_name, str) or not product_name.strip():
        raise OrderValidationError("product_name is required.")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise OrderValidationError(f"quantity must be a positive integer, got {quantity!r}.")
