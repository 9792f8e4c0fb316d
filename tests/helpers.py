"""
Test helpers shared across modules.

Plain functions and classes live here rather than in ``conftest.py`` so test
modules can import them directly.
"""

from collections.abc import Callable
from datetime import datetime, timedelta

from tests.constants import BERLIN, EPOCH
from trackchain.models import LocationFix, Order
from trackchain.service import OrderService
from trackchain.status import OrderStatus


class StepClock:
    """Clock that advances one second per call, starting at ``EPOCH``."""

    def __init__(self, start: datetime = EPOCH, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + self.step
        return current


def advance_to(
    service: OrderService,
    status: OrderStatus,
    make_fix: Callable[..., LocationFix],
    *,
    tracker_id: str = "GPS-TEST-1",
) -> Order:
    """
    Create an order and drive it forward until it reaches ``status``.

    The path is create, dispatch (packed), update_status to dispatched, one
    location fix at Berlin (in-transit), then out-for-delivery and delivered.
    """
    order = service.create_order("C1", "Widget", 5).order
    if status is OrderStatus.PENDING:
        return order
    order = service.dispatch(order.order_id, tracker_id).order
    if status is OrderStatus.PACKED:
        return order
    order = service.update_status(order.order_id, OrderStatus.DISPATCHED).order
    if status is OrderStatus.DISPATCHED:
        return order
    order = service.update_location(order.order_id, make_fix(tracker_id, *BERLIN)).order
    if status is OrderStatus.IN_TRANSIT:
        return order
    order = service.update_status(order.order_id, OrderStatus.OUT_FOR_DELIVERY).order
    if status is OrderStatus.OUT_FOR_DELIVERY:
        return order
    return service.deliver(order.order_id, "signed-by-recipient").order
