from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.core.errors import InvalidStateError, NotFoundError
from app.db.models.sales import Order, OrderStatus

logger = logging.getLogger(__name__)

S = OrderStatus

# from-status -> allowed to-statuses
ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.ALLOCATED, S.PICKING, S.ON_HOLD, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.READY_TO_PICK, S.ALLOCATED, S.PICKING, S.ON_HOLD, S.CANCELLED}),
    S.READY_TO_PICK: frozenset({S.ALLOCATED, S.PICKING, S.ON_HOLD, S.CANCELLED}),
    S.ALLOCATED: frozenset({S.PICKING, S.READY_TO_PICK, S.ON_HOLD, S.CANCELLED}),
    S.PICKING: frozenset({S.PICKED, S.READY_TO_PICK, S.ON_HOLD}),
    # PICKED -> PACKED is the bin flow, which has no interactive pack task
    S.PICKED: frozenset({S.PACKING, S.PACKED, S.ON_HOLD}),
    S.PACKING: frozenset({S.PACKED, S.PICKED}),
    S.PACKED: frozenset({S.SHIPPED}),
    S.SHIPPED: frozenset({S.DELIVERED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
    S.ON_HOLD: frozenset({S.PENDING, S.CONFIRMED, S.READY_TO_PICK, S.PICKING, S.PICKED, S.CANCELLED}),
}


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str):
        super().__init__("Order", order_id, error_code="ORDER_NOT_FOUND")


class InvalidOrderTransitionError(InvalidStateError):
    error_code = "INVALID_ORDER_TRANSITION"

    def __init__(self, order_id: str, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Order {order_id} cannot move from {from_status} to {to_status}",
            details={"order_id": order_id, "from": from_status, "to": to_status},
        )


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ORDER_TRANSITIONS.get(from_status, frozenset())


class OrderStore:
    """Order lifecycle as seen by fulfillment.

    Status writes join the caller's transaction; nothing here commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_order(self, order_id: str, *, for_update: bool = False) -> Order | None:
        q = self.db.query(Order).filter(Order.id == order_id)
        if for_update:
            q = q.with_for_update()
        return q.first()

    def get_order(self, order_id: str) -> Order:
        order = self.find_order(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    def update_order_status(self, order_id: str, status: str) -> Order:
        order = self.get_order(order_id)
        if order.status == status:
            return order
        if not can_transition(order.status, status):
            raise InvalidOrderTransitionError(order_id, order.status, status)
        logger.info("Order %s %s -> %s", order.order_number, order.status, status)
        order.status = status
        return order
