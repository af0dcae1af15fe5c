import pytest

from app.db.models.sales import OrderStatus
from services.orders.store import (
    ORDER_TRANSITIONS,
    InvalidOrderTransitionError,
    OrderNotFoundError,
    OrderStore,
    can_transition,
)


@pytest.mark.parametrize("src", [OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.READY_TO_PICK, OrderStatus.ALLOCATED])
def test_pickable_statuses_can_start_picking(src):
    assert can_transition(src, OrderStatus.PICKING)


@pytest.mark.parametrize("src,dst", [
    (OrderStatus.PICKING, OrderStatus.PICKED),
    (OrderStatus.PICKED, OrderStatus.PACKING),
    (OrderStatus.PICKED, OrderStatus.PACKED),
    (OrderStatus.PACKING, OrderStatus.PACKED),
    (OrderStatus.PACKED, OrderStatus.SHIPPED),
])
def test_fulfillment_path(src, dst):
    assert can_transition(src, dst)


@pytest.mark.parametrize("src,dst", [
    (OrderStatus.SHIPPED, OrderStatus.PICKING),
    (OrderStatus.CANCELLED, OrderStatus.PENDING),
    (OrderStatus.PACKED, OrderStatus.PICKING),
    (OrderStatus.ALLOCATED, OrderStatus.PACKED),
])
def test_rejected_transitions(src, dst):
    assert not can_transition(src, dst)


def test_every_status_has_a_row():
    statuses = {v for k, v in vars(OrderStatus).items() if k.isupper()}
    assert statuses == set(ORDER_TRANSITIONS)


def test_update_status_does_not_commit(warehouse, db, session_factory):
    order = warehouse.order([{"sku": "SKU-A", "qty": 1}])
    store = OrderStore(db)

    store.update_order_status(order.id, OrderStatus.PICKING)

    other = session_factory()
    try:
        assert other.get(type(order), order.id).status == OrderStatus.ALLOCATED
    finally:
        other.close()
    db.rollback()


def test_update_to_same_status_is_a_no_op(warehouse, db):
    order = warehouse.order([{"sku": "SKU-A", "qty": 1}], status=OrderStatus.SHIPPED)

    assert OrderStore(db).update_order_status(order.id, OrderStatus.SHIPPED).status == OrderStatus.SHIPPED


def test_illegal_update_raises(warehouse, db):
    order = warehouse.order([{"sku": "SKU-A", "qty": 1}], status=OrderStatus.DELIVERED)

    with pytest.raises(InvalidOrderTransitionError) as exc:
        OrderStore(db).update_order_status(order.id, OrderStatus.PICKING)
    assert exc.value.details == {"order_id": order.id, "from": "DELIVERED", "to": "PICKING"}


def test_get_order_missing(db):
    store = OrderStore(db)
    assert store.find_order("nope") is None
    with pytest.raises(OrderNotFoundError):
        store.get_order("nope")
