import pytest

from app.db.models.sales import Order, OrderStatus
from app.db.models.wms.allocation import Allocation, AllocationStatus
from app.db.models.wms.tasking import Task, TaskEvent, TaskItemStatus, TaskKind, TaskStatus
from app.events.types import Dimensions, EventType
from services.fulfillment.errors import (
    AlreadyCompletedError,
    DuplicateTaskError,
    InvalidStateError,
    NoPickedItemsError,
    PendingItemsError,
    TaskItemNotFoundError,
    TaskNotFoundError,
    WrongTaskKindError,
)


@pytest.fixture
def pack_task(service, picked_order):
    order, _ = picked_order
    return service.generate_pack_list(order.id, user_id="packer-1")


def _verify_all(service, task):
    for ti in task.items:
        service.verify_pack_item(ti.id, user_id="packer-1")


def test_pack_list_mirrors_completed_pick_lines(service, picked_order, pack_task, publisher, db):
    order, _ = picked_order

    assert pack_task.kind == TaskKind.PACK
    assert pack_task.status == TaskStatus.PENDING
    assert pack_task.total_items == 3
    lines = [(ti.sequence, ti.product_variant.sku, ti.quantity_required, ti.location_id) for ti in pack_task.items]
    assert lines == [(1, "SKU-A", 2, None), (2, "SKU-B", 1, None), (3, "SKU-A", 1, None)]
    assert db.get(Order, order.id).status == OrderStatus.PACKING
    assert publisher.types[-1] == EventType.PACKING_STARTED
    assert publisher.events[-1].typed_payload().total_items == 3


def test_pack_list_skips_short_lines(service, warehouse):
    order = warehouse.order([
        {"sku": "SKU-A", "qty": 2, "seq": 1},
        {"sku": "SKU-B", "qty": 4, "seq": 2},
    ])
    task = service.generate_pick_list(order.id)
    service.confirm_pick_item(task.items[0].id)
    service.confirm_pick_item(task.items[1].id, quantity=1)

    pack = service.generate_pack_list(order.id)

    assert [ti.product_variant.sku for ti in pack.items] == ["SKU-A"]


def test_pack_list_needs_picked_order(service, warehouse):
    order = warehouse.order([{"sku": "SKU-A", "qty": 1}])
    service.generate_pick_list(order.id)

    with pytest.raises(InvalidStateError):
        service.generate_pack_list(order.id)


def test_pack_list_needs_completed_pick_lines(service, warehouse):
    order = warehouse.order([{"sku": "SKU-A", "qty": 2}])
    task = service.generate_pick_list(order.id)
    service.confirm_pick_item(task.items[0].id, quantity=0)

    with pytest.raises(NoPickedItemsError):
        service.generate_pack_list(order.id)


def test_second_pack_list_is_rejected(service, picked_order, pack_task, db):
    order, _ = picked_order
    db.get(Order, order.id).status = OrderStatus.PICKED
    db.commit()

    with pytest.raises(DuplicateTaskError):
        service.generate_pack_list(order.id)
    assert db.query(Task).filter(Task.kind == TaskKind.PACK).count() == 1


def test_verify_marks_line_and_reports_progress(service, pack_task, publisher):
    publisher.clear()
    first = pack_task.items[0]

    res = service.verify_pack_item(first.id, user_id="packer-1")

    assert res.verified
    assert not res.all_verified
    assert res.task_item.status == TaskItemStatus.COMPLETED
    assert res.task_item.quantity_completed == res.task_item.quantity_required
    assert res.task_item.item_scanned
    assert publisher.types == [EventType.PACKING_ITEM_VERIFIED]
    assert publisher.events[0].payload["progress"] == "1/3"


def test_repeat_verify_is_not_progress(service, pack_task, publisher, db):
    first = pack_task.items[0]
    service.verify_pack_item(first.id)
    publisher.clear()

    res = service.verify_pack_item(first.id)

    assert res.verified is False
    assert res.all_verified is False
    assert publisher.events == []
    assert db.get(Task, pack_task.id).completed_items == 1


def test_last_verify_reports_all_verified(service, pack_task):
    items = list(pack_task.items)
    for ti in items[:-1]:
        service.verify_pack_item(ti.id)

    assert service.verify_pack_item(items[-1].id).all_verified


def test_verify_rejects_pick_lines(service, picked_order, db):
    order, _ = picked_order
    pick = db.query(Task).filter(Task.order_id == order.id, Task.kind == TaskKind.PICK).one()

    with pytest.raises(WrongTaskKindError):
        service.verify_pack_item(pick.items[0].id)


def test_verify_unknown_line(service):
    with pytest.raises(TaskItemNotFoundError):
        service.verify_pack_item("nope")


def test_complete_packing_records_shipment_details(service, picked_order, pack_task, publisher, db):
    order, _ = picked_order
    _verify_all(service, pack_task)
    publisher.clear()

    task = service.complete_packing(
        pack_task.id,
        weight=32,
        weight_unit="ounce",
        dimensions=Dimensions(length=10, width=8, height=6),
        user_id="packer-1",
    )

    assert task.status == TaskStatus.COMPLETED
    assert task.completed_at is not None
    assert float(task.packed_weight) == 32
    assert task.packed_weight_unit == "ounce"
    assert task.packed_dimensions == {"length": 10, "width": 8, "height": 6, "unit": "inch"}
    assert task.verified_by == "packer-1"
    assert db.get(Order, order.id).status == OrderStatus.PACKED
    assert publisher.types == [EventType.PACKING_COMPLETED, EventType.ORDER_PACKED]
    assert db.query(TaskEvent).filter(TaskEvent.task_id == task.id, TaskEvent.event_type == "TASK_COMPLETED").count() == 1


def test_weight_unit_defaults_to_ounces(service, pack_task):
    _verify_all(service, pack_task)

    task = service.complete_packing(pack_task.id, weight=2.5)

    assert task.packed_weight_unit == "ounce"
    assert task.packed_dimensions is None


def test_complete_packing_with_pending_lines(service, picked_order, pack_task, db):
    order, _ = picked_order
    service.verify_pack_item(pack_task.items[0].id)

    with pytest.raises(PendingItemsError) as exc:
        service.complete_packing(pack_task.id, weight=5)

    assert exc.value.count == 2
    assert db.get(Task, pack_task.id).status == TaskStatus.IN_PROGRESS
    assert db.get(Order, order.id).status == OrderStatus.PACKING


def test_complete_packing_twice(service, pack_task):
    _verify_all(service, pack_task)
    service.complete_packing(pack_task.id, weight=5)

    with pytest.raises(AlreadyCompletedError):
        service.complete_packing(pack_task.id, weight=5)


def test_complete_packing_unknown_task(service):
    with pytest.raises(TaskNotFoundError):
        service.complete_packing("missing", weight=1)


def test_complete_packing_rejects_pick_task(service, picked_order, db):
    order, _ = picked_order
    pick = db.query(Task).filter(Task.order_id == order.id, Task.kind == TaskKind.PICK).one()

    with pytest.raises(WrongTaskKindError):
        service.complete_packing(pick.id, weight=1)


def test_complete_packing_promotes_lagging_allocations(service, picked_order, pack_task, db):
    order, _ = picked_order
    db.query(Allocation).filter(Allocation.order_id == order.id).first().status = AllocationStatus.ALLOCATED
    db.commit()
    _verify_all(service, pack_task)

    service.complete_packing(pack_task.id, weight=5)

    assert {a.status for a in db.query(Allocation).filter(Allocation.order_id == order.id)} == {AllocationStatus.PICKED}
