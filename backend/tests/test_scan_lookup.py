from app.db.models.wms.tasking import Task, TaskItem, TaskItemStatus, TaskKind
from services.fulfillment.scan_lookup import build_scan_lookup, current_task


def _order(warehouse):
    return warehouse.order([
        {"sku": "SKU-A", "qty": 2, "location": "A-01", "seq": 1, "upc": "012345678905", "barcode": "INT-A"},
        {"sku": "SKU-B", "qty": 1, "location": "B-02", "seq": 2},
    ])


def test_pick_entries_carry_location_and_item_codes(service, warehouse):
    order = _order(warehouse)
    task = service.generate_pick_list(order.id)
    first = task.items[0]

    lookup = service.build_scan_lookup(order.id)

    entry = lookup.pick[first.id]
    assert entry.sequence == 1
    assert entry.sku == "SKU-A"
    assert entry.expected_item_barcodes == ["012345678905", "INT-A", "SKU-A"]
    assert entry.expected_location_barcode == "LOC-A-01"
    assert entry.location_name == "A-01"
    assert entry.location_detail.zone == "A"
    assert entry.location_detail.aisle == "01"
    assert entry.image_url.endswith("SKU-A.png")
    assert lookup.pack == {}


def test_reverse_index_points_at_open_pick_lines(service, warehouse):
    order = _order(warehouse)
    task = service.generate_pick_list(order.id)
    a, b = task.items

    lookup = service.build_scan_lookup(order.id)

    assert lookup.barcode_lookup["012345678905"].task_item_id == a.id
    assert lookup.barcode_lookup["INT-A"].type == "pick"
    assert lookup.barcode_lookup["SKU-B"].task_item_id == b.id
    # location barcodes are checked per line, never reverse-indexed
    assert "LOC-A-01" not in lookup.barcode_lookup


def test_finished_lines_drop_out_of_reverse_index(service, warehouse):
    order = _order(warehouse)
    task = service.generate_pick_list(order.id)
    a = task.items[0]
    service.confirm_pick_item(a.id)

    lookup = service.build_scan_lookup(order.id)

    assert "012345678905" not in lookup.barcode_lookup
    assert "SKU-B" in lookup.barcode_lookup
    assert lookup.pick[a.id].status == TaskItemStatus.COMPLETED


def test_pack_entries_have_no_location(service, picked_order):
    order, _ = picked_order
    pack = service.generate_pack_list(order.id)

    lookup = service.build_scan_lookup(order.id)

    assert set(lookup.pack) == {ti.id for ti in pack.items}
    entry = lookup.pack[pack.items[1].id]
    assert entry.sku == "SKU-B"
    assert entry.expected_location_barcode is None
    assert entry.location_detail is None
    assert lookup.barcode_lookup["098765432109"].type == "pack"


def test_pack_line_wins_shared_barcode(service, picked_order, db):
    order, _ = picked_order
    pack = service.generate_pack_list(order.id)
    pick = current_task(db, order.id, TaskKind.PICK)
    # reopen a pick line so both tasks index SKU-B
    line = db.query(TaskItem).filter(TaskItem.task_id == pick.id, TaskItem.sequence == 2).one()
    line.status = TaskItemStatus.PENDING
    db.commit()

    lookup = build_scan_lookup(db, order.id)

    target = lookup.barcode_lookup["SKU-B"]
    assert target.type == "pack"
    assert target.task_item_id == pack.items[1].id


def test_empty_lookup_without_tasks(service, warehouse):
    order = _order(warehouse)

    lookup = service.build_scan_lookup(order.id)

    assert lookup.pick == {} and lookup.pack == {} and lookup.barcode_lookup == {}


def test_current_task_ignores_cancelled(service, warehouse, db):
    order = _order(warehouse)
    task = service.generate_pick_list(order.id)
    db.get(Task, task.id).status = "CANCELLED"
    db.commit()

    assert current_task(db, order.id, TaskKind.PICK) is None
