from __future__ import annotations

from sqlalchemy.orm import Session

from app.db.models.wms.tasking import Task, TaskItem, TaskItemStatus, TaskKind, TaskStatus
from services.fulfillment.schemas import BarcodeTarget, LocationDetail, ScanItem, ScanLookup


def current_task(db: Session, order_id: str, kind: str) -> Task | None:
    """Most recent task of a kind that was not cancelled (may be completed)."""
    return (
        db.query(Task)
        .filter(Task.order_id == order_id, Task.kind == kind, Task.status != TaskStatus.CANCELLED)
        .order_by(Task.created_at.desc())
        .first()
    )


def item_barcodes(ti: TaskItem) -> list[str]:
    pv = ti.product_variant
    if pv is None:
        return []
    return [code for code in (pv.upc, pv.barcode, pv.sku) if code]


def _scan_item(ti: TaskItem, *, with_location: bool) -> ScanItem:
    pv = ti.product_variant
    item = ScanItem(
        task_item_id=ti.id,
        sequence=ti.sequence,
        status=ti.status,
        quantity_required=ti.quantity_required,
        quantity_completed=ti.quantity_completed,
        expected_item_barcodes=item_barcodes(ti),
        sku=pv.sku if pv else None,
        variant_name=pv.name if pv else None,
        image_url=pv.image_url if pv else None,
    )
    if with_location and ti.location is not None:
        loc = ti.location
        item.expected_location_barcode = loc.barcode
        item.location_name = loc.name
        item.location_detail = LocationDetail(zone=loc.zone, aisle=loc.aisle, rack=loc.rack, shelf=loc.shelf, bin=loc.bin)
    return item


def build_scan_lookup(db: Session, order_id: str, *, pick_task: Task | None = None, pack_task: Task | None = None) -> ScanLookup:
    """Barcode index a handheld can validate scans against without calling back.

    Finished lines stay in the per-item views but are left out of the reverse
    index. Pack lines are indexed after pick lines and win on a shared code.
    """
    pick_task = pick_task or current_task(db, order_id, TaskKind.PICK)
    pack_task = pack_task or current_task(db, order_id, TaskKind.PACK)

    lookup = ScanLookup()
    if pick_task is not None:
        for ti in pick_task.items:
            lookup.pick[ti.id] = _scan_item(ti, with_location=True)
    if pack_task is not None:
        for ti in pack_task.items:
            lookup.pack[ti.id] = _scan_item(ti, with_location=False)

    for kind, entries in (("pick", lookup.pick), ("pack", lookup.pack)):
        for task_item_id, entry in entries.items():
            if entry.status in TaskItemStatus.DONE:
                continue
            for code in entry.expected_item_barcodes:
                lookup.barcode_lookup[code] = BarcodeTarget(task_item_id=task_item_id, type=kind)
    return lookup
