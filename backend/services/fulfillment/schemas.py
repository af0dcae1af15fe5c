from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from app.db.models.sales import Order
from app.db.models.wms.pick_bin import PickBin, PickBinItem
from app.db.models.wms.tasking import Task, TaskItem
from app.events.types import Dimensions


# ---- Requests ----
class ConfirmPickIn(BaseModel):
    quantity: int | None = Field(default=None, ge=0)
    location_scanned: bool = False
    item_scanned: bool = False


class BinVerifyIn(BaseModel):
    barcode: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(default=1, ge=1)


class CompletePackIn(BaseModel):
    weight: float = Field(..., gt=0)
    weight_unit: str | None = Field(default=None, max_length=16)
    dimensions: Dimensions | None = None


class PackCompleteIn(CompletePackIn):
    task_id: str


class CompleteBinPackIn(CompletePackIn):
    bin_id: str


# ---- Scan lookup ----
class LocationDetail(BaseModel):
    zone: str | None = None
    aisle: str | None = None
    rack: str | None = None
    shelf: str | None = None
    bin: str | None = None


class ScanItem(BaseModel):
    task_item_id: str
    sequence: int
    status: str
    quantity_required: int
    quantity_completed: int
    expected_item_barcodes: list[str]
    sku: str | None = None
    variant_name: str | None = None
    image_url: str | None = None
    # pick lines only
    expected_location_barcode: str | None = None
    location_name: str | None = None
    location_detail: LocationDetail | None = None


class BarcodeTarget(BaseModel):
    task_item_id: str
    type: Literal["pick", "pack"]


class ScanLookup(BaseModel):
    pick: dict[str, ScanItem] = Field(default_factory=dict)
    pack: dict[str, ScanItem] = Field(default_factory=dict)
    barcode_lookup: dict[str, BarcodeTarget] = Field(default_factory=dict)


# ---- Serializers ----
def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def task_item_out(ti: TaskItem) -> dict[str, Any]:
    pv = ti.product_variant
    loc = ti.location
    return {
        "id": ti.id,
        "sequence": ti.sequence,
        "status": ti.status,
        "quantity_required": ti.quantity_required,
        "quantity_completed": ti.quantity_completed,
        "sku": pv.sku if pv else None,
        "variant_name": pv.name if pv else None,
        "location_name": loc.name if loc else None,
        "location_scanned": ti.location_scanned,
        "item_scanned": ti.item_scanned,
        "short_reason": ti.short_reason,
        "completed_at": _iso(ti.completed_at),
        "completed_by": ti.completed_by,
    }


def task_out(task: Task, *, with_items: bool = True) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": task.id,
        "task_number": task.task_number,
        "kind": task.kind,
        "status": task.status,
        "priority": task.priority,
        "order_id": task.order_id,
        "total_items": task.total_items,
        "completed_items": task.completed_items,
        "short_items": task.short_items,
        "started_at": _iso(task.started_at),
        "completed_at": _iso(task.completed_at),
    }
    if task.kind == "PACK":
        out.update({
            "packed_weight": float(task.packed_weight) if task.packed_weight is not None else None,
            "packed_weight_unit": task.packed_weight_unit,
            "packed_dimensions": task.packed_dimensions,
            "source_bin_id": task.source_bin_id,
        })
    if with_items:
        out["items"] = [task_item_out(ti) for ti in task.items]
    return out


def bin_item_out(i: PickBinItem) -> dict[str, Any]:
    pv = i.product_variant
    return {
        "id": i.id,
        "sku": i.sku,
        "quantity": i.quantity,
        "verified_qty": i.verified_qty,
        "product_variant": {
            "id": pv.id,
            "sku": pv.sku,
            "upc": pv.upc,
            "barcode": pv.barcode,
            "name": pv.name,
            "image_url": pv.image_url,
        } if pv else None,
    }


def bin_out(b: PickBin) -> dict[str, Any]:
    return {
        "id": b.id,
        "bin_number": b.bin_number,
        "barcode": b.barcode,
        "status": b.status,
        "order_id": b.order_id,
        "pick_task_id": b.pick_task_id,
        "picked_by": b.picked_by,
        "picked_at": _iso(b.picked_at),
        "packed_by": b.packed_by,
        "packed_at": _iso(b.packed_at),
        "items": [bin_item_out(i) for i in b.items],
    }


def order_out(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "priority": order.priority,
        "customer_name": order.customer_name,
        "tracking_number": order.tracking_number,
        "shipped_at": _iso(order.shipped_at),
        "items": [
            {
                "id": oi.id,
                "sku": oi.sku,
                "quantity": oi.quantity,
                "quantity_picked": oi.quantity_picked,
                "product_variant_id": oi.product_variant_id,
            }
            for oi in order.items
        ],
    }
