from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models.sales import Order, OrderItem, OrderStatus
from app.db.models.wms.allocation import Allocation, AllocationStatus
from app.db.models.wms.common import utcnow
from app.db.models.wms.pick_bin import PickBin, PickBinItem, PickBinStatus
from app.db.models.wms.tasking import Task, TaskItem, TaskItemStatus, TaskKind, TaskStatus
from app.db.session import transaction
from app.events.types import (
    Dimensions,
    OrderPackedPayload,
    PackingCompletedPayload,
    PickBinCompletedPayload,
    PickBinCreatedPayload,
    PickBinItemVerifiedPayload,
    PickBinScanningPayload,
)
from services.fulfillment.common import FulfillmentComponent
from services.fulfillment.errors import (
    BinAlreadyPackedError,
    BinCancelledError,
    BinNotFoundError,
    BinNumberExhaustedError,
    BinOrderMismatchError,
    ItemNotInBinError,
    TaskNotFoundError,
    UnverifiedItemsError,
)
from services.fulfillment.labels import render_bin_label
from services.fulfillment.numbering import new_bin_barcode, next_bin_number, next_task_number

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT_UNIT = "ounce"
BIN_NUMBER_ATTEMPTS = 5


@dataclass
class BinLookup:
    order: Order
    bin: PickBin
    claimed: bool  # True when this lookup moved the bin STAGED -> PACKING


@dataclass
class BinScanResult:
    verified: bool
    item: PickBinItem
    all_verified: bool


@dataclass
class BinPackResult:
    order: Order
    bin: PickBin
    task: Task


def bin_created_payload(b: PickBin) -> PickBinCreatedPayload:
    return PickBinCreatedPayload(
        bin_id=b.id,
        bin_number=b.bin_number,
        barcode=b.barcode,
        item_count=len(b.items),
        total_quantity=sum(i.quantity for i in b.items),
    )


def _matches(item: PickBinItem, code: str) -> bool:
    pv = item.product_variant
    sku = pv.sku if pv is not None else item.sku
    return (
        (pv is not None and code in (pv.upc, pv.barcode))
        or code == sku
        or code.upper() == sku.upper()
    )


class PickBinService(FulfillmentComponent):
    """Staging totes: creation at pick completion, scan-verify at the pack station."""

    def get_bin(self, bin_id: str, *, for_update: bool = False) -> PickBin:
        q = self.db.query(PickBin).filter(PickBin.id == bin_id)
        if for_update:
            q = q.populate_existing().with_for_update()
        b = q.first()
        if not b:
            raise BinNotFoundError(bin_id)
        return b

    def latest_bin(self, order_id: str) -> PickBin | None:
        return (
            self.db.query(PickBin)
            .filter(PickBin.order_id == order_id, PickBin.status != PickBinStatus.CANCELLED)
            .order_by(PickBin.created_at.desc())
            .first()
        )

    def create_pick_bin(self, order_id: str, pick_task_id: str, *, user_id: str | None = None) -> PickBin:
        """Stage everything picked for a task into a new bin.

        Runs inside the caller's transaction. Only the confirmation that
        completes the pick task calls this, so a task never gets two bins.
        """
        task = self.db.get(Task, pick_task_id)
        if not task:
            raise TaskNotFoundError(pick_task_id)
        order = self.require_order(order_id)
        self.db.flush()

        picked = (
            self.db.query(TaskItem)
            .filter(TaskItem.task_id == pick_task_id, TaskItem.status == TaskItemStatus.COMPLETED)
            .order_by(TaskItem.sequence)
            .all()
        )
        totals: dict[str, list] = {}
        for ti in picked:
            if not ti.product_variant_id or ti.product_variant is None:
                continue
            agg = totals.setdefault(ti.product_variant_id, [ti.product_variant.sku, 0])
            agg[1] += ti.quantity_completed

        now = utcnow()
        for attempt in range(1, BIN_NUMBER_ATTEMPTS + 1):
            b = PickBin(
                bin_number=next_bin_number(self.db),
                barcode=new_bin_barcode(self.db, now=now),
                order_id=order_id,
                pick_task_id=pick_task_id,
                status=PickBinStatus.STAGED,
                picked_by=user_id,
                picked_at=now,
            )
            b.items = [
                PickBinItem(product_variant_id=pv_id, sku=sku, quantity=qty, verified_qty=0)
                for pv_id, (sku, qty) in totals.items()
            ]
            b.label_zpl = render_bin_label(
                bin_number=b.bin_number,
                barcode=b.barcode,
                order_number=order.order_number,
                item_count=len(b.items),
                total_quantity=sum(i.quantity for i in b.items),
                printed_at=now,
            )
            try:
                # concurrent completions can compute the same next number
                with self.db.begin_nested():
                    self.db.add(b)
                    self.db.flush()
            except IntegrityError:
                logger.warning("Bin number %s or barcode %s already taken (attempt %d)", b.bin_number, b.barcode, attempt)
                continue
            logger.info("Staged %s (%s) for order %s with %d SKU(s)", b.bin_number, b.barcode, order.order_number, len(b.items))
            return b
        raise BinNumberExhaustedError(BIN_NUMBER_ATTEMPTS)

    def get_order_by_bin_barcode(self, barcode: str, *, user_id: str | None = None) -> BinLookup:
        code = (barcode or "").strip().upper()
        found = self.db.query(PickBin).filter(PickBin.barcode == code).first()
        if not found:
            raise BinNotFoundError(code)

        trail = self.trail(user_id)
        claimed = False
        with transaction(self.db):
            b = self.get_bin(found.id, for_update=True)
            if b.status == PickBinStatus.COMPLETED:
                raise BinAlreadyPackedError(b.bin_number)
            if b.status == PickBinStatus.CANCELLED:
                raise BinCancelledError(b.bin_number)
            if b.status == PickBinStatus.STAGED:
                b.status = PickBinStatus.PACKING
                claimed = True
                trail.add(b.order_id, PickBinScanningPayload(
                    bin_id=b.id, bin_number=b.bin_number, barcode=b.barcode, order_number=b.order.order_number,
                ))
        trail.emit()

        b = self.get_bin(found.id)
        return BinLookup(order=b.order, bin=b, claimed=claimed)

    def verify_bin_item(self, bin_id: str, barcode: str, quantity: int = 1, *, user_id: str | None = None) -> BinScanResult:
        code = (barcode or "").strip()
        trail = self.trail(user_id)
        with transaction(self.db):
            b = self.get_bin(bin_id, for_update=True)
            if b.status == PickBinStatus.CANCELLED:
                raise BinCancelledError(b.bin_number)

            item = next((i for i in b.items if _matches(i, code)), None)
            if item is None:
                raise ItemNotInBinError(code)

            if b.status == PickBinStatus.COMPLETED:
                # late scan on a closed tote: every item was verified to close it
                return BinScanResult(verified=False, item=item, all_verified=True)
            if item.is_verified:
                # double scan, nothing to do
                return BinScanResult(verified=False, item=item, all_verified=all(i.is_verified for i in b.items))

            step = min(max(quantity or 1, 1), item.remaining)
            item.verified_qty += step
            item.verified_at = utcnow()
            item.verified_by = user_id
            all_verified = all(i.is_verified for i in b.items)
            trail.add(b.order_id, PickBinItemVerifiedPayload(
                bin_id=b.id,
                bin_number=b.bin_number,
                sku=item.sku,
                verified_qty=item.verified_qty,
                quantity=item.quantity,
                all_verified=all_verified,
            ))
        trail.emit()
        return BinScanResult(verified=True, item=item, all_verified=all_verified)

    def complete_bin(self, bin_id: str, *, user_id: str | None = None) -> PickBin:
        trail = self.trail(user_id)
        with transaction(self.db):
            b = self.get_bin(bin_id, for_update=True)
            if b.status == PickBinStatus.COMPLETED:
                raise BinAlreadyPackedError(b.bin_number)
            if b.status == PickBinStatus.CANCELLED:
                raise BinCancelledError(b.bin_number)
            unverified = [i.sku for i in b.items if not i.is_verified]
            if unverified:
                raise UnverifiedItemsError(unverified)
            b.status = PickBinStatus.COMPLETED
            b.packed_by = user_id
            b.packed_at = utcnow()
            trail.add(b.order_id, PickBinCompletedPayload(
                bin_id=b.id,
                bin_number=b.bin_number,
                order_number=b.order.order_number,
                packed_by=user_id,
                item_count=len(b.items),
            ))
        trail.emit()
        return b

    def complete_packing_from_bin(
        self,
        order_id: str,
        bin_id: str,
        *,
        weight: float,
        weight_unit: str | None = None,
        dimensions: Dimensions | None = None,
        user_id: str | None = None,
    ) -> BinPackResult:
        unit = weight_unit or DEFAULT_WEIGHT_UNIT
        trail = self.trail(user_id)
        with transaction(self.db):
            b = self.get_bin(bin_id, for_update=True)
            if b.order_id != order_id:
                raise BinOrderMismatchError(b.bin_number, order_id)
            if b.status == PickBinStatus.COMPLETED:
                raise BinAlreadyPackedError(b.bin_number)
            if b.status == PickBinStatus.CANCELLED:
                raise BinCancelledError(b.bin_number)
            unverified = [i.sku for i in b.items if not i.is_verified]
            if unverified:
                raise UnverifiedItemsError(unverified)

            order = self.require_order(order_id)
            now = utcnow()

            # allocations can lag behind the pick confirmations
            lagging = (
                self.db.query(Allocation)
                .filter(Allocation.order_id == order_id, Allocation.status == AllocationStatus.ALLOCATED)
                .all()
            )
            for a in lagging:
                a.status = AllocationStatus.PICKED
                a.picked_at = now

            order_items = {
                oi.product_variant_id: oi
                for oi in self.db.query(OrderItem).filter(OrderItem.order_id == order_id).all()
                if oi.product_variant_id
            }
            for bi in b.items:
                oi = order_items.get(bi.product_variant_id)
                if oi is not None:
                    oi.quantity_picked = bi.quantity

            b.status = PickBinStatus.COMPLETED
            b.packed_by = user_id
            b.packed_at = now

            self.orders.update_order_status(order_id, OrderStatus.PACKED)

            # audit-only pack task so reporting sees both pack flows the same way
            dims = dimensions.model_dump() if dimensions else None
            task = Task(
                task_number=next_task_number(self.db, TaskKind.PACK, order.order_number, now=now),
                kind=TaskKind.PACK,
                status=TaskStatus.COMPLETED,
                order_id=order_id,
                total_items=len(b.items),
                completed_items=len(b.items),
                short_items=0,
                started_at=now,
                completed_at=now,
                packed_weight=weight,
                packed_weight_unit=unit,
                packed_dimensions=dims,
                verified_at=now,
                verified_by=user_id,
                source_bin_id=b.id,
            )
            self.db.add(task)
            self.db.flush()
            self.task_event(task, "TASK_COMPLETED", user_id=user_id, data={
                "bin_id": b.id,
                "bin_number": b.bin_number,
                "weight": float(weight),
                "weight_unit": unit,
                "dimensions": dims,
                "type": "PACKING_FROM_BIN",
            })

            trail.add(order_id, PickBinCompletedPayload(
                bin_id=b.id,
                bin_number=b.bin_number,
                order_number=order.order_number,
                packed_by=user_id,
                item_count=len(b.items),
            ))
            trail.add(order_id, PackingCompletedPayload(
                task_id=task.id,
                task_number=task.task_number,
                bin_id=b.id,
                bin_number=b.bin_number,
                order_number=order.order_number,
                weight=float(weight),
                weight_unit=unit,
                dimensions=dimensions,
            ))
            trail.add(order_id, OrderPackedPayload(order_number=order.order_number, task_id=task.id))
        trail.emit()
        logger.info("Order %s packed from bin %s", order.order_number, b.bin_number)
        return BinPackResult(order=order, bin=b, task=task)

    def bin_label(self, bin_id: str) -> str:
        b = self.get_bin(bin_id)
        if b.label_zpl:
            return b.label_zpl
        return render_bin_label(
            bin_number=b.bin_number,
            barcode=b.barcode,
            order_number=b.order.order_number,
            item_count=len(b.items),
            total_quantity=sum(i.quantity for i in b.items),
        )
