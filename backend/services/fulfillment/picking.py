from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from app.db.models.inventory import InventoryUnit, InventoryUnitStatus
from app.db.models.sales import OrderItem, OrderStatus
from app.db.models.wms.allocation import Allocation, AllocationStatus
from app.db.models.wms.common import utcnow
from app.db.models.wms.pick_bin import PickBin
from app.db.models.wms.tasking import Task, TaskItem, TaskItemStatus, TaskKind, TaskStatus
from app.db.session import transaction
from app.events.types import (
    BinRef,
    OrderPickedPayload,
    OrderProcessingPayload,
    PickLine,
    PicklistCompletedPayload,
    PicklistGeneratedPayload,
    PicklistItemPickedPayload,
    ShortPickDetectedPayload,
)
from services.fulfillment.bins import PickBinService, bin_created_payload
from services.fulfillment.common import FulfillmentComponent
from services.fulfillment.errors import (
    AlreadyCompletedError,
    DuplicateTaskError,
    InvalidQuantityError,
    InvalidStateError,
    NoAllocationsError,
    TaskItemNotFoundError,
    TaskNotFoundError,
    WrongTaskKindError,
)
from services.fulfillment.numbering import next_task_number, task_priority

logger = logging.getLogger(__name__)

PICKABLE_ORDER_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.READY_TO_PICK,
    OrderStatus.ALLOCATED,
)

# locations without a pick sequence are walked last
UNSEQUENCED = float("inf")


@dataclass
class PickConfirmation:
    task_item: TaskItem
    task: Task
    is_short: bool
    task_complete: bool
    bin: PickBin | None = None


@dataclass
class BulkPickResult:
    task: Task
    confirmed: int
    task_complete: bool
    bin: PickBin | None = None


def pick_path_key(a: Allocation) -> tuple[float, str]:
    seq = a.location.pick_sequence if a.location is not None else None
    return (UNSEQUENCED if seq is None else seq, a.created_at.isoformat() if a.created_at else "")


class PickingService(FulfillmentComponent):
    """Pick list generation and per-line confirmation."""

    def __init__(self, db, *, orders=None, publisher=None):
        super().__init__(db, orders=orders, publisher=publisher)
        self.bins = PickBinService(db, orders=self.orders, publisher=self.publisher)

    def generate_pick_list(self, order_id: str, *, user_id: str | None = None) -> Task:
        order = self.require_order(order_id)
        if order.status not in PICKABLE_ORDER_STATUSES:
            raise InvalidStateError(
                f"Order {order.order_number} is {order.status}; picking needs one of {', '.join(PICKABLE_ORDER_STATUSES)}",
                details={"status": order.status},
            )

        allocations = (
            self.db.query(Allocation)
            .filter(Allocation.order_id == order_id, Allocation.status == AllocationStatus.ALLOCATED)
            .all()
        )
        if not allocations:
            raise NoAllocationsError(order.order_number)

        existing = self.active_task(order_id, TaskKind.PICK)
        if existing:
            raise DuplicateTaskError(order_id, TaskKind.PICK, existing.task_number)

        allocations.sort(key=pick_path_key)
        trail = self.trail(user_id)
        with transaction(self.db):
            task = Task(
                task_number=next_task_number(self.db, TaskKind.PICK, order.order_number),
                kind=TaskKind.PICK,
                status=TaskStatus.PENDING,
                priority=task_priority(order.priority),
                order_id=order_id,
                total_items=len(allocations),
            )
            self.db.add(task)
            try:
                self.db.flush()
            except IntegrityError as e:
                # lost the race against a concurrent generate_pick_list
                raise DuplicateTaskError(order_id, TaskKind.PICK) from e

            lines: list[PickLine] = []
            for seq, a in enumerate(allocations, start=1):
                ti = TaskItem(
                    task_id=task.id,
                    order_id=order_id,
                    order_item_id=a.order_item_id,
                    product_variant_id=a.product_variant_id,
                    location_id=a.location_id,
                    allocation_id=a.id,
                    sequence=seq,
                    status=TaskItemStatus.PENDING,
                    quantity_required=a.quantity,
                    quantity_completed=0,
                )
                self.db.add(ti)
                self.db.flush()
                a.task_item_id = ti.id
                lines.append(PickLine(
                    task_item_id=ti.id,
                    sequence=seq,
                    sku=a.product_variant.sku if a.product_variant else None,
                    location_name=a.location.name if a.location else None,
                    quantity=a.quantity,
                ))

            self.task_event(task, "TASK_CREATED", user_id=user_id, data={"order_id": order_id, "total_items": len(lines)})
            self.orders.update_order_status(order_id, OrderStatus.PICKING)

            trail.add(order_id, OrderProcessingPayload(order_number=order.order_number, task_id=task.id))
            trail.add(order_id, PicklistGeneratedPayload(
                task_id=task.id, task_number=task.task_number, items=lines, total_items=len(lines),
            ))
        trail.emit()
        logger.info("Generated %s with %d line(s) for order %s", task.task_number, len(lines), order.order_number)
        return task

    def confirm_pick_item(
        self,
        task_item_id: str,
        *,
        quantity: int | None = None,
        location_scanned: bool = False,
        item_scanned: bool = False,
        user_id: str | None = None,
        correlation_id: str | None = None,
    ) -> PickConfirmation:
        found = self.db.get(TaskItem, task_item_id)
        if not found:
            raise TaskItemNotFoundError(task_item_id)
        if quantity is not None and quantity < 0:
            raise InvalidQuantityError(f"Quantity must be zero or more, got {quantity}")

        trail = self.trail(user_id, correlation_id)
        staged: PickBin | None = None
        with transaction(self.db):
            # task first, then the line: one lock order for every confirmation
            task = self.lock_task(found.task_id)
            item = self.lock_task_item(task_item_id)
            if task.kind != TaskKind.PICK:
                raise WrongTaskKindError(TaskKind.PICK, task.kind)
            if item.status in TaskItemStatus.DONE:
                raise AlreadyCompletedError(f"Task item {item.sequence} of {task.task_number} is already {item.status}")
            if task.status in TaskStatus.TERMINAL:
                raise InvalidStateError(f"Task {task.task_number} is {task.status}")

            required = item.quantity_required
            picked = required if quantity is None else min(quantity, required)
            is_short = picked < required
            now = utcnow()

            item.status = TaskItemStatus.SHORT if is_short else TaskItemStatus.COMPLETED
            item.quantity_completed = picked
            item.short_reason = f"Short pick: {picked}/{required}" if is_short else None
            item.location_scanned = item.location_scanned or location_scanned
            item.item_scanned = item.item_scanned or item_scanned
            item.completed_at = now
            item.completed_by = user_id

            if item.allocation_id:
                alloc = self.db.get(Allocation, item.allocation_id)
                if alloc is not None:
                    alloc.status = AllocationStatus.PARTIALLY_PICKED if is_short else AllocationStatus.PICKED
                    alloc.picked_at = now
                    if alloc.inventory_unit_id:
                        unit = self.db.get(InventoryUnit, alloc.inventory_unit_id)
                        if unit is not None and unit.quantity <= 0:
                            unit.status = InventoryUnitStatus.PICKED

            if item.order_item_id:
                oi = self.db.get(OrderItem, item.order_item_id)
                if oi is not None:
                    oi.quantity_picked = (oi.quantity_picked or 0) + picked

            progress = self.recount(task)
            task.status = TaskStatus.IN_PROGRESS
            task.started_at = task.started_at or now

            sku = item.product_variant.sku if item.product_variant else None
            location_name = item.location.name if item.location else None
            self.task_event(
                task,
                "ITEM_SHORT" if is_short else "ITEM_COMPLETED",
                user_id=user_id,
                task_item_id=item.id,
                data={"quantity": picked, "sku": sku, "location_name": location_name, "is_short": is_short},
            )
            trail.add(item.order_id, PicklistItemPickedPayload(
                task_id=task.id,
                task_item_id=item.id,
                sku=sku,
                location_name=location_name,
                quantity=picked,
                is_short=is_short,
                progress=str(progress),
            ))
            if is_short:
                trail.add(item.order_id, ShortPickDetectedPayload(
                    task_id=task.id,
                    task_item_id=item.id,
                    sku=sku,
                    location_name=location_name,
                    quantity_required=required,
                    quantity_picked=picked,
                    reason=item.short_reason,
                ))

            if progress.done:
                task.status = TaskStatus.COMPLETED
                task.completed_at = now
                self.task_event(task, "TASK_COMPLETED", user_id=user_id, data={
                    "completed_items": progress.completed, "short_items": progress.short,
                })
                self.orders.update_order_status(task.order_id, OrderStatus.PICKED)
                staged = self.bins.create_pick_bin(task.order_id, task.id, user_id=user_id)

                order = self.require_order(task.order_id)
                trail.add(task.order_id, bin_created_payload(staged))
                trail.add(task.order_id, PicklistCompletedPayload(
                    task_id=task.id,
                    task_number=task.task_number,
                    completed_items=progress.completed,
                    short_items=progress.short,
                    bin=BinRef(id=staged.id, bin_number=staged.bin_number, barcode=staged.barcode),
                ))
                trail.add(task.order_id, OrderPickedPayload(order_number=order.order_number, task_id=task.id))
        trail.emit()

        if is_short:
            logger.warning("Short pick on %s line %d: %d/%d", task.task_number, item.sequence, picked, required)
        return PickConfirmation(task_item=item, task=task, is_short=is_short, task_complete=progress.done, bin=staged)

    def confirm_all_pick_items(self, order_id: str, *, user_id: str | None = None) -> BulkPickResult:
        """Confirm every open line at full quantity, one transaction per line.

        Not atomic: if a line fails, lines confirmed before it stay confirmed.
        Callers should re-read status after an error.
        """
        self.require_order(order_id)
        task = self.active_task(order_id, TaskKind.PICK)
        if not task:
            raise TaskNotFoundError(order_id, resource="Active pick task for order")

        pending = (
            self.db.query(TaskItem.id)
            .filter(TaskItem.task_id == task.id, TaskItem.status == TaskItemStatus.PENDING)
            .order_by(TaskItem.sequence)
            .all()
        )
        correlation_id = self.trail().correlation_id
        confirmed = 0
        last: PickConfirmation | None = None
        for (task_item_id,) in pending:
            last = self.confirm_pick_item(task_item_id, user_id=user_id, correlation_id=correlation_id)
            confirmed += 1

        task = self.db.get(Task, task.id)
        return BulkPickResult(
            task=task,
            confirmed=confirmed,
            task_complete=task.status == TaskStatus.COMPLETED,
            bin=last.bin if last else None,
        )
