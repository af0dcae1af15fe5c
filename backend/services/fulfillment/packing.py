from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from app.db.models.sales import OrderStatus
from app.db.models.wms.allocation import Allocation, AllocationStatus
from app.db.models.wms.common import utcnow
from app.db.models.wms.tasking import Task, TaskItem, TaskItemStatus, TaskKind, TaskStatus
from app.db.session import transaction
from app.events.types import (
    Dimensions,
    OrderPackedPayload,
    PackingCompletedPayload,
    PackingItemVerifiedPayload,
    PackingStartedPayload,
    PackLine,
)
from services.fulfillment.common import FulfillmentComponent
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
from services.fulfillment.numbering import next_task_number, task_priority

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT_UNIT = "ounce"


@dataclass
class PackVerification:
    task_item: TaskItem
    verified: bool
    all_verified: bool


class PackingService(FulfillmentComponent):
    """Direct pack flow: pack straight from a completed pick task, no bin."""

    def generate_pack_list(self, order_id: str, *, user_id: str | None = None) -> Task:
        order = self.require_order(order_id)
        if order.status != OrderStatus.PICKED:
            raise InvalidStateError(
                f"Order {order.order_number} is {order.status}; packing needs PICKED",
                details={"status": order.status},
            )
        existing = self.active_task(order_id, TaskKind.PACK)
        if existing:
            raise DuplicateTaskError(order_id, TaskKind.PACK, existing.task_number)

        pick_task = (
            self.db.query(Task)
            .filter(Task.order_id == order_id, Task.kind == TaskKind.PICK, Task.status == TaskStatus.COMPLETED)
            .order_by(Task.completed_at.desc(), Task.created_at.desc())
            .first()
        )
        picked: list[TaskItem] = []
        if pick_task:
            picked = (
                self.db.query(TaskItem)
                .filter(TaskItem.task_id == pick_task.id, TaskItem.status == TaskItemStatus.COMPLETED)
                .order_by(TaskItem.sequence)
                .all()
            )
        if not picked:
            raise NoPickedItemsError(f"Order {order.order_number} has no completed pick to pack from")

        trail = self.trail(user_id)
        with transaction(self.db):
            task = Task(
                task_number=next_task_number(self.db, TaskKind.PACK, order.order_number),
                kind=TaskKind.PACK,
                status=TaskStatus.PENDING,
                priority=task_priority(order.priority),
                order_id=order_id,
                total_items=len(picked),
            )
            self.db.add(task)
            try:
                self.db.flush()
            except IntegrityError as e:
                raise DuplicateTaskError(order_id, TaskKind.PACK) from e

            lines: list[PackLine] = []
            for seq, src in enumerate(picked, start=1):
                ti = TaskItem(
                    task_id=task.id,
                    order_id=order_id,
                    order_item_id=src.order_item_id,
                    product_variant_id=src.product_variant_id,
                    location_id=None,
                    allocation_id=None,
                    sequence=seq,
                    status=TaskItemStatus.PENDING,
                    quantity_required=src.quantity_completed,
                    quantity_completed=0,
                )
                self.db.add(ti)
                self.db.flush()
                lines.append(PackLine(
                    task_item_id=ti.id,
                    sequence=seq,
                    sku=src.product_variant.sku if src.product_variant else None,
                    quantity=src.quantity_completed,
                ))

            self.task_event(task, "TASK_CREATED", user_id=user_id, data={"pick_task_id": pick_task.id, "total_items": len(lines)})
            self.orders.update_order_status(order_id, OrderStatus.PACKING)
            trail.add(order_id, PackingStartedPayload(
                task_id=task.id,
                task_number=task.task_number,
                order_number=order.order_number,
                items=lines,
                total_items=len(lines),
            ))
        trail.emit()
        logger.info("Generated %s with %d line(s) for order %s", task.task_number, len(lines), order.order_number)
        return task

    def verify_pack_item(self, task_item_id: str, *, user_id: str | None = None) -> PackVerification:
        found = self.db.get(TaskItem, task_item_id)
        if not found:
            raise TaskItemNotFoundError(task_item_id)

        trail = self.trail(user_id)
        with transaction(self.db):
            task = self.lock_task(found.task_id)
            item = self.lock_task_item(task_item_id)
            if task.kind != TaskKind.PACK:
                raise WrongTaskKindError(TaskKind.PACK, task.kind)
            if item.status == TaskItemStatus.COMPLETED:
                # a repeat scan is not progress
                return PackVerification(task_item=item, verified=False, all_verified=False)
            if task.status in TaskStatus.TERMINAL:
                raise InvalidStateError(f"Task {task.task_number} is {task.status}")

            now = utcnow()
            item.status = TaskItemStatus.COMPLETED
            item.quantity_completed = item.quantity_required
            item.item_scanned = True
            item.completed_at = now
            item.completed_by = user_id

            progress = self.recount(task)
            task.status = TaskStatus.IN_PROGRESS
            task.started_at = task.started_at or now

            sku = item.product_variant.sku if item.product_variant else None
            self.task_event(task, "ITEM_COMPLETED", user_id=user_id, task_item_id=item.id, data={
                "quantity": item.quantity_required, "sku": sku,
            })
            trail.add(item.order_id, PackingItemVerifiedPayload(
                task_id=task.id,
                task_item_id=item.id,
                sku=sku,
                quantity=item.quantity_required,
                progress=str(progress),
            ))
        trail.emit()
        return PackVerification(task_item=item, verified=True, all_verified=progress.done)

    def complete_packing(
        self,
        task_id: str,
        *,
        weight: float,
        weight_unit: str | None = None,
        dimensions: Dimensions | None = None,
        user_id: str | None = None,
    ) -> Task:
        if not self.db.get(Task, task_id):
            raise TaskNotFoundError(task_id)

        unit = weight_unit or DEFAULT_WEIGHT_UNIT
        trail = self.trail(user_id)
        with transaction(self.db):
            task = self.lock_task(task_id)
            if task.kind != TaskKind.PACK:
                raise WrongTaskKindError(TaskKind.PACK, task.kind)
            if task.status == TaskStatus.COMPLETED:
                raise AlreadyCompletedError(f"Task {task.task_number} is already completed")
            if task.status == TaskStatus.CANCELLED:
                raise InvalidStateError(f"Task {task.task_number} is cancelled")

            pending = (
                self.db.query(TaskItem)
                .filter(TaskItem.task_id == task.id, TaskItem.status != TaskItemStatus.COMPLETED)
                .count()
            )
            if pending:
                raise PendingItemsError(pending)

            order = self.require_order(task.order_id)
            now = utcnow()
            dims = dimensions.model_dump() if dimensions else None

            task.packed_weight = weight
            task.packed_weight_unit = unit
            task.packed_dimensions = dims
            task.verified_at = now
            task.verified_by = user_id

            lagging = (
                self.db.query(Allocation)
                .filter(Allocation.order_id == task.order_id, Allocation.status == AllocationStatus.ALLOCATED)
                .all()
            )
            for a in lagging:
                a.status = AllocationStatus.PICKED
                a.picked_at = now

            task.status = TaskStatus.COMPLETED
            task.completed_at = now
            self.orders.update_order_status(task.order_id, OrderStatus.PACKED)
            self.task_event(task, "TASK_COMPLETED", user_id=user_id, data={
                "weight": float(weight), "weight_unit": unit, "dimensions": dims,
            })

            trail.add(task.order_id, PackingCompletedPayload(
                task_id=task.id,
                task_number=task.task_number,
                order_number=order.order_number,
                weight=float(weight),
                weight_unit=unit,
                dimensions=dimensions,
            ))
            trail.add(task.order_id, OrderPackedPayload(order_number=order.order_number, task_id=task.id))
        trail.emit()
        logger.info("Packed order %s via %s", order.order_number, task.task_number)
        return task
