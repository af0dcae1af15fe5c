from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.db.models.sales import Order
from app.db.models.wms.tasking import Task, TaskEvent, TaskItem, TaskItemStatus, TaskStatus
from app.events.bus import EventTrail
from app.events.publisher import EventPublisher, NullPublisher
from services.orders.store import OrderNotFoundError, OrderStore

logger = logging.getLogger(__name__)


@dataclass
class TaskProgress:
    completed: int
    short: int
    total: int

    @property
    def done(self) -> bool:
        return self.completed >= self.total

    def __str__(self) -> str:
        return f"{self.completed}/{self.total}"


class FulfillmentComponent:
    """Shared wiring for the pick, bin and pack services.

    Everything external is injected: the session, the order store and the
    live publisher. Nothing here reaches for module-level connections.
    """

    def __init__(self, db: Session, *, orders: OrderStore | None = None, publisher: EventPublisher | None = None):
        self.db = db
        self.orders = orders or OrderStore(db)
        self.publisher = publisher or NullPublisher()

    def trail(self, user_id: str | None = None, correlation_id: str | None = None) -> EventTrail:
        return EventTrail(self.db, self.publisher, user_id=user_id, correlation_id=correlation_id)

    def require_order(self, order_id: str) -> Order:
        order = self.orders.find_order(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    def active_task(self, order_id: str, kind: str) -> Task | None:
        return (
            self.db.query(Task)
            .filter(Task.order_id == order_id, Task.kind == kind, Task.status.in_(TaskStatus.ACTIVE))
            .order_by(Task.created_at.desc())
            .first()
        )

    def lock_task(self, task_id: str) -> Task:
        return self.db.query(Task).filter(Task.id == task_id).populate_existing().with_for_update().one()

    def lock_task_item(self, task_item_id: str) -> TaskItem:
        return self.db.query(TaskItem).filter(TaskItem.id == task_item_id).populate_existing().with_for_update().one()

    def recount(self, task: Task) -> TaskProgress:
        """Recompute progress counters from the item rows, never in place."""
        self.db.flush()
        completed = (
            self.db.query(func.count(TaskItem.id))
            .filter(TaskItem.task_id == task.id, TaskItem.status.in_(TaskItemStatus.DONE))
            .scalar()
        ) or 0
        short = (
            self.db.query(func.count(TaskItem.id))
            .filter(TaskItem.task_id == task.id, TaskItem.status == TaskItemStatus.SHORT)
            .scalar()
        ) or 0
        task.completed_items = completed
        task.short_items = short
        return TaskProgress(completed=completed, short=short, total=task.total_items)

    def task_event(self, task: Task, event_type: str, *, user_id: str | None = None, task_item_id: str | None = None, data: dict | None = None) -> None:
        self.db.add(TaskEvent(task_id=task.id, event_type=event_type, task_item_id=task_item_id, user_id=user_id, data=data or {}))
