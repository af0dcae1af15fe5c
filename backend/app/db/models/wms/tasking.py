from __future__ import annotations
from decimal import Decimal
from sqlalchemy import String, Integer, DateTime, ForeignKey, JSON, Index, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from app.db.base import Base
from app.db.models.wms.common import HasId, HasCreatedAt, HasUpdatedAt

class TaskKind:
    PICK = "PICK"
    PACK = "PACK"

class TaskStatus:
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    ACTIVE = (PENDING, IN_PROGRESS)
    TERMINAL = (COMPLETED, CANCELLED)

class TaskItemStatus:
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    SHORT = "SHORT"
    SKIPPED = "SKIPPED"

    # counted as done when recomputing task progress
    DONE = (COMPLETED, SHORT, SKIPPED)

class Task(Base, HasId, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "wms_task"
    task_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)  # PICK|PACK
    status: Mapped[str] = mapped_column(String(24), default=TaskStatus.PENDING, nullable=False)  # PENDING|IN_PROGRESS|COMPLETED|CANCELLED
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # 0 normal, 1 rush, 2 express

    order_id: Mapped[str] = mapped_column(ForeignKey("sales_order.id"), nullable=False, index=True)

    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    short_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # PACK only
    packed_weight: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)
    packed_weight_unit: Mapped[str | None] = mapped_column(String(16), nullable=True)
    packed_dimensions: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # {length,width,height,unit}
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # set on the audit record written by the bin-based pack flow
    source_bin_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    items: Mapped[list["TaskItem"]] = relationship(back_populates="task", order_by="TaskItem.sequence")
    order = relationship("Order")

# One open task per (order, kind). Terminal tasks fall outside the index.
Index(
    "uq_wms_task_active_order_kind",
    Task.order_id,
    Task.kind,
    unique=True,
    sqlite_where=Task.status.in_(TaskStatus.ACTIVE),
    postgresql_where=Task.status.in_(TaskStatus.ACTIVE),
)

class TaskItem(Base, HasId, HasCreatedAt):
    __tablename__ = "wms_task_item"
    task_id: Mapped[str] = mapped_column(ForeignKey("wms_task.id"), nullable=False, index=True)
    order_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    order_item_id: Mapped[str | None] = mapped_column(ForeignKey("sales_order_item.id"), nullable=True)
    product_variant_id: Mapped[str | None] = mapped_column(ForeignKey("catalog_product_variant.id"), nullable=True)
    location_id: Mapped[str | None] = mapped_column(ForeignKey("wms_location.id"), nullable=True)
    allocation_id: Mapped[str | None] = mapped_column(ForeignKey("wms_allocation.id"), nullable=True)

    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(24), default=TaskItemStatus.PENDING, nullable=False)  # PENDING|COMPLETED|SHORT|SKIPPED
    quantity_required: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    location_scanned: Mapped[bool] = mapped_column(default=False, nullable=False)
    item_scanned: Mapped[bool] = mapped_column(default=False, nullable=False)
    short_reason: Mapped[str | None] = mapped_column(String(256), nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    task: Mapped[Task] = relationship(back_populates="items")
    order_item = relationship("OrderItem")
    product_variant = relationship("ProductVariant")
    location = relationship("Location")
    allocation = relationship("Allocation")

Index("ix_wms_task_item_task_seq", TaskItem.task_id, TaskItem.sequence, unique=True)

class TaskEvent(Base, HasId, HasCreatedAt):
    """Per-task audit trail, written in the same transaction as the change."""
    __tablename__ = "wms_task_event"
    task_id: Mapped[str] = mapped_column(ForeignKey("wms_task.id"), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)  # TASK_CREATED|ITEM_COMPLETED|ITEM_SHORT|TASK_COMPLETED
    task_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    data: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    task: Mapped[Task] = relationship()
