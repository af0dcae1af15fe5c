from __future__ import annotations
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base
from app.db.models.wms.common import HasId, HasCreatedAt

class AllocationStatus:
    ALLOCATED = "ALLOCATED"
    PARTIALLY_PICKED = "PARTIALLY_PICKED"
    PICKED = "PICKED"

class Allocation(Base, HasId, HasCreatedAt):
    """Stock reserved for one order line at one location (written by the allocator)."""
    __tablename__ = "wms_allocation"
    order_id: Mapped[str] = mapped_column(ForeignKey("sales_order.id"), nullable=False, index=True)
    order_item_id: Mapped[str] = mapped_column(ForeignKey("sales_order_item.id"), nullable=False, index=True)
    product_variant_id: Mapped[str] = mapped_column(ForeignKey("catalog_product_variant.id"), nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(ForeignKey("wms_location.id"), nullable=False, index=True)
    inventory_unit_id: Mapped[str | None] = mapped_column(ForeignKey("wms_inventory_unit.id"), nullable=True, index=True)
    task_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(24), default=AllocationStatus.ALLOCATED, nullable=False)
    picked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    order_item = relationship("OrderItem")
    product_variant = relationship("ProductVariant")
    location = relationship("Location")
    inventory_unit = relationship("InventoryUnit")

Index("ix_wms_alloc_order_status", Allocation.order_id, Allocation.status)
