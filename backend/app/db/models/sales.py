"""
MODULE: ORDERS
Order header and lines as seen by the warehouse. Order lifecycle is owned by
services.orders.store; fulfillment only reads these rows and requests
status transitions.
"""

from __future__ import annotations

from app.db.base import Base
from app.db.models.wms.common import HasId, HasCreatedAt, HasUpdatedAt
from datetime import datetime
from sqlalchemy import String, DateTime, Integer, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship


class OrderStatus:
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    READY_TO_PICK = "READY_TO_PICK"
    ALLOCATED = "ALLOCATED"
    PICKING = "PICKING"
    PICKED = "PICKED"
    PACKING = "PACKING"
    PACKED = "PACKED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"


class Order(Base, HasId, HasCreatedAt, HasUpdatedAt):
    __tablename__ = "sales_order"

    order_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(24), default=OrderStatus.PENDING, nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(16), default="STANDARD", nullable=False)  # STANDARD|RUSH|EXPRESS
    customer_name: Mapped[str | None] = mapped_column(String(256), nullable=True)

    # Shipping (written by the shipping step, read for status)
    tracking_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["OrderItem"]] = relationship(back_populates="order", order_by="OrderItem.created_at")


class OrderItem(Base, HasId, HasCreatedAt):
    __tablename__ = "sales_order_item"

    order_id: Mapped[str] = mapped_column(ForeignKey("sales_order.id"), nullable=False, index=True)
    product_variant_id: Mapped[str | None] = mapped_column(ForeignKey("catalog_product_variant.id"), nullable=True, index=True)
    sku: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_picked: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")
    product_variant = relationship("ProductVariant")
