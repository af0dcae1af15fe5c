from __future__ import annotations
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.base import Base
from app.db.models.wms.common import HasId, HasCreatedAt, HasUpdatedAt

class PickBinStatus:
    STAGED = "STAGED"
    PACKING = "PACKING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

class PickBin(Base, HasId, HasCreatedAt, HasUpdatedAt):
    """Staging tote holding everything picked for one order."""
    __tablename__ = "wms_pick_bin"
    bin_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    barcode: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("sales_order.id"), nullable=False, index=True)
    pick_task_id: Mapped[str] = mapped_column(ForeignKey("wms_task.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(24), default=PickBinStatus.STAGED, nullable=False)  # STAGED|PACKING|COMPLETED|CANCELLED

    picked_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    picked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    packed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    packed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    label_zpl: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["PickBinItem"]] = relationship(back_populates="bin", order_by="PickBinItem.sku")
    order = relationship("Order")

class PickBinItem(Base, HasId, HasCreatedAt):
    __tablename__ = "wms_pick_bin_item"
    bin_id: Mapped[str] = mapped_column(ForeignKey("wms_pick_bin.id"), nullable=False, index=True)
    product_variant_id: Mapped[str] = mapped_column(ForeignKey("catalog_product_variant.id"), nullable=False)
    sku: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    verified_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    bin: Mapped[PickBin] = relationship(back_populates="items")
    product_variant = relationship("ProductVariant")

    @property
    def remaining(self) -> int:
        return max(self.quantity - self.verified_qty, 0)

    @property
    def is_verified(self) -> bool:
        return self.verified_qty >= self.quantity

# Aggregated by variant: one row per SKU per bin
Index("ix_wms_pick_bin_item_variant", PickBinItem.bin_id, PickBinItem.product_variant_id, unique=True)
