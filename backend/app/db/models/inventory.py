"""
MODULE: CATALOG & STOCK
Product variants, storage locations and physical inventory units. Only the
columns the pick/pack flow reads or writes are modelled here.
"""

from __future__ import annotations

from app.db.base import Base
from app.db.models.wms.common import HasId, HasCreatedAt
from sqlalchemy import String, Integer, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship


class ProductVariant(Base, HasId, HasCreatedAt):
    __tablename__ = "catalog_product_variant"

    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    upc: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    barcode: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)


class Location(Base, HasId, HasCreatedAt):
    __tablename__ = "wms_location"

    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    barcode: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    # Walk order through the building; NULL means "visit last"
    pick_sequence: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    zone: Mapped[str | None] = mapped_column(String(16), nullable=True)
    aisle: Mapped[str | None] = mapped_column(String(16), nullable=True)
    rack: Mapped[str | None] = mapped_column(String(16), nullable=True)
    shelf: Mapped[str | None] = mapped_column(String(16), nullable=True)
    bin: Mapped[str | None] = mapped_column(String(16), nullable=True)


class InventoryUnitStatus:
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    PICKED = "PICKED"


class InventoryUnit(Base, HasId, HasCreatedAt):
    __tablename__ = "wms_inventory_unit"

    product_variant_id: Mapped[str] = mapped_column(ForeignKey("catalog_product_variant.id"), nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(ForeignKey("wms_location.id"), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(24), default=InventoryUnitStatus.AVAILABLE, nullable=False)

    product_variant = relationship("ProductVariant")
    location = relationship("Location")
