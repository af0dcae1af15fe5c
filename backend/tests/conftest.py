"""Pytest fixtures for the fulfillment tests.

Every test gets a fresh in-memory SQLite database with the full schema, a
publisher that records what was sent, and small factories for the
collaborator rows (orders, stock, allocations) the core consumes.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from typing import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.errors import register_exception_handlers
from app.db.base import Base
from app.db import models  # noqa: F401
from app.db.models.inventory import InventoryUnit, Location, ProductVariant
from app.db.models.sales import Order, OrderItem, OrderStatus
from app.db.models.wms.allocation import Allocation
from app.db.session import get_db
from app.events.publisher import LocalBroker
from app.events.types import EventEnvelope
from services.fulfillment.api import get_publisher, get_session_factory, router as fulfillment_router
from services.fulfillment.service import FulfillmentService


class RecordingPublisher:
    def __init__(self):
        self.events: list[EventEnvelope] = []

    def publish(self, event: EventEnvelope) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [e.type for e in self.events]

    def of_type(self, event_type: str) -> list[EventEnvelope]:
        return [e for e in self.events if e.type == event_type]

    def clear(self) -> None:
        self.events.clear()


class ExplodingPublisher:
    def publish(self, event: EventEnvelope) -> None:
        raise ConnectionError("pub/sub down")


# ── Database ─────────────────────────────────────────────────────

@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def exploding_publisher() -> ExplodingPublisher:
    return ExplodingPublisher()


@pytest.fixture
def service(db, publisher) -> FulfillmentService:
    return FulfillmentService(db, publisher=publisher)


# ── Test Data Factories ──────────────────────────────────────────

class Warehouse:
    """Builds orders with allocated stock the way the allocator would."""

    def __init__(self, db: Session):
        self.db = db
        self._n = 0

    def _next(self) -> int:
        self._n += 1
        return self._n

    def variant(self, sku: str, *, upc: str | None = None, barcode: str | None = None, name: str | None = None) -> ProductVariant:
        pv = self.db.query(ProductVariant).filter(ProductVariant.sku == sku).first()
        if pv:
            return pv
        pv = ProductVariant(sku=sku, upc=upc, barcode=barcode, name=name or f"Product {sku}", image_url=f"https://img.local/{sku}.png")
        self.db.add(pv)
        self.db.flush()
        return pv

    def location(self, name: str, *, pick_sequence: int | None = None) -> Location:
        loc = self.db.query(Location).filter(Location.name == name).first()
        if loc:
            return loc
        zone, _, rest = name.partition("-")
        loc = Location(name=name, barcode=f"LOC-{name}", pick_sequence=pick_sequence, zone=zone or None, aisle=rest or None)
        self.db.add(loc)
        self.db.flush()
        return loc

    def order(self, lines: list[dict], *, status: str = OrderStatus.ALLOCATED, priority: str = "STANDARD", order_number: str | None = None) -> Order:
        """lines: [{"sku", "qty", "location", "seq", "upc", "unit_qty"}]"""
        n = self._next()
        order = Order(order_number=order_number or f"ORD-{1000 + n}", status=status, priority=priority, customer_name="Test Customer")
        self.db.add(order)
        self.db.flush()
        for line in lines:
            pv = self.variant(line["sku"], upc=line.get("upc"), barcode=line.get("barcode"))
            loc = self.location(line.get("location", f"A-{n}"), pick_sequence=line.get("seq"))
            oi = self.db.query(OrderItem).filter(OrderItem.order_id == order.id, OrderItem.product_variant_id == pv.id).first()
            if oi is None:
                oi = OrderItem(order_id=order.id, product_variant_id=pv.id, sku=pv.sku, quantity=0, quantity_picked=0)
                self.db.add(oi)
            oi.quantity += line["qty"]
            self.db.flush()
            unit = InventoryUnit(product_variant_id=pv.id, location_id=loc.id, quantity=line.get("unit_qty", 0))
            self.db.add(unit)
            self.db.flush()
            self.db.add(Allocation(
                order_id=order.id,
                order_item_id=oi.id,
                product_variant_id=pv.id,
                location_id=loc.id,
                inventory_unit_id=unit.id,
                quantity=line["qty"],
            ))
        self.db.commit()
        return order


@pytest.fixture
def warehouse(db) -> Warehouse:
    return Warehouse(db)


@pytest.fixture
def picked_order(service, warehouse):
    """Order fully picked: SKU-A x3 (two locations) and SKU-B x1, bin staged."""
    order = warehouse.order([
        {"sku": "SKU-A", "qty": 2, "location": "A-01", "seq": 1, "upc": "012345678905"},
        {"sku": "SKU-B", "qty": 1, "location": "B-01", "seq": 2, "upc": "098765432109"},
        {"sku": "SKU-A", "qty": 1, "location": "C-01", "seq": 3},
    ])
    service.generate_pick_list(order.id, user_id="picker-1")
    result = service.confirm_all_pick_items(order.id, user_id="picker-1")
    assert result.task_complete
    return order, result.bin


# ── API ──────────────────────────────────────────────────────────

@pytest.fixture
def client(session_factory, publisher) -> Generator[TestClient, None, None]:
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(fulfillment_router)
    app.state.broker = LocalBroker()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_publisher] = lambda: publisher
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    with TestClient(app) as c:
        yield c
