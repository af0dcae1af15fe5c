from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.db.models.wms.pick_bin import PickBin
from app.db.models.wms.tasking import Task
from app.events.publisher import EventPublisher, NullPublisher
from app.events.types import Dimensions, EventEnvelope
from services.fulfillment.bins import BinLookup, BinPackResult, BinScanResult, PickBinService
from services.fulfillment.packing import PackingService, PackVerification
from services.fulfillment.picking import BulkPickResult, PickConfirmation, PickingService
from services.fulfillment.scan_lookup import build_scan_lookup
from services.fulfillment.schemas import ScanLookup
from services.fulfillment.status import get_events_since, get_fulfillment_status
from services.orders.store import OrderStore


class FulfillmentService:
    """Single entry point for the API and queue workers.

    Built per unit of work from a session, an order store and a publisher.
    """

    def __init__(self, db: Session, *, orders: OrderStore | None = None, publisher: EventPublisher | None = None):
        self.db = db
        self.orders = orders or OrderStore(db)
        self.publisher = publisher or NullPublisher()
        self.picking = PickingService(db, orders=self.orders, publisher=self.publisher)
        self.bins = self.picking.bins
        self.packing = PackingService(db, orders=self.orders, publisher=self.publisher)

    # ---- pick ----
    def generate_pick_list(self, order_id: str, *, user_id: str | None = None) -> Task:
        return self.picking.generate_pick_list(order_id, user_id=user_id)

    def confirm_pick_item(self, task_item_id: str, *, quantity: int | None = None, location_scanned: bool = False, item_scanned: bool = False, user_id: str | None = None) -> PickConfirmation:
        return self.picking.confirm_pick_item(
            task_item_id,
            quantity=quantity,
            location_scanned=location_scanned,
            item_scanned=item_scanned,
            user_id=user_id,
        )

    def confirm_all_pick_items(self, order_id: str, *, user_id: str | None = None) -> BulkPickResult:
        return self.picking.confirm_all_pick_items(order_id, user_id=user_id)

    # ---- bins ----
    def get_order_by_bin_barcode(self, barcode: str, *, user_id: str | None = None) -> BinLookup:
        return self.bins.get_order_by_bin_barcode(barcode, user_id=user_id)

    def verify_bin_item(self, bin_id: str, barcode: str, quantity: int = 1, *, user_id: str | None = None) -> BinScanResult:
        return self.bins.verify_bin_item(bin_id, barcode, quantity, user_id=user_id)

    def complete_bin(self, bin_id: str, *, user_id: str | None = None) -> PickBin:
        return self.bins.complete_bin(bin_id, user_id=user_id)

    def complete_packing_from_bin(self, order_id: str, bin_id: str, *, weight: float, weight_unit: str | None = None, dimensions: Dimensions | None = None, user_id: str | None = None) -> BinPackResult:
        return self.bins.complete_packing_from_bin(
            order_id, bin_id, weight=weight, weight_unit=weight_unit, dimensions=dimensions, user_id=user_id,
        )

    def bin_label(self, bin_id: str) -> str:
        return self.bins.bin_label(bin_id)

    # ---- pack ----
    def generate_pack_list(self, order_id: str, *, user_id: str | None = None) -> Task:
        return self.packing.generate_pack_list(order_id, user_id=user_id)

    def verify_pack_item(self, task_item_id: str, *, user_id: str | None = None) -> PackVerification:
        return self.packing.verify_pack_item(task_item_id, user_id=user_id)

    def complete_packing(self, task_id: str, *, weight: float, weight_unit: str | None = None, dimensions: Dimensions | None = None, user_id: str | None = None) -> Task:
        return self.packing.complete_packing(
            task_id, weight=weight, weight_unit=weight_unit, dimensions=dimensions, user_id=user_id,
        )

    # ---- queries ----
    def build_scan_lookup(self, order_id: str) -> ScanLookup:
        return build_scan_lookup(self.db, order_id)

    def get_fulfillment_status(self, order_id: str) -> dict[str, Any]:
        return get_fulfillment_status(self.db, order_id, orders=self.orders)

    def get_events_since(self, order_id: str, last_event_id: str | None = None) -> list[EventEnvelope]:
        return get_events_since(self.db, order_id, last_event_id)
