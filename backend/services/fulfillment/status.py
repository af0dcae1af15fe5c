from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.db.models.sales import OrderStatus
from app.db.models.wms.pick_bin import PickBin, PickBinStatus
from app.db.models.wms.tasking import TaskKind
from app.events.bus import to_envelope
from app.events.log import FulfillmentEvent
from app.events.types import EventEnvelope
from services.fulfillment.scan_lookup import build_scan_lookup, current_task
from services.fulfillment.schemas import bin_out, order_out, task_out
from services.orders.store import OrderNotFoundError, OrderStore

STATUS_EVENT_WINDOW = 100
REPLAY_EVENT_WINDOW = 200

_STEPS = {
    OrderStatus.PENDING: "awaiting_pick",
    OrderStatus.CONFIRMED: "awaiting_pick",
    OrderStatus.READY_TO_PICK: "awaiting_pick",
    OrderStatus.ALLOCATED: "awaiting_pick",
    OrderStatus.PICKING: "picking",
    OrderStatus.PICKED: "awaiting_pack",
    OrderStatus.PACKING: "packing",
    OrderStatus.PACKED: "awaiting_ship",
    OrderStatus.SHIPPED: "shipped",
    OrderStatus.DELIVERED: "delivered",
}


def current_step(order_status: str) -> str:
    return _STEPS.get(order_status, order_status.lower())


def get_fulfillment_status(db: Session, order_id: str, *, orders: OrderStore | None = None) -> dict[str, Any]:
    order = (orders or OrderStore(db)).find_order(order_id)
    if not order:
        raise OrderNotFoundError(order_id)

    pick_task = current_task(db, order_id, TaskKind.PICK)
    pack_task = current_task(db, order_id, TaskKind.PACK)
    pick_bin = (
        db.query(PickBin)
        .filter(PickBin.order_id == order_id, PickBin.status != PickBinStatus.CANCELLED)
        .order_by(PickBin.created_at.desc())
        .first()
    )
    events = (
        db.query(FulfillmentEvent)
        .filter(FulfillmentEvent.order_id == order_id)
        .order_by(FulfillmentEvent.created_at.asc())
        .limit(STATUS_EVENT_WINDOW)
        .all()
    )
    return {
        "order": order_out(order),
        "current_step": current_step(order.status),
        "picking": task_out(pick_task) if pick_task else None,
        "packing": task_out(pack_task) if pack_task else None,
        "pick_bin": bin_out(pick_bin) if pick_bin else None,
        "scan_lookup": build_scan_lookup(db, order_id, pick_task=pick_task, pack_task=pack_task).model_dump(),
        "events": [to_envelope(e).model_dump(mode="json") for e in events],
    }


def get_events_since(db: Session, order_id: str, last_event_id: str | None = None) -> list[EventEnvelope]:
    """Events after `last_event_id`, oldest first; everything when it is unknown."""
    q = db.query(FulfillmentEvent).filter(FulfillmentEvent.order_id == order_id)
    if last_event_id:
        ref = db.query(FulfillmentEvent).filter(FulfillmentEvent.id == last_event_id).first()
        if ref is not None:
            q = q.filter(FulfillmentEvent.created_at > ref.created_at)
    rows = q.order_by(FulfillmentEvent.created_at.asc()).limit(REPLAY_EVENT_WINDOW).all()
    return [to_envelope(r) for r in rows]
