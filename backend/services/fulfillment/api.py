from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse, StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from app.db.session import SessionLocal, get_db
from app.events.publisher import EventPublisher, LocalBroker, NullPublisher
from app.events.types import EventEnvelope
from services.fulfillment.schemas import (
    BinVerifyIn,
    CompleteBinPackIn,
    ConfirmPickIn,
    PackCompleteIn,
    bin_item_out,
    bin_out,
    task_out,
)
from services.fulfillment.service import FulfillmentService

router = APIRouter(prefix="/fulfillment", tags=["fulfillment"])

KEEPALIVE_SECONDS = 15.0


def get_publisher(request: Request) -> EventPublisher:
    return getattr(request.app.state, "publisher", None) or NullPublisher()


def get_broker(request: Request) -> LocalBroker:
    broker = getattr(request.app.state, "broker", None)
    if broker is None:
        broker = request.app.state.broker = LocalBroker()
    return broker


def get_service(db: Session = Depends(get_db), publisher: EventPublisher = Depends(get_publisher)) -> FulfillmentService:
    return FulfillmentService(db, publisher=publisher)


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_actor(x_user_id: str | None = Header(default=None)) -> str | None:
    return x_user_id or None


def sse_message(env: EventEnvelope) -> str:
    return f"event: {env.type}\nid: {env.id}\ndata: {env.model_dump_json()}\n\n"


def replay_backlog(session_factory: sessionmaker, order_id: str, last_event_id: str | None) -> list[EventEnvelope]:
    """Read missed events on a short-lived session.

    The connection goes back to the pool before streaming starts; a stream
    can stay open for hours.
    """
    with session_factory() as db:
        return FulfillmentService(db).get_events_since(order_id, last_event_id)


# ---- SSE ----
@router.get("/stream")
async def stream(
    request: Request,
    order_id: str,
    last_event_id: str | None = Header(default=None, alias="Last-Event-ID"),
    session_factory: sessionmaker = Depends(get_session_factory),
    broker: LocalBroker = Depends(get_broker),
):
    """Replay what the client missed, then follow live events for the order."""
    sub = broker.subscribe(order_id)
    try:
        backlog = await run_in_threadpool(replay_backlog, session_factory, order_id, last_event_id)
    except Exception:
        broker.unsubscribe(sub)
        raise

    async def events():
        seen = {env.id for env in backlog}
        try:
            for env in backlog:
                yield sse_message(env)
            while not await request.is_disconnected():
                try:
                    env = await asyncio.wait_for(sub.queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                if env.id in seen:
                    continue
                yield sse_message(env)
        finally:
            broker.unsubscribe(sub)

    return StreamingResponse(events(), media_type="text/event-stream", headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})


# ---- Bins ----
@router.get("/bin/{barcode}")
def bin_lookup(barcode: str, svc: FulfillmentService = Depends(get_service), actor: str | None = Depends(get_actor)):
    found = svc.get_order_by_bin_barcode(barcode, user_id=actor)
    return {"order_id": found.order.id, "order_number": found.order.order_number, "claimed": found.claimed, "bin": bin_out(found.bin)}


@router.post("/bin/{bin_id}/verify")
def bin_verify(bin_id: str, payload: BinVerifyIn, svc: FulfillmentService = Depends(get_service), actor: str | None = Depends(get_actor)):
    res = svc.verify_bin_item(bin_id, payload.barcode, payload.quantity, user_id=actor)
    return {"verified": res.verified, "all_verified": res.all_verified, "item": bin_item_out(res.item)}


@router.post("/bin/{bin_id}/complete")
def bin_complete(bin_id: str, svc: FulfillmentService = Depends(get_service), actor: str | None = Depends(get_actor)):
    b = svc.complete_bin(bin_id, user_id=actor)
    return {"ok": True, "bin": {"id": b.id, "status": b.status}}


@router.get("/bin/{bin_id}/label", response_class=PlainTextResponse)
def bin_label(bin_id: str, svc: FulfillmentService = Depends(get_service)):
    return PlainTextResponse(svc.bin_label(bin_id), media_type="text/plain")


# ---- Orders ----
@router.get("/{order_id}/status")
def fulfillment_status(order_id: str, svc: FulfillmentService = Depends(get_service)):
    return svc.get_fulfillment_status(order_id)


@router.get("/{order_id}/events")
def fulfillment_events(order_id: str, last_event_id: str | None = None, svc: FulfillmentService = Depends(get_service)):
    return [env.model_dump(mode="json") for env in svc.get_events_since(order_id, last_event_id)]


@router.post("/{order_id}/pick")
def pick_list(order_id: str, svc: FulfillmentService = Depends(get_service), actor: str | None = Depends(get_actor)):
    task = svc.generate_pick_list(order_id, user_id=actor)
    return {"task": task_out(task)}


@router.post("/{order_id}/pick/confirm-all")
def pick_confirm_all(order_id: str, svc: FulfillmentService = Depends(get_service), actor: str | None = Depends(get_actor)):
    res = svc.confirm_all_pick_items(order_id, user_id=actor)
    return {
        "confirmed": res.confirmed,
        "task_complete": res.task_complete,
        "task": task_out(res.task, with_items=False),
        "bin": bin_out(res.bin) if res.bin else None,
    }


@router.post("/{order_id}/pick/{task_item_id}/confirm")
def pick_confirm(order_id: str, task_item_id: str, payload: ConfirmPickIn | None = None, svc: FulfillmentService = Depends(get_service), actor: str | None = Depends(get_actor)):
    body = payload or ConfirmPickIn()
    res = svc.confirm_pick_item(
        task_item_id,
        quantity=body.quantity,
        location_scanned=body.location_scanned,
        item_scanned=body.item_scanned,
        user_id=actor,
    )
    return {
        "task_item": {"id": res.task_item.id, "status": res.task_item.status, "quantity_completed": res.task_item.quantity_completed},
        "is_short": res.is_short,
        "task_complete": res.task_complete,
        "task": task_out(res.task, with_items=False),
        "bin": bin_out(res.bin) if res.bin else None,
    }


@router.post("/{order_id}/pack")
def pack_list(order_id: str, svc: FulfillmentService = Depends(get_service), actor: str | None = Depends(get_actor)):
    task = svc.generate_pack_list(order_id, user_id=actor)
    return {"task": task_out(task)}


@router.post("/{order_id}/pack/complete-from-bin")
def pack_complete_from_bin(order_id: str, payload: CompleteBinPackIn, svc: FulfillmentService = Depends(get_service), actor: str | None = Depends(get_actor)):
    res = svc.complete_packing_from_bin(
        order_id,
        payload.bin_id,
        weight=payload.weight,
        weight_unit=payload.weight_unit,
        dimensions=payload.dimensions,
        user_id=actor,
    )
    return {
        "order": {"id": res.order.id, "status": res.order.status},
        "bin": {"id": res.bin.id, "status": res.bin.status},
        "task": task_out(res.task, with_items=False),
    }


@router.post("/{order_id}/pack/complete")
def pack_complete(order_id: str, payload: PackCompleteIn, svc: FulfillmentService = Depends(get_service), actor: str | None = Depends(get_actor)):
    task = svc.complete_packing(
        payload.task_id,
        weight=payload.weight,
        weight_unit=payload.weight_unit,
        dimensions=payload.dimensions,
        user_id=actor,
    )
    return {"task": task_out(task, with_items=False)}


@router.post("/{order_id}/pack/{task_item_id}/verify")
def pack_verify(order_id: str, task_item_id: str, svc: FulfillmentService = Depends(get_service), actor: str | None = Depends(get_actor)):
    res = svc.verify_pack_item(task_item_id, user_id=actor)
    return {
        "task_item": {"id": res.task_item.id, "status": res.task_item.status},
        "verified": res.verified,
        "all_verified": res.all_verified,
    }
