import asyncio
import json
import logging
import threading

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from app.db.models.wms.common import utcnow
from app.events.bus import EventTrail
from app.events.dispatcher import WebhookPublisher, _pattern_matches
from app.events.log import FulfillmentEvent
from app.events.publisher import FanoutPublisher, LocalBroker, RedisPublisher
from app.events.types import (
    EventEnvelope,
    EventType,
    OrderPickedPayload,
    PAYLOAD_TYPES,
    PickBinScanningPayload,
    decode_payload,
)
from services.fulfillment.errors import InvalidQuantityError
from services.fulfillment.service import FulfillmentService


def _envelope(event_type=EventType.ORDER_PICKED, order_id="o-1", payload=None):
    return EventEnvelope(
        id="evt-1",
        type=event_type,
        order_id=order_id,
        payload=payload or {"order_number": "ORD-1"},
        correlation_id="corr-1",
        timestamp=utcnow(),
    )


# ── Event log ────────────────────────────────────────────────────

def test_every_type_has_a_payload_model():
    types = {v for k, v in vars(EventType).items() if k.isupper()}
    assert types == set(PAYLOAD_TYPES)
    assert len(types) == 14


def test_decode_payload_round_trips_typed_model():
    p = decode_payload(EventType.PICKBIN_SCANNING, {"bin_id": "b", "bin_number": "BIN-000001", "barcode": "BIN-X"})
    assert isinstance(p, PickBinScanningPayload)
    assert p.order_number is None


def test_decode_unknown_type():
    with pytest.raises(ValueError):
        decode_payload("order:teleported", {})


def test_trail_shares_correlation_and_orders_timestamps(db, publisher):
    trail = EventTrail(db, publisher, user_id="u-1")
    for n in range(5):
        trail.add("o-1", OrderPickedPayload(order_number=f"ORD-{n}"))

    envs = trail.emit()

    assert len(envs) == 5
    assert {e.correlation_id for e in envs} == {trail.correlation_id}
    stamps = [e.timestamp for e in envs]
    assert stamps == sorted(stamps) and len(set(stamps)) == 5
    assert db.query(FulfillmentEvent).count() == 5
    assert [e.id for e in publisher.events] == [e.id for e in envs]
    assert len(trail) == 0


def test_empty_trail_emits_nothing(db, publisher):
    assert EventTrail(db, publisher).emit() == []
    assert publisher.events == []


def test_failed_log_write_rolls_back_and_publishes_nothing(db, publisher, monkeypatch):
    real_commit = db.commit
    rollbacks = []
    real_rollback = db.rollback

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    def tracking_rollback():
        rollbacks.append(True)
        real_rollback()

    monkeypatch.setattr(db, "commit", failing_commit)
    monkeypatch.setattr(db, "rollback", tracking_rollback)
    trail = EventTrail(db, publisher)
    trail.add("o-1", OrderPickedPayload(order_number="ORD-1"))

    with pytest.raises(OperationalError):
        trail.emit()

    assert rollbacks == [True]
    assert publisher.events == []
    monkeypatch.setattr(db, "commit", real_commit)
    retry = EventTrail(db, publisher)
    retry.add("o-1", OrderPickedPayload(order_number="ORD-1"))
    assert len(retry.emit()) == 1
    assert db.query(FulfillmentEvent).count() == 1


def test_publish_failure_does_not_undo_the_change(warehouse, db, session_factory, exploding_publisher, caplog):
    order = warehouse.order([{"sku": "SKU-A", "qty": 1}])
    broken = FulfillmentService(db, publisher=exploding_publisher)

    with caplog.at_level(logging.ERROR, logger="app.events.bus"):
        task = broken.generate_pick_list(order.id)

    assert task.id
    other = session_factory()
    try:
        assert other.query(FulfillmentEvent).filter(FulfillmentEvent.order_id == order.id).count() == 2
    finally:
        other.close()
    assert "Publish failed" in caplog.text


def test_failed_action_emits_nothing(service, warehouse, publisher, db):
    order = warehouse.order([{"sku": "SKU-A", "qty": 1}])
    task = service.generate_pick_list(order.id)
    publisher.clear()

    with pytest.raises(InvalidQuantityError):
        service.confirm_pick_item(task.items[0].id, quantity=-3)

    assert publisher.events == []
    assert db.query(FulfillmentEvent).count() == 2


def test_short_pick_completion_event_order(service, warehouse, publisher):
    order = warehouse.order([{"sku": "SKU-A", "qty": 4}])
    task = service.generate_pick_list(order.id)
    publisher.clear()

    service.confirm_pick_item(task.items[0].id, quantity=3)

    assert publisher.types == [
        EventType.PICKLIST_ITEM_PICKED,
        EventType.SHORT_PICK_DETECTED,
        EventType.PICKBIN_CREATED,
        EventType.PICKLIST_COMPLETED,
        EventType.ORDER_PICKED,
    ]
    assert len({e.correlation_id for e in publisher.events}) == 1


# ── Replay ───────────────────────────────────────────────────────

def test_events_since_returns_only_newer(service, warehouse, publisher):
    order = warehouse.order([{"sku": "SKU-A", "qty": 1}, {"sku": "SKU-B", "qty": 1}])
    task = service.generate_pick_list(order.id)
    marker = publisher.events[-1].id
    service.confirm_pick_item(task.items[0].id)

    newer = service.get_events_since(order.id, marker)

    assert [e.type for e in newer] == [EventType.PICKLIST_ITEM_PICKED]


def test_events_since_unknown_marker_replays_everything(service, picked_order, publisher):
    order, _ = picked_order

    replay = service.get_events_since(order.id, "not-an-event")

    assert [e.id for e in replay] == [e.id for e in publisher.events]


def test_events_are_scoped_to_the_order(service, warehouse):
    a = warehouse.order([{"sku": "SKU-A", "qty": 1}])
    b = warehouse.order([{"sku": "SKU-B", "qty": 1}])
    service.generate_pick_list(a.id)
    service.generate_pick_list(b.id)

    assert {e.order_id for e in service.get_events_since(a.id)} == {a.id}


# ── Fan-out ──────────────────────────────────────────────────────

def test_fanout_isolates_failing_target(publisher, exploding_publisher):
    fan = FanoutPublisher([exploding_publisher, publisher])

    fan.publish(_envelope())

    assert publisher.types == [EventType.ORDER_PICKED]


class FakeRedis:
    def __init__(self):
        self.sent = []

    def publish(self, channel, message):
        self.sent.append((channel, message))


def test_redis_publisher_sends_json_envelope():
    client = FakeRedis()
    RedisPublisher(client, "wh").publish(_envelope())

    channel, message = client.sent[0]
    assert channel == "wh"
    body = json.loads(message)
    assert body["type"] == EventType.ORDER_PICKED
    assert body["correlation_id"] == "corr-1"


@pytest.mark.parametrize("pattern,topic,expected", [
    ("*", "order:picked", True),
    ("order:picked", "order:picked", True),
    ("order:picked", "order:packed", False),
    ("picklist:*", "picklist:completed", True),
    ("picklist:*", "pickbin:created", False),
    ("pickbin:", "pickbin:scanning", True),
    ("", "order:picked", False),
])
def test_webhook_patterns(pattern, topic, expected):
    assert _pattern_matches(pattern, topic) is expected


def test_webhook_posts_to_matching_urls_only():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((str(request.url), json.loads(request.content)))
        return httpx.Response(204)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    hooks = WebhookPublisher([
        ("order:*", "http://erp.local/orders"),
        ("packing:", "http://dash.local/packing"),
    ], client=client)

    hooks.publish(_envelope())

    assert [url for url, _ in seen] == ["http://erp.local/orders"]
    body = seen[0][1]
    assert body["topic"] == EventType.ORDER_PICKED
    assert body["event_id"] == "evt-1"
    assert body["payload"] == {"order_number": "ORD-1"}


def test_webhook_failures_are_logged(caplog):
    def handler(request: httpx.Request) -> httpx.Response:
        if "down" in str(request.url):
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(500, text="boom")

    client = httpx.Client(transport=httpx.MockTransport(handler))
    hooks = WebhookPublisher([("*", "http://down.local/"), ("*", "http://up.local/")], client=client)

    with caplog.at_level(logging.WARNING, logger="app.events.dispatcher"):
        hooks.publish(_envelope())

    assert "unreachable" in caplog.text
    assert "HTTP 500" in caplog.text


def test_local_broker_delivers_to_matching_subscribers():
    broker = LocalBroker()

    async def run():
        mine = broker.subscribe("o-1")
        everything = broker.subscribe()
        other = broker.subscribe("o-2")
        # handlers publish from worker threads
        t = threading.Thread(target=broker.publish, args=(_envelope(order_id="o-1"),))
        t.start()
        t.join()
        got = await asyncio.wait_for(mine.queue.get(), timeout=1)
        also = await asyncio.wait_for(everything.queue.get(), timeout=1)
        await asyncio.sleep(0)
        assert other.queue.empty()
        broker.unsubscribe(mine)
        return got, also

    got, also = asyncio.run(run())

    assert got.order_id == "o-1"
    assert also.id == got.id
    assert broker.subscriber_count == 2


def test_local_broker_drops_when_queue_full(caplog):
    broker = LocalBroker(maxsize=1)

    async def run():
        sub = broker.subscribe("o-1")
        broker.publish(_envelope())
        broker.publish(_envelope())
        await asyncio.sleep(0.01)
        return sub.queue.qsize()

    with caplog.at_level(logging.WARNING, logger="app.events.publisher"):
        size = asyncio.run(run())

    assert size == 1
    assert "slow subscriber" in caplog.text
