from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.db.models.wms.common import utcnow, uuid4_str
from app.events.log import FulfillmentEvent
from app.events.publisher import EventPublisher, NullPublisher
from app.events.types import EventEnvelope, EventPayload

logger = logging.getLogger(__name__)


class EventTrail:
    """Events produced by one logical action.

    Services collect payloads while they work and call emit() once their
    transaction has committed. Every event shares the trail's correlation id
    and gets a strictly increasing timestamp so replay order matches emit
    order.
    """

    def __init__(self, db: Session, publisher: EventPublisher | None = None, *, user_id: str | None = None, correlation_id: str | None = None):
        self.db = db
        self.publisher = publisher or NullPublisher()
        self.user_id = user_id
        self.correlation_id = correlation_id or uuid4_str()
        self._pending: list[tuple[str | None, EventPayload]] = []

    def add(self, order_id: str | None, payload: EventPayload) -> None:
        self._pending.append((order_id, payload))

    def __len__(self) -> int:
        return len(self._pending)

    def emit(self) -> list[EventEnvelope]:
        """Persist then publish every pending event.

        Log writes run in their own commit, after the business transaction.
        Publish failures are logged and swallowed.
        """
        if not self._pending:
            return []
        pending, self._pending = self._pending, []

        rows: list[FulfillmentEvent] = []
        last: datetime | None = None
        for order_id, payload in pending:
            ts = utcnow()
            if last is not None and ts <= last:
                ts = last + timedelta(microseconds=1)
            last = ts
            row = FulfillmentEvent(
                id=uuid4_str(),
                order_id=order_id,
                type=payload.event_type,
                payload=payload.model_dump(mode="json"),
                correlation_id=self.correlation_id,
                user_id=self.user_id,
                created_at=ts,
            )
            self.db.add(row)
            rows.append(row)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("Event log write failed (%d events, correlation %s)", len(rows), self.correlation_id)
            raise

        envelopes = [to_envelope(r) for r in rows]
        for env in envelopes:
            try:
                self.publisher.publish(env)
            except Exception:
                logger.exception("Publish failed for %s (event %s, order %s)", env.type, env.id, env.order_id)
        return envelopes


def to_envelope(row: FulfillmentEvent) -> EventEnvelope:
    return EventEnvelope(
        id=row.id,
        type=row.type,
        order_id=row.order_id,
        payload=row.payload or {},
        correlation_id=row.correlation_id,
        user_id=row.user_id,
        timestamp=row.created_at,
    )
