from __future__ import annotations

from sqlalchemy import Index, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.models.wms.common import HasCreatedAt, HasId


class FulfillmentEvent(Base, HasId, HasCreatedAt):
    """Append-only record of every fulfillment action.

    Rows are written after the business transaction commits and are never
    updated. Dashboards replay them in created_at order, the live channel only
    carries the same envelope on a best-effort basis.
    """

    __tablename__ = "fulfillment_event"

    order_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    correlation_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)


Index("ix_fulfillment_event_order_created", FulfillmentEvent.order_id, FulfillmentEvent.created_at)
