"""Typed payloads for every fulfillment event.

Each payload class declares the event type it is published under, so the
event log can be decoded back into the same model it was written from.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, Field


class EventType:
    ORDER_PROCESSING = "order:processing"
    ORDER_PICKED = "order:picked"
    ORDER_PACKED = "order:packed"
    PICKLIST_GENERATED = "picklist:generated"
    PICKLIST_ITEM_PICKED = "picklist:item_picked"
    PICKLIST_COMPLETED = "picklist:completed"
    SHORT_PICK_DETECTED = "short_pick:detected"
    PICKBIN_CREATED = "pickbin:created"
    PICKBIN_SCANNING = "pickbin:scanning"
    PICKBIN_ITEM_VERIFIED = "pickbin:item_verified"
    PICKBIN_COMPLETED = "pickbin:completed"
    PACKING_STARTED = "packing:started"
    PACKING_ITEM_VERIFIED = "packing:item_verified"
    PACKING_COMPLETED = "packing:completed"


class EventPayload(BaseModel):
    event_type: ClassVar[str]


class Dimensions(BaseModel):
    length: float = Field(..., gt=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    unit: str = "inch"


class BinRef(BaseModel):
    id: str
    bin_number: str
    barcode: str


class PickLine(BaseModel):
    task_item_id: str
    sequence: int
    sku: str | None = None
    location_name: str | None = None
    quantity: int


class PackLine(BaseModel):
    task_item_id: str
    sequence: int
    sku: str | None = None
    quantity: int


# ---- order ----
class OrderProcessingPayload(EventPayload):
    event_type: ClassVar[str] = EventType.ORDER_PROCESSING
    order_number: str
    task_id: str


class OrderPickedPayload(EventPayload):
    event_type: ClassVar[str] = EventType.ORDER_PICKED
    order_number: str | None = None
    task_id: str | None = None


class OrderPackedPayload(EventPayload):
    event_type: ClassVar[str] = EventType.ORDER_PACKED
    order_number: str | None = None
    task_id: str | None = None


# ---- picking ----
class PicklistGeneratedPayload(EventPayload):
    event_type: ClassVar[str] = EventType.PICKLIST_GENERATED
    task_id: str
    task_number: str
    items: list[PickLine]
    total_items: int


class PicklistItemPickedPayload(EventPayload):
    event_type: ClassVar[str] = EventType.PICKLIST_ITEM_PICKED
    task_id: str
    task_item_id: str
    sku: str | None = None
    location_name: str | None = None
    quantity: int
    is_short: bool
    progress: str


class ShortPickDetectedPayload(EventPayload):
    event_type: ClassVar[str] = EventType.SHORT_PICK_DETECTED
    task_id: str
    task_item_id: str
    sku: str | None = None
    location_name: str | None = None
    quantity_required: int
    quantity_picked: int
    reason: str


class PicklistCompletedPayload(EventPayload):
    event_type: ClassVar[str] = EventType.PICKLIST_COMPLETED
    task_id: str
    task_number: str
    completed_items: int
    short_items: int
    bin: BinRef | None = None


# ---- pick bins ----
class PickBinCreatedPayload(EventPayload):
    event_type: ClassVar[str] = EventType.PICKBIN_CREATED
    bin_id: str
    bin_number: str
    barcode: str
    item_count: int
    total_quantity: int


class PickBinScanningPayload(EventPayload):
    event_type: ClassVar[str] = EventType.PICKBIN_SCANNING
    bin_id: str
    bin_number: str
    barcode: str
    order_number: str | None = None


class PickBinItemVerifiedPayload(EventPayload):
    event_type: ClassVar[str] = EventType.PICKBIN_ITEM_VERIFIED
    bin_id: str
    bin_number: str
    sku: str
    verified_qty: int
    quantity: int
    all_verified: bool


class PickBinCompletedPayload(EventPayload):
    event_type: ClassVar[str] = EventType.PICKBIN_COMPLETED
    bin_id: str
    bin_number: str
    order_number: str | None = None
    packed_by: str | None = None
    item_count: int


# ---- packing ----
class PackingStartedPayload(EventPayload):
    event_type: ClassVar[str] = EventType.PACKING_STARTED
    task_id: str
    task_number: str
    order_number: str
    items: list[PackLine]
    total_items: int


class PackingItemVerifiedPayload(EventPayload):
    event_type: ClassVar[str] = EventType.PACKING_ITEM_VERIFIED
    task_id: str
    task_item_id: str
    sku: str | None = None
    quantity: int
    progress: str


class PackingCompletedPayload(EventPayload):
    event_type: ClassVar[str] = EventType.PACKING_COMPLETED
    task_id: str | None = None
    task_number: str | None = None
    bin_id: str | None = None
    bin_number: str | None = None
    order_number: str | None = None
    weight: float
    weight_unit: str = "ounce"
    dimensions: Dimensions | None = None


PAYLOAD_TYPES: dict[str, type[EventPayload]] = {
    cls.event_type: cls
    for cls in (
        OrderProcessingPayload,
        OrderPickedPayload,
        OrderPackedPayload,
        PicklistGeneratedPayload,
        PicklistItemPickedPayload,
        ShortPickDetectedPayload,
        PicklistCompletedPayload,
        PickBinCreatedPayload,
        PickBinScanningPayload,
        PickBinItemVerifiedPayload,
        PickBinCompletedPayload,
        PackingStartedPayload,
        PackingItemVerifiedPayload,
        PackingCompletedPayload,
    )
}


def decode_payload(event_type: str, data: dict[str, Any] | None) -> EventPayload:
    try:
        cls = PAYLOAD_TYPES[event_type]
    except KeyError:
        raise ValueError(f"Unknown fulfillment event type: {event_type}") from None
    return cls.model_validate(data or {})


class EventEnvelope(BaseModel):
    """What subscribers receive, live or on replay."""

    id: str
    type: str
    order_id: str | None = None
    payload: dict[str, Any]
    correlation_id: str | None = None
    user_id: str | None = None
    timestamp: datetime

    def typed_payload(self) -> EventPayload:
        return decode_payload(self.type, self.payload)
