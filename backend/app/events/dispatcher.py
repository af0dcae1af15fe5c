from __future__ import annotations

import logging

import httpx

from app.events.types import EventEnvelope

logger = logging.getLogger(__name__)


def _pattern_matches(pattern: str, topic: str) -> bool:
    """Very small pattern helper.

    Supported:
      - exact match:   "packing:completed"
      - everything:    "*"
      - wildcard:      "picklist:*" (prefix match, keeps the trailing ':')
      - prefix:        "picklist:"
    """
    if not pattern:
        return False
    if pattern == "*" or pattern == topic:
        return True
    if pattern.endswith(":*") or pattern.endswith(".*"):
        return topic.startswith(pattern[:-1])
    if pattern.endswith(":") or pattern.endswith("."):
        return topic.startswith(pattern)
    return False


class WebhookPublisher:
    """POST each envelope to every webhook whose pattern matches its type.

    Delivery is single-shot; a failed POST is logged and the next target is
    tried. Consumers needing guarantees replay from the event log.
    """

    def __init__(self, subscriptions: list[tuple[str, str]], *, client: httpx.Client | None = None, timeout: float = 5.0):
        self.subscriptions = list(subscriptions)
        self.client = client or httpx.Client(timeout=timeout)

    def matching_urls(self, topic: str) -> list[str]:
        return [url for pattern, url in self.subscriptions if _pattern_matches(pattern, topic)]

    def publish(self, event: EventEnvelope) -> None:
        body = {
            "topic": event.type,
            "event_id": event.id,
            "created_at": event.timestamp.isoformat(),
            "order_id": event.order_id,
            "correlation_id": event.correlation_id,
            "payload": event.payload,
        }
        for url in self.matching_urls(event.type):
            try:
                resp = self.client.post(url, json=body)
            except httpx.HTTPError as e:
                logger.warning("Webhook %s unreachable for %s: %s", url, event.type, e)
                continue
            if not 200 <= resp.status_code < 300:
                logger.warning("Webhook %s rejected %s: HTTP %s %s", url, event.type, resp.status_code, resp.text[:300])

    def close(self) -> None:
        self.client.close()
