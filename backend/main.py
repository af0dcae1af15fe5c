from __future__ import annotations

import logging

import redis
from fastapi import FastAPI

from app.core.config import Settings, settings
from app.core.errors import register_exception_handlers
from app.core.logging import configure_logging
from app.db.base import Base
from app.db.session import engine
from app.events.dispatcher import WebhookPublisher
from app.events.publisher import EventPublisher, FanoutPublisher, LocalBroker, RedisPublisher

# Register models
from app.db import models  # noqa: F401

from services.fulfillment.api import router as fulfillment_router

logger = logging.getLogger(__name__)


def build_publisher(cfg: Settings, broker: LocalBroker) -> EventPublisher:
    """Local SSE broker always; redis and webhooks when configured."""
    targets: list[EventPublisher] = [broker]
    if cfg.redis_url:
        targets.append(RedisPublisher(redis.Redis.from_url(cfg.redis_url), channel=cfg.fulfillment_channel))
    if cfg.webhooks:
        targets.append(WebhookPublisher(cfg.webhooks, timeout=cfg.webhook_timeout_seconds))
    return FanoutPublisher(targets)


def create_app(cfg: Settings = settings) -> FastAPI:
    configure_logging(cfg.log_level)
    app = FastAPI(title="Warehouse Fulfillment")
    register_exception_handlers(app)

    app.state.broker = LocalBroker()
    app.state.publisher = build_publisher(cfg, app.state.broker)

    app.include_router(fulfillment_router)

    @app.on_event("startup")
    async def _startup():
        # Dev-friendly schema creation (migrations are available for real upgrades)
        Base.metadata.create_all(bind=engine)
        logger.info("Fulfillment API ready (redis=%s, webhooks=%d)", bool(cfg.redis_url), len(cfg.webhooks))

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


app = create_app()
