from __future__ import annotations

from typing import Any

from identity_access.configs.logging_config import get_logger
from identity_access.events import definitions as ev
from identity_access.events.publisher import EventPublisher

log = get_logger(__name__)


async def log_event(routing_key: str, payload: dict[str, Any]) -> None:
    log.info(
        "event.received routing_key=%s id=%s user_id=%s",
        routing_key,
        payload.get("id"),
        payload.get("userId"),
    )


def register_default_handlers(publisher: EventPublisher) -> None:
    """Events this service listens to; currently only observed, no side effects."""
    for routing_key in (ev.USER_CREATED, ev.USER_UPDATED, ev.AUTH_LOGIN):
        publisher.register_handler(routing_key, log_event)
