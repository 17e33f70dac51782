from __future__ import annotations

import asyncio
import json
from datetime import datetime
from typing import Any, Awaitable, Callable

import aio_pika
from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.abc import (
    AbstractChannel,
    AbstractConnection,
    AbstractExchange,
    AbstractIncomingMessage,
)

from identity_access.configs.logging_config import get_logger
from identity_access.configs.settings import Settings
from identity_access.errors import ChannelUnavailableError

log = get_logger(__name__)

EventHandler = Callable[[str, dict[str, Any]], Awaitable[None]]


class EventPublisher:
    """
    Topic-exchange client used for domain events.

    Outbound:
    - ``publish`` is best effort: it returns False instead of raising when no
      channel is live or the broker does not answer within
      ``publish_timeout_seconds``. Messages are persistent JSON.

    Inbound:
    - the durable queue is bound to ``rabbitmq_bindings`` and consumed with
      manual acks; handlers are looked up by exact routing key.

    Connection supervision:
    - ``start`` launches ``run`` as a background task which reconnects every
      ``reconnect_delay_seconds`` for as long as the service lives. ``close``
      stops it.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        connect: Callable[..., Awaitable[AbstractConnection]] = aio_pika.connect,
    ):
        self._settings = settings
        self._connect = connect
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._handlers: dict[str, EventHandler] = {}
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    # ----------------------------
    # State
    # ----------------------------

    @property
    def is_connected(self) -> bool:
        return (
            self._exchange is not None
            and self._channel is not None
            and not self._channel.is_closed
        )

    def require_channel(self) -> AbstractExchange:
        if not self.is_connected:
            raise ChannelUnavailableError()
        return self._exchange

    def register_handler(self, routing_key: str, handler: EventHandler) -> None:
        self._handlers[routing_key] = handler

    # ----------------------------
    # Connection lifecycle
    # ----------------------------

    async def connect(self) -> None:
        """Single attempt: connect, declare topology, start consuming."""
        settings = self._settings
        connection = await self._connect(settings.rabbitmq_uri)
        try:
            channel = await connection.channel()
            exchange = await channel.declare_exchange(
                settings.rabbitmq_exchange, ExchangeType.TOPIC, durable=True
            )
            queue = await channel.declare_queue(settings.rabbitmq_queue, durable=True)
            for pattern in settings.binding_patterns():
                await queue.bind(exchange, routing_key=pattern)
            await queue.consume(self.on_message, no_ack=False)
        except Exception:
            await connection.close()
            raise

        self._connection = connection
        self._channel = channel
        self._exchange = exchange
        log.info(
            "broker.connected exchange=%s queue=%s bindings=%s",
            settings.rabbitmq_exchange,
            settings.rabbitmq_queue,
            settings.binding_patterns(),
        )

    async def run(self) -> None:
        delay = self._settings.reconnect_delay_seconds
        while not self._stop.is_set():
            try:
                await self.connect()
                await self._wait_until_lost()
                if self._stop.is_set():
                    break
                log.error("broker.link.lost retry_in=%ss", delay)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error("broker.connect.failed error=%s retry_in=%ss", e, delay)

            await self._release()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        log.info("broker.supervisor.stopped")

    def _link_lost(self) -> bool:
        return self._connection.is_closed or self._channel.is_closed

    async def _wait_until_lost(self) -> None:
        """
        Returns once the connection or the channel is closed, or on ``close``.

        A channel-level error (e.g. PRECONDITION_FAILED) closes only the
        channel, so both close callbacks are watched. ``is_closed`` is also
        re-checked every ``reconnect_delay_seconds`` in case a callback is missed.
        """
        lost = asyncio.Event()
        self._connection.close_callbacks.add(lambda *_: lost.set())
        self._channel.close_callbacks.add(lambda *_: lost.set())
        waiters = {
            asyncio.ensure_future(lost.wait()),
            asyncio.ensure_future(self._stop.wait()),
        }
        try:
            while not self._link_lost():
                done, _ = await asyncio.wait(
                    waiters,
                    timeout=self._settings.reconnect_delay_seconds,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if done:
                    return
        finally:
            for w in waiters:
                w.cancel()

    def _drop_channel(self) -> None:
        self._exchange = None
        self._channel = None
        self._connection = None

    async def _release(self) -> None:
        """Forget the current link and close a connection left open by a channel error."""
        connection = self._connection
        self._drop_channel()
        if connection is not None and not connection.is_closed:
            try:
                await connection.close()
            except Exception as e:
                log.error("broker.close.failed error=%s", e)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stop.clear()
            self._task = asyncio.create_task(self.run(), name="event-publisher-supervisor")
        return self._task

    async def close(self) -> None:
        self._stop.set()
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._release()
        log.info("broker.closed")

    # ----------------------------
    # Publish / consume
    # ----------------------------

    async def publish(self, routing_key: str, payload: dict[str, Any]) -> bool:
        if not self.is_connected:
            log.error("broker.publish.no_channel routing_key=%s", routing_key)
            return False

        message = Message(
            json.dumps(payload, default=str).encode("utf-8"),
            content_type="application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
            timestamp=datetime.now(),
            headers={"source": self._settings.SERVICE_NAME},
        )
        try:
            await asyncio.wait_for(
                self._exchange.publish(message, routing_key=routing_key),
                timeout=self._settings.publish_timeout_seconds,
            )
        except asyncio.TimeoutError:
            log.warning("broker.publish.timeout routing_key=%s", routing_key)
            return False
        except Exception as e:
            log.error("broker.publish.failed routing_key=%s error=%s", routing_key, e)
            return False

        log.debug("broker.publish.ok routing_key=%s", routing_key)
        return True

    async def on_message(self, message: AbstractIncomingMessage) -> None:
        routing_key = message.routing_key or ""
        try:
            payload = json.loads(message.body)
        except ValueError as e:
            log.error("broker.consume.bad_body routing_key=%s error=%s", routing_key, e)
            await message.nack(requeue=False)
            return

        handler = self._handlers.get(routing_key)
        if handler is None:
            log.warning("broker.consume.unhandled routing_key=%s", routing_key)
            await message.ack()
            return

        try:
            await handler(routing_key, payload)
        except Exception as e:
            log.error(
                "broker.consume.handler_failed routing_key=%s error=%s",
                routing_key,
                e,
                exc_info=True,
            )
            await message.nack(requeue=True)
            return

        await message.ack()
