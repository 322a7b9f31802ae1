"""
Redis pub/sub transport.

One client publishes; one pub/sub connection, drained by a background
listener task, receives events, requests and replies. Subscriptions are kept
across reconnects so handlers registered before a connection loss keep
receiving events once the connection manager reconnects.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import suppress
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..exceptions import (
    BrokerConnectionError,
    EventBusError,
    EventSerializationError,
    RemoteServiceError,
    TransportError,
)
from ..identity import redact_url
from .base import (
    REPLY_SUFFIX,
    EventHandler,
    Responder,
    Transport,
    decode_packet,
    encode_packet,
    event_packet,
    reply_channel,
    reply_packet,
    request_packet,
)

if TYPE_CHECKING:
    from ..config import EventBusSettings

logger = logging.getLogger(__name__)

CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


class RedisTransport(Transport):
    """Transport speaking the marketplace packet format over Redis pub/sub."""

    name = "redis"

    def __init__(
        self,
        url: str,
        *,
        connect_timeout: float = 5.0,
        socket_timeout: float = 5.0,
        poll_interval: float = 1.0,
        client_name: str | None = None,
    ) -> None:
        super().__init__()
        self.url = url
        self.connect_timeout = connect_timeout
        self.socket_timeout = socket_timeout
        self.poll_interval = poll_interval
        self.client_name = client_name

        self._client: redis.Redis | None = None
        self._pubsub: Any = None
        self._listener_task: asyncio.Task | None = None
        self._subscribe_lock = asyncio.Lock()

        self._channels: set[str] = set()
        self._event_handlers: dict[str, list[EventHandler]] = {}
        self._responders: dict[str, Responder] = {}
        self._pending: dict[str, asyncio.Future] = {}
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: EventBusSettings) -> RedisTransport:
        return cls(
            settings.broker_url(),
            connect_timeout=settings.connect_timeout,
            socket_timeout=settings.socket_timeout,
            client_name=settings.service_name,
        )

    @property
    def redacted_url(self) -> str:
        return redact_url(self.url)

    async def connect(self) -> None:
        """Connect to Redis and restore existing subscriptions."""
        await self._teardown()

        client = redis.from_url(
            self.url,
            decode_responses=True,
            socket_connect_timeout=self.connect_timeout,
            socket_timeout=self.socket_timeout,
            client_name=self.client_name,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            with suppress(RedisError, OSError):
                await client.aclose()
            raise BrokerConnectionError(
                f"Cannot reach Redis at {self.redacted_url}: {e}", cause=e
            ) from e

        self._client = client
        self._pubsub = client.pubsub()
        self._connected = True

        if self._channels:
            try:
                async with self._subscribe_lock:
                    await self._pubsub.subscribe(*sorted(self._channels))
            except CONNECTION_ERRORS as e:
                self._connected = False
                await self._teardown()
                raise BrokerConnectionError(
                    f"Cannot subscribe on Redis at {self.redacted_url}: {e}", cause=e
                ) from e
            self._ensure_listener()

        logger.info(f"Connected to Redis at {self.redacted_url}")

    async def close(self) -> None:
        """Disconnect from Redis and fail outstanding requests."""
        was_connected = self._connected
        self._connected = False
        self._fail_pending(BrokerConnectionError("Redis transport closed"))
        for task in list(self._tasks):
            task.cancel()
        await self._teardown()
        if was_connected:
            logger.info("Disconnected from Redis")

    async def ping(self) -> None:
        client = self._require_client()
        try:
            await client.ping()
        except CONNECTION_ERRORS as e:
            raise self._connection_lost(e) from e

    async def publish(self, pattern: str, data: Any) -> None:
        await self._publish_message(pattern, encode_packet(event_packet(pattern, data)))

    async def request(self, pattern: str, data: Any) -> Any:
        self._require_client()
        request_id = str(uuid.uuid4())
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._add_channel(reply_channel(pattern))
            await self._publish_message(pattern, encode_packet(request_packet(pattern, data, request_id)))
            return await future
        finally:
            self._pending.pop(request_id, None)

    async def subscribe(self, pattern: str, handler: EventHandler) -> None:
        self._event_handlers.setdefault(pattern, []).append(handler)
        await self._add_channel(pattern)

    async def serve(self, pattern: str, responder: Responder) -> None:
        self._responders[pattern] = responder
        await self._add_channel(pattern)

    def describe(self) -> dict[str, Any]:
        info = super().describe()
        info.update(
            {
                "url": self.redacted_url,
                "channels": len(self._channels),
                "pending_requests": len(self._pending),
            }
        )
        return info

    # Internals

    def _require_client(self) -> redis.Redis:
        if not self._connected or self._client is None:
            raise BrokerConnectionError("Redis transport is not connected")
        return self._client

    def _connection_lost(self, error: Exception) -> BrokerConnectionError:
        lost = BrokerConnectionError(f"Lost connection to Redis at {self.redacted_url}: {error}", cause=error)
        if self._connected:
            logger.warning(f"Lost connection to Redis at {self.redacted_url}: {error}")
            self._fail_pending(lost)
            self._notify_disconnected(lost)
        return lost

    async def _publish_message(self, channel: str, message: str) -> None:
        client = self._require_client()
        try:
            await client.publish(channel, message)
        except CONNECTION_ERRORS as e:
            raise self._connection_lost(e) from e
        except RedisError as e:
            raise TransportError(f"Redis rejected publish on {channel}: {e}", pattern=channel, cause=e) from e

    async def _add_channel(self, channel: str) -> None:
        if channel in self._channels:
            return
        self._channels.add(channel)
        if not self._connected or self._pubsub is None:
            # picked up by the next connect()
            return
        try:
            async with self._subscribe_lock:
                await self._pubsub.subscribe(channel)
        except CONNECTION_ERRORS as e:
            raise self._connection_lost(e) from e
        self._ensure_listener()

    def _ensure_listener(self) -> None:
        if self._listener_task is None or self._listener_task.done():
            self._listener_task = asyncio.get_running_loop().create_task(
                self._listen(self._pubsub), name="marketplace-events-redis-listener"
            )

    async def _listen(self, pubsub: Any) -> None:
        try:
            while self._connected and pubsub is self._pubsub:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=self.poll_interval)
                if not message or message.get("type") != "message":
                    continue
                channel = message["channel"]
                try:
                    packet = decode_packet(message["data"])
                except TransportError as e:
                    logger.warning(f"Dropping malformed packet on {channel}: {e}")
                    continue
                try:
                    self._dispatch(channel, packet)
                except Exception as e:
                    logger.warning(f"Dropping packet on {channel} that could not be dispatched: {e}")
        except asyncio.CancelledError:
            raise
        except CONNECTION_ERRORS as e:
            if pubsub is self._pubsub:
                self._connection_lost(e)
        except Exception as e:
            logger.exception("Redis listener stopped unexpectedly")
            if pubsub is self._pubsub:
                self._connection_lost(e)

    def _dispatch(self, channel: str, packet: dict[str, Any]) -> None:
        request_id = packet.get("id")
        if "id" in packet and not isinstance(request_id, str):
            logger.warning(f"Dropping packet on {channel} with invalid id {request_id!r}")
            return

        if channel.endswith(REPLY_SUFFIX) and request_id is not None and "pattern" not in packet:
            self._resolve_reply(packet)
            return

        if request_id is not None:
            responder = self._responders.get(channel)
            if responder is not None:
                self._spawn(self._answer(channel, responder, packet))
            return

        for handler in self._event_handlers.get(channel, []):
            self._spawn(self._deliver(channel, handler, packet.get("data")))

    def _resolve_reply(self, packet: dict[str, Any]) -> None:
        future = self._pending.get(packet["id"])
        if future is None or future.done():
            return
        if packet.get("err") is not None:
            error = packet["err"]
            future.set_exception(RemoteServiceError(f"Remote service replied with an error: {error}", remote_error=error))
        elif "response" in packet or packet.get("isDisposed"):
            future.set_result(packet.get("response"))

    async def _deliver(self, channel: str, handler: EventHandler, data: Any) -> None:
        try:
            await handler(data)
        except Exception:
            logger.exception(f"Event handler for {channel} failed")

    async def _answer(self, channel: str, responder: Responder, packet: dict[str, Any]) -> None:
        request_id = packet["id"]
        try:
            result = await responder(packet.get("data"))
            reply = reply_packet(request_id, response=result)
        except Exception as e:
            logger.warning(f"Responder for {channel} failed: {e}")
            reply = reply_packet(request_id, err=str(e) or type(e).__name__)

        try:
            message = encode_packet(reply)
        except EventSerializationError as e:
            logger.warning(f"Reply for {channel} is not JSON serializable: {e}")
            message = encode_packet(reply_packet(request_id, err=f"Unserializable response: {e}"))

        try:
            await self._publish_message(reply_channel(channel), message)
        except EventBusError as e:
            logger.error(f"Failed to send reply for {channel}: {e}")

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)

    async def _teardown(self) -> None:
        listener, self._listener_task = self._listener_task, None
        pubsub, self._pubsub = self._pubsub, None
        client, self._client = self._client, None

        if listener is not None and listener is not asyncio.current_task():
            listener.cancel()
            with suppress(asyncio.CancelledError):
                await listener
        if pubsub is not None:
            with suppress(RedisError, OSError):
                await pubsub.aclose()
        if client is not None:
            with suppress(RedisError, OSError):
                await client.aclose()
