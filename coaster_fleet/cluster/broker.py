"""
Shared key/value and publish/subscribe substrate used for coordination.

``Broker`` is the interface the coordination layer consumes. ``RedisBroker``
implements it on top of ``redis.asyncio``; every subscription gets its own
pub/sub connection and reader task, so a slow handler on one channel never
holds up another.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, List, Optional, Set

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from ..core.errors import BrokerError


MessageHandler = Callable[[str, str], Awaitable[None]]
ErrorListener = Callable[[Exception], None]


class Broker(ABC):
    """
    Interface of the coordination broker

    All operations are coroutines. Implementations raise ``BrokerError``
    for any failure and report connection loss to the registered error
    listeners.
    """

    def __init__(self):
        self._error_listeners: List[ErrorListener] = []

    def add_error_listener(self, listener: ErrorListener):
        self._error_listeners.append(listener)

    def _notify_error(self, error: Exception):
        for listener in list(self._error_listeners):
            listener(error)

    @abstractmethod
    async def connect(self):
        pass

    @abstractmethod
    async def close(self):
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[float] = None):
        pass

    @abstractmethod
    async def set_if_absent(self, key: str, value: str) -> bool:
        """Atomically set ``key`` only when it holds no value"""
        pass

    @abstractmethod
    async def delete(self, key: str):
        pass

    @abstractmethod
    async def add_to_set(self, set_key: str, member: str):
        pass

    @abstractmethod
    async def remove_from_set(self, set_key: str, member: str):
        pass

    @abstractmethod
    async def is_member(self, set_key: str, member: str) -> bool:
        pass

    @abstractmethod
    async def members(self, set_key: str) -> Set[str]:
        pass

    @abstractmethod
    async def publish(self, channel: str, message: str):
        pass

    @abstractmethod
    async def subscribe(self, channel: str, handler: MessageHandler):
        """
        Deliver every message published on ``channel`` to ``handler``

        Args:
            channel: Channel name
            handler: Coroutine called as ``handler(channel, message)``,
                     in publish order for this channel
        """
        pass


class RedisBroker(Broker):
    """Broker backed by a Redis server"""

    def __init__(self, url: str = "redis://localhost:6379", connect_timeout: float = 5.0):
        super().__init__()
        self.url = url
        self.connect_timeout = connect_timeout
        self.logger = logging.getLogger("RedisBroker")
        self._client: Optional[redis.Redis] = None
        self._pubsubs: List = []
        self._readers: Dict[str, List[asyncio.Task]] = {}

    async def connect(self):
        try:
            self._client = redis.Redis.from_url(
                self.url,
                decode_responses=True,
                socket_connect_timeout=self.connect_timeout,
            )
            await self._client.ping()
        except (RedisError, OSError) as e:
            self._client = None
            raise BrokerError(f"Cannot reach broker at {self.url}: {e}") from e
        self.logger.info(f"Connected to broker at {self.url}")

    async def close(self):
        for tasks in self._readers.values():
            for task in tasks:
                task.cancel()
        for tasks in self._readers.values():
            for task in tasks:
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._readers.clear()

        for pubsub in self._pubsubs:
            try:
                await pubsub.aclose()
            except RedisError as e:
                self.logger.warning(f"Error closing subscription: {e}")
        self._pubsubs.clear()

        if self._client is not None:
            try:
                await self._client.aclose()
            except RedisError as e:
                self.logger.warning(f"Error closing broker connection: {e}")
            self._client = None
        self.logger.info("Broker connections closed")

    async def _call(self, operation: str, coro):
        try:
            return await coro
        except RedisConnectionError as e:
            self._notify_error(e)
            raise BrokerError(f"{operation}: {e}") from e
        except RedisError as e:
            raise BrokerError(f"{operation}: {e}") from e

    def _require_client(self) -> redis.Redis:
        if self._client is None:
            raise BrokerError("broker not connected")
        return self._client

    async def get(self, key: str) -> Optional[str]:
        return await self._call("get", self._require_client().get(key))

    async def set(self, key: str, value: str, ttl: Optional[float] = None):
        kwargs = {}
        if ttl is not None:
            kwargs['px'] = int(ttl * 1000)
        await self._call("set", self._require_client().set(key, value, **kwargs))

    async def set_if_absent(self, key: str, value: str) -> bool:
        result = await self._call("set_if_absent", self._require_client().set(key, value, nx=True))
        return bool(result)

    async def delete(self, key: str):
        await self._call("delete", self._require_client().delete(key))

    async def add_to_set(self, set_key: str, member: str):
        await self._call("add_to_set", self._require_client().sadd(set_key, member))

    async def remove_from_set(self, set_key: str, member: str):
        await self._call("remove_from_set", self._require_client().srem(set_key, member))

    async def is_member(self, set_key: str, member: str) -> bool:
        result = await self._call("is_member", self._require_client().sismember(set_key, member))
        return bool(result)

    async def members(self, set_key: str) -> Set[str]:
        result = await self._call("members", self._require_client().smembers(set_key))
        return set(result)

    async def publish(self, channel: str, message: str):
        await self._call("publish", self._require_client().publish(channel, message))

    async def subscribe(self, channel: str, handler: MessageHandler):
        pubsub = self._require_client().pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(channel)
        except RedisError as e:
            raise BrokerError(f"subscribe {channel}: {e}") from e

        self._pubsubs.append(pubsub)
        task = asyncio.create_task(self._read_channel(channel, pubsub, handler))
        self._readers.setdefault(channel, []).append(task)
        self.logger.info(f"Subscribed to channel: {channel}")

    async def _read_channel(self, channel: str, pubsub, handler: MessageHandler):
        try:
            async for message in pubsub.listen():
                if message.get('type') != 'message':
                    continue
                await handler(channel, message['data'])
        except RedisError as e:
            self.logger.error(f"Subscription to {channel} lost: {e}")
            self._notify_error(e)
