"""
Shared fixtures: an in-memory broker that several coordinators can share
"""
import asyncio
import time
from collections import defaultdict
from typing import Dict, List, Optional, Set

import pytest

from coaster_fleet.cluster.broker import Broker
from coaster_fleet.core.config import BrokerConfig
from coaster_fleet.core.errors import BrokerError
from coaster_fleet.storage.store import RecordStore


class FakeBrokerServer:
    """Key space, sets and channels shared by every FakeBroker client"""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.expiry: Dict[str, float] = {}
        self.sets: Dict[str, Set[str]] = defaultdict(set)
        self.subscriptions: Dict[str, List[asyncio.Queue]] = defaultdict(list)
        self.clock = time.monotonic

    def _purge(self, key: str):
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= self.clock():
            self.values.pop(key, None)
            self.expiry.pop(key, None)

    def read(self, key: str) -> Optional[str]:
        self._purge(key)
        return self.values.get(key)

    def write(self, key: str, value: str, ttl: float = None):
        self.values[key] = value
        if ttl is not None:
            self.expiry[key] = self.clock() + ttl
        else:
            self.expiry.pop(key, None)

    def expire(self, key: str):
        """Drop a key as if its time-to-live ran out"""
        self.values.pop(key, None)
        self.expiry.pop(key, None)


class FakeBroker(Broker):
    """
    In-memory Broker client

    Args:
        server: Shared state
        reachable: When False, connect() fails
        get_delay: Seconds between reading a key and answering get(), to widen races
        fail_publish: When True, publish() raises BrokerError
    """

    def __init__(self, server: FakeBrokerServer, reachable: bool = True,
                 get_delay: float = 0.0, fail_publish: bool = False):
        super().__init__()
        self.server = server
        self.reachable = reachable
        self.get_delay = get_delay
        self.fail_publish = fail_publish
        self.connected = False
        self.closed = False
        self.published: List[tuple] = []
        self._queues: List[tuple] = []
        self._readers: List[asyncio.Task] = []

    def _check(self):
        if not self.connected:
            raise BrokerError("not connected")

    async def connect(self):
        if not self.reachable:
            raise BrokerError("connection refused")
        self.connected = True

    async def close(self):
        for task in self._readers:
            task.cancel()
        for task in self._readers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        for channel, queue in self._queues:
            self.server.subscriptions[channel].remove(queue)
        self._readers.clear()
        self._queues.clear()
        self.connected = False
        self.closed = True

    def lose_connection(self):
        self.connected = False
        self._notify_error(BrokerError("connection lost"))

    async def get(self, key):
        self._check()
        value = self.server.read(key)
        if self.get_delay:
            # answer arrives late, the value may be stale by then
            await asyncio.sleep(self.get_delay)
        return value

    async def set(self, key, value, ttl=None):
        self._check()
        self.server.write(key, value, ttl)

    async def set_if_absent(self, key, value):
        self._check()
        if self.server.read(key) is not None:
            return False
        self.server.write(key, value)
        return True

    async def delete(self, key):
        self._check()
        self.server.expire(key)

    async def add_to_set(self, set_key, member):
        self._check()
        self.server.sets[set_key].add(member)

    async def remove_from_set(self, set_key, member):
        self._check()
        self.server.sets[set_key].discard(member)

    async def is_member(self, set_key, member):
        self._check()
        return member in self.server.sets[set_key]

    async def members(self, set_key):
        self._check()
        return set(self.server.sets[set_key])

    async def publish(self, channel, message):
        self._check()
        if self.fail_publish:
            raise BrokerError("publish rejected")
        self.published.append((channel, message))
        for queue in list(self.server.subscriptions[channel]):
            queue.put_nowait(message)

    async def subscribe(self, channel, handler):
        self._check()
        queue = asyncio.Queue()
        self.server.subscriptions[channel].append(queue)
        self._queues.append((channel, queue))
        self._readers.append(asyncio.create_task(self._read(channel, queue, handler)))

    async def _read(self, channel, queue, handler):
        while True:
            message = await queue.get()
            await handler(channel, message)

    def published_on(self, channel: str) -> List[str]:
        return [message for ch, message in self.published if ch == channel]


async def settle(*coordinators, rounds: int = 3):
    """Let published messages reach every coordinator and be handled"""
    for _ in range(rounds):
        await asyncio.sleep(0.01)
        for coordinator in coordinators:
            await coordinator.drain()


@pytest.fixture
def broker_server():
    return FakeBrokerServer()


@pytest.fixture
def broker_config():
    # heartbeats are driven by hand in tests
    return BrokerConfig(heartbeat_interval=3600, liveness_window=10)


@pytest.fixture
def store(tmp_path):
    return RecordStore(tmp_path / "data")


@pytest.fixture
def store_factory(tmp_path):
    def make(name: str) -> RecordStore:
        return RecordStore(tmp_path / name)
    return make
