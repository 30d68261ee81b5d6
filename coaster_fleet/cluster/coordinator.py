"""
Cluster coordination: membership, master election and failure detection.

Nodes never talk to each other directly. Everything goes through the
broker's key space and pub/sub channels:

- ``master_node``         key holding the current master's node id
- ``connected_nodes``     set of node ids that announced themselves
- ``node_alive:<id>``     per-node liveness key, refreshed every heartbeat
                          and expiring after ``liveness_window`` seconds

Election is a plain read-then-write of ``master_node`` unless
``atomic_election`` is enabled, in which case the broker's set-if-absent
is used. With the plain variant two nodes that start at the same moment
can both see no master and both claim it; the next heartbeat makes the
node whose id was overwritten step down.

Inbound messages from every subscribed channel land in a single inbox and
are dispatched one at a time by one task. Heartbeat ticks take the same
lock, so role and membership changes never interleave.
"""
import asyncio
import inspect
import logging
import time
import uuid
from typing import Callable, Dict, List, Optional

from ..core.config import BrokerConfig
from ..core.errors import BrokerError
from .broker import Broker
from .membership import ConnectionState, MembershipSnapshot, MembershipTable, NodeRole


MASTER_KEY = "master_node"
NODES_KEY = "connected_nodes"
LIVENESS_KEY_PREFIX = "node_alive:"

NODE_CONNECTED = "node_connected"
NODE_DISCONNECTED = "node_disconnected"
MASTER_CHANGED = "master_changed"


def liveness_key(node_id: str) -> str:
    return f"{LIVENESS_KEY_PREFIX}{node_id}"


class Coordinator:
    """
    Membership and leadership for one node

    Usable as an async context manager; ``stop`` runs on every exit path.
    When the broker cannot be reached the coordinator stays standalone:
    queries answer from local state and broadcasts are dropped.
    """

    def __init__(self, broker: Broker, config: BrokerConfig = None, node_id: str = None):
        self.broker = broker
        self.config = config or BrokerConfig()
        self.node_id = node_id or str(uuid.uuid4())
        self.membership = MembershipTable(self.node_id)
        self.logger = logging.getLogger(f"Coordinator-{self.node_id[:8]}")

        self._handlers: Dict[str, List[Callable]] = {}
        self._subscribed = set()
        self._inbox: Optional[asyncio.Queue] = None
        self._lock = asyncio.Lock()
        self._dispatcher: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._started = False
        self._stopped = False
        self._broker_open = False

    async def __aenter__(self) -> "Coordinator":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self.membership.connected

    @property
    def standalone(self) -> bool:
        return not self.membership.connected

    def is_leader(self) -> bool:
        return self.membership.is_leader()

    def peer_count(self) -> int:
        return self.membership.peer_count()

    def node_count(self) -> int:
        return self.membership.node_count()

    def snapshot(self) -> MembershipSnapshot:
        return self.membership.snapshot()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> "Coordinator":
        """
        Join the cluster

        Never raises for an unreachable broker; the coordinator then stays
        in standalone mode and every coordination call becomes a no-op.

        Returns:
            This coordinator, for chaining
        """
        if self._started:
            return self
        self._started = True
        self.membership.state = ConnectionState.CONNECTING

        try:
            await self.broker.connect()
        except BrokerError as e:
            self.membership.disconnect()
            self.logger.warning(f"Broker unreachable, running in standalone mode: {e}")
            return self

        self._broker_open = True
        self.broker.add_error_listener(self._on_broker_error)
        self._inbox = asyncio.Queue()
        self._dispatcher = asyncio.create_task(self._dispatch_loop())
        self.membership.state = ConnectionState.CONNECTED

        for channel, handler in [(NODE_CONNECTED, self._handle_node_connected),
                                 (NODE_DISCONNECTED, self._handle_node_disconnected),
                                 (MASTER_CHANGED, self._handle_master_changed)]:
            self._handlers.setdefault(channel, []).insert(0, handler)

        try:
            async with self._lock:
                await self._register()
        except BrokerError as e:
            self.logger.error(f"Error registering node: {e}")
            self.membership.disconnect()
            return self

        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        return self

    async def _register(self):
        await self._claim_leadership()

        await self.broker.add_to_set(NODES_KEY, self.node_id)
        await self._refresh_liveness()

        for channel in list(self._handlers):
            await self._ensure_subscribed(channel)

        await self.broker.publish(NODE_CONNECTED, self.node_id)

        now = time.time()
        for node_id in await self.broker.members(NODES_KEY):
            self.membership.add_peer(node_id, now)

        self.logger.info(f"Connected to {self.node_count()} nodes in the cluster")

    async def stop(self):
        """
        Leave the cluster

        Announces the departure, removes this node from the shared set and
        clears the master key if it still names this node. Cleanup errors
        are logged; the broker connection is closed regardless.
        """
        if self._stopped:
            return
        self._stopped = True

        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass

        if self.connected:
            try:
                await self.broker.publish(NODE_DISCONNECTED, self.node_id)
                await self.broker.remove_from_set(NODES_KEY, self.node_id)
                await self.broker.delete(liveness_key(self.node_id))
                # checked regardless of role, a cancelled promotion may have set the key only
                if await self.broker.get(MASTER_KEY) == self.node_id:
                    await self.broker.delete(MASTER_KEY)
            except BrokerError as e:
                self.logger.error(f"Error cleaning up cluster membership: {e}")

        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass

        if self._broker_open:
            try:
                await self.broker.close()
            except BrokerError as e:
                self.logger.error(f"Error closing broker connection: {e}")

        self.membership.disconnect()
        self.logger.info("Left the cluster")

    def _on_broker_error(self, error: Exception):
        if not self.connected:
            return
        self.logger.error(f"Broker error, suspending coordination: {error}")
        self.membership.disconnect()

    # ------------------------------------------------------------------
    # Election and heartbeat
    # ------------------------------------------------------------------

    async def _claim_leadership(self):
        if self.config.atomic_election:
            if await self.broker.set_if_absent(MASTER_KEY, self.node_id):
                master = self.node_id
            else:
                master = await self.broker.get(MASTER_KEY)
        else:
            master = await self.broker.get(MASTER_KEY)
            if not master:
                await self.broker.set(MASTER_KEY, self.node_id)
                master = self.node_id

        if master == self.node_id:
            self.membership.become_master()
            self.logger.info(f"This node ({self.node_id}) is now the master node")
        else:
            self.membership.follow(master)
            self.logger.info(f"This node ({self.node_id}) is a worker node, master is {master}")

    async def _promote(self, reason: str):
        await self.broker.set(MASTER_KEY, self.node_id)
        was_master = self.membership.role == NodeRole.MASTER
        self.membership.become_master()
        if not was_master:
            self.logger.info(f"{reason}. This node ({self.node_id}) is now the master node")
            await self.broker.publish(MASTER_CHANGED, self.node_id)

    async def _is_alive(self, node_id: str) -> bool:
        if not await self.broker.is_member(NODES_KEY, node_id):
            return False
        return await self.broker.get(liveness_key(node_id)) is not None

    async def _refresh_liveness(self):
        await self.broker.set(liveness_key(self.node_id), str(time.time()),
                              ttl=self.config.liveness_window)

    async def heartbeat(self):
        """
        Run one heartbeat tick

        Takes over leadership when the master key is empty or names a node
        that is no longer alive and refreshes this node's liveness. A node
        that finds itself evicted from the shared set re-announces itself.
        The master evicts nodes whose liveness key has expired.
        """
        if not self.connected:
            return

        async with self._lock:
            master = await self.broker.get(MASTER_KEY)

            if not master:
                if self.config.atomic_election:
                    if await self.broker.set_if_absent(MASTER_KEY, self.node_id):
                        await self._promote("No master registered")
                else:
                    await self._promote("No master registered")
            elif master != self.node_id:
                if await self._is_alive(master):
                    if self.membership.role != NodeRole.WORKER or self.membership.master_id != master:
                        self.logger.info(f"Master is {master}, stepping down to worker")
                    self.membership.follow(master)
                else:
                    await self._promote(f"Previous master {master} disconnected")
            elif self.membership.role != NodeRole.MASTER:
                self.membership.become_master()

            await self._refresh_liveness()
            if not await self.broker.is_member(NODES_KEY, self.node_id):
                # evicted while still alive, announce again so peers re-add us
                await self.broker.add_to_set(NODES_KEY, self.node_id)
                self.logger.warning("This node was removed from the cluster, rejoining")
                await self.broker.publish(NODE_CONNECTED, self.node_id)

            if self.membership.role == NodeRole.MASTER:
                await self._evict_stale_nodes()

    async def _evict_stale_nodes(self):
        for node_id in await self.broker.members(NODES_KEY):
            if node_id == self.node_id:
                continue
            if await self.broker.get(liveness_key(node_id)) is not None:
                continue
            await self.broker.remove_from_set(NODES_KEY, node_id)
            self.membership.remove_peer(node_id)
            self.logger.warning(f"Node {node_id} stopped refreshing its liveness, removed from the cluster")
            await self.broker.publish(NODE_DISCONNECTED, node_id)

    async def _heartbeat_loop(self):
        while True:
            await asyncio.sleep(self.config.heartbeat_interval)
            try:
                await self.heartbeat()
            except BrokerError as e:
                self.logger.error(f"Error in heartbeat: {e}")

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def broadcast(self, channel: str, payload: str) -> bool:
        """
        Publish ``payload`` on ``channel``

        Returns:
            True if the broker accepted the message; False when standalone
            or when publishing failed
        """
        if not self.connected:
            self.logger.debug(f"Not connected, dropping message on {channel}")
            return False
        try:
            await self.broker.publish(channel, payload)
            return True
        except BrokerError as e:
            self.logger.error(f"Error publishing to channel {channel}: {e}")
            return False

    async def on_message(self, channel: str, handler: Callable):
        """
        Register ``handler(payload)`` for messages on ``channel``

        Handlers may be plain functions or coroutines. Registration before
        ``start`` is kept and subscribed once the broker is reachable.
        """
        self._handlers.setdefault(channel, []).append(handler)
        if self.connected:
            try:
                await self._ensure_subscribed(channel)
            except BrokerError as e:
                self.logger.error(f"Error subscribing to channel {channel}: {e}")

    async def _ensure_subscribed(self, channel: str):
        if channel in self._subscribed:
            return
        await self.broker.subscribe(channel, self._enqueue)
        self._subscribed.add(channel)

    async def _enqueue(self, channel: str, message: str):
        await self._inbox.put((channel, message))

    async def _dispatch_loop(self):
        while True:
            channel, message = await self._inbox.get()
            async with self._lock:
                for handler in list(self._handlers.get(channel, [])):
                    try:
                        result = handler(message)
                        if inspect.isawaitable(result):
                            await result
                    except Exception:
                        self.logger.exception(f"Handler for {channel} failed")
            self._inbox.task_done()

    async def drain(self):
        """Wait until every message received so far has been handled"""
        if self._inbox is not None:
            await self._inbox.join()

    # ------------------------------------------------------------------
    # Membership events
    # ------------------------------------------------------------------

    # Readers can still deliver after a broker error; a standalone node ignores them.

    def _handle_node_connected(self, node_id: str):
        if node_id == self.node_id or not self.connected:
            return
        self.membership.add_peer(node_id)
        self.logger.info(f"Node {node_id} connected to the system. Total nodes: {self.node_count()}")

    def _handle_node_disconnected(self, node_id: str):
        if node_id == self.node_id or not self.connected:
            return
        self.membership.remove_peer(node_id)
        self.logger.info(f"Node {node_id} disconnected from the system. Total nodes: {self.node_count()}")

    def _handle_master_changed(self, master_id: str):
        if not self.connected:
            return
        if master_id == self.node_id:
            self.membership.become_master()
            return
        self.membership.follow(master_id)
        self.membership.add_peer(master_id)
        self.logger.info(f"Master node changed to {master_id}")
