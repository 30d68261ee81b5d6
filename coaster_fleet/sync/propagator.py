"""
Replication of record mutations between nodes.

Every local mutation is applied to the record store first and published
only after the store confirmed it. Published messages are the JSON of the
resulting record (or ``{coasterId, wagonId}`` for a removal) with one
extra ``origin`` field naming the publishing node.

Inbound messages from this node's own id are dropped. Messages from peers
go through the same store operations as local mutations but are never
published again. There is no conflict resolution: concurrent updates of
the same record on two nodes end up in whatever order each receiver
happens to apply them.
"""
import json
import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from ..cluster.coordinator import Coordinator
from ..core.models import Coaster, CoasterUpdate, Wagon
from ..storage.store import RecordStore


COASTER_ADDED = "coaster_added"
COASTER_UPDATED = "coaster_updated"
WAGON_ADDED = "wagon_added"
WAGON_REMOVED = "wagon_removed"

CHANGE_CHANNELS = (COASTER_ADDED, COASTER_UPDATED, WAGON_ADDED, WAGON_REMOVED)

ORIGIN_FIELD = "origin"


class ChangePropagator:
    """
    Mutating front door of the record store

    Store failures propagate to the caller and nothing is published.
    Publish failures are logged by the coordinator; the local change
    stands and this node stays divergent until peers hear of it some
    other way.
    """

    def __init__(self, store: RecordStore, coordinator: Coordinator):
        self.store = store
        self.coordinator = coordinator
        self.logger = logging.getLogger(f"ChangePropagator-{coordinator.node_id[:8]}")
        self.applied_remote = 0
        self.ignored_own = 0

    async def attach(self):
        """Subscribe to the change channels"""
        await self.coordinator.on_message(COASTER_ADDED, self._handle_coaster_added)
        await self.coordinator.on_message(COASTER_UPDATED, self._handle_coaster_updated)
        await self.coordinator.on_message(WAGON_ADDED, self._handle_wagon_added)
        await self.coordinator.on_message(WAGON_REMOVED, self._handle_wagon_removed)

    async def _publish(self, channel: str, body: Dict[str, Any]) -> bool:
        message = dict(body)
        message[ORIGIN_FIELD] = self.coordinator.node_id
        return await self.coordinator.broadcast(channel, json.dumps(message))

    # Local mutations

    async def add_coaster(self, coaster: Coaster) -> Coaster:
        stored = self.store.put_coaster(coaster)
        await self._publish(COASTER_ADDED, stored.to_dict())
        return stored

    async def update_coaster(self, coaster_id: str,
                             update: Union[CoasterUpdate, Dict[str, Any]]) -> Optional[Coaster]:
        updated = self.store.update_coaster(coaster_id, update)
        if updated is not None:
            await self._publish(COASTER_UPDATED, updated.to_dict())
        return updated

    async def add_wagon(self, wagon: Wagon) -> Optional[Wagon]:
        """
        Attach a new wagon to an existing coaster

        Returns:
            The stored wagon, or None when the coaster does not exist
        """
        if self.store.get_coaster(wagon.coaster_id) is None:
            self.logger.warning(f"Cannot add wagon {wagon.id}: coaster {wagon.coaster_id} not found")
            return None
        stored = self.store.put_wagon(wagon)
        await self._publish(WAGON_ADDED, stored.to_dict())
        return stored

    async def remove_wagon(self, coaster_id: str, wagon_id: str) -> bool:
        removed = self.store.delete_wagon(coaster_id, wagon_id)
        if removed:
            await self._publish(WAGON_REMOVED, {"coasterId": coaster_id, "wagonId": wagon_id})
        return removed

    # Remote mutations

    def _decode(self, channel: str, message: str) -> Optional[Dict[str, Any]]:
        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            self.logger.error(f"Malformed message on {channel}: {e}")
            return None
        if not isinstance(data, dict):
            self.logger.error(f"Unexpected payload on {channel}: {message!r}")
            return None
        if data.pop(ORIGIN_FIELD, None) == self.coordinator.node_id:
            self.ignored_own += 1
            return None
        return data

    def _handle_coaster_added(self, message: str):
        data = self._decode(COASTER_ADDED, message)
        if data is None:
            return
        try:
            coaster = Coaster.model_validate(data)
        except ValidationError as e:
            self.logger.error(f"Invalid coaster received from peer: {e}")
            return
        self.store.put_coaster(coaster)
        self.applied_remote += 1
        self.logger.info(f"Received new coaster from another node: {coaster.id}")

    def _handle_coaster_updated(self, message: str):
        data = self._decode(COASTER_UPDATED, message)
        if data is None:
            return
        coaster_id = data.get("id")
        if not coaster_id:
            self.logger.error("Coaster update from peer carries no id")
            return
        try:
            update = CoasterUpdate.model_validate(data)
        except ValidationError as e:
            self.logger.error(f"Invalid coaster update received from peer: {e}")
            return
        if self.store.update_coaster(coaster_id, update) is not None:
            self.applied_remote += 1
            self.logger.info(f"Received coaster update from another node: {coaster_id}")

    def _handle_wagon_added(self, message: str):
        data = self._decode(WAGON_ADDED, message)
        if data is None:
            return
        try:
            wagon = Wagon.model_validate(data)
        except ValidationError as e:
            self.logger.error(f"Invalid wagon received from peer: {e}")
            return
        # coaster existence was checked by the originating node
        self.store.put_wagon(wagon)
        self.applied_remote += 1
        self.logger.info(f"Received new wagon from another node: {wagon.id}")

    def _handle_wagon_removed(self, message: str):
        data = self._decode(WAGON_REMOVED, message)
        if data is None:
            return
        coaster_id, wagon_id = data.get("coasterId"), data.get("wagonId")
        if not coaster_id or not wagon_id:
            self.logger.error(f"Wagon removal from peer is missing ids: {data}")
            return
        if self.store.delete_wagon(coaster_id, wagon_id):
            self.applied_remote += 1
            self.logger.info(f"Received wagon removal notification from another node: {wagon_id}")
