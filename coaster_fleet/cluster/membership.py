"""
Local, eventually-consistent view of cluster membership.

Mutated only by the Coordinator that owns it; everything else reads.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional


class NodeRole(str, Enum):
    MASTER = "MASTER"
    WORKER = "WORKER"


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


@dataclass(frozen=True)
class MembershipSnapshot:
    """Point-in-time copy of the membership table"""
    node_id: str
    state: ConnectionState
    role: Optional[NodeRole]
    master_id: Optional[str]
    nodes: FrozenSet[str]

    @property
    def standalone(self) -> bool:
        return self.state != ConnectionState.CONNECTED

    @property
    def is_leader(self) -> bool:
        return self.standalone or self.role == NodeRole.MASTER

    @property
    def connected_nodes(self) -> int:
        return len(self.nodes)

    def to_dict(self) -> dict:
        return {
            'node_id': self.node_id,
            'state': self.state.value,
            'role': self.role.value if self.role else None,
            'master_id': self.master_id,
            'connected_nodes': self.connected_nodes,
            'is_leader': self.is_leader,
        }


@dataclass
class MembershipTable:
    """
    Known live nodes and the current master, as seen by one node

    A node that is not connected to the broker is standalone: it counts
    only itself and acts as its own leader.
    """
    node_id: str
    state: ConnectionState = ConnectionState.DISCONNECTED
    role: Optional[NodeRole] = None
    master_id: Optional[str] = None
    last_seen: Dict[str, float] = field(default_factory=dict)  # peer id -> timestamp

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def is_leader(self) -> bool:
        return not self.connected or self.role == NodeRole.MASTER

    def peer_count(self) -> int:
        """Number of other nodes currently known to be alive; 0 when standalone"""
        if not self.connected:
            return 0
        return len(self.last_seen)

    def node_count(self) -> int:
        """Known live nodes including this one"""
        return self.peer_count() + 1

    def add_peer(self, node_id: str, seen_at: float = None) -> bool:
        if node_id == self.node_id:
            return False
        is_new = node_id not in self.last_seen
        self.last_seen[node_id] = seen_at if seen_at is not None else time.time()
        return is_new

    def remove_peer(self, node_id: str) -> bool:
        return self.last_seen.pop(node_id, None) is not None

    def become_master(self):
        self.role = NodeRole.MASTER
        self.master_id = self.node_id

    def follow(self, master_id: str):
        self.role = NodeRole.WORKER
        self.master_id = master_id

    def disconnect(self):
        """Drop everything learned from the broker"""
        self.state = ConnectionState.DISCONNECTED
        self.role = None
        self.master_id = None
        self.last_seen.clear()

    def snapshot(self) -> MembershipSnapshot:
        nodes = set(self.last_seen) if self.connected else set()
        nodes.add(self.node_id)
        return MembershipSnapshot(
            node_id=self.node_id,
            state=self.state,
            role=self.role,
            master_id=self.master_id,
            nodes=frozenset(nodes),
        )
