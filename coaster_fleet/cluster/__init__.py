"""
Cluster coordination over a shared broker: membership, master election
and failure detection.
"""
from .broker import Broker, RedisBroker
from .coordinator import Coordinator
from .membership import ConnectionState, MembershipSnapshot, MembershipTable, NodeRole

__all__ = ['Broker', 'RedisBroker', 'Coordinator', 'ConnectionState',
           'MembershipSnapshot', 'MembershipTable', 'NodeRole']
