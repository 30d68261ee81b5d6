"""
Replication of record mutations between nodes.
"""
from .propagator import ChangePropagator, CHANGE_CHANNELS

__all__ = ['ChangePropagator', 'CHANGE_CHANNELS']
