"""
Coaster Fleet

Capacity planning for a fleet of coasters and their wagons, with the
operational state replicated across a loosely coupled cluster of nodes.
"""

__version__ = "0.1.0"

from .capacity.model import assess
from .cluster.coordinator import Coordinator
from .core.models import Coaster, Wagon
from .monitoring.reporter import StatusReporter
from .storage.store import RecordStore
from .sync.propagator import ChangePropagator

__all__ = [
    "assess",
    "Coordinator",
    "Coaster",
    "Wagon",
    "StatusReporter",
    "RecordStore",
    "ChangePropagator",
]
