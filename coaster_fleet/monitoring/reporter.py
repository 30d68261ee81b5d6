"""
System-wide status reports.

Combines the capacity verdict of every coaster with the coordinator's
membership snapshot.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..capacity.model import CoasterAssessment, CoasterHealth, assess
from ..cluster.coordinator import Coordinator
from ..core.models import Coaster
from ..storage.store import RecordStore


@dataclass
class SystemStatus:
    timestamp: datetime
    connected_nodes: int
    is_master_node: bool
    coaster_count: int
    total_wagons: int
    total_personnel: int
    total_clients: int
    coasters: List[CoasterAssessment] = field(default_factory=list)

    @property
    def problems(self) -> List[CoasterAssessment]:
        return [c for c in self.coasters if c.status == CoasterHealth.PROBLEM]

    def system_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "connectedNodes": self.connected_nodes,
            "isMasterNode": self.is_master_node,
            "coasterCount": self.coaster_count,
            "totalWagons": self.total_wagons,
            "totalPersonnel": self.total_personnel,
            "totalClients": self.total_clients,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "system": self.system_dict(),
            "coasters": [c.to_dict() for c in self.coasters],
        }


class StatusReporter:
    """
    Builds ``SystemStatus`` reports on demand or on a schedule

    Without a coordinator the node reports itself as a single standalone
    master.
    """

    def __init__(self, store: RecordStore, coordinator: Optional[Coordinator] = None):
        self.store = store
        self.coordinator = coordinator
        self.logger = logging.getLogger("StatusReporter")

    def coaster_status(self, coaster: Coaster) -> CoasterAssessment:
        return assess(coaster, self.store.list_wagons(coaster.id))

    def coaster_statuses(self) -> List[CoasterAssessment]:
        return [self.coaster_status(c) for c in self.store.list_coasters()]

    def report(self) -> SystemStatus:
        statuses = self.coaster_statuses()

        if self.coordinator is not None:
            connected_nodes = self.coordinator.node_count()
            is_master = self.coordinator.is_leader()
        else:
            connected_nodes, is_master = 1, True

        return SystemStatus(
            timestamp=datetime.now(timezone.utc),
            connected_nodes=connected_nodes,
            is_master_node=is_master,
            coaster_count=len(statuses),
            total_wagons=sum(s.wagon_count for s in statuses),
            total_personnel=sum(s.personnel.current for s in statuses),
            total_clients=sum(s.daily_clients for s in statuses),
            coasters=statuses,
        )

    def _log_conditions(self, status: SystemStatus):
        for coaster in status.coasters:
            if not coaster.schedule_feasible:
                self.logger.warning(f"Coaster {coaster.coaster_id} has insufficient operating time for its track length")
            if not coaster.round_trip_possible:
                self.logger.warning(f"Coaster {coaster.coaster_id} has insufficient operation time for a complete round trip")

    async def run(self, interval: float, sink: Callable[[SystemStatus], None]):
        """
        Report immediately and then every ``interval`` seconds until cancelled

        Args:
            interval: Seconds between reports
            sink: Called with each report
        """
        while True:
            try:
                status = self.report()
                self._log_conditions(status)
                sink(status)
            except Exception:
                self.logger.exception("Error producing status report")
            await asyncio.sleep(interval)


def format_report(status: SystemStatus, now: datetime = None) -> str:
    """Render a report as the console monitor prints it"""
    now = now or datetime.now()
    role = "MASTER NODE" if status.is_master_node else "WORKER NODE"
    lines = [
        "",
        f"[Time {now.hour}:{now.minute:02d}]",
        f"System status: {status.connected_nodes} connected nodes, {role}",
        f"Total system capacity: {status.coaster_count} coasters, {status.total_wagons} wagons, "
        f"{status.total_personnel} personnel, {status.total_clients} clients daily",
        "",
    ]

    if not status.coasters:
        lines.append("No coasters registered in the system")

    for coaster in status.coasters:
        lines.append(f"[Coaster {coaster.coaster_id}]")
        lines.append(f"1. Operating hours: {coaster.hours_from} - {coaster.hours_to}")
        lines.append(f"2. Wagons: {coaster.wagon_count}/{coaster.required_wagons.reported_count} "
                     f"(safe maximum: {coaster.max_safe_wagons})")
        lines.append(f"3. Available personnel: {coaster.personnel.current}/{coaster.personnel.required}")
        lines.append(f"4. Daily clients: {coaster.daily_clients} (served: {coaster.fulfillment_percent}%)")
        lines.append(f"5. Status: {coaster.status.value}")
        if coaster.status != CoasterHealth.OK:
            lines.append(f"6. Problem: {', '.join(coaster.details)}")
        lines.append("")

    return "\n".join(lines)
