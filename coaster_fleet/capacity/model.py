"""
Capacity planning for a single coaster.

Turns a coaster's configuration and its wagon roster into a staffing and
equipment verdict. Everything here is a pure function of its arguments:
no I/O, no logging, no module state. Degenerate schedules (closing time not
after opening time, a track that cannot be completed in the window, an
empty fleet) produce defined values instead of exceptions.

Round timing:
    round_trip   = (track_length / speed) / 60                 minutes
    safe_minutes = max(0, operation_minutes - round_trip)      last round must finish
    rounds       = floor(safe_minutes / (round_trip + rest))
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..core.models import Coaster, Wagon


PERSONNEL_PER_WAGON = 2
BASE_PERSONNEL = 1
REST_MINUTES_PER_ROUND = 5
DEFAULT_WAGON_CAPACITY = 30
DEFAULT_WAGON_SPEED = 1.0  # m/s
MIN_SAFETY_DISTANCE_M = 100
EXCESS_STAFF_RATIO = 1.5

# Reported in place of a wagon count when no number of wagons can meet demand
INFEASIBLE_WAGON_COUNT = 999


class PersonnelStatus(str, Enum):
    OK = "OK"
    SHORTAGE = "SHORTAGE"
    EXCESS = "EXCESS"


class CoasterHealth(str, Enum):
    OK = "OK"
    PROBLEM = "PROBLEM"


@dataclass(frozen=True)
class WagonRequirement:
    """
    Number of wagons needed to serve the daily demand

    ``feasible`` is False when the track cannot be completed even once in
    the operating window; ``count`` is then meaningless and None.
    """
    count: Optional[int]
    feasible: bool = True

    @classmethod
    def infeasible(cls) -> "WagonRequirement":
        return cls(count=None, feasible=False)

    @property
    def reported_count(self) -> int:
        return self.count if self.feasible else INFEASIBLE_WAGON_COUNT


@dataclass(frozen=True)
class PersonnelVerdict:
    current: int
    required: int
    status: PersonnelStatus
    difference: int


@dataclass(frozen=True)
class CoasterAssessment:
    """Operational metrics and verdict for one coaster"""
    coaster_id: str
    hours_from: str
    hours_to: str
    wagon_count: int
    required_wagons: WagonRequirement
    max_safe_wagons: int
    personnel: PersonnelVerdict
    daily_clients: int
    daily_capacity: int
    fulfillment_percent: int
    status: CoasterHealth
    details: List[str] = field(default_factory=list)

    @property
    def schedule_feasible(self) -> bool:
        return self.required_wagons.feasible

    @property
    def round_trip_possible(self) -> bool:
        return self.max_safe_wagons > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.coaster_id,
            "hoursFrom": self.hours_from,
            "hoursTo": self.hours_to,
            "wagonCount": {
                "current": self.wagon_count,
                "required": self.required_wagons.reported_count,
                "safe": self.max_safe_wagons,
            },
            "personnel": {
                "current": self.personnel.current,
                "required": self.personnel.required,
                "status": self.personnel.status.value,
                "difference": self.personnel.difference,
            },
            "clients": {
                "daily": self.daily_clients,
                "serviceCapacity": self.daily_capacity,
                "fulfillmentPercent": self.fulfillment_percent,
            },
            "status": self.status.value,
            "details": list(self.details),
        }


def round_trip_minutes(track_length: float, speed: float) -> float:
    """Minutes for one traversal of the track at ``speed`` m/s"""
    return (track_length / speed) / 60


def _rounds_per_wagon(operation_minutes: int, track_length: float, speed: float) -> int:
    round_trip = round_trip_minutes(track_length, speed)
    safe_minutes = max(0.0, operation_minutes - round_trip)
    return math.floor(safe_minutes / (round_trip + REST_MINUTES_PER_ROUND))


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def fleet_averages(wagons: Sequence[Wagon]):
    """
    Average seat count and speed across the fleet

    Returns:
        Tuple ``(avg_capacity, avg_speed)``; defaults when the fleet is empty
    """
    if not wagons:
        return float(DEFAULT_WAGON_CAPACITY), DEFAULT_WAGON_SPEED
    avg_capacity = sum(w.seat_count for w in wagons) / len(wagons)
    avg_speed = sum(w.wagon_speed for w in wagons) / len(wagons)
    return avg_capacity, avg_speed


def daily_capacity(coaster: Coaster, wagons: Sequence[Wagon]) -> int:
    """
    Visitors the current fleet can serve within the operating window

    Capacity scales with total seating and with the number of wagons
    running in parallel.
    """
    operation_minutes = coaster.operation_minutes
    if operation_minutes <= 0 or not wagons:
        return 0

    _, avg_speed = fleet_averages(wagons)
    if avg_speed <= 0:
        return 0

    total_seats = sum(w.seat_count for w in wagons)
    rounds = _rounds_per_wagon(operation_minutes, coaster.track_length, avg_speed)
    return math.floor(total_seats * rounds * len(wagons))


def required_wagons(coaster: Coaster, avg_capacity: float, avg_speed: float) -> WagonRequirement:
    """
    Wagons needed to carry ``client_count`` visitors per day

    Args:
        coaster: Coaster being planned
        avg_capacity: Average seats per wagon
        avg_speed: Average wagon speed in m/s

    Returns:
        WagonRequirement, infeasible when not even one round fits the schedule
    """
    if avg_capacity <= 0 or avg_speed <= 0:
        return WagonRequirement(count=1)

    rounds = _rounds_per_wagon(coaster.operation_minutes, coaster.track_length, avg_speed)
    if rounds <= 0:
        return WagonRequirement.infeasible()

    needed = math.ceil((coaster.client_count / rounds) / avg_capacity)
    return WagonRequirement(count=max(1, needed))


def max_safe_wagons(coaster: Coaster, avg_speed: float) -> int:
    """
    Upper bound on wagons running at once, from minimum spacing on the track

    Zero when the window does not allow a single full round trip.
    """
    if avg_speed <= 0:
        return 0
    one_way = round_trip_minutes(coaster.track_length, avg_speed)
    if coaster.operation_minutes <= one_way * 2 + REST_MINUTES_PER_ROUND:
        return 0
    return max(1, math.floor(coaster.track_length / MIN_SAFETY_DISTANCE_M))


def required_personnel(wagon_count: int) -> int:
    return BASE_PERSONNEL + wagon_count * PERSONNEL_PER_WAGON


def personnel_verdict(staff_count: int, required: int) -> PersonnelVerdict:
    if staff_count < required:
        status = PersonnelStatus.SHORTAGE
    elif staff_count > required * EXCESS_STAFF_RATIO:
        status = PersonnelStatus.EXCESS
    else:
        status = PersonnelStatus.OK
    return PersonnelVerdict(
        current=staff_count,
        required=required,
        status=status,
        difference=abs(staff_count - required),
    )


def fulfillment_percent(capacity: int, client_count: int) -> int:
    if capacity <= 0:
        return 0
    if client_count <= 0:
        return 100
    return min(_round_half_up(capacity / client_count * 100), 100)


def assess(coaster: Coaster, wagons: Sequence[Wagon]) -> CoasterAssessment:
    """
    Compute the full operational verdict for one coaster

    Args:
        coaster: Coaster configuration
        wagons: Wagons currently attached to the coaster

    Returns:
        CoasterAssessment
    """
    wagon_count = len(wagons)
    avg_capacity, avg_speed = fleet_averages(wagons)

    safe_limit = max_safe_wagons(coaster, avg_speed)
    capacity = daily_capacity(coaster, wagons)
    requirement = required_wagons(coaster, avg_capacity, avg_speed)
    personnel = personnel_verdict(
        coaster.staff_count, required_personnel(requirement.reported_count)
    )

    details = []
    if personnel.status == PersonnelStatus.SHORTAGE:
        details.append(f"Missing {personnel.difference} staff")
    elif personnel.status == PersonnelStatus.EXCESS:
        details.append(f"Excess of {personnel.difference} staff")

    if not requirement.feasible:
        details.append("Operating window too short to complete the track even once")
    elif wagon_count < requirement.count:
        details.append(f"Missing {requirement.count - wagon_count} wagons")
    elif wagon_count > requirement.count * 2 and capacity > coaster.client_count * 2:
        details.append(f"Excess of {wagon_count - requirement.count} wagons")

    if wagon_count > safe_limit:
        details.append(f"Too many wagons for safe operation, maximum: {safe_limit}")

    status = CoasterHealth.PROBLEM if details else CoasterHealth.OK
    if not details:
        details.append("All systems nominal")

    return CoasterAssessment(
        coaster_id=coaster.id,
        hours_from=coaster.hours_from,
        hours_to=coaster.hours_to,
        wagon_count=wagon_count,
        required_wagons=requirement,
        max_safe_wagons=safe_limit,
        personnel=personnel,
        daily_clients=coaster.client_count,
        daily_capacity=capacity,
        fulfillment_percent=fulfillment_percent(capacity, coaster.client_count),
        status=status,
        details=details,
    )
