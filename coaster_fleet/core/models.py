"""
Record types for attractions (coasters) and their wagons
"""
import re
import uuid
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def minutes_of(time_string: str) -> int:
    """
    Convert a wall-clock time string (``H:MM`` or ``HH:MM``) to minutes since midnight

    Args:
        time_string: Time of day

    Returns:
        Minutes since midnight
    """
    hours, minutes = time_string.split(':')
    return int(hours) * 60 + int(minutes)


def _check_time(value: str) -> str:
    match = TIME_PATTERN.match(value)
    if not match:
        raise ValueError(f"invalid time of day '{value}', expected H:MM or HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"time of day out of range: '{value}'")
    return value


class Coaster(BaseModel):
    """An attraction with its staffing, demand and schedule"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    staff_count: int = Field(alias="staffCount", ge=0, strict=True)
    client_count: int = Field(alias="clientCount", ge=0, strict=True)
    track_length: float = Field(alias="trackLength", gt=0, strict=True)
    hours_from: str = Field(alias="hoursFrom")
    hours_to: str = Field(alias="hoursTo")

    @field_validator("hours_from", "hours_to")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _check_time(value)

    @property
    def operation_minutes(self) -> int:
        return minutes_of(self.hours_to) - minutes_of(self.hours_from)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class Wagon(BaseModel):
    """A transport unit permanently attached to one coaster"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    coaster_id: str = Field(alias="coasterId")
    seat_count: int = Field(alias="seatCount", gt=0, strict=True)
    wagon_speed: float = Field(alias="wagonSpeed", gt=0, strict=True)  # m/s

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class CoasterUpdate(BaseModel):
    """
    Partial update of a coaster

    Only the mutable fields are accepted. Anything else in the payload,
    ``trackLength`` and ``id`` included, is dropped.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    staff_count: Optional[int] = Field(default=None, alias="staffCount", ge=0, strict=True)
    client_count: Optional[int] = Field(default=None, alias="clientCount", ge=0, strict=True)
    hours_from: Optional[str] = Field(default=None, alias="hoursFrom")
    hours_to: Optional[str] = Field(default=None, alias="hoursTo")

    @field_validator("hours_from", "hours_to")
    @classmethod
    def validate_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _check_time(value)

    def changes(self) -> Dict[str, Any]:
        """Fields that were actually supplied, keyed by attribute name"""
        return self.model_dump(exclude_none=True)


def new_record_id() -> str:
    return str(uuid.uuid4())


def create_coaster(staff_count: int, client_count: int, track_length: float,
                   hours_from: str, hours_to: str) -> Coaster:
    """Create a new coaster with a freshly generated id"""
    return Coaster(
        id=new_record_id(),
        staff_count=staff_count,
        client_count=client_count,
        track_length=track_length,
        hours_from=hours_from,
        hours_to=hours_to,
    )


def create_wagon(coaster_id: str, seat_count: int, wagon_speed: float) -> Wagon:
    """Create a new wagon for ``coaster_id`` with a freshly generated id"""
    return Wagon(
        id=new_record_id(),
        coaster_id=coaster_id,
        seat_count=seat_count,
        wagon_speed=wagon_speed,
    )
