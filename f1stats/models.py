"""
Data records for OpenF1 payloads and the aggregates built from them.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

T = TypeVar("T")

EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def _from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
    """Build a dataclass from a dict, ignoring unknown keys."""
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in names})


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an OpenF1 ISO 8601 timestamp into an aware datetime (UTC if naive)."""
    if not value:
        return None
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_timestamp(value: Optional[str]) -> float:
    """OpenF1 timestamp as epoch seconds; 0.0 when missing."""
    dt = parse_date(value)
    return dt.timestamp() if dt else 0.0


@dataclass
class Driver:
    """A driver entry as reported for one session."""
    driver_number: int
    broadcast_name: str = ""
    full_name: str = ""
    first_name: str = ""
    last_name: str = ""
    name_acronym: str = ""
    country_code: Optional[str] = None
    team_name: Optional[str] = None
    team_colour: Optional[str] = None
    headshot_url: Optional[str] = None
    meeting_key: Optional[int] = None
    session_key: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Driver":
        return _from_dict(cls, data)


@dataclass
class Session:
    """A single track session (practice, qualifying, sprint, race)."""
    session_key: int
    meeting_key: int
    session_name: str = ""
    session_type: str = ""
    date_start: str = ""
    date_end: str = ""
    location: str = ""
    country_name: str = ""
    country_code: str = ""
    circuit_short_name: str = ""
    circuit_key: Optional[int] = None
    gmt_offset: str = ""
    year: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Session":
        return _from_dict(cls, data)

    @property
    def start_time(self) -> datetime:
        return parse_date(self.date_start) or EARLIEST

    @property
    def end_time(self) -> datetime:
        return parse_date(self.date_end) or self.start_time

    @property
    def is_race(self) -> bool:
        return self.session_type.lower() == "race"

    @property
    def is_qualifying(self) -> bool:
        return self.session_type.lower() == "qualifying"


@dataclass
class SessionResult:
    """Classification row for one driver in one session."""
    session_key: int
    meeting_key: int
    driver_number: int
    position: Optional[int] = None
    points: Optional[float] = None
    status: Optional[int] = None
    grid_position: Optional[int] = None
    name_acronym: Optional[str] = None
    team_colour: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "SessionResult":
        return _from_dict(cls, data)


@dataclass
class RacePoints:
    """One entry of a driver's season points history."""
    meeting_key: int
    session_key: int
    meeting_name: str
    date: str
    points: float
    position: int
    cumulative_points: float
    is_classified: bool = False
    status: Optional[int] = None


@dataclass
class QualifyingResult:
    """Qualifying position for one meeting."""
    meeting_key: int
    session_key: int
    position: int
    date: str


@dataclass
class DriverSeasonStats:
    """Cumulative season record for a driver."""
    driver_number: int
    driver_info: Optional[Driver] = None
    history: List[RacePoints] = field(default_factory=list)
    qualifying_history: List[QualifyingResult] = field(default_factory=list)
    total_points: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DriverSeasonStats":
        """Rebuild from the cached JSON form."""
        info = data.get("driver_info")
        return cls(
            driver_number=data["driver_number"],
            driver_info=Driver.from_api(info) if info else None,
            history=[_from_dict(RacePoints, h) for h in data.get("history", [])],
            qualifying_history=[
                _from_dict(QualifyingResult, q) for q in data.get("qualifying_history", [])
            ],
            total_points=data.get("total_points", 0.0),
        )


@dataclass
class TyreStint:
    """A continuous run on one compound."""
    session_key: int
    driver_number: int
    stint_number: int
    compound: Optional[str] = None
    lap_start: Optional[int] = None
    lap_end: Optional[int] = None
    tyre_age_at_start: Optional[int] = None
    meeting_key: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "TyreStint":
        return _from_dict(cls, data)


@dataclass
class TrackTyreInfo:
    """Dry compounds used at a meeting's race."""
    meeting_key: int
    meeting_name: str
    location: str
    country_code: str
    date_start: str
    date_end: str
    compounds: List[str] = field(default_factory=list)
    race_session_key: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackTyreInfo":
        return _from_dict(cls, data)


@dataclass
class TeammateBattle:
    """Head-to-head season comparison of two teammates."""
    team_name: str
    team_colour: Optional[str]
    driver1: Driver
    driver2: Driver
    quali_battle: Dict[str, int]
    race_pace: Dict[str, float]
    points: Dict[str, float]
    consistency: Dict[str, int]
    head_to_head: Dict[str, int]
    fastest_laps: Dict[str, int]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeammateBattle":
        """Rebuild from the cached JSON form."""
        battle = _from_dict(cls, data)
        battle.driver1 = Driver.from_api(data["driver1"])
        battle.driver2 = Driver.from_api(data["driver2"])
        return battle


@dataclass
class Lap:
    """Timing for a single lap."""
    session_key: int
    driver_number: int
    lap_number: int
    date_start: Optional[str] = None
    lap_duration: Optional[float] = None
    duration_sector_1: Optional[float] = None
    duration_sector_2: Optional[float] = None
    duration_sector_3: Optional[float] = None
    i1_speed: Optional[float] = None
    i2_speed: Optional[float] = None
    st_speed: Optional[float] = None
    is_pit_out_lap: bool = False
    meeting_key: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Lap":
        return _from_dict(cls, data)


@dataclass
class PitStop:
    """Pit lane visit."""
    session_key: int
    driver_number: int
    date: str
    lap_number: Optional[int] = None
    pit_duration: Optional[float] = None
    meeting_key: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "PitStop":
        return _from_dict(cls, data)


@dataclass
class LocationSample:
    """Car position on track at a server timestamp (epoch seconds)."""
    driver_number: int
    x: float
    y: float
    t: float

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "LocationSample":
        return cls(
            driver_number=int(data["driver_number"]),
            x=float(data["x"]),
            y=float(data["y"]),
            t=parse_timestamp(data["date"]),
        )
