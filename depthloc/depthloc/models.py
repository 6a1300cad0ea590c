from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Station:
    net: str
    sta: str
    loc: str
    lat: float
    lon: float
    elev_m: float = 0.0

    @property
    def station_key(self) -> tuple[str, str, str]:
        return (self.net, self.sta, self.loc)


@dataclass(frozen=True)
class Arrival:
    id: int
    ts: datetime
    phase: str
    net: str
    sta: str
    loc: str
    chan: str = ""
    score: float | None = None

    @property
    def station_key(self) -> tuple[str, str, str]:
        return (self.net, self.sta, self.loc)


@dataclass(frozen=True)
class TravelTime:
    phase: str
    time: float


@dataclass(frozen=True)
class DepthPhaseObservation:
    """Observed vs. theoretical depth-phase minus reference-phase time for one station."""

    phase: str
    reference_phase: str
    station_code: str
    network_code: str
    observed_time: float
    theoretical_time: float
    residual: float
    time_difference_obs: float
    time_difference_theo: float
    distance: float
    weight: float
    is_valid: bool
    # Without coordinates the misfit uses the stored time_difference_theo
    # at every trial depth.
    station_lat: float | None = None
    station_lon: float | None = None
    station_elev: float = 0.0

    @property
    def has_station_location(self) -> bool:
        return self.station_lat is not None and self.station_lon is not None


@dataclass(frozen=True)
class DepthPhaseResult:
    success: bool = False
    depth: float = 0.0
    depth_uncertainty: float = 0.0
    depth_lower_bound: float = 0.0
    depth_upper_bound: float = 0.0
    observation_count: int = 0
    mean_residual: float = 0.0
    rms_residual: float = 0.0
    method: str = ""
    observations: list[DepthPhaseObservation] = field(default_factory=list)


@dataclass
class RegionDepthConstraints:
    region_name: str = ""
    default_depth: float = 10.0
    max_depth: float = 700.0
    has_default_depth: bool = False
    has_max_depth: bool = False
    matched: bool = False


@dataclass(frozen=True)
class Origin:
    lat: float
    lon: float
    depth_km: float
    time: datetime
