from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Protocol, Sequence

import numpy as np

from .geometry import epicentral_distance_deg
from .models import TravelTime
from .phases import DEPTH_PHASES

logger = logging.getLogger(__name__)

# Travel time reported for a phase that does not arrive at the given geometry.
NOT_ARRIVING = -1.0

LOOKUP_PHASES = tuple(dict.fromkeys([*DEPTH_PHASES.values(), *DEPTH_PHASES]))


class TravelTimeTable(Protocol):
    def select_model(self, model: str) -> bool: ...

    def compute_all(
        self,
        lat: float,
        lon: float,
        depth: float,
        station_lat: float,
        station_lon: float,
        station_elev: float = 0.0,
    ) -> List[TravelTime]: ...

    def compute_one(
        self,
        phase: str,
        lat: float,
        lon: float,
        depth: float,
        station_lat: float,
        station_lon: float,
        station_elev: float = 0.0,
    ) -> TravelTime: ...


class TauPTable:
    """Ray-theoretical travel times from an obspy TauP model.

    Station elevation is ignored; receivers sit at the model surface.
    """

    def __init__(self) -> None:
        self.model_name: Optional[str] = None
        self._model = None

    def select_model(self, model: str) -> bool:
        from obspy.taup import TauPyModel

        try:
            self._model = TauPyModel(model=model)
        except Exception:
            logger.exception("Failed to load TauP model=%s", model)
            self._model = None
            self.model_name = None
            return False
        self.model_name = model
        logger.debug("Loaded TauP model=%s", model)
        return True

    def arrivals(self, phase_list: Sequence[str], depth: float, distance_deg: float) -> list:
        if self._model is None:
            logger.warning("TauP table queried before a model was selected")
            return []

        from obspy.taup.helper_classes import TauModelError

        try:
            return self._model.get_travel_times(
                source_depth_in_km=depth,
                distance_in_degree=distance_deg,
                phase_list=list(phase_list),
            )
        except (TauModelError, ValueError) as exc:
            logger.debug(
                "TauP query failed: phases=%s depth_km=%.2f distance_deg=%.3f error=%s",
                phase_list,
                depth,
                distance_deg,
                exc,
            )
            return []

    def travel_time(self, phase: str, depth: float, distance_deg: float) -> float:
        for arrival in self.arrivals([phase], depth, distance_deg):
            if arrival.name == phase:
                return float(arrival.time)
        return NOT_ARRIVING

    def compute_all(self, lat, lon, depth, station_lat, station_lon, station_elev=0.0):
        distance_deg = epicentral_distance_deg(lat, lon, station_lat, station_lon)
        return [
            TravelTime(phase=arrival.name, time=float(arrival.time))
            for arrival in self.arrivals(["ttall"], depth, distance_deg)
        ]

    def compute_one(self, phase, lat, lon, depth, station_lat, station_lon, station_elev=0.0):
        distance_deg = epicentral_distance_deg(lat, lon, station_lat, station_lon)
        return TravelTime(phase=phase, time=self.travel_time(phase, depth, distance_deg))


class LookupTable:
    """TauP travel times tabulated on a (depth, distance) grid and interpolated.

    The grid for a phase is filled on its first query. Grid nodes where the
    phase does not arrive hold NaN, so queries next to them return
    NOT_ARRIVING, as do queries outside the grid.
    """

    def __init__(
        self,
        distances: Optional[np.ndarray] = None,
        depths: Optional[np.ndarray] = None,
        phases: Sequence[str] = LOOKUP_PHASES,
    ) -> None:
        self.distances = np.linspace(25.0, 100.0, 31) if distances is None else np.asarray(distances, dtype=float)
        self.depths = np.linspace(0.0, 700.0, 36) if depths is None else np.asarray(depths, dtype=float)
        self.phases = tuple(phases)
        self._taup = TauPTable()
        self._grids: Dict[str, object] = {}

    @property
    def model_name(self) -> Optional[str]:
        return self._taup.model_name

    def select_model(self, model: str) -> bool:
        self._grids.clear()
        return self._taup.select_model(model)

    def _interpolator(self, phase: str):
        interpolator = self._grids.get(phase)
        if interpolator is not None:
            return interpolator

        from scipy.interpolate import RegularGridInterpolator

        logger.info(
            "Tabulating travel times: model=%s phase=%s depths=%d distances=%d",
            self.model_name,
            phase,
            self.depths.size,
            self.distances.size,
        )
        values = np.full((self.depths.size, self.distances.size), np.nan)
        for i, depth in enumerate(self.depths):
            for j, distance_deg in enumerate(self.distances):
                tt = self._taup.travel_time(phase, float(depth), float(distance_deg))
                if tt > 0:
                    values[i, j] = tt
        interpolator = RegularGridInterpolator(
            (self.depths, self.distances),
            values,
            bounds_error=False,
            fill_value=np.nan,
        )
        self._grids[phase] = interpolator
        return interpolator

    def travel_time(self, phase: str, depth: float, distance_deg: float) -> float:
        if self.model_name is None:
            logger.warning("Lookup table queried before a model was selected")
            return NOT_ARRIVING
        value = float(self._interpolator(phase)([[depth, distance_deg]])[0])
        if not np.isfinite(value) or value <= 0:
            return NOT_ARRIVING
        return value

    def compute_all(self, lat, lon, depth, station_lat, station_lon, station_elev=0.0):
        distance_deg = epicentral_distance_deg(lat, lon, station_lat, station_lon)
        out: List[TravelTime] = []
        for phase in self.phases:
            tt = self.travel_time(phase, depth, distance_deg)
            if tt > 0:
                out.append(TravelTime(phase=phase, time=tt))
        return sorted(out, key=lambda item: item.time)

    def compute_one(self, phase, lat, lon, depth, station_lat, station_lon, station_elev=0.0):
        distance_deg = epicentral_distance_deg(lat, lon, station_lat, station_lon)
        return TravelTime(phase=phase, time=self.travel_time(phase, depth, distance_deg))


TRAVEL_TIME_TABLES: Dict[str, Callable[[], TravelTimeTable]] = {
    "taup": TauPTable,
    "lookup": LookupTable,
}


def create_travel_time_table(table_type: str, model: str) -> Optional[TravelTimeTable]:
    factory = TRAVEL_TIME_TABLES.get(table_type.lower())
    if factory is None:
        raise ValueError(
            f"Unsupported travel-time table type='{table_type}'. "
            f"Supported: {', '.join(sorted(TRAVEL_TIME_TABLES))}."
        )
    table = factory()
    if not table.select_model(model):
        return None
    return table
