from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from .geometry import epicentral_distance_deg
from .models import Arrival, DepthPhaseObservation, DepthPhaseResult, Station, TravelTime
from .phases import get_reference_phase, is_depth_phase
from .settings import DepthPhaseConfig
from .traveltime import (
    NOT_ARRIVING,
    TRAVEL_TIME_TABLES,
    TravelTimeTable,
    create_travel_time_table,
)

logger = logging.getLogger(__name__)

FAILED_DEPTH = -1.0
WORST_MISFIT = math.inf

# (half-width around the previous best depth in km, step in km).
# The first stage scans the whole configured depth range.
SEARCH_STAGES = ((None, 10.0), (20.0, 1.0), (5.0, 0.5))
SENSITIVITY_STEP_KM = 1.0


def depth_grid(min_depth: float, max_depth: float, step: float) -> np.ndarray:
    """Depths from min_depth to max_depth (inclusive) in steps of step."""
    if step <= 0:
        raise ValueError("step must be > 0")
    if max_depth < min_depth:
        return np.empty(0, dtype=float)
    n_steps = int(np.floor((max_depth - min_depth) / step + 1e-9))
    return min_depth + step * np.arange(n_steps + 1, dtype=float)


class DepthPhaseAnalyzer:
    """Constrain earthquake depth with depth phases.

    The pP-P (or sP-P) time difference is mostly sensitive to source depth and
    only weakly to epicentral distance, which makes it useful when direct
    phases resolve depth poorly. The analyzer

    1. computes theoretical depth phase times from a travel-time table,
    2. builds depth phase observations from existing arrivals,
    3. grid-searches the depth that best fits the observed time differences.

    Instances are not safe for concurrent reconfiguration.
    """

    def __init__(
        self,
        config: Optional[DepthPhaseConfig] = None,
        table: Optional[TravelTimeTable] = None,
    ) -> None:
        self._config = config if config is not None else DepthPhaseConfig()
        self._table = table

    @property
    def config(self) -> DepthPhaseConfig:
        return self._config

    def set_config(self, config: DepthPhaseConfig) -> None:
        self._config = config

    @property
    def travel_time_table(self) -> Optional[TravelTimeTable]:
        return self._table

    def set_travel_time_table(self, table: Optional[TravelTimeTable]) -> bool:
        self._table = table
        return table is not None

    def load_travel_time_table(self, table_type: str, model: str) -> bool:
        """Select a travel-time table by type and model name.

        On failure the analyzer is left without a table.
        """
        self._table = None
        if table_type.lower() not in TRAVEL_TIME_TABLES:
            logger.error("Failed to create travel-time table: unsupported type=%s", table_type)
            return False
        table = create_travel_time_table(table_type, model)
        if table is None:
            logger.error("Failed to set travel-time model=%s type=%s", model, table_type)
            return False
        self._table = table
        logger.debug("Using travel-time table type=%s model=%s", table_type, model)
        return True

    def compute_depth_phase_times(
        self,
        lat: float,
        lon: float,
        depth: float,
        station_lat: float,
        station_lon: float,
        station_elev: float = 0.0,
        phases: Optional[Sequence[str]] = None,
    ) -> List[TravelTime]:
        """Theoretical times for the requested phases (configured ones by default)."""
        if self._table is None:
            logger.warning("No travel-time table configured")
            return []

        times = self._table.compute_all(lat, lon, depth, station_lat, station_lon, station_elev)
        targets = set(phases) if phases else set(self._config.phases)
        return [tt for tt in times if tt.phase in targets]

    def compute_phase_time(
        self,
        phase: str,
        lat: float,
        lon: float,
        depth: float,
        station_lat: float,
        station_lon: float,
        station_elev: float = 0.0,
    ) -> TravelTime:
        if self._table is None:
            return TravelTime(phase=phase, time=NOT_ARRIVING)
        return self._table.compute_one(phase, lat, lon, depth, station_lat, station_lon, station_elev)

    def compute_depth_phase_time_difference(
        self,
        depth_phase: str,
        lat: float,
        lon: float,
        depth: float,
        station_lat: float,
        station_lon: float,
        station_elev: float = 0.0,
    ) -> float:
        """Depth phase minus reference phase time in seconds, or -1 if not computable."""
        if self._table is None:
            return NOT_ARRIVING

        reference_phase = get_reference_phase(depth_phase)
        tt_depth = self._table.compute_one(
            depth_phase, lat, lon, depth, station_lat, station_lon, station_elev
        )
        tt_reference = self._table.compute_one(
            reference_phase, lat, lon, depth, station_lat, station_lon, station_elev
        )
        if tt_depth.time > 0 and tt_reference.time > 0:
            return tt_depth.time - tt_reference.time

        logger.debug(
            "Time difference not computable: phases=%s-%s depth_km=%.2f tt_depth=%.3f tt_reference=%.3f",
            depth_phase,
            reference_phase,
            depth,
            tt_depth.time,
            tt_reference.time,
        )
        return NOT_ARRIVING

    def _theoretical_difference(
        self, obs: DepthPhaseObservation, lat: float, lon: float, depth: float
    ) -> float:
        if self._table is None or not obs.has_station_location:
            return obs.time_difference_theo
        return self.compute_depth_phase_time_difference(
            obs.phase, lat, lon, depth, obs.station_lat, obs.station_lon, obs.station_elev
        )

    def calculate_misfit(
        self,
        lat: float,
        lon: float,
        depth: float,
        observations: Sequence[DepthPhaseObservation],
    ) -> float:
        """Weighted RMS of observed minus theoretical time differences at depth.

        Returns WORST_MISFIT when no valid observation contributes or the
        weights sum to zero.
        """
        residuals: List[float] = []
        weights: List[float] = []
        for obs in observations:
            if not obs.is_valid:
                continue
            theoretical = self._theoretical_difference(obs, lat, lon, depth)
            if theoretical < 0:
                continue
            residuals.append(obs.time_difference_obs - theoretical)
            weights.append(obs.weight)

        if not residuals:
            return WORST_MISFIT
        w = np.asarray(weights, dtype=float)
        r = np.asarray(residuals, dtype=float)
        sum_weights = float(np.sum(w))
        if sum_weights <= 0:
            return WORST_MISFIT
        return float(np.sqrt(np.sum(w * r * r) / sum_weights))

    def _grid_search_depth(
        self,
        lat: float,
        lon: float,
        observations: Sequence[DepthPhaseObservation],
        min_depth: float,
        max_depth: float,
        step: float,
    ) -> float:
        best_depth = FAILED_DEPTH
        best_misfit = WORST_MISFIT
        for depth in depth_grid(min_depth, max_depth, step):
            misfit = self.calculate_misfit(lat, lon, float(depth), observations)
            if misfit < best_misfit:
                best_misfit = misfit
                best_depth = float(depth)
        return best_depth

    def invert_for_depth(
        self,
        lat: float,
        lon: float,
        observations: Sequence[DepthPhaseObservation],
        initial_depth: float = 33.0,
    ) -> float:
        """Coarse-to-fine grid search for the best-fitting depth.

        Returns the depth in km, or -1 if the inversion could not be run.
        """
        if not observations:
            return FAILED_DEPTH
        if self._table is None:
            logger.warning("No travel-time table configured for depth inversion")
            return FAILED_DEPTH

        valid_count = sum(1 for obs in observations if obs.is_valid)
        if valid_count < self._config.min_phase_count:
            logger.debug(
                "Not enough valid depth phase observations: valid=%d required=%d",
                valid_count,
                self._config.min_phase_count,
            )
            return FAILED_DEPTH

        logger.debug(
            "Starting depth inversion: lat=%.4f lon=%.4f initial_depth_km=%.2f valid=%d",
            lat,
            lon,
            initial_depth,
            valid_count,
        )
        best_depth = FAILED_DEPTH
        for half_width, step in SEARCH_STAGES:
            if half_width is None:
                lower, upper = self._config.min_depth, self._config.max_depth
            else:
                lower = max(self._config.min_depth, best_depth - half_width)
                upper = min(self._config.max_depth, best_depth + half_width)
            best_depth = self._grid_search_depth(lat, lon, observations, lower, upper, step)
            logger.debug(
                "Depth search stage: range=[%.1f, %.1f] step=%.1f best_depth_km=%.2f",
                lower,
                upper,
                step,
                best_depth,
            )
            if best_depth < 0:
                return FAILED_DEPTH

        logger.debug(
            "Depth inversion complete: depth_km=%.2f valid=%d", best_depth, valid_count
        )
        return best_depth

    def build_observations(
        self,
        lat: float,
        lon: float,
        depth: float,
        origin_time: datetime,
        arrivals: Iterable[Arrival],
        stations: Dict[tuple[str, str, str], Station],
    ) -> List[DepthPhaseObservation]:
        """Pair depth phase arrivals with their station's reference arrival."""
        per_station: Dict[tuple[str, str, str], Dict[str, Arrival]] = {}
        for arrival in sorted(arrivals, key=lambda a: a.ts):
            per_station.setdefault(arrival.station_key, {}).setdefault(arrival.phase, arrival)

        origin_epoch = origin_time.timestamp()
        observations: List[DepthPhaseObservation] = []
        for station_key, by_phase in per_station.items():
            for phase in self._config.phases:
                depth_arrival = by_phase.get(phase)
                if depth_arrival is None:
                    continue
                if not is_depth_phase(phase):
                    logger.warning("Ignoring configured phase=%s: not a depth phase", phase)
                    continue
                reference_phase = get_reference_phase(phase)
                reference_arrival = by_phase.get(reference_phase)
                if reference_arrival is None:
                    logger.debug(
                        "No %s arrival for %s at station=%s.%s.%s",
                        reference_phase,
                        phase,
                        *station_key,
                    )
                    continue
                station = stations.get(station_key)
                if station is None:
                    logger.warning(
                        "Skipping %s arrival with missing station metadata: arrival_id=%s station=%s.%s.%s",
                        phase,
                        depth_arrival.id,
                        *station_key,
                    )
                    continue
                distance = epicentral_distance_deg(lat, lon, station.lat, station.lon)
                if not self._config.min_distance <= distance <= self._config.max_distance:
                    logger.debug(
                        "Skipping %s at station=%s.%s.%s: distance_deg=%.2f outside [%.1f, %.1f]",
                        phase,
                        *station_key,
                        distance,
                        self._config.min_distance,
                        self._config.max_distance,
                    )
                    continue

                observations.append(
                    self._make_observation(
                        lat, lon, depth, origin_epoch, station, depth_arrival, reference_arrival, distance
                    )
                )

        return observations

    def _make_observation(
        self,
        lat: float,
        lon: float,
        depth: float,
        origin_epoch: float,
        station: Station,
        depth_arrival: Arrival,
        reference_arrival: Arrival,
        distance: float,
    ) -> DepthPhaseObservation:
        elev_km = station.elev_m / 1000.0
        tt = self.compute_phase_time(
            depth_arrival.phase, lat, lon, depth, station.lat, station.lon, elev_km
        )
        diff_theo = self.compute_depth_phase_time_difference(
            depth_arrival.phase, lat, lon, depth, station.lat, station.lon, elev_km
        )
        observed = depth_arrival.ts.timestamp()
        diff_obs = observed - reference_arrival.ts.timestamp()
        if tt.time > 0:
            theoretical = origin_epoch + tt.time
            residual = observed - theoretical
        else:
            theoretical = NOT_ARRIVING
            residual = 0.0

        return DepthPhaseObservation(
            phase=depth_arrival.phase,
            reference_phase=reference_arrival.phase,
            station_code=station.sta,
            network_code=station.net,
            observed_time=observed,
            theoretical_time=theoretical,
            residual=residual,
            time_difference_obs=diff_obs,
            time_difference_theo=diff_theo,
            distance=distance,
            weight=self._config.weight,
            # Phases that do not arrive at a trial depth drop out of the misfit there.
            is_valid=diff_obs > 0,
            station_lat=station.lat,
            station_lon=station.lon,
            station_elev=elev_km,
        )

    def _residuals_at(
        self,
        lat: float,
        lon: float,
        depth: float,
        observations: Sequence[DepthPhaseObservation],
    ) -> Dict[int, float]:
        out: Dict[int, float] = {}
        for i, obs in enumerate(observations):
            if not obs.is_valid:
                continue
            theoretical = self._theoretical_difference(obs, lat, lon, depth)
            if theoretical < 0:
                continue
            out[i] = obs.time_difference_obs - theoretical
        return out

    def _depth_sensitivity(
        self,
        lat: float,
        lon: float,
        depth: float,
        observations: Sequence[DepthPhaseObservation],
        used: Iterable[int],
    ) -> float:
        """Mean |d(time difference)/d(depth)| in s/km by forward differences."""
        slopes: List[float] = []
        for i in used:
            obs = observations[i]
            if not obs.has_station_location:
                continue
            base = self._theoretical_difference(obs, lat, lon, depth)
            shifted = self._theoretical_difference(obs, lat, lon, depth + SENSITIVITY_STEP_KM)
            if base < 0 or shifted < 0:
                continue
            slopes.append(abs(shifted - base) / SENSITIVITY_STEP_KM)
        if not slopes:
            return 0.0
        return float(np.mean(slopes))

    def _method(self, observations: Sequence[DepthPhaseObservation], used: Iterable[int]) -> str:
        phases = sorted({observations[i].phase for i in used})
        if len(phases) == 1:
            return f"{phases[0]}-{get_reference_phase(phases[0])}"
        return "combined"

    def analyze(
        self,
        lat: float,
        lon: float,
        depth: float,
        origin_time: datetime,
        arrivals: Iterable[Arrival],
        stations: Dict[tuple[str, str, str], Station],
    ) -> DepthPhaseResult:
        """Find depth phases among the arrivals and estimate depth from them."""
        if origin_time.tzinfo is None:
            raise ValueError("origin_time must be timezone-aware (UTC)")

        arrivals = list(arrivals)
        observations = self.build_observations(lat, lon, depth, origin_time, arrivals, stations)
        logger.info(
            "Starting depth phase analysis: lat=%.4f lon=%.4f depth_km=%.2f arrivals=%d observations=%d",
            lat,
            lon,
            depth,
            len(arrivals),
            len(observations),
        )

        best_depth = self.invert_for_depth(lat, lon, observations, initial_depth=depth)
        if best_depth >= 0:
            residuals = self._residuals_at(lat, lon, best_depth, observations)
            outliers = {
                i for i, res in residuals.items() if abs(res) > self._config.max_residual
            }
            if outliers:
                logger.info(
                    "Rejecting depth phase outliers: count=%d max_residual=%.2f",
                    len(outliers),
                    self._config.max_residual,
                )
                observations = [
                    replace(obs, is_valid=False) if i in outliers else obs
                    for i, obs in enumerate(observations)
                ]
                best_depth = self.invert_for_depth(lat, lon, observations, initial_depth=depth)

        valid_count = sum(1 for obs in observations if obs.is_valid)
        if best_depth < 0:
            logger.info(
                "Depth phase analysis failed: observations=%d valid=%d required=%d",
                len(observations),
                valid_count,
                self._config.min_phase_count,
            )
            return DepthPhaseResult(
                success=False,
                depth=depth,
                observation_count=valid_count,
                observations=observations,
            )

        residuals = self._residuals_at(lat, lon, best_depth, observations)
        values = np.asarray(list(residuals.values()), dtype=float)
        mean_residual = float(np.mean(values)) if values.size else 0.0
        rms_residual = float(np.sqrt(np.mean(values * values))) if values.size else 0.0

        final_step = SEARCH_STAGES[-1][1]
        sensitivity = self._depth_sensitivity(lat, lon, best_depth, observations, residuals)
        uncertainty = final_step
        if sensitivity > 0:
            uncertainty = max(rms_residual / sensitivity, final_step)

        result = DepthPhaseResult(
            success=True,
            depth=best_depth,
            depth_uncertainty=uncertainty,
            depth_lower_bound=max(self._config.min_depth, best_depth - uncertainty),
            depth_upper_bound=min(self._config.max_depth, best_depth + uncertainty),
            observation_count=len(residuals),
            mean_residual=mean_residual,
            rms_residual=rms_residual,
            method=self._method(observations, residuals),
            observations=observations,
        )
        logger.info(
            "Depth phase analysis complete: depth_km=%.2f uncertainty_km=%.2f method=%s used=%d rms=%.3f",
            result.depth,
            result.depth_uncertainty,
            result.method,
            result.observation_count,
            result.rms_residual,
        )
        return result
