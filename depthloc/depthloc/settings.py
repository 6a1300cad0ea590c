from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

DEFAULT_DEPTH_PHASES: Tuple[str, ...] = ("pP", "sP", "pwP")


@dataclass(frozen=True)
class DepthPhaseConfig:
    phases: Tuple[str, ...] = DEFAULT_DEPTH_PHASES
    min_depth: float = 15.0
    max_depth: float = 700.0
    min_distance: float = 30.0
    max_distance: float = 90.0
    max_residual: float = 3.0
    min_phase_count: int = 3
    weight: float = 1.5
    # Used by upstream pick association only.
    search_window_before: float = 5.0
    search_window_after: float = 10.0


@dataclass(frozen=True)
class RegionDepthConfig:
    enabled: bool = False
    regions: Tuple[str, ...] = ()
    global_default_depth: float = 10.0
    global_max_depth: float = 700.0


@dataclass
class Settings:
    event_path: str = ""
    tt_type: str = "taup"
    tt_model: str = "iasp91"
    phases: List[str] = field(default_factory=lambda: list(DEFAULT_DEPTH_PHASES))
    min_depth_km: float = 15.0
    max_depth_km: float = 700.0
    min_distance_deg: float = 30.0
    max_distance_deg: float = 90.0
    max_residual_seconds: float = 3.0
    min_phase_count: int = 3
    weight: float = 1.5
    log_level: str = "INFO"

    def depth_phase_config(self) -> DepthPhaseConfig:
        return DepthPhaseConfig(
            phases=tuple(self.phases),
            min_depth=self.min_depth_km,
            max_depth=self.max_depth_km,
            min_distance=self.min_distance_deg,
            max_distance=self.max_distance_deg,
            max_residual=self.max_residual_seconds,
            min_phase_count=self.min_phase_count,
            weight=self.weight,
        )


def parse_args(argv: Optional[List[str]] = None) -> Settings:
    parser = argparse.ArgumentParser(description="Depth phase analysis")
    parser.add_argument("event", help="JSON file with origin, stations and arrivals")
    parser.add_argument("--tt-type", default="taup",
                        help="Travel-time table type (taup, lookup). taup queries TauP twice per "
                             "observation at every trial depth and is slow for large networks; "
                             "lookup tabulates times once and interpolates")
    parser.add_argument("--tt-model", default="iasp91",
                        help="Travel-time model name (iasp91, ak135, ...)")
    parser.add_argument("--phase", action="append", dest="phases", default=None,
                        help="Depth phase to use. Repeatable.")
    parser.add_argument("--min-depth-km", type=float, default=15.0)
    parser.add_argument("--max-depth-km", type=float, default=700.0)
    parser.add_argument("--min-distance-deg", type=float, default=30.0)
    parser.add_argument("--max-distance-deg", type=float, default=90.0)
    parser.add_argument("--max-residual-seconds", type=float, default=3.0)
    parser.add_argument("--min-phase-count", type=int, default=3)
    parser.add_argument("--weight", type=float, default=1.5,
                        help="Weight of depth phases relative to P")
    parser.add_argument("--log-level", default="INFO",
                        help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    args = parser.parse_args(argv)

    phases = args.phases if args.phases else list(DEFAULT_DEPTH_PHASES)
    return Settings(
        event_path=args.event,
        tt_type=args.tt_type,
        tt_model=args.tt_model,
        phases=phases,
        min_depth_km=args.min_depth_km,
        max_depth_km=args.max_depth_km,
        min_distance_deg=args.min_distance_deg,
        max_distance_deg=args.max_distance_deg,
        max_residual_seconds=args.max_residual_seconds,
        min_phase_count=args.min_phase_count,
        weight=args.weight,
        log_level=args.log_level.upper(),
    )
