import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime

from depthloc.depthphases import DepthPhaseAnalyzer
from depthloc.models import Arrival, DepthPhaseResult, Origin, Station
from depthloc.settings import Settings, parse_args


def _parse_ts(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        raise ValueError(f"Timestamp '{value}' must be timezone-aware (UTC)")
    return ts


def load_event(path: str) -> tuple[Origin, dict[tuple[str, str, str], Station], list[Arrival]]:
    with open(path, encoding="utf-8") as fh:
        doc = json.load(fh)

    raw_origin = doc["origin"]
    origin = Origin(
        lat=float(raw_origin["lat"]),
        lon=float(raw_origin["lon"]),
        depth_km=float(raw_origin.get("depth_km", 33.0)),
        time=_parse_ts(raw_origin["time"]),
    )

    stations: dict[tuple[str, str, str], Station] = {}
    for item in doc.get("stations", []):
        station = Station(
            net=item["net"],
            sta=item["sta"],
            loc=item.get("loc", ""),
            lat=float(item["lat"]),
            lon=float(item["lon"]),
            elev_m=float(item.get("elev_m", 0.0)),
        )
        stations[station.station_key] = station

    arrivals: list[Arrival] = []
    for i, item in enumerate(doc.get("arrivals", []), start=1):
        arrivals.append(
            Arrival(
                id=int(item.get("id", i)),
                ts=_parse_ts(item["ts"]),
                phase=item["phase"],
                net=item["net"],
                sta=item["sta"],
                loc=item.get("loc", ""),
                chan=item.get("chan", ""),
                score=item.get("score"),
            )
        )
    return origin, stations, arrivals


def run(settings: Settings, logger: logging.Logger) -> DepthPhaseResult | None:
    origin, stations, arrivals = load_event(settings.event_path)
    logger.info(
        "Loaded event: path=%s stations=%d arrivals=%d",
        settings.event_path,
        len(stations),
        len(arrivals),
    )

    analyzer = DepthPhaseAnalyzer(settings.depth_phase_config())
    if not analyzer.load_travel_time_table(settings.tt_type, settings.tt_model):
        logger.error(
            "No usable travel-time table: type=%s model=%s",
            settings.tt_type,
            settings.tt_model,
        )
        return None

    return analyzer.analyze(
        origin.lat,
        origin.lon,
        origin.depth_km,
        origin.time,
        arrivals,
        stations,
    )


def main(argv: list[str] | None = None) -> int:
    settings = parse_args(argv)
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger("depthloc.main")

    try:
        result = run(settings, logger)
    except Exception:
        logger.exception("Depth phase analysis failed")
        return 1
    if result is None:
        return 1

    print(json.dumps(asdict(result), indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
