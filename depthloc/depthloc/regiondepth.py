from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Protocol, Sequence

from .models import RegionDepthConstraints
from .settings import RegionDepthConfig

logger = logging.getLogger(__name__)

DEFAULT_DEPTH_ATTRIBUTE = "defaultDepth"
MAX_DEPTH_ATTRIBUTE = "maxDepth"


class Region(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def attributes(self) -> Mapping[str, str]: ...

    def contains(self, lat: float, lon: float) -> bool: ...


class RegionProvider(Protocol):
    def regions(self) -> Sequence[Region]: ...


class StaticRegionProvider:
    """Provider over a fixed list of regions built elsewhere."""

    def __init__(self, regions: Sequence[Region] = ()):
        self._regions = list(regions)

    def regions(self) -> Sequence[Region]:
        return self._regions


def parse_depth_attribute(region: Region, attribute: str) -> Optional[float]:
    raw = region.attributes.get(attribute)
    if raw is None:
        return None
    try:
        return float(raw.strip())
    except (AttributeError, ValueError):
        logger.warning(
            "Failed to parse %s='%s' for region '%s'", attribute, raw, region.name
        )
        return None


def _format_depth(value: Optional[float]) -> str:
    return "not set" if value is None else f"{value:g}"


class RegionDepthLookup:
    """Default and maximum source depth by epicenter location.

    Regions are checked in the configured order and the first one whose
    polygon contains the location wins. Region attributes carry the depths:

    - defaultDepth: depth to use when depth cannot be resolved
    - maxDepth: maximum allowed depth for origins in the region

    The lookup keeps references to regions owned by the provider, so the
    provider must outlive it.
    """

    def __init__(self, provider: RegionProvider, config: Optional[RegionDepthConfig] = None):
        self._provider = provider
        self._config = config if config is not None else RegionDepthConfig()
        self._regions: List[Region] = []
        self._initialized = False

    @property
    def config(self) -> RegionDepthConfig:
        return self._config

    def set_config(self, config: RegionDepthConfig) -> None:
        self._config = config
        self._initialized = False
        self._regions = []

    def init(self) -> bool:
        """Retain the configured regions found in the provider.

        Returns True if at least one region was loaded.
        """
        self._regions = []
        self._initialized = False

        if not self._config.enabled:
            logger.debug("Region depth constraints disabled")
            return False
        if not self._config.regions:
            logger.warning("Region depth enabled but no regions configured")
            return False

        available = list(self._provider.regions())
        logger.debug("Loading depth regions: available=%d", len(available))
        for region_name in self._config.regions:
            region = next((r for r in available if r.name == region_name), None)
            if region is None:
                logger.warning("Depth region '%s' not found in region provider", region_name)
                continue
            self._regions.append(region)
            logger.info(
                "Loaded depth region '%s' (defaultDepth=%s, maxDepth=%s)",
                region_name,
                _format_depth(parse_depth_attribute(region, DEFAULT_DEPTH_ATTRIBUTE)),
                _format_depth(parse_depth_attribute(region, MAX_DEPTH_ATTRIBUTE)),
            )

        self._initialized = bool(self._regions)
        if self._initialized:
            logger.info("Region depth lookup initialized: regions=%d", len(self._regions))
        else:
            logger.warning("No depth regions loaded; using global defaults")
        return self._initialized

    def is_initialized(self) -> bool:
        return self._initialized

    def get_constraints(self, lat: float, lon: float) -> RegionDepthConstraints:
        result = RegionDepthConstraints(
            default_depth=self._config.global_default_depth,
            max_depth=self._config.global_max_depth,
        )
        if not self._config.enabled or not self._regions:
            return result

        for region in self._regions:
            if not region.contains(lat, lon):
                continue
            result.region_name = region.name
            result.matched = True
            default_depth = parse_depth_attribute(region, DEFAULT_DEPTH_ATTRIBUTE)
            if default_depth is not None:
                result.default_depth = default_depth
                result.has_default_depth = True
            max_depth = parse_depth_attribute(region, MAX_DEPTH_ATTRIBUTE)
            if max_depth is not None:
                result.max_depth = max_depth
                result.has_max_depth = True
            logger.debug(
                "Location %.2f/%.2f matched region '%s' (defaultDepth=%.1f km, maxDepth=%.1f km)",
                lat,
                lon,
                result.region_name,
                result.default_depth,
                result.max_depth,
            )
            return result

        logger.debug(
            "Location %.2f/%.2f matched no region; using global defaults "
            "(defaultDepth=%.1f km, maxDepth=%.1f km)",
            lat,
            lon,
            result.default_depth,
            result.max_depth,
        )
        return result

    def get_default_depth(self, lat: float, lon: float) -> float:
        return self.get_constraints(lat, lon).default_depth

    def get_max_depth(self, lat: float, lon: float) -> float:
        return self.get_constraints(lat, lon).max_depth

    def region_count(self) -> int:
        return len(self._regions)

    def region_names(self) -> List[str]:
        return [region.name for region in self._regions]
