from types import MappingProxyType

# Depth phase -> reference (direct) phase.
DEPTH_PHASES = MappingProxyType(
    {
        "pP": "P",
        "sP": "P",
        "pwP": "P",
        "pS": "S",
        "sS": "S",
        "pPKP": "PKP",
        "sPKP": "PKP",
    }
)

DEFAULT_REFERENCE_PHASE = "P"


def is_depth_phase(phase: str) -> bool:
    """Return True for a known depth phase code (case-sensitive)."""
    return phase in DEPTH_PHASES


def get_reference_phase(depth_phase: str) -> str:
    """Return the direct phase a depth phase is differenced against.

    Unknown codes map to "P".
    """
    return DEPTH_PHASES.get(depth_phase, DEFAULT_REFERENCE_PHASE)
