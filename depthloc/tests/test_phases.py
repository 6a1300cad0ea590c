import pytest

from depthloc.phases import get_reference_phase, is_depth_phase


@pytest.mark.parametrize(
    "phase,reference",
    [
        ("pP", "P"),
        ("sP", "P"),
        ("pwP", "P"),
        ("pS", "S"),
        ("sS", "S"),
        ("pPKP", "PKP"),
        ("sPKP", "PKP"),
    ],
)
def test_known_depth_phases(phase, reference):
    assert is_depth_phase(phase)
    assert get_reference_phase(phase) == reference


@pytest.mark.parametrize("phase", ["Pn", "P", "PP", "pp", "SS", ""])
def test_unknown_phases_default_to_p(phase):
    assert not is_depth_phase(phase)
    assert get_reference_phase(phase) == "P"
