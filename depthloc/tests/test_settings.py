from __future__ import annotations

import pytest

from depthloc.settings import DepthPhaseConfig, RegionDepthConfig, parse_args


def test_parse_args_defaults() -> None:
    settings = parse_args(["event.json"])
    assert settings.event_path == "event.json"
    assert settings.tt_type == "taup"
    assert settings.tt_model == "iasp91"
    assert settings.phases == ["pP", "sP", "pwP"]
    assert settings.log_level == "INFO"
    assert settings.depth_phase_config() == DepthPhaseConfig()


def test_parse_args_overrides() -> None:
    settings = parse_args(
        [
            "event.json",
            "--tt-type",
            "lookup",
            "--tt-model",
            "ak135",
            "--phase",
            "pP",
            "--phase",
            "sS",
            "--min-depth-km",
            "5",
            "--min-phase-count",
            "2",
            "--log-level",
            "debug",
        ]
    )
    assert settings.tt_type == "lookup"
    assert settings.tt_model == "ak135"
    assert settings.log_level == "DEBUG"

    config = settings.depth_phase_config()
    assert config.phases == ("pP", "sS")
    assert config.min_depth == 5.0
    assert config.min_phase_count == 2
    assert config.max_depth == 700.0


def test_config_defaults() -> None:
    config = DepthPhaseConfig()
    assert config.phases == ("pP", "sP", "pwP")
    assert (config.min_depth, config.max_depth) == (15.0, 700.0)
    assert (config.min_distance, config.max_distance) == (30.0, 90.0)
    assert config.max_residual == 3.0
    assert config.min_phase_count == 3
    assert config.weight == 1.5
    assert (config.search_window_before, config.search_window_after) == (5.0, 10.0)

    region = RegionDepthConfig()
    assert region.enabled is False
    assert region.regions == ()
    assert (region.global_default_depth, region.global_max_depth) == (10.0, 700.0)


def test_tt_type_help_describes_backend_cost(capsys) -> None:
    with pytest.raises(SystemExit):
        parse_args(["--help"])
    out = " ".join(capsys.readouterr().out.split())
    assert "slow for large networks" in out
    assert "lookup tabulates times once" in out
